"""
Persistence records read by the payment core
Shapes of the Supabase sponsor tables
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class SponsorRuleType(str, Enum):
    """Kinds of sponsor rules"""
    AGENT_WHITELIST = "agent_whitelist"


class TransactionStatus(str, Enum):
    """Status recorded for a logged x402 transaction"""
    SUCCESS = "success"
    FAILED = "failed"
    PENDING = "pending"


class SponsorWallet(BaseModel):
    """Server-custodied wallet that pays gas on behalf of a payer"""
    model_config = ConfigDict(extra="ignore")

    id: str
    user_wallet_address: str = Field(description="Payer wallet this sponsor serves")
    network: Optional[str] = None
    sponsor_address: str = Field(description="Gas-paying EOA")
    turnkey_wallet_id: Optional[str] = None
    smart_wallet_address: Optional[str] = None
    balance: str = Field(default="0", description="Native balance in wei")

    @field_validator("id", "balance", mode="before")
    @classmethod
    def coerce_to_str(cls, v):
        if v is None:
            return v
        return str(v)


class SponsorRule(BaseModel):
    """Whitelist entry mapping an agent address to a sponsor wallet"""
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    rule_type: SponsorRuleType = SponsorRuleType.AGENT_WHITELIST
    agent_address: str
    sponsor_wallet_id: str
    enabled: bool = True
    priority: int = 0
    created_at: Optional[datetime] = None

    @field_validator("id", "sponsor_wallet_id", mode="before")
    @classmethod
    def coerce_to_str(cls, v):
        if v is None:
            return v
        return str(v)
