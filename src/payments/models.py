"""
x402-compliant payment models for the exact (EIP-3009) scheme
Field aliases follow the x402 JSON wire format
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator


class PaymentRequirements(BaseModel):
    """Server-stated constraints for an accepted payment"""
    scheme: str = Field(default="exact", description="Payment scheme")
    network: str = Field(default="base-sepolia", description="Target network")
    max_amount_required: str = Field(alias="maxAmountRequired", description="Token base units")
    resource: str = Field(default="", description="URL of the paid resource")
    description: Optional[str] = None
    mime_type: Optional[str] = Field(default=None, alias="mimeType")
    pay_to: str = Field(alias="payTo", description="Recipient address")
    max_timeout_seconds: int = Field(default=60, alias="maxTimeoutSeconds")
    asset: str = Field(description="Token contract address")
    extra: Optional[Dict[str, Any]] = None

    class Config:
        populate_by_name = True
        frozen = True

    @field_validator("max_amount_required", mode="before")
    @classmethod
    def coerce_amount(cls, v):
        return str(v) if isinstance(v, int) else v


class TransferAuthorization(BaseModel):
    """EIP-3009 TransferWithAuthorization fields"""
    from_address: str = Field(alias="from")
    to: str
    value: str
    valid_after: str = Field(default="0", alias="validAfter")
    valid_before: str = Field(alias="validBefore")
    nonce: str

    class Config:
        populate_by_name = True

    @field_validator("value", "valid_after", "valid_before", mode="before")
    @classmethod
    def coerce_integer_strings(cls, v):
        # Clients send these as either JSON numbers or decimal strings
        return str(v) if isinstance(v, int) else v


class ExactPayload(BaseModel):
    """Signed authorization submitted by the payer"""
    signature: str
    authorization: TransferAuthorization


class PaymentPayload(BaseModel):
    """x402 payment payload submitted by the payer's client"""
    x402_version: int = Field(default=1, alias="x402Version")
    scheme: str = "exact"
    network: str = "base-sepolia"
    payload: ExactPayload

    class Config:
        populate_by_name = True


class VerifyRequest(BaseModel):
    """Body of POST /verify and POST /settle"""
    x402_version: int = Field(default=1, alias="x402Version")
    payment_payload: PaymentPayload = Field(alias="paymentPayload")
    payment_requirements: PaymentRequirements = Field(alias="paymentRequirements")

    class Config:
        populate_by_name = True


SettleRequest = VerifyRequest


class VerifyResponse(BaseModel):
    """Outcome of authorization verification"""
    is_valid: bool = Field(alias="isValid")
    invalid_reason: Optional[str] = Field(default=None, alias="invalidReason")
    payer: Optional[str] = None

    class Config:
        populate_by_name = True


class SettleResponse(BaseModel):
    """Outcome of settlement as returned to x402 clients"""
    success: bool
    error: Optional[str] = None
    payer: Optional[str] = None
    transaction: Optional[str] = None
    network: str


class SettlementResult(BaseModel):
    """Outcome of one relay settlement attempt"""
    success: bool
    transaction_hash: Optional[str] = Field(default=None, alias="transactionHash")
    error: Optional[str] = None
    gas_used: Optional[str] = Field(default=None, alias="gasUsed")
    effective_gas_price: Optional[str] = Field(default=None, alias="effectiveGasPrice")
    gas_cost_wei: Optional[str] = Field(default=None, alias="gasCostWei")

    class Config:
        populate_by_name = True
        frozen = True


class SupportedKind(BaseModel):
    """Single scheme/network pair served by the facilitator"""
    x402_version: int = Field(default=1, alias="x402Version")
    scheme: str = "exact"
    network: str

    class Config:
        populate_by_name = True


class SupportedResponse(BaseModel):
    kinds: List[SupportedKind]


class X402PaymentConfig(BaseModel):
    """Discovery document served at /.well-known/x402-payment.json"""
    version: int = 1
    facilitator: str
    supported_schemes: List[SupportedKind] = Field(alias="supportedSchemes")
    endpoints: Dict[str, str]

    class Config:
        populate_by_name = True
