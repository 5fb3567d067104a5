"""
x402 Facilitator Configuration Management
Uses pydantic-settings for type-safe environment variable loading
"""

import logging
from typing import Dict, List, Literal

import structlog
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.chains import CHAINS


class ConfigurationError(ValueError):
    """Raised when a component is constructed with missing or invalid settings"""


class FacilitatorConfig(BaseSettings):
    """Configuration for the x402 facilitator service"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Server Configuration
    facilitator_host: str = Field(default="0.0.0.0", description="Host to bind the server to")
    facilitator_port: int = Field(default=8000, description="Port to bind the server to")
    facilitator_url: str = Field(default="http://localhost:8000", description="Public base URL")

    # Network Configuration
    networks: List[str] = Field(default=["base-sepolia"], description="Enabled network identifiers")
    default_network: str = Field(default="base-sepolia")
    rpc_urls: Dict[str, str] = Field(default_factory=dict, description="Per-network RPC overrides")

    # Settlement Configuration
    settlement_strategy: Literal["direct", "relay"] = Field(default="relay")
    facilitator_private_key: str = Field(default="", description="Key for direct on-chain settlement")

    # Relay (Thirdweb Engine)
    thirdweb_secret_key: str = Field(default="", description="Relay API secret key")
    relay_base_url: str = Field(default="https://engine.thirdweb.com")
    relay_timeout: float = Field(default=30.0, description="HTTP timeout in seconds")
    relay_poll_attempts: int = Field(default=30, ge=1)
    relay_poll_interval: float = Field(default=2.0, ge=0)

    # Supabase
    supabase_url: str = Field(default="")
    supabase_key: str = Field(default="")

    # CORS Configuration
    cors_origins: List[str] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins"
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    log_format: Literal["json", "text"] = Field(default="json")

    @field_validator("facilitator_private_key")
    @classmethod
    def validate_private_key(cls, v):
        if v and not v.startswith("0x"):
            return f"0x{v}"
        return v

    @field_validator("networks")
    @classmethod
    def validate_networks(cls, v):
        unknown = [n for n in v if n not in CHAINS]
        if unknown:
            raise ValueError(f"Unknown networks: {', '.join(unknown)}")
        return v

    @field_validator("default_network")
    @classmethod
    def validate_default_network(cls, v):
        if v not in CHAINS:
            raise ValueError(f"Unknown network: {v}")
        return v

    def rpc_url_for(self, network: str) -> str:
        """RPC endpoint for a network, preferring configured overrides"""
        if network in self.rpc_urls:
            return self.rpc_urls[network]
        return CHAINS[network].rpc_url


def load_config(**overrides) -> FacilitatorConfig:
    """Build configuration from the environment (and .env), applying overrides"""
    return FacilitatorConfig(**overrides)


def configure_logging(config: FacilitatorConfig) -> None:
    """Install structlog processors according to the configured format and level"""
    renderer = (
        structlog.processors.JSONRenderer()
        if config.log_format == "json"
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            renderer
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, config.log_level)
        ),
    )
