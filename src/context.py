"""
Process-wide facilitator context
Built once at startup and injected into the HTTP layer
"""

from dataclasses import dataclass, field
from typing import Dict, Optional

import structlog
from eth_account import Account
from web3 import AsyncWeb3

from src.config import ConfigurationError, FacilitatorConfig
from src.database import DatabaseClient, SponsorWalletResolver
from src.payments.relay import RelayClient
from src.payments.settlement import (
    DirectSettlementExecutor,
    InFlightSettlements,
    RelaySettlementExecutor,
    SettlementExecutor,
)
from src.payments.verifier import AuthorizationVerifier

logger = structlog.get_logger()


@dataclass
class FacilitatorContext:
    """Long-lived collaborators shared by all requests"""
    config: FacilitatorConfig
    verifiers: Dict[str, AuthorizationVerifier]
    executors: Dict[str, SettlementExecutor]
    db: Optional[DatabaseClient] = None
    relay: Optional[RelayClient] = None
    in_flight: InFlightSettlements = field(default_factory=InFlightSettlements)

    @property
    def networks(self):
        return list(self.verifiers.keys())

    async def aclose(self):
        if self.relay is not None:
            await self.relay.close()


def build_context(config: FacilitatorConfig) -> FacilitatorContext:
    """
    Validate configuration and construct every collaborator.

    Raises:
        ConfigurationError: the selected settlement strategy lacks its secrets
    """
    in_flight = InFlightSettlements()
    db: Optional[DatabaseClient] = None
    relay: Optional[RelayClient] = None
    account = None

    if config.settlement_strategy == "direct":
        if not config.facilitator_private_key:
            raise ConfigurationError("FACILITATOR_PRIVATE_KEY is required for direct settlement")
        account = Account.from_key(config.facilitator_private_key)
    else:
        if not config.supabase_url or not config.supabase_key:
            raise ConfigurationError("SUPABASE_URL and SUPABASE_KEY are required for relay settlement")
        relay = RelayClient(
            api_key=config.thirdweb_secret_key,
            base_url=config.relay_base_url,
            timeout=config.relay_timeout,
            max_poll_attempts=config.relay_poll_attempts,
            poll_interval=config.relay_poll_interval,
        )
        db = DatabaseClient(config.supabase_url, config.supabase_key)

    verifiers: Dict[str, AuthorizationVerifier] = {}
    executors: Dict[str, SettlementExecutor] = {}

    for network in config.networks:
        w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(config.rpc_url_for(network)))
        verifier = AuthorizationVerifier(network, w3)
        verifiers[network] = verifier

        if relay is not None:
            executors[network] = RelaySettlementExecutor(
                verifier,
                w3,
                relay=relay,
                resolver=SponsorWalletResolver(db),
                db=db,
                in_flight=in_flight,
            )
        else:
            executors[network] = DirectSettlementExecutor(verifier, w3, account, in_flight=in_flight)

    logger.info(
        "facilitator_context_built",
        networks=config.networks,
        strategy=config.settlement_strategy,
    )

    return FacilitatorContext(
        config=config,
        verifiers=verifiers,
        executors=executors,
        db=db,
        relay=relay,
        in_flight=in_flight,
    )
