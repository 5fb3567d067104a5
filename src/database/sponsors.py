"""
Sponsor wallet resolution
Picks the wallet that pays gas for a payer: whitelist rule first, then direct mapping
"""

from datetime import datetime, timezone
from typing import Iterable, Optional

import structlog

from src.database.client import DatabaseClient
from src.models import SponsorRule, SponsorWallet

logger = structlog.get_logger()

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def select_rule(rules: Iterable[SponsorRule]) -> Optional[SponsorRule]:
    """
    Highest-priority enabled rule.

    Ties go to the most recently created rule, then to the highest id.
    """
    candidates = [rule for rule in rules if rule.enabled]
    if not candidates:
        return None
    return max(candidates, key=lambda rule: (rule.priority, _created_at(rule), rule.id or ""))


def _created_at(rule: SponsorRule) -> datetime:
    if rule.created_at is None:
        return _EPOCH
    if rule.created_at.tzinfo is None:
        return rule.created_at.replace(tzinfo=timezone.utc)
    return rule.created_at


class SponsorWalletResolver:
    """
    Resolves sponsor wallets for payer addresses.

    Lookup order:
    1. Enabled agent-whitelist rule for the address (highest priority wins)
    2. Direct user_wallet_address mapping

    Never raises. A persistence error at either step is logged and that
    step reports "not found", so a failed whitelist query still falls
    through to the direct mapping.
    """

    def __init__(self, db: DatabaseClient):
        self.db = db

    async def find_sponsor_wallet(self, payer_address: str) -> Optional[SponsorWallet]:
        address = payer_address.lower()
        logger.info("sponsor_wallet_lookup", wallet_address=address)

        wallet = await self._find_via_whitelist(address)
        if wallet:
            logger.info(
                "sponsor_wallet_found",
                via="whitelist",
                agent_address=address,
                sponsor_address=wallet.sponsor_address,
            )
            return wallet

        wallet = await self._find_direct(address)
        if wallet:
            logger.info(
                "sponsor_wallet_found",
                via="direct",
                user_wallet_address=address,
                sponsor_address=wallet.sponsor_address,
            )
            return wallet

        logger.warning(
            "sponsor_wallet_not_found",
            wallet_address=address,
            checked_whitelist=True,
            checked_direct_lookup=True,
        )
        return None

    async def _find_via_whitelist(self, address: str) -> Optional[SponsorWallet]:
        try:
            rows = await self.db.get_sponsor_rules(address)
            rule = select_rule(SponsorRule.model_validate(row) for row in rows)
            if rule is None:
                return None

            logger.info(
                "sponsor_rule_matched",
                wallet_address=address,
                sponsor_wallet_id=rule.sponsor_wallet_id,
                priority=rule.priority,
            )

            row = await self.db.get_sponsor_wallet(rule.sponsor_wallet_id)
            if row is None:
                logger.warning(
                    "sponsor_rule_wallet_missing",
                    wallet_address=address,
                    sponsor_wallet_id=rule.sponsor_wallet_id,
                )
                return None
            return SponsorWallet.model_validate(row)

        except Exception as e:
            logger.error("sponsor_rule_lookup_failed", error=str(e), wallet_address=address)
            return None

    async def _find_direct(self, address: str) -> Optional[SponsorWallet]:
        try:
            row = await self.db.get_sponsor_wallet_for_user(address)
            return SponsorWallet.model_validate(row) if row is not None else None
        except Exception as e:
            logger.error("sponsor_direct_lookup_failed", error=str(e), wallet_address=address)
            return None
