"""
Supabase database client for the x402 facilitator
Reads sponsor wallets/rules and records settled transactions
"""

from typing import Optional, List, Dict, Any

from supabase import create_client, Client

from src.models import SponsorRuleType, TransactionStatus

SPONSOR_WALLETS_TABLE = "perkos_sponsor_wallets"
SPONSOR_RULES_TABLE = "perkos_sponsor_rules"
SPONSOR_SPENDING_TABLE = "perkos_sponsor_spending"
TRANSACTIONS_TABLE = "perkos_x402_transactions"

# Postgres unique_violation
UNIQUE_VIOLATION = "23505"


class DatabaseClient:
    """
    Thin async facade over the Supabase client.

    Methods raise on persistence errors; callers decide how to degrade.
    """

    def __init__(self, supabase_url: str, supabase_key: str, client: Optional[Client] = None):
        """Initialize Supabase client"""
        self.client: Client = client or create_client(supabase_url, supabase_key)

    # ===== SPONSOR OPERATIONS =====

    async def get_sponsor_rules(self, agent_address: str) -> List[Dict[str, Any]]:
        """
        Enabled agent-whitelist rules for an address, highest priority first.
        Address must already be lowercase.
        """
        result = (
            self.client.table(SPONSOR_RULES_TABLE)
            .select("*")
            .eq("rule_type", SponsorRuleType.AGENT_WHITELIST.value)
            .eq("agent_address", agent_address)
            .eq("enabled", True)
            .order("priority", desc=True)
            .execute()
        )
        return result.data or []

    async def get_sponsor_wallet(self, wallet_id: str) -> Optional[Dict[str, Any]]:
        """Get sponsor wallet by ID"""
        result = self.client.table(SPONSOR_WALLETS_TABLE).select("*").eq("id", wallet_id).limit(1).execute()
        return result.data[0] if result.data else None

    async def get_sponsor_wallet_for_user(self, user_wallet_address: str) -> Optional[Dict[str, Any]]:
        """Get the sponsor wallet mapped directly to a payer address"""
        result = (
            self.client.table(SPONSOR_WALLETS_TABLE)
            .select("*")
            .eq("user_wallet_address", user_wallet_address)
            .limit(1)
            .execute()
        )
        return result.data[0] if result.data else None

    # ===== TRANSACTION LOGGING =====

    async def log_transaction(
        self,
        transaction_hash: str,
        payer_address: str,
        recipient_address: str,
        amount_wei: str,
        asset_address: str,
        network: str,
        chain_id: int,
        status: TransactionStatus = TransactionStatus.SUCCESS,
        sponsor_address: Optional[str] = None,
        scheme: str = "exact",
        asset_symbol: str = "USDC",
        vendor_domain: Optional[str] = None,
        vendor_endpoint: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> bool:
        """
        Record a settled x402 transaction.
        Returns False if the transaction hash was already logged.
        """
        row = {
            "transaction_hash": transaction_hash,
            "payer_address": payer_address.lower(),
            "recipient_address": recipient_address.lower(),
            "sponsor_address": sponsor_address.lower() if sponsor_address else None,
            "amount_wei": amount_wei,
            "amount_usd": usdc_to_usd(amount_wei),
            "asset_address": asset_address.lower(),
            "asset_symbol": asset_symbol,
            "network": network,
            "chain_id": chain_id,
            "scheme": scheme,
            "vendor_domain": vendor_domain,
            "vendor_endpoint": vendor_endpoint,
            "status": status.value,
            "error_message": error_message,
        }

        try:
            self.client.table(TRANSACTIONS_TABLE).insert(row).execute()
        except Exception as e:
            if getattr(e, "code", None) == UNIQUE_VIOLATION:
                return False
            raise
        return True

    async def log_sponsor_spending(
        self,
        sponsor_wallet_id: str,
        amount_wei: str,
        agent_address: str,
        transaction_hash: str,
        chain_id: int,
        network_name: str,
        server_domain: Optional[str] = None,
        server_endpoint: Optional[str] = None,
    ) -> None:
        """Record gas spent by a sponsor wallet"""
        self.client.table(SPONSOR_SPENDING_TABLE).insert({
            "sponsor_wallet_id": sponsor_wallet_id,
            "amount_wei": amount_wei,
            "agent_address": agent_address.lower(),
            "transaction_hash": transaction_hash,
            "server_domain": server_domain,
            "server_endpoint": server_endpoint,
            "chain_id": str(chain_id),
            "network_name": network_name,
        }).execute()


def usdc_to_usd(amount_wei: str) -> float:
    """Convert a USDC base-unit amount (6 decimals) to a USD float"""
    try:
        return round(int(amount_wei) / 1_000_000, 6)
    except (TypeError, ValueError):
        return 0.0
