"""
Settlement executors for the x402 exact scheme

- DirectSettlementExecutor: submits transferWithAuthorization with a locally held key
- RelaySettlementExecutor: submits through the gasless relay from a sponsor wallet
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Optional
from urllib.parse import urlparse

import structlog
from eth_account.signers.local import LocalAccount
from web3 import AsyncWeb3, Web3

from src.database.client import DatabaseClient
from src.database.sponsors import SponsorWalletResolver
from src.models import SponsorWallet
from src.payments.eip3009 import (
    TOKEN_ABI,
    TRANSFER_EVENT_TOPIC,
    address_topic,
    transfer_call_args,
)
from src.payments.models import (
    ExactPayload,
    PaymentRequirements,
    SettleResponse,
    SettlementResult,
)
from src.payments.relay import RelayClient
from src.payments.verifier import AuthorizationVerifier

logger = structlog.get_logger()


def settlement_key(payload: ExactPayload) -> str:
    """Identity of an authorization: payer plus nonce"""
    authorization = payload.authorization
    return f"{authorization.from_address.lower()}-{authorization.nonce.lower()}"


class InFlightSettlements:
    """
    Deduplicates concurrent settlements of the same authorization.

    A second caller for a key that is still settling awaits the first
    caller's result instead of submitting again.
    """

    def __init__(self):
        self._pending: Dict[str, asyncio.Task] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._pending

    async def run(
        self,
        key: str,
        factory: Callable[[], Awaitable[SettleResponse]],
    ) -> SettleResponse:
        task = self._pending.get(key)
        if task is not None:
            logger.warning("settlement_already_in_progress", settlement_key=key)
        else:
            task = asyncio.ensure_future(factory())
            self._pending[key] = task
            task.add_done_callback(lambda _: self._pending.pop(key, None))
        return await asyncio.shield(task)


class SettlementExecutor(ABC):
    """Shared settle() entry point: dedupe, then run the strategy"""

    def __init__(
        self,
        verifier: AuthorizationVerifier,
        w3: AsyncWeb3,
        in_flight: Optional[InFlightSettlements] = None,
    ):
        self.verifier = verifier
        self.w3 = w3
        self.in_flight = in_flight or InFlightSettlements()

    @property
    def network(self) -> str:
        return self.verifier.network

    async def settle(
        self,
        payload: ExactPayload,
        requirements: PaymentRequirements,
    ) -> SettleResponse:
        """Settle a payment on-chain. Never raises."""
        try:
            return await self.in_flight.run(
                settlement_key(payload),
                lambda: self._settle_guarded(payload, requirements),
            )
        except Exception as e:
            logger.error("exact_payment_settlement_failed", error=str(e), network=self.network)
            return self._failure(str(e) or "Settlement failed")

    async def _settle_guarded(
        self,
        payload: ExactPayload,
        requirements: PaymentRequirements,
    ) -> SettleResponse:
        try:
            return await self._execute_settlement(payload, requirements)
        except Exception as e:
            logger.error("exact_payment_settlement_failed", error=str(e), network=self.network)
            return self._failure(str(e) or "Settlement failed")

    @abstractmethod
    async def _execute_settlement(
        self,
        payload: ExactPayload,
        requirements: PaymentRequirements,
    ) -> SettleResponse:
        """Run one settlement; may raise, settle() turns errors into results"""

    def _failure(
        self,
        error: Optional[str],
        payer: Optional[str] = None,
        transaction: Optional[str] = None,
    ) -> SettleResponse:
        return SettleResponse(
            success=False,
            error=error,
            payer=payer,
            transaction=transaction,
            network=self.verifier.network_caip2,
        )


class DirectSettlementExecutor(SettlementExecutor):
    """
    Settles by sending transferWithAuthorization from the facilitator's own key.

    The facilitator account pays gas. Without an account every settlement
    fails with "Wallet client not configured".
    """

    def __init__(
        self,
        verifier: AuthorizationVerifier,
        w3: AsyncWeb3,
        account: Optional[LocalAccount],
        in_flight: Optional[InFlightSettlements] = None,
        receipt_timeout: float = 120,
    ):
        super().__init__(verifier, w3, in_flight)
        self.account = account
        self.receipt_timeout = receipt_timeout
        # Account nonce is read then consumed; one submission at a time
        self._submit_lock = asyncio.Lock()

    async def _execute_settlement(
        self,
        payload: ExactPayload,
        requirements: PaymentRequirements,
    ) -> SettleResponse:
        verify_result = await self.verifier.verify(payload, requirements)
        if not verify_result.is_valid:
            return self._failure(verify_result.invalid_reason)

        if self.account is None:
            return self._failure("Wallet client not configured")

        authorization = payload.authorization
        token = self.w3.eth.contract(
            address=Web3.to_checksum_address(requirements.asset),
            abi=TOKEN_ABI,
        )

        async with self._submit_lock:
            tx = await token.functions.transferWithAuthorization(
                *transfer_call_args(authorization, payload.signature)
            ).build_transaction({
                "from": self.account.address,
                "nonce": await self.w3.eth.get_transaction_count(self.account.address, "pending"),
                "chainId": self.verifier.chain_id,
            })

            signed_tx = self.account.sign_transaction(tx)
            tx_hash = await self.w3.eth.send_raw_transaction(signed_tx.raw_transaction)
        tx_hash_hex = Web3.to_hex(tx_hash)

        logger.info(
            "transfer_with_authorization_sent",
            tx_hash=tx_hash_hex,
            from_address=authorization.from_address,
            to=authorization.to,
            value=authorization.value,
        )

        receipt = await self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout)

        if receipt["status"] != 1:
            logger.error("transfer_with_authorization_reverted", tx_hash=tx_hash_hex)
            return self._failure("Transaction reverted", transaction=tx_hash_hex)

        logger.info(
            "exact_payment_settled",
            tx_hash=tx_hash_hex,
            block_number=receipt.get("blockNumber"),
            gas_used=receipt.get("gasUsed"),
            from_address=authorization.from_address,
        )
        return SettleResponse(
            success=True,
            payer=authorization.from_address,
            transaction=tx_hash_hex,
            network=self.verifier.network_caip2,
        )


class RelaySettlementExecutor(SettlementExecutor):
    """
    Settles through the gasless relay using the payer's sponsor wallet.

    Flow:
    1. Verify the authorization
    2. Resolve the sponsor wallet for the payer
    3. Submit via the relay and wait for a transaction hash
    4. On relay failure, re-check the nonce on-chain: if it was consumed the
       payment went through (recover the hash from Transfer logs), otherwise
       resubmit once
    5. Attach gas usage from the receipt (best effort)
    6. Record the transaction and sponsor spending (best effort)
    """

    def __init__(
        self,
        verifier: AuthorizationVerifier,
        w3: AsyncWeb3,
        relay: RelayClient,
        resolver: SponsorWalletResolver,
        db: Optional[DatabaseClient] = None,
        in_flight: Optional[InFlightSettlements] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        recovery_delay: float = 1.0,
        log_index_delay: float = 2.0,
        log_lookback_blocks: int = 30,
    ):
        super().__init__(verifier, w3, in_flight)
        self.relay = relay
        self.resolver = resolver
        self.db = db
        self.recovery_delay = recovery_delay
        self.log_index_delay = log_index_delay
        self.log_lookback_blocks = log_lookback_blocks
        self._sleep = sleep

    async def _execute_settlement(
        self,
        payload: ExactPayload,
        requirements: PaymentRequirements,
    ) -> SettleResponse:
        verify_result = await self.verifier.verify(payload, requirements)
        if not verify_result.is_valid:
            return self._failure(verify_result.invalid_reason)

        authorization = payload.authorization
        sponsor = await self.resolver.find_sponsor_wallet(authorization.from_address)
        if sponsor is None:
            logger.error("sponsor_wallet_missing_for_payer", payer=authorization.from_address)
            return self._failure("No sponsor wallet configured for this payer", payer=authorization.from_address)

        result = await self._submit(payload, requirements, sponsor)

        if not result.success:
            logger.warning(
                "relay_settlement_failed_checking_nonce",
                error=result.error,
                from_address=authorization.from_address,
                nonce=authorization.nonce,
            )
            await self._sleep(self.recovery_delay)

            if await self.verifier.is_nonce_used(authorization, requirements.asset):
                # Relay reported failure but the authorization was consumed on-chain
                tx_hash = await self.find_recent_transfer(payload, requirements)
                logger.info(
                    "relay_settlement_recovered",
                    tx_hash=tx_hash,
                    from_address=authorization.from_address,
                    nonce=authorization.nonce,
                )
                return SettleResponse(
                    success=True,
                    payer=authorization.from_address,
                    transaction=tx_hash,
                    network=self.verifier.network_caip2,
                )

            logger.info("relay_settlement_retrying", nonce=authorization.nonce)
            await self._sleep(self.recovery_delay)
            result = await self._submit(payload, requirements, sponsor)
            logger.info("relay_settlement_retry_result", success=result.success, error=result.error)

        if not result.success or not result.transaction_hash:
            return self._failure(result.error or "Transaction failed", payer=authorization.from_address)

        result = await self.attach_gas_info(result)

        logger.info(
            "exact_payment_settled",
            tx_hash=result.transaction_hash,
            from_address=authorization.from_address,
            to=authorization.to,
            value=authorization.value,
            sponsor_address=sponsor.sponsor_address,
            gas_used=result.gas_used,
            gas_cost_wei=result.gas_cost_wei,
        )

        await self._record_settlement(result, payload, requirements, sponsor)

        return SettleResponse(
            success=True,
            payer=authorization.from_address,
            transaction=result.transaction_hash,
            network=self.verifier.network_caip2,
        )

    async def _submit(
        self,
        payload: ExactPayload,
        requirements: PaymentRequirements,
        sponsor: SponsorWallet,
    ) -> SettlementResult:
        return await self.relay.execute_transfer_with_authorization(
            chain_id=self.verifier.chain_id,
            token_address=requirements.asset,
            sponsor_address=sponsor.sponsor_address,
            authorization=payload.authorization,
            signature=payload.signature,
        )

    async def find_recent_transfer(
        self,
        payload: ExactPayload,
        requirements: PaymentRequirements,
    ) -> Optional[str]:
        """
        Hash of the latest Transfer(from, to) on the asset within the lookback
        window, or None when nothing matches or the log query fails.
        """
        authorization = payload.authorization
        try:
            await self._sleep(self.log_index_delay)

            current_block = await self.w3.eth.block_number
            logs = await self.w3.eth.get_logs({
                "address": Web3.to_checksum_address(requirements.asset),
                "fromBlock": max(current_block - self.log_lookback_blocks, 0),
                "toBlock": "latest",
                "topics": [
                    TRANSFER_EVENT_TOPIC,
                    address_topic(authorization.from_address),
                    address_topic(authorization.to),
                ],
            })

            if not logs:
                logger.info("recent_transfer_not_found", from_block=current_block - self.log_lookback_blocks)
                return None
            return Web3.to_hex(logs[-1]["transactionHash"])

        except Exception as e:
            logger.warning("recent_transfer_search_failed", error=str(e))
            return None

    async def attach_gas_info(self, result: SettlementResult) -> SettlementResult:
        """Add gasUsed/effectiveGasPrice/gasCostWei from the receipt; unchanged on failure"""
        try:
            receipt = await self.w3.eth.get_transaction_receipt(result.transaction_hash)
            gas_used = int(receipt["gasUsed"])
            effective_gas_price = int(receipt.get("effectiveGasPrice") or 0)
            return result.model_copy(update={
                "gas_used": str(gas_used),
                "effective_gas_price": str(effective_gas_price),
                "gas_cost_wei": str(gas_used * effective_gas_price),
            })
        except Exception as e:
            logger.warning("gas_info_unavailable", tx_hash=result.transaction_hash, error=str(e))
            return result

    async def _record_settlement(
        self,
        result: SettlementResult,
        payload: ExactPayload,
        requirements: PaymentRequirements,
        sponsor: SponsorWallet,
    ) -> None:
        if self.db is None:
            return

        authorization = payload.authorization
        vendor_domain, vendor_endpoint = _vendor_from_resource(requirements.resource)

        try:
            logged = await self.db.log_transaction(
                transaction_hash=result.transaction_hash,
                payer_address=authorization.from_address,
                recipient_address=authorization.to,
                sponsor_address=sponsor.sponsor_address,
                amount_wei=authorization.value,
                asset_address=requirements.asset,
                network=self.network,
                chain_id=self.verifier.chain_id,
                vendor_domain=vendor_domain,
                vendor_endpoint=vendor_endpoint,
            )
            if not logged:
                logger.warning("transaction_already_logged", tx_hash=result.transaction_hash)

            await self.db.log_sponsor_spending(
                sponsor_wallet_id=sponsor.id,
                amount_wei=result.gas_cost_wei or "0",
                agent_address=authorization.from_address,
                transaction_hash=result.transaction_hash,
                chain_id=self.verifier.chain_id,
                network_name=self.network,
                server_domain=vendor_domain,
                server_endpoint=vendor_endpoint,
            )
        except Exception as e:
            logger.error("settlement_logging_failed", tx_hash=result.transaction_hash, error=str(e))


def _vendor_from_resource(resource: str):
    if not resource:
        return None, None
    parsed = urlparse(resource)
    if not parsed.hostname:
        return None, None
    return parsed.hostname, parsed.path or "/"
