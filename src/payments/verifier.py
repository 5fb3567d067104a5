"""
Authorization verifier for the x402 exact scheme
Validates EIP-3009 authorizations against payment requirements
"""

import time
from typing import Callable, Optional

import structlog
from web3 import AsyncWeb3, Web3

from src.chains import get_chain_id, to_caip2
from src.payments.eip3009 import TOKEN_ABI, nonce_to_bytes, recover_signer
from src.payments.models import (
    ExactPayload,
    PaymentRequirements,
    TransferAuthorization,
    VerifyResponse,
)

logger = structlog.get_logger()


class AuthorizationVerifier:
    """
    Verifies exact-scheme payments for one network.

    Pipeline (first failure wins):
    1. Field validation (recipient, amount cap)
    2. EIP-712 signer recovery
    3. Signer matches authorization.from
    4. On-chain token balance covers the value
    5. Time window (validAfter <= now <= validBefore)
    6. Authorization nonce not yet used on-chain

    Never raises: unexpected errors yield "Verification failed".
    """

    def __init__(
        self,
        network: str,
        w3: AsyncWeb3,
        clock: Callable[[], float] = time.time,
    ):
        chain_id = get_chain_id(network)
        if chain_id is None:
            raise ValueError(f"Unknown network: {network}")

        self.network = network
        self.chain_id = chain_id
        self.w3 = w3
        self.clock = clock

    @property
    def network_caip2(self) -> str:
        return to_caip2(self.network)

    async def verify(
        self,
        payload: ExactPayload,
        requirements: PaymentRequirements,
    ) -> VerifyResponse:
        try:
            authorization = payload.authorization

            if not self._validate_fields(authorization, requirements):
                return _invalid("Authorization fields invalid")

            signer = self._recover_signer(authorization, payload.signature, requirements.asset)
            if not signer:
                return _invalid("Invalid signature")

            logger.debug(
                "signature_recovered",
                network=self.network_caip2,
                recovered_signer=signer,
                from_address=authorization.from_address,
            )

            if signer.lower() != authorization.from_address.lower():
                return _invalid("Signer does not match 'from' address")

            balance = await self._token(requirements.asset).functions.balanceOf(
                Web3.to_checksum_address(authorization.from_address)
            ).call()
            if balance < int(authorization.value):
                return _invalid("Insufficient balance")

            now = int(self.clock())
            if now < int(authorization.valid_after):
                return _invalid("Authorization not yet valid")
            if now > int(authorization.valid_before):
                return _invalid("Authorization expired")

            if await self.is_nonce_used(authorization, requirements.asset):
                logger.warning(
                    "authorization_nonce_used",
                    from_address=authorization.from_address,
                    nonce=authorization.nonce,
                )
                return _invalid("Authorization nonce already used or canceled")

            logger.info(
                "exact_payment_verified",
                from_address=authorization.from_address,
                to=authorization.to,
                value=authorization.value,
                network=self.network,
            )
            return VerifyResponse(is_valid=True, invalid_reason=None, payer=authorization.from_address)

        except Exception as e:
            logger.error("exact_payment_verification_failed", error=str(e), network=self.network)
            return _invalid("Verification failed")

    async def is_nonce_used(self, authorization: TransferAuthorization, asset: str) -> bool:
        """
        Check EIP-3009 authorizationState for (from, nonce).

        RPC failures are treated as "not used"; some tokens do not expose the view.
        """
        try:
            return bool(
                await self._token(asset).functions.authorizationState(
                    Web3.to_checksum_address(authorization.from_address),
                    nonce_to_bytes(authorization.nonce),
                ).call()
            )
        except Exception as e:
            logger.warning(
                "nonce_state_check_failed",
                error=str(e),
                from_address=authorization.from_address,
                nonce=authorization.nonce,
            )
            return False

    def _validate_fields(
        self,
        authorization: TransferAuthorization,
        requirements: PaymentRequirements,
    ) -> bool:
        if authorization.to.lower() != requirements.pay_to.lower():
            return False
        if int(authorization.value) > int(requirements.max_amount_required):
            return False
        return True

    def _recover_signer(
        self,
        authorization: TransferAuthorization,
        signature: str,
        asset: str,
    ) -> Optional[str]:
        try:
            return recover_signer(authorization, signature, self.chain_id, asset)
        except Exception as e:
            logger.error("signer_recovery_failed", error=str(e))
            return None

    def _token(self, asset: str):
        return self.w3.eth.contract(address=Web3.to_checksum_address(asset), abi=TOKEN_ABI)


def _invalid(reason: str) -> VerifyResponse:
    return VerifyResponse(is_valid=False, invalid_reason=reason, payer=None)
