"""
Tests for exact-scheme authorization verification
"""

import pytest
from unittest.mock import AsyncMock

from src.payments.verifier import AuthorizationVerifier

from tests.conftest import NETWORK, NOW, make_w3


class TestVerification:
    """Verification pipeline outcomes"""

    @pytest.mark.asyncio
    async def test_valid_payment(self, verifier, payload, requirements, payer_account):
        """Matching recipient, capped amount, good signature, funded payer"""
        result = await verifier.verify(payload, requirements)

        assert result.is_valid is True
        assert result.invalid_reason is None
        assert result.payer == payer_account.address

    @pytest.mark.asyncio
    async def test_recipient_mismatch(self, verifier, sign, requirements):
        payload = sign(to="0x000000000000000000000000000000000000dEaD")

        result = await verifier.verify(payload, requirements)

        assert result.is_valid is False
        assert result.invalid_reason == "Authorization fields invalid"
        assert result.payer is None

    @pytest.mark.asyncio
    async def test_recipient_compared_case_insensitively(self, verifier, payload, requirements):
        requirements = requirements.model_copy(update={"pay_to": requirements.pay_to.lower()})

        result = await verifier.verify(payload, requirements)

        assert result.is_valid is True

    @pytest.mark.asyncio
    async def test_amount_boundary(self, verifier, sign, requirements):
        at_cap = await verifier.verify(sign(value=2_000_000), requirements)
        over_cap = await verifier.verify(sign(value=2_000_001), requirements)

        assert at_cap.is_valid is True
        assert over_cap.invalid_reason == "Authorization fields invalid"

    @pytest.mark.asyncio
    async def test_malformed_signature(self, verifier, payload, requirements):
        payload = payload.model_copy(update={"signature": "0x1234"})

        result = await verifier.verify(payload, requirements)

        assert result.invalid_reason == "Invalid signature"

    @pytest.mark.asyncio
    async def test_signer_mismatch(self, verifier, payload, requirements):
        """Signature is valid but for a different 'from' than claimed"""
        authorization = payload.authorization.model_copy(
            update={"from_address": "0x000000000000000000000000000000000000bEEF"}
        )
        payload = payload.model_copy(update={"authorization": authorization})

        result = await verifier.verify(payload, requirements)

        assert result.invalid_reason == "Signer does not match 'from' address"

    @pytest.mark.asyncio
    async def test_insufficient_balance(self, clock, payload, requirements):
        verifier = AuthorizationVerifier(NETWORK, make_w3(balance=999_999), clock=clock)

        result = await verifier.verify(payload, requirements)

        assert result.invalid_reason == "Insufficient balance"

    @pytest.mark.asyncio
    async def test_balance_equal_to_value_is_enough(self, clock, payload, requirements):
        verifier = AuthorizationVerifier(NETWORK, make_w3(balance=1_000_000), clock=clock)

        result = await verifier.verify(payload, requirements)

        assert result.is_valid is True

    @pytest.mark.asyncio
    async def test_used_nonce(self, clock, payload, requirements):
        verifier = AuthorizationVerifier(NETWORK, make_w3(nonce_used=True), clock=clock)

        result = await verifier.verify(payload, requirements)

        assert result.invalid_reason == "Authorization nonce already used or canceled"

    @pytest.mark.asyncio
    async def test_nonce_check_error_is_not_fatal(self, w3, verifier, payload, requirements):
        token = w3.eth.contract.return_value
        token.functions.authorizationState.return_value.call = AsyncMock(side_effect=ValueError("no such method"))

        result = await verifier.verify(payload, requirements)

        assert result.is_valid is True

    @pytest.mark.asyncio
    async def test_rpc_error_fails_verification(self, w3, verifier, payload, requirements):
        token = w3.eth.contract.return_value
        token.functions.balanceOf.return_value.call = AsyncMock(side_effect=ConnectionError("rpc down"))

        result = await verifier.verify(payload, requirements)

        assert result.is_valid is False
        assert result.invalid_reason == "Verification failed"

    @pytest.mark.asyncio
    async def test_balance_read_uses_requirements_asset(self, w3, verifier, payload, requirements):
        await verifier.verify(payload, requirements)

        assert w3.eth.contract.call_args.kwargs["address"].lower() == requirements.asset.lower()


class TestTimeWindow:
    """validAfter <= now <= validBefore, inclusive at both ends"""

    @pytest.mark.asyncio
    async def test_not_yet_valid(self, verifier, clock, sign, requirements):
        payload = sign(valid_after=NOW + 10, valid_before=NOW + 100)

        clock.now = NOW + 9
        assert (await verifier.verify(payload, requirements)).invalid_reason == "Authorization not yet valid"

        clock.now = NOW + 10
        assert (await verifier.verify(payload, requirements)).is_valid is True

    @pytest.mark.asyncio
    async def test_expired(self, verifier, clock, sign, requirements):
        payload = sign(valid_after=NOW - 100, valid_before=NOW + 10)

        clock.now = NOW + 11
        assert (await verifier.verify(payload, requirements)).invalid_reason == "Authorization expired"

        clock.now = NOW + 10
        assert (await verifier.verify(payload, requirements)).is_valid is True

    @pytest.mark.asyncio
    async def test_field_check_runs_before_time_check(self, verifier, clock, sign, requirements):
        payload = sign(value=3_000_000, valid_before=NOW - 1)

        result = await verifier.verify(payload, requirements)

        assert result.invalid_reason == "Authorization fields invalid"


def test_unknown_network_rejected():
    with pytest.raises(ValueError):
        AuthorizationVerifier("not-a-chain", make_w3())
