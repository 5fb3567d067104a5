"""
Unit tests for x402 payment models and EIP-3009 helpers
Tests wire aliases, signing, signer recovery and signature parsing
"""

import pytest
from eth_abi import decode
from eth_account import Account
from web3 import Web3

from src.payments.eip3009 import (
    TRANSFER_WITH_AUTHORIZATION_TYPES,
    build_typed_data,
    encode_transfer_call,
    generate_nonce,
    nonce_to_bytes,
    parse_signature,
    recover_signer,
    sign_authorization,
)
from src.payments.models import (
    PaymentRequirements,
    SettleResponse,
    TransferAuthorization,
    VerifyRequest,
    VerifyResponse,
)

from tests.conftest import CHAIN_ID, USDC


class TestPaymentModels:
    """Test payment data models"""

    def test_verify_request_from_wire_format(self):
        """Test VerifyRequest parses camelCase x402 JSON"""
        request = VerifyRequest.model_validate({
            "x402Version": 1,
            "paymentPayload": {
                "x402Version": 1,
                "scheme": "exact",
                "network": "base-sepolia",
                "payload": {
                    "signature": "0xabc123",
                    "authorization": {
                        "from": "0x111",
                        "to": "0x222",
                        "value": 1000000,
                        "validAfter": 0,
                        "validBefore": 9999999999,
                        "nonce": "0xdef"
                    }
                }
            },
            "paymentRequirements": {
                "scheme": "exact",
                "network": "base-sepolia",
                "maxAmountRequired": 2000000,
                "payTo": "0x222",
                "asset": USDC,
            }
        })

        authorization = request.payment_payload.payload.authorization
        assert authorization.from_address == "0x111"
        assert authorization.value == "1000000"
        assert authorization.valid_before == "9999999999"
        assert request.payment_requirements.max_amount_required == "2000000"

    def test_verify_response_serializes_aliases(self):
        response = VerifyResponse(is_valid=False, invalid_reason="Invalid signature", payer=None)

        assert response.model_dump(by_alias=True) == {
            "isValid": False,
            "invalidReason": "Invalid signature",
            "payer": None,
        }

    def test_settle_response(self):
        response = SettleResponse(success=True, payer="0x111", transaction="0xabc", network="eip155:84532")

        assert response.error is None
        assert response.network == "eip155:84532"

    def test_requirements_are_immutable(self):
        requirements = PaymentRequirements(max_amount_required="1", pay_to="0x222", asset=USDC)

        with pytest.raises(Exception):
            requirements.pay_to = "0x333"


class TestSignatureParsing:

    def test_parse_65_byte_signature(self):
        r = "11" * 32
        s = "22" * 32
        v, r_hex, s_hex = parse_signature(f"0x{r}{s}1b")

        assert v == 27
        assert r_hex == f"0x{r}"
        assert s_hex == f"0x{s}"

    def test_parse_normalizes_recovery_id(self):
        """Wallets emitting v in {0, 1} are mapped to {27, 28}"""
        assert parse_signature("0x" + "11" * 64 + "00")[0] == 27
        assert parse_signature("0x" + "11" * 64 + "01")[0] == 28
        assert parse_signature("0x" + "11" * 64 + "1c")[0] == 28

    def test_parse_rejects_wrong_length(self):
        with pytest.raises(ValueError):
            parse_signature("0x" + "11" * 64)

    def test_nonce_to_bytes(self):
        assert nonce_to_bytes("0x01") == b"\x00" * 31 + b"\x01"
        assert len(nonce_to_bytes(generate_nonce())) == 32

        with pytest.raises(ValueError):
            nonce_to_bytes("0x" + "ff" * 33)


class TestSigning:
    """EIP-712 signing and recovery"""

    def test_signature_round_trip(self):
        """Recovering a signed authorization yields the signing account"""
        for _ in range(3):
            account = Account.create()
            payload = sign_authorization(
                account.key,
                to=Account.create().address,
                value=1_000_000,
                chain_id=CHAIN_ID,
                asset=USDC,
            )

            recovered = recover_signer(payload.authorization, payload.signature, CHAIN_ID, USDC)
            assert recovered == account.address

    def test_recovery_depends_on_chain(self, payload, payer_account):
        """A signature for one chain does not recover the payer on another"""
        recovered = recover_signer(payload.authorization, payload.signature, 1, USDC)
        assert recovered != payer_account.address

    def test_typed_data_domain(self, payload):
        typed_data = build_typed_data(payload.authorization, CHAIN_ID, USDC.lower())

        assert typed_data["domain"] == {
            "name": "USD Coin",
            "version": "2",
            "chainId": CHAIN_ID,
            "verifyingContract": Web3.to_checksum_address(USDC),
        }
        assert typed_data["primaryType"] == "TransferWithAuthorization"
        assert typed_data["message"]["value"] == 1_000_000

    def test_encode_transfer_call(self, payload):
        call_data = encode_transfer_call(payload.authorization, payload.signature)
        raw = bytes.fromhex(call_data[2:])

        args = decode(TRANSFER_WITH_AUTHORIZATION_TYPES, raw[4:])
        v, r, s = parse_signature(payload.signature)

        assert raw[:4].hex() == "e3ee160e"
        assert args[0].lower() == payload.authorization.from_address.lower()
        assert args[2] == 1_000_000
        assert args[6] == v
        assert "0x" + args[7].hex() == r

    def test_sign_defaults(self, payer_account):
        payload = sign_authorization(
            payer_account.key, to=payer_account.address, value=5, chain_id=CHAIN_ID, asset=USDC
        )
        authorization: TransferAuthorization = payload.authorization

        assert authorization.valid_after == "0"
        assert int(authorization.valid_before) > 0
        assert len(nonce_to_bytes(authorization.nonce)) == 32
