"""
EIP-3009 / EIP-712 helpers for the x402 exact scheme
Typed-data construction, signer recovery, signature parsing and call encoding
"""

import secrets
import time
from typing import Optional, Tuple

from eth_abi import encode
from eth_account import Account
from eth_account.messages import encode_typed_data
from web3 import Web3

from src.payments.models import ExactPayload, TransferAuthorization

# USDC FiatTokenV2 domain
DOMAIN_NAME = "USD Coin"
DOMAIN_VERSION = "2"

# Minimal ERC20 ABI for balance reads + EIP-3009 transferWithAuthorization
TOKEN_ABI = [
    {
        "constant": True,
        "inputs": [{"name": "account", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    # Check if authorization nonce has been used or canceled
    {
        "constant": True,
        "inputs": [
            {"name": "authorizer", "type": "address"},
            {"name": "nonce", "type": "bytes32"},
        ],
        "name": "authorizationState",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"name": "from", "type": "address"},
            {"name": "to", "type": "address"},
            {"name": "value", "type": "uint256"},
            {"name": "validAfter", "type": "uint256"},
            {"name": "validBefore", "type": "uint256"},
            {"name": "nonce", "type": "bytes32"},
            {"name": "v", "type": "uint8"},
            {"name": "r", "type": "bytes32"},
            {"name": "s", "type": "bytes32"},
        ],
        "name": "transferWithAuthorization",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]

TRANSFER_WITH_AUTHORIZATION_TYPES = [
    "address", "address", "uint256", "uint256", "uint256", "bytes32", "uint8", "bytes32", "bytes32"
]

# Human-readable signature understood by the relay's contract-write endpoint
TRANSFER_WITH_AUTHORIZATION_METHOD = (
    "function transferWithAuthorization(address from, address to, uint256 value, "
    "uint256 validAfter, uint256 validBefore, bytes32 nonce, uint8 v, bytes32 r, bytes32 s)"
)


def build_typed_data(
    authorization: TransferAuthorization,
    chain_id: int,
    verifying_contract: str,
) -> dict:
    """Create EIP-712 typed data for a TransferWithAuthorization message"""
    nonce = authorization.nonce
    return {
        "types": {
            "EIP712Domain": [
                {"name": "name", "type": "string"},
                {"name": "version", "type": "string"},
                {"name": "chainId", "type": "uint256"},
                {"name": "verifyingContract", "type": "address"},
            ],
            "TransferWithAuthorization": [
                {"name": "from", "type": "address"},
                {"name": "to", "type": "address"},
                {"name": "value", "type": "uint256"},
                {"name": "validAfter", "type": "uint256"},
                {"name": "validBefore", "type": "uint256"},
                {"name": "nonce", "type": "bytes32"},
            ],
        },
        "primaryType": "TransferWithAuthorization",
        "domain": {
            "name": DOMAIN_NAME,
            "version": DOMAIN_VERSION,
            "chainId": chain_id,
            "verifyingContract": Web3.to_checksum_address(verifying_contract),
        },
        "message": {
            "from": Web3.to_checksum_address(authorization.from_address),
            "to": Web3.to_checksum_address(authorization.to),
            "value": int(authorization.value),
            "validAfter": int(authorization.valid_after),
            "validBefore": int(authorization.valid_before),
            "nonce": nonce if nonce.startswith("0x") else f"0x{nonce}",
        },
    }


def recover_signer(
    authorization: TransferAuthorization,
    signature: str,
    chain_id: int,
    verifying_contract: str,
) -> str:
    """
    Recover the address that signed an authorization.

    Raises on malformed typed data or an unrecoverable signature.
    """
    typed_data = build_typed_data(authorization, chain_id, verifying_contract)
    encoded = encode_typed_data(full_message=typed_data)
    return Account.recover_message(encoded, signature=signature)


def parse_signature(signature: str) -> Tuple[int, str, str]:
    """
    Split a 65-byte r || s || v signature into (v, r, s).

    r and s are returned as 0x-prefixed bytes32 hex strings.
    """
    sig_bytes = bytes.fromhex(signature.removeprefix("0x"))
    if len(sig_bytes) != 65:
        raise ValueError(f"Invalid signature length: {len(sig_bytes)}")

    r = sig_bytes[:32]
    s = sig_bytes[32:64]
    v = sig_bytes[64]

    # Some wallets return 0/1 instead of 27/28
    if v < 27:
        v += 27

    return v, Web3.to_hex(r), Web3.to_hex(s)


def nonce_to_bytes(nonce: str) -> bytes:
    """Convert a hex authorization nonce into its bytes32 form"""
    nonce_bytes = bytes.fromhex(nonce.removeprefix("0x"))
    if len(nonce_bytes) > 32:
        raise ValueError(f"Invalid nonce length: {len(nonce_bytes)}")
    return nonce_bytes.rjust(32, b"\x00")


def transfer_call_args(authorization: TransferAuthorization, signature: str) -> list:
    """Ordered, ABI-typed arguments for transferWithAuthorization"""
    v, r, s = parse_signature(signature)
    return [
        Web3.to_checksum_address(authorization.from_address),
        Web3.to_checksum_address(authorization.to),
        int(authorization.value),
        int(authorization.valid_after),
        int(authorization.valid_before),
        nonce_to_bytes(authorization.nonce),
        v,
        bytes.fromhex(r[2:]),
        bytes.fromhex(s[2:]),
    ]


def encode_transfer_call(authorization: TransferAuthorization, signature: str) -> str:
    """ABI-encoded call data for transferWithAuthorization"""
    selector = Web3.keccak(
        text="transferWithAuthorization(address,address,uint256,uint256,uint256,bytes32,uint8,bytes32,bytes32)"
    )[:4]
    encoded = encode(TRANSFER_WITH_AUTHORIZATION_TYPES, transfer_call_args(authorization, signature))
    return Web3.to_hex(selector + encoded)


def generate_nonce() -> str:
    """Random bytes32 nonce for a new authorization"""
    return "0x" + secrets.token_hex(32)


def sign_authorization(
    private_key: str,
    to: str,
    value: int,
    chain_id: int,
    asset: str,
    valid_after: int = 0,
    valid_before: Optional[int] = None,
    nonce: Optional[str] = None,
) -> ExactPayload:
    """
    Sign a TransferWithAuthorization as the payer.

    Args:
        private_key: Payer's private key
        to: Recipient (payTo) address
        value: Amount in token base units
        chain_id: Chain the token lives on
        asset: Token contract (EIP-712 verifying contract)
        valid_after: Unix time the authorization becomes valid
        valid_before: Unix time the authorization expires (default: now + 5 minutes)
        nonce: bytes32 hex nonce (default: random)

    Returns:
        ExactPayload ready to submit to the facilitator
    """
    account = Account.from_key(private_key)
    authorization = TransferAuthorization(
        from_address=account.address,
        to=Web3.to_checksum_address(to),
        value=str(value),
        valid_after=str(valid_after),
        valid_before=str(valid_before if valid_before is not None else int(time.time()) + 300),
        nonce=nonce or generate_nonce(),
    )

    typed_data = build_typed_data(authorization, chain_id, asset)
    encoded = encode_typed_data(full_message=typed_data)
    signed = account.sign_message(encoded)

    return ExactPayload(signature=Web3.to_hex(signed.signature), authorization=authorization)


TRANSFER_EVENT_TOPIC = Web3.to_hex(Web3.keccak(text="Transfer(address,address,uint256)"))


def address_topic(address: str) -> str:
    """Indexed address argument as a 32-byte log topic"""
    return "0x" + address.lower().removeprefix("0x").rjust(64, "0")
