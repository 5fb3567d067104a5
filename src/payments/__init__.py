"""
x402 Payment Module
Exact-scheme (EIP-3009) verification and settlement
"""

from src.payments.models import (
    PaymentRequirements,
    TransferAuthorization,
    ExactPayload,
    PaymentPayload,
    VerifyRequest,
    VerifyResponse,
    SettleResponse,
    SettlementResult,
)
from src.payments.eip3009 import sign_authorization, parse_signature
from src.payments.verifier import AuthorizationVerifier
from src.payments.relay import RelayClient, normalize_relay_response
from src.payments.settlement import (
    DirectSettlementExecutor,
    RelaySettlementExecutor,
    InFlightSettlements,
)

__all__ = [
    "PaymentRequirements",
    "TransferAuthorization",
    "ExactPayload",
    "PaymentPayload",
    "VerifyRequest",
    "VerifyResponse",
    "SettleResponse",
    "SettlementResult",
    "sign_authorization",
    "parse_signature",
    "AuthorizationVerifier",
    "RelayClient",
    "normalize_relay_response",
    "DirectSettlementExecutor",
    "RelaySettlementExecutor",
    "InFlightSettlements",
]
