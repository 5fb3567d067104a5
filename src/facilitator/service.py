"""
x402 request dispatch
Checks protocol version, network and scheme, then routes to the exact scheme
"""

from typing import Optional

import structlog

from src.chains import to_caip2
from src.context import FacilitatorContext
from src.payments.models import (
    SettleRequest,
    SettleResponse,
    SupportedKind,
    SupportedResponse,
    VerifyRequest,
    VerifyResponse,
)

logger = structlog.get_logger()

X402_VERSION = 1
SUPPORTED_SCHEMES = ("exact",)


class X402Service:
    """Facilitator operations over the injected context"""

    def __init__(self, context: FacilitatorContext):
        self.context = context

    def supported(self) -> SupportedResponse:
        return SupportedResponse(kinds=[
            SupportedKind(x402_version=X402_VERSION, scheme=scheme, network=network)
            for network in self.context.networks
            for scheme in SUPPORTED_SCHEMES
        ])

    async def verify(self, request: VerifyRequest) -> VerifyResponse:
        reason = self._reject_reason(request)
        if reason:
            return VerifyResponse(is_valid=False, invalid_reason=reason, payer=None)

        payment = request.payment_payload
        verifier = self.context.verifiers[payment.network]
        return await verifier.verify(payment.payload, request.payment_requirements)

    async def settle(self, request: SettleRequest) -> SettleResponse:
        payment = request.payment_payload
        reason = self._reject_reason(request)
        if reason:
            return SettleResponse(success=False, error=reason, network=to_caip2(payment.network))

        executor = self.context.executors[payment.network]
        return await executor.settle(payment.payload, request.payment_requirements)

    def _reject_reason(self, request: VerifyRequest) -> Optional[str]:
        payment = request.payment_payload
        requirements = request.payment_requirements

        if request.x402_version != X402_VERSION or payment.x402_version != X402_VERSION:
            return "Unsupported x402 version"

        if payment.network not in self.context.verifiers:
            return f"Unsupported network: {payment.network}"

        if payment.network != requirements.network:
            return "Network mismatch between payload and requirements"

        if payment.scheme != requirements.scheme:
            return "Scheme mismatch"

        if payment.scheme not in SUPPORTED_SCHEMES:
            return f"Unsupported scheme: {payment.scheme}"

        return None
