from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request

from src.facilitator.dependencies import get_x402_service
from src.facilitator.service import X402Service
from src.payments.models import X402PaymentConfig

router = APIRouter(tags=["General"])


@router.get("/", tags=["Health"])
async def root():
    """Root endpoint with basic info"""
    return {
        "name": "x402 Facilitator",
        "version": "0.1.0",
        "status": "operational",
        "x402_payment": "/.well-known/x402-payment.json"
    }


@router.get("/health", tags=["Health"])
async def health_check(request: Request):
    context = request.app.state.context
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "networks": context.networks,
        "strategy": context.config.settlement_strategy,
    }


@router.get("/.well-known/x402-payment.json", response_model=X402PaymentConfig, tags=["Payments"])
async def x402_payment_config(request: Request, service: X402Service = Depends(get_x402_service)):
    """
    Facilitator discovery document
    Lists supported scheme/network pairs and endpoint URLs
    """
    base_url = request.app.state.context.config.facilitator_url.rstrip("/")
    return X402PaymentConfig(
        version=1,
        facilitator=base_url,
        supported_schemes=service.supported().kinds,
        endpoints={
            "verify": f"{base_url}/api/v2/x402/verify",
            "settle": f"{base_url}/api/v2/x402/settle",
            "supported": f"{base_url}/api/v2/x402/supported",
        },
    )
