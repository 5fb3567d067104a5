from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError
import structlog

from src.facilitator.dependencies import get_x402_service, limiter
from src.facilitator.service import X402Service
from src.payments.models import SettleRequest, SupportedResponse, VerifyRequest

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v2/x402", tags=["x402"])


@router.get("/supported", response_model=SupportedResponse)
async def supported(service: X402Service = Depends(get_x402_service)):
    """Scheme/network pairs this facilitator can verify and settle"""
    return service.supported()


@router.post("/verify")
@limiter.limit("30/minute")
async def verify_payment(request: Request, service: X402Service = Depends(get_x402_service)):
    """
    Verify an exact-scheme payment payload against its requirements.
    Malformed bodies are rejected with 400.
    """
    try:
        body = VerifyRequest.model_validate(await request.json())
    except (ValidationError, ValueError) as e:
        logger.warning("verify_request_invalid", error=str(e))
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"isValid": False, "invalidReason": "Invalid request body", "payer": None},
        )

    result = await service.verify(body)
    return JSONResponse(content=result.model_dump(by_alias=True))


@router.post("/settle")
@limiter.limit("30/minute")
async def settle_payment(request: Request, service: X402Service = Depends(get_x402_service)):
    """
    Verify and settle an exact-scheme payment on-chain.
    Failed settlements are returned with 400.
    """
    try:
        body = SettleRequest.model_validate(await request.json())
    except (ValidationError, ValueError) as e:
        logger.warning("settle_request_invalid", error=str(e))
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "error": "Invalid request body", "payer": None, "transaction": None, "network": None},
        )

    result = await service.settle(body)
    return JSONResponse(
        status_code=status.HTTP_200_OK if result.success else status.HTTP_400_BAD_REQUEST,
        content=result.model_dump(by_alias=True),
    )
