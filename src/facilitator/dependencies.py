from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from src.facilitator.service import X402Service


def get_client_key(request: Request) -> str:
    """Get client identifier for rate limiting - uses IP address"""
    return get_remote_address(request)


def get_x402_service(request: Request) -> X402Service:
    """X402Service bound to the application's context"""
    return X402Service(request.app.state.context)


limiter = Limiter(key_func=get_client_key)
