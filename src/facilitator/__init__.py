"""
x402 facilitator HTTP surface
"""

from src.facilitator.server import create_app
from src.facilitator.service import X402Service

__all__ = ["create_app", "X402Service"]
