"""
Database integration layer for the x402 facilitator
"""

from src.database.client import DatabaseClient
from src.database.sponsors import SponsorWalletResolver

__all__ = ["DatabaseClient", "SponsorWalletResolver"]
