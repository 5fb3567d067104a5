"""
Pytest configuration and shared fixtures
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from eth_account import Account

from src.chains import get_chain_id, get_usdc_address
from src.payments.eip3009 import sign_authorization
from src.payments.models import PaymentRequirements
from src.payments.verifier import AuthorizationVerifier

NETWORK = "base-sepolia"
CHAIN_ID = get_chain_id(NETWORK)
USDC = get_usdc_address(NETWORK)
NOW = 1_700_000_000


class FakeClock:
    """Settable replacement for time.time"""

    def __init__(self, now: float = NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeSleep:
    """Records requested sleeps and advances a virtual clock instead of waiting"""

    def __init__(self):
        self.calls = []
        self.elapsed = 0.0

    async def __call__(self, seconds: float):
        self.calls.append(seconds)
        self.elapsed += seconds


def make_w3(
    balance: int = 10_000_000,
    nonce_used: bool = False,
    receipt=None,
    block_number: int = 1_000,
    logs=(),
) -> MagicMock:
    """
    AsyncWeb3 stand-in exposing the calls the payment core makes:
    token balanceOf/authorizationState reads, receipt and log lookups.
    """
    w3 = MagicMock()
    token = MagicMock()
    token.functions.balanceOf.return_value.call = AsyncMock(return_value=balance)
    token.functions.authorizationState.return_value.call = AsyncMock(return_value=nonce_used)
    w3.eth.contract.return_value = token
    w3.eth.get_transaction_receipt = AsyncMock(
        return_value=receipt or {"status": 1, "gasUsed": 65_000, "effectiveGasPrice": 1_000_000}
    )
    w3.eth.get_logs = AsyncMock(return_value=list(logs))

    async def _block_number():
        return block_number

    # AsyncEth.block_number is an awaitable property
    type(w3.eth).block_number = property(lambda self: _block_number())
    return w3


@pytest.fixture
def payer_account():
    """Create a test payer account"""
    return Account.from_key("0x1234567890abcdef1234567890abcdef1234567890abcdef1234567890abcdef")


@pytest.fixture
def recipient_account():
    """Create a test recipient account"""
    return Account.from_key("0xabcdef1234567890abcdef1234567890abcdef1234567890abcdef1234567890")


@pytest.fixture
def facilitator_account():
    return Account.create()


@pytest.fixture
def requirements(recipient_account) -> PaymentRequirements:
    """Requirements accepting up to 2 USDC on Base Sepolia"""
    return PaymentRequirements(
        scheme="exact",
        network=NETWORK,
        max_amount_required="2000000",
        resource="https://api.example.com/weather/today",
        pay_to=recipient_account.address,
        asset=USDC,
    )


@pytest.fixture
def sign(payer_account, recipient_account):
    """Sign an authorization as the payer; keyword overrides apply to the signed fields"""
    def _sign(**overrides):
        params = {
            "private_key": payer_account.key,
            "to": recipient_account.address,
            "value": 1_000_000,
            "chain_id": CHAIN_ID,
            "asset": USDC,
            "valid_after": NOW - 60,
            "valid_before": NOW + 3600,
        }
        params.update(overrides)
        return sign_authorization(**params)
    return _sign


@pytest.fixture
def payload(sign):
    return sign()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
def w3():
    return make_w3()


@pytest.fixture
def verifier(w3, clock) -> AuthorizationVerifier:
    return AuthorizationVerifier(NETWORK, w3, clock=clock)
