"""
Integration tests for the facilitator HTTP API
"""

import pytest
from fastapi.testclient import TestClient

from src.config import FacilitatorConfig
from src.context import FacilitatorContext
from src.database.sponsors import SponsorWalletResolver
from src.facilitator.dependencies import limiter
from src.facilitator.server import create_app
from src.payments.settlement import RelaySettlementExecutor

from tests.conftest import NETWORK
from tests.factories import FakeDatabase, SponsorWalletFactory
from tests.test_settlement import TX_HASH, make_relay


@pytest.fixture
def context(verifier, w3, payer_account) -> FacilitatorContext:
    db = FakeDatabase(wallets=[SponsorWalletFactory(user_wallet_address=payer_account.address.lower())])
    executor = RelaySettlementExecutor(verifier, w3, make_relay(), SponsorWalletResolver(db), db=db)
    return FacilitatorContext(
        config=FacilitatorConfig(networks=[NETWORK], facilitator_url="https://facilitator.test"),
        verifiers={NETWORK: verifier},
        executors={NETWORK: executor},
        db=db,
    )


@pytest.fixture
def client(context) -> TestClient:
    """Create FastAPI test client over an injected context"""
    limiter.reset()
    return TestClient(create_app(context=context))


@pytest.fixture
def body(payload, requirements):
    def _body(**overrides):
        data = {
            "x402Version": 1,
            "paymentPayload": {
                "x402Version": 1,
                "scheme": "exact",
                "network": NETWORK,
                "payload": payload.model_dump(by_alias=True),
            },
            "paymentRequirements": requirements.model_dump(by_alias=True),
        }
        for key, value in overrides.items():
            section, _, field = key.partition("__")
            if field:
                data[section][field] = value
            else:
                data[section] = value
        return data
    return _body


class TestGeneralEndpoints:

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["status"] == "operational"

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["networks"] == [NETWORK]

    def test_supported(self, client):
        response = client.get("/api/v2/x402/supported")

        assert response.status_code == 200
        assert response.json() == {"kinds": [{"x402Version": 1, "scheme": "exact", "network": NETWORK}]}

    def test_discovery_document(self, client):
        response = client.get("/.well-known/x402-payment.json")

        assert response.status_code == 200
        data = response.json()
        assert data["facilitator"] == "https://facilitator.test"
        assert data["endpoints"]["settle"] == "https://facilitator.test/api/v2/x402/settle"


class TestVerifyEndpoint:

    def test_valid_payment(self, client, body, payer_account):
        response = client.post("/api/v2/x402/verify", json=body())

        assert response.status_code == 200
        assert response.json() == {"isValid": True, "invalidReason": None, "payer": payer_account.address}

    def test_invalid_payment_is_200(self, client, body):
        response = client.post(
            "/api/v2/x402/verify",
            json=body(paymentRequirements__payTo="0x000000000000000000000000000000000000dEaD"),
        )

        assert response.status_code == 200
        assert response.json()["invalidReason"] == "Authorization fields invalid"

    def test_malformed_body(self, client):
        response = client.post("/api/v2/x402/verify", json={"paymentPayload": {}})

        assert response.status_code == 400
        assert response.json()["isValid"] is False

    @pytest.mark.parametrize("overrides,reason", [
        ({"x402Version": 2}, "Unsupported x402 version"),
        ({"paymentPayload__network": "solana"}, "Unsupported network: solana"),
        ({"paymentRequirements__network": "base"}, "Network mismatch between payload and requirements"),
        ({"paymentRequirements__scheme": "upto"}, "Scheme mismatch"),
        ({"paymentPayload__scheme": "upto", "paymentRequirements__scheme": "upto"}, "Unsupported scheme: upto"),
    ])
    def test_dispatch_rejections(self, client, body, overrides, reason):
        response = client.post("/api/v2/x402/verify", json=body(**overrides))

        assert response.json() == {"isValid": False, "invalidReason": reason, "payer": None}


class TestSettleEndpoint:

    def test_successful_settlement(self, client, body, payer_account):
        response = client.post("/api/v2/x402/settle", json=body())

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "error": None,
            "payer": payer_account.address,
            "transaction": TX_HASH,
            "network": "eip155:84532",
        }

    def test_failed_settlement_is_400(self, client, body):
        response = client.post("/api/v2/x402/settle", json=body(paymentRequirements__maxAmountRequired="1"))

        assert response.status_code == 400
        data = response.json()
        assert data["success"] is False
        assert data["error"] == "Authorization fields invalid"

    def test_unsupported_network(self, client, body):
        response = client.post("/api/v2/x402/settle", json=body(paymentPayload__network="solana"))

        assert response.status_code == 400
        assert response.json()["error"] == "Unsupported network: solana"

    def test_rate_limited(self, client, body):
        for _ in range(30):
            client.post("/api/v2/x402/settle", json={})

        response = client.post("/api/v2/x402/settle", json={})

        assert response.status_code == 429
