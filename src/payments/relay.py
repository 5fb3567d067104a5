"""
Gasless relay client (Thirdweb Engine)
Submits transferWithAuthorization from a sponsor wallet and polls for the result
"""

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Union

import httpx
import structlog

from src.config import ConfigurationError
from src.payments.eip3009 import (
    TRANSFER_WITH_AUTHORIZATION_METHOD,
    encode_transfer_call,
    parse_signature,
)
from src.payments.models import SettlementResult, TransferAuthorization

logger = structlog.get_logger()

FAILED_STATUSES = {"failed", "errored", "error"}
SUCCESS_STATUSES = {"confirmed", "mined", "success"}


# ===== SUBMISSION RESPONSE =====

@dataclass(frozen=True)
class Immediate:
    """Relay returned an on-chain transaction hash"""
    transaction_hash: str


@dataclass(frozen=True)
class Queued:
    """Relay queued the call; poll with this identifier"""
    transaction_id: str


@dataclass(frozen=True)
class Unrecognized:
    """Response matched none of the known shapes"""
    raw: Any


RelayResponse = Union[Immediate, Queued, Unrecognized]


def normalize_relay_response(data: Any) -> RelayResponse:
    """
    Reduce a contract-write response to one of the known variants.

    Shapes are probed in order:
    1. transactions[].id
    2. root transactionHash
    3. root queueId
    4. result.transactionHash / result.transactionIds[] / result.queueId
    """
    if not isinstance(data, dict):
        return Unrecognized(data)

    transactions = data.get("transactions")
    if isinstance(transactions, list) and transactions:
        first = transactions[0]
        if isinstance(first, dict) and first.get("id"):
            return Queued(str(first["id"]))

    if data.get("transactionHash"):
        return Immediate(str(data["transactionHash"]))

    if data.get("queueId"):
        return Queued(str(data["queueId"]))

    result = data.get("result")
    if isinstance(result, dict):
        if result.get("transactionHash"):
            return Immediate(str(result["transactionHash"]))
        transaction_ids = result.get("transactionIds")
        if isinstance(transaction_ids, list) and transaction_ids:
            return Queued(str(transaction_ids[0]))
        if result.get("queueId"):
            return Queued(str(result["queueId"]))

    return Unrecognized(data)


# ===== STATUS RESPONSE =====

@dataclass(frozen=True)
class Confirmed:
    transaction_hash: str


@dataclass(frozen=True)
class Failed:
    error: str


@dataclass(frozen=True)
class Pending:
    status: Optional[str] = None


PollStatus = Union[Confirmed, Failed, Pending]


def parse_status_response(data: Any) -> PollStatus:
    """Interpret one transaction-status response"""
    record = _unwrap_status_record(data)
    if record is None:
        return Pending()

    if record.get("transactionHash"):
        return Confirmed(str(record["transactionHash"]))

    execution_result = record.get("executionResult")
    if not isinstance(execution_result, dict):
        execution_result = {}

    status = str(record.get("status") or execution_result.get("status") or "").lower()

    if status in FAILED_STATUSES:
        return Failed(extract_error(record))

    if status in SUCCESS_STATUSES:
        alternate = record.get("hash") or record.get("onChainTxHash")
        if alternate:
            return Confirmed(str(alternate))

    return Pending(status or None)


def extract_error(record: Dict[str, Any]) -> str:
    """
    Best-effort human-readable error from a failed transaction record.

    Checked in order: inner bundler/billing error body, execution-result
    error code, top-level error fields, revert reason.
    """
    execution_result = record.get("executionResult")
    if not isinstance(execution_result, dict):
        execution_result = {}
    error = execution_result.get("error")

    candidates = []
    if isinstance(error, dict):
        candidates.append(_inner_error_body(error.get("innerError")))
        code = error.get("errorCode")
        message = error.get("message")
        if code and message:
            candidates.append(f"{code}: {message}")
        else:
            candidates.append(code or message)
    else:
        candidates.append(error)

    candidates.append(record.get("errorMessage"))
    candidates.append(_message_of(record.get("error")))
    candidates.append(record.get("revertReason") or execution_result.get("revertReason"))

    for candidate in candidates:
        if isinstance(candidate, str) and candidate.strip():
            return candidate.strip()
    return "Unknown error"


def _unwrap_status_record(data: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(data, dict):
        return None
    record = data.get("result", data)
    if isinstance(record, dict):
        transactions = record.get("transactions")
        if isinstance(transactions, list) and transactions and isinstance(transactions[0], dict):
            return transactions[0]
        return record
    return None


def _inner_error_body(inner: Any) -> Optional[str]:
    if not isinstance(inner, dict):
        return _message_of(inner)
    body = inner.get("body")
    if isinstance(body, str):
        # Bundler/billing services often return a JSON document as the body
        try:
            body = json.loads(body)
        except ValueError:
            return body
    return _message_of(body) or _message_of(inner.get("message"))


def _message_of(value: Any) -> Optional[str]:
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        for key in ("message", "error", "reason"):
            nested = value.get(key)
            if isinstance(nested, str) and nested:
                return nested
            if isinstance(nested, dict):
                return _message_of(nested)
    return None


# ===== CLIENT =====

class RelayClient:
    """
    HTTP client for the relay's contract-write and transaction-status endpoints.

    The API key is read once at construction; a missing key is a
    configuration error.
    """

    DEFAULT_BASE_URL = "https://engine.thirdweb.com"

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        max_poll_attempts: int = 30,
        poll_interval: float = 2.0,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if not api_key:
            raise ConfigurationError("THIRDWEB_SECRET_KEY not configured")

        self._api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.max_poll_attempts = max_poll_attempts
        self.poll_interval = poll_interval
        self.client = http_client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)
        self._sleep = sleep

    async def close(self):
        await self.client.aclose()

    def _headers(self) -> Dict[str, str]:
        return {"x-secret-key": self._api_key, "Content-Type": "application/json"}

    async def execute_transfer_with_authorization(
        self,
        chain_id: int,
        token_address: str,
        sponsor_address: str,
        authorization: TransferAuthorization,
        signature: str,
    ) -> SettlementResult:
        """
        Submit transferWithAuthorization from the sponsor wallet.

        Never raises; every failure is returned as SettlementResult(success=False).
        """
        try:
            call_data = encode_transfer_call(authorization, signature)
            v, r, s = parse_signature(signature)

            logger.info(
                "relay_transfer_submitting",
                chain_id=chain_id,
                token_address=token_address,
                sponsor_address=sponsor_address,
                from_address=authorization.from_address,
                to=authorization.to,
                value=authorization.value,
                selector=call_data[:10],
            )

            body = {
                # EOA execution avoids the account-abstraction path some chains lack
                "executionOptions": {
                    "type": "EOA",
                    "from": sponsor_address,
                    "chainId": chain_id,
                },
                "params": [
                    {
                        "contractAddress": token_address,
                        "method": TRANSFER_WITH_AUTHORIZATION_METHOD,
                        "params": [
                            authorization.from_address,
                            authorization.to,
                            str(int(authorization.value)),
                            str(int(authorization.valid_after)),
                            str(int(authorization.valid_before)),
                            authorization.nonce,
                            str(v),
                            r,
                            s,
                        ],
                    }
                ],
            }

            response = await self.client.post(
                f"{self.base_url}/v1/write/contract",
                json=body,
                headers=self._headers(),
            )

            if not response.is_success:
                logger.error(
                    "relay_submit_http_error",
                    status_code=response.status_code,
                    error=response.text,
                )
                return SettlementResult(
                    success=False,
                    error=f"Thirdweb API error: {response.status_code} - {response.text}",
                )

            data = response.json()
            outcome = normalize_relay_response(data)
            logger.info("relay_transaction_submitted", outcome=type(outcome).__name__)

            if isinstance(outcome, Immediate):
                return SettlementResult(success=True, transaction_hash=outcome.transaction_hash)

            if isinstance(outcome, Queued):
                return await self.poll_transaction(outcome.transaction_id)

            return SettlementResult(
                success=False,
                error=f"Unexpected response from Thirdweb API: {json.dumps(outcome.raw, default=str)}",
            )

        except Exception as e:
            logger.error("relay_transfer_failed", error=str(e))
            return SettlementResult(success=False, error=str(e) or "Transaction failed")

    async def poll_transaction(self, transaction_id: str) -> SettlementResult:
        """
        Poll the status endpoint until a hash, a terminal failure, or timeout.

        Sleeps poll_interval between attempts; HTTP errors are logged and retried.
        """
        for attempt in range(1, self.max_poll_attempts + 1):
            try:
                response = await self.client.get(
                    f"{self.base_url}/v1/transactions/{transaction_id}",
                    headers={"x-secret-key": self._api_key},
                )

                if response.is_success:
                    status = parse_status_response(response.json())

                    if isinstance(status, Confirmed):
                        logger.info(
                            "relay_transaction_confirmed",
                            transaction_id=transaction_id,
                            tx_hash=status.transaction_hash,
                            attempts=attempt,
                        )
                        return SettlementResult(success=True, transaction_hash=status.transaction_hash)

                    if isinstance(status, Failed):
                        logger.error(
                            "relay_transaction_failed",
                            transaction_id=transaction_id,
                            error=status.error,
                        )
                        return SettlementResult(success=False, error=status.error)
                else:
                    logger.warning(
                        "relay_poll_http_error",
                        transaction_id=transaction_id,
                        attempt=attempt,
                        status_code=response.status_code,
                    )

            except (httpx.HTTPError, ValueError) as e:
                logger.warning(
                    "relay_poll_error",
                    transaction_id=transaction_id,
                    attempt=attempt,
                    error=str(e),
                )

            if attempt < self.max_poll_attempts:
                await self._sleep(self.poll_interval)

        logger.error("relay_polling_timeout", transaction_id=transaction_id)
        return SettlementResult(success=False, error="Transaction polling timeout")
