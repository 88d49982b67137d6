# ============================================================
# gateway.py: Webpay Plus payment gateway adapter
# ------------------------------------------------------------
# Synchronous request/response client over httpx:
#   create(buy_order, session_id, amount, return_url) -> token + url
#   commit(token)  -> status (AUTHORIZED | FAILED | ...) + buy_order
#   status(token)  -> status
# Transport errors and non-2xx answers raise PaymentError.
# ============================================================
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol

import httpx

from facility_services.booking.config import (
    WEBPAY_API_KEY,
    WEBPAY_BASE_URL,
    WEBPAY_COMMERCE_CODE,
    WEBPAY_TIMEOUT,
)
from facility_services.booking.errors import PaymentError

logger = logging.getLogger(__name__)

AUTHORIZED = "AUTHORIZED"
TRANSACTIONS_PATH = "/rswebpaytransaction/api/webpay/v1.2/transactions"


@dataclass
class TransactionCreated:
    token: str
    url: str


@dataclass
class TransactionResult:
    status: str
    buy_order: Optional[str] = None
    amount: Optional[int] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def authorized(self) -> bool:
        return self.status == AUTHORIZED


class PaymentGateway(Protocol):
    def create(self, buy_order: str, session_id: str, amount: int, return_url: str) -> TransactionCreated: ...

    def commit(self, token: str) -> TransactionResult: ...

    def status(self, token: str) -> TransactionResult: ...


class WebpayGateway:
    def __init__(
        self,
        base_url: str = WEBPAY_BASE_URL,
        commerce_code: str = WEBPAY_COMMERCE_CODE,
        api_key: str = WEBPAY_API_KEY,
        timeout: float = WEBPAY_TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self._client = httpx.Client(
            base_url=base_url,
            headers={
                "Tbk-Api-Key-Id": commerce_code,
                "Tbk-Api-Key-Secret": api_key,
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, path: str, payload: Optional[dict] = None) -> Dict[str, Any]:
        try:
            r = self._client.request(method, path, json=payload)
        except httpx.HTTPError as e:
            logger.error("[gateway] %s %s failed: %s", method, path, e)
            raise PaymentError(f"payment provider unreachable: {e}") from e

        if r.is_error:
            try:
                message = r.json().get("error_message", r.text)
            except ValueError:
                message = r.text
            logger.warning("[gateway] %s %s -> %s %s", method, path, r.status_code, message)
            raise PaymentError(
                f"payment provider rejected the request: {message}",
                details={"provider_status": r.status_code},
            )
        return r.json()

    def create(self, buy_order: str, session_id: str, amount: int, return_url: str) -> TransactionCreated:
        body = self._request(
            "POST",
            TRANSACTIONS_PATH,
            {"buy_order": buy_order, "session_id": session_id, "amount": amount, "return_url": return_url},
        )
        logger.info("[gateway] created transaction buy_order=%s", buy_order)
        return TransactionCreated(token=body["token"], url=body["url"])

    def commit(self, token: str) -> TransactionResult:
        body = self._request("PUT", f"{TRANSACTIONS_PATH}/{token}")
        logger.info("[gateway] commit buy_order=%s status=%s", body.get("buy_order"), body.get("status"))
        return _result(body)

    def status(self, token: str) -> TransactionResult:
        return _result(self._request("GET", f"{TRANSACTIONS_PATH}/{token}"))


def _result(body: Dict[str, Any]) -> TransactionResult:
    return TransactionResult(
        status=body.get("status", ""),
        buy_order=body.get("buy_order"),
        amount=body.get("amount"),
        raw=body,
    )
