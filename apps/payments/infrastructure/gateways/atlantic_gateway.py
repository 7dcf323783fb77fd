from __future__ import annotations

import logging
from typing import Any

import requests
from django.conf import settings

from apps.payments.domain.ports import GatewayResult

logger = logging.getLogger("topup.payments")


class AtlanticGateway:
    """Form-encoded H2H client for the Atlantic provider API."""

    code = "atlantic"
    name = "Atlantic H2H"

    def __init__(
        self,
        *,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ):
        self._base_url = base_url
        self._api_key = api_key
        self._timeout = timeout
        self._session = session or requests.Session()

    @property
    def base_url(self) -> str:
        return (self._base_url or settings.ATLANTIC_BASE_URL).rstrip("/")

    @property
    def api_key(self) -> str:
        return self._api_key if self._api_key is not None else settings.ATLANTIC_API_KEY

    @property
    def timeout(self) -> float:
        return self._timeout if self._timeout is not None else settings.ATLANTIC_TIMEOUT_SECONDS

    def price_list(self, *, product_type: str = "prabayar") -> GatewayResult:
        return self._post("/layanan/price_list", {"type": product_type})

    def payment_methods(self) -> GatewayResult:
        return self._post("/deposit/metode", {})

    def open_deposit(self, *, reff_id: str, amount: int, payment_type: str, method: str) -> GatewayResult:
        return self._post(
            "/deposit/create",
            {"reff_id": reff_id, "nominal": amount, "type": payment_type, "metode": method},
        )

    def deposit_status(self, *, deposit_id: str) -> GatewayResult:
        return self._post("/deposit/status", {"id": deposit_id})

    def cancel_deposit(self, *, deposit_id: str) -> GatewayResult:
        return self._post("/deposit/cancel", {"id": deposit_id})

    def create_transaction(self, *, product_code: str, reff_id: str, target: str) -> GatewayResult:
        return self._post("/transaksi/create", {"code": product_code, "reff_id": reff_id, "target": target})

    def transaction_status(self, *, transaction_id: str, product_type: str = "prabayar") -> GatewayResult:
        return self._post("/transaksi/status", {"id": transaction_id, "type": product_type})

    def _post(self, endpoint: str, params: dict[str, Any]) -> GatewayResult:
        url = f"{self.base_url}{endpoint}"
        body = {"api_key": self.api_key, **params}
        headers = {
            "Content-Type": "application/x-www-form-urlencoded",
            "User-Agent": settings.ATLANTIC_USER_AGENT,
            "Accept-Language": "en-US,en;q=0.9",
            "Referer": url,
        }

        try:
            response = self._session.post(url, data=body, headers=headers, timeout=self.timeout)
        except requests.exceptions.Timeout:
            logger.warning("provider_timeout", extra={"endpoint": endpoint})
            return GatewayResult.unreachable(f"Provider request to {endpoint} timed out.")
        except requests.exceptions.RequestException as exc:
            logger.warning("provider_unreachable", extra={"endpoint": endpoint, "error": type(exc).__name__})
            return GatewayResult.unreachable(f"Connection error on {endpoint}: {type(exc).__name__}")

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if not response.ok:
            message = payload.get("message") if isinstance(payload, dict) else None
            logger.warning(
                "provider_http_error",
                extra={"endpoint": endpoint, "status_code": response.status_code, "has_body": payload is not None},
            )
            if message:
                return GatewayResult.rejected(str(message), raw=payload)
            return GatewayResult.unreachable(
                f"API request failed with status {response.status_code}: {response.text[:200]}"
            )

        if not isinstance(payload, dict):
            return GatewayResult.unreachable(f"Provider returned a non-JSON body for {endpoint}.")

        return _result_from_payload(payload)


def _result_from_payload(payload: dict) -> GatewayResult:
    data = payload.get("data")
    message = str(payload.get("message") or "")
    if payload.get("status") and data:
        return GatewayResult.ok(data, message=message, raw=payload)
    return GatewayResult.rejected(message, raw=payload)
