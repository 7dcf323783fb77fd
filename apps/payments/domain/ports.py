from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Protocol

from apps.payments.domain.errors import UpstreamBusinessError, UpstreamTransportError


class GatewayOutcome(StrEnum):
    OK = "ok"
    REJECTED = "rejected"
    UNREACHABLE = "unreachable"


@dataclass(frozen=True)
class GatewayResult:
    """
    Outcome of a single provider call.

    - OK: provider answered `status=true` with a data payload.
    - REJECTED: provider answered with an explicit business failure.
    - UNREACHABLE: transport failure (timeout, connection error, non-2xx or
      body that is not JSON). `message` carries the provider/transport text.
    """

    outcome: GatewayOutcome
    data: Any = None
    message: str = ""
    raw: dict = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def ok(cls, data: Any, *, message: str = "", raw: dict | None = None) -> "GatewayResult":
        return cls(outcome=GatewayOutcome.OK, data=data, message=message, raw=raw or {})

    @classmethod
    def rejected(cls, message: str, *, raw: dict | None = None) -> "GatewayResult":
        return cls(outcome=GatewayOutcome.REJECTED, message=message, raw=raw or {})

    @classmethod
    def unreachable(cls, message: str) -> "GatewayResult":
        return cls(outcome=GatewayOutcome.UNREACHABLE, message=message)

    @property
    def is_ok(self) -> bool:
        return self.outcome == GatewayOutcome.OK

    @property
    def payload(self) -> dict:
        return self.data if isinstance(self.data, dict) else {}

    @property
    def provider_status(self) -> str:
        return str(self.payload.get("status") or "").strip().upper()

    def raise_for_outcome(self, *, default_message: str = "Provider request failed.") -> Any:
        if self.outcome == GatewayOutcome.UNREACHABLE:
            raise UpstreamTransportError(self.message or default_message)
        if self.outcome == GatewayOutcome.REJECTED:
            raise UpstreamBusinessError(self.message or default_message)
        return self.data


class TopupProviderPort(Protocol):
    code: str
    name: str

    def price_list(self, *, product_type: str = "prabayar") -> GatewayResult:
        ...

    def payment_methods(self) -> GatewayResult:
        ...

    def open_deposit(self, *, reff_id: str, amount: int, payment_type: str, method: str) -> GatewayResult:
        ...

    def deposit_status(self, *, deposit_id: str) -> GatewayResult:
        ...

    def cancel_deposit(self, *, deposit_id: str) -> GatewayResult:
        ...

    def create_transaction(self, *, product_code: str, reff_id: str, target: str) -> GatewayResult:
        ...

    def transaction_status(self, *, transaction_id: str, product_type: str = "prabayar") -> GatewayResult:
        ...
