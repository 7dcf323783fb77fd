from __future__ import annotations

from enum import StrEnum


class OrderStatus(StrEnum):
    PENDING_PAYMENT = "PENDING_PAYMENT"
    PAYMENT_PROCESSING = "PAYMENT_PROCESSING"
    PAYMENT_SUCCESSFUL_PROCESSING_ORDER = "PAYMENT_SUCCESSFUL_PROCESSING_ORDER"
    PAYMENT_EXPIRED = "PAYMENT_EXPIRED"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    PAYMENT_CANCEL = "PAYMENT_CANCEL"
    PAYMENT_CANCELLED = "PAYMENT_CANCELLED"
    ORDER_PROCESSING = "ORDER_PROCESSING"
    ORDER_COMPLETED = "ORDER_COMPLETED"
    ORDER_FAILED = "ORDER_FAILED"
    TRANSACTION_CREATION_FAILED = "TRANSACTION_CREATION_FAILED"
    TRANSACTION_CREATION_ERROR = "TRANSACTION_CREATION_ERROR"


class ReconcileAction(StrEnum):
    POLL_DEPOSIT = "poll_deposit"
    CREATE_TRANSACTION = "create_transaction"
    POLL_TRANSACTION = "poll_transaction"
    NONE = "none"


TERMINAL_STATUSES: frozenset[str] = frozenset(
    {
        OrderStatus.ORDER_COMPLETED,
        OrderStatus.ORDER_FAILED,
        OrderStatus.PAYMENT_EXPIRED,
        OrderStatus.PAYMENT_FAILED,
        OrderStatus.PAYMENT_CANCEL,
        OrderStatus.PAYMENT_CANCELLED,
    }
)

AWAITING_PAYMENT: frozenset[str] = frozenset({OrderStatus.PENDING_PAYMENT, OrderStatus.PAYMENT_PROCESSING})

CANCELLABLE_STATUSES = AWAITING_PAYMENT

DEPOSIT_FAILURES = ("EXPIRED", "FAILED", "CANCEL")
TRANSACTION_FAILURES = ("FAILED", "ERROR")


def normalize_provider_status(raw) -> str:
    return str(raw or "").strip().upper()


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def plan_reconcile(status: str, *, has_transaction_id: bool) -> ReconcileAction:
    """
    Decide the single provider interaction a reconcile call performs.

    Statuses the provider introduced (stored verbatim) keep being polled once a
    transaction exists, so they eventually resolve to a known terminal state.
    `TRANSACTION_CREATION_ERROR` is never retried automatically: the provider
    may already hold a transaction under the same reference id.
    """
    if is_terminal(status) or status == OrderStatus.TRANSACTION_CREATION_ERROR:
        return ReconcileAction.NONE
    if status in AWAITING_PAYMENT:
        return ReconcileAction.POLL_DEPOSIT
    if has_transaction_id:
        return ReconcileAction.POLL_TRANSACTION
    if status in (OrderStatus.PAYMENT_SUCCESSFUL_PROCESSING_ORDER, OrderStatus.TRANSACTION_CREATION_FAILED):
        return ReconcileAction.CREATE_TRANSACTION
    return ReconcileAction.NONE


def status_after_deposit(provider_status) -> str:
    value = normalize_provider_status(provider_status)
    if value == "SUCCESS":
        return OrderStatus.PAYMENT_SUCCESSFUL_PROCESSING_ORDER
    if value in DEPOSIT_FAILURES:
        return f"PAYMENT_{value}"
    if value == "PENDING":
        return OrderStatus.PENDING_PAYMENT
    return OrderStatus.PAYMENT_PROCESSING


def status_after_transaction_created(provider_status) -> str:
    value = normalize_provider_status(provider_status)
    if not value or value == "PENDING":
        return OrderStatus.ORDER_PROCESSING
    return value


def status_after_transaction(provider_status) -> str:
    value = normalize_provider_status(provider_status)
    if value == "SUCCESS":
        return OrderStatus.ORDER_COMPLETED
    if value in TRANSACTION_FAILURES:
        return OrderStatus.ORDER_FAILED
    if not value or value == "PENDING":
        return OrderStatus.ORDER_PROCESSING
    return value


def merge_details(current: dict | None, incoming: dict | None) -> dict:
    return {**(current or {}), **(incoming or {})}
