from __future__ import annotations

import logging
from dataclasses import dataclass

from django.utils import timezone

from apps.orders.application.services.order_locks import OrderLocks
from apps.orders.application.services.order_store import OrderStore
from apps.orders.domain.errors import InvalidRequestError
from apps.orders.domain.state_machine import (
    OrderStatus,
    ReconcileAction,
    merge_details,
    plan_reconcile,
    status_after_deposit,
    status_after_transaction,
    status_after_transaction_created,
)
from apps.orders.models import Order
from apps.payments.application.facade import PaymentGatewayFacade
from apps.payments.domain.errors import UpstreamTransportError
from apps.payments.domain.ports import GatewayOutcome, GatewayResult, TopupProviderPort

logger = logging.getLogger("topup.orders")


@dataclass(frozen=True)
class ReconcileOrderCommand:
    order_id: str


class ReconcileOrderUseCase:
    """
    Poll the provider once for an order and advance its status.

    The load -> provider -> save sequence runs under a per-order lock, so
    concurrent polls of one order are applied one after another. No database
    transaction is held while the provider is called; the save is a
    compare-and-swap on the status that was loaded, and a lost race returns
    the row as the other writer left it.
    A transport failure while fetching a status propagates and nothing is saved;
    a transport failure while creating the transaction is recorded on the order.
    """

    @staticmethod
    def execute(cmd: ReconcileOrderCommand) -> Order:
        order_id = (cmd.order_id or "").strip()
        if not order_id:
            raise InvalidRequestError("Order ID is required.", field="order_id")

        with OrderLocks.hold(order_id):
            order = OrderStore.get(order_id)
            action = plan_reconcile(order.status, has_transaction_id=order.has_transaction)
            if action == ReconcileAction.NONE:
                return order

            previous_status = order.status
            gateway = PaymentGatewayFacade.active()
            if action == ReconcileAction.POLL_DEPOSIT:
                _poll_deposit(gateway, order)
            elif action == ReconcileAction.CREATE_TRANSACTION:
                _create_transaction(gateway, order)
            else:
                _poll_transaction(gateway, order)

            if not OrderStore.save_if_status(order, expected_status=previous_status):
                logger.warning(
                    "order_reconcile_conflict",
                    extra={"order_id": order_id, "expected_status": previous_status, "attempted_status": order.status},
                )
                return OrderStore.get(order_id)

        logger.info(
            "order_reconciled",
            extra={
                "order_id": order.order_id,
                "action": action.value,
                "from_status": previous_status,
                "to_status": order.status,
            },
        )
        return order


def _poll_deposit(gateway: TopupProviderPort, order: Order) -> None:
    result = gateway.deposit_status(deposit_id=order.atlantic_deposit_id)
    if result.outcome == GatewayOutcome.UNREACHABLE:
        raise UpstreamTransportError(result.message or "Deposit status request failed.")

    order.updated_at = timezone.now()
    if result.outcome == GatewayOutcome.REJECTED:
        logger.warning("deposit_status_rejected", extra={"order_id": order.order_id, "reason": result.message})
        return

    order.deposit_details = merge_details(order.deposit_details, result.payload)
    order.status = status_after_deposit(result.provider_status)
    if order.status == OrderStatus.PAYMENT_SUCCESSFUL_PROCESSING_ORDER:
        _create_transaction(gateway, order)


def _create_transaction(gateway: TopupProviderPort, order: Order) -> None:
    reff_id = f"TRX-{order.order_id}"
    order.transaction_reff_id = reff_id
    order.updated_at = timezone.now()

    try:
        result = gateway.create_transaction(product_code=order.product_code, reff_id=reff_id, target=order.target_id)
    except Exception as exc:
        logger.exception("transaction_create_crashed", extra={"order_id": order.order_id})
        result = GatewayResult.unreachable(str(exc))

    if result.outcome == GatewayOutcome.OK:
        data = result.payload
        transaction_id = str(data.get("id") or "")
        if not transaction_id:
            order.status = OrderStatus.TRANSACTION_CREATION_FAILED
            order.transaction_details = {"error": "Provider did not return a transaction id."}
            return
        if not order.atlantic_transaction_id:
            order.atlantic_transaction_id = transaction_id
        order.transaction_details = dict(data)
        order.status = status_after_transaction_created(data.get("status"))
    elif result.outcome == GatewayOutcome.REJECTED:
        logger.warning("transaction_create_rejected", extra={"order_id": order.order_id, "reason": result.message})
        order.status = OrderStatus.TRANSACTION_CREATION_FAILED
        order.transaction_details = {"error": result.message or "Failed to create transaction."}
    else:
        logger.error("transaction_create_unreachable", extra={"order_id": order.order_id, "reason": result.message})
        order.status = OrderStatus.TRANSACTION_CREATION_ERROR
        order.transaction_details = {"error": f"Internal error: {result.message}"}


def _poll_transaction(gateway: TopupProviderPort, order: Order) -> None:
    result = gateway.transaction_status(transaction_id=order.atlantic_transaction_id)
    if result.outcome == GatewayOutcome.UNREACHABLE:
        raise UpstreamTransportError(result.message or "Transaction status request failed.")

    order.updated_at = timezone.now()
    if result.outcome == GatewayOutcome.REJECTED:
        logger.warning("transaction_status_rejected", extra={"order_id": order.order_id, "reason": result.message})
        return

    order.transaction_details = merge_details(order.transaction_details, result.payload)
    order.status = status_after_transaction(result.provider_status)
