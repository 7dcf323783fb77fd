from __future__ import annotations

import logging
from dataclasses import dataclass

from django.utils import timezone

from apps.orders.application.services.order_locks import OrderLocks
from apps.orders.application.services.order_store import OrderStore
from apps.orders.domain.errors import InvalidRequestError, InvalidStateError
from apps.orders.domain.state_machine import CANCELLABLE_STATUSES, OrderStatus
from apps.orders.models import Order
from apps.payments.application.facade import PaymentGatewayFacade
from apps.payments.domain.errors import UpstreamBusinessError, UpstreamTransportError
from apps.payments.domain.ports import GatewayOutcome

logger = logging.getLogger("topup.orders")


@dataclass(frozen=True)
class CancelOrderCommand:
    order_id: str


class CancelOrderUseCase:
    @staticmethod
    def execute(cmd: CancelOrderCommand) -> Order:
        order_id = (cmd.order_id or "").strip()
        if not order_id:
            raise InvalidRequestError("Order ID is required.", field="order_id")

        with OrderLocks.hold(order_id):
            order = OrderStore.get(order_id)
            if not order.atlantic_deposit_id:
                raise InvalidStateError("Deposit ID not found for this order.", status=order.status)
            if order.status not in CANCELLABLE_STATUSES:
                raise InvalidStateError(f"Order with status {order.status} cannot be cancelled.", status=order.status)

            previous_status = order.status
            gateway = PaymentGatewayFacade.active()
            result = gateway.cancel_deposit(deposit_id=order.atlantic_deposit_id)
            if result.outcome == GatewayOutcome.UNREACHABLE:
                raise UpstreamTransportError(result.message or "Deposit cancel request failed.")
            if result.outcome == GatewayOutcome.REJECTED or result.provider_status != "CANCEL":
                logger.warning(
                    "deposit_cancel_refused",
                    extra={"order_id": order_id, "outcome": result.outcome.value, "reason": result.message},
                )
                raise UpstreamBusinessError(result.message or "Failed to cancel deposit with the provider.")

            order.status = OrderStatus.PAYMENT_CANCELLED
            order.deposit_details = {**(order.deposit_details or {}), "status": "cancel"}
            order.updated_at = timezone.now()
            if not OrderStore.save_if_status(order, expected_status=previous_status):
                current = OrderStore.get(order_id)
                logger.warning(
                    "order_cancel_conflict",
                    extra={"order_id": order_id, "expected_status": previous_status, "stored_status": current.status},
                )
                if current.status != OrderStatus.PAYMENT_CANCELLED:
                    raise InvalidStateError(
                        f"Order with status {current.status} cannot be cancelled.", status=current.status
                    )
                return current

        logger.info("order_cancelled", extra={"order_id": order_id, "deposit_id": order.atlantic_deposit_id})
        return order
