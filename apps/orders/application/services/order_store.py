from __future__ import annotations

from django.db import DatabaseError

from apps.orders.domain.errors import OrderNotFoundError, PersistenceError
from apps.orders.models import Order

RECONCILE_FIELDS = [
    "status",
    "atlantic_deposit_id",
    "deposit_details",
    "atlantic_transaction_id",
    "transaction_reff_id",
    "transaction_details",
    "updated_at",
]


class OrderStore:
    @staticmethod
    def create(**fields) -> Order:
        try:
            return Order.objects.create(**fields)
        except DatabaseError as exc:
            raise PersistenceError(f"Failed to store order {fields.get('order_id')}: {exc}") from exc

    @staticmethod
    def get(order_id: str) -> Order:
        try:
            order = Order.objects.filter(order_id=order_id).first()
        except DatabaseError as exc:
            raise PersistenceError(f"Failed to load order {order_id}: {exc}") from exc
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    @staticmethod
    def save_if_status(order: Order, *, expected_status: str) -> bool:
        """
        Compare-and-swap write of the reconciliation fields.

        The row is only updated while its stored status still equals
        `expected_status`; returns False when another writer got there first.
        Runs as a single autocommit statement, so no transaction stays open
        while the provider is being called.
        """
        values = {name: getattr(order, name) for name in RECONCILE_FIELDS}
        try:
            updated = Order.objects.filter(pk=order.pk, status=expected_status).update(**values)
        except DatabaseError as exc:
            raise PersistenceError(f"Failed to save order {order.order_id}: {exc}") from exc
        return updated == 1
