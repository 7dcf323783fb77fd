from __future__ import annotations

import logging
import secrets
import string
import time
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from apps.catalog.application.catalog_cache import CatalogCache
from apps.orders.application.services.order_store import OrderStore
from apps.orders.domain.errors import (
    InvalidRequestError,
    PaymentMethodNotFoundError,
    PersistenceError,
    ProductNotFoundError,
)
from apps.orders.domain.pricing import quote_price
from apps.orders.domain.state_machine import OrderStatus
from apps.orders.models import Order
from apps.payments.application.facade import PaymentGatewayFacade
from apps.payments.domain.errors import UpstreamBusinessError
from apps.payments.domain.ports import TopupProviderPort

logger = logging.getLogger("topup.orders")

FEE_QUANT = Decimal("0.0001")
_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits


@dataclass(frozen=True)
class CreateOrderCommand:
    product_code: str
    target_id: str
    payment_method_code: str
    provider_name: str


@dataclass(frozen=True)
class CreateOrderResult:
    order: Order
    payment_details: dict


def generate_order_id() -> str:
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(6))
    return f"ORD-{int(time.time() * 1000)}-{suffix}"


def _required(value: str, field: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise InvalidRequestError("Incomplete order data.", field=field)
    return cleaned


class CreateOrderUseCase:
    @staticmethod
    def execute(cmd: CreateOrderCommand) -> CreateOrderResult:
        product_code = _required(cmd.product_code, "product_code")
        target_id = _required(cmd.target_id, "target_id")
        method_code = _required(cmd.payment_method_code, "payment_method_code")
        provider_name = _required(cmd.provider_name, "provider_name")

        catalog = CatalogCache.snapshot()
        product = catalog.find_product(product_code, provider_name)
        if product is None:
            raise ProductNotFoundError()
        method = catalog.find_payment_method(method_code)
        if method is None:
            raise PaymentMethodNotFoundError()

        try:
            quote = quote_price(
                base_price=product.price,
                flat_fee=method.flat_fee,
                fee_percent=method.fee_percent,
                global_admin_fee_percent=settings.GLOBAL_ADMIN_FEE_PERCENT,
            )
        except ValueError as exc:
            raise InvalidRequestError(f"Product {product.code} cannot be priced: {exc}", field="product_code") from exc

        order_id = generate_order_id()
        deposit_reff_id = f"DEP-{order_id}"
        gateway = PaymentGatewayFacade.active()

        result = gateway.open_deposit(
            reff_id=deposit_reff_id,
            amount=quote.deposit_nominal,
            payment_type=method.payment_type,
            method=method.code,
        )
        if not result.is_ok:
            logger.warning(
                "deposit_open_failed",
                extra={"order_id": order_id, "outcome": result.outcome.value, "reason": result.message},
            )
            result.raise_for_outcome(default_message="Failed to create deposit.")

        deposit = result.payload
        deposit_id = str(deposit.get("id") or "")
        if not deposit_id:
            raise UpstreamBusinessError("Provider did not return a deposit id.")

        try:
            with transaction.atomic():
                order = OrderStore.create(
                    order_id=order_id,
                    product_code=product.code,
                    product_name=product.name,
                    product_price=product.price,
                    provider_name=product.provider,
                    product_img_url=product.img_url,
                    target_id=target_id,
                    payment_method_code=method.code,
                    payment_method_name=method.name,
                    admin_fee_payment_method=quote.payment_method_fee.quantize(FEE_QUANT, rounding=ROUND_HALF_UP),
                    admin_fee_global=quote.global_admin_fee.quantize(FEE_QUANT, rounding=ROUND_HALF_UP),
                    total_admin_fee=quote.total_admin_fee.quantize(FEE_QUANT, rounding=ROUND_HALF_UP),
                    total_amount_due=quote.total_amount_due,
                    status=OrderStatus.PENDING_PAYMENT.value,
                    atlantic_deposit_id=deposit_id,
                    deposit_reff_id=deposit_reff_id,
                    deposit_details=dict(deposit),
                    updated_at=timezone.now(),
                )
        except PersistenceError:
            _release_orphan_deposit(gateway, deposit_id=deposit_id, order_id=order_id)
            raise

        logger.info(
            "order_created",
            extra={
                "order_id": order_id,
                "product_code": product.code,
                "payment_method": method.code,
                "amount": str(quote.total_amount_due),
                "deposit_id": deposit_id,
            },
        )
        return CreateOrderResult(order=order, payment_details=dict(deposit))


def _release_orphan_deposit(gateway: TopupProviderPort, *, deposit_id: str, order_id: str) -> None:
    result = gateway.cancel_deposit(deposit_id=deposit_id)
    logger.error(
        "order_persist_failed",
        extra={
            "order_id": order_id,
            "deposit_id": deposit_id,
            "deposit_released": result.is_ok and result.provider_status == "CANCEL",
        },
    )
