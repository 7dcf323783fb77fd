from __future__ import annotations

import logging
from dataclasses import dataclass

from django.utils import timezone

from apps.catalog.application.catalog_cache import CatalogCache
from apps.catalog.domain.types import CatalogSnapshot, PaymentMethod, Product
from apps.payments.application.facade import PaymentGatewayFacade
from apps.payments.domain.ports import GatewayResult

logger = logging.getLogger("topup.catalog")

PRODUCT_AVAILABLE = "available"
PAYMENT_METHOD_ACTIVE = "aktif"


@dataclass(frozen=True)
class ReloadCatalogCommand:
    product_type: str = "prabayar"


@dataclass(frozen=True)
class ReloadCatalogResult:
    snapshot: CatalogSnapshot
    products_refreshed: bool
    payment_methods_refreshed: bool


class ReloadCatalogUseCase:
    @staticmethod
    def execute(cmd: ReloadCatalogCommand) -> ReloadCatalogResult:
        gateway = PaymentGatewayFacade.active()
        previous = CatalogCache.snapshot()

        products = _load_products(gateway.price_list(product_type=cmd.product_type))
        methods = _load_payment_methods(gateway.payment_methods())

        snapshot = CatalogSnapshot.build(
            products=previous.products if products is None else products,
            payment_methods=previous.payment_methods if methods is None else methods,
            loaded_at=timezone.now(),
        )
        CatalogCache.replace(snapshot)
        logger.info(
            "catalog_reloaded",
            extra={
                "provider": gateway.code,
                "products": len(snapshot.products),
                "payment_methods": len(snapshot.payment_methods),
                "products_refreshed": products is not None,
                "payment_methods_refreshed": methods is not None,
            },
        )
        return ReloadCatalogResult(
            snapshot=snapshot,
            products_refreshed=products is not None,
            payment_methods_refreshed=methods is not None,
        )


def _load_products(result: GatewayResult) -> list[Product] | None:
    if not result.is_ok or not isinstance(result.data, list):
        logger.error("catalog_products_fetch_failed", extra={"outcome": result.outcome.value, "reason": result.message})
        return None
    products = []
    for item in result.data:
        if not isinstance(item, dict) or item.get("status") != PRODUCT_AVAILABLE:
            continue
        product = Product.from_provider(item)
        if product is None:
            logger.warning("catalog_product_skipped", extra={"code": item.get("code")})
            continue
        products.append(product)
    return products


def _load_payment_methods(result: GatewayResult) -> list[PaymentMethod] | None:
    if not result.is_ok or not isinstance(result.data, list):
        logger.error(
            "catalog_payment_methods_fetch_failed", extra={"outcome": result.outcome.value, "reason": result.message}
        )
        return None
    methods = []
    for item in result.data:
        if not isinstance(item, dict) or item.get("status") != PAYMENT_METHOD_ACTIVE:
            continue
        method = PaymentMethod.from_provider(item)
        if method is None:
            logger.warning("catalog_payment_method_skipped", extra={"metode": item.get("metode")})
            continue
        methods.append(method)
    return methods
