from __future__ import annotations

from django.conf import settings
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.catalog.application.catalog_cache import CatalogCache


def _success(*, data, message: str = "", http_status: int = status.HTTP_200_OK, **extra) -> Response:
    return Response({"success": True, "message": message, "data": data, **extra}, status=http_status)


def _error(*, message: str, code: str, http_status: int) -> Response:
    return Response(
        {"success": False, "message": message, "data": {}, "error": {"code": code, "message": message}},
        status=http_status,
    )


def _not_ready(message: str) -> Response:
    return _error(message=message, code="catalog_not_ready", http_status=status.HTTP_503_SERVICE_UNAVAILABLE)


class ProvidersAPI(APIView):
    def get(self, request):
        snapshot = CatalogCache.snapshot()
        if not snapshot.has_products:
            return _not_ready("Product catalog is not ready yet, try again shortly.")
        return _success(data=snapshot.providers())


class ProviderProductsAPI(APIView):
    def get(self, request, provider_name: str):
        snapshot = CatalogCache.snapshot()
        if not snapshot.has_products:
            return _not_ready("Product catalog is not ready yet, try again shortly.")
        products = snapshot.products_for_provider(provider_name)
        if not products:
            return _error(
                message=f"No products found for {provider_name}.",
                code="products_not_found",
                http_status=status.HTTP_404_NOT_FOUND,
            )
        return _success(data=[p.raw for p in products], provider=provider_name)


class PaymentMethodsAPI(APIView):
    def get(self, request):
        snapshot = CatalogCache.snapshot()
        if not snapshot.has_payment_methods:
            return _not_ready("Payment methods are not ready yet, try again shortly.")
        fee_percent = settings.GLOBAL_ADMIN_FEE_PERCENT
        data = [
            {**method.raw, "additional_admin_fee_percent": fee_percent}
            for method in snapshot.visible_payment_methods(blocked=settings.BLOCKED_PAYMENT_METHODS)
        ]
        return _success(data=data)
