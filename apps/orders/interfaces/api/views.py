from __future__ import annotations

import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.orders.application.use_cases.cancel_order import CancelOrderCommand, CancelOrderUseCase
from apps.orders.application.use_cases.create_order import CreateOrderCommand, CreateOrderUseCase
from apps.orders.application.use_cases.reconcile_order import ReconcileOrderCommand, ReconcileOrderUseCase
from apps.orders.domain.errors import (
    InvalidRequestError,
    InvalidStateError,
    NotFoundError,
    OrderDomainError,
    PersistenceError,
)
from apps.orders.interfaces.api.serializers import CreateOrderSerializer, OrderSerializer
from apps.payments.domain.errors import PaymentGatewayError, UpstreamTransportError

logger = logging.getLogger("topup.request")


def _success(*, data: dict, message: str = "", http_status: int = status.HTTP_200_OK) -> Response:
    return Response({"success": True, "message": message, "data": data}, status=http_status)


def _error(*, message: str, code: str, field: str | None = None, http_status: int = 400) -> Response:
    payload: dict = {"success": False, "message": message, "data": {}, "error": {"code": code, "message": message}}
    if field:
        payload["error"]["field"] = field
    return Response(payload, status=http_status)


def _error_from_exception(exc: Exception, *, prefix: str) -> Response:
    if isinstance(exc, InvalidRequestError):
        return _error(message=str(exc), code="invalid_request", field=exc.field, http_status=status.HTTP_400_BAD_REQUEST)
    if isinstance(exc, NotFoundError):
        return _error(message=str(exc), code="not_found", http_status=status.HTTP_404_NOT_FOUND)
    if isinstance(exc, InvalidStateError):
        return _error(message=str(exc), code="invalid_state", http_status=status.HTTP_400_BAD_REQUEST)
    if isinstance(exc, PersistenceError):
        return _error(message=f"{prefix}: {exc}", code="persistence_error", http_status=500)
    code = "upstream_unreachable" if isinstance(exc, UpstreamTransportError) else "upstream_rejected"
    return _error(message=f"{prefix}: {exc}", code=code, http_status=status.HTTP_502_BAD_GATEWAY)


class CreateOrderAPI(APIView):
    def post(self, request):
        serializer = CreateOrderSerializer(data=request.data)
        if not serializer.is_valid():
            return _error(message="Invalid input.", code="invalid_request", http_status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        try:
            result = CreateOrderUseCase.execute(
                CreateOrderCommand(
                    product_code=data["product_code"],
                    target_id=data["target_id"],
                    payment_method_code=data["payment_method_code"],
                    provider_name=data["provider_name"],
                )
            )
        except (OrderDomainError, PaymentGatewayError) as exc:
            logger.warning("create_order_failed", extra={"error": type(exc).__name__, "reason": str(exc)})
            return _error_from_exception(exc, prefix="Failed to process order")

        return _success(
            data={"order": OrderSerializer(result.order).data, "payment_details": result.payment_details},
            message="Order created.",
            http_status=status.HTTP_201_CREATED,
        )


class OrderStatusAPI(APIView):
    def get(self, request, order_id: str):
        try:
            order = ReconcileOrderUseCase.execute(ReconcileOrderCommand(order_id=order_id))
        except (OrderDomainError, PaymentGatewayError) as exc:
            logger.warning(
                "order_status_failed", extra={"order_id": order_id, "error": type(exc).__name__, "reason": str(exc)}
            )
            return _error_from_exception(exc, prefix="Order status unavailable")

        return _success(data=OrderSerializer(order).data)


class CancelOrderAPI(APIView):
    def post(self, request, order_id: str):
        try:
            order = CancelOrderUseCase.execute(CancelOrderCommand(order_id=order_id))
        except (OrderDomainError, PaymentGatewayError) as exc:
            logger.warning(
                "cancel_order_failed", extra={"order_id": order_id, "error": type(exc).__name__, "reason": str(exc)}
            )
            return _error_from_exception(exc, prefix="Failed to cancel order")

        return _success(data=OrderSerializer(order).data, message="Order cancelled.")
