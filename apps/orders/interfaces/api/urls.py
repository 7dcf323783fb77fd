from django.urls import path

from apps.orders.interfaces.api.views import CancelOrderAPI, CreateOrderAPI, OrderStatusAPI

urlpatterns = [
    path("create-order", CreateOrderAPI.as_view(), name="api_orders_create"),
    path("order-status/<str:order_id>", OrderStatusAPI.as_view(), name="api_orders_status"),
    path("cancel-order/<str:order_id>", CancelOrderAPI.as_view(), name="api_orders_cancel"),
]
