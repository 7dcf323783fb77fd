from django.urls import path

from apps.catalog.interfaces.api.views import PaymentMethodsAPI, ProviderProductsAPI, ProvidersAPI

urlpatterns = [
    path("providers", ProvidersAPI.as_view(), name="api_catalog_providers"),
    path("products/<str:provider_name>", ProviderProductsAPI.as_view(), name="api_catalog_provider_products"),
    path("payment-methods", PaymentMethodsAPI.as_view(), name="api_catalog_payment_methods"),
]
