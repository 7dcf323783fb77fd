"""
API URL aggregation.

EN: Aggregates app API routes under `/api/`.
"""

from django.urls import include, path

urlpatterns = [
    path("", include("apps.catalog.interfaces.api.urls")),
    path("", include("apps.orders.interfaces.api.urls")),
]
