"""
URL configuration for topup_site project.

The `urlpatterns` list routes URLs to views. For more information please see:
    https://docs.djangoproject.com/en/5.1/topics/http/urls/
"""

from django.contrib import admin
from django.urls import include, path

from apps.catalog.interfaces.web.views import reload_catalog

handler404 = "topup_site.error_views.handle_404"
handler500 = "topup_site.error_views.handle_500"

urlpatterns = [
    path("admin/catalog/reload/", reload_catalog, name="catalog-reload"),
    path("admin/", admin.site.urls),
    path("api/", include("topup_site.api_urls")),
]
