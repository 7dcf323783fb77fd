from __future__ import annotations

import logging

from django.contrib import admin, messages
from django.contrib.admin.views.decorators import staff_member_required
from django.http import HttpRequest, HttpResponse
from django.shortcuts import redirect, render
from django.views.decorators.http import require_http_methods

from apps.catalog.application.catalog_cache import CatalogCache
from apps.catalog.application.use_cases.reload_catalog import ReloadCatalogCommand, ReloadCatalogUseCase

logger = logging.getLogger("topup.catalog")


@staff_member_required
@require_http_methods(["GET", "POST"])
def reload_catalog(request: HttpRequest) -> HttpResponse:
    """Swap in a fresh catalog snapshot inside the serving process."""
    if request.method == "GET":
        context = {
            **admin.site.each_context(request),
            "title": "Reload catalog",
            "snapshot": CatalogCache.snapshot(),
        }
        return render(request, "admin/catalog/reload_confirm.html", context)

    product_type = (request.POST.get("product_type") or "prabayar").strip()
    result = ReloadCatalogUseCase.execute(ReloadCatalogCommand(product_type=product_type))
    logger.info("catalog_reload_requested", extra={"user": request.user.get_username(), "product_type": product_type})

    summary = f"{len(result.snapshot.products)} products, {len(result.snapshot.payment_methods)} payment methods"
    if result.products_refreshed and result.payment_methods_refreshed:
        messages.success(request, f"Catalog reloaded: {summary}.")
    else:
        messages.warning(request, f"Catalog partially reloaded, previous data kept where the provider failed: {summary}.")
    return redirect("admin:index")
