"""
WSGI config for topup_site project.

It exposes the WSGI callable as a module-level variable named ``application``.
"""

import os

from django.conf import settings
from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "topup_site.settings")

application = get_wsgi_application()

if settings.CATALOG_LOAD_ON_STARTUP:
    from apps.catalog.application.use_cases.reload_catalog import ReloadCatalogCommand, ReloadCatalogUseCase

    ReloadCatalogUseCase.execute(ReloadCatalogCommand())
