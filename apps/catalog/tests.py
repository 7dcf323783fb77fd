from __future__ import annotations

from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import SimpleTestCase, TestCase, override_settings
from rest_framework.test import APIClient

from apps.catalog.application.catalog_cache import CatalogCache
from apps.catalog.application.use_cases.reload_catalog import ReloadCatalogCommand, ReloadCatalogUseCase
from apps.catalog.domain.types import CatalogSnapshot, PaymentMethod, Product, parse_decimal
from apps.payments.application.facade import PaymentGatewayFacade
from apps.payments.domain.ports import GatewayResult


def _product(code: str, provider: str, category: str, price: str = "10000") -> Product:
    return Product.from_provider(
        {"code": code, "name": code, "provider": provider, "category": category, "price": price, "status": "available"}
    )


class CatalogSnapshotTests(SimpleTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.snapshot = CatalogSnapshot.build(
            products=[
                _product("TSEL10", "TELKOMSEL", "Pulsa"),
                _product("TSEL25", "TELKOMSEL", "Pulsa"),
                _product("ML86", "MOBILE LEGENDS", "Games"),
            ],
            payment_methods=[
                PaymentMethod.from_provider({"metode": "BCA", "fee": "500", "fee_persen": "1.5"}),
                PaymentMethod.from_provider({"metode": "OVO", "fee": "", "fee_persen": None}),
            ],
        )

    def test_find_product_matches_provider_or_category_case_insensitively(self):
        self.assertEqual(self.snapshot.find_product("ML86", "mobile legends").code, "ML86")
        self.assertEqual(self.snapshot.find_product("ML86", "GAMES").code, "ML86")

    def test_find_product_requires_exact_code(self):
        self.assertIsNone(self.snapshot.find_product("ml86", "Games"))
        self.assertIsNone(self.snapshot.find_product("ML86", "Pulsa"))

    def test_providers_are_unique(self):
        names = [p["name"] for p in self.snapshot.providers()]
        self.assertEqual(names, ["TELKOMSEL", "MOBILE LEGENDS"])

    def test_missing_fees_default_to_zero(self):
        ovo = self.snapshot.find_payment_method("OVO")
        self.assertEqual(ovo.flat_fee, Decimal("0"))
        self.assertEqual(ovo.fee_percent, Decimal("0"))

    def test_blocked_methods_are_hidden(self):
        visible = self.snapshot.visible_payment_methods(blocked=["OVO"])
        self.assertEqual([m.code for m in visible], ["BCA"])

    def test_parse_decimal_rejects_garbage(self):
        self.assertIsNone(parse_decimal("abc"))
        self.assertIsNone(parse_decimal("NaN"))
        self.assertEqual(parse_decimal(" 1.5 "), Decimal("1.5"))


@override_settings(PAYMENT_PROVIDER="sandbox")
class ReloadCatalogTests(SimpleTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.gateway = PaymentGatewayFacade.get("sandbox")
        self.gateway.reset()
        CatalogCache.clear()

    def tearDown(self) -> None:
        CatalogCache.clear()
        super().tearDown()

    def test_keeps_only_available_products_and_active_methods(self):
        result = ReloadCatalogUseCase.execute(ReloadCatalogCommand())

        self.assertTrue(result.products_refreshed)
        self.assertNotIn("ISAT5", [p.code for p in result.snapshot.products])
        self.assertNotIn("BRI", [m.code for m in result.snapshot.payment_methods])
        self.assertIs(CatalogCache.snapshot(), result.snapshot)

    def test_failed_fetch_keeps_previous_collection(self):
        first = ReloadCatalogUseCase.execute(ReloadCatalogCommand()).snapshot
        self.gateway.reset(payment_methods=[{"metode": "GOPAY", "name": "GoPay", "status": "aktif"}])
        self.gateway.script("price_list", GatewayResult.unreachable("timeout"))

        result = ReloadCatalogUseCase.execute(ReloadCatalogCommand())

        self.assertFalse(result.products_refreshed)
        self.assertTrue(result.payment_methods_refreshed)
        self.assertEqual(result.snapshot.products, first.products)
        self.assertEqual([m.code for m in result.snapshot.payment_methods], ["GOPAY"])

    def test_reload_swaps_whole_snapshot(self):
        first = ReloadCatalogUseCase.execute(ReloadCatalogCommand()).snapshot
        self.gateway.reset(products=[])

        ReloadCatalogUseCase.execute(ReloadCatalogCommand())

        self.assertTrue(first.has_products)
        self.assertFalse(CatalogCache.snapshot().has_products)

    def test_non_positive_prices_are_skipped(self):
        free = {"code": "FREE", "name": "Free", "provider": "PLN", "category": "PLN", "price": "0", "status": "available"}
        self.gateway.reset(products=[free, {**free, "code": "NEG", "price": "-5"}])

        result = ReloadCatalogUseCase.execute(ReloadCatalogCommand())

        self.assertTrue(result.products_refreshed)
        self.assertEqual(result.snapshot.products, ())


@override_settings(PAYMENT_PROVIDER="sandbox", BLOCKED_PAYMENT_METHODS=["QRIS"], GLOBAL_ADMIN_FEE_PERCENT=Decimal("2"))
class CatalogApiTests(TestCase):
    def setUp(self) -> None:
        super().setUp()
        self.client = APIClient()
        PaymentGatewayFacade.get("sandbox").reset()
        CatalogCache.clear()

    def tearDown(self) -> None:
        CatalogCache.clear()
        super().tearDown()

    def test_endpoints_return_503_before_first_load(self):
        for url in ("/api/providers", "/api/products/TELKOMSEL", "/api/payment-methods"):
            res = self.client.get(url)
            self.assertEqual(res.status_code, 503, url)
            self.assertFalse(res.json()["success"])

    def test_providers(self):
        ReloadCatalogUseCase.execute(ReloadCatalogCommand())

        res = self.client.get("/api/providers")

        self.assertEqual(res.status_code, 200)
        names = {p["name"] for p in res.json()["data"]}
        self.assertEqual(names, {"TELKOMSEL", "MOBILE LEGENDS"})

    def test_products_for_provider(self):
        ReloadCatalogUseCase.execute(ReloadCatalogCommand())

        res = self.client.get("/api/products/telkomsel")

        body = res.json()
        self.assertEqual(res.status_code, 200)
        self.assertEqual(body["provider"], "telkomsel")
        self.assertEqual({p["code"] for p in body["data"]}, {"TSEL10", "TSEL25"})

    def test_unknown_provider_is_404(self):
        ReloadCatalogUseCase.execute(ReloadCatalogCommand())

        res = self.client.get("/api/products/XL")

        self.assertEqual(res.status_code, 404)
        self.assertEqual(res.json()["message"], "No products found for XL.")

    def test_payment_methods_hide_blocked_and_carry_global_fee(self):
        ReloadCatalogUseCase.execute(ReloadCatalogCommand())

        res = self.client.get("/api/payment-methods")

        data = res.json()["data"]
        self.assertEqual([m["metode"] for m in data], ["BCA", "GOPAY"])
        self.assertTrue(all(m["additional_admin_fee_percent"] == 2 for m in data))


@override_settings(PAYMENT_PROVIDER="sandbox", BLOCKED_PAYMENT_METHODS=[])
class CatalogReloadAdminTests(TestCase):
    url = "/admin/catalog/reload/"

    def setUp(self) -> None:
        super().setUp()
        self.gateway = PaymentGatewayFacade.get("sandbox")
        self.gateway.reset()
        CatalogCache.clear()
        self.staff = get_user_model().objects.create_user(username="ops", password="secret-pass", is_staff=True)

    def tearDown(self) -> None:
        CatalogCache.clear()
        super().tearDown()

    def test_reload_is_visible_to_the_api_in_the_same_process(self):
        self.client.force_login(self.staff)
        self.assertEqual(self.client.get("/api/providers").status_code, 503)

        res = self.client.post(self.url, {"product_type": "prabayar"})

        self.assertRedirects(res, "/admin/", fetch_redirect_response=False)
        providers = self.client.get("/api/providers")
        self.assertEqual(providers.status_code, 200)
        self.assertEqual({p["name"] for p in providers.json()["data"]}, {"TELKOMSEL", "MOBILE LEGENDS"})

    def test_confirmation_page(self):
        self.client.force_login(self.staff)

        res = self.client.get(self.url)

        self.assertEqual(res.status_code, 200)
        self.assertContains(res, "Reload from provider")
        self.assertEqual(self.gateway.calls, [])

    def test_anonymous_user_is_sent_to_login(self):
        res = self.client.post(self.url)

        self.assertEqual(res.status_code, 302)
        self.assertIn("/admin/login/", res["Location"])
        self.assertFalse(CatalogCache.snapshot().has_products)

    def test_non_staff_user_cannot_reload(self):
        user = get_user_model().objects.create_user(username="buyer", password="secret-pass")
        self.client.force_login(user)

        self.client.post(self.url)

        self.assertFalse(CatalogCache.snapshot().has_products)
