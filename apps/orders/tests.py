from __future__ import annotations

import json
import logging
import threading
import time
from decimal import Decimal
from unittest.mock import patch

from django.db import connections
from django.forms.models import model_to_dict
from django.test import SimpleTestCase, TestCase, TransactionTestCase, override_settings
from pythonjsonlogger import jsonlogger
from rest_framework.test import APIClient

from apps.catalog.application.catalog_cache import CatalogCache
from apps.catalog.application.use_cases.reload_catalog import ReloadCatalogCommand, ReloadCatalogUseCase
from apps.catalog.domain.types import CatalogSnapshot, Product
from apps.orders.application.services.order_locks import OrderLocks
from apps.orders.application.services.order_store import OrderStore
from apps.orders.application.use_cases.cancel_order import CancelOrderCommand, CancelOrderUseCase
from apps.orders.application.use_cases.create_order import (
    CreateOrderCommand,
    CreateOrderUseCase,
    generate_order_id,
)
from apps.orders.application.use_cases.reconcile_order import ReconcileOrderCommand, ReconcileOrderUseCase
from apps.orders.domain.errors import (
    InvalidRequestError,
    InvalidStateError,
    OrderNotFoundError,
    PaymentMethodNotFoundError,
    PersistenceError,
    ProductNotFoundError,
)
from apps.orders.domain.pricing import quote_price
from apps.orders.domain.state_machine import (
    OrderStatus,
    ReconcileAction,
    merge_details,
    plan_reconcile,
    status_after_deposit,
    status_after_transaction,
    status_after_transaction_created,
)
from apps.orders.models import Order
from apps.payments.application.facade import PaymentGatewayFacade
from apps.payments.domain.errors import UpstreamBusinessError, UpstreamTransportError
from apps.payments.domain.ports import GatewayResult

TEST_PRODUCTS = [
    {
        "code": "PLN20",
        "name": "PLN 20.000",
        "category": "Token Listrik",
        "provider": "PLN",
        "price": "10000",
        "status": "available",
        "img_url": "https://cdn.example.com/pln.png",
    },
    {
        "code": "PLN50",
        "name": "PLN 50.000",
        "category": "Token Listrik",
        "provider": "PLN",
        "price": "50000",
        "status": "empty",
    },
]

TEST_PAYMENT_METHODS = [
    {"metode": "BCA", "name": "BCA Virtual Account", "type": "va", "fee": "500", "fee_persen": "1.5", "status": "aktif"},
    {"metode": "BRI", "name": "BRI Virtual Account", "type": "va", "fee": "3000", "fee_persen": "0", "status": "nonaktif"},
]


class PricingTests(SimpleTestCase):
    def test_fee_breakdown(self):
        quote = quote_price(base_price="10000", flat_fee="500", fee_percent="1.5", global_admin_fee_percent="2")

        self.assertEqual(quote.payment_method_fee, Decimal("650"))
        self.assertEqual(quote.global_admin_fee, Decimal("200"))
        self.assertEqual(quote.total_admin_fee, Decimal("850"))
        self.assertEqual(quote.total_amount_due, Decimal("10850"))
        self.assertEqual(quote.deposit_nominal, 10850)

    def test_same_inputs_give_same_quote(self):
        args = dict(base_price=Decimal("20500"), flat_fee=Decimal("0"), fee_percent="0.7", global_admin_fee_percent="2")
        self.assertEqual(quote_price(**args), quote_price(**args))

    def test_fractional_total_rounds_up(self):
        quote = quote_price(base_price="10001", flat_fee="0", fee_percent="1.5", global_admin_fee_percent="2")

        self.assertEqual(quote.total_admin_fee, Decimal("350.035"))
        self.assertEqual(quote.total_amount_due, Decimal("10352"))

    def test_whole_total_is_not_bumped(self):
        quote = quote_price(base_price="10000", flat_fee="0", fee_percent="0", global_admin_fee_percent="0")
        self.assertEqual(quote.total_amount_due, Decimal("10000"))

    def test_non_positive_base_price_is_rejected(self):
        with self.assertRaises(ValueError):
            quote_price(base_price="0", flat_fee="0", fee_percent="0", global_admin_fee_percent="2")


class StateMachineTests(SimpleTestCase):
    def test_plan_reconcile(self):
        cases = [
            (OrderStatus.PENDING_PAYMENT, False, ReconcileAction.POLL_DEPOSIT),
            (OrderStatus.PAYMENT_PROCESSING, False, ReconcileAction.POLL_DEPOSIT),
            (OrderStatus.PAYMENT_SUCCESSFUL_PROCESSING_ORDER, False, ReconcileAction.CREATE_TRANSACTION),
            (OrderStatus.TRANSACTION_CREATION_FAILED, False, ReconcileAction.CREATE_TRANSACTION),
            (OrderStatus.TRANSACTION_CREATION_ERROR, False, ReconcileAction.NONE),
            (OrderStatus.ORDER_PROCESSING, True, ReconcileAction.POLL_TRANSACTION),
            ("PROCESSING", True, ReconcileAction.POLL_TRANSACTION),
            (OrderStatus.ORDER_COMPLETED, True, ReconcileAction.NONE),
            (OrderStatus.PAYMENT_EXPIRED, False, ReconcileAction.NONE),
            (OrderStatus.PAYMENT_CANCELLED, False, ReconcileAction.NONE),
        ]
        for status, has_trx, expected in cases:
            with self.subTest(status=status, has_transaction_id=has_trx):
                self.assertEqual(plan_reconcile(status, has_transaction_id=has_trx), expected)

    def test_status_after_deposit(self):
        self.assertEqual(status_after_deposit("success"), OrderStatus.PAYMENT_SUCCESSFUL_PROCESSING_ORDER)
        self.assertEqual(status_after_deposit("expired"), OrderStatus.PAYMENT_EXPIRED)
        self.assertEqual(status_after_deposit("FAILED"), OrderStatus.PAYMENT_FAILED)
        self.assertEqual(status_after_deposit("cancel"), OrderStatus.PAYMENT_CANCEL)
        self.assertEqual(status_after_deposit("pending"), OrderStatus.PENDING_PAYMENT)
        self.assertEqual(status_after_deposit("processing"), OrderStatus.PAYMENT_PROCESSING)
        self.assertEqual(status_after_deposit(None), OrderStatus.PAYMENT_PROCESSING)

    def test_status_after_transaction(self):
        self.assertEqual(status_after_transaction_created(None), OrderStatus.ORDER_PROCESSING)
        self.assertEqual(status_after_transaction_created("pending"), OrderStatus.ORDER_PROCESSING)
        self.assertEqual(status_after_transaction_created("success"), "SUCCESS")
        self.assertEqual(status_after_transaction("success"), OrderStatus.ORDER_COMPLETED)
        self.assertEqual(status_after_transaction("error"), OrderStatus.ORDER_FAILED)
        self.assertEqual(status_after_transaction("pending"), OrderStatus.ORDER_PROCESSING)
        self.assertEqual(status_after_transaction("Processing"), "PROCESSING")

    def test_merge_details_prefers_incoming_values(self):
        self.assertEqual(merge_details({"a": 1, "b": 2}, {"b": 3, "c": 4}), {"a": 1, "b": 3, "c": 4})
        self.assertEqual(merge_details(None, {"c": 4}), {"c": 4})


class OrderLocksTests(SimpleTestCase):
    def test_hold_serializes_same_order(self):
        events: list[str] = []
        first_inside = threading.Event()
        release_first = threading.Event()

        def first():
            with OrderLocks.hold("ORD-LOCK"):
                events.append("first-in")
                first_inside.set()
                release_first.wait(timeout=5)
                events.append("first-out")

        def second():
            first_inside.wait(timeout=5)
            with OrderLocks.hold("ORD-LOCK"):
                events.append("second-in")

        t1 = threading.Thread(target=first)
        t2 = threading.Thread(target=second)
        t1.start()
        t2.start()
        first_inside.wait(timeout=5)
        time.sleep(0.05)

        self.assertEqual(events, ["first-in"])
        self.assertTrue(OrderLocks.is_held("ORD-LOCK"))

        release_first.set()
        t1.join(timeout=5)
        t2.join(timeout=5)
        self.assertEqual(events, ["first-in", "first-out", "second-in"])
        self.assertFalse(OrderLocks.is_held("ORD-LOCK"))

    def test_different_orders_do_not_block(self):
        entered = threading.Event()

        def other():
            with OrderLocks.hold("ORD-B"):
                entered.set()

        with OrderLocks.hold("ORD-A"):
            worker = threading.Thread(target=other)
            worker.start()
            self.assertTrue(entered.wait(timeout=5))
            worker.join(timeout=5)


class SandboxOrderMixin:
    def setUp(self) -> None:
        super().setUp()
        self.gateway = PaymentGatewayFacade.get("sandbox")
        self.gateway.reset(products=TEST_PRODUCTS, payment_methods=TEST_PAYMENT_METHODS)
        ReloadCatalogUseCase.execute(ReloadCatalogCommand())
        self.gateway.calls.clear()

    def tearDown(self) -> None:
        CatalogCache.clear()
        super().tearDown()

    def _create_order(self, **overrides) -> Order:
        fields = dict(product_code="PLN20", target_id="5512345678", payment_method_code="BCA", provider_name="PLN")
        fields.update(overrides)
        return CreateOrderUseCase.execute(CreateOrderCommand(**fields)).order

    def _reconcile(self, order: Order) -> Order:
        return ReconcileOrderUseCase.execute(ReconcileOrderCommand(order_id=order.order_id))


def _make_order(**overrides) -> Order:
    fields = dict(
        order_id="ORD-1700000000000-ABC123",
        product_code="PLN20",
        product_name="PLN 20.000",
        product_price=Decimal("10000"),
        provider_name="PLN",
        target_id="5512345678",
        payment_method_code="BCA",
        payment_method_name="BCA Virtual Account",
        total_amount_due=Decimal("10850"),
        status=OrderStatus.PENDING_PAYMENT.value,
        atlantic_deposit_id="SBX-DEP-missing",
        deposit_reff_id="DEP-ORD-1700000000000-ABC123",
    )
    fields.update(overrides)
    return Order.objects.create(**fields)


@override_settings(PAYMENT_PROVIDER="sandbox", GLOBAL_ADMIN_FEE_PERCENT=Decimal("2"))
class CreateOrderTests(SandboxOrderMixin, TestCase):
    def test_creates_order_with_price_snapshot_and_open_deposit(self):
        result = CreateOrderUseCase.execute(
            CreateOrderCommand(product_code="PLN20", target_id="5512345678", payment_method_code="BCA", provider_name="pln")
        )
        order = Order.objects.get(order_id=result.order.order_id)

        self.assertRegex(order.order_id, r"^ORD-\d+-[A-Z0-9]{6}$")
        self.assertEqual(order.status, OrderStatus.PENDING_PAYMENT)
        self.assertEqual(order.product_price, Decimal("10000"))
        self.assertEqual(order.admin_fee_payment_method, Decimal("650"))
        self.assertEqual(order.admin_fee_global, Decimal("200"))
        self.assertEqual(order.total_admin_fee, Decimal("850"))
        self.assertEqual(order.total_amount_due, Decimal("10850"))
        self.assertEqual(order.deposit_reff_id, f"DEP-{order.order_id}")
        self.assertEqual(order.atlantic_deposit_id, result.payment_details["id"])
        self.assertEqual(order.deposit_details["url"], result.payment_details["url"])

        (call,) = self.gateway.calls_for("open_deposit")
        self.assertEqual(call["amount"], 10850)
        self.assertEqual(call["method"], "BCA")
        self.assertEqual(call["payment_type"], "va")

    def test_missing_field_is_invalid_request(self):
        with self.assertRaises(InvalidRequestError) as ctx:
            self._create_order(target_id="  ")
        self.assertEqual(ctx.exception.field, "target_id")
        self.assertEqual(self.gateway.calls, [])

    def test_unknown_product(self):
        with self.assertRaises(ProductNotFoundError):
            self._create_order(product_code="PLN50")
        with self.assertRaises(ProductNotFoundError):
            self._create_order(provider_name="TELKOMSEL")

    def test_inactive_payment_method(self):
        with self.assertRaises(PaymentMethodNotFoundError):
            self._create_order(payment_method_code="BRI")

    def test_rejected_deposit_stores_nothing(self):
        self.gateway.script("open_deposit", GatewayResult.rejected("Saldo tidak cukup"))

        with self.assertRaises(UpstreamBusinessError):
            self._create_order()
        self.assertEqual(Order.objects.count(), 0)

    def test_unreachable_deposit_stores_nothing(self):
        self.gateway.script("open_deposit", GatewayResult.unreachable("timed out"))

        with self.assertRaises(UpstreamTransportError):
            self._create_order()
        self.assertEqual(Order.objects.count(), 0)

    def test_deposit_without_id_stores_nothing(self):
        self.gateway.script("open_deposit", GatewayResult.ok({"status": "pending"}))

        with self.assertRaises(UpstreamBusinessError):
            self._create_order()
        self.assertEqual(Order.objects.count(), 0)

    def test_persistence_failure_releases_deposit(self):
        with patch.object(OrderStore, "create", side_effect=PersistenceError("disk full")):
            with self.assertRaises(PersistenceError):
                self._create_order()

        self.assertEqual(Order.objects.count(), 0)
        (deposit,) = self.gateway.deposits.values()
        self.assertEqual(deposit["status"], "cancel")

    def test_unpriceable_product_is_invalid_request(self):
        snapshot = CatalogCache.snapshot()
        free = Product(code="PLN0", name="PLN 0", price=Decimal("0"), provider="PLN", category="Token Listrik")
        CatalogCache.replace(
            CatalogSnapshot.build(products=[*snapshot.products, free], payment_methods=snapshot.payment_methods)
        )

        with self.assertRaises(InvalidRequestError) as ctx:
            self._create_order(product_code="PLN0")
        self.assertEqual(ctx.exception.field, "product_code")
        self.assertEqual(self.gateway.calls_for("open_deposit"), [])

    def test_product_price_keeps_four_decimals(self):
        self.gateway.reset(products=[{**TEST_PRODUCTS[0], "price": "10000.0125"}], payment_methods=TEST_PAYMENT_METHODS)
        ReloadCatalogUseCase.execute(ReloadCatalogCommand())

        order = Order.objects.get(pk=self._create_order().pk)

        self.assertEqual(order.product_price, Decimal("10000.0125"))
        self.assertEqual(order.total_amount_due, Decimal("10851"))

    def test_generated_ids_are_unique(self):
        ids = {generate_order_id() for _ in range(200)}
        self.assertEqual(len(ids), 200)


@override_settings(PAYMENT_PROVIDER="sandbox", GLOBAL_ADMIN_FEE_PERCENT=Decimal("2"))
class ReconcileOrderTests(SandboxOrderMixin, TestCase):
    def test_paid_order_moves_to_processing_in_one_call(self):
        order = self._create_order()
        self.gateway.settle_deposit(order.atlantic_deposit_id, "success")

        order = self._reconcile(order)

        self.assertEqual(order.status, OrderStatus.ORDER_PROCESSING)
        self.assertTrue(order.atlantic_transaction_id.startswith("SBX-TRX-"))
        self.assertEqual(order.transaction_reff_id, f"TRX-{order.order_id}")
        self.assertEqual(order.deposit_details["status"], "success")
        (call,) = self.gateway.calls_for("create_transaction")
        self.assertEqual(call["product_code"], "PLN20")
        self.assertEqual(call["target"], "5512345678")

    def test_full_lifecycle_to_completed(self):
        order = self._create_order()
        self.gateway.settle_deposit(order.atlantic_deposit_id, "success")
        order = self._reconcile(order)
        self.gateway.settle_transaction(order.atlantic_transaction_id, "success", sn="1234-5678")

        order = self._reconcile(order)

        self.assertEqual(order.status, OrderStatus.ORDER_COMPLETED)
        self.assertEqual(order.transaction_details["sn"], "1234-5678")
        stored = Order.objects.get(pk=order.pk)
        self.assertEqual(stored.status, "ORDER_COMPLETED")

    def test_pending_deposit_stays_pending(self):
        order = self._create_order()

        order = self._reconcile(order)

        self.assertEqual(order.status, OrderStatus.PENDING_PAYMENT)
        self.assertEqual(self.gateway.calls_for("create_transaction"), [])

    def test_deposit_failure_statuses(self):
        for provider_status, expected in (
            ("processing", OrderStatus.PAYMENT_PROCESSING),
            ("expired", OrderStatus.PAYMENT_EXPIRED),
        ):
            with self.subTest(provider_status=provider_status):
                order = self._create_order()
                self.gateway.settle_deposit(order.atlantic_deposit_id, provider_status)
                self.assertEqual(self._reconcile(order).status, expected)

    def test_deposit_details_are_merged(self):
        order = self._create_order()
        Order.objects.filter(pk=order.pk).update(deposit_details={"a": 1, "b": 2})
        self.gateway.script("deposit_status", GatewayResult.ok({"b": 3, "c": 4, "status": "pending"}))

        order = self._reconcile(order)

        self.assertEqual(order.deposit_details, {"a": 1, "b": 3, "c": 4, "status": "pending"})

    def test_terminal_order_is_not_touched(self):
        order = _make_order(status=OrderStatus.ORDER_COMPLETED.value, atlantic_transaction_id="T-1")
        before = model_to_dict(Order.objects.get(pk=order.pk))

        result = self._reconcile(order)

        self.assertEqual(self.gateway.calls, [])
        self.assertEqual(model_to_dict(Order.objects.get(pk=order.pk)), before)
        self.assertEqual(result.status, OrderStatus.ORDER_COMPLETED)

    def test_unreachable_status_leaves_order_unchanged(self):
        order = self._create_order()
        before = Order.objects.get(pk=order.pk)
        self.gateway.script("deposit_status", GatewayResult.unreachable("timed out"))

        with self.assertRaises(UpstreamTransportError):
            self._reconcile(order)

        after = Order.objects.get(pk=order.pk)
        self.assertEqual(model_to_dict(after), model_to_dict(before))
        self.assertEqual(after.updated_at, before.updated_at)

    def test_rejected_status_keeps_status(self):
        order = self._create_order()
        self.gateway.script("deposit_status", GatewayResult.rejected("Deposit tidak ditemukan."))

        order = self._reconcile(order)

        self.assertEqual(order.status, OrderStatus.PENDING_PAYMENT)
        self.assertNotIn("error", order.deposit_details)

    def test_rejected_transaction_is_retried_with_same_reference(self):
        order = self._create_order()
        self.gateway.settle_deposit(order.atlantic_deposit_id, "success")
        self.gateway.script("create_transaction", GatewayResult.rejected("Produk sedang gangguan"))

        order = self._reconcile(order)
        self.assertEqual(order.status, OrderStatus.TRANSACTION_CREATION_FAILED)
        self.assertEqual(order.transaction_details, {"error": "Produk sedang gangguan"})

        order = self._reconcile(order)
        self.assertEqual(order.status, OrderStatus.ORDER_PROCESSING)
        reffs = [c["reff_id"] for c in self.gateway.calls_for("create_transaction")]
        self.assertEqual(reffs, [f"TRX-{order.order_id}"] * 2)

    def test_unreachable_transaction_create_is_recorded_and_not_retried(self):
        order = self._create_order()
        self.gateway.settle_deposit(order.atlantic_deposit_id, "success")
        self.gateway.script("create_transaction", GatewayResult.unreachable("read timed out"))

        order = self._reconcile(order)
        self.assertEqual(order.status, OrderStatus.TRANSACTION_CREATION_ERROR)
        self.assertEqual(order.transaction_details, {"error": "Internal error: read timed out"})

        order = self._reconcile(order)
        self.assertEqual(order.status, OrderStatus.TRANSACTION_CREATION_ERROR)
        self.assertEqual(len(self.gateway.calls_for("create_transaction")), 1)

    def test_crashing_transaction_create_is_recorded(self):
        order = self._create_order()
        self.gateway.settle_deposit(order.atlantic_deposit_id, "success")

        with patch.object(self.gateway, "create_transaction", side_effect=RuntimeError("boom")):
            order = self._reconcile(order)

        self.assertEqual(order.status, OrderStatus.TRANSACTION_CREATION_ERROR)
        self.assertEqual(order.transaction_details, {"error": "Internal error: boom"})

    def test_transaction_failure(self):
        order = self._create_order()
        self.gateway.settle_deposit(order.atlantic_deposit_id, "success")
        order = self._reconcile(order)
        self.gateway.settle_transaction(order.atlantic_transaction_id, "failed")

        self.assertEqual(self._reconcile(order).status, OrderStatus.ORDER_FAILED)

    def test_unknown_provider_status_is_kept_and_polled_again(self):
        order = self._create_order()
        self.gateway.settle_deposit(order.atlantic_deposit_id, "success")
        order = self._reconcile(order)
        self.gateway.settle_transaction(order.atlantic_transaction_id, "Processing")

        order = self._reconcile(order)
        self.assertEqual(order.status, "PROCESSING")

        self.gateway.settle_transaction(order.atlantic_transaction_id, "success")
        self.assertEqual(self._reconcile(order).status, OrderStatus.ORDER_COMPLETED)

    def test_transaction_status_rejection_keeps_status(self):
        order = self._create_order()
        self.gateway.settle_deposit(order.atlantic_deposit_id, "success")
        order = self._reconcile(order)
        details = dict(order.transaction_details)
        self.gateway.script("transaction_status", GatewayResult.rejected("Transaksi tidak ditemukan."))

        order = self._reconcile(order)

        self.assertEqual(order.status, OrderStatus.ORDER_PROCESSING)
        self.assertEqual(order.transaction_details, details)

    def test_transaction_is_created_once_under_order_lock(self):
        order = self._create_order()
        self.gateway.settle_deposit(order.atlantic_deposit_id, "success")
        held: list[bool] = []
        create = self.gateway.create_transaction

        def spy(**kwargs):
            held.append(OrderLocks.is_held(order.order_id))
            return create(**kwargs)

        with patch.object(self.gateway, "create_transaction", side_effect=spy):
            self._reconcile(order)
            self._reconcile(order)

        self.assertEqual(held, [True])
        self.assertFalse(OrderLocks.is_held(order.order_id))

    def test_lost_status_swap_returns_the_stored_row(self):
        order = self._create_order()
        self.gateway.settle_deposit(order.atlantic_deposit_id, "processing")
        deposit_status = self.gateway.deposit_status

        def cancelled_elsewhere(**kwargs):
            Order.objects.filter(pk=order.pk).update(status=OrderStatus.PAYMENT_CANCELLED.value)
            return deposit_status(**kwargs)

        with patch.object(self.gateway, "deposit_status", side_effect=cancelled_elsewhere):
            result = self._reconcile(order)

        self.assertEqual(result.status, OrderStatus.PAYMENT_CANCELLED)
        stored = Order.objects.get(pk=order.pk)
        self.assertEqual(stored.status, "PAYMENT_CANCELLED")
        self.assertEqual(stored.deposit_details["status"], "pending")

    def test_unknown_order(self):
        with self.assertRaises(OrderNotFoundError):
            ReconcileOrderUseCase.execute(ReconcileOrderCommand(order_id="ORD-0-NOPE00"))


@override_settings(PAYMENT_PROVIDER="sandbox", GLOBAL_ADMIN_FEE_PERCENT=Decimal("2"))
class CancelOrderTests(SandboxOrderMixin, TestCase):
    def _cancel(self, order: Order) -> Order:
        return CancelOrderUseCase.execute(CancelOrderCommand(order_id=order.order_id))

    def test_cancel_pending_order(self):
        order = self._create_order()

        order = self._cancel(order)

        self.assertEqual(order.status, OrderStatus.PAYMENT_CANCELLED)
        self.assertEqual(order.deposit_details["status"], "cancel")
        self.assertIn("url", order.deposit_details)
        self.assertEqual(self.gateway.deposits[order.atlantic_deposit_id]["status"], "cancel")
        self.assertEqual(Order.objects.get(pk=order.pk).status, "PAYMENT_CANCELLED")

    def test_cancelled_order_is_terminal(self):
        order = self._cancel(self._create_order())
        self.gateway.calls.clear()

        self.assertEqual(self._reconcile(order).status, OrderStatus.PAYMENT_CANCELLED)
        self.assertEqual(self.gateway.calls, [])

    def test_paid_order_cannot_be_cancelled(self):
        order = self._create_order()
        self.gateway.settle_deposit(order.atlantic_deposit_id, "success")
        order = self._reconcile(order)

        with self.assertRaises(InvalidStateError):
            self._cancel(order)
        self.assertEqual(self.gateway.calls_for("cancel_deposit"), [])

    def test_order_without_deposit(self):
        order = _make_order(atlantic_deposit_id="")

        with self.assertRaises(InvalidStateError) as ctx:
            self._cancel(order)
        self.assertEqual(str(ctx.exception), "Deposit ID not found for this order.")

    def test_provider_refusal_leaves_order_unchanged(self):
        order = self._create_order()
        self.gateway.settle_deposit(order.atlantic_deposit_id, "success")

        with self.assertRaises(UpstreamBusinessError):
            self._cancel(order)
        self.assertEqual(Order.objects.get(pk=order.pk).status, OrderStatus.PENDING_PAYMENT)

    def test_unexpected_cancel_status_is_refused(self):
        order = self._create_order()
        self.gateway.script("cancel_deposit", GatewayResult.ok({"id": order.atlantic_deposit_id, "status": "pending"}))

        with self.assertRaises(UpstreamBusinessError):
            self._cancel(order)
        self.assertEqual(Order.objects.get(pk=order.pk).status, OrderStatus.PENDING_PAYMENT)

    def test_unreachable_provider(self):
        order = self._create_order()
        self.gateway.script("cancel_deposit", GatewayResult.unreachable("connection reset"))

        with self.assertRaises(UpstreamTransportError):
            self._cancel(order)

    def test_status_changed_while_cancelling(self):
        order = self._create_order()
        cancel_deposit = self.gateway.cancel_deposit

        def paid_elsewhere(**kwargs):
            Order.objects.filter(pk=order.pk).update(status=OrderStatus.ORDER_PROCESSING.value)
            return cancel_deposit(**kwargs)

        with patch.object(self.gateway, "cancel_deposit", side_effect=paid_elsewhere):
            with self.assertRaises(InvalidStateError):
                self._cancel(order)
        self.assertEqual(Order.objects.get(pk=order.pk).status, "ORDER_PROCESSING")

    def test_unknown_order(self):
        with self.assertRaises(OrderNotFoundError):
            CancelOrderUseCase.execute(CancelOrderCommand(order_id="ORD-0-NOPE00"))


@override_settings(PAYMENT_PROVIDER="sandbox", GLOBAL_ADMIN_FEE_PERCENT=Decimal("2"))
class OrderApiTests(SandboxOrderMixin, TestCase):
    def setUp(self) -> None:
        super().setUp()
        self.client = APIClient()
        self.payload = {
            "product_code": "PLN20",
            "target_id": "5512345678",
            "payment_method_code": "BCA",
            "provider_name": "PLN",
        }

    def test_create_order(self):
        res = self.client.post("/api/create-order", self.payload, format="json")

        self.assertEqual(res.status_code, 201)
        body = res.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["data"]["order"]["status"], "PENDING_PAYMENT")
        self.assertEqual(body["data"]["order"]["total_amount_due"], "10850")
        self.assertEqual(body["data"]["payment_details"]["id"], body["data"]["order"]["atlantic_deposit_id"])

    def test_create_order_accepts_storefront_key_names(self):
        body = {"productId": "PLN20", "targetId": "5512345678", "paymentMethodCode": "BCA", "providerName": "PLN"}

        res = self.client.post("/api/create-order", body, format="json")

        self.assertEqual(res.status_code, 201)
        order = res.json()["data"]["order"]
        self.assertEqual(order["product_code"], "PLN20")
        self.assertEqual(order["target_id"], "5512345678")

    def test_create_order_prefers_snake_case_keys(self):
        body = {**self.payload, "productId": "NOPE"}

        res = self.client.post("/api/create-order", body, format="json")

        self.assertEqual(res.status_code, 201)
        self.assertEqual(res.json()["data"]["order"]["product_code"], "PLN20")

    def test_create_order_missing_field(self):
        self.payload.pop("payment_method_code")

        res = self.client.post("/api/create-order", self.payload, format="json")

        self.assertEqual(res.status_code, 400)
        body = res.json()
        self.assertFalse(body["success"])
        self.assertEqual(body["error"]["code"], "invalid_request")
        self.assertEqual(body["error"]["field"], "payment_method_code")

    def test_create_order_unknown_product(self):
        self.payload["product_code"] = "NOPE"

        res = self.client.post("/api/create-order", self.payload, format="json")

        self.assertEqual(res.status_code, 404)
        self.assertEqual(res.json()["message"], "Product not found.")

    def test_create_order_provider_rejection(self):
        self.gateway.script("open_deposit", GatewayResult.rejected("Saldo tidak cukup"))

        res = self.client.post("/api/create-order", self.payload, format="json")

        self.assertEqual(res.status_code, 502)
        self.assertEqual(res.json()["error"]["code"], "upstream_rejected")
        self.assertEqual(Order.objects.count(), 0)

    def test_order_status_reconciles(self):
        order = self._create_order()
        self.gateway.settle_deposit(order.atlantic_deposit_id, "success")

        res = self.client.get(f"/api/order-status/{order.order_id}")

        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()["data"]["status"], "ORDER_PROCESSING")

    def test_order_status_unknown_order(self):
        res = self.client.get("/api/order-status/ORD-0-NOPE00")

        self.assertEqual(res.status_code, 404)
        self.assertEqual(res.json()["error"]["code"], "not_found")

    def test_order_status_provider_down(self):
        order = self._create_order()
        self.gateway.script("deposit_status", GatewayResult.unreachable("timed out"))

        res = self.client.get(f"/api/order-status/{order.order_id}")

        self.assertEqual(res.status_code, 502)
        self.assertEqual(res.json()["error"]["code"], "upstream_unreachable")

    def test_cancel_order(self):
        order = self._create_order()

        res = self.client.post(f"/api/cancel-order/{order.order_id}")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()["data"]["status"], "PAYMENT_CANCELLED")

        res = self.client.post(f"/api/cancel-order/{order.order_id}")
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.json()["error"]["code"], "invalid_state")

    def test_create_order_unpriceable_product(self):
        snapshot = CatalogCache.snapshot()
        free = Product(code="PLN0", name="PLN 0", price=Decimal("0"), provider="PLN", category="Token Listrik")
        CatalogCache.replace(
            CatalogSnapshot.build(products=[*snapshot.products, free], payment_methods=snapshot.payment_methods)
        )
        self.payload["product_code"] = "PLN0"

        res = self.client.post("/api/create-order", self.payload, format="json")

        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.json()["error"]["field"], "product_code")


class StructuredLoggingTests(SimpleTestCase):
    def test_extra_fields_reach_the_log_line(self):
        (handler,) = logging.getLogger("topup").handlers
        self.assertIsInstance(handler.formatter, jsonlogger.JsonFormatter)
        record = logging.getLogger("topup.orders").makeRecord(
            "topup.orders",
            logging.INFO,
            __file__,
            1,
            "order_reconciled",
            (),
            None,
            extra={"order_id": "ORD-1-ABC123", "from_status": "PENDING_PAYMENT", "to_status": "ORDER_PROCESSING"},
        )

        payload = json.loads(handler.format(record))

        self.assertEqual(payload["message"], "order_reconciled")
        self.assertEqual(payload["levelname"], "INFO")
        self.assertEqual(payload["name"], "topup.orders")
        self.assertEqual(payload["order_id"], "ORD-1-ABC123")
        self.assertEqual(payload["to_status"], "ORDER_PROCESSING")


@override_settings(PAYMENT_PROVIDER="sandbox", GLOBAL_ADMIN_FEE_PERCENT=Decimal("2"))
class ConcurrentReconcileTests(SandboxOrderMixin, TransactionTestCase):
    """Threads get their own database connections; the test database is a SQLite file."""

    def _run_together(self, *order_ids: str) -> tuple[list[Order], list[Exception]]:
        start = threading.Barrier(len(order_ids))
        results: list[Order] = []
        errors: list[Exception] = []

        def worker(order_id: str) -> None:
            try:
                start.wait(timeout=5)
                results.append(ReconcileOrderUseCase.execute(ReconcileOrderCommand(order_id=order_id)))
            except Exception as exc:
                errors.append(exc)
            finally:
                connections.close_all()

        threads = [threading.Thread(target=worker, args=(order_id,)) for order_id in order_ids]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=20)
        return results, errors

    def test_different_orders_reconcile_side_by_side(self):
        first = self._create_order()
        second = self._create_order()
        for order in (first, second):
            self.gateway.settle_deposit(order.atlantic_deposit_id, "processing")
        both_polled = threading.Barrier(2)
        deposit_status = self.gateway.deposit_status

        def poll_after_both_have_read(**kwargs):
            both_polled.wait(timeout=5)
            return deposit_status(**kwargs)

        with patch.object(self.gateway, "deposit_status", side_effect=poll_after_both_have_read):
            results, errors = self._run_together(first.order_id, second.order_id)

        self.assertEqual(errors, [])
        self.assertEqual(len(results), 2)
        for order in (first, second):
            self.assertEqual(Order.objects.get(pk=order.pk).status, "PAYMENT_PROCESSING")

    def test_simultaneous_reconciles_create_one_transaction(self):
        order = _make_order(status=OrderStatus.PAYMENT_SUCCESSFUL_PROCESSING_ORDER.value)
        create = self.gateway.create_transaction

        def slow_create(**kwargs):
            time.sleep(0.1)
            return create(**kwargs)

        with patch.object(self.gateway, "create_transaction", side_effect=slow_create):
            results, errors = self._run_together(order.order_id, order.order_id)

        self.assertEqual(errors, [])
        self.assertEqual(len(self.gateway.calls_for("create_transaction")), 1)
        stored = Order.objects.get(pk=order.pk)
        self.assertEqual(stored.status, "ORDER_PROCESSING")
        self.assertEqual({r.atlantic_transaction_id for r in results}, {stored.atlantic_transaction_id})
