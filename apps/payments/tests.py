from __future__ import annotations

import json
from unittest.mock import MagicMock

import requests
from django.test import SimpleTestCase, override_settings

from apps.payments.application.facade import PaymentGatewayFacade
from apps.payments.domain.errors import UpstreamBusinessError, UpstreamTransportError
from apps.payments.domain.ports import GatewayOutcome, GatewayResult
from apps.payments.infrastructure.gateways.atlantic_gateway import AtlanticGateway
from apps.payments.infrastructure.gateways.sandbox_stub import SandboxStubGateway


def _response(status_code: int, body) -> requests.Response:
    response = requests.Response()
    response.status_code = status_code
    response.encoding = "utf-8"
    response._content = body if isinstance(body, bytes) else json.dumps(body).encode("utf-8")
    return response


class GatewayResultTests(SimpleTestCase):
    def test_ok_result_exposes_upper_cased_status(self):
        result = GatewayResult.ok({"id": "D1", "status": "success"})
        self.assertTrue(result.is_ok)
        self.assertEqual(result.provider_status, "SUCCESS")
        self.assertEqual(result.raise_for_outcome(), {"id": "D1", "status": "success"})

    def test_rejected_raises_business_error(self):
        with self.assertRaises(UpstreamBusinessError) as ctx:
            GatewayResult.rejected("Saldo tidak cukup").raise_for_outcome()
        self.assertEqual(str(ctx.exception), "Saldo tidak cukup")

    def test_unreachable_raises_transport_error_with_default_message(self):
        with self.assertRaises(UpstreamTransportError) as ctx:
            GatewayResult.unreachable("").raise_for_outcome(default_message="Deposit failed.")
        self.assertEqual(str(ctx.exception), "Deposit failed.")

    def test_payload_is_empty_for_list_data(self):
        result = GatewayResult.ok([{"code": "A"}])
        self.assertEqual(result.payload, {})
        self.assertEqual(result.provider_status, "")


class AtlanticGatewayTests(SimpleTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.session = MagicMock(spec=requests.Session)
        self.gateway = AtlanticGateway(
            base_url="https://h2h.example.com/",
            api_key="secret-key",
            timeout=5,
            session=self.session,
        )

    def test_posts_form_body_with_api_key(self):
        self.session.post.return_value = _response(200, {"status": True, "data": {"id": "DEP1", "status": "pending"}})

        result = self.gateway.open_deposit(reff_id="DEP-ORD-1", amount=10850, payment_type="va", method="BCA")

        self.assertEqual(result.outcome, GatewayOutcome.OK)
        self.assertEqual(result.payload["id"], "DEP1")
        args, kwargs = self.session.post.call_args
        self.assertEqual(args[0], "https://h2h.example.com/deposit/create")
        self.assertEqual(
            kwargs["data"],
            {"api_key": "secret-key", "reff_id": "DEP-ORD-1", "nominal": 10850, "type": "va", "metode": "BCA"},
        )
        self.assertEqual(kwargs["headers"]["Content-Type"], "application/x-www-form-urlencoded")
        self.assertEqual(kwargs["timeout"], 5)

    def test_transaction_status_sends_prepaid_type(self):
        self.session.post.return_value = _response(200, {"status": True, "data": {"id": "T1", "status": "success"}})

        self.gateway.transaction_status(transaction_id="T1")

        _, kwargs = self.session.post.call_args
        self.assertEqual(kwargs["data"]["type"], "prabayar")
        self.assertEqual(kwargs["data"]["id"], "T1")

    def test_status_false_is_rejected_with_provider_message(self):
        self.session.post.return_value = _response(200, {"status": False, "message": "Metode tidak tersedia"})

        result = self.gateway.open_deposit(reff_id="R", amount=1, payment_type="va", method="X")

        self.assertEqual(result.outcome, GatewayOutcome.REJECTED)
        self.assertEqual(result.message, "Metode tidak tersedia")

    def test_status_true_without_data_is_rejected(self):
        self.session.post.return_value = _response(200, {"status": True, "data": None})

        result = self.gateway.deposit_status(deposit_id="D1")

        self.assertEqual(result.outcome, GatewayOutcome.REJECTED)

    def test_timeout_is_unreachable(self):
        self.session.post.side_effect = requests.exceptions.Timeout("read timed out")

        result = self.gateway.deposit_status(deposit_id="D1")

        self.assertEqual(result.outcome, GatewayOutcome.UNREACHABLE)
        self.assertIn("timed out", result.message)

    def test_connection_error_message_does_not_leak_api_key(self):
        self.session.post.side_effect = requests.exceptions.ConnectionError("api_key=secret-key refused")

        result = self.gateway.cancel_deposit(deposit_id="D1")

        self.assertEqual(result.outcome, GatewayOutcome.UNREACHABLE)
        self.assertNotIn("secret-key", result.message)

    def test_non_2xx_with_json_message_is_rejected(self):
        self.session.post.return_value = _response(400, {"status": False, "message": "Reff ID sudah digunakan"})

        result = self.gateway.create_transaction(product_code="PLN20", reff_id="TRX-1", target="123")

        self.assertEqual(result.outcome, GatewayOutcome.REJECTED)
        self.assertEqual(result.message, "Reff ID sudah digunakan")

    def test_non_2xx_with_html_body_is_unreachable(self):
        self.session.post.return_value = _response(502, b"<html>Bad gateway</html>")

        result = self.gateway.price_list()

        self.assertEqual(result.outcome, GatewayOutcome.UNREACHABLE)
        self.assertIn("502", result.message)

    def test_non_json_success_body_is_unreachable(self):
        self.session.post.return_value = _response(200, b"maintenance")

        result = self.gateway.payment_methods()

        self.assertEqual(result.outcome, GatewayOutcome.UNREACHABLE)


class SandboxStubGatewayTests(SimpleTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.gateway = SandboxStubGateway()

    def test_duplicate_transaction_reference_is_rejected(self):
        first = self.gateway.create_transaction(product_code="A", reff_id="TRX-1", target="1")
        second = self.gateway.create_transaction(product_code="A", reff_id="TRX-1", target="1")

        self.assertTrue(first.is_ok)
        self.assertEqual(second.outcome, GatewayOutcome.REJECTED)
        self.assertEqual(len(self.gateway.transactions), 1)

    def test_scripted_results_are_consumed_in_order(self):
        self.gateway.script("deposit_status", GatewayResult.unreachable("down"), GatewayResult.rejected("nope"))

        self.assertEqual(self.gateway.deposit_status(deposit_id="X").outcome, GatewayOutcome.UNREACHABLE)
        self.assertEqual(self.gateway.deposit_status(deposit_id="X").outcome, GatewayOutcome.REJECTED)
        self.assertEqual(len(self.gateway.calls_for("deposit_status")), 2)

    def test_cancel_only_pending_deposits(self):
        deposit = self.gateway.open_deposit(reff_id="DEP-1", amount=100, payment_type="va", method="BCA").payload
        self.gateway.settle_deposit(deposit["id"], "success")

        result = self.gateway.cancel_deposit(deposit_id=deposit["id"])

        self.assertEqual(result.outcome, GatewayOutcome.REJECTED)


class PaymentGatewayFacadeTests(SimpleTestCase):
    def test_unknown_provider_raises(self):
        with self.assertRaises(ValueError):
            PaymentGatewayFacade.get("paypal")

    @override_settings(PAYMENT_PROVIDER="sandbox")
    def test_active_follows_settings(self):
        self.assertEqual(PaymentGatewayFacade.active().code, "sandbox")

    @override_settings(PAYMENT_PROVIDER=" Atlantic ")
    def test_lookup_is_case_insensitive(self):
        self.assertIsInstance(PaymentGatewayFacade.active(), AtlanticGateway)
