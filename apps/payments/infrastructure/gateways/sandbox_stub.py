from __future__ import annotations

import copy
import threading
from collections import defaultdict, deque
from uuid import uuid4

from apps.payments.domain.ports import GatewayResult

DEFAULT_PRODUCTS: list[dict] = [
    {
        "code": "TSEL10",
        "name": "Telkomsel 10.000",
        "category": "Pulsa",
        "provider": "TELKOMSEL",
        "type": "prabayar",
        "price": "10350",
        "status": "available",
        "img_url": "https://sandbox.invalid/img/telkomsel.png",
    },
    {
        "code": "TSEL25",
        "name": "Telkomsel 25.000",
        "category": "Pulsa",
        "provider": "TELKOMSEL",
        "type": "prabayar",
        "price": "25150",
        "status": "available",
        "img_url": "https://sandbox.invalid/img/telkomsel.png",
    },
    {
        "code": "ML86",
        "name": "86 Diamonds",
        "category": "Games",
        "provider": "MOBILE LEGENDS",
        "type": "prabayar",
        "price": "20500",
        "status": "available",
        "img_url": "https://sandbox.invalid/img/mlbb.png",
    },
    {
        "code": "ISAT5",
        "name": "Indosat 5.000",
        "category": "Pulsa",
        "provider": "INDOSAT",
        "type": "prabayar",
        "price": "5900",
        "status": "empty",
        "img_url": "https://sandbox.invalid/img/indosat.png",
    },
]

DEFAULT_PAYMENT_METHODS: list[dict] = [
    {"metode": "BCA", "name": "BCA Virtual Account", "type": "va", "fee": "500", "fee_persen": "1.5", "status": "aktif"},
    {"metode": "GOPAY", "name": "GoPay", "type": "ewallet", "fee": "0", "fee_persen": "2", "status": "aktif"},
    {"metode": "QRIS", "name": "QRIS", "type": "ewallet", "fee": "0", "fee_persen": "0.7", "status": "aktif"},
    {"metode": "BRI", "name": "BRI Virtual Account", "type": "va", "fee": "3000", "fee_persen": "0", "status": "nonaktif"},
]


class SandboxStubGateway:
    """
    In-memory stand-in for the H2H provider.

    Deposits and transactions live in dictionaries keyed by provider id. Duplicate
    reference ids are rejected the way the real provider does. Tests drive the
    lifecycle with `settle_deposit` / `settle_transaction`, or queue canned
    results per operation with `script`.
    """

    code = "sandbox"
    name = "Sandbox Stub"

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.reset()

    def reset(self, *, products: list[dict] | None = None, payment_methods: list[dict] | None = None) -> None:
        with self._lock:
            self.products = copy.deepcopy(DEFAULT_PRODUCTS if products is None else products)
            self.methods = copy.deepcopy(DEFAULT_PAYMENT_METHODS if payment_methods is None else payment_methods)
            self.deposits: dict[str, dict] = {}
            self.transactions: dict[str, dict] = {}
            self.calls: list[tuple[str, dict]] = []
            self._scripted: dict[str, deque[GatewayResult]] = defaultdict(deque)

    def script(self, operation: str, *results: GatewayResult) -> None:
        with self._lock:
            self._scripted[operation].extend(results)

    def settle_deposit(self, deposit_id: str, status: str, **extra) -> None:
        with self._lock:
            self.deposits[deposit_id].update({"status": status, **extra})

    def settle_transaction(self, transaction_id: str, status: str, **extra) -> None:
        with self._lock:
            self.transactions[transaction_id].update({"status": status, **extra})

    def calls_for(self, operation: str) -> list[dict]:
        return [params for name, params in self.calls if name == operation]

    def price_list(self, *, product_type: str = "prabayar") -> GatewayResult:
        canned = self._begin("price_list", product_type=product_type)
        if canned is not None:
            return canned
        return GatewayResult.ok(copy.deepcopy(self.products))

    def payment_methods(self) -> GatewayResult:
        canned = self._begin("payment_methods")
        if canned is not None:
            return canned
        return GatewayResult.ok(copy.deepcopy(self.methods))

    def open_deposit(self, *, reff_id: str, amount: int, payment_type: str, method: str) -> GatewayResult:
        canned = self._begin("open_deposit", reff_id=reff_id, amount=amount, payment_type=payment_type, method=method)
        if canned is not None:
            return canned
        with self._lock:
            if any(d["reff_id"] == reff_id for d in self.deposits.values()):
                return GatewayResult.rejected("Reff ID sudah digunakan.")
            deposit_id = f"SBX-DEP-{uuid4().hex[:12]}"
            deposit = {
                "id": deposit_id,
                "reff_id": reff_id,
                "nominal": amount,
                "type": payment_type,
                "metode": method,
                "status": "pending",
                "url": f"https://sandbox.invalid/pay/{deposit_id}",
            }
            self.deposits[deposit_id] = deposit
            return GatewayResult.ok(dict(deposit))

    def deposit_status(self, *, deposit_id: str) -> GatewayResult:
        canned = self._begin("deposit_status", deposit_id=deposit_id)
        if canned is not None:
            return canned
        with self._lock:
            deposit = self.deposits.get(deposit_id)
            if deposit is None:
                return GatewayResult.rejected("Deposit tidak ditemukan.")
            return GatewayResult.ok({"id": deposit["id"], "reff_id": deposit["reff_id"], "status": deposit["status"]})

    def cancel_deposit(self, *, deposit_id: str) -> GatewayResult:
        canned = self._begin("cancel_deposit", deposit_id=deposit_id)
        if canned is not None:
            return canned
        with self._lock:
            deposit = self.deposits.get(deposit_id)
            if deposit is None:
                return GatewayResult.rejected("Deposit tidak ditemukan.")
            if deposit["status"] not in ("pending", "processing"):
                return GatewayResult.rejected(f"Deposit sudah {deposit['status']}.")
            deposit["status"] = "cancel"
            return GatewayResult.ok({"id": deposit["id"], "status": "cancel"})

    def create_transaction(self, *, product_code: str, reff_id: str, target: str) -> GatewayResult:
        canned = self._begin("create_transaction", product_code=product_code, reff_id=reff_id, target=target)
        if canned is not None:
            return canned
        with self._lock:
            if any(t["reff_id"] == reff_id for t in self.transactions.values()):
                return GatewayResult.rejected("Reff ID sudah digunakan.")
            transaction_id = f"SBX-TRX-{uuid4().hex[:12]}"
            trx = {
                "id": transaction_id,
                "reff_id": reff_id,
                "layanan": product_code,
                "target": target,
                "status": "pending",
                "sn": None,
            }
            self.transactions[transaction_id] = trx
            return GatewayResult.ok(dict(trx))

    def transaction_status(self, *, transaction_id: str, product_type: str = "prabayar") -> GatewayResult:
        canned = self._begin("transaction_status", transaction_id=transaction_id, product_type=product_type)
        if canned is not None:
            return canned
        with self._lock:
            trx = self.transactions.get(transaction_id)
            if trx is None:
                return GatewayResult.rejected("Transaksi tidak ditemukan.")
            return GatewayResult.ok(dict(trx))

    def _begin(self, operation: str, **params) -> GatewayResult | None:
        with self._lock:
            self.calls.append((operation, params))
            queue = self._scripted.get(operation)
            if queue:
                return queue.popleft()
        return None
