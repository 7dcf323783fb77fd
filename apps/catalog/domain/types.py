from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Iterable


def parse_decimal(raw, *, default: Decimal | None = None) -> Decimal | None:
    if raw is None or raw == "":
        return default
    try:
        value = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        return default
    if not value.is_finite():
        return default
    return value


@dataclass(frozen=True)
class Product:
    code: str
    name: str
    price: Decimal
    provider: str
    category: str
    img_url: str = ""
    status: str = ""
    raw: dict = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_provider(cls, payload: dict) -> "Product | None":
        code = str(payload.get("code") or "").strip()
        price = parse_decimal(payload.get("price"))
        if not code or price is None or price <= 0:
            return None
        return cls(
            code=code,
            name=str(payload.get("name") or ""),
            price=price,
            provider=str(payload.get("provider") or ""),
            category=str(payload.get("category") or ""),
            img_url=str(payload.get("img_url") or ""),
            status=str(payload.get("status") or ""),
            raw=dict(payload),
        )

    def matches(self, *, code: str, provider_or_category: str) -> bool:
        wanted = (provider_or_category or "").strip().lower()
        return self.code == code and wanted in (self.provider.lower(), self.category.lower())


@dataclass(frozen=True)
class PaymentMethod:
    code: str
    name: str
    payment_type: str
    flat_fee: Decimal
    fee_percent: Decimal
    status: str = ""
    raw: dict = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_provider(cls, payload: dict) -> "PaymentMethod | None":
        code = str(payload.get("metode") or "").strip()
        if not code:
            return None
        return cls(
            code=code,
            name=str(payload.get("name") or code),
            payment_type=str(payload.get("type") or ""),
            flat_fee=parse_decimal(payload.get("fee"), default=Decimal("0")),
            fee_percent=parse_decimal(payload.get("fee_persen"), default=Decimal("0")),
            status=str(payload.get("status") or ""),
            raw=dict(payload),
        )


@dataclass(frozen=True)
class CatalogSnapshot:
    """Point-in-time, read-only view of both catalog collections."""

    products: tuple[Product, ...] = ()
    payment_methods: tuple[PaymentMethod, ...] = ()
    loaded_at: datetime | None = None

    @classmethod
    def build(
        cls,
        *,
        products: Iterable[Product],
        payment_methods: Iterable[PaymentMethod],
        loaded_at: datetime | None = None,
    ) -> "CatalogSnapshot":
        return cls(products=tuple(products), payment_methods=tuple(payment_methods), loaded_at=loaded_at)

    @property
    def has_products(self) -> bool:
        return bool(self.products)

    @property
    def has_payment_methods(self) -> bool:
        return bool(self.payment_methods)

    def find_product(self, code: str, provider_or_category: str) -> Product | None:
        for product in self.products:
            if product.matches(code=code, provider_or_category=provider_or_category):
                return product
        return None

    def find_payment_method(self, code: str) -> PaymentMethod | None:
        for method in self.payment_methods:
            if method.code == code:
                return method
        return None

    def providers(self) -> list[dict]:
        seen: dict[str, dict] = {}
        for product in self.products:
            if product.provider not in seen:
                seen[product.provider] = {
                    "name": product.provider,
                    "category": product.category,
                    "img_url": product.img_url,
                }
        return list(seen.values())

    def products_for_provider(self, provider_name: str) -> list[Product]:
        wanted = (provider_name or "").strip().lower()
        return [p for p in self.products if p.provider.lower() == wanted]

    def visible_payment_methods(self, *, blocked: Iterable[str] = ()) -> list[PaymentMethod]:
        blocked_codes = set(blocked)
        return [m for m in self.payment_methods if m.code not in blocked_codes]
