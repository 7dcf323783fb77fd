from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_CEILING, Decimal

HUNDRED = Decimal("100")
WHOLE_UNIT = Decimal("1")


@dataclass(frozen=True)
class PriceQuote:
    base_price: Decimal
    payment_method_fee: Decimal
    global_admin_fee: Decimal
    total_admin_fee: Decimal
    total_amount_due: Decimal

    @property
    def deposit_nominal(self) -> int:
        return int(self.total_amount_due)


def _as_decimal(value) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def quote_price(*, base_price, flat_fee, fee_percent, global_admin_fee_percent) -> PriceQuote:
    """
    paymentMethodFee = flatFee + basePrice * feePercent / 100
    globalAdminFee   = basePrice * globalAdminFeePercent / 100
    totalAmountDue   = ceil(basePrice + paymentMethodFee + globalAdminFee)

    Exact decimal arithmetic; only the amount due is rounded (up, to a whole unit).
    """
    base = _as_decimal(base_price)
    if base <= 0:
        raise ValueError("Base price must be positive")

    payment_method_fee = _as_decimal(flat_fee) + base * _as_decimal(fee_percent) / HUNDRED
    global_admin_fee = base * _as_decimal(global_admin_fee_percent) / HUNDRED
    total_admin_fee = payment_method_fee + global_admin_fee
    total_amount_due = (base + total_admin_fee).quantize(WHOLE_UNIT, rounding=ROUND_CEILING)
    return PriceQuote(
        base_price=base,
        payment_method_fee=payment_method_fee,
        global_admin_fee=global_admin_fee,
        total_admin_fee=total_admin_fee,
        total_amount_due=total_amount_due,
    )
