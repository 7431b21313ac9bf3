"""
Order pricing.

``compute_totals`` is the single pricing algorithm. The API runs it to decide
what an order costs; the checkout client runs the same function to preview
that number. It is pure: the fee schedule is an argument, not hidden state.
"""
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Context, Decimal, InvalidOperation, getcontext
from typing import Any, Dict, Iterable, Mapping, Optional

import config

CENT = Decimal("0.01")
ZERO = Decimal("0")
# Amounts with more integer digits than this are treated as unusable.
MAX_AMOUNT_DIGITS = 100

SPRINT10 = "SPRINT10"
SHIPFREE = "SHIPFREE"
PROMO_CODES = {
    SPRINT10: "Save 10% up to {cap}.",
    SHIPFREE: "Shipping fee waived.",
}

DELIVERY_STANDARD = "standard"
DELIVERY_EXPRESS = "express"


@dataclass(frozen=True)
class FeeSchedule:
    shipping: Mapping[str, float] = field(default_factory=dict)
    protection: float = 0.0
    sprint10_rate: float = 0.10
    sprint10_cap: float = 0.0


DEFAULT_FEES = FeeSchedule(
    shipping={DELIVERY_STANDARD: config.SHIPPING_STANDARD, DELIVERY_EXPRESS: config.SHIPPING_EXPRESS},
    protection=config.PROTECTION_FEE,
    sprint10_rate=config.SPRINT10_RATE,
    sprint10_cap=config.SPRINT10_CAP,
)


@dataclass(frozen=True)
class PriceBreakdown:
    items_price: float
    shipping_price: float
    protection_price: float
    discount_price: float
    total_price: float
    promo_code: Optional[str] = None

    @property
    def chargeable(self) -> bool:
        return self.total_price > 0

    def as_dict(self) -> Dict[str, float]:
        return {
            "items_price": self.items_price,
            "shipping_price": self.shipping_price,
            "protection_price": self.protection_price,
            "discount_price": self.discount_price,
            "total_price": self.total_price,
        }


def to_amount(value: Any) -> Decimal:
    """Parse a money value. Anything unusable (NaN, inf, garbage, < 0, absurdly large) is 0."""
    if isinstance(value, bool):
        return ZERO
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, TypeError, ValueError):
        return ZERO
    if not amount.is_finite() or amount < 0 or amount.adjusted() >= MAX_AMOUNT_DIGITS:
        return ZERO
    return amount


def to_quantity(value: Any) -> int:
    try:
        qty = int(value)
    except (TypeError, ValueError, OverflowError):
        return 1
    return qty if qty >= 1 else 1


def normalize_promo(code: Optional[str]) -> Optional[str]:
    """Trimmed, uppercased promo code if it is a known one, else None."""
    normalized = (code or "").strip().upper()
    return normalized if normalized in PROMO_CODES else None


def describe_promo(code: str, fees: FeeSchedule = DEFAULT_FEES) -> str:
    cap = _cents(to_amount(fees.sprint10_cap))
    return f"{code} applied. " + PROMO_CODES[code].format(cap=_plain(cap))


def _field(item: Any, name: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(name)
    return getattr(item, name, None)


def _cents(value: Decimal) -> Decimal:
    # quantize needs a digit of precision for every integer digit plus the cents.
    context = Context(prec=max(getcontext().prec, value.adjusted() + 3))
    return value.quantize(CENT, rounding=ROUND_HALF_UP, context=context)


def _plain(value: Decimal) -> str:
    return format(value.normalize(), "f")


def items_subtotal(line_items: Iterable[Any]) -> Decimal:
    total = ZERO
    for item in line_items:
        total += to_amount(_field(item, "unit_price")) * to_quantity(_field(item, "quantity"))
    return total


def compute_totals(line_items: Iterable[Any], delivery_option: str = DELIVERY_STANDARD,
                   protection: bool = False, promo_code: Optional[str] = None,
                   fees: FeeSchedule = DEFAULT_FEES) -> PriceBreakdown:
    """Price a cart.

    ``line_items`` may be mappings or objects; each needs ``unit_price`` and
    ``quantity``. Unknown delivery options price as standard and unknown
    promo codes give no discount. Never raises on bad item data.
    """
    # Components are rounded before the total so the stored breakdown adds up.
    items_price = _cents(items_subtotal(line_items))

    shipping_table = fees.shipping or {}
    shipping_fee = shipping_table.get(delivery_option, shipping_table.get(DELIVERY_STANDARD, 0))
    shipping_price = _cents(to_amount(shipping_fee))
    protection_price = _cents(to_amount(fees.protection)) if protection else ZERO

    promo = normalize_promo(promo_code)
    discount_price = ZERO
    if promo == SPRINT10:
        discount_price = _cents(min(items_price * to_amount(fees.sprint10_rate), to_amount(fees.sprint10_cap)))
    elif promo == SHIPFREE:
        discount_price = shipping_price

    total_price = max(ZERO, items_price + shipping_price + protection_price - discount_price)

    return PriceBreakdown(
        items_price=float(items_price),
        shipping_price=float(shipping_price),
        protection_price=float(protection_price),
        discount_price=float(discount_price),
        total_price=float(total_price),
        promo_code=promo,
    )
