# storefront/domain/discounts.py
"""
Discount evaluation.

`evaluate` is a pure function: it reads the discount definition and a priced
snapshot of the basket and returns the discount in minor units. Nothing here
touches the database; usage counting is done by DiscountRepo with a
conditional UPDATE once the order is written.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Callable, Iterable, Sequence

from storefront.domain.errors import DiscountInvalid, InvalidInput
from storefront.domain.money import percentage_of


class DiscountType(str, Enum):
    BASKET = "basket"
    PRODUCT = "product"


class DiscountMethod(str, Enum):
    FIXED = "fixed"
    PERCENTAGE = "percentage"


@dataclass(frozen=True)
class PricedLine:
    product_id: int
    subtotal: int


@dataclass(frozen=True)
class AppliedDiscount:
    discount_id: int
    discount_code: str
    discount_amount: int


# (product_id, category_id) -> bool
CategoryLookup = Callable[[int, int], bool]


def _aware(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_valid(discount, now: datetime | None = None) -> bool:
    now = _aware(now) or datetime.now(timezone.utc)

    if not discount.active:
        return False

    start, end = _aware(discount.start_date), _aware(discount.end_date)
    if start and now < start:
        return False
    if end and now > end:
        return False

    if discount.usage_limit and discount.current_usage >= discount.usage_limit:
        return False
    return True


def _matches(discount, product_id: int, in_category: CategoryLookup | None) -> bool:
    if product_id in (discount.product_ids or []):
        return True
    if in_category is None:
        return False
    return any(in_category(product_id, category_id) for category_id in (discount.category_ids or []))


def evaluate(
    discount,
    lines: Sequence[PricedLine],
    in_category: CategoryLookup | None = None,
    now: datetime | None = None,
) -> int:
    total = sum(line.subtotal for line in lines)

    if not is_valid(discount, now):
        raise DiscountInvalid(f"Discount {discount.code} is not valid", code=discount.code)

    if total < (discount.min_order_value or 0):
        raise DiscountInvalid(
            f"Order total must be at least {discount.min_order_value} to use discount {discount.code}",
            code=discount.code,
        )

    if DiscountType(discount.type) is DiscountType.PRODUCT:
        base = sum(line.subtotal for line in lines if _matches(discount, line.product_id, in_category))
    else:
        base = total

    if DiscountMethod(discount.method) is DiscountMethod.FIXED:
        # fixed product discounts apply once to the matched set
        amount = int(discount.value) if base > 0 else 0
    else:
        amount = percentage_of(base, Decimal(str(discount.value)))

    if discount.max_discount_value and amount > discount.max_discount_value:
        amount = discount.max_discount_value

    return max(0, min(amount, total))


def evaluate_applicable(
    discount,
    lines: Sequence[PricedLine],
    in_category: CategoryLookup | None = None,
    now: datetime | None = None,
) -> int:
    """evaluate(), refusing a discount that would take nothing off."""
    amount = evaluate(discount, lines, in_category=in_category, now=now)
    if amount <= 0:
        raise DiscountInvalid(
            f"Discount {discount.code} does not apply to any item in the basket",
            code=discount.code,
        )
    return amount


def validate_definition(
    code: str,
    type: str,
    method: str,
    value: Decimal | int,
    product_ids: Iterable[int] = (),
    category_ids: Iterable[int] = (),
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    min_order_value: int = 0,
    max_discount_value: int = 0,
    usage_limit: int = 0,
) -> None:
    if not code or not code.strip():
        raise InvalidInput("Discount code is required")

    try:
        kind, how = DiscountType(type), DiscountMethod(method)
    except ValueError:
        raise InvalidInput(f"Unknown discount type/method: {type}/{method}")

    value = Decimal(str(value))
    if value <= 0:
        raise InvalidInput("Discount value must be positive")
    if how is DiscountMethod.PERCENTAGE and value > 100:
        raise InvalidInput("Percentage discount cannot exceed 100")
    if how is DiscountMethod.FIXED and value != value.to_integral_value():
        raise InvalidInput("Fixed discount value must be in minor units")

    if kind is DiscountType.PRODUCT and not list(product_ids) and not list(category_ids):
        raise InvalidInput("Product discount needs at least one product or category")

    if min(min_order_value, max_discount_value, usage_limit) < 0:
        raise InvalidInput("Discount limits cannot be negative")

    if start_date and end_date and _aware(end_date) <= _aware(start_date):
        raise InvalidInput("Discount end date must be after start date")
