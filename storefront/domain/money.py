# storefront/domain/money.py
"""
Fixed-point money.

Amounts are integers in the smallest unit of their currency (cents for USD,
yen for JPY). Decimal is only used at the edges: parsing user input,
rendering, and converting between currencies. Rounding is ROUND_HALF_UP and
happens at those edges only.
"""
from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Protocol

from storefront.domain.errors import InvalidAmount, InvalidCurrency


class CurrencyLike(Protocol):
    code: str
    symbol: str
    precision: int
    exchange_rate: Decimal


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def to_minor_units(value: Decimal | str | int, precision: int = 2) -> int:
    """Parse a major-unit amount ("199.98") into minor units (19998)."""
    value = Decimal(str(value))
    if value < 0:
        raise InvalidAmount(f"amount cannot be negative: {value}")
    return round_half_up(value.scaleb(precision))


def from_minor_units(amount: int, precision: int = 2) -> Decimal:
    return Decimal(amount).scaleb(-precision).quantize(Decimal(1).scaleb(-precision))


def percentage_of(amount: int, percent: Decimal | int) -> int:
    return round_half_up(Decimal(amount) * Decimal(str(percent)) / Decimal(100))


def convert(amount: int, source: CurrencyLike, target: CurrencyLike) -> int:
    """
    Convert minor units of `source` into minor units of `target`.

    Rates are expressed against the default currency, so the amount is first
    brought back to the default currency and then out to the target. Currencies
    with different precisions (USD -> JPY) are rescaled on the way.
    """
    if amount < 0:
        raise InvalidAmount(f"amount cannot be negative: {amount}")
    if source.code == target.code:
        return amount
    if source.exchange_rate <= 0 or target.exchange_rate <= 0:
        raise InvalidCurrency("exchange rate must be positive")

    major = Decimal(amount).scaleb(-source.precision)
    converted = major / Decimal(source.exchange_rate) * Decimal(target.exchange_rate)
    return round_half_up(converted.scaleb(target.precision))


def format_money(amount: int, currency: CurrencyLike) -> str:
    return f"{currency.symbol}{from_minor_units(amount, currency.precision)}"
