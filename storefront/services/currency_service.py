# storefront/services/currency_service.py
from decimal import Decimal

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.data.models.currency import CurrencyModel
from storefront.domain import money
from storefront.domain.errors import InvalidCurrency, InvalidInput, InvalidState, NotFound
from storefront.repos.currency_repo import CurrencyRepo
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class CurrencyService:
    """
    Currency catalog and conversions.

    Rates are relative to the default currency; the default always has rate 1.
    Exactly one currency is the default once any currency exists.
    """

    def __init__(self, db: Session):
        self.repo = CurrencyRepo(db)

    # queries
    def get_default(self) -> CurrencyModel:
        currency = self.repo.get_default()
        if not currency:
            raise NotFound("No default currency configured")
        return currency

    def get_currency(self, code: str) -> CurrencyModel:
        currency = self.repo.get(code)
        if not currency:
            raise NotFound(f"Currency {code} not found", code=code)
        return currency

    def get_enabled(self, code: str) -> CurrencyModel:
        currency = self.repo.get(code)
        if not currency or not currency.is_enabled:
            raise InvalidCurrency(f"Currency {code} is not available", code=code)
        return currency

    def list_currencies(self, enabled_only: bool = False) -> list[CurrencyModel]:
        return self.repo.list(enabled_only=enabled_only)

    def convert(self, amount: int, from_code: str, to_code: str) -> int:
        source, target = self.repo.get(from_code), self.repo.get(to_code)
        if not source or not target:
            raise InvalidCurrency(f"Unknown currency in conversion {from_code} -> {to_code}")
        return money.convert(amount, source, target)

    def to_minor_units(self, value, code: str) -> int:
        return money.to_minor_units(value, self.get_currency(code).precision)

    def from_minor_units(self, amount: int, code: str) -> Decimal:
        return money.from_minor_units(amount, self.get_currency(code).precision)

    def format(self, amount: int, code: str) -> str:
        return money.format_money(amount, self.get_currency(code))

    # commands
    def create_currency(
        self,
        code: str,
        name: str,
        symbol: str,
        precision: int = 2,
        exchange_rate: Decimal | str = "1",
        is_enabled: bool = True,
        is_default: bool = False,
    ) -> CurrencyModel:
        code = (code or "").strip().upper()
        if len(code) != 3 or not code.isalpha():
            raise InvalidCurrency(f"Invalid currency code {code!r}")
        if not 0 <= precision <= 4:
            raise InvalidInput("Currency precision must be between 0 and 4")

        rate = Decimal(str(exchange_rate))
        if rate <= 0:
            raise InvalidInput("Exchange rate must be positive")

        if self.repo.get(code):
            raise InvalidInput(f"Currency {code} already exists", code=code)

        # the first currency becomes the default
        make_default = is_default or self.repo.get_default() is None

        currency = CurrencyModel(
            code=code,
            name=name,
            symbol=symbol,
            precision=precision,
            exchange_rate=rate,
            is_enabled=is_enabled,
            is_default=False,
        )
        try:
            self.repo.add(currency)
            self.repo.flush()
            if make_default:
                self.repo.set_default(code)
            self.repo.commit()
        except IntegrityError as e:
            self.repo.rollback()
            raise InvalidInput(f"Currency {code} could not be created") from e

        self.repo.refresh(currency)
        logger.info("currency created", code=code, is_default=currency.is_default)
        return currency

    def update_currency(
        self,
        code: str,
        name: str | None = None,
        symbol: str | None = None,
        precision: int | None = None,
        exchange_rate: Decimal | str | None = None,
    ) -> CurrencyModel:
        currency = self.get_currency(code)

        if exchange_rate is not None:
            rate = Decimal(str(exchange_rate))
            if rate <= 0:
                raise InvalidInput("Exchange rate must be positive")
            if currency.is_default and rate != 1:
                raise InvalidState("The default currency's exchange rate is fixed at 1")
            currency.exchange_rate = rate
        if precision is not None:
            if not 0 <= precision <= 4:
                raise InvalidInput("Currency precision must be between 0 and 4")
            currency.precision = precision
        if name is not None:
            currency.name = name
        if symbol is not None:
            currency.symbol = symbol

        self.repo.commit()
        logger.info("currency updated", code=currency.code)
        return currency

    def set_enabled(self, code: str, enabled: bool) -> CurrencyModel:
        currency = self.get_currency(code)
        if currency.is_default and not enabled:
            raise InvalidState("The default currency cannot be disabled")
        currency.is_enabled = enabled
        self.repo.commit()
        logger.info("currency enabled" if enabled else "currency disabled", code=currency.code)
        return currency

    def set_default(self, code: str) -> CurrencyModel:
        currency = self.get_currency(code)
        try:
            self.repo.set_default(currency.code)
            self.repo.commit()
        except IntegrityError as e:
            self.repo.rollback()
            raise InvalidState("Default currency changed concurrently, retry") from e

        self.repo.refresh(currency)
        logger.info("default currency changed", code=currency.code)
        return currency

    def delete_currency(self, code: str) -> None:
        currency = self.get_currency(code)
        if currency.is_default:
            raise InvalidState("The default currency cannot be deleted")
        self.repo.delete(currency)
        self.repo.commit()
        logger.info("currency deleted", code=currency.code)
