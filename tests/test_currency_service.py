from decimal import Decimal

import pytest

from storefront.domain.errors import InvalidCurrency, InvalidInput, InvalidState, NotFound
from storefront.services.currency_service import CurrencyService


class TestCurrencyService:
    def _make_service(self, db) -> CurrencyService:
        svc = CurrencyService(db)
        svc.create_currency("EUR", "Euro", "€", exchange_rate="0.9")
        svc.create_currency("JPY", "Yen", "¥", precision=0, exchange_rate="150")
        return svc

    def test_seeded_default(self, db):
        assert CurrencyService(db).get_default().code == "USD"

    def test_create_validates(self, db):
        svc = CurrencyService(db)
        with pytest.raises(InvalidCurrency):
            svc.create_currency("EURO", "Euro", "€")
        with pytest.raises(InvalidInput):
            svc.create_currency("EUR", "Euro", "€", precision=6)
        with pytest.raises(InvalidInput):
            svc.create_currency("EUR", "Euro", "€", exchange_rate="0")
        with pytest.raises(InvalidInput):
            svc.create_currency("usd", "Dollar", "$")

    def test_convert_between_currencies(self, db):
        svc = self._make_service(db)
        assert svc.convert(10000, "USD", "EUR") == 9000
        assert svc.convert(1999, "usd", "jpy") == 2999
        assert svc.convert(9000, "EUR", "USD") == 10000
        with pytest.raises(InvalidCurrency):
            svc.convert(100, "USD", "GBP")

    def test_format_and_units(self, db):
        svc = self._make_service(db)
        assert svc.format(19998, "USD") == "$199.98"
        assert svc.format(1500, "JPY") == "¥1500"
        assert svc.to_minor_units("12.34", "EUR") == 1234
        assert svc.from_minor_units(1234, "EUR") == Decimal("12.34")

    def test_exactly_one_default(self, db):
        svc = self._make_service(db)
        svc.set_default("EUR")
        defaults = [c.code for c in svc.list_currencies() if c.is_default]
        assert defaults == ["EUR"]
        assert svc.get_default().exchange_rate == 1

    def test_default_rate_is_fixed(self, db):
        svc = CurrencyService(db)
        with pytest.raises(InvalidState):
            svc.update_currency("USD", exchange_rate="1.1")

    def test_default_cannot_be_disabled_or_deleted(self, db):
        svc = CurrencyService(db)
        with pytest.raises(InvalidState):
            svc.set_enabled("USD", False)
        with pytest.raises(InvalidState):
            svc.delete_currency("USD")

    def test_disabled_currency_not_offered(self, db):
        svc = self._make_service(db)
        svc.set_enabled("JPY", False)
        assert [c.code for c in svc.list_currencies(enabled_only=True)] == ["EUR", "USD"]
        with pytest.raises(InvalidCurrency):
            svc.get_enabled("JPY")

    def test_delete(self, db):
        svc = self._make_service(db)
        svc.delete_currency("JPY")
        with pytest.raises(NotFound):
            svc.get_currency("JPY")
