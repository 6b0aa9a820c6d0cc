# storefront/repos/currency_repo.py
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from storefront.data.models.currency import CurrencyModel


class CurrencyRepo:
    def __init__(self, db: Session):
        self.db = db

    def get(self, code: str) -> CurrencyModel | None:
        return self.db.get(CurrencyModel, code.upper())

    def get_default(self) -> CurrencyModel | None:
        return self.db.execute(
            select(CurrencyModel).where(CurrencyModel.is_default.is_(True))
        ).scalar_one_or_none()

    def list(self, enabled_only: bool = False) -> list[CurrencyModel]:
        stmt = select(CurrencyModel).order_by(CurrencyModel.code)
        if enabled_only:
            stmt = stmt.where(CurrencyModel.is_enabled.is_(True))
        return list(self.db.execute(stmt).scalars().all())

    def add(self, currency: CurrencyModel) -> CurrencyModel:
        self.db.add(currency)
        return currency

    def delete(self, currency: CurrencyModel) -> None:
        self.db.delete(currency)

    def set_default(self, code: str) -> int:
        """Both statements run in the caller's transaction; nothing is committed here."""
        self.db.execute(
            update(CurrencyModel)
            .where(CurrencyModel.is_default.is_(True))
            .values(is_default=False)
        )
        result = self.db.execute(
            update(CurrencyModel)
            .where(CurrencyModel.code == code)
            .values(is_default=True, is_enabled=True, exchange_rate=1)
        )
        return result.rowcount

    def flush(self):
        self.db.flush()

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()

    def refresh(self, currency: CurrencyModel):
        self.db.refresh(currency)
