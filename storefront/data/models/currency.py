# storefront/data/models/currency.py
from sqlalchemy import Boolean, Column, DateTime, Index, Integer, Numeric, String, text

from storefront.data.database import Base
from storefront.utils.clock import utcnow


class CurrencyModel(Base):
    __tablename__ = "currencies"

    code = Column(String(3), primary_key=True)
    name = Column(String, nullable=False)
    symbol = Column(String(8), nullable=False)
    precision = Column(Integer, nullable=False, default=2)
    exchange_rate = Column(Numeric(18, 8), nullable=False, default=1)

    is_enabled = Column(Boolean, nullable=False, default=True)
    is_default = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        # at most one default row
        Index(
            "uq_currencies_default",
            "is_default",
            unique=True,
            postgresql_where=text("is_default"),
            sqlite_where=text("is_default = 1"),
        ),
    )
