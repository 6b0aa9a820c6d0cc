# storefront/data/models/discount.py
from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, Numeric, String

from storefront.data.database import Base
from storefront.utils.clock import utcnow


class DiscountModel(Base):
    __tablename__ = "discounts"

    id = Column(Integer, primary_key=True)
    code = Column(String(64), nullable=False, unique=True, index=True)

    type = Column(String, nullable=False)  # basket, product
    method = Column(String, nullable=False)  # fixed, percentage
    # fixed: minor units, percentage: percent
    value = Column(Numeric(12, 2), nullable=False)

    min_order_value = Column(Integer, nullable=False, default=0)
    max_discount_value = Column(Integer, nullable=False, default=0)
    product_ids = Column(JSON, nullable=False, default=list)
    category_ids = Column(JSON, nullable=False, default=list)

    start_date = Column(DateTime(timezone=True), nullable=True)
    end_date = Column(DateTime(timezone=True), nullable=True)

    usage_limit = Column(Integer, nullable=False, default=0)
    current_usage = Column(Integer, nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
