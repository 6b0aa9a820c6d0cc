# storefront/data/models/order.py
from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, Numeric, String
from sqlalchemy.orm import relationship

from storefront.data.database import Base
from storefront.utils.clock import utcnow


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True)
    order_number = Column(String(32), nullable=True, unique=True)
    checkout_id = Column(Integer, nullable=True)

    user_id = Column(Integer, nullable=True, index=True)
    is_guest_order = Column(Boolean, nullable=False, default=False)
    guest_email = Column(String, nullable=True)
    guest_full_name = Column(String, nullable=True)
    guest_phone = Column(String, nullable=True)
    customer_full_name = Column(String, nullable=False)
    customer_email = Column(String, nullable=False)
    customer_phone = Column(String, nullable=True)

    currency = Column(String(3), nullable=False)
    shipping_address = Column(JSON, nullable=False)
    billing_address = Column(JSON, nullable=False)
    shipping_method_id = Column(Integer, nullable=True)
    shipping_cost = Column(Integer, nullable=False, default=0)

    discount_id = Column(Integer, nullable=True)
    discount_code = Column(String(64), nullable=True)
    discount_amount = Column(Integer, nullable=False, default=0)

    total_amount = Column(Integer, nullable=False)
    final_amount = Column(Integer, nullable=False)
    total_weight = Column(Numeric(12, 3), nullable=False, default=0)

    status = Column(String, nullable=False, default="pending")
    payment_id = Column(String, nullable=True, index=True)
    payment_provider = Column(String, nullable=True)
    payment_method = Column(String, nullable=True)
    action_url = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    version = Column(Integer, nullable=False)

    items = relationship(
        "OrderItemModel",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItemModel.id",
    )

    __mapper_args__ = {"version_id_col": version}
