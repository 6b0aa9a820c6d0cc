# storefront/data/models/checkout.py
from sqlalchemy import JSON, Column, DateTime, Index, Integer, Numeric, String, text
from sqlalchemy.orm import relationship

from storefront.data.database import Base
from storefront.utils.clock import utcnow


class CheckoutModel(Base):
    __tablename__ = "checkouts"

    id = Column(Integer, primary_key=True)
    # exactly one of the two is set
    user_id = Column(Integer, nullable=True, index=True)
    session_id = Column(String(128), nullable=True, index=True)

    status = Column(String, nullable=False, default="active")  # active, completed, abandoned, expired
    currency = Column(String(3), nullable=False)

    shipping_address = Column(JSON, nullable=True)
    billing_address = Column(JSON, nullable=True)

    customer_full_name = Column(String, nullable=True)
    customer_email = Column(String, nullable=True)
    customer_phone = Column(String, nullable=True)

    shipping_method_id = Column(Integer, nullable=True)
    shipping_cost = Column(Integer, nullable=False, default=0)
    payment_provider = Column(String, nullable=True)

    discount_id = Column(Integer, nullable=True)
    discount_code = Column(String(64), nullable=True)
    discount_amount = Column(Integer, nullable=False, default=0)

    total_amount = Column(Integer, nullable=False, default=0)
    final_amount = Column(Integer, nullable=False, default=0)
    total_weight = Column(Numeric(12, 3), nullable=False, default=0)

    expires_at = Column(DateTime(timezone=True), nullable=False)
    last_activity_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    converted_order_id = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    version = Column(Integer, nullable=False)

    items = relationship(
        "CheckoutItemModel",
        back_populates="checkout",
        cascade="all, delete-orphan",
        order_by="CheckoutItemModel.id",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index(
            "uq_checkouts_active_user",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'active' AND user_id IS NOT NULL"),
            sqlite_where=text("status = 'active' AND user_id IS NOT NULL"),
        ),
        Index(
            "uq_checkouts_active_session",
            "session_id",
            unique=True,
            postgresql_where=text("status = 'active' AND session_id IS NOT NULL"),
            sqlite_where=text("status = 'active' AND session_id IS NOT NULL"),
        ),
    )

    @property
    def total_items(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def is_guest(self) -> bool:
        return self.user_id is None
