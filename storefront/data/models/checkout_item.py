# storefront/data/models/checkout_item.py
from sqlalchemy import Column, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import relationship

from storefront.data.database import Base


class CheckoutItemModel(Base):
    __tablename__ = "checkout_items"

    id = Column(Integer, primary_key=True)
    checkout_id = Column(Integer, ForeignKey("checkouts.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(Integer, nullable=False)
    variant_id = Column(Integer, nullable=False, default=0)  # 0 = no variant

    quantity = Column(Integer, nullable=False)
    unit_price = Column(Integer, nullable=False)  # minor units, snapshot at add time
    product_name = Column(String, nullable=False)
    variant_name = Column(String, nullable=True)
    sku = Column(String, nullable=True)
    weight = Column(Numeric(10, 3), nullable=False, default=0)

    checkout = relationship("CheckoutModel", back_populates="items")

    __table_args__ = (UniqueConstraint("checkout_id", "product_id", "variant_id", name="uq_checkout_item_key"),)

    @property
    def subtotal(self) -> int:
        return self.unit_price * self.quantity
