# storefront/data/models/payment_transaction.py
from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint

from storefront.data.database import Base
from storefront.utils.clock import utcnow


class PaymentTransactionModel(Base):
    """Ledger row. Only `status` and `meta` change after insert."""

    __tablename__ = "payment_transactions"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    transaction_id = Column(String, nullable=True, index=True)  # gateway reference

    type = Column(String, nullable=False)  # authorize, capture, cancel, refund
    status = Column(String, nullable=False)  # pending, successful, failed
    amount = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False)
    provider = Column(String, nullable=True)

    # "metadata" is reserved on declarative classes
    meta = Column("metadata", JSON, nullable=False, default=dict)
    error_message = Column(String, nullable=True)
    idempotency_key = Column(String(128), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("order_id", "type", "idempotency_key", name="uq_payment_tx_idempotency"),
    )
