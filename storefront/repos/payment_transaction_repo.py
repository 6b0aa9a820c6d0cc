# storefront/repos/payment_transaction_repo.py
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from storefront.data.models.payment_transaction import PaymentTransactionModel


class PaymentTransactionRepo:
    """Append-only: there is no delete and no amount/type update."""

    def __init__(self, db: Session):
        self.db = db

    def add(self, tx: PaymentTransactionModel) -> PaymentTransactionModel:
        self.db.add(tx)
        return tx

    def get(self, tx_id: int) -> PaymentTransactionModel | None:
        return self.db.get(PaymentTransactionModel, tx_id)

    def list_for_order(self, order_id: int) -> list[PaymentTransactionModel]:
        return list(
            self.db.execute(
                select(PaymentTransactionModel)
                .where(PaymentTransactionModel.order_id == order_id)
                .order_by(PaymentTransactionModel.id)
            ).scalars().all()
        )

    def find_by_idempotency_key(self, order_id: int, type: str, key: str) -> PaymentTransactionModel | None:
        return self.db.execute(
            select(PaymentTransactionModel).where(
                PaymentTransactionModel.order_id == order_id,
                PaymentTransactionModel.type == type,
                PaymentTransactionModel.idempotency_key == key,
            )
        ).scalar_one_or_none()

    def sum_successful(self, order_id: int, type: str) -> int:
        total = self.db.execute(
            select(func.coalesce(func.sum(PaymentTransactionModel.amount), 0)).where(
                PaymentTransactionModel.order_id == order_id,
                PaymentTransactionModel.type == type,
                PaymentTransactionModel.status == "successful",
            )
        ).scalar_one()
        return int(total)

    def refresh(self, tx: PaymentTransactionModel):
        self.db.refresh(tx)

    def flush(self):
        self.db.flush()

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
