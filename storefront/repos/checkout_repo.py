# storefront/repos/checkout_repo.py
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from storefront.data.models.checkout import CheckoutModel
from storefront.data.models.checkout_item import CheckoutItemModel


class CheckoutRepo:
    def __init__(self, db: Session):
        self.db = db

    def get(self, checkout_id: int) -> CheckoutModel | None:
        return self.db.get(CheckoutModel, checkout_id)

    def get_active_by_user(self, user_id: int) -> CheckoutModel | None:
        return self.db.execute(
            select(CheckoutModel).where(
                CheckoutModel.user_id == user_id,
                CheckoutModel.status == "active",
            )
        ).scalar_one_or_none()

    def get_active_by_session(self, session_id: str) -> CheckoutModel | None:
        return self.db.execute(
            select(CheckoutModel).where(
                CheckoutModel.session_id == session_id,
                CheckoutModel.status == "active",
            )
        ).scalar_one_or_none()

    def find_expired(self, now: datetime) -> list[CheckoutModel]:
        return list(
            self.db.execute(
                select(CheckoutModel).where(
                    CheckoutModel.status == "active",
                    CheckoutModel.expires_at < now,
                )
            ).scalars().all()
        )

    def find_recoverable(self, limit: int = 100) -> list[CheckoutModel]:
        """Expired checkouts that still have a contact email and items."""
        return list(
            self.db.execute(
                select(CheckoutModel)
                .where(
                    CheckoutModel.status == "expired",
                    CheckoutModel.customer_email.is_not(None),
                    CheckoutModel.items.any(),
                )
                .order_by(CheckoutModel.id)
                .limit(limit)
            ).scalars().all()
        )

    def find_item(self, checkout: CheckoutModel, product_id: int, variant_id: int) -> CheckoutItemModel | None:
        for item in checkout.items:
            if item.product_id == product_id and item.variant_id == variant_id:
                return item
        return None

    def add(self, checkout: CheckoutModel) -> CheckoutModel:
        self.db.add(checkout)
        return checkout

    def delete(self, checkout: CheckoutModel) -> None:
        self.db.delete(checkout)

    def flush(self):
        self.db.flush()

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
