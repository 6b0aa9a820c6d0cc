# storefront/repos/discount_repo.py
from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from storefront.data.models.discount import DiscountModel


class DiscountRepo:
    def __init__(self, db: Session):
        self.db = db

    def get(self, discount_id: int) -> DiscountModel | None:
        return self.db.get(DiscountModel, discount_id)

    def get_by_code(self, code: str) -> DiscountModel | None:
        return self.db.execute(
            select(DiscountModel).where(DiscountModel.code == code.strip().upper())
        ).scalar_one_or_none()

    def list(self, active_only: bool = False) -> list[DiscountModel]:
        stmt = select(DiscountModel).order_by(DiscountModel.id)
        if active_only:
            stmt = stmt.where(DiscountModel.active.is_(True))
        return list(self.db.execute(stmt).scalars().all())

    def add(self, discount: DiscountModel) -> DiscountModel:
        self.db.add(discount)
        return discount

    def increment_usage(self, discount_id: int) -> int:
        """
        UPDATE discounts SET current_usage = current_usage + 1
        WHERE id = :id AND (usage_limit = 0 OR current_usage < usage_limit)

        Returns the rowcount; 0 means the cap was reached by someone else.
        """
        result = self.db.execute(
            update(DiscountModel)
            .where(
                DiscountModel.id == discount_id,
                or_(
                    DiscountModel.usage_limit == 0,
                    DiscountModel.current_usage < DiscountModel.usage_limit,
                ),
            )
            .values(current_usage=DiscountModel.current_usage + 1)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
