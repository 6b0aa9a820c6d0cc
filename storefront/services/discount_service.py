# storefront/services/discount_service.py
from datetime import datetime
from decimal import Decimal

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from storefront.data.models.discount import DiscountModel
from storefront.domain import discounts
from storefront.domain.discounts import AppliedDiscount, PricedLine
from storefront.domain.errors import ConcurrencyConflict, DiscountInvalid, InvalidInput, InvalidState, NotFound
from storefront.domain.status import OrderStatus
from storefront.repos.discount_repo import DiscountRepo
from storefront.repos.order_repo import OrderRepo
from storefront.services.product_client import ProductCatalog
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class DiscountService:
    def __init__(self, db: Session, catalog: ProductCatalog | None = None):
        self.repo = DiscountRepo(db)
        self.orders = OrderRepo(db)
        self.catalog = catalog

    # queries
    def get_discount(self, discount_id: int) -> DiscountModel:
        discount = self.repo.get(discount_id)
        if not discount:
            raise NotFound(f"Discount {discount_id} not found", discount_id=discount_id)
        return discount

    def get_by_code(self, code: str) -> DiscountModel:
        discount = self.repo.get_by_code(code)
        if not discount:
            raise NotFound(f"Discount code {code} not found", code=code)
        return discount

    def list_discounts(self, active_only: bool = False) -> list[DiscountModel]:
        return self.repo.list(active_only=active_only)

    def evaluate(self, discount: DiscountModel, lines: list[PricedLine], now: datetime | None = None) -> int:
        in_category = self.catalog.is_product_in_category if self.catalog else None
        return discounts.evaluate(discount, lines, in_category=in_category, now=now)

    def evaluate_code(self, code: str, lines: list[PricedLine]) -> AppliedDiscount:
        discount = self.repo.get_by_code(code)
        if not discount:
            raise DiscountInvalid(f"Discount code {code} does not exist", code=code)
        in_category = self.catalog.is_product_in_category if self.catalog else None
        amount = discounts.evaluate_applicable(discount, lines, in_category=in_category)
        return AppliedDiscount(discount_id=discount.id, discount_code=discount.code, discount_amount=amount)

    # commands
    def create_discount(
        self,
        code: str,
        type: str,
        method: str,
        value: Decimal | int,
        min_order_value: int = 0,
        max_discount_value: int = 0,
        product_ids: list[int] | None = None,
        category_ids: list[int] | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        usage_limit: int = 0,
        active: bool = True,
    ) -> DiscountModel:
        product_ids = list(product_ids or [])
        category_ids = list(category_ids or [])
        discounts.validate_definition(
            code,
            type,
            method,
            value,
            product_ids=product_ids,
            category_ids=category_ids,
            start_date=start_date,
            end_date=end_date,
            min_order_value=min_order_value,
            max_discount_value=max_discount_value,
            usage_limit=usage_limit,
        )
        code = code.strip().upper()
        if self.repo.get_by_code(code):
            raise InvalidInput(f"Discount code {code} already exists", code=code)

        discount = DiscountModel(
            code=code,
            type=type,
            method=method,
            value=Decimal(str(value)),
            min_order_value=min_order_value,
            max_discount_value=max_discount_value,
            product_ids=product_ids,
            category_ids=category_ids,
            start_date=start_date,
            end_date=end_date,
            usage_limit=usage_limit,
            current_usage=0,
            active=active,
        )
        self.repo.add(discount)
        self.repo.commit()
        logger.info("discount created", discount_id=discount.id, code=code)
        return discount

    def deactivate(self, discount_id: int) -> DiscountModel:
        discount = self.get_discount(discount_id)
        discount.active = False
        self.repo.commit()
        logger.info("discount deactivated", discount_id=discount.id, code=discount.code)
        return discount

    def consume(self, discount_id: int) -> None:
        """Count one use inside the caller's transaction; the caller commits."""
        if self.repo.increment_usage(discount_id) == 0:
            raise DiscountInvalid("Discount usage limit reached", discount_id=discount_id)

    # orders
    def _order_lines(self, order) -> list[PricedLine]:
        return [PricedLine(product_id=i.product_id, subtotal=i.subtotal) for i in order.items]

    def apply_to_order(self, order_id: int, code: str):
        """
        Attach a discount to a pending order. Re-applying the code the order
        already carries is a no-op; a different code replaces the snapshot and
        counts one use of the new discount.
        """
        order = self.orders.get_order(order_id)
        if not order:
            raise NotFound(f"Order {order_id} not found", order_id=order_id)
        if order.status != OrderStatus.PENDING.value:
            raise InvalidState("Discounts can only be changed on pending orders", order_id=order_id)

        applied = self.evaluate_code(code, self._order_lines(order))
        if order.discount_id == applied.discount_id:
            return order

        try:
            self.consume(applied.discount_id)
            order.discount_id = applied.discount_id
            order.discount_code = applied.discount_code
            order.discount_amount = applied.discount_amount
            order.final_amount = max(order.total_amount + order.shipping_cost - applied.discount_amount, 0)
            self.orders.commit()
        except DiscountInvalid:
            self.orders.rollback()
            raise
        except StaleDataError as e:
            self.orders.rollback()
            raise ConcurrencyConflict(f"Order {order_id} was modified concurrently") from e

        logger.info("discount applied to order", order_id=order.id, code=applied.discount_code, amount=applied.discount_amount)
        return order

    def remove_from_order(self, order_id: int):
        order = self.orders.get_order(order_id)
        if not order:
            raise NotFound(f"Order {order_id} not found", order_id=order_id)
        if order.status != OrderStatus.PENDING.value:
            raise InvalidState("Discounts can only be changed on pending orders", order_id=order_id)

        order.discount_id = None
        order.discount_code = None
        order.discount_amount = 0
        order.final_amount = order.total_amount + order.shipping_cost
        try:
            self.orders.commit()
        except StaleDataError as e:
            self.orders.rollback()
            raise ConcurrencyConflict(f"Order {order_id} was modified concurrently") from e

        logger.info("discount removed from order", order_id=order.id)
        return order
