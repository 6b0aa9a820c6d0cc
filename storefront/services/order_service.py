# storefront/services/order_service.py
from contextlib import nullcontext

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from storefront.data.models.order import OrderModel
from storefront.data.models.order_item import OrderItemModel
from storefront.domain import discounts
from storefront.domain.errors import (
    CommerceError,
    ConcurrencyConflict,
    DiscountInvalid,
    EmptyCheckout,
    InvalidStatusTransition,
    MissingAddress,
    MissingCustomerDetails,
    NotFound,
    Unauthorized,
)
from storefront.domain.status import OrderStatus, validate_order_transition
from storefront.repos.currency_repo import CurrencyRepo
from storefront.repos.discount_repo import DiscountRepo
from storefront.repos.order_repo import OrderRepo
from storefront.services.checkout_service import CheckoutService, Owner, is_complete_address, mark_completed
from storefront.services.lock_service import LockService
from storefront.services.notification_service import NotificationService
from storefront.services.product_client import ProductCatalog
from storefront.utils.clock import utcnow
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def make_order_number(order: OrderModel) -> str:
    """ORD-20240131-000042, guest orders GS-20240131-000042."""
    prefix = "GS" if order.is_guest_order else "ORD"
    return f"{prefix}-{(order.created_at or utcnow()):%Y%m%d}-{order.id:06d}"


def apply_transition(order: OrderModel, target: OrderStatus) -> None:
    """The only place an order's status is written."""
    validate_order_transition(order.status, target.value)
    order.status = target.value


class OrderService:
    """
    Order use cases: creation from a checkout, queries and status changes.
    """

    def __init__(
        self,
        db: Session,
        catalog: ProductCatalog,
        lock_service: LockService | None = None,
        notifications: NotificationService | None = None,
        checkouts: CheckoutService | None = None,
    ):
        self.repo = OrderRepo(db)
        self.discounts = DiscountRepo(db)
        self.currencies = CurrencyRepo(db)
        self.catalog = catalog
        self.lock_service = lock_service
        self.notifications = notifications or NotificationService()
        self.checkouts = checkouts or CheckoutService(db, catalog)

    def _commit(self, order: OrderModel):
        try:
            self.repo.commit()
        except StaleDataError as e:
            self.repo.rollback()
            raise ConcurrencyConflict(f"Order {order.id} was modified by another operation, retry", order_id=order.id) from e

    # queries
    def get_order(self, order_id: int, user_id: int | None = None) -> OrderModel:
        order = self.repo.get_order(order_id)
        if not order:
            raise NotFound(f"Order {order_id} not found", order_id=order_id)
        if user_id is not None and order.user_id != user_id:
            raise Unauthorized("Order belongs to another customer", order_id=order_id)
        return order

    def get_guest_order(self, order_id: int, email: str) -> OrderModel:
        order = self.get_order(order_id)
        if not order.is_guest_order or (order.guest_email or "").lower() != email.strip().lower():
            raise Unauthorized("Order not found for this email", order_id=order_id)
        return order

    def list_orders(self, user_id: int) -> list[OrderModel]:
        return self.repo.list_for_user(user_id)

    # commands
    def update_status(self, order_id: int, status: str) -> OrderModel:
        order = self.get_order(order_id)
        previous = order.status
        try:
            target = OrderStatus(status)
        except ValueError:
            raise InvalidStatusTransition(f"Unknown order status {status!r}", order_id=order_id)
        apply_transition(order, target)
        self._commit(order)
        logger.info("order status changed", order_id=order.id, previous=previous, status=order.status)
        return order

    def create_order_from_checkout(self, checkout_id: int, owner: Owner) -> OrderModel:
        """
        Turns an active checkout into a pending order:
        1. Takes the checkout lock (redis) so the checkout is ordered once.
        2. Checks ownership, items, both addresses and customer details.
        3. Snapshots lines, addresses and totals into the order.
        4. Counts one use of the discount, if it takes anything off.
        5. Decrements stock line by line; any failure rolls the order back
           and gives back what was already reserved.
        6. Commits and queues the confirmation and admin emails.
        """
        lock = self.lock_service.checkout_lock(checkout_id) if self.lock_service else nullcontext()
        with lock:
            return self._create_order(checkout_id, owner)

    def _create_order(self, checkout_id: int, owner: Owner) -> OrderModel:
        checkout = self.checkouts.get_active(checkout_id, owner)

        if not checkout.items:
            raise EmptyCheckout("Cannot place an order from an empty checkout", checkout_id=checkout.id)
        if not is_complete_address(checkout.shipping_address):
            raise MissingAddress("Shipping address is incomplete", checkout_id=checkout.id)
        if not is_complete_address(checkout.billing_address):
            raise MissingAddress("Billing address is incomplete", checkout_id=checkout.id)
        if not checkout.customer_email or not checkout.customer_full_name:
            raise MissingCustomerDetails("Customer name and email are required", checkout_id=checkout.id)

        guest = checkout.user_id is None
        # a discount that takes nothing off is neither carried nor counted
        discounted = bool(checkout.discount_id) and checkout.discount_amount > 0
        order = OrderModel(
            checkout_id=checkout.id,
            user_id=checkout.user_id,
            is_guest_order=guest,
            guest_email=checkout.customer_email if guest else None,
            guest_full_name=checkout.customer_full_name if guest else None,
            guest_phone=checkout.customer_phone if guest else None,
            customer_full_name=checkout.customer_full_name,
            customer_email=checkout.customer_email,
            customer_phone=checkout.customer_phone,
            currency=checkout.currency,
            shipping_address=dict(checkout.shipping_address),
            billing_address=dict(checkout.billing_address),
            shipping_method_id=checkout.shipping_method_id,
            shipping_cost=checkout.shipping_cost,
            discount_id=checkout.discount_id if discounted else None,
            discount_code=checkout.discount_code if discounted else None,
            discount_amount=checkout.discount_amount if discounted else 0,
            total_amount=checkout.total_amount,
            final_amount=checkout.final_amount,
            total_weight=checkout.total_weight,
            payment_provider=checkout.payment_provider,
            status=OrderStatus.PENDING.value,
            created_at=utcnow(),
            items=[
                OrderItemModel(
                    product_id=i.product_id,
                    variant_id=i.variant_id,
                    quantity=i.quantity,
                    unit_price=i.unit_price,
                    subtotal=i.subtotal,
                    product_name=i.product_name,
                    variant_name=i.variant_name,
                    sku=i.sku,
                    weight=i.weight,
                )
                for i in checkout.items
            ],
        )

        try:
            if discounted:
                discount = self.discounts.get(checkout.discount_id)
                if discount is None or not discounts.is_valid(discount):
                    raise DiscountInvalid(f"Discount {checkout.discount_code} is no longer valid")
                if self.discounts.increment_usage(discount.id) == 0:
                    raise DiscountInvalid(f"Discount {checkout.discount_code} usage limit reached")

            self.repo.add(order)
            self.repo.flush()
            order.order_number = make_order_number(order)
            mark_completed(checkout, order.id)
        except DiscountInvalid:
            self.repo.rollback()
            raise

        reserved = []
        try:
            for item in order.items:
                self.catalog.reserve_stock(item.product_id, item.variant_id, -item.quantity)
                reserved.append((item.product_id, item.variant_id, item.quantity))
            self.repo.commit()
        except Exception as e:
            # whatever failed, nothing of this order may stay committed or reserved
            self.repo.rollback()
            self._restore_stock(reserved, checkout_id)
            logger.warning("order creation aborted", checkout_id=checkout_id, reason=str(e), error=type(e).__name__)
            if isinstance(e, StaleDataError):
                raise ConcurrencyConflict(f"Checkout {checkout_id} was modified concurrently, retry") from e
            raise

        logger.info(
            "order created",
            order_id=order.id,
            order_number=order.order_number,
            checkout_id=checkout_id,
            final_amount=order.final_amount,
            currency=order.currency,
        )

        currency = self.currencies.get(order.currency)
        if currency is not None:
            self.notifications.send_order_confirmation(order, currency)
            self.notifications.send_order_notification(order, currency)
        else:
            logger.warning("order notifications skipped, unknown currency", order_id=order.id, currency=order.currency)
        return order

    def _restore_stock(self, reserved, checkout_id: int):
        for product_id, variant_id, quantity in reserved:
            try:
                self.catalog.reserve_stock(product_id, variant_id, quantity)
            except CommerceError as e:
                logger.error(
                    "stock compensation failed",
                    checkout_id=checkout_id,
                    product_id=product_id,
                    variant_id=variant_id,
                    quantity=quantity,
                    error=str(e),
                )
