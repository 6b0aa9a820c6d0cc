# storefront/services/checkout_service.py
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from storefront.data.models.checkout import CheckoutModel
from storefront.data.models.checkout_item import CheckoutItemModel
from storefront.domain import discounts
from storefront.domain.discounts import PricedLine
from storefront.domain.errors import (
    CheckoutNotActive,
    CollaboratorUnavailable,
    ConcurrencyConflict,
    DiscountInvalid,
    InsufficientStock,
    InvalidInput,
    ItemNotFound,
    MissingAddress,
    NotFound,
    Unauthorized,
)
from storefront.domain.money import convert
from storefront.domain.status import CheckoutStatus, validate_checkout_transition
from storefront.repos.checkout_repo import CheckoutRepo
from storefront.repos.currency_repo import CurrencyRepo
from storefront.repos.discount_repo import DiscountRepo
from storefront.services.currency_service import CurrencyService
from storefront.services.product_client import ProductCatalog
from storefront.services.shipping_client import ShippingRates
from storefront.utils.clock import as_utc, utcnow
from storefront.utils.logging import get_logger
from storefront.utils.settings import CHECKOUT_TTL_SECONDS, DEFAULT_CURRENCY

logger = get_logger(__name__)

REQUIRED_ADDRESS_FIELDS = ("line1", "city", "postal_code", "country")


def is_complete_address(address: dict | None) -> bool:
    return bool(address) and all(str(address.get(f) or "").strip() for f in REQUIRED_ADDRESS_FIELDS)


# terminal transitions, committed by the caller
def _transition(checkout: CheckoutModel, target: CheckoutStatus):
    validate_checkout_transition(checkout.status, target.value)
    checkout.status = target.value


def mark_completed(checkout: CheckoutModel, order_id: int):
    _transition(checkout, CheckoutStatus.COMPLETED)
    checkout.completed_at = utcnow()
    checkout.converted_order_id = order_id


def mark_abandoned(checkout: CheckoutModel):
    _transition(checkout, CheckoutStatus.ABANDONED)


def mark_expired(checkout: CheckoutModel):
    _transition(checkout, CheckoutStatus.EXPIRED)


@dataclass(frozen=True)
class Owner:
    """Who is acting on a checkout: a signed-in user or a guest session."""

    user_id: int | None = None
    session_id: str | None = None

    def __post_init__(self):
        if (self.user_id is None) == (not self.session_id):
            raise InvalidInput("Exactly one of user_id or session_id is required")

    def owns(self, checkout: CheckoutModel) -> bool:
        if self.user_id is not None:
            return checkout.user_id == self.user_id
        return checkout.user_id is None and checkout.session_id == self.session_id


class CheckoutService:
    """
    Use cases of the checkout aggregate.

    Every command loads the checkout, checks ownership and that it is still
    active, mutates it, re-derives totals and commits. Concurrent writers are
    detected by the version column and surface as ConcurrencyConflict.
    Prices coming from the catalog and shipping service are in the default
    currency and are converted into the checkout's currency on the way in.
    """

    def __init__(
        self,
        db: Session,
        catalog: ProductCatalog,
        shipping: ShippingRates | None = None,
        ttl_seconds: int = CHECKOUT_TTL_SECONDS,
    ):
        self.repo = CheckoutRepo(db)
        self.currencies = CurrencyRepo(db)
        self.discounts = DiscountRepo(db)
        self.catalog = catalog
        self.shipping = shipping
        self.ttl = timedelta(seconds=ttl_seconds)

    # helpers
    def _commit(self, checkout: CheckoutModel):
        try:
            self.repo.commit()
        except (StaleDataError, IntegrityError) as e:
            self.repo.rollback()
            raise ConcurrencyConflict(
                f"Checkout {checkout.id} was modified by another operation, retry",
                checkout_id=checkout.id,
            ) from e

    def _touch(self, checkout: CheckoutModel):
        now = utcnow()
        checkout.last_activity_at = now
        checkout.expires_at = now + self.ttl

    def _is_past_expiry(self, checkout: CheckoutModel) -> bool:
        return as_utc(checkout.expires_at) < utcnow()

    def _to_checkout_currency(self, amount: int, checkout: CheckoutModel) -> int:
        default = self.currencies.get_default()
        if default is None or default.code == checkout.currency:
            return amount
        target = self.currencies.get(checkout.currency)
        if target is None:
            return amount
        return convert(amount, default, target)

    def _to_default_currency(self, amount: int, checkout: CheckoutModel) -> int:
        default = self.currencies.get_default()
        if default is None or default.code == checkout.currency:
            return amount
        source = self.currencies.get(checkout.currency)
        if source is None:
            return amount
        return convert(amount, source, default)

    def _lines(self, checkout: CheckoutModel) -> list[PricedLine]:
        return [PricedLine(product_id=i.product_id, subtotal=i.subtotal) for i in checkout.items]

    def _shipping_cost(self, checkout: CheckoutModel, method_id: int) -> int:
        if self.shipping is None:
            raise InvalidInput("Shipping rates are not available")
        default_total = self._to_default_currency(checkout.total_amount, checkout)
        rates = self.shipping.get_rates_for_address(checkout.shipping_address, default_total)
        rate = next((r for r in rates if r.method_id == method_id), None)
        if rate is None:
            raise InvalidInput(f"Shipping method {method_id} is not available for this address", method_id=method_id)
        cost = rate.cost_for(default_total, Decimal(checkout.total_weight or 0))
        if cost is None:
            raise InvalidInput(
                f"Order value does not qualify for shipping method {method_id}",
                method_id=method_id,
            )
        return self._to_checkout_currency(cost, checkout)

    def _clear_discount(self, checkout: CheckoutModel):
        checkout.discount_id = None
        checkout.discount_code = None
        checkout.discount_amount = 0

    def _recalculate(self, checkout: CheckoutModel):
        checkout.total_amount = sum(i.subtotal for i in checkout.items)
        checkout.total_weight = sum((Decimal(i.weight or 0) * i.quantity for i in checkout.items), Decimal("0"))

        if checkout.discount_id:
            discount = self.discounts.get(checkout.discount_id)
            try:
                if discount is None:
                    raise DiscountInvalid("Discount no longer exists")
                in_category = self.catalog.is_product_in_category
                checkout.discount_amount = discounts.evaluate_applicable(discount, self._lines(checkout), in_category=in_category)
            except DiscountInvalid as e:
                logger.info("discount dropped from checkout", checkout_id=checkout.id, code=checkout.discount_code, reason=str(e))
                self._clear_discount(checkout)

        if checkout.shipping_method_id and is_complete_address(checkout.shipping_address):
            try:
                checkout.shipping_cost = self._shipping_cost(checkout, checkout.shipping_method_id)
            except InvalidInput as e:
                logger.info("shipping method dropped from checkout", checkout_id=checkout.id, reason=str(e))
                checkout.shipping_method_id = None
                checkout.shipping_cost = 0
            except CollaboratorUnavailable as e:
                # keep the last known cost, it is refreshed on the next mutation
                logger.warning("shipping rates unavailable", checkout_id=checkout.id, error=str(e))
        elif not checkout.shipping_method_id:
            checkout.shipping_cost = 0

        checkout.final_amount = max(checkout.total_amount + checkout.shipping_cost - checkout.discount_amount, 0)

    def _owned(self, checkout_id: int, owner: Owner) -> CheckoutModel:
        checkout = self.repo.get(checkout_id)
        if not checkout:
            raise NotFound(f"Checkout {checkout_id} not found", checkout_id=checkout_id)
        if not owner.owns(checkout):
            raise Unauthorized("Checkout belongs to another customer", checkout_id=checkout_id)
        return checkout

    def _active(self, checkout_id: int, owner: Owner) -> CheckoutModel:
        checkout = self._owned(checkout_id, owner)
        if checkout.status == CheckoutStatus.ACTIVE.value and self._is_past_expiry(checkout):
            mark_expired(checkout)
            self._commit(checkout)
            logger.info("checkout expired on access", checkout_id=checkout.id)
        if checkout.status != CheckoutStatus.ACTIVE.value:
            raise CheckoutNotActive(f"Checkout {checkout.id} is {checkout.status}", checkout_id=checkout.id)
        return checkout

    def _save(self, checkout: CheckoutModel) -> CheckoutModel:
        self._touch(checkout)
        self._recalculate(checkout)
        self._commit(checkout)
        return checkout

    # queries
    def get_checkout(self, checkout_id: int, owner: Owner) -> CheckoutModel:
        return self._owned(checkout_id, owner)

    def get_active(self, checkout_id: int, owner: Owner) -> CheckoutModel:
        return self._active(checkout_id, owner)

    def find_active(self, owner: Owner) -> CheckoutModel | None:
        if owner.user_id is not None:
            return self.repo.get_active_by_user(owner.user_id)
        return self.repo.get_active_by_session(owner.session_id)

    # commands
    def get_or_create(self, owner: Owner, currency: str | None = None) -> CheckoutModel:
        existing = self.find_active(owner)
        if existing and self._is_past_expiry(existing):
            mark_expired(existing)
            self._commit(existing)
            logger.info("checkout expired on access", checkout_id=existing.id)
            existing = None
        if existing:
            return existing

        if currency:
            code = CurrencyService(self.repo.db).get_enabled(currency).code
        else:
            default = self.currencies.get_default()
            code = default.code if default else DEFAULT_CURRENCY

        now = utcnow()
        checkout = CheckoutModel(
            user_id=owner.user_id,
            session_id=owner.session_id,
            status=CheckoutStatus.ACTIVE.value,
            currency=code,
            expires_at=now + self.ttl,
            last_activity_at=now,
            total_amount=0,
            discount_amount=0,
            shipping_cost=0,
            final_amount=0,
            total_weight=Decimal("0"),
        )
        self.repo.add(checkout)
        try:
            self.repo.commit()
        except IntegrityError:
            # another request created it first
            self.repo.rollback()
            existing = self.find_active(owner)
            if existing is None:
                raise
            return existing

        logger.info("checkout created", checkout_id=checkout.id, user_id=owner.user_id, guest=owner.user_id is None)
        return checkout

    def add_item(self, checkout_id: int, owner: Owner, product_id: int, variant_id: int = 0, quantity: int = 1):
        if quantity <= 0:
            raise InvalidInput("Quantity must be greater than 0")

        checkout = self._active(checkout_id, owner)
        product = self.catalog.get_product(product_id)
        if not product.active:
            raise InvalidInput(f"Product {product_id} is not available", product_id=product_id)

        variant = None
        variant_id = variant_id or 0
        if variant_id:
            variant = product.variant(variant_id)
            if variant is None:
                raise NotFound(
                    f"Variant {variant_id} does not belong to product {product_id}",
                    product_id=product_id,
                    variant_id=variant_id,
                )
        elif product.has_variants:
            raise InvalidInput(f"Product {product_id} requires a variant", product_id=product_id)

        item = self.repo.find_item(checkout, product_id, variant_id)
        wanted = quantity + (item.quantity if item else 0)
        if not self.catalog.is_available(product_id, variant_id, wanted):
            raise InsufficientStock(
                f"Only limited stock left for product {product_id}",
                product_id=product_id,
                variant_id=variant_id,
            )

        price = self._to_checkout_currency(variant.price if variant else product.price, checkout)
        if item:
            item.quantity = wanted
            item.unit_price = price
        else:
            checkout.items.append(
                CheckoutItemModel(
                    product_id=product_id,
                    variant_id=variant_id,
                    quantity=quantity,
                    unit_price=price,
                    product_name=product.name,
                    variant_name=variant.name if variant else None,
                    sku=(variant.sku if variant else None) or product.sku,
                    weight=variant.weight if variant else product.weight,
                )
            )

        self._save(checkout)
        logger.info("checkout item added", checkout_id=checkout.id, product_id=product_id, variant_id=variant_id, quantity=wanted)
        return checkout

    def update_item(self, checkout_id: int, owner: Owner, product_id: int, variant_id: int, quantity: int):
        checkout = self._active(checkout_id, owner)
        item = self.repo.find_item(checkout, product_id, variant_id or 0)
        if not item:
            raise ItemNotFound(f"Item {product_id}/{variant_id} is not in the checkout", product_id=product_id)

        if quantity <= 0:
            checkout.items.remove(item)
        else:
            if quantity > item.quantity and not self.catalog.is_available(product_id, item.variant_id, quantity):
                raise InsufficientStock(f"Only limited stock left for product {product_id}", product_id=product_id)
            item.quantity = quantity

        self._save(checkout)
        logger.info("checkout item updated", checkout_id=checkout.id, product_id=product_id, quantity=max(quantity, 0))
        return checkout

    def remove_item(self, checkout_id: int, owner: Owner, product_id: int, variant_id: int = 0):
        checkout = self._active(checkout_id, owner)
        item = self.repo.find_item(checkout, product_id, variant_id or 0)
        if not item:
            raise ItemNotFound(f"Item {product_id}/{variant_id} is not in the checkout", product_id=product_id)

        checkout.items.remove(item)
        self._save(checkout)
        logger.info("checkout item removed", checkout_id=checkout.id, product_id=product_id)
        return checkout

    def clear(self, checkout_id: int, owner: Owner):
        checkout = self._active(checkout_id, owner)
        checkout.items.clear()
        self._clear_discount(checkout)
        checkout.shipping_method_id = None
        checkout.shipping_cost = 0
        self._save(checkout)
        logger.info("checkout cleared", checkout_id=checkout.id)
        return checkout

    def set_shipping_address(self, checkout_id: int, owner: Owner, address: dict):
        checkout = self._active(checkout_id, owner)
        checkout.shipping_address = dict(address)
        return self._save(checkout)

    def set_billing_address(self, checkout_id: int, owner: Owner, address: dict):
        checkout = self._active(checkout_id, owner)
        checkout.billing_address = dict(address)
        return self._save(checkout)

    def set_customer_details(self, checkout_id: int, owner: Owner, full_name: str, email: str, phone: str | None = None):
        checkout = self._active(checkout_id, owner)
        checkout.customer_full_name = full_name
        checkout.customer_email = email
        checkout.customer_phone = phone
        return self._save(checkout)

    def set_payment_provider(self, checkout_id: int, owner: Owner, provider: str):
        checkout = self._active(checkout_id, owner)
        checkout.payment_provider = provider
        return self._save(checkout)

    def set_shipping_method(self, checkout_id: int, owner: Owner, method_id: int):
        checkout = self._active(checkout_id, owner)
        if not is_complete_address(checkout.shipping_address):
            raise MissingAddress("Set a shipping address before choosing a shipping method")

        checkout.shipping_cost = self._shipping_cost(checkout, method_id)
        checkout.shipping_method_id = method_id
        self._save(checkout)
        logger.info("shipping method set", checkout_id=checkout.id, method_id=method_id, cost=checkout.shipping_cost)
        return checkout

    def apply_discount(self, checkout_id: int, owner: Owner, code: str):
        checkout = self._active(checkout_id, owner)
        discount = self.discounts.get_by_code(code)
        if not discount:
            raise DiscountInvalid(f"Discount code {code} does not exist", code=code)

        amount = discounts.evaluate_applicable(discount, self._lines(checkout), in_category=self.catalog.is_product_in_category)
        checkout.discount_id = discount.id
        checkout.discount_code = discount.code
        checkout.discount_amount = amount
        self._save(checkout)
        logger.info("discount applied", checkout_id=checkout.id, code=discount.code, amount=checkout.discount_amount)
        return checkout

    def remove_discount(self, checkout_id: int, owner: Owner):
        checkout = self._active(checkout_id, owner)
        self._clear_discount(checkout)
        self._save(checkout)
        logger.info("discount removed", checkout_id=checkout.id)
        return checkout

    def change_currency(self, checkout_id: int, owner: Owner, code: str):
        checkout = self._active(checkout_id, owner)
        currencies = CurrencyService(self.repo.db)
        target = currencies.get_enabled(code)
        if target.code == checkout.currency:
            return checkout

        source = currencies.get_currency(checkout.currency)
        for item in checkout.items:
            item.unit_price = convert(item.unit_price, source, target)
        checkout.shipping_cost = convert(checkout.shipping_cost, source, target)
        checkout.currency = target.code
        self._save(checkout)
        logger.info("checkout currency changed", checkout_id=checkout.id, currency=target.code)
        return checkout

    def extend_expiry(self, checkout_id: int, owner: Owner, seconds: int):
        if seconds <= 0:
            raise InvalidInput("Expiry extension must be positive")
        checkout = self._active(checkout_id, owner)
        checkout.expires_at = as_utc(checkout.expires_at) + timedelta(seconds=seconds)
        checkout.last_activity_at = utcnow()
        self._commit(checkout)
        return checkout

    def delete_checkout(self, checkout_id: int, owner: Owner) -> None:
        checkout = self._active(checkout_id, owner)
        self.repo.delete(checkout)
        self._commit(checkout)
        logger.info("checkout deleted", checkout_id=checkout_id)

    def convert_guest_to_user(self, session_id: str, user_id: int) -> CheckoutModel:
        """
        Hand a guest checkout over to a user who just signed in.

        With no active user checkout the guest one is re-keyed. Otherwise the
        guest lines are merged into the user's checkout by (product, variant),
        quantities summed, and the guest checkout is deleted.
        """
        guest = self.repo.get_active_by_session(session_id)
        if not guest:
            raise NotFound(f"No active checkout for session {session_id}")

        target = self.repo.get_active_by_user(user_id)
        if target is None:
            guest.user_id = user_id
            guest.session_id = None
            self._save(guest)
            logger.info("guest checkout re-keyed", checkout_id=guest.id, user_id=user_id)
            return guest

        for line in guest.items:
            item = self.repo.find_item(target, line.product_id, line.variant_id)
            if item:
                item.quantity += line.quantity
                continue
            target.items.append(
                CheckoutItemModel(
                    product_id=line.product_id,
                    variant_id=line.variant_id,
                    quantity=line.quantity,
                    unit_price=line.unit_price if guest.currency == target.currency else self._reprice(line, guest, target),
                    product_name=line.product_name,
                    variant_name=line.variant_name,
                    sku=line.sku,
                    weight=line.weight,
                )
            )

        for field in ("shipping_address", "billing_address", "customer_full_name", "customer_email", "customer_phone", "payment_provider"):
            if getattr(target, field) is None and getattr(guest, field) is not None:
                setattr(target, field, getattr(guest, field))

        self.repo.delete(guest)
        self._save(target)
        logger.info("guest checkout merged", guest_checkout_id=guest.id, checkout_id=target.id, user_id=user_id)
        return target

    def _reprice(self, line: CheckoutItemModel, source: CheckoutModel, target: CheckoutModel) -> int:
        currencies = CurrencyService(self.repo.db)
        return convert(line.unit_price, currencies.get_currency(source.currency), currencies.get_currency(target.currency))
