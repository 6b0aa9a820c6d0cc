import pytest
import requests

from storefront.domain.errors import (
    CheckoutNotActive,
    CollaboratorUnavailable,
    ConcurrencyConflict,
    DiscountInvalid,
    EmptyCheckout,
    InsufficientStock,
    InvalidStatusTransition,
    MissingAddress,
    MissingCustomerDetails,
    NotFound,
    Unauthorized,
)
from storefront.services.discount_service import DiscountService
from storefront.services.order_service import OrderService, make_order_number
from tests.conftest import ADDRESS


class TestCreateOrder:
    def test_snapshot_of_checkout(self, db, orders, ready_checkout, user, catalog):
        checkout = ready_checkout(lines=((1, 0, 2), (4, 41, 1)))
        order = orders.create_order_from_checkout(checkout.id, user)

        assert order.status == "pending"
        assert order.user_id == user.user_id
        assert not order.is_guest_order
        assert order.customer_email == "ada@example.com"
        assert order.total_amount == 2 * 20000 + 1900
        assert order.final_amount == order.total_amount
        assert order.shipping_address["city"] == "London"
        assert [(i.product_id, i.variant_id, i.quantity, i.subtotal) for i in order.items] == [
            (1, 0, 2, 40000),
            (4, 41, 1, 1900),
        ]
        assert order.order_number == make_order_number(order)
        assert order.order_number.startswith("ORD-")

        db.refresh(checkout)
        assert checkout.status == "completed"
        assert checkout.converted_order_id == order.id
        assert catalog.stock[(1, 0)] == 98
        assert catalog.stock[(4, 41)] == 49

    def test_guest_order(self, orders, ready_checkout, guest):
        checkout = ready_checkout(guest)
        order = orders.create_order_from_checkout(checkout.id, guest)
        assert order.is_guest_order
        assert order.user_id is None
        assert order.guest_email == "ada@example.com"
        assert order.order_number.startswith("GS-")
        assert orders.get_guest_order(order.id, "ADA@example.com").id == order.id
        with pytest.raises(Unauthorized):
            orders.get_guest_order(order.id, "someone@example.com")

    def test_checkout_can_only_be_ordered_once(self, orders, ready_checkout, user):
        checkout = ready_checkout()
        orders.create_order_from_checkout(checkout.id, user)
        with pytest.raises(CheckoutNotActive):
            orders.create_order_from_checkout(checkout.id, user)

    def test_empty_checkout(self, orders, checkouts, user):
        checkout = checkouts.get_or_create(user)
        with pytest.raises(EmptyCheckout):
            orders.create_order_from_checkout(checkout.id, user)

    def test_missing_address(self, orders, checkouts, user):
        checkout = checkouts.get_or_create(user)
        checkouts.add_item(checkout.id, user, 1)
        checkouts.set_shipping_address(checkout.id, user, ADDRESS)
        with pytest.raises(MissingAddress):
            orders.create_order_from_checkout(checkout.id, user)

    def test_missing_customer_details(self, orders, checkouts, user):
        checkout = checkouts.get_or_create(user)
        checkouts.add_item(checkout.id, user, 1)
        checkouts.set_shipping_address(checkout.id, user, ADDRESS)
        checkouts.set_billing_address(checkout.id, user, ADDRESS)
        with pytest.raises(MissingCustomerDetails):
            orders.create_order_from_checkout(checkout.id, user)

    def test_stock_shortfall_rolls_back(self, db, orders, ready_checkout, user, catalog):
        checkout = ready_checkout(lines=((1, 0, 1), (3, 0, 2)))
        catalog.stock[(3, 0)] = 1

        with pytest.raises(InsufficientStock):
            orders.create_order_from_checkout(checkout.id, user)

        # the reservation already made for product 1 is given back
        assert catalog.stock[(1, 0)] == 100
        assert catalog.reservations == [(1, 0, -1), (1, 0, 1)]
        db.refresh(checkout)
        assert checkout.status == "active"
        assert orders.list_orders(user.user_id) == []

    def test_catalog_down_rolls_back(self, db, orders, ready_checkout, user, catalog):
        checkout = ready_checkout()
        catalog.unavailable = True
        with pytest.raises(CollaboratorUnavailable):
            orders.create_order_from_checkout(checkout.id, user)
        db.refresh(checkout)
        assert checkout.status == "active"

    def test_unexpected_catalog_error_gives_stock_back(self, db, orders, ready_checkout, user, catalog, monkeypatch):
        checkout = ready_checkout(lines=((1, 0, 1), (2, 0, 1)))
        reserve = catalog.reserve_stock

        def _rejects_product_2(product_id, variant_id, delta):
            if product_id == 2 and delta < 0:
                raise requests.HTTPError("400 Client Error")
            reserve(product_id, variant_id, delta)

        monkeypatch.setattr(catalog, "reserve_stock", _rejects_product_2)
        with pytest.raises(requests.HTTPError):
            orders.create_order_from_checkout(checkout.id, user)

        assert catalog.stock[(1, 0)] == 100
        assert catalog.stock[(2, 0)] == 100
        db.refresh(checkout)
        assert checkout.status == "active"
        assert orders.list_orders(user.user_id) == []

    def test_discount_worth_nothing_is_not_counted(self, db, orders, ready_checkout, user):
        svc = DiscountService(db)
        discount = svc.create_discount(code="ONLY99", type="product", method="fixed", value=500, product_ids=[99], usage_limit=1)
        checkout = ready_checkout()
        # a zero discount written straight to the row
        checkout.discount_id = discount.id
        checkout.discount_code = discount.code
        checkout.discount_amount = 0
        db.commit()

        order = orders.create_order_from_checkout(checkout.id, user)
        assert order.discount_code is None
        assert order.discount_amount == 0
        assert order.final_amount == 20000
        db.refresh(discount)
        assert discount.current_usage == 0

    def test_discount_usage_counted_once(self, db, orders, checkouts, ready_checkout, user):
        svc = DiscountService(db)
        discount = svc.create_discount(code="ONE", type="basket", method="fixed", value=500, usage_limit=1)
        checkout = ready_checkout()
        checkouts.apply_discount(checkout.id, user, "ONE")

        order = orders.create_order_from_checkout(checkout.id, user)
        assert order.discount_amount == 500
        assert order.final_amount == 20000 - 500
        db.refresh(discount)
        assert discount.current_usage == 1

    def test_exhausted_discount_blocks_order(self, db, orders, checkouts, ready_checkout, user):
        svc = DiscountService(db)
        discount = svc.create_discount(code="ONE", type="basket", method="fixed", value=500, usage_limit=1)
        checkout = ready_checkout()
        checkouts.apply_discount(checkout.id, user, "ONE")
        svc.consume(discount.id)
        db.commit()

        with pytest.raises(DiscountInvalid):
            orders.create_order_from_checkout(checkout.id, user)
        db.refresh(checkout)
        assert checkout.status == "active"

    def test_concurrent_placement_locked_out(self, orders, ready_checkout, user, locks):
        checkout = ready_checkout()
        with locks.checkout_lock(checkout.id):
            with pytest.raises(ConcurrencyConflict):
                orders.create_order_from_checkout(checkout.id, user)

    def test_notifications_sent(self, orders, ready_checkout, user, outbox):
        checkout = ready_checkout()
        order = orders.create_order_from_checkout(checkout.id, user)
        recipients = sorted(mail["to"] for mail in outbox)
        assert recipients == ["ada@example.com", "orders@example.com"]
        assert any(order.order_number in mail["subject"] for mail in outbox)


class TestQueries:
    def test_owner_checked(self, orders, placed_order, user):
        order = placed_order()
        assert orders.get_order(order.id, user.user_id).id == order.id
        with pytest.raises(Unauthorized):
            orders.get_order(order.id, 999)
        with pytest.raises(NotFound):
            orders.get_order(12345)

    def test_list_for_user(self, orders, placed_order, user):
        order = placed_order()
        assert [o.id for o in orders.list_orders(user.user_id)] == [order.id]


class TestStatus:
    def test_valid_transition(self, orders, placed_order):
        order = placed_order()
        assert orders.update_status(order.id, "cancelled").status == "cancelled"

    def test_invalid_transition(self, orders, placed_order):
        order = placed_order()
        with pytest.raises(InvalidStatusTransition):
            orders.update_status(order.id, "shipped")

    def test_unknown_status(self, orders, placed_order):
        order = placed_order()
        with pytest.raises(InvalidStatusTransition):
            orders.update_status(order.id, "teleported")


class TestStaleWrites:
    def test_status_change_from_stale_copy_conflicts(self, db, session_factory, orders, placed_order, catalog):
        order = placed_order()

        OrderService(session_factory(), catalog).update_status(order.id, "cancelled")

        with pytest.raises(ConcurrencyConflict):
            orders.update_status(order.id, "paid")

        db.refresh(order)
        assert order.status == "cancelled"
