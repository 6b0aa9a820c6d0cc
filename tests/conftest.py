import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("PAYMENT_GATEWAY", "fake")

from decimal import Decimal

import fakeredis
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from storefront.celery_worker import celery_app
from storefront.data import models  # noqa: F401
from storefront.data.database import Base
from storefront.data.models.currency import CurrencyModel
from storefront.gateway.fake_adapter import FakeGateway
from storefront.services.checkout_service import CheckoutService, Owner
from storefront.services.email_sender import LoggingEmailSender, reset_sender, set_sender
from storefront.services.lock_service import LockService
from storefront.services.order_service import OrderService
from storefront.services.payment_service import PaymentService
from tests.fakes import FakeCatalog, FakeShipping, make_product, variant

ADDRESS = {
    "full_name": "Ada Lovelace",
    "line1": "1 Analytical Way",
    "city": "London",
    "postal_code": "N1 9GU",
    "country": "GB",
}


@pytest.fixture(scope="session", autouse=True)
def _eager_celery():
    celery_app.conf.task_always_eager = True
    celery_app.conf.task_eager_propagates = True
    yield


@pytest.fixture(autouse=True)
def outbox():
    sender = LoggingEmailSender()
    set_sender(sender)
    yield sender.sent
    reset_sender()


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    session.add(CurrencyModel(code="USD", name="US Dollar", symbol="$", precision=2, exchange_rate=Decimal("1"), is_enabled=True, is_default=True))
    session.commit()
    yield session
    session.close()


@pytest.fixture
def catalog():
    return FakeCatalog(
        [
            make_product(1, price=20000, category_id=10),
            make_product(2, price=5000, category_id=20),
            make_product(3, price=12500, stock=2, category_id=10),
            make_product(4, price=1900, has_variants=True, variants=(variant(41, 1900), variant(42, 2100, stock=3))),
            make_product(5, price=9999, category_id=20),
        ]
    )


@pytest.fixture
def shipping():
    return FakeShipping()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def redis_client():
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def locks(redis_client):
    return LockService(client=redis_client)


@pytest.fixture
def checkouts(db, catalog, shipping):
    return CheckoutService(db, catalog, shipping)


@pytest.fixture
def orders(db, catalog, locks, checkouts):
    return OrderService(db, catalog, lock_service=locks, checkouts=checkouts)


@pytest.fixture
def payments(db, gateway, locks):
    return PaymentService(db, gateway=gateway, lock_service=locks)


@pytest.fixture
def user():
    return Owner(user_id=7)


@pytest.fixture
def guest():
    return Owner(session_id="sess-abc")


@pytest.fixture
def ready_checkout(checkouts, user):
    """An active checkout with one line, addresses and customer details."""

    def _make(owner=None, lines=((1, 0, 1),)):
        owner = owner or user
        checkout = checkouts.get_or_create(owner)
        for product_id, variant_id, quantity in lines:
            checkouts.add_item(checkout.id, owner, product_id, variant_id, quantity)
        checkouts.set_shipping_address(checkout.id, owner, ADDRESS)
        checkouts.set_billing_address(checkout.id, owner, ADDRESS)
        checkouts.set_customer_details(checkout.id, owner, "Ada Lovelace", "ada@example.com")
        return checkout

    return _make


@pytest.fixture
def placed_order(orders, ready_checkout, user):
    def _make(owner=None, lines=((1, 0, 1),)):
        owner = owner or user
        checkout = ready_checkout(owner, lines)
        return orders.create_order_from_checkout(checkout.id, owner)

    return _make
