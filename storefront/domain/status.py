# storefront/domain/status.py
from enum import Enum

from storefront.domain.errors import InvalidStatusTransition


class OrderStatus(str, Enum):
    PENDING = "pending"
    PENDING_ACTION = "pending_action"
    PAID = "paid"
    CAPTURED = "captured"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class CheckoutStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ABANDONED = "abandoned"
    EXPIRED = "expired"


class TransactionType(str, Enum):
    AUTHORIZE = "authorize"
    CAPTURE = "capture"
    CANCEL = "cancel"
    REFUND = "refund"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    SUCCESSFUL = "successful"
    FAILED = "failed"


_ORDER_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PENDING_ACTION, OrderStatus.PAID, OrderStatus.CANCELLED},
    OrderStatus.PENDING_ACTION: {OrderStatus.PAID, OrderStatus.CANCELLED},
    OrderStatus.PAID: {OrderStatus.CAPTURED, OrderStatus.SHIPPED, OrderStatus.REFUNDED},
    OrderStatus.CAPTURED: {OrderStatus.SHIPPED, OrderStatus.REFUNDED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
    OrderStatus.REFUNDED: set(),
}

_CHECKOUT_TRANSITIONS = {
    CheckoutStatus.ACTIVE: {CheckoutStatus.COMPLETED, CheckoutStatus.ABANDONED, CheckoutStatus.EXPIRED},
    CheckoutStatus.COMPLETED: set(),
    CheckoutStatus.ABANDONED: set(),
    CheckoutStatus.EXPIRED: {CheckoutStatus.ABANDONED},
}

# statuses that already carry a successful authorization
PAID_STATUSES = frozenset({OrderStatus.PAID.value, OrderStatus.SHIPPED.value, OrderStatus.DELIVERED.value})


def validate_order_transition(current: str, target: str) -> OrderStatus:
    try:
        source, dest = OrderStatus(current), OrderStatus(target)
    except ValueError:
        raise InvalidStatusTransition(f"Unknown order status: {current!r} -> {target!r}")

    if dest not in _ORDER_TRANSITIONS[source]:
        raise InvalidStatusTransition(
            f"Cannot transition order from {source.value} to {dest.value}",
            current=source.value,
            target=dest.value,
        )
    return dest


def validate_checkout_transition(current: str, target: str) -> CheckoutStatus:
    source, dest = CheckoutStatus(current), CheckoutStatus(target)
    if dest not in _CHECKOUT_TRANSITIONS[source]:
        raise InvalidStatusTransition(
            f"Cannot transition checkout from {source.value} to {dest.value}",
            current=source.value,
            target=dest.value,
        )
    return dest
