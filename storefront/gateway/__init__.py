"""Payment gateway factory.

get_gateway() / set_gateway() swap the implementation:
- FakeGateway for development and testing (default)
- HttpPaymentGateway when PAYMENT_GATEWAY=http
"""

from storefront.gateway.fake_adapter import FakeGateway
from storefront.gateway.port import PaymentGateway
from storefront.utils.settings import PAYMENT_GATEWAY

_current_gateway: PaymentGateway | None = None


def get_gateway() -> PaymentGateway:
    global _current_gateway
    if _current_gateway is None:
        if PAYMENT_GATEWAY == "http":
            from storefront.gateway.http_adapter import HttpPaymentGateway

            _current_gateway = HttpPaymentGateway()
        else:
            _current_gateway = FakeGateway()
    return _current_gateway


def set_gateway(gateway: PaymentGateway) -> None:
    global _current_gateway
    _current_gateway = gateway


def reset_gateway() -> None:
    global _current_gateway
    _current_gateway = None
