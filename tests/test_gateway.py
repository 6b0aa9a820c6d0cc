import pytest
import requests

from storefront.domain.errors import GatewayError
from storefront.gateway import get_gateway, reset_gateway, set_gateway
from storefront.gateway.fake_adapter import FakeGateway
from storefront.gateway.http_adapter import HttpPaymentGateway
from storefront.gateway.port import PaymentRequest


class _Response:
    def __init__(self, status_code: int, body=None):
        self.status_code = status_code
        self._body = body

    def json(self):
        if self._body is None:
            raise ValueError("no json")
        return self._body


class _Session:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []

    def request(self, method, url, json=None, headers=None, timeout=None):
        self.requests.append({"method": method, "url": url, "json": json, "headers": headers})
        if self.error:
            raise self.error
        return self.response


def _make_gateway(**kwargs) -> HttpPaymentGateway:
    gateway = HttpPaymentGateway(base_url="http://pay")
    gateway.session = _Session(**kwargs)
    return gateway


def _request(**overrides) -> PaymentRequest:
    fields = dict(order_id=1, amount=19998, currency="USD", provider="stripe", method="card", idempotency_key="k1")
    fields.update(overrides)
    return PaymentRequest(**fields)


class TestHttpGateway:
    def test_success(self):
        gateway = _make_gateway(response=_Response(200, {"success": True, "transaction_id": "tx_1"}))
        result = gateway.process_payment(_request())
        assert result.success and result.transaction_id == "tx_1"
        sent = gateway.session.requests[0]
        assert sent["url"] == "http://pay/payments"
        assert sent["headers"] == {"Idempotency-Key": "k1"}
        assert sent["json"]["amount"] == 19998

    def test_decline_is_unsuccessful_result(self):
        gateway = _make_gateway(response=_Response(402, {"error": "Card declined"}))
        result = gateway.process_payment(_request())
        assert not result.success
        assert result.error_message == "Card declined"

    def test_server_error_raises(self):
        gateway = _make_gateway(response=_Response(503, {}))
        with pytest.raises(GatewayError):
            gateway.capture_payment("tx_1", 100, "stripe")

    def test_timeout_raises(self):
        gateway = _make_gateway(error=requests.Timeout("slow"))
        with pytest.raises(GatewayError):
            gateway.refund_payment("tx_1", 100, "stripe")

    def test_non_json_raises(self):
        gateway = _make_gateway(response=_Response(200))
        with pytest.raises(GatewayError):
            gateway.cancel_payment("tx_1", "stripe")

    def test_providers(self):
        body = {"providers": [{"type": "stripe", "enabled": True, "methods": ["card"]}, {"type": "cod"}]}
        gateway = _make_gateway(response=_Response(200, body))
        providers = gateway.get_available_providers()
        assert [(p.type, p.name, p.enabled, p.methods) for p in providers] == [
            ("stripe", "stripe", True, ("card",)),
            ("cod", "cod", False, ()),
        ]
        assert gateway.is_provider_enabled("stripe")
        assert not gateway.is_provider_enabled("cod")


class TestGatewayFactory:
    def test_default_is_fake_and_swappable(self):
        reset_gateway()
        assert isinstance(get_gateway(), FakeGateway)
        custom = FakeGateway()
        set_gateway(custom)
        assert get_gateway() is custom
        reset_gateway()
