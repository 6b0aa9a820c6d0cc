from decimal import Decimal

import pytest
import requests
from fastapi.testclient import TestClient

from storefront.domain.errors import CollaboratorUnavailable, InsufficientStock, NotFound
from storefront.product_service.main import app as product_app
from storefront.services.product_client import ProductClient, parse_product
from storefront.services.shipping_client import ShippingClient, parse_rate
from storefront.shipping_service.main import app as shipping_app


@pytest.fixture
def product_api():
    return TestClient(product_app)


class _Routed:
    """Routes requests.get/post made by a client to a TestClient."""

    def __init__(self, client: TestClient, base_url: str):
        self.client = client
        self.base_url = base_url

    def get(self, url, params=None, timeout=None):
        return self.client.get(url.replace(self.base_url, ""), params=params)

    def post(self, url, json=None, timeout=None):
        return self.client.post(url.replace(self.base_url, ""), json=json)


@pytest.fixture
def product_client(product_api, monkeypatch):
    routed = _Routed(product_api, "http://products")
    monkeypatch.setattr("storefront.services.product_client.requests.get", routed.get)
    monkeypatch.setattr("storefront.services.product_client.requests.post", routed.post)
    return ProductClient(base_url="http://products")


class TestProductMock:
    def test_get_product(self, product_api):
        resp = product_api.get("/products/1")
        assert resp.status_code == 200
        assert resp.json()["name"] == "Keyboard"
        assert product_api.get("/products/999").status_code == 404

    def test_stock_never_negative(self, product_api):
        assert product_api.post("/products/3/stock", json={"delta": -100}).status_code == 409
        assert product_api.post("/products/3/stock", json={"delta": -1}).json()["stock"] == 4
        assert product_api.post("/products/3/stock", json={"delta": 1}).json()["stock"] == 5

    def test_variant_availability(self, product_api):
        assert product_api.get("/products/4/availability", params={"variant_id": 42, "quantity": 3}).json()["available"]
        assert not product_api.get("/products/4/availability", params={"variant_id": 42, "quantity": 4}).json()["available"]
        assert product_api.get("/products/4/availability", params={"variant_id": 7}).status_code == 404


class TestProductClient:
    def test_parse_product_to_minor_units(self):
        product = parse_product({"id": 1, "name": "Keyboard", "price": 199.99, "weight": 0.9})
        assert product.price == 19999
        assert product.weight == Decimal("0.9")
        assert not product.has_variants

    def test_get_product_with_variants(self, product_client):
        product = product_client.get_product(4)
        assert product.has_variants
        assert product.variant(42).price == 2100
        assert product_client.is_product_in_category(4, 30)
        assert not product_client.is_product_in_category(999, 30)

    def test_missing_product(self, product_client):
        with pytest.raises(NotFound):
            product_client.get_product(999)

    def test_reserve_and_release(self, product_client):
        product_client.reserve_stock(2, 0, -1)
        product_client.reserve_stock(2, 0, 1)
        with pytest.raises(InsufficientStock):
            product_client.reserve_stock(2, 0, -10_000)

    def test_rejected_stock_adjustment(self, monkeypatch):
        def _bad_request(*args, **kwargs):
            resp = requests.Response()
            resp.status_code = 400
            return resp

        monkeypatch.setattr("storefront.services.product_client.requests.post", _bad_request)
        with pytest.raises(CollaboratorUnavailable):
            ProductClient(base_url="http://products").reserve_stock(2, 0, -1)

    def test_timed_out_stock_adjustment_is_not_resent(self, product_api, monkeypatch):
        posts = []

        def _applied_then_timeout(url, json=None, timeout=None):
            posts.append(json)
            product_api.post(url.replace("http://products", ""), json=json)
            raise requests.ReadTimeout("read timed out")

        monkeypatch.setattr("storefront.services.product_client.requests.post", _applied_then_timeout)
        before = product_api.get("/products/2").json()["stock"]

        with pytest.raises(CollaboratorUnavailable):
            ProductClient(base_url="http://products").reserve_stock(2, 0, -3)

        assert len(posts) == 1
        assert product_api.get("/products/2").json()["stock"] == before - 3
        product_api.post("/products/2/stock", json={"delta": 3})

    def test_refused_connection_is_retried(self, product_api, monkeypatch):
        routed = _Routed(product_api, "http://products")
        posts = []

        def _refused_once(url, json=None, timeout=None):
            posts.append(json)
            if len(posts) == 1:
                raise requests.ConnectionError("refused")
            return routed.post(url, json=json)

        monkeypatch.setattr("storefront.services.product_client.requests.post", _refused_once)
        before = product_api.get("/products/2").json()["stock"]

        ProductClient(base_url="http://products").reserve_stock(2, 0, -1)

        assert len(posts) == 2
        assert product_api.get("/products/2").json()["stock"] == before - 1
        product_api.post("/products/2/stock", json={"delta": 1})

    def test_availability(self, product_client):
        assert product_client.is_available(1, 0, 1)
        assert not product_client.is_available(999, 0, 1)

    def test_unreachable_service(self, monkeypatch):
        def _down(*args, **kwargs):
            raise requests.ConnectionError("refused")

        monkeypatch.setattr("storefront.services.product_client.requests.get", _down)
        with pytest.raises(CollaboratorUnavailable):
            ProductClient(base_url="http://products").fetch_product(1)


class TestShippingClient:
    def test_rates_by_country(self, monkeypatch):
        routed = _Routed(TestClient(shipping_app), "http://shipping")
        monkeypatch.setattr("storefront.services.shipping_client.requests.post", routed.post)
        client = ShippingClient(base_url="http://shipping")

        assert [r.method_id for r in client.get_rates_for_address({"country": "US"}, 1000)] == [1, 2]
        assert [r.method_id for r in client.get_rates_for_address({"country": "GB"}, 1000)] == [1]

    def test_rate_cost_rules(self):
        rate = parse_rate(
            {
                "method_id": 1,
                "base_rate": 500,
                "min_order_value": 1000,
                "free_shipping_threshold": 10000,
                "weight_tiers": [{"min_weight": 2, "max_weight": 0, "rate": 700}],
                "value_tiers": [{"min_order_value": 5000, "max_order_value": 0, "rate": 200}],
            }
        )
        assert rate.cost_for(999, Decimal("1")) is None
        assert rate.cost_for(2000, Decimal("1")) == 500
        assert rate.cost_for(2000, Decimal("3")) == 1200
        assert rate.cost_for(6000, Decimal("3")) == 1400
        assert rate.cost_for(10000, Decimal("30")) == 0
