# storefront/services/product_client.py
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal

import requests

from storefront.domain.errors import CollaboratorUnavailable, InsufficientStock, NotFound
from storefront.domain.money import to_minor_units
from storefront.utils.logging import get_logger
from storefront.utils.retry import connect_retry, http_retry
from storefront.utils.settings import HTTP_TIMEOUT_SECONDS, PRODUCT_SERVICE_URL

logger = get_logger(__name__)


@dataclass(frozen=True)
class Variant:
    id: int
    name: str
    sku: str | None
    price: int
    weight: Decimal
    stock: int


@dataclass(frozen=True)
class Product:
    id: int
    name: str
    sku: str | None
    price: int  # minor units of the default currency
    weight: Decimal
    stock: int
    active: bool = True
    category_id: int | None = None
    has_variants: bool = False
    variants: tuple[Variant, ...] = field(default_factory=tuple)

    def variant(self, variant_id: int) -> Variant | None:
        for v in self.variants:
            if v.id == variant_id:
                return v
        return None


class ProductCatalog(ABC):
    """Product, stock and category lookups."""

    @abstractmethod
    def get_product(self, product_id: int) -> Product:
        ...

    @abstractmethod
    def reserve_stock(self, product_id: int, variant_id: int, delta: int) -> None:
        """Atomically adjust stock by `delta` (negative to decrement); InsufficientStock if it would go below 0."""

    @abstractmethod
    def is_available(self, product_id: int, variant_id: int, quantity: int) -> bool:
        ...

    @abstractmethod
    def is_product_in_category(self, product_id: int, category_id: int) -> bool:
        ...


def _parse_variant(data: dict) -> Variant:
    return Variant(
        id=data["id"],
        name=data["name"],
        sku=data.get("sku"),
        price=to_minor_units(str(data["price"])),
        weight=Decimal(str(data.get("weight", 0))),
        stock=int(data.get("stock", 0)),
    )


def parse_product(data: dict) -> Product:
    variants = tuple(_parse_variant(v) for v in data.get("variants", []))
    return Product(
        id=data["id"],
        name=data["name"],
        sku=data.get("sku"),
        price=to_minor_units(str(data["price"])),
        weight=Decimal(str(data.get("weight", 0))),
        stock=int(data.get("stock", 0)),
        active=bool(data.get("active", True)),
        category_id=data.get("category_id"),
        has_variants=bool(data.get("has_variants", bool(variants))),
        variants=variants,
    )


class ProductClient(ProductCatalog):
    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = (base_url or PRODUCT_SERVICE_URL).rstrip("/")
        self.timeout = timeout or HTTP_TIMEOUT_SECONDS

    @http_retry()
    def _get(self, path: str, params: dict | None = None) -> requests.Response:
        url = f"{self.base_url}{path}"
        logger.info(f"ProductClient GET {url}")
        return requests.get(url, params=params, timeout=self.timeout)

    @connect_retry()
    def _post(self, path: str, payload: dict) -> requests.Response:
        url = f"{self.base_url}{path}"
        logger.info(f"ProductClient POST {url}")
        return requests.post(url, json=payload, timeout=self.timeout)

    def _request(self, call, *args) -> requests.Response:
        try:
            resp = call(*args)
        except requests.RequestException as e:
            raise CollaboratorUnavailable(f"Product service unavailable: {e}") from e
        if resp.status_code >= 500:
            raise CollaboratorUnavailable(f"Product service error {resp.status_code}")
        return resp

    def _ensure_ok(self, resp: requests.Response):
        if resp.status_code >= 400:
            raise CollaboratorUnavailable(f"Product service rejected the request: {resp.status_code}")

    def fetch_product(self, product_id: int) -> dict:
        resp = self._request(self._get, f"/products/{product_id}")
        if resp.status_code == 404:
            raise NotFound(f"Product {product_id} not found", product_id=product_id)
        self._ensure_ok(resp)
        return resp.json()

    def get_product(self, product_id: int) -> Product:
        return parse_product(self.fetch_product(product_id))

    def reserve_stock(self, product_id: int, variant_id: int, delta: int) -> None:
        try:
            resp = self._request(
                self._post,
                f"/products/{product_id}/stock",
                {"variant_id": variant_id, "delta": delta},
            )
        except CollaboratorUnavailable as e:
            if isinstance(e.__cause__, requests.Timeout):
                # the service may have applied it, so it cannot be compensated blindly
                logger.error(
                    "stock adjustment outcome unknown",
                    product_id=product_id,
                    variant_id=variant_id,
                    delta=delta,
                )
            raise
        if resp.status_code == 404:
            raise NotFound(f"Product {product_id} not found", product_id=product_id)
        if resp.status_code == 409:
            raise InsufficientStock(
                f"Insufficient stock for product {product_id}",
                product_id=product_id,
                variant_id=variant_id,
            )
        self._ensure_ok(resp)

    def is_available(self, product_id: int, variant_id: int, quantity: int) -> bool:
        resp = self._request(
            self._get,
            f"/products/{product_id}/availability",
            {"variant_id": variant_id, "quantity": quantity},
        )
        if resp.status_code == 404:
            return False
        self._ensure_ok(resp)
        return bool(resp.json().get("available"))

    def is_product_in_category(self, product_id: int, category_id: int) -> bool:
        try:
            product = self.get_product(product_id)
        except NotFound:
            return False
        return product.category_id == category_id
