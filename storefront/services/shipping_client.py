# storefront/services/shipping_client.py
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal

import requests

from storefront.domain.errors import CollaboratorUnavailable
from storefront.utils.logging import get_logger
from storefront.utils.retry import http_retry
from storefront.utils.settings import HTTP_TIMEOUT_SECONDS, SHIPPING_SERVICE_URL

logger = get_logger(__name__)


@dataclass(frozen=True)
class WeightTier:
    min_weight: Decimal
    max_weight: Decimal  # 0 = no upper bound
    rate: int


@dataclass(frozen=True)
class ValueTier:
    min_order_value: int
    max_order_value: int  # 0 = no upper bound
    rate: int


@dataclass(frozen=True)
class ShippingRate:
    method_id: int
    name: str
    base_rate: int
    min_order_value: int = 0
    free_shipping_threshold: int | None = None
    weight_tiers: tuple[WeightTier, ...] = field(default_factory=tuple)
    value_tiers: tuple[ValueTier, ...] = field(default_factory=tuple)
    estimated_delivery_days: int | None = None

    def cost_for(self, order_value: int, weight: Decimal) -> int | None:
        """
        Shipping cost in minor units, or None when the order does not qualify
        for this rate (below its minimum order value).

        The first matching weight tier and the first matching value tier are
        added on top of the base rate.
        """
        if self.free_shipping_threshold is not None and order_value >= self.free_shipping_threshold:
            return 0
        if order_value < self.min_order_value:
            return None

        cost = self.base_rate
        for tier in self.weight_tiers:
            if weight >= tier.min_weight and (not tier.max_weight or weight <= tier.max_weight):
                cost += tier.rate
                break
        for tier in self.value_tiers:
            if order_value >= tier.min_order_value and (not tier.max_order_value or order_value <= tier.max_order_value):
                cost += tier.rate
                break
        return cost


class ShippingRates(ABC):
    @abstractmethod
    def get_rates_for_address(self, address: dict, order_value: int) -> list[ShippingRate]:
        ...


def parse_rate(data: dict) -> ShippingRate:
    return ShippingRate(
        method_id=data["method_id"],
        name=data.get("name", ""),
        base_rate=int(data["base_rate"]),
        min_order_value=int(data.get("min_order_value", 0)),
        free_shipping_threshold=data.get("free_shipping_threshold"),
        weight_tiers=tuple(
            WeightTier(Decimal(str(t["min_weight"])), Decimal(str(t["max_weight"])), int(t["rate"]))
            for t in data.get("weight_tiers", [])
        ),
        value_tiers=tuple(
            ValueTier(int(t["min_order_value"]), int(t["max_order_value"]), int(t["rate"]))
            for t in data.get("value_tiers", [])
        ),
        estimated_delivery_days=data.get("estimated_delivery_days"),
    )


class ShippingClient(ShippingRates):
    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = (base_url or SHIPPING_SERVICE_URL).rstrip("/")
        self.timeout = timeout or HTTP_TIMEOUT_SECONDS

    @http_retry()
    def _fetch_rates(self, address: dict, order_value: int) -> requests.Response:
        url = f"{self.base_url}/rates"
        logger.info(f"ShippingClient POST {url}")
        return requests.post(url, json={"address": address, "order_value": order_value}, timeout=self.timeout)

    def get_rates_for_address(self, address: dict, order_value: int) -> list[ShippingRate]:
        try:
            resp = self._fetch_rates(address, order_value)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise CollaboratorUnavailable(f"Shipping service unavailable: {e}") from e
        return [parse_rate(r) for r in resp.json().get("rates", [])]
