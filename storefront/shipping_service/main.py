# shipping_service/main.py
from fastapi import FastAPI
from pydantic import BaseModel

app = FastAPI(title="Shipping Service (dev mock)")


RATES = [
    {
        "method_id": 1,
        "name": "Standard",
        "base_rate": 500,
        "free_shipping_threshold": 10000,
        "weight_tiers": [
            {"min_weight": 0, "max_weight": 2, "rate": 0},
            {"min_weight": 2, "max_weight": 0, "rate": 700},
        ],
        "estimated_delivery_days": 5,
    },
    {
        "method_id": 2,
        "name": "Express",
        "base_rate": 1500,
        "min_order_value": 2000,
        "value_tiers": [{"min_order_value": 50000, "max_order_value": 0, "rate": 1000}],
        "estimated_delivery_days": 1,
    },
]

# countries served per method
COVERAGE = {1: None, 2: {"US", "PL", "DE"}}


class RatesQuery(BaseModel):
    address: dict
    order_value: int


@app.post("/rates")
def rates(payload: RatesQuery):
    country = (payload.address.get("country") or "").upper()
    return {
        "rates": [
            rate for rate in RATES
            if COVERAGE[rate["method_id"]] is None or country in COVERAGE[rate["method_id"]]
        ]
    }
