# product_service/main.py
from threading import Lock

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel

app = FastAPI(title="Product Service (dev mock)")


PRODUCTS = {
    1: {"id": 1, "name": "Keyboard", "sku": "KB-1", "price": 199.99, "weight": 0.9, "stock": 25, "category_id": 10},
    2: {"id": 2, "name": "Mouse", "sku": "MS-1", "price": 49.50, "weight": 0.2, "stock": 100, "category_id": 10},
    3: {"id": 3, "name": "Monitor", "sku": "MN-1", "price": 899.00, "weight": 6.5, "stock": 5, "category_id": 20},
    4: {
        "id": 4,
        "name": "T-Shirt",
        "sku": "TS",
        "price": 19.00,
        "weight": 0.2,
        "stock": 0,
        "category_id": 30,
        "has_variants": True,
        "variants": [
            {"id": 41, "name": "M", "sku": "TS-M", "price": 19.00, "weight": 0.2, "stock": 10},
            {"id": 42, "name": "XL", "sku": "TS-XL", "price": 21.00, "weight": 0.25, "stock": 3},
        ],
    },
}

_stock_lock = Lock()


class StockChange(BaseModel):
    variant_id: int = 0
    delta: int


def _product(product_id: int) -> dict:
    product = PRODUCTS.get(product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


def _stock_holder(product: dict, variant_id: int) -> dict:
    if not variant_id:
        return product
    for variant in product.get("variants", []):
        if variant["id"] == variant_id:
            return variant
    raise HTTPException(status_code=404, detail="Variant not found")


@app.get("/products/{product_id}")
def get_product(product_id: int):
    return _product(product_id)


@app.get("/products/{product_id}/availability")
def availability(product_id: int, variant_id: int = Query(0), quantity: int = Query(1)):
    holder = _stock_holder(_product(product_id), variant_id)
    return {"available": holder["stock"] >= quantity, "stock": holder["stock"]}


@app.post("/products/{product_id}/stock")
def change_stock(product_id: int, payload: StockChange):
    """Adjust stock by delta; refuses to go below zero."""
    holder = _stock_holder(_product(product_id), payload.variant_id)
    with _stock_lock:
        if holder["stock"] + payload.delta < 0:
            raise HTTPException(status_code=409, detail="Insufficient stock")
        holder["stock"] += payload.delta
        return {"stock": holder["stock"]}
