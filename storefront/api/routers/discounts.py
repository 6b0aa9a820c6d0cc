# storefront/api/routers/discounts.py
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.api.errors import to_http
from storefront.data.database import get_db
from storefront.domain.errors import CommerceError
from storefront.domain.schemas import DiscountCodeIn, DiscountCreate, DiscountOut, OrderOut
from storefront.services.discount_service import DiscountService
from storefront.services.product_client import ProductClient

router = APIRouter(prefix="/discounts", tags=["discounts"])


def get_service(db: Session):
    return DiscountService(db, catalog=ProductClient())


@router.get("/", response_model=List[DiscountOut])
def list_discounts(active_only: bool = Query(False), db: Session = Depends(get_db)):
    return get_service(db).list_discounts(active_only=active_only)


@router.post("/", response_model=DiscountOut, status_code=201)
def create_discount(payload: DiscountCreate, db: Session = Depends(get_db)):
    svc = get_service(db)
    try:
        return svc.create_discount(**payload.model_dump())
    except CommerceError as e:
        raise to_http(e)


@router.get("/{discount_id}", response_model=DiscountOut)
def get_discount(discount_id: int, db: Session = Depends(get_db)):
    svc = get_service(db)
    try:
        return svc.get_discount(discount_id)
    except CommerceError as e:
        raise to_http(e)


@router.post("/{discount_id}/deactivate", response_model=DiscountOut)
def deactivate(discount_id: int, db: Session = Depends(get_db)):
    svc = get_service(db)
    try:
        return svc.deactivate(discount_id)
    except CommerceError as e:
        raise to_http(e)


@router.post("/orders/{order_id}", response_model=OrderOut)
def apply_to_order(order_id: int, payload: DiscountCodeIn, db: Session = Depends(get_db)):
    svc = get_service(db)
    try:
        return svc.apply_to_order(order_id, payload.code)
    except CommerceError as e:
        raise to_http(e)


@router.delete("/orders/{order_id}", response_model=OrderOut)
def remove_from_order(order_id: int, db: Session = Depends(get_db)):
    svc = get_service(db)
    try:
        return svc.remove_from_order(order_id)
    except CommerceError as e:
        raise to_http(e)
