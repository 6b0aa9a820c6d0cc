# storefront/api/routers/orders.py
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.api.errors import get_owner, to_http
from storefront.data.database import get_db
from storefront.domain.errors import CommerceError, InvalidInput
from storefront.domain.schemas import OrderCreate, OrderOut, OrderStatusUpdate
from storefront.services.checkout_service import Owner
from storefront.services.lock_service import LockService
from storefront.services.order_service import OrderService
from storefront.services.product_client import ProductClient

router = APIRouter(prefix="/orders", tags=["orders"])


def get_service(db: Session):
    return OrderService(
        db=db,
        catalog=ProductClient(),
        lock_service=LockService(),
    )


@router.post("/", response_model=OrderOut, status_code=201)
def create_order(
    payload: OrderCreate,
    owner: Owner = Depends(get_owner),
    db: Session = Depends(get_db),
):
    """
    Places an order from an active checkout.
    Confirmation emails are sent asynchronously.
    """
    svc = get_service(db)
    try:
        return svc.create_order_from_checkout(payload.checkout_id, owner)
    except CommerceError as e:
        raise to_http(e)


@router.get("/", response_model=List[OrderOut])
def list_orders(user_id: int = Query(...), db: Session = Depends(get_db)):
    svc = get_service(db)
    return svc.list_orders(user_id)


@router.get("/{order_id}", response_model=OrderOut)
def get_order(
    order_id: int,
    user_id: int | None = Query(None),
    email: str | None = Query(None),
    db: Session = Depends(get_db),
):
    """
    Order details. Signed-in customers pass user_id, guests pass the email
    the order was placed with.
    """
    svc = get_service(db)
    try:
        if user_id is None and email:
            return svc.get_guest_order(order_id, email)
        if user_id is None:
            raise InvalidInput("Either user_id or email is required")
        return svc.get_order(order_id, user_id)
    except CommerceError as e:
        raise to_http(e)


@router.put("/{order_id}/status", response_model=OrderOut)
def update_status(order_id: int, payload: OrderStatusUpdate, db: Session = Depends(get_db)):
    svc = get_service(db)
    try:
        return svc.update_status(order_id, payload.status)
    except CommerceError as e:
        raise to_http(e)
