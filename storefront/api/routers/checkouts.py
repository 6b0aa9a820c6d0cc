# storefront/api/routers/checkouts.py
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from storefront.api.errors import get_owner, to_http
from storefront.data.database import get_db
from storefront.domain.errors import CommerceError
from storefront.domain.schemas import (
    Address,
    CheckoutCreate,
    CheckoutOut,
    ConvertGuestIn,
    CurrencyChangeIn,
    CustomerDetailsIn,
    DiscountCodeIn,
    ItemIn,
    ItemUpdate,
    PaymentProviderIn,
    ShippingMethodIn,
)
from storefront.services.checkout_service import CheckoutService, Owner
from storefront.services.product_client import ProductClient
from storefront.services.shipping_client import ShippingClient

router = APIRouter(prefix="/checkouts", tags=["checkouts"])


def get_service(db: Session):
    return CheckoutService(
        db=db,
        catalog=ProductClient(),
        shipping=ShippingClient(),
    )


@router.post("/", response_model=CheckoutOut)
def get_or_create_checkout(
    payload: CheckoutCreate,
    owner: Owner = Depends(get_owner),
    db: Session = Depends(get_db),
):
    """
    Returns the owner's active checkout, creating one when there is none.
    """
    svc = get_service(db)
    try:
        return svc.get_or_create(owner, currency=payload.currency)
    except CommerceError as e:
        raise to_http(e)


@router.get("/active", response_model=CheckoutOut)
def get_active_checkout(owner: Owner = Depends(get_owner), db: Session = Depends(get_db)):
    svc = get_service(db)
    checkout = svc.find_active(owner)
    if not checkout:
        raise HTTPException(status_code=404, detail="No active checkout")
    return checkout


@router.post("/convert-guest", response_model=CheckoutOut)
def convert_guest(payload: ConvertGuestIn, db: Session = Depends(get_db)):
    """
    Hands a guest session's checkout over to a user who just signed in.
    """
    svc = get_service(db)
    try:
        return svc.convert_guest_to_user(payload.session_id, payload.user_id)
    except CommerceError as e:
        raise to_http(e)


@router.get("/{checkout_id}", response_model=CheckoutOut)
def get_checkout(checkout_id: int, owner: Owner = Depends(get_owner), db: Session = Depends(get_db)):
    svc = get_service(db)
    try:
        return svc.get_checkout(checkout_id, owner)
    except CommerceError as e:
        raise to_http(e)


@router.delete("/{checkout_id}", status_code=204)
def delete_checkout(checkout_id: int, owner: Owner = Depends(get_owner), db: Session = Depends(get_db)):
    svc = get_service(db)
    try:
        svc.delete_checkout(checkout_id, owner)
    except CommerceError as e:
        raise to_http(e)


@router.post("/{checkout_id}/items", response_model=CheckoutOut)
def add_item(
    checkout_id: int,
    payload: ItemIn,
    owner: Owner = Depends(get_owner),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        return svc.add_item(
            checkout_id,
            owner,
            product_id=payload.product_id,
            variant_id=payload.variant_id,
            quantity=payload.quantity,
        )
    except CommerceError as e:
        raise to_http(e)


@router.put("/{checkout_id}/items/{product_id}", response_model=CheckoutOut)
def update_item(
    checkout_id: int,
    product_id: int,
    payload: ItemUpdate,
    variant_id: int = Query(0, ge=0),
    owner: Owner = Depends(get_owner),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        return svc.update_item(checkout_id, owner, product_id, variant_id, payload.quantity)
    except CommerceError as e:
        raise to_http(e)


@router.delete("/{checkout_id}/items/{product_id}", response_model=CheckoutOut)
def remove_item(
    checkout_id: int,
    product_id: int,
    variant_id: int = Query(0, ge=0),
    owner: Owner = Depends(get_owner),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        return svc.remove_item(checkout_id, owner, product_id, variant_id)
    except CommerceError as e:
        raise to_http(e)


@router.delete("/{checkout_id}/items", response_model=CheckoutOut)
def clear_checkout(checkout_id: int, owner: Owner = Depends(get_owner), db: Session = Depends(get_db)):
    svc = get_service(db)
    try:
        return svc.clear(checkout_id, owner)
    except CommerceError as e:
        raise to_http(e)


@router.put("/{checkout_id}/shipping-address", response_model=CheckoutOut)
def set_shipping_address(
    checkout_id: int,
    payload: Address,
    owner: Owner = Depends(get_owner),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        return svc.set_shipping_address(checkout_id, owner, payload.model_dump())
    except CommerceError as e:
        raise to_http(e)


@router.put("/{checkout_id}/billing-address", response_model=CheckoutOut)
def set_billing_address(
    checkout_id: int,
    payload: Address,
    owner: Owner = Depends(get_owner),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        return svc.set_billing_address(checkout_id, owner, payload.model_dump())
    except CommerceError as e:
        raise to_http(e)


@router.put("/{checkout_id}/customer", response_model=CheckoutOut)
def set_customer_details(
    checkout_id: int,
    payload: CustomerDetailsIn,
    owner: Owner = Depends(get_owner),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        return svc.set_customer_details(checkout_id, owner, payload.full_name, payload.email, payload.phone)
    except CommerceError as e:
        raise to_http(e)


@router.put("/{checkout_id}/shipping-method", response_model=CheckoutOut)
def set_shipping_method(
    checkout_id: int,
    payload: ShippingMethodIn,
    owner: Owner = Depends(get_owner),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        return svc.set_shipping_method(checkout_id, owner, payload.method_id)
    except CommerceError as e:
        raise to_http(e)


@router.put("/{checkout_id}/payment-provider", response_model=CheckoutOut)
def set_payment_provider(
    checkout_id: int,
    payload: PaymentProviderIn,
    owner: Owner = Depends(get_owner),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        return svc.set_payment_provider(checkout_id, owner, payload.provider)
    except CommerceError as e:
        raise to_http(e)


@router.post("/{checkout_id}/discount", response_model=CheckoutOut)
def apply_discount(
    checkout_id: int,
    payload: DiscountCodeIn,
    owner: Owner = Depends(get_owner),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        return svc.apply_discount(checkout_id, owner, payload.code)
    except CommerceError as e:
        raise to_http(e)


@router.delete("/{checkout_id}/discount", response_model=CheckoutOut)
def remove_discount(checkout_id: int, owner: Owner = Depends(get_owner), db: Session = Depends(get_db)):
    svc = get_service(db)
    try:
        return svc.remove_discount(checkout_id, owner)
    except CommerceError as e:
        raise to_http(e)


@router.put("/{checkout_id}/currency", response_model=CheckoutOut)
def change_currency(
    checkout_id: int,
    payload: CurrencyChangeIn,
    owner: Owner = Depends(get_owner),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        return svc.change_currency(checkout_id, owner, payload.currency)
    except CommerceError as e:
        raise to_http(e)


@router.post("/{checkout_id}/extend", response_model=CheckoutOut)
def extend_expiry(
    checkout_id: int,
    seconds: int = Query(..., gt=0),
    owner: Owner = Depends(get_owner),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        return svc.extend_expiry(checkout_id, owner, seconds)
    except CommerceError as e:
        raise to_http(e)
