# storefront/api/routers/payments.py
from typing import List

from fastapi import APIRouter, Depends, Header, Query
from sqlalchemy.orm import Session

from storefront.api.errors import to_http
from storefront.data.database import get_db
from storefront.domain.errors import CommerceError
from storefront.domain.schemas import (
    AmountIn,
    BalanceOut,
    LedgerOut,
    PaymentIn,
    ProviderOut,
    TransactionOut,
    TransactionStatusUpdate,
)
from storefront.gateway import get_gateway
from storefront.services.lock_service import LockService
from storefront.services.payment_service import PaymentService

router = APIRouter(prefix="/payments", tags=["payments"])


def get_service(db: Session):
    return PaymentService(
        db=db,
        gateway=get_gateway(),
        lock_service=LockService(),
    )


def _ledger(result) -> LedgerOut:
    return LedgerOut.model_validate(
        {
            "order": result.order,
            "transaction": result.transaction,
            "requires_action": result.requires_action,
            "replayed": result.replayed,
        },
        from_attributes=True,
    )


@router.get("/providers", response_model=List[ProviderOut])
def list_providers(db: Session = Depends(get_db)):
    return get_service(db).list_providers()


@router.post("/", response_model=LedgerOut)
def process_payment(
    payload: PaymentIn,
    user_id: int | None = Query(None),
    idempotency_key: str | None = Header(None),
    db: Session = Depends(get_db),
):
    """
    Authorizes payment for a pending order. When the provider needs a
    customer step (3-D Secure and the like) the order moves to pending_action
    and the response carries the action_url.
    """
    svc = get_service(db)
    try:
        result = svc.process_payment(
            payload.order_id,
            provider=payload.provider,
            method=payload.method,
            details=payload.details,
            idempotency_key=idempotency_key,
            user_id=user_id,
        )
    except CommerceError as e:
        raise to_http(e)
    return _ledger(result)


@router.post("/{payment_id}/capture", response_model=LedgerOut)
def capture(
    payment_id: str,
    payload: AmountIn,
    idempotency_key: str | None = Header(None),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        return _ledger(svc.capture(payment_id, payload.amount, idempotency_key))
    except CommerceError as e:
        raise to_http(e)


@router.post("/{payment_id}/cancel", response_model=LedgerOut)
def cancel(
    payment_id: str,
    idempotency_key: str | None = Header(None),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        return _ledger(svc.cancel(payment_id, idempotency_key))
    except CommerceError as e:
        raise to_http(e)


@router.post("/{payment_id}/refund", response_model=LedgerOut)
def refund(
    payment_id: str,
    payload: AmountIn,
    idempotency_key: str | None = Header(None),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        return _ledger(svc.refund(payment_id, payload.amount, idempotency_key))
    except CommerceError as e:
        raise to_http(e)


@router.get("/orders/{order_id}/transactions", response_model=List[TransactionOut])
def list_transactions(order_id: int, db: Session = Depends(get_db)):
    svc = get_service(db)
    try:
        return svc.list_transactions(order_id)
    except CommerceError as e:
        raise to_http(e)


@router.get("/orders/{order_id}/balance", response_model=BalanceOut)
def balance(order_id: int, db: Session = Depends(get_db)):
    svc = get_service(db)
    try:
        return BalanceOut(
            order_id=order_id,
            remaining_capturable=svc.remaining_capturable(order_id),
            remaining_refundable=svc.remaining_refundable(order_id),
        )
    except CommerceError as e:
        raise to_http(e)


@router.put("/transactions/{transaction_id}", response_model=TransactionOut)
def update_transaction_status(
    transaction_id: int,
    payload: TransactionStatusUpdate,
    db: Session = Depends(get_db),
):
    """
    Provider callback: settles a pending transaction.
    """
    svc = get_service(db)
    try:
        return svc.update_transaction_status(transaction_id, payload.status, payload.metadata)
    except CommerceError as e:
        raise to_http(e)
