# storefront/api/routers/currencies.py
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.api.errors import to_http
from storefront.data.database import get_db
from storefront.domain.errors import CommerceError
from storefront.domain.schemas import ConversionOut, CurrencyCreate, CurrencyOut, CurrencyUpdate
from storefront.services.currency_service import CurrencyService

router = APIRouter(prefix="/currencies", tags=["currencies"])


def get_service(db: Session):
    return CurrencyService(db)


@router.get("/", response_model=List[CurrencyOut])
def list_currencies(enabled_only: bool = Query(False), db: Session = Depends(get_db)):
    return get_service(db).list_currencies(enabled_only=enabled_only)


@router.post("/", response_model=CurrencyOut, status_code=201)
def create_currency(payload: CurrencyCreate, db: Session = Depends(get_db)):
    svc = get_service(db)
    try:
        return svc.create_currency(**payload.model_dump())
    except CommerceError as e:
        raise to_http(e)


@router.get("/convert", response_model=ConversionOut)
def convert(
    amount: int = Query(...),
    from_currency: str = Query(..., alias="from"),
    to_currency: str = Query(..., alias="to"),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        converted = svc.convert(amount, from_currency, to_currency)
        return ConversionOut(
            amount=amount,
            from_currency=from_currency.upper(),
            to_currency=to_currency.upper(),
            converted=converted,
            formatted=svc.format(converted, to_currency),
        )
    except CommerceError as e:
        raise to_http(e)


@router.get("/{code}", response_model=CurrencyOut)
def get_currency(code: str, db: Session = Depends(get_db)):
    svc = get_service(db)
    try:
        return svc.get_currency(code)
    except CommerceError as e:
        raise to_http(e)


@router.patch("/{code}", response_model=CurrencyOut)
def update_currency(code: str, payload: CurrencyUpdate, db: Session = Depends(get_db)):
    svc = get_service(db)
    try:
        return svc.update_currency(code, **payload.model_dump(exclude_unset=True))
    except CommerceError as e:
        raise to_http(e)


@router.put("/{code}/default", response_model=CurrencyOut)
def set_default(code: str, db: Session = Depends(get_db)):
    svc = get_service(db)
    try:
        return svc.set_default(code)
    except CommerceError as e:
        raise to_http(e)


@router.put("/{code}/enabled", response_model=CurrencyOut)
def set_enabled(code: str, enabled: bool = Query(...), db: Session = Depends(get_db)):
    svc = get_service(db)
    try:
        return svc.set_enabled(code, enabled)
    except CommerceError as e:
        raise to_http(e)


@router.delete("/{code}", status_code=204)
def delete_currency(code: str, db: Session = Depends(get_db)):
    svc = get_service(db)
    try:
        svc.delete_currency(code)
    except CommerceError as e:
        raise to_http(e)
