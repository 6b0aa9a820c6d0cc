# storefront/api/errors.py
from fastapi import HTTPException, Query

from storefront.domain.errors import CommerceError, InvalidInput
from storefront.services.checkout_service import Owner

STATUS_BY_KIND = {
    "not_found": 404,
    "unauthorized": 403,
    "invalid_input": 400,
    "invalid_state": 409,
    "insufficient_stock": 409,
    "concurrency_conflict": 409,
    "external_failure": 502,
}


def to_http(exc: CommerceError) -> HTTPException:
    return HTTPException(
        status_code=STATUS_BY_KIND.get(exc.kind, 500),
        detail={"error": exc.__class__.__name__, "kind": exc.kind, "message": exc.message},
    )


def get_owner(
    user_id: int | None = Query(None),
    session_id: str | None = Query(None),
) -> Owner:
    try:
        return Owner(user_id=user_id, session_id=session_id)
    except InvalidInput as e:
        raise to_http(e)
