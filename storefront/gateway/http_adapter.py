"""HTTP payment gateway adapter.

Talks JSON to a payment service that fronts the real providers. Declines come
back as 402/4xx with an `error` field and become unsuccessful results;
transport problems (timeouts, refused connections, 5xx) raise GatewayError.
"""

import requests

from storefront.domain.errors import GatewayError
from storefront.gateway.port import (
    OperationResult,
    PaymentGateway,
    PaymentRequest,
    PaymentResult,
    ProviderInfo,
)
from storefront.utils.logging import get_logger
from storefront.utils.retry import connect_retry
from storefront.utils.settings import HTTP_TIMEOUT_SECONDS, PAYMENT_GATEWAY_URL

logger = get_logger(__name__)


class HttpPaymentGateway(PaymentGateway):
    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = (base_url or PAYMENT_GATEWAY_URL).rstrip("/")
        self.timeout = timeout or HTTP_TIMEOUT_SECONDS
        self.session = requests.Session()

    @connect_retry()
    def _send(self, method: str, path: str, payload: dict | None = None, idempotency_key: str | None = None):
        url = f"{self.base_url}{path}"
        headers = {"Idempotency-Key": idempotency_key} if idempotency_key else {}
        logger.info("gateway request", method=method, url=url)
        return self.session.request(method, url, json=payload, headers=headers, timeout=self.timeout)

    def _call(self, method: str, path: str, payload: dict | None = None, idempotency_key: str | None = None) -> dict:
        try:
            resp = self._send(method, path, payload, idempotency_key)
        except requests.RequestException as e:
            logger.warning("gateway unreachable", path=path, error=str(e))
            raise GatewayError(f"Payment gateway unreachable: {e}") from e

        if resp.status_code >= 500:
            raise GatewayError(f"Payment gateway error {resp.status_code}")

        try:
            body = resp.json()
        except ValueError as e:
            raise GatewayError("Payment gateway returned a non-JSON response") from e

        if resp.status_code >= 400:
            body.setdefault("success", False)
            body.setdefault("error", f"Payment gateway rejected the request ({resp.status_code})")
        return body

    def process_payment(self, request: PaymentRequest) -> PaymentResult:
        body = self._call(
            "POST",
            "/payments",
            {
                "order_id": request.order_id,
                "amount": request.amount,
                "currency": request.currency,
                "provider": request.provider,
                "method": request.method,
                "customer_email": request.customer_email,
                "details": request.details,
            },
            idempotency_key=request.idempotency_key,
        )
        return PaymentResult(
            success=bool(body.get("success")),
            transaction_id=body.get("transaction_id"),
            requires_action=bool(body.get("requires_action")),
            action_url=body.get("action_url"),
            error_message=body.get("error"),
        )

    def _operation(self, path: str, payload: dict) -> OperationResult:
        body = self._call("POST", path, payload)
        return OperationResult(
            success=bool(body.get("success")),
            transaction_id=body.get("transaction_id"),
            error_message=body.get("error"),
        )

    def capture_payment(self, transaction_id: str, amount: int, provider: str) -> OperationResult:
        return self._operation(f"/payments/{transaction_id}/capture", {"amount": amount, "provider": provider})

    def cancel_payment(self, transaction_id: str, provider: str) -> OperationResult:
        return self._operation(f"/payments/{transaction_id}/cancel", {"provider": provider})

    def refund_payment(self, transaction_id: str, amount: int, provider: str) -> OperationResult:
        return self._operation(f"/payments/{transaction_id}/refund", {"amount": amount, "provider": provider})

    def get_available_providers(self) -> list[ProviderInfo]:
        body = self._call("GET", "/providers")
        return [
            ProviderInfo(
                type=p["type"],
                name=p.get("name", p["type"]),
                enabled=bool(p.get("enabled")),
                methods=tuple(p.get("methods", ())),
            )
            for p in body.get("providers", [])
        ]
