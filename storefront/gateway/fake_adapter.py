"""Configurable fake payment gateway for development and testing.

No external calls. The outcome of the next operations is set with
`configure()`; every call is recorded in `calls` so tests can assert on what
reached the gateway.
"""

from uuid import uuid4

from storefront.domain.errors import GatewayError
from storefront.gateway.port import (
    OperationResult,
    PaymentGateway,
    PaymentRequest,
    PaymentResult,
    ProviderInfo,
)

SUCCESS = "success"
REQUIRES_ACTION = "requires_action"
FAILURE = "failure"
TIMEOUT = "timeout"


class FakeGateway(PaymentGateway):
    def __init__(self, providers: list[ProviderInfo] | None = None) -> None:
        self.outcome: str = SUCCESS
        self.failure_reason: str = "Card declined"
        self.action_url: str = "https://gateway.example.com/3ds/challenge"
        self.calls: list[dict] = []
        self.providers = providers or [
            ProviderInfo(type="stripe", name="Stripe", enabled=True, methods=("card",)),
            ProviderInfo(type="paypal", name="PayPal", enabled=True, methods=("wallet",)),
            ProviderInfo(type="mobilemoney", name="Mobile Money", enabled=False, methods=("wallet",)),
        ]

    def configure(self, outcome: str = SUCCESS, failure_reason: str = "Card declined") -> None:
        self.outcome = outcome
        self.failure_reason = failure_reason

    def _fail(self) -> OperationResult:
        if self.outcome == TIMEOUT:
            raise GatewayError("Payment gateway timed out")
        return OperationResult(success=False, error_message=self.failure_reason)

    def process_payment(self, request: PaymentRequest) -> PaymentResult:
        self.calls.append({"method": "process_payment", "request": request})

        if self.outcome == TIMEOUT:
            raise GatewayError("Payment gateway timed out")
        if self.outcome == FAILURE:
            return PaymentResult(success=False, error_message=self.failure_reason)

        transaction_id = f"fake_txn_{uuid4().hex[:12]}"
        if self.outcome == REQUIRES_ACTION:
            return PaymentResult(
                success=False,
                transaction_id=transaction_id,
                requires_action=True,
                action_url=self.action_url,
            )
        return PaymentResult(success=True, transaction_id=transaction_id)

    def capture_payment(self, transaction_id: str, amount: int, provider: str) -> OperationResult:
        self.calls.append(
            {"method": "capture_payment", "transaction_id": transaction_id, "amount": amount, "provider": provider}
        )
        if self.outcome in (FAILURE, TIMEOUT):
            return self._fail()
        return OperationResult(success=True, transaction_id=f"fake_cap_{uuid4().hex[:12]}")

    def cancel_payment(self, transaction_id: str, provider: str) -> OperationResult:
        self.calls.append({"method": "cancel_payment", "transaction_id": transaction_id, "provider": provider})
        if self.outcome in (FAILURE, TIMEOUT):
            return self._fail()
        return OperationResult(success=True, transaction_id=transaction_id)

    def refund_payment(self, transaction_id: str, amount: int, provider: str) -> OperationResult:
        self.calls.append(
            {"method": "refund_payment", "transaction_id": transaction_id, "amount": amount, "provider": provider}
        )
        if self.outcome in (FAILURE, TIMEOUT):
            return self._fail()
        return OperationResult(success=True, transaction_id=f"fake_ref_{uuid4().hex[:12]}")

    def get_available_providers(self) -> list[ProviderInfo]:
        return list(self.providers)
