"""Payment gateway port (abstract interface).

Adapters return result objects for declined/failed operations and raise
GatewayError only when the gateway could not be reached or answered with
something unusable. The ledger treats both as a failed operation.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True)
class PaymentRequest:
    order_id: int
    amount: int
    currency: str
    provider: str
    method: str
    customer_email: str | None = None
    details: dict = field(default_factory=dict)
    idempotency_key: str | None = None


@dataclass(frozen=True)
class PaymentResult:
    """Outcome of an authorization attempt."""

    success: bool
    transaction_id: str | None = None
    requires_action: bool = False
    action_url: str | None = None
    error_message: str | None = None


@dataclass(frozen=True)
class OperationResult:
    """Outcome of capture, cancel and refund calls."""

    success: bool
    transaction_id: str | None = None
    error_message: str | None = None


@dataclass(frozen=True)
class ProviderInfo:
    type: str
    name: str
    enabled: bool
    methods: tuple[str, ...] = ()


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    def process_payment(self, request: PaymentRequest) -> PaymentResult:
        ...

    @abstractmethod
    def capture_payment(self, transaction_id: str, amount: int, provider: str) -> OperationResult:
        ...

    @abstractmethod
    def cancel_payment(self, transaction_id: str, provider: str) -> OperationResult:
        ...

    @abstractmethod
    def refund_payment(self, transaction_id: str, amount: int, provider: str) -> OperationResult:
        ...

    @abstractmethod
    def get_available_providers(self) -> list[ProviderInfo]:
        ...

    def is_provider_enabled(self, provider: str) -> bool:
        return any(p.type == provider and p.enabled for p in self.get_available_providers())
