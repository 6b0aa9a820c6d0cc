# storefront/domain/errors.py
"""
Error taxonomy of the checkout/order core.

Every error belongs to exactly one kind. Kinds also derive from the builtin
the HTTP layer already understands (PermissionError -> 403, ValueError -> 400,
LookupError -> 404), so callers that only know builtins keep working.
"""


class CommerceError(Exception):
    kind = "error"

    def __init__(self, message: str = "", **context):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        self.context = context


# kinds
class NotFound(CommerceError, LookupError):
    kind = "not_found"


class Unauthorized(CommerceError, PermissionError):
    kind = "unauthorized"


class InvalidState(CommerceError, ValueError):
    kind = "invalid_state"


class InvalidInput(CommerceError, ValueError):
    kind = "invalid_input"


class InsufficientStock(CommerceError):
    kind = "insufficient_stock"


class ExternalFailure(CommerceError, RuntimeError):
    kind = "external_failure"


class ConcurrencyConflict(CommerceError, RuntimeError):
    kind = "concurrency_conflict"


# not found
class ItemNotFound(NotFound):
    pass


# invalid input
class InvalidAmount(InvalidInput):
    pass


class InvalidCurrency(InvalidInput):
    pass


class EmptyCheckout(InvalidInput):
    pass


class MissingAddress(InvalidInput):
    pass


class MissingCustomerDetails(InvalidInput):
    pass


class DiscountInvalid(InvalidInput):
    pass


class ProviderUnavailable(InvalidInput):
    pass


# invalid state
class CheckoutNotActive(InvalidState):
    pass


class InvalidStatusTransition(InvalidState):
    pass


class AlreadyPaid(InvalidState):
    pass


class CaptureNotAllowed(InvalidState):
    pass


class CancelNotAllowed(InvalidState):
    pass


class RefundExceedsAvailable(InvalidState):
    pass


# external
class GatewayError(ExternalFailure):
    pass


class CollaboratorUnavailable(ExternalFailure):
    pass
