# storefront/services/payment_service.py
"""
Payment ledger.

Every call to the gateway leaves exactly one PaymentTransaction row behind,
including failed and timed-out calls, and the row is committed before any
error reaches the caller. Mutations for one order run under that order's
redis lock and the order row is version-checked on commit, so two concurrent
captures/refunds can never both see the same cumulative amounts.
"""
from contextlib import nullcontext
from dataclasses import dataclass

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from storefront.data.models.order import OrderModel
from storefront.data.models.payment_transaction import PaymentTransactionModel
from storefront.domain.errors import (
    AlreadyPaid,
    CancelNotAllowed,
    CaptureNotAllowed,
    ConcurrencyConflict,
    GatewayError,
    InvalidAmount,
    InvalidInput,
    InvalidState,
    NotFound,
    ProviderUnavailable,
    RefundExceedsAvailable,
    Unauthorized,
)
from storefront.domain.money import from_minor_units
from storefront.domain.status import PAID_STATUSES, OrderStatus, TransactionStatus, TransactionType
from storefront.gateway import get_gateway
from storefront.gateway.port import OperationResult, PaymentGateway, PaymentRequest, PaymentResult, ProviderInfo
from storefront.repos.currency_repo import CurrencyRepo
from storefront.repos.order_repo import OrderRepo
from storefront.repos.payment_transaction_repo import PaymentTransactionRepo
from storefront.services.lock_service import LockService
from storefront.services.order_service import apply_transition
from storefront.utils.clock import utcnow
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class LedgerResult:
    order: OrderModel
    transaction: PaymentTransactionModel
    replayed: bool = False

    @property
    def requires_action(self) -> bool:
        return self.order.status == OrderStatus.PENDING_ACTION.value and self.transaction.status == TransactionStatus.PENDING.value


class PaymentService:
    def __init__(
        self,
        db: Session,
        gateway: PaymentGateway | None = None,
        lock_service: LockService | None = None,
    ):
        self.orders = OrderRepo(db)
        self.ledger = PaymentTransactionRepo(db)
        self.currencies = CurrencyRepo(db)
        self.gateway = gateway or get_gateway()
        self.lock_service = lock_service

    # helpers
    def _lock(self, order_id: int):
        return self.lock_service.order_lock(order_id) if self.lock_service else nullcontext()

    def _amount_str(self, order: OrderModel, amount: int) -> str:
        currency = self.currencies.get(order.currency)
        return str(from_minor_units(amount, currency.precision if currency else 2))

    def _order_by_payment_id(self, payment_id: str) -> OrderModel:
        order = self.orders.get_by_payment_id(payment_id)
        if not order:
            raise NotFound(f"No order for payment {payment_id}", payment_id=payment_id)
        return order

    def _replayed(self, order: OrderModel, type: TransactionType, key: str | None) -> LedgerResult | None:
        if not key:
            return None
        tx = self.ledger.find_by_idempotency_key(order.id, type.value, key)
        if tx is None:
            return None
        logger.info("ledger replay", order_id=order.id, type=type.value, transaction=tx.id)
        return LedgerResult(order=order, transaction=tx, replayed=True)

    def _record(
        self,
        order: OrderModel,
        type: TransactionType,
        status: TransactionStatus,
        amount: int,
        transaction_id: str | None,
        meta: dict | None = None,
        error_message: str | None = None,
        idempotency_key: str | None = None,
        provider: str | None = None,
    ) -> PaymentTransactionModel:
        tx = PaymentTransactionModel(
            order_id=order.id,
            transaction_id=transaction_id,
            type=type.value,
            status=status.value,
            amount=amount,
            currency=order.currency,
            provider=provider or order.payment_provider,
            meta={k: str(v) for k, v in (meta or {}).items()},
            error_message=error_message,
            idempotency_key=idempotency_key,
        )
        return self.ledger.add(tx)

    def _commit(self, order: OrderModel):
        try:
            self.ledger.commit()
        except StaleDataError as e:
            self.ledger.rollback()
            logger.error("ledger write lost to a concurrent order update", order_id=order.id)
            raise ConcurrencyConflict(f"Order {order.id} was modified concurrently, retry", order_id=order.id) from e

    def _call(self, fn, *args) -> OperationResult:
        # a gateway that cannot be reached or times out is a failed operation
        try:
            return fn(*args)
        except GatewayError as e:
            return OperationResult(success=False, error_message=str(e))

    def _fail(self, order: OrderModel, tx: PaymentTransactionModel, message: str):
        self._commit(order)
        logger.warning(
            "payment operation failed",
            order_id=order.id,
            type=tx.type,
            amount=tx.amount,
            error=message,
        )
        raise GatewayError(message, order_id=order.id, transaction=tx.id)

    # queries
    def list_transactions(self, order_id: int) -> list[PaymentTransactionModel]:
        if not self.orders.get_order(order_id):
            raise NotFound(f"Order {order_id} not found", order_id=order_id)
        return self.ledger.list_for_order(order_id)

    def remaining_capturable(self, order_id: int) -> int:
        order = self.orders.get_order(order_id)
        if not order:
            raise NotFound(f"Order {order_id} not found", order_id=order_id)
        if order.status != OrderStatus.PAID.value:
            return 0
        return max(order.final_amount - self.ledger.sum_successful(order.id, TransactionType.CAPTURE.value), 0)

    def remaining_refundable(self, order_id: int) -> int:
        order = self.orders.get_order(order_id)
        if not order:
            raise NotFound(f"Order {order_id} not found", order_id=order_id)
        if order.status not in (OrderStatus.PAID.value, OrderStatus.CAPTURED.value):
            return 0
        return max(order.final_amount - self.ledger.sum_successful(order.id, TransactionType.REFUND.value), 0)

    def list_providers(self) -> list[ProviderInfo]:
        return self.gateway.get_available_providers()

    # commands
    def process_payment(
        self,
        order_id: int,
        provider: str,
        method: str,
        details: dict | None = None,
        idempotency_key: str | None = None,
        user_id: int | None = None,
    ) -> LedgerResult:
        """
        Authorizes the full order amount:
        1. Takes the order lock and reloads the order.
        2. Checks the owner, replays a known idempotency key, refuses paid orders
           and disabled providers.
        3. Calls the gateway; a gateway error counts as a failed payment.
        4. Requires action: records a pending row, moves the order to pending_action.
        5. Failure: records a failed row, raises GatewayError.
        6. Success: records a successful row, moves the order to paid.
        """
        with self._lock(order_id):
            order = self.orders.get_order(order_id)
            if not order:
                raise NotFound(f"Order {order_id} not found", order_id=order_id)
            self.orders.refresh(order)
            if user_id is not None and order.user_id != user_id:
                raise Unauthorized("Order belongs to another customer", order_id=order_id)

            replay = self._replayed(order, TransactionType.AUTHORIZE, idempotency_key)
            if replay:
                return replay

            if order.status in PAID_STATUSES or order.status == OrderStatus.CAPTURED.value:
                raise AlreadyPaid(f"Order {order.id} is already paid", order_id=order.id)
            if order.status not in (OrderStatus.PENDING.value, OrderStatus.PENDING_ACTION.value):
                raise InvalidState(f"Order {order.id} cannot be paid while {order.status}", order_id=order.id)
            if not self.gateway.is_provider_enabled(provider):
                raise ProviderUnavailable(f"Payment provider {provider} is not available", provider=provider)

            request = PaymentRequest(
                order_id=order.id,
                amount=order.final_amount,
                currency=order.currency,
                provider=provider,
                method=method,
                customer_email=order.customer_email,
                details=dict(details or {}),
                idempotency_key=idempotency_key,
            )
            try:
                result = self.gateway.process_payment(request)
            except GatewayError as e:
                result = PaymentResult(success=False, error_message=str(e))

            if result.requires_action:
                order.payment_provider = provider
                if order.status != OrderStatus.PENDING_ACTION.value:
                    apply_transition(order, OrderStatus.PENDING_ACTION)
                order.payment_id = result.transaction_id
                order.payment_method = method
                order.action_url = result.action_url
                tx = self._record(
                    order,
                    TransactionType.AUTHORIZE,
                    TransactionStatus.PENDING,
                    order.final_amount,
                    result.transaction_id,
                    meta={"action_url": result.action_url or ""},
                    idempotency_key=idempotency_key,
                )
                self._commit(order)
                logger.info("payment requires action", order_id=order.id, payment_id=order.payment_id)
                return LedgerResult(order=order, transaction=tx)

            if not result.success:
                tx = self._record(
                    order,
                    TransactionType.AUTHORIZE,
                    TransactionStatus.FAILED,
                    order.final_amount,
                    result.transaction_id,
                    error_message=result.error_message,
                    idempotency_key=idempotency_key,
                    provider=provider,
                )
                self._fail(order, tx, result.error_message or "Payment failed")

            apply_transition(order, OrderStatus.PAID)
            order.payment_provider = provider
            order.payment_id = result.transaction_id
            order.payment_method = method
            order.action_url = None
            tx = self._record(
                order,
                TransactionType.AUTHORIZE,
                TransactionStatus.SUCCESSFUL,
                order.final_amount,
                result.transaction_id,
                idempotency_key=idempotency_key,
            )
            self._commit(order)
            logger.info("payment authorized", order_id=order.id, payment_id=order.payment_id, amount=order.final_amount)
            return LedgerResult(order=order, transaction=tx)

    def capture(self, payment_id: str, amount: int, idempotency_key: str | None = None) -> LedgerResult:
        """
        Captures part or all of an authorized payment:
        1. Finds the order by payment id, locks and reloads it.
        2. Replays a known idempotency key.
        3. Requires a paid order and 0 < amount <= what is left to capture.
        4. Calls the gateway; failure is recorded and raised.
        5. Records the capture and moves the order to captured.
        """
        order = self._order_by_payment_id(payment_id)
        with self._lock(order.id):
            self.orders.refresh(order)

            replay = self._replayed(order, TransactionType.CAPTURE, idempotency_key)
            if replay:
                return replay

            if order.status != OrderStatus.PAID.value:
                raise CaptureNotAllowed(f"Order {order.id} cannot be captured while {order.status}", order_id=order.id)
            captured = self.ledger.sum_successful(order.id, TransactionType.CAPTURE.value)
            if amount <= 0 or amount > order.final_amount or captured + amount > order.final_amount:
                raise InvalidAmount(
                    f"Capture amount must be between 1 and {order.final_amount - captured}",
                    order_id=order.id,
                )

            result = self._call(self.gateway.capture_payment, payment_id, amount, order.payment_provider)
            if not result.success:
                tx = self._record(
                    order,
                    TransactionType.CAPTURE,
                    TransactionStatus.FAILED,
                    amount,
                    payment_id,
                    error_message=result.error_message,
                    idempotency_key=idempotency_key,
                )
                self._fail(order, tx, result.error_message or "Capture failed")

            remaining = order.final_amount - captured - amount
            full = remaining <= 0
            apply_transition(order, OrderStatus.CAPTURED)
            tx = self._record(
                order,
                TransactionType.CAPTURE,
                TransactionStatus.SUCCESSFUL,
                amount,
                result.transaction_id or payment_id,
                meta={
                    "full_capture": "true" if full else "false",
                    "remaining_amount": "0" if full else self._amount_str(order, remaining),
                },
                idempotency_key=idempotency_key,
            )
            self._commit(order)
            logger.info("payment captured", order_id=order.id, amount=amount, full=full)
            return LedgerResult(order=order, transaction=tx)

    def cancel(self, payment_id: str, idempotency_key: str | None = None) -> LedgerResult:
        """
        Cancels an authorization still waiting for customer action:
        1. Finds the order by payment id, locks and reloads it.
        2. Replays a known idempotency key.
        3. Requires pending_action; calls the gateway.
        4. Records the cancel and moves the order to cancelled.
        """
        order = self._order_by_payment_id(payment_id)
        with self._lock(order.id):
            self.orders.refresh(order)

            replay = self._replayed(order, TransactionType.CANCEL, idempotency_key)
            if replay:
                return replay

            if order.status != OrderStatus.PENDING_ACTION.value:
                raise CancelNotAllowed(f"Order {order.id} cannot be cancelled while {order.status}", order_id=order.id)

            result = self._call(self.gateway.cancel_payment, payment_id, order.payment_provider)
            if not result.success:
                tx = self._record(
                    order,
                    TransactionType.CANCEL,
                    TransactionStatus.FAILED,
                    0,
                    payment_id,
                    error_message=result.error_message,
                    idempotency_key=idempotency_key,
                )
                self._fail(order, tx, result.error_message or "Cancel failed")

            previous = order.status
            apply_transition(order, OrderStatus.CANCELLED)
            tx = self._record(
                order,
                TransactionType.CANCEL,
                TransactionStatus.SUCCESSFUL,
                0,
                result.transaction_id or payment_id,
                meta={"previous_status": previous},
                idempotency_key=idempotency_key,
            )
            self._commit(order)
            logger.info("payment cancelled", order_id=order.id)
            return LedgerResult(order=order, transaction=tx)

    def refund(self, payment_id: str, amount: int, idempotency_key: str | None = None) -> LedgerResult:
        """
        Refunds part or all of a paid or captured order:
        1. Finds the order by payment id, locks and reloads it.
        2. Replays a known idempotency key.
        3. Requires the amount to fit in what has not been refunded yet.
        4. Calls the gateway; failure is recorded and raised.
        5. A full refund moves the order to refunded, a partial one bumps
           its version.
        6. Records the refund with running totals.
        """
        order = self._order_by_payment_id(payment_id)
        with self._lock(order.id):
            self.orders.refresh(order)

            replay = self._replayed(order, TransactionType.REFUND, idempotency_key)
            if replay:
                return replay

            if order.status not in (OrderStatus.PAID.value, OrderStatus.CAPTURED.value):
                raise InvalidState(f"Order {order.id} cannot be refunded while {order.status}", order_id=order.id)
            if amount <= 0 or amount > order.final_amount:
                raise InvalidAmount(f"Refund amount must be between 1 and {order.final_amount}", order_id=order.id)

            refunded = self.ledger.sum_successful(order.id, TransactionType.REFUND.value)
            if refunded + amount > order.final_amount:
                raise RefundExceedsAvailable(
                    f"Refund of {amount} exceeds the {order.final_amount - refunded} still refundable",
                    order_id=order.id,
                    refunded=refunded,
                )

            previous = order.status
            result = self._call(self.gateway.refund_payment, payment_id, amount, order.payment_provider)
            if not result.success:
                tx = self._record(
                    order,
                    TransactionType.REFUND,
                    TransactionStatus.FAILED,
                    amount,
                    payment_id,
                    meta={"previous_status": previous},
                    error_message=result.error_message,
                    idempotency_key=idempotency_key,
                )
                self._fail(order, tx, result.error_message or "Refund failed")

            total = refunded + amount
            full = total >= order.final_amount
            if full:
                apply_transition(order, OrderStatus.REFUNDED)
            else:
                # bump the order version so a concurrent writer conflicts
                order.updated_at = utcnow()
            tx = self._record(
                order,
                TransactionType.REFUND,
                TransactionStatus.SUCCESSFUL,
                amount,
                result.transaction_id or payment_id,
                meta={
                    "full_refund": "true" if full else "false",
                    "previous_status": previous,
                    "total_refunded": self._amount_str(order, total),
                    "remaining_available": self._amount_str(order, order.final_amount - total),
                },
                idempotency_key=idempotency_key,
            )
            self._commit(order)
            logger.info("payment refunded", order_id=order.id, amount=amount, total_refunded=total, full=full)
            return LedgerResult(order=order, transaction=tx)

    def update_transaction_status(self, transaction_id: int, status: str, metadata: dict | None = None) -> PaymentTransactionModel:
        """
        Settle a pending ledger row (gateway webhook). Only pending rows move,
        only to successful or failed; metadata is merged, never replaced.
        A confirmed authorization also completes a pending_action order.
        """
        tx = self.ledger.get(transaction_id)
        if not tx:
            raise NotFound(f"Transaction {transaction_id} not found", transaction_id=transaction_id)

        try:
            target = TransactionStatus(status)
        except ValueError:
            raise InvalidInput(f"Unknown transaction status {status!r}")

        with self._lock(tx.order_id):
            self.ledger.refresh(tx)
            if tx.status != TransactionStatus.PENDING.value or target is TransactionStatus.PENDING:
                raise InvalidState(
                    f"Transaction {tx.id} cannot move from {tx.status} to {target.value}",
                    transaction_id=tx.id,
                )

            order = self.orders.get_order(tx.order_id)
            self.orders.refresh(order)
            tx.status = target.value
            tx.meta = {**(tx.meta or {}), **{k: str(v) for k, v in (metadata or {}).items()}}

            if (
                tx.type == TransactionType.AUTHORIZE.value
                and target is TransactionStatus.SUCCESSFUL
                and order.status == OrderStatus.PENDING_ACTION.value
            ):
                apply_transition(order, OrderStatus.PAID)
                order.action_url = None

            self._commit(order)

        logger.info("transaction settled", transaction_id=tx.id, order_id=tx.order_id, status=tx.status)
        return tx
