import pytest

from storefront.domain.errors import (
    AlreadyPaid,
    CancelNotAllowed,
    CaptureNotAllowed,
    CommerceError,
    ConcurrencyConflict,
    GatewayError,
    InvalidAmount,
    InvalidState,
    NotFound,
    ProviderUnavailable,
    RefundExceedsAvailable,
    Unauthorized,
)
from storefront.gateway.fake_adapter import FAILURE, REQUIRES_ACTION, TIMEOUT, FakeGateway
from storefront.services.payment_service import PaymentService


@pytest.fixture
def order_19998(placed_order):
    """Two units of product 5 at 99.99."""
    return placed_order(lines=((5, 0, 2),))


@pytest.fixture
def paid_order(order_19998, payments):
    payments.process_payment(order_19998.id, "stripe", "card")
    return order_19998


class TestAuthorize:
    def test_success(self, payments, order_19998, gateway):
        result = payments.process_payment(order_19998.id, "stripe", "card", user_id=7)

        assert result.order.status == "paid"
        assert result.order.payment_id.startswith("fake_txn_")
        assert result.order.payment_provider == "stripe"
        assert result.transaction.type == "authorize"
        assert result.transaction.status == "successful"
        assert result.transaction.amount == 19998
        assert not result.requires_action
        assert gateway.calls[0]["request"].amount == 19998

    def test_requires_action(self, payments, order_19998, gateway):
        gateway.configure(REQUIRES_ACTION)
        result = payments.process_payment(order_19998.id, "stripe", "card")

        assert result.requires_action
        assert result.order.status == "pending_action"
        assert result.order.action_url == gateway.action_url
        assert result.transaction.status == "pending"
        assert result.transaction.meta["action_url"] == gateway.action_url

    def test_failure_leaves_order_pending(self, payments, order_19998, gateway):
        gateway.configure(FAILURE, "Insufficient funds")
        with pytest.raises(GatewayError, match="Insufficient funds"):
            payments.process_payment(order_19998.id, "stripe", "card")

        ledger = payments.list_transactions(order_19998.id)
        assert [(t.type, t.status, t.error_message) for t in ledger] == [("authorize", "failed", "Insufficient funds")]
        assert order_19998.status == "pending"
        assert order_19998.payment_id is None

    def test_timeout_is_recorded(self, payments, order_19998, gateway):
        gateway.configure(TIMEOUT)
        with pytest.raises(GatewayError):
            payments.process_payment(order_19998.id, "stripe", "card")
        assert payments.list_transactions(order_19998.id)[0].status == "failed"

    def test_already_paid(self, payments, paid_order):
        with pytest.raises(AlreadyPaid):
            payments.process_payment(paid_order.id, "stripe", "card")

    def test_disabled_provider(self, payments, order_19998):
        with pytest.raises(ProviderUnavailable):
            payments.process_payment(order_19998.id, "mobilemoney", "wallet")

    def test_other_customer(self, payments, order_19998):
        with pytest.raises(Unauthorized):
            payments.process_payment(order_19998.id, "stripe", "card", user_id=999)

    def test_unknown_order(self, payments):
        with pytest.raises(NotFound):
            payments.process_payment(424242, "stripe", "card")

    def test_idempotent_replay(self, payments, order_19998, gateway):
        first = payments.process_payment(order_19998.id, "stripe", "card", idempotency_key="k1")
        again = payments.process_payment(order_19998.id, "stripe", "card", idempotency_key="k1")

        assert again.replayed
        assert again.transaction.id == first.transaction.id
        assert len(gateway.calls) == 1
        assert len(payments.list_transactions(order_19998.id)) == 1

    def test_locked_order_conflicts(self, payments, order_19998, locks):
        with locks.order_lock(order_19998.id):
            with pytest.raises(ConcurrencyConflict):
                payments.process_payment(order_19998.id, "stripe", "card")


class TestCapture:
    def test_full_capture(self, payments, paid_order):
        result = payments.capture(paid_order.payment_id, 19998)

        assert result.order.status == "captured"
        assert result.transaction.type == "capture"
        assert result.transaction.meta == {"full_capture": "true", "remaining_amount": "0"}
        assert payments.remaining_capturable(paid_order.id) == 0

    def test_partial_capture_records_remaining(self, payments, paid_order):
        result = payments.capture(paid_order.payment_id, 9999)
        assert result.transaction.meta["full_capture"] == "false"
        assert result.transaction.meta["remaining_amount"] == "99.99"

    def test_amount_bounds(self, payments, paid_order):
        with pytest.raises(InvalidAmount):
            payments.capture(paid_order.payment_id, 0)
        with pytest.raises(InvalidAmount):
            payments.capture(paid_order.payment_id, 19999)

    def test_only_paid_orders(self, payments, order_19998, gateway):
        gateway.configure(REQUIRES_ACTION)
        result = payments.process_payment(order_19998.id, "stripe", "card")
        with pytest.raises(CaptureNotAllowed):
            payments.capture(result.order.payment_id, 100)

    def test_failed_capture_keeps_status(self, payments, paid_order, gateway):
        gateway.configure(FAILURE, "Capture window closed")
        with pytest.raises(GatewayError):
            payments.capture(paid_order.payment_id, 19998)
        assert paid_order.status == "paid"
        assert payments.list_transactions(paid_order.id)[-1].status == "failed"

    def test_unknown_payment(self, payments):
        with pytest.raises(NotFound):
            payments.capture("nope", 100)


class TestCancel:
    def test_cancel_pending_action(self, payments, order_19998, gateway):
        gateway.configure(REQUIRES_ACTION)
        pending = payments.process_payment(order_19998.id, "stripe", "card")
        gateway.configure()

        result = payments.cancel(pending.order.payment_id)
        assert result.order.status == "cancelled"
        assert result.transaction.amount == 0
        assert result.transaction.meta["previous_status"] == "pending_action"

    def test_cannot_cancel_paid(self, payments, paid_order):
        with pytest.raises(CancelNotAllowed):
            payments.cancel(paid_order.payment_id)


class TestRefund:
    def test_partial_then_exceeding(self, payments, paid_order):
        first = payments.refund(paid_order.payment_id, 5000)
        assert first.order.status == "paid"
        assert first.transaction.meta["full_refund"] == "false"
        assert first.transaction.meta["total_refunded"] == "50.00"
        assert first.transaction.meta["remaining_available"] == "149.98"

        with pytest.raises(RefundExceedsAvailable):
            payments.refund(paid_order.payment_id, 16000)
        assert payments.remaining_refundable(paid_order.id) == 14998

    def test_full_refund_after_capture(self, payments, paid_order):
        payments.capture(paid_order.payment_id, 19998)
        result = payments.refund(paid_order.payment_id, 19998)
        assert result.order.status == "refunded"
        assert result.transaction.meta["previous_status"] == "captured"
        assert result.transaction.meta["full_refund"] == "true"

    def test_refunds_never_exceed_final_amount(self, payments, paid_order):
        payments.refund(paid_order.payment_id, 10000)
        payments.refund(paid_order.payment_id, 9998)
        with pytest.raises(InvalidState):
            payments.refund(paid_order.payment_id, 1)

        refunded = sum(t.amount for t in payments.list_transactions(paid_order.id) if t.type == "refund" and t.status == "successful")
        assert refunded == 19998

    def test_pending_order_cannot_be_refunded(self, db, payments, order_19998):
        order_19998.payment_id = "manual"
        db.commit()
        with pytest.raises(InvalidState):
            payments.refund("manual", 100)

    def test_failed_refund_recorded(self, payments, paid_order, gateway):
        gateway.configure(FAILURE, "Refund rejected")
        with pytest.raises(GatewayError):
            payments.refund(paid_order.payment_id, 100)
        tx = payments.list_transactions(paid_order.id)[-1]
        assert (tx.type, tx.status, tx.meta["previous_status"]) == ("refund", "failed", "paid")
        assert payments.remaining_refundable(paid_order.id) == 19998

    def test_idempotent_refund(self, payments, paid_order, gateway):
        payments.refund(paid_order.payment_id, 5000, idempotency_key="r1")
        replay = payments.refund(paid_order.payment_id, 5000, idempotency_key="r1")
        assert replay.replayed
        assert payments.remaining_refundable(paid_order.id) == 14998


class TestSettlement:
    def test_confirming_pending_authorization_pays_order(self, payments, order_19998, gateway):
        gateway.configure(REQUIRES_ACTION)
        pending = payments.process_payment(order_19998.id, "stripe", "card")

        tx = payments.update_transaction_status(pending.transaction.id, "successful", {"three_ds": "passed"})
        assert tx.status == "successful"
        assert tx.meta == {"action_url": gateway.action_url, "three_ds": "passed"}
        assert order_19998.status == "paid"
        assert order_19998.action_url is None

    def test_settled_transaction_is_final(self, payments, paid_order):
        tx = payments.list_transactions(paid_order.id)[0]
        with pytest.raises(InvalidState):
            payments.update_transaction_status(tx.id, "failed")


class TestProviders:
    def test_lists_gateway_providers(self, payments):
        providers = {p.type: p.enabled for p in payments.list_providers()}
        assert providers == {"stripe": True, "paypal": True, "mobilemoney": False}


class _Interleaving(FakeGateway):
    """Runs `during` once, while the next capture or refund is at the gateway."""

    def __init__(self, during):
        super().__init__()
        self.during = during
        self.outcome_of_during = None

    def _interleave(self):
        if self.during is None:
            return
        during, self.during = self.during, None
        try:
            self.outcome_of_during = during()
        except CommerceError as e:
            self.outcome_of_during = e

    def capture_payment(self, transaction_id, amount, provider):
        self._interleave()
        return super().capture_payment(transaction_id, amount, provider)

    def refund_payment(self, transaction_id, amount, provider):
        self._interleave()
        return super().refund_payment(transaction_id, amount, provider)


def _settled(session_factory, order_id, type):
    ledger = PaymentService(session_factory(), gateway=FakeGateway()).list_transactions(order_id)
    return sum(t.amount for t in ledger if t.type == type and t.status == "successful")


class TestConcurrentLedger:
    def test_refund_racing_refund_is_locked_out(self, db, session_factory, paid_order, locks):
        other = PaymentService(session_factory(), gateway=FakeGateway(), lock_service=locks)
        gateway = _Interleaving(lambda: other.refund(paid_order.payment_id, 15000))
        first = PaymentService(db, gateway=gateway, lock_service=locks)

        first.refund(paid_order.payment_id, 15000)

        assert isinstance(gateway.outcome_of_during, ConcurrencyConflict)
        assert _settled(session_factory, paid_order.id, "refund") == 15000

    def test_capture_racing_refund_is_locked_out(self, db, session_factory, paid_order, locks):
        other = PaymentService(session_factory(), gateway=FakeGateway(), lock_service=locks)
        gateway = _Interleaving(lambda: other.refund(paid_order.payment_id, 19998))
        first = PaymentService(db, gateway=gateway, lock_service=locks)

        result = first.capture(paid_order.payment_id, 19998)

        assert result.order.status == "captured"
        assert isinstance(gateway.outcome_of_during, ConcurrencyConflict)
        assert _settled(session_factory, paid_order.id, "capture") == 19998
        assert _settled(session_factory, paid_order.id, "refund") == 0

    def test_refund_racing_refund_without_lock_hits_version_check(self, db, session_factory, paid_order):
        other = PaymentService(session_factory(), gateway=FakeGateway())
        gateway = _Interleaving(lambda: other.refund(paid_order.payment_id, 15000))
        first = PaymentService(db, gateway=gateway)

        with pytest.raises(ConcurrencyConflict):
            first.refund(paid_order.payment_id, 15000)

        assert gateway.outcome_of_during.transaction.status == "successful"
        assert _settled(session_factory, paid_order.id, "refund") == 15000

    def test_capture_racing_full_refund_without_lock_hits_version_check(self, db, session_factory, paid_order):
        other = PaymentService(session_factory(), gateway=FakeGateway())
        gateway = _Interleaving(lambda: other.refund(paid_order.payment_id, 19998))
        first = PaymentService(db, gateway=gateway)

        with pytest.raises(ConcurrencyConflict):
            first.capture(paid_order.payment_id, 19998)

        assert gateway.outcome_of_during.order.status == "refunded"
        assert _settled(session_factory, paid_order.id, "capture") == 0
        assert _settled(session_factory, paid_order.id, "refund") == 19998
