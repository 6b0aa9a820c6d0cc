from datetime import timedelta

from storefront.tasks.expire import expire_checkouts, recover_abandoned_checkouts
from storefront.utils.clock import utcnow


class TestExpireSweep:
    def test_only_past_due_checkouts_expire(self, db, checkouts, user, guest):
        stale = checkouts.get_or_create(user)
        fresh = checkouts.get_or_create(guest)
        stale.expires_at = utcnow() - timedelta(minutes=5)
        db.commit()

        assert expire_checkouts(db) == 1
        db.refresh(stale)
        db.refresh(fresh)
        assert stale.status == "expired"
        assert fresh.status == "active"

    def test_nothing_to_do(self, db):
        assert expire_checkouts(db) == 0


class TestRecoverySweep:
    def test_recoverable_checkouts_emailed_once(self, db, checkouts, user, guest, outbox):
        with_email = checkouts.get_or_create(user)
        checkouts.add_item(with_email.id, user, 1)
        checkouts.set_customer_details(with_email.id, user, "Ada", "ada@example.com")
        anonymous = checkouts.get_or_create(guest)
        checkouts.add_item(anonymous.id, guest, 2)
        for checkout in (with_email, anonymous):
            checkout.expires_at = utcnow() - timedelta(minutes=5)
        db.commit()
        expire_checkouts(db)

        assert recover_abandoned_checkouts(db) == 1
        assert [m["to"] for m in outbox] == ["ada@example.com"]
        db.refresh(with_email)
        assert with_email.status == "abandoned"

        assert recover_abandoned_checkouts(db) == 0
        assert len(outbox) == 1
