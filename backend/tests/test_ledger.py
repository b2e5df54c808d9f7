import unittest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from factories import add_campaign, add_user, make_session_factory
from smartlink.core.database import atomic, on_commit
from smartlink.models.campaign import Campaign
from smartlink.models.user import User
from smartlink.services import ledger


class TestLedgerPrimitives(unittest.TestCase):
    def setUp(self):
        self.engine, Session = make_session_factory()
        self.db = Session()
        self.user = add_user(self.db, balance="1000.00")

    def tearDown(self):
        self.db.close()
        self.engine.dispose()

    def test_to_decimal_rejects_garbage(self):
        self.assertEqual(ledger.to_decimal("12.50"), Decimal("12.50"))
        self.assertIsNone(ledger.to_decimal("abc"))
        self.assertIsNone(ledger.to_decimal(None))
        self.assertIsNone(ledger.to_decimal(True))
        self.assertIsNone(ledger.to_decimal("NaN"))
        self.assertIsNone(ledger.to_decimal("Infinity"))

    def test_has_balance(self):
        self.assertTrue(ledger.has_balance(self.user, "1000"))
        self.assertFalse(ledger.has_balance(self.user, "1000.01"))
        self.assertFalse(ledger.has_balance(self.user, "bogus"))

    def test_deduct_balance_never_goes_negative(self):
        self.assertTrue(ledger.deduct_balance(self.db, self.user, "400"))
        self.assertEqual(self.user.balance, Decimal("600.00"))
        self.assertFalse(ledger.deduct_balance(self.db, self.user, "600.01"))
        self.assertEqual(self.user.balance, Decimal("600.00"))

    def test_non_positive_amounts_are_refused(self):
        self.assertFalse(ledger.add_balance(self.db, self.user, "0"))
        self.assertFalse(ledger.add_balance(self.db, self.user, "-5"))
        self.assertFalse(ledger.freeze_balance(self.db, self.user, "-1"))
        self.assertEqual(self.user.balance, Decimal("1000.00"))

    def test_freeze_and_unfreeze_keep_total(self):
        self.assertTrue(ledger.freeze_balance(self.db, self.user, "250"))
        self.assertEqual(self.user.balance, Decimal("750.00"))
        self.assertEqual(self.user.frozen_balance, Decimal("250.00"))
        self.assertFalse(ledger.unfreeze_balance(self.db, self.user, "300"))
        self.assertTrue(ledger.unfreeze_balance(self.db, self.user, "250"))
        self.assertEqual(self.user.balance, Decimal("1000.00"))
        self.assertEqual(self.user.frozen_balance, Decimal("0.00"))

    def test_consume_frozen_removes_funds(self):
        ledger.freeze_balance(self.db, self.user, "100")
        self.assertTrue(ledger.consume_frozen_balance(self.db, self.user, "100"))
        self.assertEqual(self.user.balance, Decimal("900.00"))
        self.assertEqual(self.user.frozen_balance, Decimal("0.00"))
        self.assertFalse(ledger.consume_frozen_balance(self.db, self.user, "1"))

    def test_deduct_budget_caps_at_budget_and_deactivates(self):
        campaign = add_campaign(self.db, self.user, budget="1.00", is_active=True)
        self.assertTrue(ledger.deduct_budget(self.db, campaign, "0.50"))
        self.assertTrue(campaign.is_active)
        self.assertFalse(ledger.deduct_budget(self.db, campaign, "0.75"))
        self.assertEqual(campaign.spent, Decimal("0.50"))
        self.assertTrue(ledger.deduct_budget(self.db, campaign, "0.50"))
        self.assertEqual(campaign.spent, Decimal("1.00"))
        self.assertFalse(campaign.is_active)

    def test_settle_budget_returns_unused(self):
        campaign = add_campaign(self.db, self.user, budget="300", spent="100")
        self.assertEqual(ledger.settle_budget(self.db, campaign), Decimal("200"))
        self.assertEqual(campaign.budget, Decimal("100.00"))
        self.assertEqual(ledger.settle_budget(self.db, campaign), Decimal("0"))

    def test_is_running_respects_dates(self):
        now = datetime(2026, 5, 1, tzinfo=timezone.utc)
        campaign = add_campaign(self.db, self.user, start_date=now - timedelta(days=1), end_date=now + timedelta(days=1))
        self.assertTrue(ledger.is_running(campaign, now))
        self.assertFalse(ledger.is_running(campaign, now + timedelta(days=2)))
        self.assertFalse(ledger.is_running(campaign, now - timedelta(days=2)))


class TestStaleInstances(unittest.TestCase):
    """A second session commits first; the guard must hold against the first session's stale rows."""

    def setUp(self):
        self.engine, self.Session = make_session_factory()
        self.db = self.Session()
        self.other = self.Session()
        self.user = add_user(self.db, balance="100.00")

    def tearDown(self):
        self.other.close()
        self.db.close()
        self.engine.dispose()

    def _drain_in_other_session(self, amount):
        user = self.other.query(User).filter(User.id == self.user.id).one()
        self.assertTrue(ledger.deduct_balance(self.other, user, amount))
        self.other.commit()

    def test_deduct_balance_with_stale_user(self):
        self._drain_in_other_session("80")
        self.assertEqual(self.user.balance, Decimal("100.00"))
        self.assertFalse(ledger.deduct_balance(self.db, self.user, "50"))
        self.assertEqual(self.user.balance, Decimal("20.00"))

    def test_freeze_balance_with_stale_user(self):
        self._drain_in_other_session("80")
        self.assertFalse(ledger.freeze_balance(self.db, self.user, "50"))
        self.assertEqual(self.user.balance, Decimal("20.00"))
        self.assertEqual(self.user.frozen_balance, Decimal("0.00"))

    def test_deduct_budget_with_stale_campaign(self):
        campaign = add_campaign(self.db, self.user, budget="0.10", is_active=True)
        fresh = self.other.query(Campaign).filter(Campaign.id == campaign.id).one()
        self.assertTrue(ledger.deduct_budget(self.other, fresh, "0.10"))
        self.other.commit()

        self.assertEqual(campaign.spent, Decimal("0.00"))
        self.assertFalse(ledger.deduct_budget(self.db, campaign, "0.10"))
        self.assertEqual(campaign.spent, Decimal("0.10"))
        self.assertFalse(campaign.is_active)


class TestAtomic(unittest.TestCase):
    def setUp(self):
        self.engine, Session = make_session_factory()
        self.db = Session()
        self.user = add_user(self.db, balance="10.00")

    def tearDown(self):
        self.db.close()
        self.engine.dispose()

    def test_rollback_discards_all_steps_and_hooks(self):
        fired = []
        with self.assertRaises(ledger.LedgerConflict):
            with atomic(self.db):
                ledger.add_balance(self.db, self.user, "5")
                on_commit(self.db, lambda: fired.append(True))
                raise ledger.LedgerConflict("abort")
        self.db.refresh(self.user)
        self.assertEqual(self.user.balance, Decimal("10.00"))
        self.assertEqual(fired, [])

    def test_hooks_run_after_commit_and_errors_are_swallowed(self):
        fired = []

        def broken():
            raise RuntimeError("boom")

        with atomic(self.db):
            ledger.add_balance(self.db, self.user, "5")
            on_commit(self.db, broken)
            on_commit(self.db, lambda: fired.append(True))
        self.assertEqual(fired, [True])
        self.db.refresh(self.user)
        self.assertEqual(self.user.balance, Decimal("15.00"))


if __name__ == "__main__":
    unittest.main()
