import unittest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest import mock

from factories import add_campaign, add_user, make_session_factory
from smartlink.models.campaign import Campaign
from smartlink.models.transaction_log import TransactionLog, TransactionType
from smartlink.services import campaign_budget, ledger


class TestCampaignBudget(unittest.TestCase):
    def setUp(self):
        self.engine, Session = make_session_factory()
        self.db = Session()
        self.user = add_user(self.db, balance="1000.00")

    def tearDown(self):
        self.db.close()
        self.engine.dispose()

    def test_allocate_then_release(self):
        campaign = add_campaign(self.db, self.user)
        self.assertTrue(campaign_budget.allocate_budget(self.db, campaign, "300"))
        self.db.refresh(self.user)
        self.assertEqual(self.user.balance, Decimal("700.00"))
        self.assertEqual(campaign.budget, Decimal("300.00"))

        self.assertTrue(ledger.deduct_budget(self.db, campaign, "100"))
        self.db.commit()
        self.assertEqual(campaign.spent, Decimal("100.00"))

        self.assertTrue(campaign_budget.release_budget(self.db, campaign))
        self.db.refresh(self.user)
        self.assertEqual(self.user.balance, Decimal("900.00"))
        self.assertEqual(campaign.budget, Decimal("100.00"))

        types = [t for (t,) in self.db.query(TransactionLog.type).order_by(TransactionLog.id).all()]
        self.assertEqual(types, [TransactionType.BUDGET_ALLOCATION.value, TransactionType.BUDGET_RETURN.value])

    def test_release_twice_credits_once(self):
        campaign = add_campaign(self.db, self.user)
        campaign_budget.allocate_budget(self.db, campaign, "50")
        self.assertTrue(campaign_budget.release_budget(self.db, campaign))
        self.assertTrue(campaign_budget.release_budget(self.db, campaign))
        self.db.refresh(self.user)
        self.assertEqual(self.user.balance, Decimal("1000.00"))
        returns = self.db.query(TransactionLog).filter(TransactionLog.type == TransactionType.BUDGET_RETURN.value).count()
        self.assertEqual(returns, 1)

    def test_allocate_more_than_balance_changes_nothing(self):
        campaign = add_campaign(self.db, self.user)
        self.assertFalse(campaign_budget.allocate_budget(self.db, campaign, "1000.01"))
        self.assertFalse(campaign_budget.allocate_budget(self.db, campaign, "-1"))
        self.db.refresh(self.user)
        self.assertEqual(self.user.balance, Decimal("1000.00"))
        self.assertEqual(campaign.budget, Decimal("0.00"))
        self.assertEqual(self.db.query(TransactionLog).count(), 0)

    def test_allocate_rolls_back_when_budget_write_fails(self):
        campaign = add_campaign(self.db, self.user)
        with mock.patch.object(ledger, "add_budget", return_value=False):
            self.assertFalse(campaign_budget.allocate_budget(self.db, campaign, "100"))
        self.db.refresh(self.user)
        self.assertEqual(self.user.balance, Decimal("1000.00"))

    def test_check_budget(self):
        campaign = add_campaign(self.db, self.user, budget="1.00", spent="0.99")
        self.assertTrue(campaign_budget.check_budget(campaign))
        self.assertTrue(campaign_budget.check_budget(campaign, campaign_budget.MIN_CHARGE))
        self.assertFalse(campaign_budget.check_budget(campaign, "0.02"))
        self.assertFalse(campaign_budget.check_budget(campaign, "not a number"))
        campaign.spent = Decimal("1.00")
        self.assertFalse(campaign_budget.check_budget(campaign, campaign_budget.MIN_CHARGE))

    def test_activate_requires_budget_and_dates(self):
        campaign = add_campaign(self.db, self.user)
        self.assertFalse(campaign_budget.activate_campaign(self.db, campaign))
        campaign_budget.allocate_budget(self.db, campaign, "10")
        self.assertTrue(campaign_budget.activate_campaign(self.db, campaign))
        self.assertTrue(campaign.is_active)

        ended = add_campaign(self.db, self.user, end_date=datetime.now(timezone.utc) - timedelta(hours=1))
        campaign_budget.allocate_budget(self.db, ended, "10")
        self.assertFalse(campaign_budget.activate_campaign(self.db, ended))

    def test_deactivate_returns_unused_budget(self):
        campaign = add_campaign(self.db, self.user)
        campaign_budget.allocate_budget(self.db, campaign, "100")
        campaign_budget.activate_campaign(self.db, campaign)
        self.assertTrue(campaign_budget.deactivate_campaign(self.db, campaign))
        self.assertFalse(campaign.is_active)
        self.db.refresh(self.user)
        self.assertEqual(self.user.balance, Decimal("1000.00"))

    def test_delete_returns_unused_budget(self):
        campaign = add_campaign(self.db, self.user)
        campaign_budget.allocate_budget(self.db, campaign, "100")
        campaign_id = campaign.id
        self.assertTrue(campaign_budget.delete_campaign(self.db, campaign))
        self.assertIsNone(self.db.query(Campaign).filter(Campaign.id == campaign_id).first())
        self.db.refresh(self.user)
        self.assertEqual(self.user.balance, Decimal("1000.00"))

    def test_deactivate_expired(self):
        now = datetime.now(timezone.utc)
        expired = add_campaign(self.db, self.user, end_date=now - timedelta(days=1))
        campaign_budget.allocate_budget(self.db, expired, "40")
        exhausted = add_campaign(self.db, self.user)
        campaign_budget.allocate_budget(self.db, exhausted, "10")
        running = add_campaign(self.db, self.user, end_date=now + timedelta(days=5))
        campaign_budget.allocate_budget(self.db, running, "10")
        for c in (expired, exhausted, running):
            c.is_active = True
        exhausted.spent = Decimal("10")
        self.db.commit()

        self.assertEqual(campaign_budget.deactivate_expired(self.db, now=now), 2)
        self.db.refresh(expired)
        self.db.refresh(running)
        self.assertFalse(expired.is_active)
        self.assertTrue(running.is_active)
        self.db.refresh(self.user)
        # 1000 - 40 - 10 - 10 + 40 returned from the expired campaign
        self.assertEqual(self.user.balance, Decimal("980.00"))


if __name__ == "__main__":
    unittest.main()
