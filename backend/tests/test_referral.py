import unittest
from decimal import Decimal

from factories import add_user, make_session_factory
from smartlink.models.referral_earning import ReferralEarning
from smartlink.models.transaction_log import TransactionType
from smartlink.services import referral, transaction_log


class TestReferralEarnings(unittest.TestCase):
    def setUp(self):
        self.engine, Session = make_session_factory()
        self.db = Session()
        self.referrer = add_user(self.db)
        self.user = add_user(self.db, referrer=self.referrer)

    def tearDown(self):
        self.db.close()
        self.engine.dispose()

    def _deposit_row(self, user, amount="100.00"):
        entry = transaction_log.record(
            self.db,
            user_id=user.id,
            amount=Decimal(amount),
            type=TransactionType.DEPOSIT,
            reference=transaction_log.new_reference("DEP", user.id),
        )
        self.db.commit()
        return entry

    def test_distributes_once_per_transaction(self):
        entry = self._deposit_row(self.user)
        first = referral.calculate_and_distribute_earnings(self.db, entry)
        self.assertTrue(first["success"])
        self.assertEqual(first["amount"], Decimal("1.0000"))
        second = referral.calculate_and_distribute_earnings(self.db, entry)
        self.assertTrue(second["already_distributed"])
        self.db.refresh(self.referrer)
        self.assertEqual(self.referrer.balance, Decimal("1.00"))
        earning = self.db.query(ReferralEarning).one()
        self.assertEqual(earning.type, referral.EARNING_TYPE_DEPOSIT)
        self.assertEqual(earning.referred_user_id, self.user.id)

    def test_reward_is_rounded_to_cents(self):
        result = referral.calculate_and_distribute_earnings(self.db, self._deposit_row(self.user, "12.34"))
        self.assertEqual(result["amount"], Decimal("0.12"))
        self.assertEqual(result["amount"].as_tuple().exponent, -2)
        result = referral.calculate_and_distribute_earnings(self.db, self._deposit_row(self.user, "0.50"))
        self.assertEqual(result["amount"], Decimal("0.01"))
        self.db.refresh(self.referrer)
        self.assertEqual(self.referrer.balance, Decimal("0.13"))
        amounts = sorted(e.amount for e in self.db.query(ReferralEarning).all())
        self.assertEqual(amounts, [Decimal("0.01"), Decimal("0.12")])

    def test_sub_cent_reward_is_not_paid(self):
        result = referral.calculate_and_distribute_earnings(self.db, self._deposit_row(self.user, "0.40"))
        self.assertEqual(result["message"], "Nothing to distribute")
        self.assertEqual(self.db.query(ReferralEarning).count(), 0)
        self.db.refresh(self.referrer)
        self.assertEqual(self.referrer.balance, Decimal("0.00"))

    def test_ad_spend_earning_type(self):
        entry = transaction_log.record(
            self.db,
            user_id=self.user.id,
            amount=Decimal("50.00"),
            type=TransactionType.IMPRESSION_CHARGE,
        )
        self.db.commit()
        referral.calculate_and_distribute_earnings(self.db, entry)
        earning = self.db.query(ReferralEarning).one()
        self.assertEqual(earning.type, referral.EARNING_TYPE_AD_SPEND)

    def test_no_referrer_is_a_noop(self):
        entry = self._deposit_row(self.referrer)
        result = referral.calculate_and_distribute_earnings(self.db, entry)
        self.assertTrue(result["success"])
        self.assertEqual(self.db.query(ReferralEarning).count(), 0)

    def test_stats(self):
        self.referrer.referral_code = referral.generate_referral_code(self.referrer)
        self.db.commit()
        referral.calculate_and_distribute_earnings(self.db, self._deposit_row(self.user, "300.00"))
        stats = referral.get_referral_stats(self.db, self.referrer)
        self.assertTrue(stats["referral_code"].startswith("REF"))
        self.assertEqual(len(stats["referral_code"]), 11)
        self.assertEqual(stats["referred_users_count"], 1)
        self.assertEqual(stats["total_earnings"], Decimal("3.00"))


if __name__ == "__main__":
    unittest.main()
