import unittest
from decimal import Decimal
from unittest import mock

from factories import add_user, make_session_factory
from smartlink.models.analytics_event import AnalyticsEvent, AnalyticsEventType
from smartlink.models.transaction_log import TransactionLog, TransactionStatus, TransactionType
from smartlink.models.withdrawal import WithdrawalStatus
from smartlink.services import financial


class TestWithdrawals(unittest.TestCase):
    def setUp(self):
        self.engine, Session = make_session_factory()
        self.db = Session()
        self.user = add_user(self.db, balance="1000.00")

    def tearDown(self):
        self.db.close()
        self.engine.dispose()

    def _statuses(self):
        rows = (
            self.db.query(TransactionLog.status)
            .filter(TransactionLog.type == TransactionType.WITHDRAWAL.value)
            .order_by(TransactionLog.id)
            .all()
        )
        return [s for (s,) in rows]

    def test_lifecycle(self):
        result = financial.create_withdrawal(self.db, self.user, "300")
        self.assertTrue(result["success"])
        withdrawal = result["withdrawal"]
        self.db.refresh(self.user)
        self.assertEqual(self.user.balance, Decimal("700.00"))
        self.assertEqual(self.user.frozen_balance, Decimal("300.00"))
        self.assertEqual(withdrawal.status, WithdrawalStatus.PENDING)
        self.assertEqual(financial.get_available_balance_for_withdrawal(self.user), Decimal("700.00"))
        self.assertFalse(financial.validate_withdrawal_amount(self.user, "700.01"))
        self.assertEqual(
            financial.create_withdrawal(self.db, self.user, "700.01")["error"], financial.ERR_INSUFFICIENT_FUNDS
        )
        self.assertTrue(withdrawal.transaction_id.startswith(f"WTH_{self.user.id}_"))

        with mock.patch("smartlink.services.notifications.notify") as notify:
            self.assertTrue(financial.approve_withdrawal(self.db, withdrawal)["success"])
        notify.assert_called_once()
        self.assertEqual(withdrawal.status, WithdrawalStatus.APPROVED)
        self.assertIsNotNone(withdrawal.processed_at)
        self.db.refresh(self.user)
        self.assertEqual(self.user.balance, Decimal("700.00"))
        self.assertEqual(self.user.frozen_balance, Decimal("300.00"))

        self.assertTrue(financial.process_withdrawal(self.db, withdrawal, notes="paid")["success"])
        self.assertEqual(withdrawal.status, WithdrawalStatus.PROCESSED)
        self.assertEqual(withdrawal.notes, "paid")
        self.db.refresh(self.user)
        self.assertEqual(self.user.balance, Decimal("700.00"))
        self.assertEqual(self.user.frozen_balance, Decimal("0.00"))

        self.assertEqual(
            self._statuses(),
            [TransactionStatus.PENDING.value, TransactionStatus.APPROVED.value, TransactionStatus.PROCESSED.value],
        )
        spend = self.db.query(AnalyticsEvent).filter(AnalyticsEvent.type == AnalyticsEventType.SPEND.value).one()
        self.assertEqual(spend.related_id, withdrawal.id)

    def test_reject_returns_funds(self):
        withdrawal = financial.create_withdrawal(self.db, self.user, "300")["withdrawal"]
        self.assertTrue(financial.reject_withdrawal(self.db, withdrawal, notes="bad account")["success"])
        self.assertEqual(withdrawal.status, WithdrawalStatus.REJECTED)
        self.db.refresh(self.user)
        self.assertEqual(self.user.balance, Decimal("1000.00"))
        self.assertEqual(self.user.frozen_balance, Decimal("0.00"))

    def test_wrong_state_transitions_fail(self):
        withdrawal = financial.create_withdrawal(self.db, self.user, "100")["withdrawal"]
        self.assertEqual(financial.process_withdrawal(self.db, withdrawal)["error"], financial.ERR_NOT_APPROVED)
        financial.reject_withdrawal(self.db, withdrawal)
        self.assertEqual(financial.approve_withdrawal(self.db, withdrawal)["error"], financial.ERR_NOT_PENDING)
        self.assertEqual(financial.reject_withdrawal(self.db, withdrawal)["error"], financial.ERR_NOT_PENDING)
        self.db.refresh(self.user)
        self.assertEqual(self.user.balance, Decimal("1000.00"))

    def test_invalid_or_excessive_amounts(self):
        self.assertEqual(financial.create_withdrawal(self.db, self.user, "-1")["error"], financial.ERR_INVALID_AMOUNT)
        self.assertEqual(financial.create_withdrawal(self.db, self.user, "abc")["error"], financial.ERR_INVALID_AMOUNT)
        self.assertEqual(
            financial.create_withdrawal(self.db, self.user, "1000.01")["error"], financial.ERR_INSUFFICIENT_FUNDS
        )
        self.assertFalse(financial.validate_withdrawal_amount(self.user, "0"))
        self.assertTrue(financial.validate_withdrawal_amount(self.user, "1000"))
        self.assertEqual(self.db.query(TransactionLog).count(), 0)


class TestDeposit(unittest.TestCase):
    def setUp(self):
        self.engine, Session = make_session_factory()
        self.db = Session()

    def tearDown(self):
        self.db.close()
        self.engine.dispose()

    def test_deposit_credits_and_logs(self):
        user = add_user(self.db, balance="5.00")
        result = financial.deposit(self.db, user, "20", meta={"ip_address": "10.0.0.1", "user_agent": "ua"})
        self.assertTrue(result["success"])
        self.assertEqual(result["balance"], Decimal("25.00"))
        entry = self.db.query(TransactionLog).one()
        self.assertEqual(entry.type, TransactionType.DEPOSIT.value)
        self.assertEqual(entry.status, TransactionStatus.COMPLETED.value)
        self.assertEqual(entry.ip_address, "10.0.0.1")

    def test_deposit_pays_referrer(self):
        referrer = add_user(self.db)
        user = add_user(self.db, referrer=referrer)
        financial.deposit(self.db, user, "200")
        self.db.refresh(referrer)
        self.assertEqual(referrer.balance, Decimal("2.00"))

    def test_zero_deposit_rejected(self):
        user = add_user(self.db)
        self.assertEqual(financial.deposit(self.db, user, "0")["error"], financial.ERR_INVALID_AMOUNT)


if __name__ == "__main__":
    unittest.main()
