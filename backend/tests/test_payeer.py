import unittest
from decimal import Decimal
from unittest import mock

from factories import add_user, make_session_factory
from smartlink.core.settings import settings
from smartlink.models.transaction_log import TransactionLog, TransactionStatus
from smartlink.services import payeer, transaction_log

SECRET = "payeer-secret"


def signed(order_id, amount="50.00", currency="USD", operation_id="op-1"):
    data = {
        "m_operation_id": operation_id,
        "m_orderid": order_id,
        "m_amount": amount,
        "m_curr": currency,
        "m_status": "success",
    }
    data["m_sign"] = payeer.generate_signature(data, SECRET)
    return data


class TestSignature(unittest.TestCase):
    def test_signature_is_order_independent(self):
        a = payeer.generate_signature({"b": "2", "a": "1"}, SECRET)
        b = payeer.generate_signature({"a": "1", "b": "2"}, SECRET)
        self.assertEqual(a, b)
        self.assertEqual(len(a), 64)

    def test_verify_webhook(self):
        data = signed("DEP_1_abc")
        self.assertTrue(payeer.verify_webhook(data, SECRET))
        self.assertFalse(payeer.verify_webhook(data, "other"))
        tampered = dict(data, m_amount="5000.00")
        self.assertFalse(payeer.verify_webhook(tampered, SECRET))
        self.assertFalse(payeer.verify_webhook({"m_orderid": "x"}, SECRET))

    def test_parse_order_user_id(self):
        self.assertEqual(payeer.parse_order_user_id("DEP_42_abcdef"), 42)
        self.assertIsNone(payeer.parse_order_user_id("DEP_x_abcdef"))
        self.assertIsNone(payeer.parse_order_user_id("garbage"))


class TestProcessDeposit(unittest.TestCase):
    def setUp(self):
        self.engine, self.Session = make_session_factory()
        self.db = self.Session()
        self.user = add_user(self.db, balance="0")
        self.order_id = f"DEP_{self.user.id}_abc123"

    def tearDown(self):
        self.db.close()
        self.engine.dispose()

    def test_duplicate_delivery_credits_once(self):
        first = payeer.process_deposit(self.db, signed(self.order_id), secret=SECRET)
        self.assertTrue(first["success"])
        second = payeer.process_deposit(self.db, signed(self.order_id, operation_id="op-2"), secret=SECRET)
        self.assertFalse(second["success"])
        self.assertTrue(second["duplicate"])
        self.db.refresh(self.user)
        self.assertEqual(self.user.balance, Decimal("50.00"))
        self.assertEqual(self.db.query(TransactionLog).count(), 1)

    def test_pending_row_is_reconciled(self):
        with mock.patch.object(settings, "payeer_merchant_id", "shop-1"), mock.patch.object(
            settings, "payeer_secret_key", SECRET
        ):
            init = payeer.initiate_deposit(self.db, self.user, "25")
        self.assertTrue(init["success"])
        self.assertEqual(init["data"]["m_amount"], "25.00")

        result = payeer.process_deposit(self.db, signed(init["order_id"], amount="25.00"), secret=SECRET)
        self.assertTrue(result["success"])
        entry = self.db.query(TransactionLog).one()
        self.assertEqual(entry.status, TransactionStatus.COMPLETED.value)
        self.db.refresh(self.user)
        self.assertEqual(self.user.balance, Decimal("25.00"))

    def test_racing_first_deliveries_credit_once(self):
        other = self.Session()
        try:
            self.assertTrue(payeer.process_deposit(other, signed(self.order_id), secret=SECRET)["success"])
        finally:
            other.close()

        # this delivery looked the order up before the other one committed
        with mock.patch.object(transaction_log, "find_by_reference", return_value=None):
            result = payeer.process_deposit(self.db, signed(self.order_id, operation_id="op-2"), secret=SECRET)
        self.assertFalse(result["success"])
        self.assertTrue(result["duplicate"])
        self.db.refresh(self.user)
        self.assertEqual(self.user.balance, Decimal("50.00"))
        self.assertEqual(self.db.query(TransactionLog).count(), 1)

    def test_paid_amount_overrides_requested_amount(self):
        with mock.patch.object(settings, "payeer_merchant_id", "shop-1"), mock.patch.object(
            settings, "payeer_secret_key", SECRET
        ):
            init = payeer.initiate_deposit(self.db, self.user, "25")
        result = payeer.process_deposit(self.db, signed(init["order_id"], amount="30.00"), secret=SECRET)
        self.assertTrue(result["success"])
        entry = self.db.query(TransactionLog).one()
        self.assertEqual(entry.amount, Decimal("30.00"))
        self.db.refresh(self.user)
        self.assertEqual(self.user.balance, Decimal("30.00"))

    def test_rejections_leave_balance_untouched(self):
        bad_sig = dict(signed(self.order_id), m_sign="0" * 64)
        self.assertEqual(payeer.process_deposit(self.db, bad_sig, secret=SECRET)["error"], payeer.ERR_INVALID_SIGNATURE)
        self.assertEqual(
            payeer.process_deposit(self.db, signed(self.order_id, currency="EUR"), secret=SECRET)["error"],
            payeer.ERR_INVALID_CURRENCY,
        )
        self.assertEqual(
            payeer.process_deposit(self.db, signed(self.order_id, amount="-3"), secret=SECRET)["error"],
            payeer.ERR_INVALID_AMOUNT,
        )
        self.assertEqual(
            payeer.process_deposit(self.db, signed("broken"), secret=SECRET)["error"], payeer.ERR_INVALID_ORDER
        )
        self.assertEqual(
            payeer.process_deposit(self.db, signed("DEP_999_abc"), secret=SECRET)["error"], payeer.ERR_USER_NOT_FOUND
        )
        self.db.refresh(self.user)
        self.assertEqual(self.user.balance, Decimal("0.00"))
        self.assertEqual(self.db.query(TransactionLog).count(), 0)

    def test_webhook_deposit_pays_referrer_once(self):
        referrer = add_user(self.db)
        user = add_user(self.db, referrer=referrer)
        order_id = f"DEP_{user.id}_r1"
        payeer.process_deposit(self.db, signed(order_id, amount="100.00"), secret=SECRET)
        payeer.process_deposit(self.db, signed(order_id, amount="100.00"), secret=SECRET)
        self.db.refresh(referrer)
        self.assertEqual(referrer.balance, Decimal("1.00"))


if __name__ == "__main__":
    unittest.main()
