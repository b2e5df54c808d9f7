from decimal import Decimal

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from smartlink.core.database import Base
from smartlink.models.campaign import Campaign
from smartlink.models.user import User
from smartlink.services import campaign_budget, financial, ledger, payeer
import smartlink.models  # noqa: F401


def _user(db, balance: str) -> User:
    user = User(email=f"u{db.query(User).count() + 1}@example.com", balance=Decimal(balance), frozen_balance=Decimal("0"))
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def _campaign(db, user: User, budget: str = "0") -> Campaign:
    campaign = Campaign(user_id=user.id, name="verify", budget=Decimal(budget), spent=Decimal("0"), is_active=True)
    db.add(campaign)
    db.commit()
    db.refresh(campaign)
    return campaign


def main() -> None:
    engine = create_engine("sqlite:///:memory:", connect_args={"check_same_thread": False})
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()
    try:
        user = _user(db, "1000.00")
        campaign = _campaign(db, user)
        assert campaign_budget.allocate_budget(db, campaign, "300")
        db.refresh(user)
        assert user.balance == Decimal("700.00"), user.balance
        assert campaign.budget == Decimal("300.00"), campaign.budget
        assert ledger.deduct_budget(db, campaign, "100")
        db.commit()
        assert campaign_budget.release_budget(db, campaign)
        db.refresh(user)
        assert user.balance == Decimal("900.00"), user.balance
        assert campaign.budget == Decimal("100.00"), campaign.budget

        user = _user(db, "1000.00")
        withdrawal = financial.create_withdrawal(db, user, "300")["withdrawal"]
        db.refresh(user)
        assert (user.balance, user.frozen_balance) == (Decimal("700.00"), Decimal("300.00"))
        assert financial.approve_withdrawal(db, withdrawal)["success"]
        assert financial.process_withdrawal(db, withdrawal)["success"]
        db.refresh(user)
        assert (user.balance, user.frozen_balance) == (Decimal("700.00"), Decimal("0.00"))
        assert withdrawal.status.value == "processed", withdrawal.status

        campaign = _campaign(db, user, budget="0.10")
        assert ledger.deduct_budget(db, campaign, "0.10")
        db.commit()
        assert campaign.spent == Decimal("0.10") and not campaign.is_active
        assert not ledger.deduct_budget(db, campaign, "0.10")
        assert campaign.spent == Decimal("0.10"), campaign.spent

        user = _user(db, "1000.00")
        withdrawal = financial.create_withdrawal(db, user, "300")["withdrawal"]
        assert financial.reject_withdrawal(db, withdrawal)["success"]
        db.refresh(user)
        assert (user.balance, user.frozen_balance) == (Decimal("1000.00"), Decimal("0.00"))

        user = _user(db, "0")
        secret = "verify-secret"
        data = {"m_operation_id": "1", "m_orderid": f"DEP_{user.id}_verify", "m_amount": "50.00", "m_curr": "USD"}
        data["m_sign"] = payeer.generate_signature(data, secret)
        assert payeer.process_deposit(db, data, secret=secret)["success"]
        assert payeer.process_deposit(db, data, secret=secret).get("duplicate")
        db.refresh(user)
        assert user.balance == Decimal("50.00"), user.balance
    finally:
        db.close()


if __name__ == "__main__":
    main()
    print("OK")
