from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from smartlink.core.database import Base


class ReferralEarning(Base):
    __tablename__ = "referral_earnings"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    referred_user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    # One payout per source transaction
    source_transaction_id = Column(
        Integer,
        ForeignKey("transaction_logs.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    type = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    referred_user = relationship("User", foreign_keys=[referred_user_id])
    source_transaction = relationship("TransactionLog")
