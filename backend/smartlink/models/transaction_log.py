import enum

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from smartlink.core.database import Base


class TransactionType(str, enum.Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    BUDGET_ALLOCATION = "budget_allocation"
    BUDGET_RETURN = "budget_return"
    IMPRESSION_CHARGE = "impression_charge"


class TransactionStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    # Withdrawal rows mirror the withdrawal state they record
    APPROVED = "approved"
    REJECTED = "rejected"
    PROCESSED = "processed"


class TransactionLog(Base):
    __tablename__ = "transaction_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    type = Column(String, index=True, nullable=False)
    reference = Column(String, index=True, nullable=True)
    status = Column(String, index=True, default=TransactionStatus.COMPLETED.value)
    description = Column(Text, nullable=True)
    ip_address = Column(String, nullable=True)
    user_agent = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), index=True, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    user = relationship("User")

    @property
    def is_deposit(self) -> bool:
        return self.type == TransactionType.DEPOSIT.value
