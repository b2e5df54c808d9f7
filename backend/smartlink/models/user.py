from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from smartlink.core.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, index=True, unique=True)
    name = Column(String, nullable=True)
    role = Column(String, index=True, default="user")
    balance = Column(Numeric(15, 2), nullable=False, default=0)
    frozen_balance = Column(Numeric(15, 2), nullable=False, default=0)
    referrer_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), index=True, nullable=True)
    referral_code = Column(String, unique=True, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    referrer = relationship("User", remote_side=[id])
    campaigns = relationship("Campaign", back_populates="user")
