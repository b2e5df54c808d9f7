import enum

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.sql import func

from smartlink.core.database import Base


class AnalyticsEventType(str, enum.Enum):
    IMPRESSION = "impression"
    CLICK = "click"
    SPEND = "spend"
    EARNING = "earning"


class RelatedType(str, enum.Enum):
    CAMPAIGN = "campaign"
    SITE = "site"
    AD_SLOT = "ad_slot"
    WITHDRAWAL = "withdrawal"


class AnalyticsEvent(Base):
    __tablename__ = "analytics_events"
    __table_args__ = (
        Index("ix_analytics_events_user_type", "user_id", "type"),
        Index("ix_analytics_events_related", "related_id", "related_type"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    type = Column(String, nullable=False)
    related_id = Column(Integer, nullable=False)
    related_type = Column(String, nullable=False)
    cost = Column(Numeric(15, 4), nullable=True)
    created_at = Column(DateTime(timezone=True), index=True, server_default=func.now())
