from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, Table, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from smartlink.core.database import Base


ad_slot_campaign = Table(
    "ad_slot_campaign",
    Base.metadata,
    Column("id", Integer, primary_key=True),
    Column("ad_slot_id", Integer, ForeignKey("ad_slots.id", ondelete="CASCADE"), nullable=False),
    Column("campaign_id", Integer, ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    UniqueConstraint("ad_slot_id", "campaign_id", name="uq_ad_slot_campaign"),
)


class AdSlot(Base):
    __tablename__ = "ad_slots"

    id = Column(Integer, primary_key=True, index=True)
    site_id = Column(Integer, ForeignKey("sites.id", ondelete="CASCADE"), index=True)
    name = Column(String)
    # Ad format, matched against Creative.type
    type = Column(String, index=True)
    dimensions = Column(JSON, nullable=True)
    price_per_click = Column(Numeric(10, 4), default=0)
    price_per_impression = Column(Numeric(10, 4), default=0)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    site = relationship("Site", back_populates="ad_slots")
    campaigns = relationship("Campaign", secondary=ad_slot_campaign, back_populates="ad_slots")
