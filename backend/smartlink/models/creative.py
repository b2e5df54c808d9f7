from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from smartlink.core.database import Base


TYPE_BANNER = "banner"
TYPE_LINK = "link"
TYPE_CONTEXT = "context"
TYPE_CREATIVE_IMAGE_TEXT = "creative_image_text"

CREATIVE_TYPES = (TYPE_BANNER, TYPE_LINK, TYPE_CONTEXT, TYPE_CREATIVE_IMAGE_TEXT)


class Creative(Base):
    __tablename__ = "creatives"

    id = Column(Integer, primary_key=True, index=True)
    campaign_id = Column(Integer, ForeignKey("campaigns.id", ondelete="CASCADE"), index=True)
    name = Column(String)
    type = Column(String, index=True)
    content = Column(JSON, nullable=True)
    url = Column(String)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    campaign = relationship("Campaign", back_populates="creatives")
