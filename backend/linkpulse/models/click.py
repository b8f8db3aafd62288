from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from ..database import Base
from .link import utcnow

UNKNOWN = "unknown"
DIRECT = "direct"


class Click(Base):
    """Click event model, one row per successful resolution"""
    __tablename__ = "clicks"

    id = Column(Integer, primary_key=True, index=True)
    link_id = Column(Integer, ForeignKey("links.id", ondelete="CASCADE"), nullable=False)
    clicked_at = Column(DateTime, default=utcnow, nullable=False)
    ip_address = Column(String(45), nullable=True)  # IPv4 or IPv6

    # Enrichment, lowercase with "unknown" sentinel
    city = Column(String(100), nullable=False, default=UNKNOWN)
    country = Column(String(100), nullable=False, default=UNKNOWN)
    device = Column(String(20), nullable=False, default=UNKNOWN)
    browser = Column(String(100), nullable=False, default=UNKNOWN)
    os = Column(String(100), nullable=False, default=UNKNOWN)

    referer = Column(String(512), nullable=False, default=DIRECT)
    user_agent = Column(String(512), nullable=True)

    # Relationship with link
    link = relationship("Link", back_populates="clicks")

    __table_args__ = (
        Index('idx_clicks_link_time', 'link_id', 'clicked_at'),
        Index('idx_clicks_link_country', 'link_id', 'country'),
    )

    def __repr__(self):
        return f"<Click {self.id} for link {self.link_id}>"
