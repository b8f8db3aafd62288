from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, DateTime, Boolean, func, Index
from sqlalchemy.orm import relationship
from ..database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in every DateTime column"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: datetime) -> datetime:
    """Aware datetimes converted to UTC; naive ones are taken as UTC already"""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class Link(Base):
    """Short link model"""
    __tablename__ = "links"

    id = Column(Integer, primary_key=True, index=True)
    short_code = Column(String(30), unique=True, index=True, nullable=False)  # always lowercase
    custom_alias = Column(String(30), unique=True, nullable=True)  # sparse, lowercase
    original_url = Column(String(2048), nullable=False)
    owner_id = Column(String(64), index=True, nullable=False)
    title = Column(String(200), nullable=True)
    expires_at = Column(DateTime, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    clicks_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=utcnow, server_default=func.now())

    # Relationship with clicks
    clicks = relationship("Click", back_populates="link", passive_deletes=True)

    __table_args__ = (
        Index('idx_links_owner_active', 'owner_id', 'is_active'),
    )

    @property
    def is_expired(self) -> bool:
        return self.expires_at is not None and utcnow() > self.expires_at

    def __repr__(self):
        return f"<Link {self.short_code} -> {self.original_url}>"
