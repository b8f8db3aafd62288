from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime

from .analytics import Pagination


class LinkCreate(BaseModel):
    """Schema for creating a new short link"""
    url: str = Field(..., description="Original URL to shorten", min_length=1, max_length=2048)
    custom_alias: Optional[str] = Field(None, description="Custom alias for short code", min_length=3, max_length=30)
    title: Optional[str] = Field(None, max_length=200)
    expires_at: Optional[datetime] = None


class LinkCreated(BaseModel):
    """Schema for a freshly shortened link"""
    id: int
    short_url: str
    short_code: str
    original_url: str
    title: Optional[str] = None
    expires_at: Optional[datetime] = None


class LinkOut(BaseModel):
    """Schema for a stored link as shown to its owner"""
    id: int
    short_code: str
    short_url: str
    custom_alias: Optional[str] = None
    original_url: str
    title: Optional[str] = None
    is_active: bool
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    clicks_count: int = 0

    class Config:
        from_attributes = True


class LinkPage(BaseModel):
    data: List[LinkOut]
    pagination: Pagination
