from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel, Field


class AnalyticsFilter(BaseModel):
    """Scopes an analytics query; bounds are inclusive, UTC"""
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    country: Optional[str] = None
    device: Optional[str] = None


class TimeSeriesPoint(BaseModel):
    """Clicks on one calendar day"""
    date: str  # YYYY-MM-DD
    clicks: int


class CountryStats(BaseModel):
    country: str
    clicks: int
    percentage: int


class CityStats(BaseModel):
    city: str  # "city, country"
    clicks: int
    percentage: int


class DeviceStats(BaseModel):
    device: str
    clicks: int
    percentage: int


class BrowserStats(BaseModel):
    browser: str
    clicks: int
    percentage: int


class TopLink(BaseModel):
    """A link ranked by clicks in the filtered period"""
    url_id: int
    title: Optional[str]
    short_code: str
    original_url: str
    clicks: int


class RecentActivityItem(BaseModel):
    timestamp: datetime
    country: str
    city: str
    device: str
    browser: str
    url_title: Optional[str]


class Pagination(BaseModel):
    total_items: int
    current_page: int
    page_size: int
    total_pages: int


class RecentActivityPage(BaseModel):
    data: List[RecentActivityItem]
    pagination: Pagination


class OverviewReport(BaseModel):
    """Analytics over every link an owner has"""
    total_clicks: int = 0
    total_urls: int = 0
    clicks_over_time: List[TimeSeriesPoint] = Field(default_factory=list)
    top_countries: List[CountryStats] = Field(default_factory=list)
    top_cities: List[CityStats] = Field(default_factory=list)
    top_devices: List[DeviceStats] = Field(default_factory=list)
    top_browsers: List[BrowserStats] = Field(default_factory=list)
    top_performing_urls: List[TopLink] = Field(default_factory=list)
    failed_sections: List[str] = Field(default_factory=list)


class LinkInfo(BaseModel):
    id: int
    title: Optional[str]
    short_code: str
    original_url: str
    created_at: Optional[datetime]


class UrlAnalytics(BaseModel):
    """Analytics for a single link"""
    url: LinkInfo
    total_clicks: int = 0
    clicks_over_time: List[TimeSeriesPoint] = Field(default_factory=list)
    top_countries: List[CountryStats] = Field(default_factory=list)
    top_cities: List[CityStats] = Field(default_factory=list)
    top_devices: List[DeviceStats] = Field(default_factory=list)
    top_browsers: List[BrowserStats] = Field(default_factory=list)
    recent_activity: Optional[RecentActivityPage] = None
    failed_sections: List[str] = Field(default_factory=list)


class DashboardSummary(BaseModel):
    total_clicks: int
    total_urls: int
    clicks_last_7_days: int
    clicks_last_30_days: int
    clicks_growth: int


class DashboardCharts(BaseModel):
    clicks_over_time: List[TimeSeriesPoint]
    top_devices: List[DeviceStats]
    top_countries: List[CountryStats]
    top_urls: List[TopLink]


class DashboardReport(BaseModel):
    summary: DashboardSummary
    charts: DashboardCharts
    recent_activity: List[RecentActivityItem]
