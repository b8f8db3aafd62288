from .link import LinkCreate, LinkCreated, LinkOut, LinkPage
from .analytics import AnalyticsFilter, OverviewReport, DashboardReport, UrlAnalytics, RecentActivityPage

__all__ = [
    "LinkCreate", "LinkCreated", "LinkOut", "LinkPage",
    "AnalyticsFilter", "OverviewReport", "DashboardReport", "UrlAnalytics", "RecentActivityPage",
]
