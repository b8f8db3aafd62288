from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..core.exceptions import LinkNotFoundError
from ..core.security import get_current_owner
from ..database import get_db
from ..dependencies import get_analytics
from ..schemas.analytics import DashboardReport, OverviewReport, RecentActivityPage, UrlAnalytics
from ..services.analytics import AnalyticsAggregator, URL_RECENT_PAGE_SIZE, build_filter
from ..services.links import get_owned_link

router = APIRouter(prefix="/analytics", tags=["analytics"])

TIME_RANGE_PATTERN = r"^(all|\d+[dy])$"


@router.get("/overview", response_model=OverviewReport)
def get_overview(
    time_range: str = Query("30d", pattern=TIME_RANGE_PATTERN),
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    country: Optional[str] = None,
    device: Optional[str] = None,
    owner_id: str = Depends(get_current_owner),
    analytics: AnalyticsAggregator = Depends(get_analytics)
):
    """
    Get analytics across all links of the caller.

    Query params:
    - time_range: "7d" | "30d" | "90d" | "1y" | "all" (default: "30d")
    - start_date / end_date: override the range bounds
    - country, device: restrict to one value
    """
    analytics_filter = build_filter(time_range, start_date, end_date, country, device)
    return analytics.overview(owner_id, analytics_filter)


@router.get("/dashboard", response_model=DashboardReport)
def get_dashboard(
    owner_id: str = Depends(get_current_owner),
    analytics: AnalyticsAggregator = Depends(get_analytics)
):
    """Get dashboard summary, charts and latest clicks"""
    return analytics.dashboard(owner_id)


@router.get("/recent", response_model=RecentActivityPage)
def get_recent_activity(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    time_range: str = Query("all", pattern=TIME_RANGE_PATTERN),
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    country: Optional[str] = None,
    device: Optional[str] = None,
    owner_id: str = Depends(get_current_owner),
    analytics: AnalyticsAggregator = Depends(get_analytics)
):
    """Get the caller's clicks newest first, paginated"""
    analytics_filter = build_filter(time_range, start_date, end_date, country, device)
    return analytics.recent_activity(owner_id, analytics_filter, page, page_size)


@router.get("/urls/{link_id}", response_model=UrlAnalytics)
def get_url_analytics(
    link_id: int,
    time_range: str = Query("30d", pattern=TIME_RANGE_PATTERN),
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(URL_RECENT_PAGE_SIZE, ge=1, le=100),
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner),
    analytics: AnalyticsAggregator = Depends(get_analytics)
):
    """
    Get analytics for one link of the caller.

    Responds 404 when the link does not exist or belongs to someone else.
    """
    try:
        get_owned_link(db, link_id, owner_id)
        analytics_filter = build_filter(time_range, start_date, end_date)
        return analytics.url_analytics(link_id, analytics_filter, page, page_size)
    except LinkNotFoundError:
        raise HTTPException(status_code=404, detail="URL not found or access denied")
