"""
Analytics aggregation over the click log.

A report is a fan-out of independent queries, each in its own session on a
worker thread, merged once all have finished. A section whose query fails
comes back empty and is listed in ``failed_sections``; the rest of the
report is still returned.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from math import ceil
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session

from ..config import settings
from ..core.exceptions import AggregationPartialFailure, LinkNotFoundError
from ..models import Click, Link
from ..models.link import as_naive_utc, utcnow
from ..schemas.analytics import (
    AnalyticsFilter,
    BrowserStats,
    CityStats,
    CountryStats,
    DashboardCharts,
    DashboardReport,
    DashboardSummary,
    DeviceStats,
    LinkInfo,
    OverviewReport,
    Pagination,
    RecentActivityItem,
    RecentActivityPage,
    TimeSeriesPoint,
    TopLink,
    UrlAnalytics,
)
from ..utils.logger import get_logger

log = get_logger(__name__)

TOP_N = 10
DASHBOARD_TOP_N = 5
DASHBOARD_RECENT_ITEMS = 5
URL_RECENT_PAGE_SIZE = 20
DEFAULT_TIME_RANGE_DAYS = 30


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def percentage(count: int, total: int) -> int:
    """round(count / total * 100), halves rounded up"""
    if total <= 0:
        return 0
    return round_half_up(Decimal(count * 100) / Decimal(total))


def compute_clicks_growth(clicks_last_30_days: int, clicks_last_7_days: int) -> int:
    """
    Week-over-month growth: the last 7 days scaled to four weeks, against the
    last 30 days. 0 when there were no clicks in the last 30 days.
    """
    if clicks_last_30_days <= 0:
        return 0
    # TODO: confirm the run-rate formula with product before changing it
    delta = Decimal(clicks_last_7_days * 4 - clicks_last_30_days)
    return round_half_up(delta / Decimal(clicks_last_30_days) * 100)


def get_period_start(time_range: str, now: datetime) -> Optional[datetime]:
    """Start datetime for a "<N>d" / "<N>y" range, None for "all" """
    time_range = (time_range or "").strip().lower()
    if time_range == "all":
        return None

    digits = time_range.replace("d", "").replace("y", "")
    days = int(digits) if digits.isdigit() and int(digits) > 0 else DEFAULT_TIME_RANGE_DAYS
    multiplier = 365 if time_range.endswith("y") else 1
    return now - timedelta(days=days * multiplier)


def build_filter(
    time_range: Optional[str] = "30d",
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    country: Optional[str] = None,
    device: Optional[str] = None,
    now: Optional[datetime] = None,
) -> AnalyticsFilter:
    """Turn report query parameters into a filter; explicit dates win over the range"""
    now = now or utcnow()
    analytics_filter = AnalyticsFilter()

    if time_range and time_range.lower() != "all":
        analytics_filter.start_date = get_period_start(time_range, now)
        analytics_filter.end_date = now

    if start_date:
        analytics_filter.start_date = as_naive_utc(start_date)
    if end_date:
        analytics_filter.end_date = as_naive_utc(end_date)
    if country:
        analytics_filter.country = country.strip().lower()
    if device:
        analytics_filter.device = device.strip().lower()

    return analytics_filter


def click_conditions(link_scope, analytics_filter: Optional[AnalyticsFilter]) -> list:
    """WHERE clauses for clicks in scope, narrowed by the filter"""
    conditions = [link_scope]
    if analytics_filter is None:
        return conditions

    if analytics_filter.start_date:
        conditions.append(Click.clicked_at >= analytics_filter.start_date)
    if analytics_filter.end_date:
        conditions.append(Click.clicked_at <= analytics_filter.end_date)
    if analytics_filter.country:
        conditions.append(Click.country == analytics_filter.country.lower())
    if analytics_filter.device:
        conditions.append(Click.device == analytics_filter.device.lower())
    return conditions


def owner_scope(owner_id: str):
    return Click.link_id.in_(select(Link.id).where(Link.owner_id == owner_id))


def link_scope(link_id: int):
    return Click.link_id == link_id


def get_total_clicks(db: Session, conditions: list) -> int:
    return db.query(func.count(Click.id)).filter(*conditions).scalar() or 0


def count_active_links(db: Session, owner_id: str) -> int:
    return db.query(func.count(Link.id)).filter(
        Link.owner_id == owner_id,
        Link.is_active == True  # noqa: E712
    ).scalar() or 0


def get_clicks_over_time(db: Session, conditions: list) -> List[TimeSeriesPoint]:
    """Get clicks aggregated by UTC day, oldest first; empty days are absent"""
    day = func.date(Click.clicked_at)

    results = db.query(
        day.label('date'),
        func.count(Click.id).label('clicks')
    ).filter(
        *conditions
    ).group_by(
        day
    ).order_by(
        day
    ).all()

    return [
        TimeSeriesPoint(
            date=row.date if isinstance(row.date, str) else row.date.isoformat(),
            clicks=row.clicks
        )
        for row in results
        if row.date
    ]


def _top_facet(db: Session, conditions: list, *columns) -> list:
    """
    Top groups by click count; ties ordered by key.

    Each row also carries ``total``, the click count of the whole filtered
    set. It is a window over the grouped counts, evaluated before LIMIT, so
    it comes from the same statement as the groups.
    """
    clicks = func.count(Click.id)
    return db.query(
        *columns,
        clicks.label('clicks'),
        func.sum(clicks).over().label('total')
    ).filter(
        *conditions
    ).group_by(
        *columns
    ).order_by(
        clicks.desc(),
        *columns
    ).limit(TOP_N).all()


def get_location_stats(db: Session, conditions: list) -> Tuple[List[CountryStats], List[CityStats]]:
    """Get top countries and top "city, country" pairs"""
    countries = [
        CountryStats(
            country=row.country,
            clicks=row.clicks,
            percentage=percentage(row.clicks, row.total)
        )
        for row in _top_facet(db, conditions, Click.country)
    ]

    cities = [
        CityStats(
            city=f"{row.city}, {row.country}",
            clicks=row.clicks,
            percentage=percentage(row.clicks, row.total)
        )
        for row in _top_facet(db, conditions, Click.country, Click.city)
    ]

    return countries, cities


def get_device_stats(db: Session, conditions: list) -> List[DeviceStats]:
    return [
        DeviceStats(device=row.device, clicks=row.clicks, percentage=percentage(row.clicks, row.total))
        for row in _top_facet(db, conditions, Click.device)
    ]


def get_browser_stats(db: Session, conditions: list) -> List[BrowserStats]:
    return [
        BrowserStats(browser=row.browser, clicks=row.clicks, percentage=percentage(row.clicks, row.total))
        for row in _top_facet(db, conditions, Click.browser)
    ]


def get_top_performing_links(db: Session, conditions: list) -> List[TopLink]:
    """Get the most clicked links with their metadata"""
    clicks = func.count(Click.id)

    results = db.query(
        Link.id,
        Link.title,
        Link.short_code,
        Link.original_url,
        clicks.label('clicks')
    ).join(
        Click, Click.link_id == Link.id
    ).filter(
        *conditions
    ).group_by(
        Link.id,
        Link.title,
        Link.short_code,
        Link.original_url
    ).order_by(
        clicks.desc(),
        Link.id
    ).limit(TOP_N).all()

    return [
        TopLink(
            url_id=row.id,
            title=row.title,
            short_code=row.short_code,
            original_url=row.original_url,
            clicks=row.clicks
        )
        for row in results
    ]


def get_recent_clicks(db: Session, conditions: list, page: int, page_size: int) -> List[RecentActivityItem]:
    """Get one page of clicks, newest first"""
    results = db.query(
        Click,
        Link.title
    ).join(
        Link, Click.link_id == Link.id
    ).filter(
        *conditions
    ).order_by(
        desc(Click.clicked_at),
        desc(Click.id)
    ).offset((page - 1) * page_size).limit(page_size).all()

    return [
        RecentActivityItem(
            timestamp=click.clicked_at,
            country=click.country,
            city=click.city,
            device=click.device,
            browser=click.browser,
            url_title=title
        )
        for click, title in results
    ]


def paginate(items: List[RecentActivityItem], total: int, page: int, page_size: int) -> RecentActivityPage:
    return RecentActivityPage(
        data=items,
        pagination=Pagination(
            total_items=total,
            current_page=page,
            page_size=page_size,
            total_pages=ceil(total / page_size) if page_size else 0
        )
    )


Section = Tuple[Callable[[Session], Any], Callable[[], Any]]


class AnalyticsAggregator:
    """Builds analytics reports from concurrently executed queries"""

    def __init__(self, session_factory: Callable[[], Session], max_workers: Optional[int] = None):
        self.session_factory = session_factory
        self.max_workers = max_workers or settings.ANALYTICS_MAX_WORKERS

    def _in_session(self, query: Callable[[Session], Any]) -> Any:
        with self.session_factory() as db:
            return query(db)

    def _run_sections(self, sections: Dict[str, Section]) -> Tuple[Dict[str, Any], List[str]]:
        """
        Run every section concurrently and wait for all of them.

        Args:
            sections: name -> (query taking a session, fallback factory)

        Returns:
            Tuple of (results by name, names of sections that failed)
        """
        results: Dict[str, Any] = {}
        failed: List[str] = []

        with ThreadPoolExecutor(max_workers=min(len(sections), self.max_workers)) as executor:
            futures = {
                name: executor.submit(self._in_session, query)
                for name, (query, _) in sections.items()
            }

            for name, future in futures.items():
                try:
                    results[name] = future.result()
                except Exception as e:
                    failure = AggregationPartialFailure(name, e)
                    log.error(
                        "analytics_section_failed",
                        section=name,
                        error=str(failure),
                        error_type=type(e).__name__,
                    )
                    results[name] = sections[name][1]()
                    failed.append(name)

        return results, failed

    def overview(self, owner_id: str, analytics_filter: Optional[AnalyticsFilter] = None) -> OverviewReport:
        """Analytics across all links of an owner"""
        conditions = click_conditions(owner_scope(owner_id), analytics_filter)

        results, failed = self._run_sections({
            "totals": (
                lambda db: (get_total_clicks(db, conditions), count_active_links(db, owner_id)),
                lambda: (0, 0),
            ),
            "clicks_over_time": (lambda db: get_clicks_over_time(db, conditions), list),
            "locations": (lambda db: get_location_stats(db, conditions), lambda: ([], [])),
            "devices": (lambda db: get_device_stats(db, conditions), list),
            "browsers": (lambda db: get_browser_stats(db, conditions), list),
            "top_performing_urls": (lambda db: get_top_performing_links(db, conditions), list),
        })

        total_clicks, total_urls = results["totals"]
        countries, cities = results["locations"]

        return OverviewReport(
            total_clicks=total_clicks,
            total_urls=total_urls,
            clicks_over_time=results["clicks_over_time"],
            top_countries=countries,
            top_cities=cities,
            top_devices=results["devices"],
            top_browsers=results["browsers"],
            top_performing_urls=results["top_performing_urls"],
            failed_sections=failed,
        )

    def _recent_page(self, conditions: list, page: int, page_size: int) -> RecentActivityPage:
        page = max(page, 1)
        page_size = max(page_size, 1)

        results, _ = self._run_sections({
            "recent_activity": (lambda db: get_recent_clicks(db, conditions, page, page_size), list),
            "recent_activity_total": (lambda db: get_total_clicks(db, conditions), int),
        })
        return paginate(results["recent_activity"], results["recent_activity_total"], page, page_size)

    def recent_activity(
        self,
        owner_id: str,
        analytics_filter: Optional[AnalyticsFilter] = None,
        page: int = 1,
        page_size: int = 10,
    ) -> RecentActivityPage:
        """Newest clicks across an owner's links, one page at a time"""
        conditions = click_conditions(owner_scope(owner_id), analytics_filter)
        return self._recent_page(conditions, page, page_size)

    def url_analytics(
        self,
        link_id: int,
        analytics_filter: Optional[AnalyticsFilter] = None,
        page: int = 1,
        page_size: int = URL_RECENT_PAGE_SIZE,
    ) -> UrlAnalytics:
        """Analytics for one link, with its own recent activity page"""
        with self.session_factory() as db:
            link = db.query(Link).filter(Link.id == link_id).first()
            if link is None:
                raise LinkNotFoundError(link_id)
            link_info = LinkInfo(
                id=link.id,
                title=link.title,
                short_code=link.short_code,
                original_url=link.original_url,
                created_at=link.created_at,
            )

        conditions = click_conditions(link_scope(link_id), analytics_filter)
        page = max(page, 1)
        page_size = max(page_size, 1)

        results, failed = self._run_sections({
            "total_clicks": (lambda db: get_total_clicks(db, conditions), int),
            "clicks_over_time": (lambda db: get_clicks_over_time(db, conditions), list),
            "locations": (lambda db: get_location_stats(db, conditions), lambda: ([], [])),
            "devices": (lambda db: get_device_stats(db, conditions), list),
            "browsers": (lambda db: get_browser_stats(db, conditions), list),
            "recent_activity": (lambda db: get_recent_clicks(db, conditions, page, page_size), list),
        })

        countries, cities = results["locations"]

        return UrlAnalytics(
            url=link_info,
            total_clicks=results["total_clicks"],
            clicks_over_time=results["clicks_over_time"],
            top_countries=countries,
            top_cities=cities,
            top_devices=results["devices"],
            top_browsers=results["browsers"],
            recent_activity=paginate(results["recent_activity"], results["total_clicks"], page, page_size),
            failed_sections=failed,
        )

    def dashboard(self, owner_id: str, now: Optional[datetime] = None) -> DashboardReport:
        """Last 30 days, last 7 days and all-time overviews side by side"""
        now = now or utcnow()

        # Overviews own their executors, so nesting them here cannot starve
        with ThreadPoolExecutor(max_workers=4) as executor:
            last_30 = executor.submit(self.overview, owner_id, AnalyticsFilter(start_date=now - timedelta(days=30)))
            last_7 = executor.submit(self.overview, owner_id, AnalyticsFilter(start_date=now - timedelta(days=7)))
            all_time = executor.submit(self.overview, owner_id, None)
            recent = executor.submit(self.recent_activity, owner_id, None, 1, DASHBOARD_RECENT_ITEMS)

            last_30, last_7, all_time, recent = (
                last_30.result(), last_7.result(), all_time.result(), recent.result()
            )

        return DashboardReport(
            summary=DashboardSummary(
                total_clicks=all_time.total_clicks,
                total_urls=all_time.total_urls,
                clicks_last_7_days=last_7.total_clicks,
                clicks_last_30_days=last_30.total_clicks,
                clicks_growth=compute_clicks_growth(last_30.total_clicks, last_7.total_clicks),
            ),
            charts=DashboardCharts(
                clicks_over_time=last_30.clicks_over_time,
                top_devices=last_30.top_devices[:DASHBOARD_TOP_N],
                top_countries=last_30.top_countries[:DASHBOARD_TOP_N],
                top_urls=last_30.top_performing_urls[:DASHBOARD_TOP_N],
            ),
            recent_activity=recent.data,
        )
