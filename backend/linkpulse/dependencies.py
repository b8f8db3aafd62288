"""
Process-wide service instances for FastAPI dependency injection.

Built lazily so tests can override them with app.dependency_overrides
before anything touches the network or the default database.
"""

from functools import lru_cache

import httpx

from .config import settings
from .database import SessionLocal
from .services.analytics import AnalyticsAggregator
from .services.clicks import ClickRecorder
from .utils.geo import GeoResolver


@lru_cache()
def get_geo_resolver() -> GeoResolver:
    return GeoResolver(client=httpx.Client(), timeout=settings.GEO_LOOKUP_TIMEOUT)


@lru_cache()
def get_click_recorder() -> ClickRecorder:
    return ClickRecorder(SessionLocal, get_geo_resolver())


@lru_cache()
def get_analytics() -> AnalyticsAggregator:
    return AnalyticsAggregator(SessionLocal)


def shutdown_services() -> None:
    """Release pooled resources of the instances created so far"""
    if get_click_recorder.cache_info().currsize:
        get_click_recorder().close()
    if get_geo_resolver.cache_info().currsize:
        get_geo_resolver().close()
