"""
Test configuration and fixtures.

Every test gets its own SQLite file, so sessions opened on worker threads
see the same data the test wrote.
"""

import os
import tempfile
from datetime import datetime
from itertools import count

# Point the application at a throwaway database before it is imported
_TEST_DIR = tempfile.mkdtemp(prefix="linkpulse-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TEST_DIR, 'app.db')}"
os.environ["ENV"] = "test"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from linkpulse.core.security import create_access_token
from linkpulse.database import Base, create_db_engine, get_db
from linkpulse.models import Click, Link
from linkpulse.models.link import utcnow
from linkpulse.services.analytics import AnalyticsAggregator
from linkpulse.services.clicks import ClickRecorder
from linkpulse.utils.geo import GeoLocation

OWNER_ID = "owner-1"
OTHER_OWNER_ID = "owner-2"

CHROME_WINDOWS_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
IPHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)


class StubGeoResolver:
    """Stands in for GeoResolver without any network access"""

    def __init__(self, location=None, public_ip=None, error=None):
        self.location = location or GeoLocation(city="Paris", country="France")
        self.public_ip = public_ip
        self.error = error
        self.resolved = []
        self.discover_calls = 0

    def resolve(self, ip):
        self.resolved.append(ip)
        if self.error:
            raise self.error
        return self.location

    def discover_public_ip(self):
        self.discover_calls += 1
        return self.public_ip


@pytest.fixture
def engine(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def make_link(db_session):
    """Insert a link directly, bypassing validation"""
    sequence = count(1)

    def _make_link(owner_id=OWNER_ID, short_code=None, **fields):
        n = next(sequence)
        link = Link(
            short_code=short_code or f"code{n:03d}",
            original_url=fields.pop("original_url", f"https://example.com/page/{n}"),
            owner_id=owner_id,
            title=fields.pop("title", f"Page {n}"),
            **fields
        )
        db_session.add(link)
        db_session.commit()
        db_session.refresh(link)
        return link

    return _make_link


@pytest.fixture
def add_clicks(db_session):
    """Insert n clicks for a link with the given dimension values"""

    def _add_clicks(link, n=1, clicked_at=None, **fields):
        for _ in range(n):
            db_session.add(Click(
                link_id=link.id,
                clicked_at=clicked_at or utcnow(),
                city=fields.get("city", "unknown"),
                country=fields.get("country", "unknown"),
                device=fields.get("device", "desktop"),
                browser=fields.get("browser", "chrome"),
                os=fields.get("os", "windows"),
            ))
        db_session.commit()

    return _add_clicks


@pytest.fixture
def stub_geo():
    return StubGeoResolver()


@pytest.fixture
def recorder(session_factory, stub_geo):
    recorder = ClickRecorder(session_factory, stub_geo, max_workers=4)
    yield recorder
    recorder.close()


@pytest.fixture
def aggregator(session_factory):
    return AnalyticsAggregator(session_factory, max_workers=4)


@pytest.fixture
def client(session_factory, recorder, aggregator):
    """Test client with database and services overridden"""
    from linkpulse.dependencies import get_analytics, get_click_recorder
    from linkpulse.main import app

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_click_recorder] = lambda: recorder
    app.dependency_overrides[get_analytics] = lambda: aggregator

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def auth_headers_for(owner_id: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token({'sub': owner_id})}"}


@pytest.fixture
def auth_headers():
    return auth_headers_for(OWNER_ID)


def day(value: str, hour: int = 12) -> datetime:
    return datetime.fromisoformat(value).replace(hour=hour)
