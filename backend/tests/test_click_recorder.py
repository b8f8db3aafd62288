from concurrent.futures import ThreadPoolExecutor

from linkpulse.models import Click, Link
from linkpulse.services.clicks import ClickRecorder
from linkpulse.utils.geo import GeoLocation, UNKNOWN_LOCATION
from linkpulse.utils.network import RequestMetadata
from conftest import CHROME_WINDOWS_UA, IPHONE_UA, StubGeoResolver

SENTINEL_FIELDS = ("city", "country", "device", "browser", "os")


def clicks_for(db, link):
    return db.query(Click).filter(Click.link_id == link.id).all()


def counter_of(db, link):
    return db.query(Link.clicks_count).filter(Link.id == link.id).scalar()


class TestClickRecorder:
    """Test click enrichment and persistence"""

    def test_records_enriched_click(self, db_session, make_link, session_factory):
        link = make_link()
        geo = StubGeoResolver(GeoLocation(city="Berlin", country="Germany"))
        recorder = ClickRecorder(session_factory, geo, max_workers=2)

        click_id = recorder.record(link.id, RequestMetadata(
            headers={
                "X-Forwarded-For": "203.0.113.5, 10.0.0.1",
                "User-Agent": CHROME_WINDOWS_UA,
                "Referer": "https://news.example.com/Story",
            },
            peer_address="10.0.0.1",
        ))
        recorder.close()

        assert click_id is not None
        click = db_session.get(Click, click_id)
        assert click.link_id == link.id
        assert click.ip_address == "203.0.113.5"
        assert (click.city, click.country) == ("berlin", "germany")
        assert (click.device, click.browser, click.os) == ("desktop", "chrome", "windows")
        assert click.referer == "https://news.example.com/Story"
        assert click.user_agent == CHROME_WINDOWS_UA
        assert geo.resolved == ["203.0.113.5"]
        assert counter_of(db_session, link) == 1

    def test_loopback_uses_public_ip_discovery(self, db_session, make_link, session_factory):
        link = make_link()
        geo = StubGeoResolver(public_ip="198.51.100.7")
        recorder = ClickRecorder(session_factory, geo, max_workers=2)

        click_id = recorder.record(link.id, RequestMetadata(
            headers={"User-Agent": IPHONE_UA},
            peer_address="127.0.0.1",
        ))
        recorder.close()

        click = db_session.get(Click, click_id)
        assert geo.discover_calls == 1
        assert geo.resolved == ["198.51.100.7"]
        assert click.ip_address == "198.51.100.7"
        assert click.device == "mobile"

    def test_sentinels_when_nothing_resolves(self, db_session, make_link, session_factory):
        link = make_link()
        geo = StubGeoResolver(UNKNOWN_LOCATION, public_ip=None)
        recorder = ClickRecorder(session_factory, geo, max_workers=2)

        click_id = recorder.record(link.id, RequestMetadata(peer_address="::1"))
        recorder.close()

        click = db_session.get(Click, click_id)
        for field in SENTINEL_FIELDS:
            assert getattr(click, field) == "unknown"
        assert click.referer == "direct"
        assert click.ip_address is None
        assert click.user_agent is None

    def test_geo_failure_degrades_to_sentinels(self, db_session, make_link, session_factory):
        link = make_link()
        geo = StubGeoResolver(error=RuntimeError("resolver crashed"))
        recorder = ClickRecorder(session_factory, geo, max_workers=2)

        click_id = recorder.record(link.id, RequestMetadata(
            headers={"User-Agent": CHROME_WINDOWS_UA},
            peer_address="203.0.113.5",
        ))
        recorder.close()

        click = db_session.get(Click, click_id)
        assert (click.city, click.country) == ("unknown", "unknown")
        assert click.browser == "chrome"
        assert counter_of(db_session, link) == 1

    def test_values_are_lowercased(self, db_session, make_link, session_factory):
        link = make_link()
        geo = StubGeoResolver(GeoLocation(city="  São Paulo ", country="BRAZIL"))
        recorder = ClickRecorder(session_factory, geo, max_workers=2)

        click_id = recorder.record(link.id, RequestMetadata(peer_address="203.0.113.5"))
        recorder.close()

        click = db_session.get(Click, click_id)
        assert (click.city, click.country) == ("são paulo", "brazil")

    def test_junk_proxy_header_is_not_stored(self, db_session, make_link, session_factory):
        link = make_link()
        geo = StubGeoResolver()
        recorder = ClickRecorder(session_factory, geo, max_workers=2)

        click_id = recorder.record(link.id, RequestMetadata(
            headers={"X-Forwarded-For": "unknown, 10.0.0.1", "X-Real-IP": "1.2.3.4\t5"},
            peer_address="203.0.113.5",
        ))
        recorder.close()

        click = db_session.get(Click, click_id)
        assert click.ip_address == "203.0.113.5"
        assert geo.resolved == ["203.0.113.5"]

    def test_missing_link_is_swallowed(self, db_session, recorder):
        assert recorder.record(999999, RequestMetadata(peer_address="203.0.113.5")) is None
        assert db_session.query(Click).count() == 0

    def test_storage_failure_is_swallowed(self, make_link, stub_geo):
        link = make_link()

        def broken_session():
            raise RuntimeError("database unavailable")

        recorder = ClickRecorder(broken_session, stub_geo, max_workers=2)
        assert recorder.record(link.id, RequestMetadata(peer_address="203.0.113.5")) is None
        recorder.close()

    def test_concurrent_clicks_increment_counter_exactly(self, db_session, make_link, recorder):
        link = make_link()
        other = make_link()
        n = 25

        with ThreadPoolExecutor(max_workers=10) as executor:
            click_ids = list(executor.map(
                lambda i: recorder.record(link.id, RequestMetadata(
                    headers={"User-Agent": CHROME_WINDOWS_UA},
                    peer_address=f"203.0.113.{i}",
                )),
                range(n),
            ))

        assert all(click_id is not None for click_id in click_ids)
        assert len(set(click_ids)) == n
        assert counter_of(db_session, link) == n
        assert len(clicks_for(db_session, link)) == n
        assert counter_of(db_session, other) == 0
