"""
Click recording: enrich one resolution with location and device data,
store it as a Click and bump the link's counter.

record() never raises. A visitor's redirect must not depend on analytics,
so every failure ends up as a log line and a missing (or degraded) row.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import settings
from ..core.exceptions import RecordingFailure
from ..models import Click, Link
from ..models.click import DIRECT, UNKNOWN
from ..utils.device import DeviceInfo, classify_user_agent
from ..utils.geo import GeoLocation, GeoResolver, UNKNOWN_LOCATION
from ..utils.logger import get_logger, hash_ip
from ..utils.network import RequestMetadata, extract_client_ip

log = get_logger(__name__)

USER_AGENT_MAX_LENGTH = 512
REFERER_MAX_LENGTH = 512


def normalize(value: Optional[str]) -> str:
    """Lowercase a dimension value, substituting the "unknown" sentinel"""
    value = (value or "").strip().lower()
    return value or UNKNOWN


class ClickRecorder:
    """Turns a resolution request into a persisted, enriched Click"""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        geo_resolver: GeoResolver,
        max_workers: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.geo_resolver = geo_resolver
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers or settings.RECORDER_MAX_WORKERS,
            thread_name_prefix="click-enrich",
        )

    def _locate(self, metadata: RequestMetadata) -> tuple[Optional[str], GeoLocation]:
        client_ip = extract_client_ip(metadata)
        if client_ip is None:
            client_ip = self.geo_resolver.discover_public_ip()
        return client_ip, self.geo_resolver.resolve(client_ip)

    def _enrich(self, metadata: RequestMetadata) -> tuple[Optional[str], GeoLocation, DeviceInfo]:
        # Geo lookup does network I/O; parse the user agent while it runs
        geo_future = self._executor.submit(self._locate, metadata)
        try:
            device_info = classify_user_agent(metadata.user_agent)
        except Exception:
            log.warning("device_classification_failed", exc_info=True)
            device_info = DeviceInfo()

        try:
            client_ip, location = geo_future.result()
        except Exception:
            log.warning("geo_enrichment_failed", exc_info=True)
            client_ip, location = None, UNKNOWN_LOCATION

        return client_ip, location, device_info

    def _persist(self, link_id: int, click: Click) -> int:
        db = self.session_factory()
        try:
            # Insert first: the transaction must not read before its first
            # write, or concurrent SQLite writers fail instead of waiting.
            db.add(click)
            db.flush()
            click_id = click.id

            db.query(Link).filter(Link.id == link_id).update(
                {Link.clicks_count: Link.clicks_count + 1},
                synchronize_session=False,
            )
            db.commit()
            return click_id
        except SQLAlchemyError as e:
            db.rollback()
            raise RecordingFailure(link_id, e) from e
        finally:
            db.close()

    def record(self, link_id: int, metadata: RequestMetadata) -> Optional[int]:
        """
        Record one click for a link.

        Args:
            link_id: Link that was resolved
            metadata: Headers and peer address of the resolution request

        Returns:
            Id of the stored click, or None if it could not be recorded
        """
        try:
            client_ip, location, device_info = self._enrich(metadata)

            country = normalize(location.country)
            device = normalize(device_info.device)
            click = Click(
                link_id=link_id,
                ip_address=client_ip,
                city=normalize(location.city),
                country=country,
                device=device,
                browser=normalize(device_info.browser),
                os=normalize(device_info.os),
                referer=(metadata.referer or DIRECT)[:REFERER_MAX_LENGTH],
                user_agent=metadata.user_agent[:USER_AGENT_MAX_LENGTH] or None,
            )
            click_id = self._persist(link_id, click)
        except RecordingFailure as e:
            log.error("click_recording_failed", link_id=link_id, error=str(e.original_error))
            return None
        except Exception:
            log.exception("click_recording_failed", link_id=link_id)
            return None

        log.info(
            "click_recorded",
            link_id=link_id,
            click_id=click_id,
            ip=hash_ip(client_ip),
            country=country,
            device=device,
        )
        return click_id

    def close(self) -> None:
        self._executor.shutdown(wait=True)
