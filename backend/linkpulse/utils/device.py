from dataclasses import dataclass

from user_agents import parse as parse_user_agent

from ..models.click import UNKNOWN

PARSER_UNKNOWN = "other"


@dataclass(frozen=True)
class DeviceInfo:
    device: str = UNKNOWN
    browser: str = UNKNOWN
    os: str = UNKNOWN


def _family(value: str) -> str:
    value = (value or "").strip().lower()
    if not value or value == PARSER_UNKNOWN:
        return UNKNOWN
    return value


def classify_user_agent(user_agent: str) -> DeviceInfo:
    """
    Parse a user-agent string into device class, browser and OS.

    An empty string yields "unknown" for every field; a non-empty string the
    parser cannot place is counted as a desktop.
    """
    if not user_agent or not user_agent.strip():
        return DeviceInfo()

    ua = parse_user_agent(user_agent)

    if ua.is_tablet:
        device = "tablet"
    elif ua.is_mobile:
        device = "mobile"
    else:
        device = "desktop"

    return DeviceInfo(
        device=device,
        browser=_family(ua.browser.family),
        os=_family(ua.os.family),
    )
