from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import desc, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.exceptions import (
    AliasUnavailable,
    DuplicateLink,
    InvalidAliasError,
    InvalidURLError,
    LinkNotFoundError,
    LinkUnavailable,
)
from ..core.shortener import generate_short_code, is_code_available, validate_custom_alias
from ..models import Click, Link
from ..models.link import as_naive_utc
from ..utils.logger import get_logger
from ..utils.validators import is_valid_url

log = get_logger(__name__)

TITLE_MAX_LENGTH = 200
DEFAULT_PAGE_SIZE = 10


def create_link(
    db: Session,
    owner_id: str,
    url: str,
    custom_alias: Optional[str] = None,
    title: Optional[str] = None,
    expires_at: Optional[datetime] = None,
) -> Link:
    """
    Create a short link with a generated code or a custom alias.

    A custom alias is stored both as the alias and as the short code, so the
    unique constraint on short_code rejects a concurrent insert of the same
    alias even if both requests passed the availability check.

    Raises:
        InvalidURLError, DuplicateLink, InvalidAliasError, AliasUnavailable,
        GenerationExhausted
    """
    is_valid, error_msg = is_valid_url(url)
    if not is_valid:
        raise InvalidURLError(url, error_msg)

    existing = find_by_original_url(db, owner_id, url)
    if existing is not None:
        raise DuplicateLink(existing)

    alias = None
    if custom_alias:
        is_valid_alias, error_msg = validate_custom_alias(custom_alias)
        if not is_valid_alias:
            raise InvalidAliasError(custom_alias, error_msg)

        alias = custom_alias.lower()
        if not is_code_available(alias, db):
            raise AliasUnavailable(custom_alias)
        short_code = alias
    else:
        short_code = generate_short_code(db)

    link = Link(
        short_code=short_code,
        custom_alias=alias,
        original_url=url,
        owner_id=owner_id,
        title=(title or url)[:TITLE_MAX_LENGTH],
        expires_at=expires_at,
    )
    db.add(link)

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        if alias:
            raise AliasUnavailable(custom_alias)
        raise

    db.refresh(link)
    log.info("link_created", link_id=link.id, short_code=short_code, custom_alias=bool(alias))
    return link


def resolve_link(db: Session, code: str) -> Optional[Link]:
    """
    Find the link a short code or alias points to (case-insensitive).

    Returns None for unknown codes and raises LinkUnavailable for links that
    are deactivated or past their expiry.
    """
    code = code.lower()
    link = db.query(Link).filter(
        or_(Link.short_code == code, Link.custom_alias == code)
    ).first()

    if link is None:
        return None

    if not link.is_active or link.is_expired:
        raise LinkUnavailable(code)

    return link


def get_owned_link(db: Session, link_id: int, owner_id: str) -> Link:
    link = db.query(Link).filter(Link.id == link_id, Link.owner_id == owner_id).first()
    if link is None:
        raise LinkNotFoundError(link_id)
    return link


def find_by_original_url(db: Session, owner_id: str, url: str) -> Optional[Link]:
    return db.query(Link).filter(Link.owner_id == owner_id, Link.original_url == url).first()


def list_links(
    db: Session,
    owner_id: str,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    search: Optional[str] = None,
) -> Tuple[List[Link], int]:
    """
    One page of the owner's links, newest first, and the number of matches.

    ``search`` is a case-insensitive substring of the URL, short code or title.
    The date bounds apply to the creation time and are inclusive.
    """
    query = db.query(Link).filter(Link.owner_id == owner_id)

    if start_date:
        query = query.filter(Link.created_at >= as_naive_utc(start_date))
    if end_date:
        query = query.filter(Link.created_at <= as_naive_utc(end_date))
    if search and search.strip():
        term = search.strip().lower()
        query = query.filter(or_(
            func.lower(Link.original_url).contains(term, autoescape=True),
            func.lower(Link.short_code).contains(term, autoescape=True),
            func.lower(Link.title).contains(term, autoescape=True),
        ))

    total = query.count()
    links = query.order_by(
        desc(Link.created_at), desc(Link.id)
    ).offset((page - 1) * page_size).limit(page_size).all()

    return links, total


def delete_link(db: Session, link_id: int, owner_id: str) -> None:
    """Delete a link and all of its click events in one transaction"""
    link = get_owned_link(db, link_id, owner_id)

    # Events before link, so no click can outlive its link
    removed = db.query(Click).filter(Click.link_id == link.id).delete(synchronize_session=False)
    db.delete(link)
    db.commit()

    log.info("link_deleted", link_id=link_id, clicks_removed=removed)
