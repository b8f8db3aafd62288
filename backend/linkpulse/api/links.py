from datetime import datetime
from math import ceil
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, HTTPException, Depends, Query, Request
from fastapi.responses import RedirectResponse, HTMLResponse
from sqlalchemy.orm import Session

from ..config import settings
from ..core.exceptions import (
    AliasUnavailable,
    DuplicateLink,
    GenerationExhausted,
    InvalidAliasError,
    InvalidURLError,
    LinkNotFoundError,
    LinkUnavailable,
)
from ..core.security import get_current_owner
from ..database import get_db
from ..dependencies import get_click_recorder
from ..schemas.analytics import Pagination
from ..schemas.link import LinkCreate, LinkCreated, LinkOut, LinkPage
from ..services import links as link_service
from ..services.clicks import ClickRecorder
from ..utils.logger import get_logger
from ..utils.network import RequestMetadata

router = APIRouter()
log = get_logger(__name__)

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate, max-age=0",
    "Pragma": "no-cache",
    "Expires": "0",
}

NOT_FOUND_PAGE = """
<!DOCTYPE html>
<html><head><meta charset="UTF-8"><title>Link not found</title></head>
<body style="font-family: Arial; text-align: center; padding: 50px;">
    <h1>{status} - Link not found</h1>
    <p>The requested short link does not exist or is no longer available.</p>
</body></html>
"""


def get_404_page(status_code: int = 404) -> HTMLResponse:
    return HTMLResponse(
        content=NOT_FOUND_PAGE.format(status=status_code),
        status_code=status_code,
        headers=NO_CACHE_HEADERS,
    )


def short_url_for(link) -> str:
    return f"{settings.BASE_URL}/{link.short_code}"


def link_created(link) -> LinkCreated:
    return LinkCreated(
        id=link.id,
        short_url=short_url_for(link),
        short_code=link.short_code,
        original_url=link.original_url,
        title=link.title,
        expires_at=link.expires_at,
    )


def link_out(link) -> LinkOut:
    return LinkOut(
        id=link.id,
        short_code=link.short_code,
        short_url=short_url_for(link),
        custom_alias=link.custom_alias,
        original_url=link.original_url,
        title=link.title,
        is_active=link.is_active,
        expires_at=link.expires_at,
        created_at=link.created_at,
        clicks_count=link.clicks_count or 0,
    )


@router.post("/shorten", response_model=LinkCreated, status_code=201)
async def create_short_link(
    link_data: LinkCreate,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner)
):
    """
    Create a short link for the authenticated owner.

    Uses the custom alias when given, a generated code otherwise.
    """
    try:
        link = link_service.create_link(
            db,
            owner_id=owner_id,
            url=link_data.url,
            custom_alias=link_data.custom_alias,
            title=link_data.title,
            expires_at=link_data.expires_at,
        )
    except (InvalidURLError, InvalidAliasError) as e:
        raise HTTPException(status_code=400, detail=e.reason)
    except DuplicateLink as e:
        raise HTTPException(
            status_code=409,
            detail={"message": str(e), "link": link_created(e.link).model_dump(mode="json")},
        )
    except AliasUnavailable as e:
        raise HTTPException(status_code=409, detail=str(e))
    except GenerationExhausted as e:
        log.error("short_code_generation_exhausted", attempts=e.attempts)
        raise HTTPException(status_code=500, detail=str(e))

    return link_created(link)


@router.get("/links", response_model=LinkPage)
async def list_links(
    page: int = Query(1, ge=1),
    page_size: int = Query(link_service.DEFAULT_PAGE_SIZE, ge=1, le=100),
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    search: Optional[str] = Query(None, max_length=200),
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner)
):
    """
    List the owner's links, newest first.

    Query params:
    - search: substring of the URL, short code or title (case-insensitive)
    - start_date / end_date: bounds on the creation time
    """
    links, total = link_service.list_links(
        db,
        owner_id,
        page=page,
        page_size=page_size,
        start_date=start_date,
        end_date=end_date,
        search=search,
    )

    return LinkPage(
        data=[link_out(link) for link in links],
        pagination=Pagination(
            total_items=total,
            current_page=page,
            page_size=page_size,
            total_pages=ceil(total / page_size),
        ),
    )


@router.get("/links/{link_id}", response_model=LinkOut)
async def get_link(
    link_id: int,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner)
):
    try:
        link = link_service.get_owned_link(db, link_id, owner_id)
    except LinkNotFoundError:
        raise HTTPException(status_code=404, detail="Link not found")

    return link_out(link)


@router.delete("/links/{link_id}")
async def delete_link(
    link_id: int,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner)
):
    """
    Delete a link together with its click history.

    Requires authentication; only the owner may delete.
    """
    try:
        link_service.delete_link(db, link_id, owner_id)
    except LinkNotFoundError:
        raise HTTPException(status_code=404, detail="Link not found")

    return {"message": "Link deleted successfully"}


def redirect_to_url(
    short_code: str,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    recorder: ClickRecorder = Depends(get_click_recorder)
):
    """
    Redirect to the original URL from short code or alias.

    Case-insensitive lookup. The click is recorded after the response is
    sent, so enrichment never delays or breaks the redirect.
    """
    try:
        link = link_service.resolve_link(db, short_code)
    except LinkUnavailable:
        return get_404_page(410)

    if link is None:
        return get_404_page(404)

    background_tasks.add_task(recorder.record, link.id, RequestMetadata.from_request(request))

    # Redirect to original URL (302 for tracking)
    return RedirectResponse(url=link.original_url, status_code=302, headers=NO_CACHE_HEADERS)
