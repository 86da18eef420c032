"""
FastAPI Endpoints for the Link Tracker Service

This module defines all REST API endpoints with minimal logic.
Endpoints only handle:
- Request validation (Pydantic models)
- Error handling and HTTP responses
- Delegating to service layer

The tracking route is the exception to the error mapping: it never answers
with 4xx/5xx and falls back to a fixed destination instead.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse, Response
from sqlalchemy.ext.asyncio import AsyncSession

from link_tracker.api.capture_page import render_capture_page
from link_tracker.api.schemas import (
    CreateLinkRequest,
    CreateLinkResponse,
    DeleteLinkResponse,
    GeolocationRequest,
    GeolocationResponse,
    IPInfoResponse,
    LinkListResponse,
    LinkStatsResponse,
    MessageResponse,
    VisitDetailResponse,
    VisitListResponse,
)
from link_tracker.core.exceptions import DatabaseError, NotFoundError, ValidationError
from link_tracker.core.setting import settings
from link_tracker.core.validators import sanitize_link_id
from link_tracker.db.session import get_session
from link_tracker.services.geolocation_service import GeolocationService
from link_tracker.services.ip_info_service import IPInfoService
from link_tracker.services.ip_resolver import IPResolver, get_ip_resolver
from link_tracker.services.link_service import LinkService
from link_tracker.services.redirect_service import RedirectService
from link_tracker.services.stats_service import StatsService

logger = logging.getLogger(__name__)

router = APIRouter()

API_PREFIX = "/api/tracker"
GEOLOCATION_PATH = f"{API_PREFIX}/geolocation"


def get_ip_info_service() -> IPInfoService:
    return IPInfoService()


def _link_not_found(link_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Link '{link_id}' not found"
    )


def _server_error(e: Exception) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=str(e)
    )


@router.post(
    f"{API_PREFIX}/generate",
    response_model=CreateLinkResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a tracking link",
    description="Takes a target URL and returns a tracking link that records visitors"
)
async def create_link(
    request: Request,
    body: CreateLinkRequest,
    session: AsyncSession = Depends(get_session),
    resolver: IPResolver = Depends(get_ip_resolver)
) -> CreateLinkResponse:
    """
    Create a new tracking link.

    The creator address is resolved with a forced refresh of the public
    address cache.
    """
    try:
        creator_ip = await resolver.resolve_request(request, force_refresh=True)

        link_service = LinkService(session)
        link = await link_service.create_link(
            target_url=body.target_url,
            note=body.note,
            creator_ip=creator_ip
        )

        return CreateLinkResponse(
            link_id=link.id,
            tracking_url=f"{settings.BASE_URL}/track/{link.id}",
            admin_url=f"{settings.BASE_URL}/admin/{link.id}",
            target_url=link.target_url,
            created_at=link.created_at,
            message="Link created successfully"
        )

    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except DatabaseError as e:
        logger.error(f"Failed to create link: {e}")
        raise _server_error(e)
    except Exception as e:
        logger.error(f"Failed to create link: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to create link: {str(e)}"
        )


@router.get(
    "/track/{link_id}",
    summary="Follow a tracking link",
    description="Records the visit and redirects to the target URL (optionally via the geolocation capture page)"
)
async def track_link(
    link_id: str,
    request: Request,
    session: AsyncSession = Depends(get_session),
    resolver: IPResolver = Depends(get_ip_resolver)
) -> Response:
    """
    Record a visit and send the visitor on.

    Returns:
        302 RedirectResponse, or the HTML capture page when geolocation
        capture is enabled. Unknown ids redirect to FALLBACK_URL.
    """
    redirect_service = RedirectService(session, resolver)
    remote_address = request.client.host if request.client else None
    outcome = await redirect_service.handle(link_id, request.headers, remote_address)

    if outcome.fallback or not settings.GEOLOCATION_CAPTURE_ENABLED:
        return RedirectResponse(url=outcome.target_url, status_code=status.HTTP_302_FOUND)

    try:
        page = render_capture_page(
            target_url=outcome.target_url,
            visit_id=outcome.visit_id,
            merge_url=GEOLOCATION_PATH,
            delay_seconds=settings.GEOLOCATION_REDIRECT_DELAY
        )
    except Exception as e:
        logger.error(f"Failed to render capture page for {link_id}: {str(e)}", exc_info=True)
        return RedirectResponse(url=outcome.target_url, status_code=status.HTTP_302_FOUND)

    return HTMLResponse(content=page, headers={"Cache-Control": "no-store"})


@router.post(
    GEOLOCATION_PATH,
    response_model=GeolocationResponse,
    summary="Attach browser geolocation to a visit",
    openapi_extra={
        "requestBody": {
            "content": {"application/json": {"schema": GeolocationRequest.model_json_schema()}}
        }
    }
)
async def merge_geolocation(
    request: Request,
    session: AsyncSession = Depends(get_session)
) -> GeolocationResponse:
    """
    Best effort: always 200, `success` tells whether the visit was updated.

    The body is parsed here instead of by FastAPI so a malformed report
    answers `success: false` rather than 422.
    """
    try:
        body = GeolocationRequest.model_validate(await request.json())
    except ValueError as e:
        # json.JSONDecodeError and pydantic.ValidationError
        logger.debug(f"Ignoring malformed geolocation report: {e}")
        return GeolocationResponse(success=False)

    geolocation_service = GeolocationService(session)
    merged = await geolocation_service.merge_geolocation(
        visit_id=body.visit_id,
        latitude=body.latitude,
        longitude=body.longitude,
        accuracy=body.accuracy
    )
    return GeolocationResponse(success=merged)


@router.get(
    f"{API_PREFIX}/stats/{{link_id}}",
    response_model=LinkStatsResponse,
    summary="Get link statistics",
    description="Totals, unique visitors, today's visits and the enriched visit list"
)
async def get_link_stats(
    link_id: str,
    session: AsyncSession = Depends(get_session)
) -> LinkStatsResponse:
    sanitized_id = sanitize_link_id(link_id)
    if not sanitized_id:
        raise _link_not_found(link_id)

    try:
        stats = await StatsService(session).get_link_stats(sanitized_id)
    except NotFoundError:
        raise _link_not_found(sanitized_id)
    except DatabaseError as e:
        logger.error(f"Failed to load statistics for {sanitized_id}: {e}")
        raise _server_error(e)

    return LinkStatsResponse(**stats)


@router.get(
    f"{API_PREFIX}/links",
    response_model=LinkListResponse,
    summary="List all links"
)
async def list_links(session: AsyncSession = Depends(get_session)) -> LinkListResponse:
    try:
        links = await StatsService(session).get_all_links()
    except DatabaseError as e:
        logger.error(f"Failed to list links: {e}")
        raise _server_error(e)

    return LinkListResponse(links=links, total=len(links))


@router.get(
    f"{API_PREFIX}/visits",
    response_model=VisitListResponse,
    summary="List recent visits"
)
async def list_visits(
    limit: Optional[int] = Query(default=None, ge=0, description="Maximum number of visits"),
    session: AsyncSession = Depends(get_session)
) -> VisitListResponse:
    try:
        visits = await StatsService(session).get_all_visits(limit=limit)
    except DatabaseError as e:
        logger.error(f"Failed to list visits: {e}")
        raise _server_error(e)

    return VisitListResponse(visits=visits, total=len(visits))


@router.get(
    f"{API_PREFIX}/visit/{{visit_id}}",
    response_model=VisitDetailResponse,
    summary="Get one visit"
)
async def get_visit(
    visit_id: int,
    session: AsyncSession = Depends(get_session)
) -> VisitDetailResponse:
    try:
        visit = await StatsService(session).get_visit(visit_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except DatabaseError as e:
        logger.error(f"Failed to load visit {visit_id}: {e}")
        raise _server_error(e)

    return VisitDetailResponse(**visit)


@router.delete(
    f"{API_PREFIX}/visit/{{visit_id}}",
    response_model=MessageResponse,
    summary="Delete one visit"
)
async def delete_visit(
    visit_id: int,
    session: AsyncSession = Depends(get_session)
) -> MessageResponse:
    try:
        await StatsService(session).delete_visit(visit_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except DatabaseError as e:
        logger.error(f"Failed to delete visit {visit_id}: {e}")
        raise _server_error(e)

    return MessageResponse(message="Visit deleted")


@router.delete(
    f"{API_PREFIX}/delete/{{link_id}}",
    response_model=DeleteLinkResponse,
    summary="Delete a link and all of its visits"
)
async def delete_link(
    link_id: str,
    session: AsyncSession = Depends(get_session)
) -> DeleteLinkResponse:
    sanitized_id = sanitize_link_id(link_id)
    if not sanitized_id:
        raise _link_not_found(link_id)

    try:
        deleted_visits = await LinkService(session).delete_link(sanitized_id)
    except NotFoundError:
        raise _link_not_found(sanitized_id)
    except DatabaseError as e:
        logger.error(f"Failed to delete link {sanitized_id}: {e}")
        raise _server_error(e)

    return DeleteLinkResponse(
        message=f"Link deleted. Removed {deleted_visits} visits.",
        deleted_visits=deleted_visits
    )


@router.get(
    f"{API_PREFIX}/ipinfo/{{ip}}",
    response_model=IPInfoResponse,
    summary="Geo-IP information for an address"
)
async def get_ip_info(
    ip: str,
    ip_info_service: IPInfoService = Depends(get_ip_info_service)
) -> IPInfoResponse:
    """Best effort: lookup failures degrade to the local address classification."""
    info = await ip_info_service.lookup(ip)
    return IPInfoResponse(**info)
