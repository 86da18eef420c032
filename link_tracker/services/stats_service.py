"""
Statistics Service

Aggregates tracking data for the admin API:
- Per-link summary: total visits, unique visitors, visits today, last visit
- Per-visit enrichment computed on read: browser, OS, device, address type
- Whole-store listings of links and visits

The aggregation helpers are plain functions over loaded rows so they can be
tested without a database.
"""

import logging
from datetime import date, datetime
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from link_tracker.core.exceptions import DatabaseError, LinkNotFoundError, VisitNotFoundError
from link_tracker.core.setting import settings
from link_tracker.db.models import LinkVisit, TrackingLink, utc_now
from link_tracker.services.classifiers import (
    get_browser_name,
    get_device_type,
    get_ip_type,
    get_os_name,
)
from link_tracker.services.link_service import LinkService

logger = logging.getLogger(__name__)


def count_unique_visitors(visits: Iterable[LinkVisit]) -> int:
    """Number of distinct visitor addresses."""
    return len({visit.visitor_ip for visit in visits})


def count_visits_on(visits: Iterable[LinkVisit], day: date) -> int:
    """Visits whose UTC calendar date equals `day`."""
    return sum(1 for visit in visits if visit.visited_at.date() == day)


def last_visit_at(visits: Iterable[LinkVisit]) -> Optional[datetime]:
    return max((visit.visited_at for visit in visits), default=None)


def order_visits(visits: Iterable[LinkVisit]) -> List[LinkVisit]:
    """Newest first; ties broken by id so the order is stable."""
    return sorted(visits, key=lambda v: (v.visited_at, v.id or 0), reverse=True)


def summarize_visits(visits: List[LinkVisit], now: Optional[datetime] = None) -> dict:
    """
    Build the `statistics` block for a link.

    Args:
        visits: All visits of the link
        now: Reference UTC time (defaults to the current time)
    """
    now = now or utc_now()
    return {
        "total_visits": len(visits),
        "unique_visitors": count_unique_visitors(visits),
        "visits_today": count_visits_on(visits, now.date()),
        "last_visit": last_visit_at(visits),
    }


def enrich_visit(visit: LinkVisit) -> dict:
    """Visit fields plus the classifications derived from them."""
    return {
        "id": visit.id,
        "link_id": visit.link_id,
        "visitor_ip": visit.visitor_ip,
        "user_agent": visit.user_agent,
        "browser": get_browser_name(visit.user_agent),
        "os": get_os_name(visit.user_agent),
        "device": get_device_type(visit.user_agent),
        "referer": visit.referer,
        "visited_at": visit.visited_at,
        "ip_type": get_ip_type(visit.visitor_ip).value,
        "latitude": visit.latitude,
        "longitude": visit.longitude,
        "accuracy": visit.accuracy,
    }


def tracking_url_for(link_id: str) -> str:
    return f"{settings.BASE_URL}/track/{link_id}"


class StatsService:
    """
    Service for retrieving link and visit statistics.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.link_service = LinkService(session)

    async def get_link_stats(self, link_id: str, now: Optional[datetime] = None) -> dict:
        """
        Statistics for one link.

        Returns:
            Dictionary with `link`, `statistics` and `visits` (newest first)

        Raises:
            LinkNotFoundError: If the link does not exist
            DatabaseError: If the query fails
        """
        try:
            link = await self.link_service.get_link_with_visits(link_id)
        except SQLAlchemyError as e:
            raise DatabaseError(f"Failed to load statistics for {link_id}: {str(e)}", original_error=e)

        if link is None:
            raise LinkNotFoundError(link_id)

        visits = list(link.visits)

        return {
            "link": {
                "id": link.id,
                "created_at": link.created_at,
                "creator_ip": link.creator_ip,
                "note": link.note,
                "target_url": link.target_url,
                "tracking_url": tracking_url_for(link.id),
            },
            "statistics": summarize_visits(visits, now=now),
            "visits": [enrich_visit(visit) for visit in order_visits(visits)],
        }

    async def get_all_links(self) -> List[dict]:
        """Every link with lightweight aggregates, newest link first."""
        try:
            links = await self.link_service.list_links_with_visits()
        except SQLAlchemyError as e:
            raise DatabaseError(f"Failed to list links: {str(e)}", original_error=e)

        return [
            {
                "id": link.id,
                "created_at": link.created_at,
                "creator_ip": link.creator_ip,
                "note": link.note,
                "target_url": link.target_url,
                "visits_count": len(link.visits),
                "unique_visitors": count_unique_visitors(link.visits),
                "last_visit": last_visit_at(link.visits),
            }
            for link in links
        ]

    async def get_all_visits(self, limit: Optional[int] = None) -> List[dict]:
        """
        Newest visits across all links.

        Args:
            limit: Maximum number of visits (defaults to VISITS_LIST_LIMIT)
        """
        limit = settings.VISITS_LIST_LIMIT if limit is None else limit
        statement = (
            select(LinkVisit)
            .options(selectinload(LinkVisit.link))
            .order_by(LinkVisit.visited_at.desc(), LinkVisit.id.desc())
            .limit(max(limit, 0))
        )
        try:
            result = await self.session.execute(statement)
            visits = result.scalars().all()
        except SQLAlchemyError as e:
            raise DatabaseError(f"Failed to list visits: {str(e)}", original_error=e)

        return [
            {**enrich_visit(visit), "link_note": visit.link.note if visit.link else None}
            for visit in visits
        ]

    async def _load_visit(self, visit_id: int) -> LinkVisit:
        statement = (
            select(LinkVisit)
            .where(LinkVisit.id == visit_id)
            .options(selectinload(LinkVisit.link))
        )
        try:
            result = await self.session.execute(statement)
            visit = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise DatabaseError(f"Failed to load visit {visit_id}: {str(e)}", original_error=e)

        if visit is None:
            raise VisitNotFoundError(visit_id)
        return visit

    async def get_visit(self, visit_id: int) -> dict:
        """
        One enriched visit with the note of its link.

        Raises:
            VisitNotFoundError: If the visit does not exist
        """
        visit = await self._load_visit(visit_id)
        return {**enrich_visit(visit), "link_note": visit.link.note if visit.link else None}

    async def delete_visit(self, visit_id: int) -> None:
        """
        Delete a single visit.

        Raises:
            VisitNotFoundError: If the visit does not exist
            DatabaseError: If the delete fails
        """
        visit = await self._load_visit(visit_id)
        try:
            await self.session.delete(visit)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise DatabaseError(f"Failed to delete visit {visit_id}: {str(e)}", original_error=e)

        logger.info(f"Visit {visit_id} deleted")
