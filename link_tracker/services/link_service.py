"""
Link Service

CRUD persistence for tracking links:
- Normalizing and validating target URLs
- Generating short link ids
- Loading links with their visits for statistics
- Deleting a link together with all of its visits in one transaction
"""

import logging
import uuid
from typing import List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from link_tracker.core.exceptions import DatabaseError, InvalidURLError, LinkNotFoundError
from link_tracker.core.validators import has_http_scheme, validate_url_length
from link_tracker.db.models import LinkVisit, TrackingLink, utc_now
from link_tracker.services.ip_resolver import UNKNOWN_ADDRESS

logger = logging.getLogger(__name__)

LINK_ID_LENGTH = 8


def generate_link_id() -> str:
    """8 hex characters taken from a random 128-bit UUID."""
    return uuid.uuid4().hex[:LINK_ID_LENGTH]


def normalize_target_url(target_url: Optional[str]) -> str:
    """
    Trim the target URL and make sure it carries an http(s) scheme.

    Raises:
        InvalidURLError: If the URL is empty or too long
    """
    target_url = (target_url or "").strip()
    if not target_url:
        raise InvalidURLError("", reason="Target URL must not be empty")

    if not has_http_scheme(target_url):
        target_url = "https://" + target_url

    if not validate_url_length(target_url):
        raise InvalidURLError(target_url, reason="Target URL is too long")

    return target_url


class LinkService:
    """
    Persistence operations for tracking links.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_link(
        self,
        target_url: Optional[str],
        note: Optional[str] = None,
        creator_ip: Optional[str] = None
    ) -> TrackingLink:
        """
        Create a tracking link.

        Returns:
            The persisted TrackingLink

        Raises:
            InvalidURLError: If target_url is empty or too long
            DatabaseError: If the insert fails
        """
        normalized_url = normalize_target_url(target_url)
        note = note.strip() if note else None

        link = TrackingLink(
            id=generate_link_id(),
            created_at=utc_now(),
            creator_ip=creator_ip or UNKNOWN_ADDRESS,
            note=note or None,
            target_url=normalized_url
        )

        try:
            self.session.add(link)
            await self.session.commit()
            await self.session.refresh(link)
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise DatabaseError(f"Failed to create link: {str(e)}", original_error=e)

        logger.info(f"Link created: {link.id} -> {link.target_url}")
        return link

    async def get_link(self, link_id: str) -> Optional[TrackingLink]:
        """Return the link or None."""
        statement = select(TrackingLink).where(TrackingLink.id == link_id)
        result = await self.session.execute(statement)
        return result.scalar_one_or_none()

    async def get_link_with_visits(self, link_id: str) -> Optional[TrackingLink]:
        """Return the link with its visits eagerly loaded, or None."""
        statement = (
            select(TrackingLink)
            .where(TrackingLink.id == link_id)
            .options(selectinload(TrackingLink.visits))
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(statement)
        return result.scalar_one_or_none()

    async def list_links_with_visits(self) -> List[TrackingLink]:
        """All links, newest first, with visits eagerly loaded."""
        statement = (
            select(TrackingLink)
            .options(selectinload(TrackingLink.visits))
            .order_by(TrackingLink.created_at.desc())
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(statement)
        return list(result.scalars().all())

    async def delete_link(self, link_id: str) -> int:
        """
        Delete a link and every visit it owns.

        Visits are removed first, then the link, inside one transaction.

        Returns:
            Number of visits removed

        Raises:
            LinkNotFoundError: If the link does not exist
            DatabaseError: If the delete fails (nothing is removed)
        """
        try:
            link = await self.get_link(link_id)
            if link is None:
                raise LinkNotFoundError(link_id)

            count_statement = select(func.count()).select_from(LinkVisit).where(
                LinkVisit.link_id == link_id
            )
            visits_count = (await self.session.execute(count_statement)).scalar_one()

            await self.session.execute(delete(LinkVisit).where(LinkVisit.link_id == link_id))
            await self.session.execute(delete(TrackingLink).where(TrackingLink.id == link_id))
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise DatabaseError(f"Failed to delete link {link_id}: {str(e)}", original_error=e)

        logger.info(f"Link {link_id} deleted with {visits_count} visits")
        return visits_count
