"""
Visit Recording Service

Persists one LinkVisit per followed tracking link.

The visit is written inside the request (not as a background task) because
its id is embedded in the geolocation capture page. A failed insert is rolled
back so no half-written visit remains.
"""

import logging
from typing import Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from link_tracker.core.exceptions import DatabaseError
from link_tracker.db.models import LinkVisit, utc_now

logger = logging.getLogger(__name__)


class VisitRecorderService:
    """
    Service for recording link visits.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize the visit recorder with a database session.

        Args:
            session: Async database session for database operations
        """
        self.session = session

    async def record_visit(
        self,
        link_id: str,
        visitor_ip: str,
        user_agent: Optional[str] = None,
        referer: Optional[str] = None
    ) -> LinkVisit:
        """
        Record a visit to a tracking link.

        Args:
            link_id: The link that was followed
            visitor_ip: Resolved visitor address
            user_agent: Raw User-Agent header (stored as "" when missing)
            referer: Raw Referer header (stored as NULL when empty)

        Returns:
            The persisted visit, with its id assigned

        Raises:
            DatabaseError: If the insert fails
        """
        visit = LinkVisit(
            link_id=link_id,
            visitor_ip=visitor_ip,
            user_agent=user_agent or "",
            referer=referer or None,
            visited_at=utc_now()
        )

        try:
            self.session.add(visit)
            await self.session.commit()
            await self.session.refresh(visit)
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise DatabaseError(f"Failed to record visit for {link_id}: {str(e)}", original_error=e)

        logger.info(f"Visit {visit.id} recorded for link {link_id} from {visitor_ip}")
        return visit
