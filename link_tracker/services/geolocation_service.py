"""
Geolocation Merge Service

Attaches browser-reported coordinates to a visit recorded earlier by the
redirect handler. This is best-effort telemetry: every failure is reported as
False, never raised.
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from link_tracker.db.models import LinkVisit

logger = logging.getLogger(__name__)


class GeolocationService:
    """
    Service for merging late geolocation reports into visits.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def merge_geolocation(
        self,
        visit_id: Optional[int],
        latitude: Optional[float],
        longitude: Optional[float],
        accuracy: Optional[float]
    ) -> bool:
        """
        Set latitude/longitude/accuracy on a visit.

        A visit takes at most one geolocation report; later reports for the
        same visit are ignored. Coordinates are stored as received.

        Returns:
            True if the visit was updated, False otherwise
        """
        if visit_id is None:
            logger.debug("Geolocation report without visit id ignored")
            return False

        try:
            visit = await self.session.get(LinkVisit, visit_id)
            if visit is None:
                logger.info(f"Geolocation report for unknown visit {visit_id}")
                return False

            if visit.has_geolocation:
                logger.info(f"Visit {visit_id} already has a geolocation, report ignored")
                return False

            visit.latitude = latitude
            visit.longitude = longitude
            visit.accuracy = accuracy
            self.session.add(visit)
            await self.session.commit()
        except Exception as e:
            logger.error(f"Failed to merge geolocation for visit {visit_id}: {str(e)}", exc_info=True)
            await self.session.rollback()
            return False

        logger.info(f"Geolocation merged into visit {visit_id}: {latitude}, {longitude} (±{accuracy}m)")
        return True
