"""
Redirect Service

Orchestrates following a tracking link:
look up link -> resolve visitor IP -> record visit -> hand back the target.

Any failure along the way (unknown or malformed id, resolver error,
database error) degrades to the fallback destination so a visitor is never
shown an error page.
"""

import logging
from dataclasses import dataclass
from typing import Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from starlette.datastructures import Headers

from link_tracker.core.setting import settings
from link_tracker.core.validators import sanitize_link_id
from link_tracker.services.ip_resolver import IPResolver
from link_tracker.services.link_service import LinkService
from link_tracker.services.visit_recorder import VisitRecorderService

logger = logging.getLogger(__name__)


@dataclass
class RedirectOutcome:
    """Where to send the visitor, and the visit recorded on the way (if any)."""
    target_url: str
    visit_id: Optional[int] = None
    fallback: bool = False


class RedirectService:
    """
    Service for handling tracking-link redirections.
    """

    def __init__(
        self,
        session: AsyncSession,
        resolver: IPResolver,
        fallback_url: Optional[str] = None
    ):
        self.session = session
        self.resolver = resolver
        self.fallback_url = fallback_url or settings.FALLBACK_URL
        self.link_service = LinkService(session)
        self.visit_recorder = VisitRecorderService(session)

    def fallback(self) -> RedirectOutcome:
        return RedirectOutcome(target_url=self.fallback_url, fallback=True)

    async def handle(
        self,
        link_id: str,
        headers: Mapping[str, str],
        remote_address: Optional[str]
    ) -> RedirectOutcome:
        """
        Follow a tracking link.

        Args:
            link_id: Raw id from the URL path
            headers: Request headers
            remote_address: Transport-level peer address

        Returns:
            RedirectOutcome; never raises
        """
        if not isinstance(headers, Headers):
            headers = Headers(headers=dict(headers))

        try:
            sanitized_id = sanitize_link_id(link_id)
            if not sanitized_id:
                logger.info(f"Malformed link id on tracking path: {link_id!r}")
                return self.fallback()

            link = await self.link_service.get_link(sanitized_id)
            if link is None:
                logger.info(f"Link not found: {sanitized_id}")
                return self.fallback()

            visitor_ip = await self.resolver.resolve(headers, remote_address)

            visit = await self.visit_recorder.record_visit(
                link_id=link.id,
                visitor_ip=visitor_ip,
                user_agent=headers.get("User-Agent"),
                referer=headers.get("Referer")
            )

            return RedirectOutcome(target_url=link.target_url or self.fallback_url, visit_id=visit.id)

        except Exception as e:
            logger.error(f"Error while tracking link {link_id}: {str(e)}", exc_info=True)
            try:
                await self.session.rollback()
            except Exception as rollback_error:
                logger.warning(f"Rollback after tracking failure failed: {rollback_error}")
            return self.fallback()
