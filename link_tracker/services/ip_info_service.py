"""
IP Info Service

Optional geo-IP enrichment of a visitor address through an external lookup
service (ipwho.is by default). Local addresses are answered without a network
call, and any failure degrades to the local address classification.
"""

import logging
from typing import Optional

import httpx

from link_tracker.core.exceptions import ExternalServiceError
from link_tracker.core.setting import settings
from link_tracker.services.classifiers import IPType, get_ip_type
from link_tracker.services.ip_resolver import (
    IPV6_LOOPBACK_ADDRESS,
    LOOPBACK_ADDRESS,
    UNKNOWN_ADDRESS,
)

logger = logging.getLogger(__name__)

SOURCE_NAME = "ipwho.is"


class IPInfoService:
    """
    Looks up country/region/city/ISP information for an address.

    Args:
        base_url: Lookup service, queried as {base_url}/{ip}
        timeout: Request timeout in seconds
        transport: Optional httpx transport (tests use httpx.MockTransport)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = (base_url or settings.IP_INFO_SERVICE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.IP_INFO_TIMEOUT
        self.transport = transport

    async def lookup(self, ip: str) -> dict:
        """
        Describe an address.

        Returns:
            Dictionary with `ip` and either geo fields (`source` set) or a
            `type` classification and an explanatory `message`
        """
        if not ip or ip in (UNKNOWN_ADDRESS, IPV6_LOOPBACK_ADDRESS, LOOPBACK_ADDRESS):
            return {
                "ip": ip,
                "type": IPType.local.value,
                "message": "This is a local address (your computer or the server)",
            }

        try:
            return await self._fetch(ip)
        except ExternalServiceError as e:
            logger.warning(f"IP info lookup failed for {ip}: {e}")

        return {
            "ip": ip,
            "type": get_ip_type(ip).value,
            "message": "Limited information available for this address",
        }

    async def _fetch(self, ip: str) -> dict:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(f"{self.base_url}/{ip}")
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise ExternalServiceError(SOURCE_NAME, f"request failed: {e}")

        if not isinstance(data, dict) or data.get("success") is False:
            message = data.get("message", "lookup rejected") if isinstance(data, dict) else "bad payload"
            raise ExternalServiceError(SOURCE_NAME, message)

        connection = data.get("connection") or {}
        tz = data.get("timezone") or {}

        return {
            "ip": ip,
            "country": data.get("country"),
            "region": data.get("region"),
            "city": data.get("city"),
            "isp": connection.get("isp"),
            "org": connection.get("org"),
            "latitude": data.get("latitude"),
            "longitude": data.get("longitude"),
            "timezone": tz.get("id") if isinstance(tz, dict) else tz,
            "source": SOURCE_NAME,
        }
