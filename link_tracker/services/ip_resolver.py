"""
IP Resolver Service

Determines the best-effort public address of an HTTP request.

Resolution order:
1. X-Forwarded-For (first entry), trusted verbatim
2. X-Real-IP, trusted verbatim (blank header values are skipped)
3. Transport remote address (::1 normalized to 127.0.0.1)
4. Loopback/empty origins are treated as the server's own host: the
   externally visible address is looked up once (cached for the process)
   and returned annotated as "(your public IP)"
5. A trailing :port is stripped from single-colon addresses

Proxy headers are not validated, so a client can spoof its recorded address.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Mapping, Optional, Sequence

import httpx
from starlette.datastructures import Headers

from link_tracker.core.exceptions import ExternalServiceError
from link_tracker.core.setting import settings
from link_tracker.db.models import utc_now

logger = logging.getLogger(__name__)

LOOPBACK_ADDRESS = "127.0.0.1"
IPV6_LOOPBACK_ADDRESS = "::1"
UNKNOWN_ADDRESS = "Unknown"
PUBLIC_IP_ANNOTATION = "(your public IP)"

# Cached when the public address could not be discovered
UNDETERMINED_SENTINEL = "Could not determine"
LOOKUP_FAILED_SENTINEL = "Lookup failed"
SENTINELS = frozenset({UNDETERMINED_SENTINEL, LOOKUP_FAILED_SENTINEL})


@dataclass(frozen=True)
class CachedAddress:
    value: str
    fetched_at: datetime


class PublicAddressCache:
    """
    Process-wide single-slot cache of the server's externally visible address.

    The slot holds one immutable snapshot that is replaced in a single
    assignment, so readers never observe a half-written entry. Writes are
    idempotent (every refresh discovers the same address) and need no lock.
    """

    def __init__(self) -> None:
        self._entry: Optional[CachedAddress] = None

    def get(self) -> Optional[str]:
        entry = self._entry
        return entry.value if entry else None

    def store(self, value: str, fetched_at: Optional[datetime] = None, force: bool = False) -> bool:
        """
        Store a looked up value.

        Args:
            value: Address or sentinel
            fetched_at: When the lookup started (UTC), defaults to now
            force: Replace the snapshot regardless of its age

        Returns:
            True if the value was written. An unforced write loses against a
            snapshot from a lookup that started later.
        """
        candidate = CachedAddress(value=value, fetched_at=fetched_at or utc_now())
        current = self._entry
        if force or current is None or candidate.fetched_at >= current.fetched_at:
            self._entry = candidate
            return True
        return False

    def clear(self) -> None:
        self._entry = None


public_address_cache = PublicAddressCache()


def strip_port(address: str) -> str:
    """Drop a ':port' suffix from an IPv4 address; multi-colon (IPv6) input is kept."""
    if address.count(":") == 1:
        return address.split(":")[0]
    return address


def forwarded_address(headers: Mapping[str, str]) -> Optional[str]:
    """
    Address announced by a proxy header, or None.

    X-Forwarded-For (first entry) wins over X-Real-IP. Blank values are
    skipped. No outbound lookup is made.
    """
    if not isinstance(headers, Headers):
        headers = Headers(headers=dict(headers))

    forwarded_for = headers.get("X-Forwarded-For")
    if forwarded_for:
        first_hop = forwarded_for.split(",")[0].strip()
        if first_hop:
            return first_hop

    real_ip = headers.get("X-Real-IP")
    if real_ip and real_ip.strip():
        return real_ip.strip()

    return None


def is_sentinel(value: Optional[str]) -> bool:
    return value is None or value in SENTINELS


class IPResolver:
    """
    Resolves the originating address of a request.

    Args:
        cache: Shared public address cache (module-wide instance by default)
        services: Ordered "what is my IP" URLs, first success wins
        timeout: Per-service timeout in seconds
        transport: Optional httpx transport (tests use httpx.MockTransport)
    """

    def __init__(
        self,
        cache: Optional[PublicAddressCache] = None,
        services: Optional[Sequence[str]] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.cache = cache if cache is not None else public_address_cache
        self.services = list(services if services is not None else settings.PUBLIC_IP_SERVICES)
        self.timeout = timeout if timeout is not None else settings.PUBLIC_IP_LOOKUP_TIMEOUT
        self.transport = transport

    async def resolve(
        self,
        headers: Mapping[str, str],
        remote_address: Optional[str],
        force_refresh: bool = False
    ) -> str:
        """
        Resolve the request's address.

        Args:
            headers: Request headers (any mapping; looked up case-insensitively)
            remote_address: Transport-level peer address, may be None
            force_refresh: Re-query the public address services even if cached

        Returns:
            Address string, possibly annotated, or "Unknown"
        """
        forwarded = forwarded_address(headers)
        if forwarded:
            return forwarded

        ip = remote_address
        if ip == IPV6_LOOPBACK_ADDRESS:
            ip = LOOPBACK_ADDRESS

        if ip == LOOPBACK_ADDRESS or not ip:
            public_ip = self.cache.get()
            if public_ip is None or force_refresh:
                public_ip = await self.refresh_public_address(force=force_refresh)

            if ip == LOOPBACK_ADDRESS and not is_sentinel(public_ip):
                return f"{public_ip} {PUBLIC_IP_ANNOTATION}"

        if ip:
            ip = strip_port(ip)

        return ip or UNKNOWN_ADDRESS

    async def resolve_request(self, request, force_refresh: bool = False) -> str:
        """Convenience wrapper taking a Starlette/FastAPI request."""
        remote_address = request.client.host if request.client else None
        return await self.resolve(request.headers, remote_address, force_refresh=force_refresh)

    async def refresh_public_address(self, force: bool = True) -> str:
        """
        Query the public address services and store the outcome in the cache.

        Args:
            force: Overwrite the cached snapshot even if a later lookup
                already stored one

        Returns:
            The discovered address or one of the sentinels
        """
        started_at = utc_now()
        try:
            public_ip = await self._probe_services()
            logger.info(f"Public IP determined: {public_ip}")
        except ExternalServiceError as e:
            logger.warning(f"Could not determine public IP: {e}")
            public_ip = UNDETERMINED_SENTINEL
        except Exception as e:
            logger.error(f"Error while looking up public IP: {str(e)}", exc_info=True)
            public_ip = LOOKUP_FAILED_SENTINEL

        self.cache.store(public_ip, fetched_at=started_at, force=force)
        return public_ip

    async def _probe_services(self) -> str:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            for service_url in self.services:
                try:
                    response = await client.get(service_url)
                    response.raise_for_status()
                except httpx.HTTPError as e:
                    logger.debug(f"Public IP service {service_url} failed: {e}")
                    continue

                public_ip = response.text.strip()
                if public_ip:
                    return public_ip

        raise ExternalServiceError("public-ip", "lookup failed on every service")


_resolver: Optional[IPResolver] = None


def get_ip_resolver() -> IPResolver:
    """FastAPI dependency returning the process-wide resolver."""
    global _resolver
    if _resolver is None:
        _resolver = IPResolver()
    return _resolver
