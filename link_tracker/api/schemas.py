"""
API Request and Response Schemas

This module defines all Pydantic models for API requests and responses.
Separated from endpoints to keep concerns separated and enable reuse.

JSON keys are camelCase on the wire (targetUrl, visitorIp, ...); snake_case
field names are accepted on input as well.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serializing field names as camelCase."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateLinkRequest(CamelModel):
    """Request model for link creation. Emptiness is checked by the service."""
    target_url: Optional[str] = Field(default=None, description="Destination URL")
    note: Optional[str] = Field(default=None, description="Optional label")


class CreateLinkResponse(CamelModel):
    """Response model for link creation."""
    success: bool = True
    link_id: str = Field(..., description="The generated link id")
    tracking_url: str = Field(..., description="URL to share with visitors")
    admin_url: str = Field(..., description="Admin page for this link")
    target_url: str = Field(..., description="Normalized destination URL")
    created_at: datetime
    message: str = "Link created"


class LinkInfo(CamelModel):
    id: str
    created_at: datetime
    creator_ip: str
    note: Optional[str] = None
    target_url: str
    tracking_url: str


class LinkStatistics(CamelModel):
    total_visits: int
    unique_visitors: int
    visits_today: int
    last_visit: Optional[datetime] = None


class VisitInfo(CamelModel):
    """A visit enriched with browser/OS/device and address classification."""
    id: int
    link_id: str
    visitor_ip: str
    user_agent: str
    browser: str
    os: str
    device: str
    referer: Optional[str] = None
    visited_at: datetime
    ip_type: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    accuracy: Optional[float] = None


class VisitDetail(VisitInfo):
    link_note: Optional[str] = None


class LinkStatsResponse(CamelModel):
    """Response model for the per-link statistics endpoint."""
    success: bool = True
    link: LinkInfo
    statistics: LinkStatistics
    visits: List[VisitInfo]


class LinkSummary(CamelModel):
    id: str
    created_at: datetime
    creator_ip: str
    note: Optional[str] = None
    target_url: str
    visits_count: int
    unique_visitors: int
    last_visit: Optional[datetime] = None


class LinkListResponse(CamelModel):
    success: bool = True
    links: List[LinkSummary]
    total: int


class VisitListResponse(CamelModel):
    success: bool = True
    visits: List[VisitDetail]
    total: int


class VisitDetailResponse(VisitDetail):
    success: bool = True


class MessageResponse(CamelModel):
    success: bool = True
    message: str


class DeleteLinkResponse(MessageResponse):
    deleted_visits: int


class GeolocationRequest(CamelModel):
    """Browser geolocation report; every field optional, nothing range-checked."""
    visit_id: Optional[int] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    accuracy: Optional[float] = None


class GeolocationResponse(CamelModel):
    success: bool


class IPInfoResponse(CamelModel):
    success: bool = True
    ip: str
    type: Optional[str] = None
    message: Optional[str] = None
    country: Optional[str] = None
    region: Optional[str] = None
    city: Optional[str] = None
    isp: Optional[str] = None
    org: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    timezone: Optional[str] = None
    source: Optional[str] = None
