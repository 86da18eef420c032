"""
Database Models for the Link Tracker Service

This module defines the SQLModel database schemas for:
- TrackingLink: Maps a short id to the operator's target URL
- LinkVisit: One recorded visit of a tracking link

Design Decisions:
- A link owns its visits: the foreign key declares ON DELETE CASCADE and the
  ORM relationship cascades deletes as well
- Indexes on link_id and visited_at for the statistics queries
- Timestamps are stored as naive UTC (SQLite drops timezone information)
"""

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import Column, DateTime, Float, ForeignKey, String, Text
from sqlmodel import Field, Relationship, SQLModel


def utc_now() -> datetime:
    """Current UTC time as a naive datetime, the form stored in the database."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TrackingLink(SQLModel, table=True):
    """
    Tracking link created by the operator.

    Fields:
    - id: 8 hex characters generated at creation
    - created_at: Creation timestamp (UTC)
    - creator_ip: Resolved address of the creator
    - note: Optional free-text label
    - target_url: Destination, always with an http:// or https:// scheme
    """
    __tablename__ = "tracking_links"

    id: str = Field(sa_column=Column(String(32), primary_key=True))
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True)
    )
    creator_ip: str = Field(
        default="Unknown",
        sa_column=Column(String(100), nullable=False)
    )
    note: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    target_url: str = Field(sa_column=Column(Text, nullable=False))

    visits: List["LinkVisit"] = Relationship(
        back_populates="link",
        sa_relationship_kwargs={"cascade": "all, delete-orphan", "passive_deletes": True}
    )


class LinkVisit(SQLModel, table=True):
    """
    Visit record written at redirect time.

    The geolocation columns stay NULL unless the visitor's browser reports
    coordinates back after the capture page was served.
    """
    __tablename__ = "link_visits"

    id: Optional[int] = Field(default=None, primary_key=True)
    link_id: str = Field(
        sa_column=Column(
            String(32),
            ForeignKey("tracking_links.id", ondelete="CASCADE"),
            nullable=False,
            index=True
        )
    )
    visitor_ip: str = Field(sa_column=Column(String(100), nullable=False))
    user_agent: str = Field(default="", sa_column=Column(Text, nullable=False, default=""))
    referer: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    visited_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True)
    )
    latitude: Optional[float] = Field(default=None, sa_column=Column(Float, nullable=True))
    longitude: Optional[float] = Field(default=None, sa_column=Column(Float, nullable=True))
    accuracy: Optional[float] = Field(default=None, sa_column=Column(Float, nullable=True))

    link: Optional[TrackingLink] = Relationship(back_populates="visits")

    @property
    def has_geolocation(self) -> bool:
        return self.latitude is not None or self.longitude is not None
