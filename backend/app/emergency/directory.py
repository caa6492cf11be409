"""
directory.py — Read-only lookup of nearby users in the location directory.

The directory is the ``user_locations`` table kept up to date by the
mobile app (one row per user: last position + FCM token). The fan-out
only ever reads it.

═══════════════════════════════════════════════════════════════════════════
QUERY SHAPE
═══════════════════════════════════════════════════════════════════════════

    SELECT user_id, lat, lng, fcm_token
      FROM user_locations
     WHERE user_id <> :reporter
       AND fcm_token IS NOT NULL AND fcm_token <> ''
       AND lat BETWEEN :min_lat AND :max_lat
       AND lng BETWEEN :min_lng AND :max_lng
  ORDER BY user_id

The box comes from the active proximity policy. For the haversine
policy the rows are refined in Python after the query.

Any failure to run the query is raised as ``DirectoryError``; callers
never see a partial candidate list.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from functools import lru_cache
from typing import Iterable, List, Optional

from sqlalchemy import DateTime, Float, Index, String, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.core.config import settings
from backend.app.core.database import Base, get_session_factory
from backend.app.core.errors import DirectoryError
from backend.app.emergency.models import LocationRecord
from backend.app.emergency.proximity import Coordinate, build_policy

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# ORM model
# ═══════════════════════════════════════════════════════════════════════════

class UserLocation(Base):
    """Last known position and push token of one app user."""

    __tablename__ = "user_locations"
    __table_args__ = (Index("ix_user_locations_lat_lng", "lat", "lng"),)

    user_id: Mapped[str] = mapped_column(String, primary_key=True)
    lat: Mapped[float] = mapped_column(Float, nullable=False)
    lng: Mapped[float] = mapped_column(Float, nullable=False)
    fcm_token: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=True,
    )


# ═══════════════════════════════════════════════════════════════════════════
# Directory backends
# ═══════════════════════════════════════════════════════════════════════════

class LocationDirectory:
    """Interface: find users near a point, excluding one user id."""

    async def find_nearby(
        self, center: Coordinate, exclude_user_id: str,
    ) -> List[LocationRecord]:
        raise NotImplementedError


class SqlLocationDirectory(LocationDirectory):
    """Directory backed by the ``user_locations`` table."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        policy=None,
        *,
        timeout_seconds: float = 10.0,
    ):
        self._session_factory = session_factory
        self.policy = policy or build_policy("bbox")
        self.timeout_seconds = timeout_seconds

    def build_query(self, center: Coordinate, exclude_user_id: str):
        """Select statement for candidates inside the policy's box."""
        box = self.policy.box(center)
        return (
            select(
                UserLocation.user_id,
                UserLocation.lat,
                UserLocation.lng,
                UserLocation.fcm_token,
            )
            .where(
                UserLocation.user_id != exclude_user_id,
                UserLocation.fcm_token.is_not(None),
                UserLocation.fcm_token != "",
                UserLocation.lat.between(box.min_lat, box.max_lat),
                UserLocation.lng.between(box.min_lng, box.max_lng),
            )
            .order_by(UserLocation.user_id)
        )

    async def _fetch(self, stmt) -> list:
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return list(result.all())

    async def find_nearby(
        self, center: Coordinate, exclude_user_id: str,
    ) -> List[LocationRecord]:
        stmt = self.build_query(center, exclude_user_id)
        try:
            rows = await asyncio.wait_for(self._fetch(stmt), self.timeout_seconds)
        except asyncio.TimeoutError as exc:
            raise DirectoryError(
                f"query timed out after {self.timeout_seconds}s",
            ) from exc
        except (SQLAlchemyError, OSError) as exc:
            raise DirectoryError(str(exc), exception=type(exc).__name__) from exc

        records = [
            LocationRecord(
                user_id=row.user_id, lat=row.lat, lng=row.lng,
                push_token=row.fcm_token,
            )
            for row in rows
        ]
        if self.policy.needs_refinement:
            records = [
                r for r in records if self.policy.matches(center, r.lat, r.lng)
            ]

        logger.debug(
            "Directory query (%r) around %.5f,%.5f → %d rows",
            self.policy, center.latitude, center.longitude, len(records),
        )
        return records


class InMemoryLocationDirectory(LocationDirectory):
    """
    Directory over a fixed list of records.

    Applies the same eligibility rules as the SQL backend: no reporter,
    no token-less records, inside the policy. Input order is kept.
    """

    def __init__(self, records: Iterable[LocationRecord] = (), policy=None):
        self.records: List[LocationRecord] = list(records)
        self.policy = policy or build_policy("bbox")

    async def find_nearby(
        self, center: Coordinate, exclude_user_id: str,
    ) -> List[LocationRecord]:
        return [
            r for r in self.records
            if r.user_id != exclude_user_id
            and r.has_token
            and self.policy.matches(center, r.lat, r.lng)
        ]


# ═══════════════════════════════════════════════════════════════════════════
# Dependency
# ═══════════════════════════════════════════════════════════════════════════

@lru_cache()
def get_location_directory() -> LocationDirectory:
    """FastAPI dependency: the configured SQL-backed directory."""
    policy = build_policy(
        settings.PROXIMITY_MODE,
        delta_deg=settings.PROXIMITY_DELTA_DEG,
        radius_m=settings.PROXIMITY_RADIUS_M,
    )
    logger.info("Location directory using %r", policy)
    return SqlLocationDirectory(
        get_session_factory(), policy,
        timeout_seconds=settings.DIRECTORY_TIMEOUT_SECONDS,
    )
