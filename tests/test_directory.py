"""
test_directory.py — Tests for the nearby-user lookup.

Covers:
    • In-memory directory eligibility rules (reporter, token, box)
    • SQL directory against an in-memory SQLite database
    • Haversine refinement on the SQL backend
    • Query failures surfacing as DirectoryError

Run with:
    pytest tests/test_directory.py -v
"""

from __future__ import annotations

import asyncio
from typing import Dict, List, Optional

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from backend.app.core.database import Base
from backend.app.core.errors import DirectoryError
from backend.app.emergency.directory import (
    InMemoryLocationDirectory,
    SqlLocationDirectory,
    UserLocation,
)
from backend.app.emergency.models import LocationRecord
from backend.app.emergency.proximity import (
    DEFAULT_DELTA_DEG,
    Coordinate,
    HaversinePolicy,
)

DHAKA_LAT = 23.8103
DHAKA_LNG = 90.4125
DHAKA = Coordinate(DHAKA_LAT, DHAKA_LNG)
REPORTER = "reporter"


def _rows() -> List[Dict[str, Optional[object]]]:
    return [
        {"user_id": REPORTER, "lat": DHAKA_LAT, "lng": DHAKA_LNG, "fcm_token": "tok-self"},
        {"user_id": "u-near", "lat": 23.8110, "lng": 90.4130, "fcm_token": "tok-near"},
        {"user_id": "u-notoken", "lat": 23.8105, "lng": 90.4120, "fcm_token": None},
        {"user_id": "u-empty", "lat": 23.8104, "lng": 90.4126, "fcm_token": ""},
        {"user_id": "u-far", "lat": 23.8200, "lng": 90.4125, "fcm_token": "tok-far"},
        {"user_id": "u-edge", "lat": DHAKA_LAT + DEFAULT_DELTA_DEG, "lng": DHAKA_LNG,
         "fcm_token": "tok-edge"},
        {"user_id": "u-corner", "lat": DHAKA_LAT + 0.0044, "lng": DHAKA_LNG + 0.0044,
         "fcm_token": "tok-corner"},
    ]


def _records() -> List[LocationRecord]:
    return [
        LocationRecord(
            user_id=r["user_id"], lat=r["lat"], lng=r["lng"], push_token=r["fcm_token"],
        )
        for r in _rows()
    ]


async def _sql_find(rows, center, exclude, policy=None, create_tables=True):
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    factory = async_sessionmaker(engine, expire_on_commit=False)
    try:
        if create_tables:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            async with factory() as session:
                session.add_all([UserLocation(**r) for r in rows])
                await session.commit()
        directory = SqlLocationDirectory(factory, policy)
        return await directory.find_nearby(center, exclude)
    finally:
        await engine.dispose()


# ═══════════════════════════════════════════════════════════════════════════
# In-memory backend
# ═══════════════════════════════════════════════════════════════════════════

class TestInMemoryDirectory:

    def _find(self, records=None, policy=None, exclude=REPORTER):
        directory = InMemoryLocationDirectory(
            _records() if records is None else records, policy,
        )
        return asyncio.run(directory.find_nearby(DHAKA, exclude))

    def test_returns_only_eligible(self):
        ids = [r.user_id for r in self._find()]
        assert ids == ["u-near", "u-edge", "u-corner"]

    def test_reporter_excluded(self):
        assert REPORTER not in [r.user_id for r in self._find()]

    def test_reporter_included_when_someone_else_reports(self):
        ids = [r.user_id for r in self._find(exclude="someone-else")]
        assert REPORTER in ids

    def test_tokenless_records_excluded(self):
        found = self._find()
        assert all(r.push_token for r in found)

    def test_empty_directory(self):
        assert self._find(records=[]) == []

    def test_haversine_policy_drops_corner(self):
        ids = [r.user_id for r in self._find(policy=HaversinePolicy(500.0))]
        assert "u-corner" not in ids
        assert "u-near" in ids


# ═══════════════════════════════════════════════════════════════════════════
# SQL backend
# ═══════════════════════════════════════════════════════════════════════════

class TestSqlDirectory:

    def test_bbox_query(self):
        found = asyncio.run(_sql_find(_rows(), DHAKA, REPORTER))
        assert [r.user_id for r in found] == ["u-corner", "u-edge", "u-near"]

    def test_records_carry_token_and_position(self):
        found = asyncio.run(_sql_find(_rows(), DHAKA, REPORTER))
        near = next(r for r in found if r.user_id == "u-near")
        assert near.push_token == "tok-near"
        assert near.lat == pytest.approx(23.8110)
        assert near.lng == pytest.approx(90.4130)

    def test_boundary_inclusive_and_epsilon_excluded(self):
        rows = [
            {"user_id": "on-edge", "lat": DHAKA_LAT + DEFAULT_DELTA_DEG,
             "lng": DHAKA_LNG, "fcm_token": "a"},
            {"user_id": "past-edge", "lat": DHAKA_LAT + DEFAULT_DELTA_DEG + 1e-6,
             "lng": DHAKA_LNG, "fcm_token": "b"},
        ]
        found = asyncio.run(_sql_find(rows, DHAKA, REPORTER))
        assert [r.user_id for r in found] == ["on-edge"]

    def test_haversine_refinement(self):
        found = asyncio.run(
            _sql_find(_rows(), DHAKA, REPORTER, policy=HaversinePolicy(500.0))
        )
        ids = [r.user_id for r in found]
        assert "u-corner" not in ids
        assert "u-near" in ids

    def test_query_failure_raises_directory_error(self):
        # No table → OperationalError from the driver
        with pytest.raises(DirectoryError, match="Location directory query failed"):
            asyncio.run(_sql_find([], DHAKA, REPORTER, create_tables=False))

    def test_timeout_raises_directory_error(self):
        class SlowDirectory(SqlLocationDirectory):
            async def _fetch(self, stmt):
                await asyncio.sleep(1.0)
                return []

        directory = SlowDirectory(None, timeout_seconds=0.05)
        with pytest.raises(DirectoryError, match="timed out"):
            asyncio.run(directory.find_nearby(DHAKA, REPORTER))

    def test_query_excludes_reporter_and_null_tokens(self):
        directory = SqlLocationDirectory(None)
        sql = str(directory.build_query(DHAKA, REPORTER))
        assert "user_locations.user_id !=" in sql
        assert "fcm_token IS NOT NULL" in sql
        assert "BETWEEN" in sql
