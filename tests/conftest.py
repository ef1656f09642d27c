"""
Shared fixtures.

Every test gets its own file-backed SQLite database (aiosqlite) with the full schema; API tests
talk to the FastAPI app through httpx with get_db pointed at that database.
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from pressledger.api.deps import get_db
from pressledger.db import models  # noqa: F401
from pressledger.db.base import Base
from pressledger.main import app
from pressledger.services import material_service
from pressledger.services.events import low_stock_events


@pytest.fixture
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
def make_material(session):
    """Create and commit a material; keyword arguments override the defaults."""

    async def _make(**kw):
        params = {
            "material_name": "A4 Bond 80gsm",
            "category": "paper",
            "paper_size": "A4",
            "paper_type": "bond",
            "grammage": 80,
            "sheets_per_unit": 500,
            "opening_stock_sheets": 0,
            "unit_cost": Decimal("0"),
            "threshold_sheets": 0,
        }
        params.update(kw)
        m = await material_service.create_material(session, **params)
        await session.commit()
        return m

    return _make


@pytest.fixture
def low_stock_queue():
    q = low_stock_events.subscribe()
    yield q
    low_stock_events.unsubscribe(q)


@pytest.fixture
async def client(session_factory):
    async def _get_db():
        async with session_factory() as s:
            yield s

    app.dependency_overrides[get_db] = _get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
