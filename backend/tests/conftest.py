"""Shared pytest fixtures for Paer tests."""

import pytest
from httpx import ASGITransport, AsyncClient

from paer.db.connection import Database
from paer.events.projector import StateProjector
from paer.events.store import EventStore
from paer.main import app
from paer.papers.router import get_paper_service
from paer.papers.service import PaperService

AUTHOR = "alice"


@pytest.fixture
async def db():
    """In-memory database for tests."""
    database = await Database.connect(":memory:")
    yield database
    await database.close()


@pytest.fixture
async def event_store(db):
    """EventStore backed by in-memory database."""
    return EventStore(db)


@pytest.fixture
async def projector(db):
    """StateProjector backed by in-memory database."""
    return StateProjector(db)


@pytest.fixture
async def service(db):
    """PaperService with the default (lenient) hierarchy rules."""
    return PaperService(db)


@pytest.fixture
async def client(service):
    """Async test client acting as the paper author, in-memory DB wired in."""
    app.dependency_overrides[get_paper_service] = lambda: service
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"X-User-Id": AUTHOR},
    ) as client:
        yield client
    app.dependency_overrides.clear()
