"""Paer FastAPI application entry point."""

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from paer.blocks.hierarchy import DEFAULT_MODE, load_hierarchy
from paer.db.connection import Database
from paer.papers.router import get_paper_service
from paer.papers.router import router as papers_router
from paer.papers.service import PaperService

# Load .env from backend/ directory before reading any PAER_* setting
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage database lifecycle and service wiring."""
    logging.basicConfig(
        level=os.environ.get("PAER_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    db = await Database.connect(os.environ.get("PAER_DB_PATH", "paer.db"))
    hierarchy = load_hierarchy(os.environ.get("PAER_HIERARCHY", DEFAULT_MODE))
    logger.info("Hierarchy rules: %s", hierarchy.mode)

    service = PaperService(db, hierarchy=hierarchy)
    app.dependency_overrides[get_paper_service] = lambda: service

    app.state.db = db
    yield

    await db.close()


def _cors_origins() -> list[str]:
    raw = os.environ.get("PAER_CORS_ORIGINS", "http://localhost:5173")
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


app = FastAPI(
    title="Paer",
    description="Collaborative editor for hierarchically structured papers",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(papers_router)


@app.get("/api/health")
async def health() -> dict:
    return {"status": "ok", "version": "0.1.0"}
