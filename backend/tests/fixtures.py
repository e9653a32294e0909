"""Shared test helpers: documents, event envelopes, and API shortcuts."""

from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from httpx import AsyncClient

from paer.blocks.nodes import PaperBlock, dump_block, load_paper
from paer.models import (
    BlockDeletedPayload,
    BlockFieldUpdatedPayload,
    BlockInsertedPayload,
    EventEnvelope,
    PaperCreatedPayload,
    PaperDeletedPayload,
)


def scenario_content() -> list[dict[str, Any]]:
    """One section "sec1" > paragraph "par1" > sentence "sen1" ("Hello")."""
    return [
        {
            "block-id": "sec1",
            "type": "section",
            "title": "Introduction",
            "content": [
                {
                    "block-id": "par1",
                    "type": "paragraph",
                    "content": [
                        {"block-id": "sen1", "type": "sentence", "content": "Hello"},
                    ],
                },
            ],
        },
    ]


def scenario_paper(**overrides: Any) -> PaperBlock:
    """The scenario document as a PaperBlock with root id "root"."""
    doc = {
        "block-id": "root",
        "type": "paper",
        "title": "Scenario",
        "content": scenario_content(),
    }
    doc.update(overrides)
    return load_paper(doc)


def two_section_paper() -> PaperBlock:
    """Two sections, each with one paragraph of two sentences."""
    return load_paper({
        "block-id": "root",
        "type": "paper",
        "title": "Two Sections",
        "content": [
            {
                "block-id": f"sec{s}",
                "type": "section",
                "title": f"Section {s}",
                "content": [
                    {
                        "block-id": f"par{s}",
                        "type": "paragraph",
                        "content": [
                            {"block-id": f"sen{s}a", "type": "sentence", "content": "First."},
                            {"block-id": f"sen{s}b", "type": "sentence", "content": "Second."},
                        ],
                    },
                ],
            }
            for s in (1, 2)
        ],
    })


# -- Event envelopes --


def _envelope(
    paper_id: str, event_type: str, payload: Any, user_id: str | None = "alice",
) -> EventEnvelope:
    return EventEnvelope(
        event_id=str(uuid4()),
        paper_id=paper_id,
        timestamp=datetime.now(UTC),
        user_id=user_id,
        event_type=event_type,
        payload=payload.model_dump(),
    )


def make_paper_created_envelope(
    paper_id: str | None = None,
    author_id: str = "alice",
    root: PaperBlock | None = None,
) -> EventEnvelope:
    """Create a PaperCreated EventEnvelope for testing (scenario tree by default)."""
    paper_id = paper_id or str(uuid4())
    root = root or scenario_paper()
    payload = PaperCreatedPayload(author_id=author_id, root=dump_block(root))
    return _envelope(paper_id, "PaperCreated", payload, user_id=author_id)


def make_paper_deleted_envelope(paper_id: str, author_id: str = "alice") -> EventEnvelope:
    return _envelope(paper_id, "PaperDeleted", PaperDeletedPayload(), user_id=author_id)


def make_block_inserted_envelope(
    paper_id: str,
    parent_block_id: str,
    position: int,
    block: dict[str, Any] | None = None,
    after_block_id: str | None = None,
) -> EventEnvelope:
    """Create a BlockInserted EventEnvelope (an empty sentence by default)."""
    block = block or {"block-id": str(uuid4()), "type": "sentence", "content": ""}
    payload = BlockInsertedPayload(
        parent_block_id=parent_block_id,
        after_block_id=after_block_id,
        position=position,
        block=block,
    )
    return _envelope(paper_id, "BlockInserted", payload)


def make_block_field_updated_envelope(
    paper_id: str,
    block_id: str,
    field: str = "content",
    new_value: str = "Edited",
    old_value: str | None = None,
    user_id: str = "alice",
) -> EventEnvelope:
    """Create a BlockFieldUpdated EventEnvelope for testing."""
    payload = BlockFieldUpdatedPayload(
        block_id=block_id, field=field, old_value=old_value, new_value=new_value,
    )
    return _envelope(paper_id, "BlockFieldUpdated", payload, user_id=user_id)


def make_block_deleted_envelope(
    paper_id: str,
    block_id: str,
    parent_block_id: str,
    position: int,
    deleted_block_ids: list[str] | None = None,
) -> EventEnvelope:
    """Create a BlockDeleted EventEnvelope for testing."""
    payload = BlockDeletedPayload(
        block_id=block_id,
        parent_block_id=parent_block_id,
        position=position,
        deleted_block_ids=deleted_block_ids or [block_id],
    )
    return _envelope(paper_id, "BlockDeleted", payload)


# -- API-level helpers --


async def create_test_paper(
    client: AsyncClient,
    title: str = "Test Paper",
    content: list[dict[str, Any]] | None = None,
) -> dict:
    """Create a paper via the API and return the response JSON."""
    resp = await client.post("/api/papers", json={
        "title": title,
        "content": content or [],
    })
    assert resp.status_code == 201
    return resp.json()


async def create_scenario_paper(client: AsyncClient) -> dict:
    """Create the sec1/par1/sen1 paper via the API.

    Returns {"paper_id": str, "root_id": str}.
    """
    paper = await create_test_paper(client, title="Scenario", content=scenario_content())
    return {"paper_id": paper["paper_id"], "root_id": paper["root"]["block-id"]}


def child_ids(block: dict[str, Any]) -> list[str]:
    """Ids of a container's children in a document-form block."""
    return [child["block-id"] for child in block["content"]]
