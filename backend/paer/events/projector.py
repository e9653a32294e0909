"""State projector: projects events into materialized tables.

The read side of the CQRS pattern. Each block is one row keyed by
(paper_id, block_id) with its parent and its index among the parent's
children, so a field write touches exactly one row.
"""

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime

from paer.blocks.nodes import Block, SentenceBlock, children_of, load_block, load_paper
from paer.db.connection import Database
from paer.models import (
    AnnotationAddedPayload,
    AnnotationRemovedPayload,
    BlockDeletedPayload,
    BlockFieldUpdatedPayload,
    BlockInsertedPayload,
    CollaboratorAddedPayload,
    CollaboratorRemovedPayload,
    EventEnvelope,
    PaperCreatedPayload,
)

logger = logging.getLogger(__name__)

_INSERT_BLOCK_SQL = """
    INSERT INTO blocks
        (paper_id, block_id, parent_id, position, type, title, summary,
         intent, content, updated_by, created_at, updated_at)
    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""

_SUBTREE_IDS_SQL = """
    WITH RECURSIVE subtree(block_id) AS (
        SELECT block_id FROM blocks WHERE paper_id = ? AND block_id = ?
        UNION ALL
        SELECT b.block_id FROM blocks b
        JOIN subtree s ON b.parent_id = s.block_id
        WHERE b.paper_id = ?
    )
    SELECT block_id FROM subtree
"""


def _iso(timestamp: datetime | str) -> str:
    return timestamp.isoformat() if isinstance(timestamp, datetime) else str(timestamp)


def _block_rows(
    paper_id: str,
    block: Block,
    parent_id: str | None,
    position: int,
    timestamp: str,
    user_id: str | None,
) -> list[tuple[str, tuple]]:
    """INSERT statements for a block and its whole subtree."""
    statements = [(
        _INSERT_BLOCK_SQL,
        (
            paper_id,
            block.block_id,
            parent_id,
            position,
            block.type,
            getattr(block, "title", None),
            block.summary,
            block.intent,
            block.content if isinstance(block, SentenceBlock) else None,
            user_id,
            timestamp,
            timestamp,
        ),
    )]
    for i, child in enumerate(children_of(block)):
        statements.extend(
            _block_rows(paper_id, child, block.block_id, i, timestamp, user_id)
        )
    return statements


class StateProjector:
    """Projects events into materialized SQL tables (papers, blocks, ...)."""

    def __init__(self, db: Database) -> None:
        self._db = db
        self._handlers: dict[str, Callable[[EventEnvelope], Awaitable[None]]] = {
            "PaperCreated": self._handle_paper_created,
            "PaperDeleted": self._handle_paper_deleted,
            "BlockInserted": self._handle_block_inserted,
            "BlockFieldUpdated": self._handle_block_field_updated,
            "BlockDeleted": self._handle_block_deleted,
            "CollaboratorAdded": self._handle_collaborator_added,
            "CollaboratorRemoved": self._handle_collaborator_removed,
            "AnnotationAdded": self._handle_annotation_added,
            "AnnotationRemoved": self._handle_annotation_removed,
        }

    async def project(self, events: list[EventEnvelope]) -> None:
        """Project a batch of events into materialized tables."""
        for event in events:
            handler = self._handlers.get(event.event_type)
            if handler:
                await handler(event)

    # -- Reads --

    async def get_paper(self, paper_id: str) -> dict | None:
        """Read a projected, non-deleted paper. Returns None if not found."""
        row = await self._db.fetchone(
            "SELECT * FROM papers WHERE paper_id = ? AND deleted = 0", (paper_id,)
        )
        if row is None:
            return None
        return dict(row)

    async def get_blocks(self, paper_id: str) -> list[dict]:
        """All block rows of a paper, grouped by parent in child order."""
        rows = await self._db.fetchall(
            "SELECT * FROM blocks WHERE paper_id = ? ORDER BY parent_id, position",
            (paper_id,),
        )
        return [dict(row) for row in rows]

    async def get_block(self, paper_id: str, block_id: str) -> dict | None:
        row = await self._db.fetchone(
            "SELECT * FROM blocks WHERE paper_id = ? AND block_id = ?",
            (paper_id, block_id),
        )
        if row is None:
            return None
        return dict(row)

    async def get_child_positions(self, paper_id: str, parent_id: str) -> dict[str, int]:
        """{block_id: position} for the children of one block."""
        rows = await self._db.fetchall(
            "SELECT block_id, position FROM blocks "
            "WHERE paper_id = ? AND parent_id = ? ORDER BY position",
            (paper_id, parent_id),
        )
        return {r["block_id"]: r["position"] for r in rows}

    async def get_subtree_ids(self, paper_id: str, block_id: str) -> list[str]:
        """Ids of a block and all of its descendants."""
        rows = await self._db.fetchall(
            _SUBTREE_IDS_SQL, (paper_id, block_id, paper_id)
        )
        return [r["block_id"] for r in rows]

    async def get_collaborators(self, paper_id: str) -> list[str]:
        rows = await self._db.fetchall(
            "SELECT user_id FROM paper_collaborators WHERE paper_id = ? "
            "ORDER BY created_at, user_id",
            (paper_id,),
        )
        return [r["user_id"] for r in rows]

    # -- Handlers --

    async def _handle_paper_created(self, event: EventEnvelope) -> None:
        """Project a PaperCreated event: the paper row plus one row per block."""
        payload = PaperCreatedPayload.model_validate(event.payload)
        root = load_paper(payload.root)
        timestamp = _iso(event.timestamp)
        statements: list[tuple[str, tuple]] = [(
            """
            INSERT OR REPLACE INTO papers
                (paper_id, root_block_id, author_id, created_at, updated_at, deleted)
            VALUES (?, ?, ?, ?, ?, 0)
            """,
            (event.paper_id, root.block_id, payload.author_id, timestamp, timestamp),
        )]
        statements.extend(
            _block_rows(event.paper_id, root, None, 0, timestamp, event.user_id)
        )
        await self._db.execute_batch(statements)

    async def _handle_paper_deleted(self, event: EventEnvelope) -> None:
        await self._db.execute(
            "UPDATE papers SET deleted = 1, updated_at = ? WHERE paper_id = ?",
            (_iso(event.timestamp), event.paper_id),
        )

    async def _handle_block_inserted(self, event: EventEnvelope) -> None:
        """Project a BlockInserted event: open a slot, then insert the subtree rows."""
        payload = BlockInsertedPayload.model_validate(event.payload)
        block = load_block(payload.block)
        timestamp = _iso(event.timestamp)
        statements: list[tuple[str, tuple]] = [(
            "UPDATE blocks SET position = position + 1 "
            "WHERE paper_id = ? AND parent_id = ? AND position >= ?",
            (event.paper_id, payload.parent_block_id, payload.position),
        )]
        statements.extend(_block_rows(
            event.paper_id,
            block,
            payload.parent_block_id,
            payload.position,
            timestamp,
            event.user_id,
        ))
        statements.append(self._touch_paper(event.paper_id, timestamp))
        await self._db.execute_batch(statements)

    _UPDATABLE_BLOCK_FIELDS = {"title", "summary", "intent", "content"}

    async def _handle_block_field_updated(self, event: EventEnvelope) -> None:
        """Project a BlockFieldUpdated event: update a single block column."""
        payload = BlockFieldUpdatedPayload.model_validate(event.payload)

        if payload.field not in self._UPDATABLE_BLOCK_FIELDS:
            logger.warning(
                "BlockFieldUpdated: unknown field %r, skipping", payload.field
            )
            return

        timestamp = _iso(event.timestamp)
        await self._db.execute_batch([
            (
                f"UPDATE blocks SET {payload.field} = ?, updated_by = ?, updated_at = ? "
                "WHERE paper_id = ? AND block_id = ?",
                (
                    payload.new_value,
                    event.user_id,
                    timestamp,
                    event.paper_id,
                    payload.block_id,
                ),
            ),
            self._touch_paper(event.paper_id, timestamp),
        ])

    async def _handle_block_deleted(self, event: EventEnvelope) -> None:
        """Project a BlockDeleted event: drop the subtree rows, close the gap."""
        payload = BlockDeletedPayload.model_validate(event.payload)
        timestamp = _iso(event.timestamp)
        placeholders = ", ".join("?" for _ in payload.deleted_block_ids)
        await self._db.execute_batch([
            (
                f"DELETE FROM blocks WHERE paper_id = ? AND block_id IN ({placeholders})",
                (event.paper_id, *payload.deleted_block_ids),
            ),
            (
                "UPDATE blocks SET position = position - 1 "
                "WHERE paper_id = ? AND parent_id = ? AND position > ?",
                (event.paper_id, payload.parent_block_id, payload.position),
            ),
            self._touch_paper(event.paper_id, timestamp),
        ])

    async def _handle_collaborator_added(self, event: EventEnvelope) -> None:
        payload = CollaboratorAddedPayload.model_validate(event.payload)
        await self._db.execute(
            "INSERT OR IGNORE INTO paper_collaborators (paper_id, user_id, created_at) "
            "VALUES (?, ?, ?)",
            (event.paper_id, payload.user_id, _iso(event.timestamp)),
        )

    async def _handle_collaborator_removed(self, event: EventEnvelope) -> None:
        payload = CollaboratorRemovedPayload.model_validate(event.payload)
        await self._db.execute(
            "DELETE FROM paper_collaborators WHERE paper_id = ? AND user_id = ?",
            (event.paper_id, payload.user_id),
        )

    async def _handle_annotation_added(self, event: EventEnvelope) -> None:
        payload = AnnotationAddedPayload.model_validate(event.payload)
        await self._db.execute(
            """
            INSERT OR REPLACE INTO annotations
                (annotation_id, paper_id, block_id, kind, body, user_id, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                payload.annotation_id,
                event.paper_id,
                payload.block_id,
                payload.kind,
                payload.body,
                event.user_id,
                _iso(event.timestamp),
            ),
        )

    async def _handle_annotation_removed(self, event: EventEnvelope) -> None:
        payload = AnnotationRemovedPayload.model_validate(event.payload)
        await self._db.execute(
            "DELETE FROM annotations WHERE annotation_id = ?",
            (payload.annotation_id,),
        )

    @staticmethod
    def _touch_paper(paper_id: str, timestamp: str) -> tuple[str, tuple]:
        return (
            "UPDATE papers SET updated_at = ? WHERE paper_id = ?",
            (timestamp, paper_id),
        )
