"""Paper service: the authoritative store for paper trees.

Coordinates EventStore and StateProjector. Every mutation is validated,
appended to the event log, projected, and answered with the authoritative
state read back from the projection. Writes are serialized per key, never
per paper: a field write holds its block, a structural write holds the
parent whose child list changes. Each write then reads, emits, and reads
back inside one database transaction.
"""

import logging
from collections import defaultdict
from datetime import UTC, datetime
from uuid import uuid4

from pydantic import BaseModel

from paer.blocks.errors import BlockNotFoundError, CannotDeleteRootError, InvalidFieldError
from paer.blocks.hierarchy import HierarchyRules, load_hierarchy
from paer.blocks.index import BlockIndex
from paer.blocks.locks import KeyedLock
from paer.blocks.nodes import (
    TITLED_TYPES,
    UPDATABLE_FIELDS,
    PaperBlock,
    dump_block,
    load_paper,
    new_block,
    walk,
)
from paer.blocks.paths import breadcrumbs, resolve_path
from paer.db.connection import Database
from paer.events.projector import StateProjector
from paer.events.store import EventStore
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
    PaperDeletedPayload,
)
from paer.papers.schemas import (
    AddAnnotationRequest,
    AnnotationResponse,
    BlockLocationResponse,
    BlockResponse,
    CollaboratorsResponse,
    CreatePaperRequest,
    EditHistoryEntry,
    EditHistoryResponse,
    InsertBlockRequest,
    PaperDetailResponse,
    PaperSummary,
    StructuralResponse,
)

logger = logging.getLogger(__name__)


class PaperService:
    """Coordinates event store and projector for paper/block operations."""

    def __init__(self, db: Database, hierarchy: HierarchyRules | None = None) -> None:
        self._store = EventStore(db)
        self._projector = StateProjector(db)
        self._db = db
        self._hierarchy = hierarchy or load_hierarchy()
        self._locks = KeyedLock()

    # -- Papers --

    async def create_paper(
        self, request: CreatePaperRequest, user_id: str,
    ) -> PaperDetailResponse:
        """Create a paper, optionally from an imported document body.

        Emits PaperCreated, projects, returns the paper.
        """
        root = PaperBlock(
            title=request.title,
            summary=request.summary,
            intent=request.intent,
            content=request.content,
        )
        index = BlockIndex.build(root)
        self._hierarchy.check_tree(root)

        paper_id = str(uuid4())
        payload = PaperCreatedPayload(author_id=user_id, root=dump_block(root))
        await self._emit(paper_id, user_id, "PaperCreated", payload)
        logger.info("Created paper %s with %d blocks", paper_id, len(index))

        paper = await self._require_paper(paper_id)
        return await self._paper_detail(paper)

    async def list_papers(self, user_id: str) -> list[PaperSummary]:
        """Papers the user authored or collaborates on, newest first."""
        rows = await self._db.fetchall(
            """
            SELECT p.paper_id, p.author_id, p.created_at, p.updated_at, b.title
            FROM papers p
            JOIN blocks b ON b.paper_id = p.paper_id AND b.block_id = p.root_block_id
            WHERE p.deleted = 0 AND (
                p.author_id = ?
                OR p.paper_id IN (
                    SELECT paper_id FROM paper_collaborators WHERE user_id = ?
                )
            )
            ORDER BY p.created_at DESC
            """,
            (user_id, user_id),
        )
        return [
            PaperSummary(
                paper_id=row["paper_id"],
                title=row["title"] or "",
                author_id=row["author_id"],
                created_at=row["created_at"],
                updated_at=row["updated_at"],
            )
            for row in rows
        ]

    async def get_paper(self, paper_id: str, user_id: str) -> PaperDetailResponse:
        paper = await self._require_member(paper_id, user_id)
        return await self._paper_detail(paper)

    async def get_tree(self, paper_id: str) -> PaperBlock:
        """Assemble the authoritative tree from the projected block rows."""
        paper = await self._require_paper(paper_id)
        return await self._assemble_tree(paper)

    async def delete_paper(self, paper_id: str, user_id: str) -> None:
        """Delete a paper. Only its author may. Emits PaperDeleted."""
        await self._require_author(paper_id, user_id)
        await self._emit(paper_id, user_id, "PaperDeleted", PaperDeletedPayload())
        logger.info("Deleted paper %s", paper_id)

    # -- Blocks --

    async def update_block_field(
        self,
        paper_id: str,
        block_id: str,
        field: str,
        value: str,
        user_id: str,
    ) -> BlockResponse:
        """Write one field of one block. Emits BlockFieldUpdated.

        Applies to whichever block holds ``block_id`` now, wherever it sits.
        Concurrent writes to the same field: the last one committed wins.
        """
        await self._require_member(paper_id, user_id)

        async with self._locks.hold((paper_id, block_id)), self._db.transaction():
            row = await self._projector.get_block(paper_id, block_id)
            if row is None:
                raise BlockNotFoundError(block_id)
            if field not in UPDATABLE_FIELDS[row["type"]]:
                raise InvalidFieldError(row["type"], field)

            payload = BlockFieldUpdatedPayload(
                block_id=block_id,
                field=field,
                old_value=row[field],
                new_value=value,
            )
            await self._emit(paper_id, user_id, "BlockFieldUpdated", payload)

            tree = await self.get_tree(paper_id)
            block = BlockIndex.build(tree).lookup(block_id).block
            return BlockResponse(paper_id=paper_id, block=dump_block(block))

    async def insert_block(
        self, paper_id: str, request: InsertBlockRequest, user_id: str,
    ) -> StructuralResponse:
        """Insert a new default block under a parent. Emits BlockInserted.

        A stale ``after_block_id`` appends at the end of the children.
        """
        await self._require_member(paper_id, user_id)
        parent_id = request.parent_block_id

        # A concurrent ancestor delete commits wholly before or after this insert.
        async with self._locks.hold((paper_id, parent_id)), self._db.transaction():
            parent = await self._projector.get_block(paper_id, parent_id)
            if parent is None:
                raise BlockNotFoundError(parent_id)
            self._hierarchy.check(parent["type"], request.block_type)

            positions = await self._projector.get_child_positions(paper_id, parent_id)
            if request.after_block_id is None:
                position = 0
            elif request.after_block_id in positions:
                position = positions[request.after_block_id] + 1
            else:
                position = len(positions)

            block = new_block(request.block_type)
            payload = BlockInsertedPayload(
                parent_block_id=parent_id,
                after_block_id=request.after_block_id,
                position=position,
                block=dump_block(block),
            )
            await self._emit(paper_id, user_id, "BlockInserted", payload)
            return await self._structural_response(paper_id, block.block_id, parent_id)

    async def delete_block(
        self, paper_id: str, block_id: str, user_id: str,
    ) -> StructuralResponse:
        """Delete a block and its subtree. Emits BlockDeleted."""
        await self._require_member(paper_id, user_id)

        row = await self._projector.get_block(paper_id, block_id)
        if row is None:
            raise BlockNotFoundError(block_id)
        parent_id = row["parent_id"]
        if parent_id is None:
            raise CannotDeleteRootError(block_id)

        async with self._locks.hold((paper_id, parent_id)), self._db.transaction():
            # Re-read under the lock: a sibling insert/delete may have moved it.
            row = await self._projector.get_block(paper_id, block_id)
            if row is None:
                raise BlockNotFoundError(block_id)

            deleted_ids = await self._projector.get_subtree_ids(paper_id, block_id)
            payload = BlockDeletedPayload(
                block_id=block_id,
                parent_block_id=parent_id,
                position=row["position"],
                deleted_block_ids=deleted_ids,
            )
            await self._emit(paper_id, user_id, "BlockDeleted", payload)
            return await self._structural_response(paper_id, block_id, parent_id)

    async def locate_block(
        self, paper_id: str, block_id: str, user_id: str,
    ) -> BlockLocationResponse:
        """A block with its current path and breadcrumb chain."""
        await self._require_member(paper_id, user_id)
        tree = await self.get_tree(paper_id)
        return await self._location(paper_id, BlockIndex.build(tree), block_id)

    async def resolve_block_path(
        self, paper_id: str, path: list[int], user_id: str,
    ) -> BlockLocationResponse:
        """The block at a positional path in the current tree."""
        await self._require_member(paper_id, user_id)
        tree = await self.get_tree(paper_id)
        block = resolve_path(tree, path)
        return await self._location(paper_id, BlockIndex.build(tree), block.block_id)

    async def get_edit_history(
        self, paper_id: str, block_id: str, user_id: str,
    ) -> EditHistoryResponse:
        """Field writes to one block from the event log, oldest first.

        History outlives the block: a deleted block still reports its edits.
        """
        await self._require_member(paper_id, user_id)

        events = await self._store.get_events_by_type(paper_id, "BlockFieldUpdated")
        entries = [
            EditHistoryEntry(
                event_id=ev.event_id,
                sequence_num=ev.sequence_num,
                timestamp=ev.timestamp.isoformat(),
                user_id=ev.user_id,
                field=ev.payload["field"],
                old_value=ev.payload.get("old_value"),
                new_value=ev.payload["new_value"],
            )
            for ev in events
            if ev.payload["block_id"] == block_id
        ]
        if not entries and await self._projector.get_block(paper_id, block_id) is None:
            raise BlockNotFoundError(block_id)

        return EditHistoryResponse(paper_id=paper_id, block_id=block_id, entries=entries)

    # -- Collaborators --

    async def add_collaborator(
        self, paper_id: str, collaborator_id: str, user_id: str,
    ) -> CollaboratorsResponse:
        """Grant edit access. Author only; adding a member again is a no-op."""
        paper = await self._require_author(paper_id, user_id)
        collaborators = await self._projector.get_collaborators(paper_id)

        if collaborator_id != paper["author_id"] and collaborator_id not in collaborators:
            payload = CollaboratorAddedPayload(user_id=collaborator_id)
            await self._emit(paper_id, user_id, "CollaboratorAdded", payload)

        return await self._collaborators(paper)

    async def remove_collaborator(
        self, paper_id: str, collaborator_id: str, user_id: str,
    ) -> CollaboratorsResponse:
        """Revoke edit access. Author only."""
        paper = await self._require_author(paper_id, user_id)
        collaborators = await self._projector.get_collaborators(paper_id)
        if collaborator_id not in collaborators:
            raise CollaboratorNotFoundError(collaborator_id)

        payload = CollaboratorRemovedPayload(user_id=collaborator_id)
        await self._emit(paper_id, user_id, "CollaboratorRemoved", payload)
        return await self._collaborators(paper)

    # -- Annotation methods --

    async def add_annotation(
        self,
        paper_id: str,
        block_id: str,
        request: AddAnnotationRequest,
        user_id: str,
    ) -> AnnotationResponse:
        """Attach a comment or chat message to a block. Emits AnnotationAdded."""
        await self._require_member(paper_id, user_id)
        if await self._projector.get_block(paper_id, block_id) is None:
            raise BlockNotFoundError(block_id)

        annotation_id = str(uuid4())
        payload = AnnotationAddedPayload(
            annotation_id=annotation_id,
            block_id=block_id,
            kind=request.kind,
            body=request.body,
        )
        await self._emit(paper_id, user_id, "AnnotationAdded", payload)

        row = await self._db.fetchone(
            "SELECT * FROM annotations WHERE annotation_id = ?",
            (annotation_id,),
        )
        assert row is not None
        return self._annotation_from_row(row)

    async def get_block_annotations(
        self, paper_id: str, block_id: str, user_id: str,
    ) -> list[AnnotationResponse]:
        """All annotations on a block, oldest first."""
        await self._require_member(paper_id, user_id)
        rows = await self._db.fetchall(
            "SELECT * FROM annotations WHERE paper_id = ? AND block_id = ? "
            "ORDER BY created_at, rowid",
            (paper_id, block_id),
        )
        return [self._annotation_from_row(r) for r in rows]

    async def remove_annotation(
        self, paper_id: str, annotation_id: str, user_id: str,
    ) -> None:
        """Remove an annotation. Emits AnnotationRemoved."""
        await self._require_member(paper_id, user_id)
        row = await self._db.fetchone(
            "SELECT * FROM annotations WHERE annotation_id = ? AND paper_id = ?",
            (annotation_id, paper_id),
        )
        if row is None:
            raise AnnotationNotFoundError(annotation_id)

        payload = AnnotationRemovedPayload(annotation_id=annotation_id)
        await self._emit(paper_id, user_id, "AnnotationRemoved", payload)

    # -- Helpers --

    async def _emit(
        self, paper_id: str, user_id: str | None, event_type: str, payload: BaseModel,
    ) -> EventEnvelope:
        """Append one event and project it, committed together."""
        event = EventEnvelope(
            event_id=str(uuid4()),
            paper_id=paper_id,
            timestamp=datetime.now(UTC),
            user_id=user_id,
            event_type=event_type,
            payload=payload.model_dump(),
        )
        async with self._db.transaction():
            await self._store.append(event)
            await self._projector.project([event])
        return event

    async def _require_paper(self, paper_id: str) -> dict:
        paper = await self._projector.get_paper(paper_id)
        if paper is None:
            raise PaperNotFoundError(paper_id)
        return paper

    async def _require_member(self, paper_id: str, user_id: str) -> dict:
        """The paper, if ``user_id`` is its author or a collaborator."""
        paper = await self._require_paper(paper_id)
        if user_id == paper["author_id"]:
            return paper
        if user_id in await self._projector.get_collaborators(paper_id):
            return paper
        raise PaperAccessDeniedError(paper_id, user_id)

    async def _require_author(self, paper_id: str, user_id: str) -> dict:
        paper = await self._require_member(paper_id, user_id)
        if user_id != paper["author_id"]:
            raise NotPaperAuthorError(paper_id, user_id)
        return paper

    async def _assemble_tree(self, paper: dict) -> PaperBlock:
        """Rebuild the nested document from block rows.

        Rows not reachable from the root are skipped and logged.
        """
        rows = await self._projector.get_blocks(paper["paper_id"])
        children: dict[str | None, list[dict]] = defaultdict(list)
        root_row = None
        for row in rows:
            children[row["parent_id"]].append(row)
            if row["block_id"] == paper["root_block_id"]:
                root_row = row
        if root_row is None:
            raise PaperNotFoundError(paper["paper_id"])

        def build(row: dict) -> dict:
            doc = {
                "block-id": row["block_id"],
                "type": row["type"],
                "summary": row["summary"],
                "intent": row["intent"],
            }
            if row["type"] in TITLED_TYPES:
                doc["title"] = row["title"] or ""
            if row["type"] == "sentence":
                doc["content"] = row["content"] or ""
            else:
                doc["content"] = [build(c) for c in children[row["block_id"]]]
            return doc

        document = build(root_row)
        document["author_id"] = paper["author_id"]
        document["collaborator_ids"] = await self._projector.get_collaborators(
            paper["paper_id"]
        )
        root = load_paper(document)

        reached = sum(1 for _ in walk(root))
        if reached != len(rows):
            logger.warning(
                "Paper %s: skipped %d unreachable block rows",
                paper["paper_id"], len(rows) - reached,
            )
        return root

    async def _paper_detail(self, paper: dict) -> PaperDetailResponse:
        root = await self._assemble_tree(paper)
        return PaperDetailResponse(
            paper_id=paper["paper_id"],
            author_id=paper["author_id"],
            collaborator_ids=root.collaborator_ids,
            created_at=paper["created_at"],
            updated_at=paper["updated_at"],
            root=dump_block(root),
        )

    async def _structural_response(
        self, paper_id: str, block_id: str, parent_id: str,
    ) -> StructuralResponse:
        tree = await self.get_tree(paper_id)
        parent = BlockIndex.build(tree).lookup(parent_id).block
        return StructuralResponse(
            paper_id=paper_id, block_id=block_id, parent=dump_block(parent),
        )

    async def _location(
        self, paper_id: str, index: BlockIndex, block_id: str,
    ) -> BlockLocationResponse:
        entry = index.lookup(block_id)
        row = await self._db.fetchone(
            "SELECT COUNT(*) AS cnt FROM annotations WHERE paper_id = ? AND block_id = ?",
            (paper_id, block_id),
        )
        return BlockLocationResponse(
            paper_id=paper_id,
            block=dump_block(entry.block),
            path=list(entry.path),
            parent_block_id=entry.parent_id,
            breadcrumbs=breadcrumbs(index, block_id),
            annotation_count=row["cnt"] if row else 0,
        )

    async def _collaborators(self, paper: dict) -> CollaboratorsResponse:
        return CollaboratorsResponse(
            paper_id=paper["paper_id"],
            author_id=paper["author_id"],
            collaborator_ids=await self._projector.get_collaborators(paper["paper_id"]),
        )

    @staticmethod
    def _annotation_from_row(row) -> AnnotationResponse:
        return AnnotationResponse(
            annotation_id=row["annotation_id"],
            paper_id=row["paper_id"],
            block_id=row["block_id"],
            kind=row["kind"],
            body=row["body"],
            user_id=row["user_id"],
            created_at=row["created_at"],
        )


class PaperNotFoundError(Exception):
    def __init__(self, paper_id: str) -> None:
        self.paper_id = paper_id
        super().__init__(f"Paper not found: {paper_id}")


class PaperAccessDeniedError(Exception):
    def __init__(self, paper_id: str, user_id: str) -> None:
        self.paper_id = paper_id
        self.user_id = user_id
        super().__init__(f"User {user_id} cannot access paper {paper_id}")


class NotPaperAuthorError(Exception):
    def __init__(self, paper_id: str, user_id: str) -> None:
        self.paper_id = paper_id
        self.user_id = user_id
        super().__init__(f"Only the author can do this on paper {paper_id}")


class CollaboratorNotFoundError(Exception):
    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        super().__init__(f"Collaborator not found: {user_id}")


class AnnotationNotFoundError(Exception):
    def __init__(self, annotation_id: str) -> None:
        self.annotation_id = annotation_id
        super().__init__(f"Annotation not found: {annotation_id}")
