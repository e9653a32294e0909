"""Request and response schemas for paper and block endpoints.

Blocks travel in their document form (``"block-id"`` keys), the same shape
``paer.blocks.nodes.load_block`` parses.
"""

from typing import Any, Literal

from pydantic import BaseModel, Field

from paer.blocks.nodes import BlockType, ChildBlock
from paer.blocks.paths import Breadcrumb

# -- Requests --


class CreatePaperRequest(BaseModel):
    """New paper. ``content`` imports an existing document body; blocks
    without a ``block-id`` get a fresh one."""

    title: str = "Untitled Paper"
    summary: str = ""
    intent: str = ""
    content: list[ChildBlock] = Field(default_factory=list)


class InsertBlockRequest(BaseModel):
    parent_block_id: str
    after_block_id: str | None = None  # None inserts first
    block_type: BlockType


class UpdateBlockFieldRequest(BaseModel):
    field: Literal["title", "summary", "intent", "content"]
    value: str


class AddAnnotationRequest(BaseModel):
    kind: Literal["comment", "chat"] = "comment"
    body: str


# -- Responses --


class PaperSummary(BaseModel):
    paper_id: str
    title: str
    author_id: str
    created_at: str
    updated_at: str


class PaperDetailResponse(BaseModel):
    paper_id: str
    author_id: str
    collaborator_ids: list[str] = Field(default_factory=list)
    created_at: str
    updated_at: str
    root: dict[str, Any]


class BlockResponse(BaseModel):
    paper_id: str
    block: dict[str, Any]


class StructuralResponse(BaseModel):
    """Result of an insert or delete: the affected block id and the
    authoritative copy of the parent whose children changed."""

    paper_id: str
    block_id: str
    parent: dict[str, Any]


class BlockLocationResponse(BaseModel):
    paper_id: str
    block: dict[str, Any]
    path: list[int]
    parent_block_id: str | None = None
    breadcrumbs: list[Breadcrumb]
    annotation_count: int = 0


class EditHistoryEntry(BaseModel):
    event_id: str
    sequence_num: int
    timestamp: str
    user_id: str | None = None
    field: str
    old_value: str | None = None
    new_value: str


class EditHistoryResponse(BaseModel):
    paper_id: str
    block_id: str
    entries: list[EditHistoryEntry]


class CollaboratorsResponse(BaseModel):
    paper_id: str
    author_id: str
    collaborator_ids: list[str]


class AnnotationResponse(BaseModel):
    annotation_id: str
    paper_id: str
    block_id: str
    kind: str
    body: str
    user_id: str | None = None
    created_at: str
