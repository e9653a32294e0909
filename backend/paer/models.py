"""Event types for Paer.

Every change to a paper is an event appended to the log, then projected into
the papers/blocks tables. Event payloads carry the type-specific content; the
EventEnvelope wraps them with metadata (who, when, which paper).
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel

# ---------------------------------------------------------------------------
# Event payloads, one per event type
# ---------------------------------------------------------------------------


class PaperCreatedPayload(BaseModel):
    author_id: str
    root: dict[str, Any]  # document form of the paper block, subtree included


class PaperDeletedPayload(BaseModel):
    reason: str | None = None


class BlockInsertedPayload(BaseModel):
    parent_block_id: str
    after_block_id: str | None = None  # as requested; may have been stale
    position: int  # resolved index in the parent's children
    block: dict[str, Any]  # document form, default children included


class BlockFieldUpdatedPayload(BaseModel):
    block_id: str
    field: str  # title | summary | intent | content
    old_value: str | None = None
    new_value: str


class BlockDeletedPayload(BaseModel):
    block_id: str
    parent_block_id: str
    position: int
    deleted_block_ids: list[str]  # the block and all of its descendants


class CollaboratorAddedPayload(BaseModel):
    user_id: str


class CollaboratorRemovedPayload(BaseModel):
    user_id: str


class AnnotationAddedPayload(BaseModel):
    annotation_id: str
    block_id: str
    kind: Literal["comment", "chat"]
    body: str


class AnnotationRemovedPayload(BaseModel):
    annotation_id: str
    reason: str | None = None


# ---------------------------------------------------------------------------
# Event type registry
# ---------------------------------------------------------------------------

EVENT_TYPES: dict[str, type[BaseModel]] = {
    "PaperCreated": PaperCreatedPayload,
    "PaperDeleted": PaperDeletedPayload,
    "BlockInserted": BlockInsertedPayload,
    "BlockFieldUpdated": BlockFieldUpdatedPayload,
    "BlockDeleted": BlockDeletedPayload,
    "CollaboratorAdded": CollaboratorAddedPayload,
    "CollaboratorRemoved": CollaboratorRemovedPayload,
    "AnnotationAdded": AnnotationAddedPayload,
    "AnnotationRemoved": AnnotationRemovedPayload,
}


# ---------------------------------------------------------------------------
# Event envelope
# ---------------------------------------------------------------------------


class EventEnvelope(BaseModel):
    """Wraps every event with metadata. Stored in the events table."""

    event_id: str
    paper_id: str
    timestamp: datetime
    user_id: str | None = None
    event_type: str
    payload: dict[str, Any]
    sequence_num: int | None = None  # assigned by DB on insert

    def typed_payload(self) -> BaseModel:
        """Deserialize payload into the correct Pydantic model based on event_type."""
        payload_cls = EVENT_TYPES[self.event_type]
        return payload_cls.model_validate(self.payload)
