"""Client replica: optimistic edits reconciled against the authoritative store."""

from paer.replica.guard import ConsistencyGuard, provisional_block_id
from paer.replica.persistence import (
    HttpPersistence,
    PersistenceRejectedError,
    PersistenceService,
    StructuralResult,
)

__all__ = [
    "ConsistencyGuard",
    "HttpPersistence",
    "PersistenceRejectedError",
    "PersistenceService",
    "StructuralResult",
    "provisional_block_id",
]
