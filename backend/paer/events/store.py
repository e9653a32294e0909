"""The paper event log: every change to a paper, in commit order."""

import json

from paer.db.connection import Database
from paer.models import EventEnvelope


class EventStore:
    """Appends paper events and reads them back by paper, type, or sequence.

    The log is also the edit history: the order events are committed here is
    the authoritative write order, so the last committed field write wins.
    Nothing is ever updated or removed.
    """

    def __init__(self, db: Database) -> None:
        self._db = db

    async def append(self, envelope: EventEnvelope) -> int:
        """Record one event; returns its sequence_num.

        Joins the caller's transaction when there is one, so the event and
        its projection commit together. A reused event_id is an IntegrityError.
        """
        cursor = await self._db.execute(
            """
            INSERT INTO events
                (event_id, paper_id, timestamp, user_id, event_type, payload)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                envelope.event_id,
                envelope.paper_id,
                envelope.timestamp.isoformat(),
                envelope.user_id,
                envelope.event_type,
                json.dumps(envelope.payload),
            ),
        )
        assert cursor.lastrowid is not None
        return cursor.lastrowid

    async def get_events(self, paper_id: str) -> list[EventEnvelope]:
        """A paper's whole history, oldest first."""
        rows = await self._db.fetchall(
            "SELECT * FROM events WHERE paper_id = ? ORDER BY sequence_num",
            (paper_id,),
        )
        return [self._row_to_envelope(row) for row in rows]

    async def get_events_since(self, sequence_num: int) -> list[EventEnvelope]:
        """Events of every paper committed after ``sequence_num``."""
        rows = await self._db.fetchall(
            "SELECT * FROM events WHERE sequence_num > ? ORDER BY sequence_num",
            (sequence_num,),
        )
        return [self._row_to_envelope(row) for row in rows]

    async def get_events_by_type(
        self, paper_id: str, event_type: str,
    ) -> list[EventEnvelope]:
        """One paper's events of a single type (e.g. field writes), oldest first."""
        rows = await self._db.fetchall(
            "SELECT * FROM events WHERE paper_id = ? AND event_type = ? "
            "ORDER BY sequence_num",
            (paper_id, event_type),
        )
        return [self._row_to_envelope(row) for row in rows]

    @staticmethod
    def _row_to_envelope(row) -> EventEnvelope:
        return EventEnvelope(
            event_id=row["event_id"],
            paper_id=row["paper_id"],
            timestamp=row["timestamp"],
            user_id=row["user_id"],
            event_type=row["event_type"],
            payload=json.loads(row["payload"]),
            sequence_num=row["sequence_num"],
        )
