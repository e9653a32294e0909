"""Contract tests for the EventStore.

test_event_roundtrip is THE CANARY: if it ever fails, something
fundamental is broken.
"""

import sqlite3

import pytest

from tests.fixtures import (
    make_block_field_updated_envelope,
    make_paper_created_envelope,
)


class TestEventStoreCanary:
    async def test_event_roundtrip(self, event_store):
        """Append a PaperCreated event, get_events returns it with correct fields."""
        event = make_paper_created_envelope(author_id="alice")

        await event_store.append(event)
        events = await event_store.get_events(event.paper_id)

        assert len(events) == 1
        assert events[0].event_type == "PaperCreated"
        assert events[0].payload["author_id"] == "alice"
        assert events[0].payload["root"]["block-id"] == "root"
        assert events[0].event_id == event.event_id
        assert events[0].paper_id == event.paper_id


class TestEventStoreAppend:
    async def test_append_assigns_increasing_sequence_nums(self, event_store):
        created = make_paper_created_envelope()
        edited = make_block_field_updated_envelope(created.paper_id, "sen1")

        first = await event_store.append(created)
        second = await event_store.append(edited)

        assert first > 0
        assert second > first

    async def test_duplicate_event_id_rejected(self, event_store):
        event = make_paper_created_envelope()
        await event_store.append(event)
        with pytest.raises(sqlite3.IntegrityError):
            await event_store.append(event)

    async def test_typed_payload(self, event_store):
        event = make_block_field_updated_envelope("p1", "sen1", new_value="Hi")
        await event_store.append(event)
        [stored] = await event_store.get_events("p1")
        payload = stored.typed_payload()
        assert payload.block_id == "sen1"
        assert payload.new_value == "Hi"


class TestEventStoreQueries:
    async def test_events_scoped_to_paper(self, event_store):
        a = make_paper_created_envelope()
        b = make_paper_created_envelope()
        await event_store.append(a)
        await event_store.append(b)

        events = await event_store.get_events(a.paper_id)
        assert [e.event_id for e in events] == [a.event_id]

    async def test_events_since(self, event_store):
        created = make_paper_created_envelope()
        seq = await event_store.append(created)
        edit = make_block_field_updated_envelope(created.paper_id, "sen1")
        await event_store.append(edit)

        since = await event_store.get_events_since(seq)
        assert [e.event_id for e in since] == [edit.event_id]

    async def test_events_by_type(self, event_store):
        created = make_paper_created_envelope()
        await event_store.append(created)
        for value in ("One", "Two"):
            await event_store.append(
                make_block_field_updated_envelope(created.paper_id, "sen1", new_value=value)
            )

        edits = await event_store.get_events_by_type(created.paper_id, "BlockFieldUpdated")
        assert [e.payload["new_value"] for e in edits] == ["One", "Two"]
