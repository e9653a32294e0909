"""Contract tests for the StateProjector."""

from tests.fixtures import (
    make_block_deleted_envelope,
    make_block_field_updated_envelope,
    make_block_inserted_envelope,
    make_paper_created_envelope,
    make_paper_deleted_envelope,
    two_section_paper,
)


async def _project(event_store, projector, *events):
    for event in events:
        await event_store.append(event)
    await projector.project(list(events))


class TestProjectorCanary:
    async def test_projection_roundtrip_paper(self, event_store, projector):
        """PaperCreated in, paper row and one row per block out."""
        event = make_paper_created_envelope(author_id="alice")
        await _project(event_store, projector, event)

        paper = await projector.get_paper(event.paper_id)
        assert paper["author_id"] == "alice"
        assert paper["root_block_id"] == "root"

        blocks = {b["block_id"]: b for b in await projector.get_blocks(event.paper_id)}
        assert set(blocks) == {"root", "sec1", "par1", "sen1"}
        assert blocks["root"]["parent_id"] is None
        assert blocks["root"]["title"] == "Scenario"
        assert blocks["sen1"]["parent_id"] == "par1"
        assert blocks["sen1"]["content"] == "Hello"
        assert blocks["par1"]["content"] is None

    async def test_unknown_paper_returns_none(self, projector):
        assert await projector.get_paper("nope") is None


class TestBlockInserted:
    async def test_insert_shifts_following_siblings(self, event_store, projector):
        created = make_paper_created_envelope()
        inserted = make_block_inserted_envelope(
            created.paper_id,
            "par1",
            position=0,
            block={"block-id": "new", "type": "sentence", "content": ""},
        )
        await _project(event_store, projector, created, inserted)

        positions = await projector.get_child_positions(created.paper_id, "par1")
        assert positions == {"new": 0, "sen1": 1}

    async def test_insert_projects_whole_subtree(self, event_store, projector):
        created = make_paper_created_envelope()
        inserted = make_block_inserted_envelope(
            created.paper_id,
            "sec1",
            position=1,
            block={
                "block-id": "par2",
                "type": "paragraph",
                "content": [{"block-id": "sen2", "type": "sentence", "content": ""}],
            },
        )
        await _project(event_store, projector, created, inserted)

        sen2 = await projector.get_block(created.paper_id, "sen2")
        assert sen2["parent_id"] == "par2"
        assert sen2["position"] == 0


class TestBlockFieldUpdated:
    async def test_update_single_column(self, event_store, projector):
        created = make_paper_created_envelope()
        edited = make_block_field_updated_envelope(
            created.paper_id, "sen1", "content", "Goodbye", user_id="bob",
        )
        await _project(event_store, projector, created, edited)

        row = await projector.get_block(created.paper_id, "sen1")
        assert row["content"] == "Goodbye"
        assert row["updated_by"] == "bob"

    async def test_unknown_field_skipped(self, event_store, projector, caplog):
        created = make_paper_created_envelope()
        edited = make_block_field_updated_envelope(created.paper_id, "sen1", "type", "section")
        await _project(event_store, projector, created, edited)

        row = await projector.get_block(created.paper_id, "sen1")
        assert row["type"] == "sentence"
        assert "unknown field" in caplog.text


class TestBlockDeleted:
    async def test_delete_removes_subtree_and_compacts(self, event_store, projector):
        created = make_paper_created_envelope(root=two_section_paper())
        await _project(event_store, projector, created)
        subtree = await projector.get_subtree_ids(created.paper_id, "sec1")
        assert set(subtree) == {"sec1", "par1", "sen1a", "sen1b"}

        deleted = make_block_deleted_envelope(
            created.paper_id, "sec1", "root", position=0, deleted_block_ids=subtree,
        )
        await _project(event_store, projector, deleted)

        ids = {b["block_id"] for b in await projector.get_blocks(created.paper_id)}
        assert ids == {"root", "sec2", "par2", "sen2a", "sen2b"}
        assert await projector.get_child_positions(created.paper_id, "root") == {"sec2": 0}


class TestPaperLifecycle:
    async def test_deleted_paper_hidden(self, event_store, projector):
        created = make_paper_created_envelope()
        deleted = make_paper_deleted_envelope(created.paper_id)
        await _project(event_store, projector, created, deleted)

        assert await projector.get_paper(created.paper_id) is None
