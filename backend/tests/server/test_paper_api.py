"""Integration tests for paper lifecycle endpoints."""

from paer.blocks.hierarchy import load_hierarchy
from paer.main import app
from paer.papers.router import get_paper_service
from paer.papers.service import PaperService
from tests.fixtures import child_ids, create_scenario_paper, create_test_paper, scenario_content


class TestHealth:
    async def test_health(self, client):
        resp = await client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"


class TestCreatePaper:
    async def test_create_empty_paper(self, client):
        paper = await create_test_paper(client, title="Draft")
        root = paper["root"]
        assert root["type"] == "paper"
        assert root["title"] == "Draft"
        assert root["content"] == []
        assert paper["author_id"] == "alice"
        assert paper["collaborator_ids"] == []

    async def test_create_from_document(self, client):
        """Supplied ids and content survive the import unchanged."""
        paper = await create_test_paper(client, content=scenario_content())
        section = paper["root"]["content"][0]
        assert section["block-id"] == "sec1"
        assert section["title"] == "Introduction"
        assert child_ids(section) == ["par1"]
        assert section["content"][0]["content"][0]["content"] == "Hello"

    async def test_blocks_without_ids_get_fresh_ones(self, client):
        paper = await create_test_paper(client, content=[
            {"type": "paragraph", "content": [{"type": "sentence", "content": "A"}]},
        ])
        paragraph = paper["root"]["content"][0]
        assert paragraph["block-id"]
        assert paragraph["content"][0]["block-id"] != paragraph["block-id"]

    async def test_duplicate_ids_rejected(self, client):
        resp = await client.post("/api/papers", json={"content": [
            {"block-id": "x", "type": "section"},
            {"block-id": "x", "type": "section"},
        ]})
        assert resp.status_code == 400
        assert resp.json()["detail"]["code"] == "duplicate_block_id"

    async def test_sentence_under_paper_rejected(self, client):
        resp = await client.post("/api/papers", json={"content": [
            {"type": "sentence", "content": "Loose"},
        ]})
        assert resp.status_code == 400
        detail = resp.json()["detail"]
        assert detail["code"] == "invalid_child_type"
        assert detail["parent_type"] == "paper"
        assert detail["child_type"] == "sentence"

    async def test_unknown_block_type_is_422(self, client):
        resp = await client.post("/api/papers", json={"content": [{"type": "chapter"}]})
        assert resp.status_code == 422

    async def test_strict_rules_reject_paragraph_under_paper(self, client, db):
        app.dependency_overrides[get_paper_service] = lambda: PaperService(
            db, hierarchy=load_hierarchy("strict"),
        )
        resp = await client.post("/api/papers", json={"content": [{"type": "paragraph"}]})
        assert resp.status_code == 400


class TestReadPapers:
    async def test_get_paper(self, client):
        created = await create_scenario_paper(client)
        resp = await client.get(f"/api/papers/{created['paper_id']}")
        assert resp.status_code == 200
        assert resp.json()["root"]["block-id"] == created["root_id"]

    async def test_get_unknown_paper_404(self, client):
        resp = await client.get("/api/papers/nope")
        assert resp.status_code == 404
        assert resp.json()["detail"]["code"] == "paper_not_found"
        assert resp.json()["detail"]["paper_id"] == "nope"

    async def test_list_shows_own_papers_only(self, client):
        await create_test_paper(client, title="Mine")
        resp = await client.post(
            "/api/papers", json={"title": "Theirs"}, headers={"X-User-Id": "bob"},
        )
        assert resp.status_code == 201

        titles = [p["title"] for p in (await client.get("/api/papers")).json()]
        assert titles == ["Mine"]

    async def test_missing_user_header_401(self, client):
        resp = await client.get("/api/papers", headers={"X-User-Id": ""})
        assert resp.status_code == 401

    async def test_non_member_403(self, client):
        created = await create_scenario_paper(client)
        resp = await client.get(
            f"/api/papers/{created['paper_id']}", headers={"X-User-Id": "mallory"},
        )
        assert resp.status_code == 403
        assert resp.json()["detail"]["code"] == "access_denied"


class TestDeletePaper:
    async def test_delete_then_404(self, client):
        created = await create_scenario_paper(client)
        paper_id = created["paper_id"]

        resp = await client.delete(f"/api/papers/{paper_id}")
        assert resp.status_code == 204

        assert (await client.get(f"/api/papers/{paper_id}")).status_code == 404
        assert (await client.get("/api/papers")).json() == []

    async def test_collaborator_cannot_delete(self, client):
        created = await create_scenario_paper(client)
        paper_id = created["paper_id"]
        await client.post(f"/api/papers/{paper_id}/collaborators/bob")

        resp = await client.delete(
            f"/api/papers/{paper_id}", headers={"X-User-Id": "bob"},
        )
        assert resp.status_code == 403
        assert resp.json()["detail"]["code"] == "not_author"
