"""
Tests for the FastAPI backend using an in-memory mapping store.
"""

import pytest
from fastapi.testclient import TestClient

from backend.main import app, get_resolver
from orgnet.analysis.identity import IdentityResolver
from orgnet.analysis.mapping_store import HttpMappingStore, InMemoryMappingStore, OrganizerMapping
from orgnet.errors import StoreError


@pytest.fixture
def client(resolver):
    app.dependency_overrides[get_resolver] = lambda: resolver
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_root(client):
    body = client.get("/").json()
    assert body["endpoints"]["network"] == "/api/network"


class TestOrganizerMapping:

    def test_list(self, client):
        rows = client.get("/api/organizer-mapping").json()
        assert [r["primary_id"] for r in rows] == ["1"]

    def test_upsert_accepts_dashboard_columns(self, client, resolver):
        resp = client.post("/api/organizer-mapping", json={
            "primary_vanid": "2", "preferred_name": "Bob Jones", "alternate_vanids": ["2002"],
        })
        assert resp.status_code == 200
        assert resp.json()["mapping"]["alternate_ids"] == ["2002"]
        assert resolver.canonical_id("2002") == "2"

    def test_upsert_requires_preferred_name(self, client):
        resp = client.post("/api/organizer-mapping", json={"primary_id": "2"})
        assert resp.status_code == 400
        assert resp.json()["success"] is False

    def test_delete(self, client, resolver):
        assert client.delete("/api/organizer-mapping/1").status_code == 200
        assert resolver.get("1") is None
        assert client.delete("/api/organizer-mapping/1").status_code == 404

    def test_merge(self, client, resolver):
        resolver.upsert(OrganizerMapping(primary_id="7", preferred_name="Alice S."))
        resp = client.post("/api/organizer-mapping/merge", json={"primary_id": "1", "merge_id": "7"})
        assert resp.status_code == 200
        assert resp.json()["mapping"]["merged_from_ids"] == ["7"]
        assert resolver.get("7") is None

    def test_merge_unknown(self, client):
        resp = client.post("/api/organizer-mapping/merge", json={"primary_id": "1", "merge_id": "nope"})
        assert resp.status_code == 404

    def test_variant(self, client):
        resp = client.post("/api/organizer-mapping/variant", json={"primary_id": "1", "token": "Allie"})
        assert resp.json()["mapping"]["name_variants"] == ["Ali Smith", "Allie"]

    def test_pending(self, client, resolver):
        resp = client.post("/api/organizer-mapping/pending", json={"name": "Rosa Park", "chapter": "Durham"})
        new_id = resp.json()["primary_id"]
        assert new_id.startswith("pending_")
        assert resolver.get(new_id).sync_status == "pending_sync"

    def test_store_failure_is_bad_gateway(self):
        class FailingStore(InMemoryMappingStore):
            def upsert(self, mapping):
                raise StoreError("backend unavailable")

        app.dependency_overrides[get_resolver] = lambda: IdentityResolver(FailingStore())
        try:
            resp = TestClient(app).post("/api/organizer-mapping/pending", json={"name": "Rosa Park"})
        finally:
            app.dependency_overrides.clear()
        assert resp.status_code == 502


class TestHttpStoreRoundTrip:
    """An IdentityResolver backed by HttpMappingStore talking to this app."""

    @pytest.fixture
    def remote(self, client):
        return IdentityResolver(HttpMappingStore("http://testserver/api", session=client))

    def test_merge_survives_refresh(self, remote, resolver):
        remote.upsert(OrganizerMapping(primary_id="2", preferred_name="Alice S.", phone="919-555-0100", turf="Northgate"))
        merged = remote.merge("1", "2")
        remote.refresh()
        stored = remote.get("1")
        assert stored.merged_from_ids == ["2"]
        assert stored.merge_date == merged.merge_date
        assert stored.phone == "919-555-0100"
        assert stored.turf == "Northgate"
        assert stored.alternate_ids == ["1001", "2"]
        assert remote.get("2") is None
        assert resolver.get("1").merged_from_ids == ["2"]

    def test_pending_person_survives_refresh(self, remote):
        new_id = remote.create_pending("Rosa Park", person_type="volunteer", chapter="Durham", phone="919-555-0199")
        remote.refresh()
        stored = remote.get(new_id)
        assert (stored.person_type, stored.in_van, stored.sync_status) == ("volunteer", False, "pending_sync")
        assert (stored.chapter, stored.phone) == ("Durham", "919-555-0199")


class TestNetwork:

    def test_build_without_layout(self, client, teams, meetings):
        resp = client.post("/api/network", json={"teams": teams, "meetings": meetings, "layout": False})
        body = resp.json()
        assert resp.status_code == 200
        assert body["view"] == "connections"
        assert len(body["nodes"]) == 10
        assert len(body["edges"]) == 12
        assert body["ticks"] == 0

    def test_build_with_bounded_layout(self, client, teams):
        resp = client.post("/api/network", json={
            "view": "team-members", "teams": teams, "max_ticks": 5, "seed": 1,
        })
        body = resp.json()
        assert body["ticks"] == 5
        assert len(body["team_centers"]) == 2

    def test_loe_filter(self, client, teams, meetings):
        resp = client.post("/api/network", json={
            "view": "by-loe", "teams": teams, "meetings": meetings, "loe_levels": ["Supporter"], "layout": False,
        })
        assert [n["id"] for n in resp.json()["nodes"]] == ["101"]

    def test_unknown_loe_level(self, client, teams):
        resp = client.post("/api/network", json={"view": "by-loe", "teams": teams, "loe_levels": ["vip"]})
        assert resp.status_code == 400

    def test_unknown_view(self, client):
        assert client.post("/api/network", json={"view": "org-chart"}).status_code == 400

    def test_render_png(self, client, teams, meetings):
        resp = client.post("/api/network/render", json={
            "teams": teams, "meetings": meetings, "width": 320, "height": 240, "max_ticks": 10,
            "search_text": "alice", "seed": 3,
        })
        assert resp.status_code == 200
        assert resp.headers["content-type"] == "image/png"
        assert resp.content.startswith(b"\x89PNG")

    def test_render_empty_graph(self, client):
        assert client.post("/api/network/render", json={"layout": False}).status_code == 422
