"""
tests/test_api_routes.py -- Integration tests for lot, item, checklist, user and stats routes.

These tests exercise the full stack: FastAPI routing -> require() dependency
(authenticate, then allow-list) -> inventory service -> InventoryStore /
UserStore -> response model serialization.

Coverage:
  - 401 (no / unknown token) before 403 (role not allowed) before any store access
  - Error envelope shape {"ok": false, "error": {...}}
  - Lot visibility: all-cancelled lot hidden, empty lot shown
  - Lot items: more rows than the store cap are all returned; viewer redaction
  - Profile items: self or staff only
  - Item create validation and patch semantics
  - Checklist: staff only, single and bulk status updates, summary buckets
  - Users: list with masked passwords, create / duplicate / update / delete
  - Credential migration: 403 for manager, 501 without a provider
  - Stats

Fixtures used (from conftest.py):
  - api_client: (client, tokens) -- tokens maps ana/max/bob/alice/guest to a
    session token. The store cap and page size are both 5.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

# ---------------------------------------------------------------------------
# Module fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def catalog(api_client: tuple[TestClient, dict[str, str]]) -> dict[str, int]:
    """Create three lots through the API and return their ids.

    hidden: two items, both cancelled
    empty:  no items
    big:    seven items (more than the store cap of 5): bob x3, alice x3, carol x1
    """
    client, tokens = api_client
    headers = {"Authorization": f"Bearer {tokens['ana']}"}

    ids = {}
    for key, name in (("hidden", "Lot 101"), ("empty", "Lot 102"), ("big", "Lot 103")):
        resp = client.post("/api/v1/lots", json={"lot_name": name}, headers=headers)
        assert resp.status_code == 201, resp.text
        ids[key] = resp.json()["id"]

    for owner in ("bob", "alice"):
        resp = client.post(
            "/api/v1/items",
            json={"lot_id": ids["hidden"], "username": owner, "picture_url": "https://img/h.jpg", "price": 5},
            headers=headers,
        )
        assert resp.status_code == 201, resp.text
        patch = client.patch(f"/api/v1/items/{resp.json()['id']}", json={"cancelled": True}, headers=headers)
        assert patch.status_code == 200, patch.text

    for n, owner in enumerate(["bob", "alice", "bob", "alice", "carol", "bob", "alice"], start=1):
        resp = client.post(
            "/api/v1/items",
            json={
                "lot_id": ids["big"],
                "username": owner,
                "picture_url": f"https://img/{n}.jpg",
                "price": 10 * n,
                "createIfMissing": True,
            },
            headers=headers,
        )
        assert resp.status_code == 201, resp.text
    return ids


# ---------------------------------------------------------------------------
# Auth ordering
# ---------------------------------------------------------------------------


class TestAuthFailures:
    """Authentication is checked first, then the allow-list, then everything else."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("get", "/api/v1/lots"),
            ("get", "/api/v1/lot-items?lot_id=1"),
            ("get", "/api/v1/auth/me"),
            ("get", "/api/v1/admin/checklist-summary"),
            ("post", "/api/v1/admin/auth-migrate"),
        ],
    )
    def test_no_token_is_401(self, api_client, method: str, path: str) -> None:
        client, _tokens = api_client
        resp = getattr(client, method)(path)
        assert resp.status_code == 401, f"Expected 401, got {resp.status_code}"
        body = resp.json()
        assert body["ok"] is False
        assert body["error"]["code"] == "missing_token"
        assert resp.headers.get("www-authenticate") == "Bearer"

    def test_unknown_token_is_401(self, api_client) -> None:
        client, _tokens = api_client
        resp = client.get("/api/v1/lots", headers={"Authorization": "Bearer not-a-token"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unknown_session"

    def test_401_before_body_validation(self, api_client) -> None:
        """An invalid body from an unauthenticated caller is still a 401."""
        client, _tokens = api_client
        resp = client.post("/api/v1/lots", json={})
        assert resp.status_code == 401

    def test_403_before_not_found(self, api_client) -> None:
        """A viewer patching a lot that does not exist learns nothing about it."""
        client, tokens = api_client
        resp = client.patch(
            "/api/v1/lots/999999",
            json={"lot_name": "x"},
            headers={"Authorization": f"Bearer {tokens['bob']}"},
        )
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "forbidden"

    @pytest.mark.parametrize(
        "method,path",
        [
            ("get", "/api/v1/admin/checklist-items?lot_id=1"),
            ("get", "/api/v1/admin/checklist-summary"),
            ("get", "/api/v1/admin/users"),
            ("get", "/api/v1/admin/stats"),
            ("get", "/api/v1/items/1"),
            ("delete", "/api/v1/items/1"),
            ("delete", "/api/v1/lots/1"),
        ],
    )
    def test_viewer_forbidden_on_staff_routes(self, api_client, method: str, path: str) -> None:
        client, tokens = api_client
        resp = getattr(client, method)(path, headers={"Authorization": f"Bearer {tokens['alice']}"})
        assert resp.status_code == 403, f"{method.upper()} {path}: expected 403, got {resp.status_code}"

    def test_unknown_route_uses_envelope(self, api_client) -> None:
        client, _tokens = api_client
        resp = client.get("/api/v1/no-such-route")
        assert resp.status_code == 404
        assert resp.json()["ok"] is False


# ---------------------------------------------------------------------------
# Lots
# ---------------------------------------------------------------------------


class TestLots:
    def test_visibility_for_viewer(self, api_client, catalog) -> None:
        """The all-cancelled lot is hidden; the empty lot is shown."""
        client, tokens = api_client
        resp = client.get("/api/v1/lots", headers={"Authorization": f"Bearer {tokens['bob']}"})
        assert resp.status_code == 200, resp.text
        ids = [lot["id"] for lot in resp.json()["lots"]]
        assert catalog["hidden"] not in ids
        assert catalog["empty"] in ids
        assert catalog["big"] in ids

    def test_newest_first(self, api_client, catalog) -> None:
        client, tokens = api_client
        lots = client.get("/api/v1/lots", headers={"Authorization": f"Bearer {tokens['ana']}"}).json()["lots"]
        ids = [lot["id"] for lot in lots]
        assert ids.index(catalog["big"]) < ids.index(catalog["empty"])

    def test_guest_can_list(self, api_client, catalog) -> None:
        client, tokens = api_client
        resp = client.get("/api/v1/lots", headers={"Authorization": f"Bearer {tokens['guest']}"})
        assert resp.status_code == 200

    def test_viewer_cannot_create(self, api_client) -> None:
        client, tokens = api_client
        resp = client.post("/api/v1/lots", json={"lot_name": "x"}, headers={"Authorization": f"Bearer {tokens['bob']}"})
        assert resp.status_code == 403

    def test_update_and_delete(self, api_client) -> None:
        client, tokens = api_client
        headers = {"Authorization": f"Bearer {tokens['max']}"}
        lot_id = client.post("/api/v1/lots", json={"lot_name": "Lot 900"}, headers=headers).json()["id"]

        resp = client.patch(f"/api/v1/lots/{lot_id}", json={"lot_name": "Lot 901", "locked": True}, headers=headers)
        assert resp.status_code == 200, resp.text
        assert resp.json()["lot"]["lot_name"] == "Lot 901"
        assert resp.json()["lot"]["locked"] is True

        assert client.delete(f"/api/v1/lots/{lot_id}", headers=headers).status_code == 200
        assert client.delete(f"/api/v1/lots/{lot_id}", headers=headers).status_code == 404

    def test_empty_patch_rejected(self, api_client, catalog) -> None:
        client, tokens = api_client
        resp = client.patch(
            f"/api/v1/lots/{catalog['empty']}", json={}, headers={"Authorization": f"Bearer {tokens['ana']}"}
        )
        assert resp.status_code == 422


class TestLotItems:
    def test_all_rows_past_the_cap(self, api_client, catalog) -> None:
        """Seven items behind a 5-row store cap: the route pages and returns all seven."""
        client, tokens = api_client
        resp = client.get(
            f"/api/v1/lot-items?lot_id={catalog['big']}", headers={"Authorization": f"Bearer {tokens['ana']}"}
        )
        assert resp.status_code == 200, resp.text
        items = resp.json()["items"]
        assert len(items) == 7
        assert all(item["price"] is not None for item in items), "staff see every price"

    def test_viewer_redaction(self, api_client, catalog) -> None:
        """bob sees his own three prices and owners; the other four are nulled."""
        client, tokens = api_client
        resp = client.get(
            f"/api/v1/lot-items?lot_id={catalog['big']}", headers={"Authorization": f"Bearer {tokens['bob']}"}
        )
        items = resp.json()["items"]
        assert len(items) == 7, "redaction never drops rows"
        own = [item for item in items if item["username"] == "bob"]
        assert len(own) == 3
        assert all(item["price"] is not None for item in own)
        others = [item for item in items if item["username"] != "bob"]
        assert all(item["username"] is None and item["price"] is None for item in others)

    def test_lot_id_required(self, api_client) -> None:
        client, tokens = api_client
        resp = client.get("/api/v1/lot-items", headers={"Authorization": f"Bearer {tokens['ana']}"})
        assert resp.status_code == 422


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------


class TestItems:
    @pytest.mark.parametrize(
        "overrides",
        [{"price": 0}, {"price": -3}, {"picture_url": "not-a-url"}, {"username": "  "}],
    )
    def test_create_validation(self, api_client, catalog, overrides: dict) -> None:
        client, tokens = api_client
        body = {"lot_id": catalog["empty"], "username": "bob", "picture_url": "https://img/a.jpg", "price": 5}
        body.update(overrides)
        resp = client.post("/api/v1/items", json=body, headers={"Authorization": f"Bearer {tokens['ana']}"})
        assert resp.status_code == 422, f"{overrides}: expected 422, got {resp.status_code}"

    def test_create_in_missing_lot(self, api_client) -> None:
        client, tokens = api_client
        body = {"lot_id": 999999, "username": "bob", "picture_url": "https://img/a.jpg", "price": 5}
        resp = client.post("/api/v1/items", json=body, headers={"Authorization": f"Bearer {tokens['ana']}"})
        assert resp.status_code == 404

    def test_detail_patch_delete(self, api_client, catalog) -> None:
        client, tokens = api_client
        headers = {"Authorization": f"Bearer {tokens['max']}"}
        body = {"lot_id": catalog["empty"], "username": "alice", "picture_url": "https://img/a.jpg", "price": 5}
        item_id = client.post("/api/v1/items", json=body, headers=headers).json()["id"]

        detail = client.get(f"/api/v1/items/{item_id}", headers=headers)
        assert detail.status_code == 200
        assert detail.json()["item"]["username"] == "alice"

        assert client.patch(f"/api/v1/items/{item_id}", json={"price": 0}, headers=headers).status_code == 200
        assert client.get(f"/api/v1/items/{item_id}", headers=headers).json()["item"]["price"] == 0

        missing = client.patch(f"/api/v1/items/{item_id}", json={}, headers=headers)
        assert missing.status_code == 422
        assert missing.json()["error"]["message"] == "Missing patch fields"

        assert client.delete(f"/api/v1/items/{item_id}", headers=headers).status_code == 200
        assert client.get(f"/api/v1/items/{item_id}", headers=headers).status_code == 404

    def test_create_if_missing_made_owner(self, api_client, catalog) -> None:
        """carol did not exist before the catalog fixture created her item."""
        client, _tokens = api_client
        carol = client.app.state.user_store.get_by_username("carol")
        assert carol is not None
        assert carol.role == "viewer"


class TestProfileItems:
    def test_viewer_reads_own(self, api_client, catalog) -> None:
        client, tokens = api_client
        resp = client.get("/api/v1/profile/items?username=bob", headers={"Authorization": f"Bearer {tokens['bob']}"})
        assert resp.status_code == 200, resp.text
        items = resp.json()["items"]
        assert len(items) == 3, "cancelled items are excluded"
        assert all(item["price"] is not None for item in items)
        assert all(item["lot_name"] == "Lot 103" for item in items)

    def test_viewer_cannot_read_others(self, api_client, catalog) -> None:
        client, tokens = api_client
        resp = client.get("/api/v1/profile/items?username=alice", headers={"Authorization": f"Bearer {tokens['bob']}"})
        assert resp.status_code == 403

    def test_staff_reads_anyone(self, api_client, catalog) -> None:
        client, tokens = api_client
        resp = client.get("/api/v1/profile/items?username=alice", headers={"Authorization": f"Bearer {tokens['max']}"})
        assert resp.status_code == 200
        assert len(resp.json()["items"]) == 3

    def test_username_required(self, api_client) -> None:
        client, tokens = api_client
        resp = client.get("/api/v1/profile/items", headers={"Authorization": f"Bearer {tokens['ana']}"})
        assert resp.status_code == 422


# ---------------------------------------------------------------------------
# Checklist
# ---------------------------------------------------------------------------


class TestChecklist:
    def test_items_and_single_update(self, api_client, catalog) -> None:
        client, tokens = api_client
        headers = {"Authorization": f"Bearer {tokens['max']}"}
        resp = client.get(f"/api/v1/admin/checklist-items?lot_id={catalog['big']}", headers=headers)
        assert resp.status_code == 200, resp.text
        items = resp.json()["items"]
        assert len(items) == 7
        assert "cancelled" not in items[0]

        item_id = items[0]["id"]
        upd = client.patch(
            f"/api/v1/admin/checklist-items/{item_id}", json={"checklist_status": "rejected"}, headers=headers
        )
        assert upd.status_code == 200, upd.text
        detail = client.get(f"/api/v1/items/{item_id}", headers=headers).json()["item"]
        assert detail["checklist_status"] == "rejected"
        assert detail["checked"] is False

    def test_invalid_status(self, api_client, catalog) -> None:
        client, tokens = api_client
        resp = client.patch(
            "/api/v1/admin/checklist-items/1",
            json={"checklist_status": "done"},
            headers={"Authorization": f"Bearer {tokens['ana']}"},
        )
        assert resp.status_code == 422

    def test_bulk_rejected_not_allowed(self, api_client, catalog) -> None:
        client, tokens = api_client
        resp = client.patch(
            "/api/v1/admin/checklist-items/bulk",
            json={"lot_id": catalog["big"], "checklist_status": "rejected"},
            headers={"Authorization": f"Bearer {tokens['ana']}"},
        )
        assert resp.status_code == 422

    def test_bulk_and_summary(self, api_client, catalog) -> None:
        """Bulk-check the hidden lot: its items are all cancelled, so nothing changes."""
        client, tokens = api_client
        headers = {"Authorization": f"Bearer {tokens['ana']}"}
        resp = client.patch(
            "/api/v1/admin/checklist-items/bulk",
            json={"lot_id": catalog["hidden"], "checklist_status": "checked"},
            headers=headers,
        )
        assert resp.status_code == 200, resp.text
        assert resp.json()["updated"] == 0

        summary = client.get("/api/v1/admin/checklist-summary", headers=headers).json()
        empty_ids = [row["lot_id"] for row in summary["empty"]]
        assert catalog["hidden"] in empty_ids
        assert catalog["empty"] in empty_ids

        resp = client.patch(
            "/api/v1/admin/checklist-items/bulk",
            json={"lot_id": catalog["big"], "checklist_status": "checked"},
            headers=headers,
        )
        assert resp.json()["updated"] == 7

        summary = client.get("/api/v1/admin/checklist-summary", headers=headers).json()
        completed = {row["lot_id"]: row for row in summary["completed"]}
        assert completed[catalog["big"]]["total_items"] == 7
        assert completed[catalog["big"]]["pending_items"] == 0


# ---------------------------------------------------------------------------
# Users, migration, stats
# ---------------------------------------------------------------------------


class TestUsers:
    def test_list_masks_passwords(self, api_client) -> None:
        client, tokens = api_client
        resp = client.get("/api/v1/admin/users", headers={"Authorization": f"Bearer {tokens['max']}"})
        assert resp.status_code == 200, resp.text
        users = resp.json()["users"]
        assert users[0]["access_level"] == "admin"
        ana = next(u for u in users if u["username"] == "ana")
        assert ana["password"] == "__set__"

    def test_create_duplicate_update_delete(self, api_client) -> None:
        client, tokens = api_client
        headers = {"Authorization": f"Bearer {tokens['ana']}"}
        body = {"username": "dora", "access_level": "viewer", "number": "9000000042", "password": "dorapass"}

        created = client.post("/api/v1/admin/users", json=body, headers=headers)
        assert created.status_code == 201, created.text
        user_id = created.json()["id"]

        dup = client.post("/api/v1/admin/users", json=body, headers=headers)
        assert dup.status_code == 409

        upd = client.patch(f"/api/v1/admin/users/{user_id}", json={"access_level": "manager"}, headers=headers)
        assert upd.status_code == 200, upd.text
        assert client.app.state.user_store.get_by_id(user_id).role == "manager"

        assert client.delete(f"/api/v1/admin/users/{user_id}", headers=headers).status_code == 200
        assert client.delete(f"/api/v1/admin/users/{user_id}", headers=headers).status_code == 404

    def test_invalid_role(self, api_client) -> None:
        client, tokens = api_client
        resp = client.post(
            "/api/v1/admin/users",
            json={"username": "eve", "access_level": "owner"},
            headers={"Authorization": f"Bearer {tokens['ana']}"},
        )
        assert resp.status_code == 422

    def test_empty_patch(self, api_client) -> None:
        client, tokens = api_client
        uid = client.app.state.user_store.get_by_username("alice").id
        resp = client.patch(f"/api/v1/admin/users/{uid}", json={}, headers={"Authorization": f"Bearer {tokens['ana']}"})
        assert resp.status_code == 422
        assert resp.json()["error"]["message"] == "No updates provided"


class TestMigrationRoute:
    def test_manager_forbidden(self, api_client) -> None:
        client, tokens = api_client
        resp = client.post("/api/v1/admin/auth-migrate", headers={"Authorization": f"Bearer {tokens['max']}"})
        assert resp.status_code == 403

    def test_not_configured(self, api_client) -> None:
        client, tokens = api_client
        resp = client.post("/api/v1/admin/auth-migrate", headers={"Authorization": f"Bearer {tokens['ana']}"})
        assert resp.status_code == 501
        assert resp.json()["error"]["code"] == "not_configured"


class TestStats:
    def test_counts(self, api_client, catalog) -> None:
        client, tokens = api_client
        resp = client.get("/api/v1/admin/stats", headers={"Authorization": f"Bearer {tokens['ana']}"})
        assert resp.status_code == 200, resp.text
        counts = resp.json()["counts"]
        assert counts["lots"] >= 3
        assert counts["items"] >= 9
        assert counts["users"] >= 5
