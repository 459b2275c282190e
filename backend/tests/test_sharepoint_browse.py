"""
Tests for sharepoint_browse.py - cached site/drive/folder listings and the
saved source folders.

The Redis cache is replaced by a dict so repeat calls can be observed.
"""
import uuid
from datetime import datetime, timedelta

import pytest

from app.models.sharepoint import SharePointConnection, SharePointStatus
from app.services import sharepoint_browse


class FakeGraph:
    """Answers the listing calls and counts them per method."""

    def __init__(self):
        self.calls = []

    def list_sites(self, token):
        self.calls.append(("sites", token))
        return [{"id": "site-1", "displayName": "Marketing", "webUrl": "https://acme.sharepoint.com/sites/marketing"}]

    def list_drives(self, token, site_id):
        self.calls.append(("drives", site_id))
        return [{"id": "drive-1", "name": "Documents", "driveType": "documentLibrary"}]

    def list_children(self, token, drive_id, folder_id=None):
        self.calls.append(("children", drive_id, folder_id))
        return [
            {"id": "f-1", "name": "Case studies", "folder": {"childCount": 4}},
            {
                "id": "i-1",
                "name": "brief.docx",
                "size": 2048,
                "file": {"mimeType": "application/vnd.openxmlformats-officedocument.wordprocessingml.document"},
                "lastModifiedDateTime": "2025-05-01T09:00:00Z",
            },
        ]


@pytest.fixture
def cache(monkeypatch):
    store = {}

    def fake_cached_get(key, set_value=None, ttl=None):
        if set_value is not None:
            store[key] = set_value
            return set_value
        return store.get(key)

    def fake_invalidate(prefix):
        keys = [k for k in store if k.startswith(prefix)]
        for k in keys:
            del store[k]
        return len(keys)

    monkeypatch.setattr(sharepoint_browse, "cached_get", fake_cached_get)
    monkeypatch.setattr(sharepoint_browse, "invalidate", fake_invalidate)
    return store


@pytest.fixture
def space_id(db):
    conn = SharePointConnection(
        space_id=uuid.uuid4(),
        access_token="access",
        refresh_token="refresh",
        token_expires_at=datetime.utcnow() + timedelta(hours=1),
        status=SharePointStatus.CONNECTED.value,
    )
    db.add(conn)
    db.commit()
    return str(conn.space_id)


class TestListings:

    def test_sites_cached_after_first_call(self, db, cache, space_id):
        graph = FakeGraph()

        first = sharepoint_browse.list_sites(db, space_id, graph)
        second = sharepoint_browse.list_sites(db, space_id, graph)

        assert first == [{"id": "site-1", "name": "Marketing", "url": "https://acme.sharepoint.com/sites/marketing"}]
        assert second == first
        assert graph.calls == [("sites", "access")]

    def test_drives(self, db, cache, space_id):
        graph = FakeGraph()
        drives = sharepoint_browse.list_drives(db, space_id, "site-1", graph)
        assert drives == [{"id": "drive-1", "name": "Documents", "type": "documentLibrary"}]
        assert graph.calls == [("drives", "site-1")]

    def test_items_shaped_and_cached_per_folder(self, db, cache, space_id):
        graph = FakeGraph()

        root = sharepoint_browse.list_items(db, space_id, "drive-1", graph=graph)
        sharepoint_browse.list_items(db, space_id, "drive-1", graph=graph)
        sharepoint_browse.list_items(db, space_id, "drive-1", "f-1", graph=graph)

        folder, doc = root
        assert folder["is_folder"] is True
        assert folder["child_count"] == 4
        assert doc["is_folder"] is False
        assert doc["child_count"] is None
        assert doc["size"] == 2048
        assert doc["modified_at"] == "2025-05-01T09:00:00Z"
        assert graph.calls == [("children", "drive-1", None), ("children", "drive-1", "f-1")]

    def test_clear_cache_forces_refetch(self, db, cache, space_id):
        graph = FakeGraph()
        sharepoint_browse.list_sites(db, space_id, graph)
        sharepoint_browse.list_drives(db, space_id, "site-1", graph)

        assert sharepoint_browse.clear_browse_cache(space_id) == 2
        sharepoint_browse.list_sites(db, space_id, graph)
        assert [c[0] for c in graph.calls] == ["sites", "drives", "sites"]

    def test_missing_ids_rejected(self, db, cache, space_id):
        graph = FakeGraph()
        with pytest.raises(ValueError):
            sharepoint_browse.list_drives(db, space_id, "", graph)
        with pytest.raises(ValueError):
            sharepoint_browse.list_items(db, space_id, "", graph=graph)
        assert graph.calls == []


class TestSources:

    def test_add_list_remove(self, db, space_id):
        source = sharepoint_browse.add_source(
            db, space_id, "site-1", "drive-1", folder_id="f-1",
            site_name="Marketing", drive_name="Documents",
            folder_path="/Case studies", folder_name="Case studies",
        )
        root = sharepoint_browse.add_source(db, space_id, "site-1", "drive-1")

        assert root.folder_path == "/"
        assert root.folder_name == "Root"
        assert {s.id for s in sharepoint_browse.list_sources(db, space_id)} == {source.id, root.id}

        assert sharepoint_browse.remove_source(db, space_id, str(source.id)) is True
        assert sharepoint_browse.remove_source(db, space_id, str(source.id)) is False
        assert [s.id for s in sharepoint_browse.list_sources(db, space_id)] == [root.id]

    def test_source_of_another_space_not_removed(self, db, space_id):
        source = sharepoint_browse.add_source(db, space_id, "site-1", "drive-1")
        assert sharepoint_browse.remove_source(db, str(uuid.uuid4()), str(source.id)) is False
        assert len(sharepoint_browse.list_sources(db, space_id)) == 1

    def test_validation(self, db, space_id):
        with pytest.raises(ValueError):
            sharepoint_browse.add_source(db, space_id, "", "drive-1")
        with pytest.raises(ValueError):
            sharepoint_browse.add_source(db, str(uuid.uuid4()), "site-1", "drive-1")
