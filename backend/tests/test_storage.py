"""
Tests for storage.py: backend selection and the local folder backend.
"""
from types import SimpleNamespace

import pytest

from app.services import storage
from app.services.storage import LocalStorage, StorageError


@pytest.fixture
def settings(monkeypatch, tmp_path):
    fake = SimpleNamespace(S3_BUCKET=None, ENV="dev", LOCAL_STORAGE_DIR=str(tmp_path / "store"))
    monkeypatch.setattr(storage, "get_settings", lambda: fake)
    storage.get_storage.cache_clear()
    yield fake
    storage.get_storage.cache_clear()


class TestGetStorage:

    def test_dev_falls_back_to_local_folder(self, settings):
        backend = storage.get_storage()
        assert isinstance(backend, LocalStorage)
        assert backend.root == settings.LOCAL_STORAGE_DIR

    def test_missing_bucket_outside_dev_is_an_error(self, settings):
        settings.ENV = "production"
        with pytest.raises(RuntimeError):
            storage.get_storage()


class TestLocalStorage:

    def test_round_trip_under_post_images(self, tmp_path):
        local = LocalStorage(root=str(tmp_path / "store"))
        local.upload("space/post_1.png", b"png", "image/png")

        assert (tmp_path / "store" / "post-images" / "space" / "post_1.png").read_bytes() == b"png"
        assert local.download("/space/post_1.png") == b"png"
        assert local.public_url("space/post_1.png") == "/storage/post-images/space/post_1.png"

    def test_missing_object(self, tmp_path):
        with pytest.raises(StorageError):
            LocalStorage(root=str(tmp_path)).download("nope.png")

    @pytest.mark.parametrize("path", ["../../outside.png", "../../store-sibling/x.png"])
    def test_paths_outside_root_rejected(self, tmp_path, path):
        local = LocalStorage(root=str(tmp_path / "store"))
        with pytest.raises(StorageError):
            local.upload(path, b"x", "image/png")
        assert not (tmp_path / "store-sibling").exists()
