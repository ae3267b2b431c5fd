import os

import pytest

from medialib.errors import StorageFailure
from medialib.services.asset_store import AssetStore


def test_save_load_roundtrip(store):
    store.save("uploads/media/originals/a.png", b"data")
    assert store.exists("uploads/media/originals/a.png")
    assert store.load("uploads/media/originals/a.png") == b"data"
    # no temp files left next to the target
    assert os.listdir(store.root / "uploads/media/originals") == ["a.png"]


@pytest.mark.parametrize("path", ["../escape.png", "uploads/../../escape.png", "", "a\x00b", "/etc/passwd", "/uploads/media/originals/a.png"])
def test_paths_outside_root_are_rejected(store, path):
    with pytest.raises(StorageFailure):
        store.save(path, b"x")
    assert store.exists(path) is False


def test_symlink_out_of_root_is_rejected(tmp_path):
    store = AssetStore(tmp_path / "root")
    outside = tmp_path / "outside"
    outside.mkdir()
    os.symlink(outside, store.root / "link")
    with pytest.raises(StorageFailure):
        store.save("link/file.png", b"x")


def test_delete_is_idempotent(store):
    store.save("x/y.png", b"1")
    store.delete("x/y.png")
    store.delete("x/y.png")
    assert not store.exists("x/y.png")


def test_load_missing_raises_storage_failure(store):
    with pytest.raises(StorageFailure) as info:
        store.load("missing.png")
    assert info.value.operation == "load"
    assert info.value.path == "missing.png"


def test_delete_tree(store):
    store.save("derived/abc/one.webp", b"1")
    store.save("derived/abc/two.webp", b"2")
    store.delete_tree("derived/abc")
    assert not (store.root / "derived/abc").exists()
    store.delete_tree("derived/abc")


def test_absolute_path_is_not_stored_under_root(store):
    with pytest.raises(StorageFailure):
        store.save("/etc/passwd", b"x")
    assert not (store.root / "etc" / "passwd").exists()
