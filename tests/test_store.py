from __future__ import annotations

from proph_client.services.store import InMemoryStore, JsonFileStore, build_store


def test_in_memory_store_copies_values() -> None:
    store = InMemoryStore()
    value = {"pending_count": 1}
    store.set("a", value)
    value["pending_count"] = 2

    assert store.get("a") == {"pending_count": 1}
    store.delete("a")
    store.delete("a")
    assert store.get("a") is None


def test_json_file_store_persists_across_instances(tmp_path) -> None:
    path = tmp_path / "nested" / "store.json"
    JsonFileStore(path).set("user-100:applicationInfo", {"pending_count": 3})

    reopened = JsonFileStore(path)
    assert reopened.get("user-100:applicationInfo") == {"pending_count": 3}
    reopened.delete("user-100:applicationInfo")
    assert JsonFileStore(path).get("user-100:applicationInfo") is None
    assert not path.with_suffix(".json.tmp").exists()


def test_json_file_store_treats_corrupt_file_as_empty(tmp_path) -> None:
    path = tmp_path / "store.json"
    path.write_text("{not json", encoding="utf-8")
    store = JsonFileStore(path)

    assert store.get("anything") is None
    store.set("anything", {"ok": True})
    assert store.get("anything") == {"ok": True}


def test_build_store_picks_backend_from_storage_path(tmp_path) -> None:
    assert isinstance(build_store(None), InMemoryStore)
    assert isinstance(build_store(str(tmp_path / "store.json")), JsonFileStore)
