"""Smoke tests for the key-value storage backends."""

import json

import pytest

from focus_tutor.storage.local_storage import JsonFileStorage, MemoryStorage, StorageError


class TestJsonFileStorage:
    def test_missing_file_reads_as_empty(self, tmp_path):
        storage = JsonFileStorage(tmp_path / "local_storage.json")
        assert storage.get_item("anything") is None

    def test_set_and_get(self, tmp_path):
        path = tmp_path / "local_storage.json"
        storage = JsonFileStorage(path)
        storage.set_item("FLAG", True)
        storage.set_item("USERS", [{"id": "001"}])
        assert storage.get_item("FLAG") is True
        assert storage.get_item("USERS") == [{"id": "001"}]
        assert json.loads(path.read_text()) == {"FLAG": True, "USERS": [{"id": "001"}]}

    def test_values_visible_to_new_instance(self, tmp_path):
        path = tmp_path / "local_storage.json"
        JsonFileStorage(path).set_item("COUNT", 3)
        assert JsonFileStorage(path).get_item("COUNT") == 3

    def test_remove_item(self, tmp_path):
        storage = JsonFileStorage(tmp_path / "local_storage.json")
        storage.set_item("A", 1)
        storage.remove_item("A")
        storage.remove_item("never-set")
        assert storage.get_item("A") is None

    def test_corrupt_file_raises(self, tmp_path):
        path = tmp_path / "local_storage.json"
        path.write_text("{not json")
        with pytest.raises(StorageError):
            JsonFileStorage(path).get_item("A")

    def test_non_object_document_raises(self, tmp_path):
        path = tmp_path / "local_storage.json"
        path.write_text("[1, 2]")
        with pytest.raises(StorageError):
            JsonFileStorage(path).get_item("A")

    def test_unwritable_location_raises(self, tmp_path):
        blocker = tmp_path / "not_a_dir"
        blocker.write_text("")
        storage = JsonFileStorage(blocker / "local_storage.json")
        with pytest.raises(StorageError):
            storage.set_item("A", 1)


class TestMemoryStorage:
    def test_initial_items(self):
        storage = MemoryStorage({"A": 1})
        assert storage.get_item("A") == 1

    def test_stored_values_are_detached(self):
        storage = MemoryStorage()
        value = {"ids": ["001"]}
        storage.set_item("K", value)
        value["ids"].append("002")
        assert storage.get_item("K") == {"ids": ["001"]}
