import json
import threading

import pytest

from dlms_toolkit.core.errors import ErrorKind, StorageError
from dlms_toolkit.core.interfaces import PersistenceProvider
from dlms_toolkit.core.storage import AutoSaveScheduler, JsonFileStorage, default_storage_dir


@pytest.fixture
def storage(tmp_path):
    return JsonFileStorage(tmp_path / "data")


class TestJsonFileStorage:

    def test_is_a_persistence_provider(self, storage):
        assert isinstance(storage, PersistenceProvider)

    def test_save_and_load(self, storage, sample_snapshot):
        state = {"document": sample_snapshot, "pending": []}
        storage.save(state)
        assert storage.load() == state
        metadata = storage.get_metadata()
        assert metadata["nodeCount"] == 6
        assert metadata["documentSize"] > 0

    def test_load_without_save_returns_none(self, storage):
        assert storage.load() is None

    def test_corrupt_file_raises_storage_error(self, storage):
        storage.base_dir.mkdir(parents=True)
        storage.state_path.write_text("{not json", encoding="utf-8")
        with pytest.raises(StorageError) as excinfo:
            storage.load()
        assert excinfo.value.kind is ErrorKind.STORAGE

    def test_non_object_state_is_rejected(self, storage):
        storage.base_dir.mkdir(parents=True)
        storage.state_path.write_text("[]", encoding="utf-8")
        with pytest.raises(StorageError):
            storage.load()

    def test_unserializable_state_keeps_previous_save(self, storage):
        storage.save({"document": []})
        with pytest.raises(StorageError):
            storage.save({"document": [object()]})
        assert storage.load() == {"document": []}

    def test_clear(self, storage):
        storage.save({"document": []})
        storage.clear()
        assert storage.load() is None
        assert storage.get_metadata() == {}

    def test_backups(self, storage):
        storage.save({"document": []})
        name = storage.create_backup("before import")
        assert name == "before_import"
        assert storage.list_backups() == ["before_import"]
        backup = json.loads((storage.base_dir / "backups" / "backup_before_import.json").read_text("utf-8"))
        assert backup["document"] == {"document": []}

    def test_storage_info(self, storage):
        storage.save({"document": []})
        info = storage.get_storage_info()
        assert info["location"] == str(storage.base_dir)
        assert info["totalSize"] > 0
        assert info["backups"] == 0

    def test_default_dir_from_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DLMS_DATA_DIR", str(tmp_path / "elsewhere"))
        assert default_storage_dir() == tmp_path / "elsewhere"
        assert JsonFileStorage().base_dir == tmp_path / "elsewhere"


class TestAutoSaveScheduler:

    def test_schedule_restarts_the_window(self, fake_timers):
        calls = []
        scheduler = AutoSaveScheduler(calls.append, delay=2.0, timer_factory=fake_timers)
        scheduler.schedule("first")
        scheduler.schedule("second")
        first, second = fake_timers.created
        assert first.cancelled and not second.cancelled
        assert second.started and second.daemon
        assert second.delay == 2.0
        second.fire()
        assert calls == ["second"]
        assert not scheduler.pending

    def test_disabled_scheduler_does_nothing(self, fake_timers):
        scheduler = AutoSaveScheduler(lambda payload: None, enabled=False, timer_factory=fake_timers)
        scheduler.schedule({"document": []})
        assert fake_timers.created == []

    def test_flush_runs_pending_write_once(self, fake_timers):
        calls = []
        scheduler = AutoSaveScheduler(calls.append, timer_factory=fake_timers)
        scheduler.flush()
        assert calls == []
        scheduler.schedule({"n": 1})
        scheduler.flush()
        scheduler.flush()
        assert calls == [{"n": 1}]
        assert fake_timers.created[0].cancelled

    def test_cancel(self, fake_timers):
        scheduler = AutoSaveScheduler(lambda payload: None, timer_factory=fake_timers)
        scheduler.schedule("state")
        scheduler.cancel()
        assert not scheduler.pending
        assert fake_timers.created[0].cancelled

    def test_real_timer_delivers_captured_payload(self):
        delivered = []
        done = threading.Event()

        def _save(payload):
            delivered.append(payload)
            done.set()

        scheduler = AutoSaveScheduler(_save, delay=0.01)
        state = {"document": [{"id": "1"}]}
        scheduler.schedule(state)
        assert done.wait(timeout=5)
        assert delivered == [state]
        assert not scheduler.pending

    def test_cancelled_window_never_calls_back(self, fake_timers):
        calls = []
        scheduler = AutoSaveScheduler(calls.append, timer_factory=fake_timers)
        scheduler.schedule("state")
        scheduler.cancel()
        fake_timers.created[0].fire()
        assert calls == []
