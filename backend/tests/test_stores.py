import types
from datetime import timedelta
from pathlib import Path
import pytest
from sqlalchemy.exc import OperationalError
from peofiles.core.config import Settings
from peofiles.core.errors import NotFound, StorageFault
from peofiles.storage.base import NewFile
from peofiles.storage.keyed_store import KeyedBlobStore
from peofiles.storage.local_storage import LocalStorage
from peofiles.storage.selector import build_store
from peofiles.storage.sql_store import ServerBlobStore


def new_file(name="Santos_1.jpg", adjuster="Santos", data=b"\xff\xd8jpeg-bytes"):
    return NewFile(name=name, original_name="photo.jpg", mime_type="image/jpeg", size=len(data),
                   adjuster=adjuster, data=data)


def test_put_get_and_read(store):
    file_id = store.put("butuan", new_file())

    record = store.get(file_id)
    assert record.id == file_id
    assert record.name == "Santos_1.jpg"
    assert record.original_name == "photo.jpg"
    assert record.office == "butuan"
    assert record.adjuster == "Santos"
    assert record.mime_type == "image/jpeg"
    assert record.size == 12
    assert record.uploaded_at is not None
    assert record.downloaded_at is None
    assert record.data is None
    assert store.read(file_id) == b"\xff\xd8jpeg-bytes"


def test_ids_are_unique(store):
    ids = [store.put("butuan", new_file(name=f"Santos_{n}.jpg")) for n in range(1, 6)]
    assert len(set(ids)) == 5


def test_list_by_office_only_returns_that_office(store):
    store.put("butuan", new_file(name="Santos_1.jpg"))
    store.put("valencia", new_file(name="Santos_1.jpg"))
    store.put("butuan", new_file(name="Cruz_1.jpg", adjuster="Cruz"))

    records = store.list_by_office("butuan")

    assert len(records) == 2
    assert {record.office for record in records} == {"butuan"}
    assert all(record.data is None for record in records)


def test_list_is_newest_first(store):
    first = store.put("tandag", new_file(name="Santos_1.jpg"))
    second = store.put("tandag", new_file(name="Santos_2.jpg"))
    third = store.put("tandag", new_file(name="Santos_3.jpg"))

    assert [record.id for record in store.list_by_office("tandag")] == [third, second, first]


def test_list_unknown_office_is_empty(store):
    assert store.list_by_office("nowhere") == []


def test_list_all(store):
    store.put("butuan", new_file())
    store.put("surigao", new_file())
    assert {record.office for record in store.list_all()} == {"butuan", "surigao"}


def test_count_by_scope_is_exact(store):
    store.put("valencia", new_file(name="Cruz_1.jpg", adjuster="Cruz"))
    store.put("valencia", new_file(name="Cruz_2.jpg", adjuster="Cruz"))
    store.put("valencia", new_file(name="cruz_1.jpg", adjuster="cruz"))
    store.put("butuan", new_file(name="Cruz_1.jpg", adjuster="Cruz"))

    assert store.count_by_scope("valencia", "Cruz") == 2
    assert store.count_by_scope("valencia", "cruz") == 1
    assert store.count_by_scope("valencia", "Santos") == 0


def test_get_missing_raises_not_found(store):
    with pytest.raises(NotFound):
        store.get(424242)
    with pytest.raises(NotFound):
        store.read(424242)


def test_delete_is_at_most_once(store):
    file_id = store.put("butuan", new_file())

    assert store.delete_by_id(file_id) is True
    assert store.delete_by_id(file_id) is False
    with pytest.raises(NotFound):
        store.get(file_id)
    assert store.list_by_office("butuan") == []


def test_mark_downloaded(store):
    file_id = store.put("butuan", new_file())

    downloaded_at = store.mark_downloaded(file_id)

    assert downloaded_at is not None
    assert store.get(file_id).downloaded_at is not None
    with pytest.raises(NotFound):
        store.mark_downloaded(424242)


def test_count_does_not_change_records(store):
    store.put("butuan", new_file())
    before = store.list_all()
    store.count_by_scope("butuan", "Santos")
    assert store.list_all() == before


def test_put_refuses_a_name_already_in_scope(store):
    first = store.put("butuan", new_file(data=b"AAA"))

    with pytest.raises(StorageFault, match="already exists"):
        store.put("butuan", new_file(data=b"ZZZ"))

    assert store.read(first) == b"AAA"
    assert store.count_by_scope("butuan", "Santos") == 1


def test_timestamps_are_utc_aware(store):
    file_id = store.put("butuan", new_file())

    downloaded_at = store.mark_downloaded(file_id)
    record = store.get(file_id)

    assert downloaded_at.utcoffset() == timedelta(0)
    assert record.uploaded_at.utcoffset() == timedelta(0)
    assert record.downloaded_at.utcoffset() == timedelta(0)
    assert store.list_by_office("butuan")[0].uploaded_at.utcoffset() == timedelta(0)


# Server-backed store: row in peo_files, bytes on disk


def test_server_writes_bytes_under_office_and_adjuster(server_store):
    file_id = server_store.put("butuan", new_file())

    record = server_store.get(file_id)
    assert record.file_path == "butuan/Santos/Santos_1.jpg"
    on_disk = server_store.storage.upload_dir / "butuan" / "Santos" / "Santos_1.jpg"
    assert on_disk.read_bytes() == b"\xff\xd8jpeg-bytes"


def test_server_delete_removes_bytes(server_store):
    file_id = server_store.put("butuan", new_file())
    on_disk = server_store.storage.upload_dir / "butuan" / "Santos" / "Santos_1.jpg"

    assert server_store.delete_by_id(file_id) is True
    assert not on_disk.exists()


def test_server_delete_tolerates_missing_bytes(server_store, caplog):
    file_id = server_store.put("butuan", new_file())
    (server_store.storage.upload_dir / "butuan" / "Santos" / "Santos_1.jpg").unlink()

    assert server_store.delete_by_id(file_id) is True
    assert server_store.count_by_scope("butuan", "Santos") == 0
    assert "already missing" in caplog.text


def test_server_read_with_missing_bytes_is_not_found(server_store):
    file_id = server_store.put("butuan", new_file())
    (server_store.storage.upload_dir / "butuan" / "Santos" / "Santos_1.jpg").unlink()

    with pytest.raises(NotFound, match="not found on disk"):
        server_store.read(file_id)


def test_server_failed_bytes_write_inserts_no_row(server_store, monkeypatch):
    def fail(*args, **kwargs):
        raise StorageFault("Failed to save file")

    monkeypatch.setattr(server_store.storage, "save_bytes", fail)

    with pytest.raises(StorageFault):
        server_store.put("butuan", new_file())
    assert server_store.count_by_scope("butuan", "Santos") == 0


def test_server_failed_insert_removes_written_bytes(server_store, monkeypatch):
    original_factory = server_store.SessionLocal

    def failing_session():
        db = original_factory()

        def commit():
            raise OperationalError("INSERT INTO peo_files", {}, Exception("disk I/O error"))

        db.commit = commit
        return db

    monkeypatch.setattr(server_store, "SessionLocal", failing_session)

    with pytest.raises(StorageFault):
        server_store.put("butuan", new_file())
    assert not (server_store.storage.upload_dir / "butuan" / "Santos" / "Santos_1.jpg").exists()


def test_server_delete_fails_when_lookup_errors(server_store, monkeypatch):
    file_id = server_store.put("butuan", new_file())
    original_factory = server_store.SessionLocal

    def broken_session():
        db = original_factory()

        def query(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("database is locked"))

        db.query = query
        return db

    monkeypatch.setattr(server_store, "SessionLocal", broken_session)

    with pytest.raises(StorageFault):
        server_store.delete_by_id(file_id)


def test_server_failed_delete_commit_keeps_bytes(server_store, monkeypatch):
    file_id = server_store.put("butuan", new_file())
    original_factory = server_store.SessionLocal

    def failing_session():
        db = original_factory()

        def commit():
            raise OperationalError("DELETE FROM peo_files", {}, Exception("database is locked"))

        db.commit = commit
        return db

    monkeypatch.setattr(server_store, "SessionLocal", failing_session)

    with pytest.raises(StorageFault):
        server_store.delete_by_id(file_id)

    monkeypatch.setattr(server_store, "SessionLocal", original_factory)
    assert server_store.get(file_id).name == "Santos_1.jpg"
    assert server_store.read(file_id) == b"\xff\xd8jpeg-bytes"


def refuse_unlink(self, missing_ok=False):
    raise PermissionError(13, "Permission denied", str(self))


def test_local_storage_delete_failure_is_not_reported_as_missing(tmp_path, monkeypatch):
    storage = LocalStorage(str(tmp_path))
    relative_path = storage.save_bytes("butuan", "Santos", "Santos_1.jpg", b"AAA")
    monkeypatch.setattr(Path, "unlink", refuse_unlink)

    with pytest.raises(StorageFault, match="Failed to delete"):
        storage.delete_file(relative_path)

    monkeypatch.undo()
    assert storage.read_bytes(relative_path) == b"AAA"
    assert storage.delete_file(relative_path) is True
    assert storage.delete_file(relative_path) is False


def test_server_delete_logs_bytes_it_could_not_remove(server_store, monkeypatch, caplog):
    file_id = server_store.put("butuan", new_file())
    monkeypatch.setattr(Path, "unlink", refuse_unlink)

    assert server_store.delete_by_id(file_id) is True

    assert server_store.count_by_scope("butuan", "Santos") == 0
    assert "bytes are left at butuan/Santos/Santos_1.jpg" in caplog.text
    assert "already missing" not in caplog.text


def test_server_refuses_paths_outside_upload_dir(server_store):
    with pytest.raises(StorageFault):
        server_store.put("butuan", new_file(name="../../../escape.jpg"))


def test_server_ids_are_not_reused(server_store):
    first = server_store.put("butuan", new_file(name="Santos_1.jpg"))
    server_store.delete_by_id(first)
    second = server_store.put("butuan", new_file(name="Santos_1.jpg"))
    assert second > first


# Embedded keyed store


def test_keyed_store_draws_a_new_id_on_collision(monkeypatch):
    store = KeyedBlobStore()
    jitter = iter([7, 7, 8])
    monkeypatch.setattr("peofiles.storage.keyed_store.time", types.SimpleNamespace(time=lambda: 1700000000.0))
    monkeypatch.setattr("peofiles.storage.keyed_store.random.randint", lambda a, b: next(jitter))

    first = store.put("butuan", new_file(name="Santos_1.jpg"))
    second = store.put("butuan", new_file(name="Santos_2.jpg"))

    assert first == 1700000000000 * 1000 + 7
    assert second == 1700000000000 * 1000 + 8
    assert store.get(first).name == "Santos_1.jpg"


def test_keyed_store_persists_with_shelve(tmp_path):
    path = str(tmp_path / "peo_uploads")
    store = KeyedBlobStore(path)
    file_id = store.put("surigao", new_file())
    store.mark_downloaded(file_id)
    store.close()

    reopened = KeyedBlobStore(path)
    try:
        record = reopened.get(file_id)
        assert record.office == "surigao"
        assert record.downloaded_at is not None
        assert reopened.read(file_id) == b"\xff\xd8jpeg-bytes"
        second = reopened.put("surigao", new_file(name="Santos_2.jpg"))
        assert [r.id for r in reopened.list_by_office("surigao")] == [second, file_id]
    finally:
        reopened.close()


# Backend selection


def test_build_store_local():
    store = build_store(Settings(STORAGE_BACKEND="local"))
    assert isinstance(store, KeyedBlobStore)
    store.close()


def test_build_store_server(tmp_path):
    store = build_store(Settings(
        STORAGE_BACKEND="server",
        DATABASE_URL=f"sqlite:///{tmp_path / 'selector.db'}",
        UPLOAD_DIR=str(tmp_path / "uploads"),
    ))
    assert isinstance(store, ServerBlobStore)
    store.close()


def test_build_store_unknown_backend():
    with pytest.raises(ValueError):
        build_store(Settings(STORAGE_BACKEND="s3"))
