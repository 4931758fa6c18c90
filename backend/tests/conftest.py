import pytest
from peofiles.core.database import make_engine
from peofiles.core.scheduler import ManualTimer
from peofiles.services.file_service import FileService
from peofiles.storage.base import UploadItem
from peofiles.storage.keyed_store import KeyedBlobStore
from peofiles.storage.local_storage import LocalStorage
from peofiles.storage.sql_store import ServerBlobStore


@pytest.fixture
def keyed_store():
    store = KeyedBlobStore()
    yield store
    store.close()


@pytest.fixture
def server_store(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'pcic_test.db'}")
    store = ServerBlobStore(engine, LocalStorage(str(tmp_path / "uploads")))
    yield store
    store.close()


# Behaviour shared by both backends runs once per backend
@pytest.fixture(params=["server", "local"])
def store(request):
    if request.param == "server":
        return request.getfixturevalue("server_store")
    return request.getfixturevalue("keyed_store")


@pytest.fixture
def timer():
    return ManualTimer()


@pytest.fixture
def service(store, timer):
    return FileService(store, timer, auto_delete_delay=120)


@pytest.fixture
def make_item():
    def _make_item(original_name="photo.jpg", content=None, mime_type="image/jpeg"):
        content = content if content is not None else f"bytes of {original_name}".encode()
        return UploadItem(raw_bytes=content, original_name=original_name, mime_type=mime_type, size=len(content))
    return _make_item
