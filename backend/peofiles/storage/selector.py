from peofiles.core.config import Settings
from peofiles.core.database import make_engine
from peofiles.storage.base import BlobStore
from peofiles.storage.keyed_store import KeyedBlobStore
from peofiles.storage.local_storage import LocalStorage
from peofiles.storage.sql_store import ServerBlobStore

BACKENDS = ("server", "local")


def build_store(settings: Settings) -> BlobStore:
    """Build the blob store named by settings.STORAGE_BACKEND"""
    backend = settings.STORAGE_BACKEND.lower()
    if backend == "server":
        return ServerBlobStore(make_engine(settings.DATABASE_URL), LocalStorage(settings.UPLOAD_DIR))
    if backend == "local":
        return KeyedBlobStore(settings.LOCAL_STORE_PATH)
    raise ValueError(f"Unknown storage backend: {settings.STORAGE_BACKEND!r}. Expected one of {BACKENDS}")
