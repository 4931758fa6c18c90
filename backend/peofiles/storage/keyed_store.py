import logging
import random
import shelve
import threading
import time
from datetime import datetime, timezone
from typing import Optional
from peofiles.core.errors import NotFound, StorageFault
from peofiles.storage.base import BlobStore, FileRecord, NewFile

logger = logging.getLogger(__name__)


class KeyedBlobStore(BlobStore):
    """
    Embedded keyed store: each record is kept under its id together with its
    bytes. In-memory by default, persisted with shelve when path is given.

    Ids are a millisecond timestamp with random jitter in the low digits. The
    store assigns them and draws again if the id is already taken.
    """

    def __init__(self, path: Optional[str] = None):
        self._lock = threading.RLock()
        self._path = path
        try:
            self._db = shelve.open(path) if path else {}
        except OSError as e:
            raise StorageFault(f"Cannot open keyed store at {path}") from e
        # Insertion sequence, used to order records uploaded in the same instant
        self._seq = max((entry["seq"] for entry in self._db.values()), default=0)

    def _new_id(self) -> int:
        while True:
            file_id = int(time.time() * 1000) * 1000 + random.randint(0, 999)
            if str(file_id) not in self._db:
                return file_id

    def _entries(self):
        # Newest first: upload time, then insertion order
        return sorted(
            self._db.values(),
            key=lambda entry: (entry["record"]["uploaded_at"], entry["seq"]),
            reverse=True,
        )

    def _entry(self, file_id: int) -> dict:
        entry = self._db.get(str(file_id))
        if entry is None:
            raise NotFound("File not found")
        return entry

    def put(self, office: str, new_file: NewFile) -> int:
        with self._lock:
            # Names are never overwritten, same rule as the server's file tree
            for entry in self._db.values():
                existing = entry["record"]
                if (existing["office"], existing["adjuster"], existing["name"]) == (
                    office, new_file.adjuster, new_file.name
                ):
                    raise StorageFault(f"File already exists: {office}/{new_file.adjuster}/{new_file.name}")
            file_id = self._new_id()
            self._seq += 1
            record = FileRecord(
                id=file_id,
                name=new_file.name,
                original_name=new_file.original_name,
                mime_type=new_file.mime_type,
                size=new_file.size,
                office=office,
                adjuster=new_file.adjuster,
                uploaded_at=datetime.now(timezone.utc),
            )
            try:
                self._db[str(file_id)] = {
                    "seq": self._seq,
                    "record": record.model_dump(exclude={"data"}),
                    "data": new_file.data,
                }
                self._sync()
            except (OSError, TypeError, ValueError) as e:
                raise StorageFault(f"Failed to save file: {str(e)}") from e
        logger.info(f"Stored {office}/{new_file.adjuster}/{new_file.name} as file {file_id}")
        return file_id

    def list_by_office(self, office: str) -> list[FileRecord]:
        with self._lock:
            return [
                FileRecord(**entry["record"])
                for entry in self._entries()
                if entry["record"]["office"] == office
            ]

    def list_all(self) -> list[FileRecord]:
        with self._lock:
            return [FileRecord(**entry["record"]) for entry in self._entries()]

    def get(self, file_id: int) -> FileRecord:
        with self._lock:
            return FileRecord(**self._entry(file_id)["record"])

    def read(self, file_id: int) -> bytes:
        with self._lock:
            return self._entry(file_id)["data"]

    def mark_downloaded(self, file_id: int) -> datetime:
        downloaded_at = datetime.now(timezone.utc)
        with self._lock:
            entry = self._entry(file_id)
            entry["record"]["downloaded_at"] = downloaded_at
            # shelve only notices reassignment, not in-place mutation
            self._db[str(file_id)] = entry
            self._sync()
        return downloaded_at

    def delete_by_id(self, file_id: int) -> bool:
        with self._lock:
            entry = self._db.pop(str(file_id), None)
            if entry is None:
                return False
            self._sync()
        logger.info(f"File {entry['record']['name']} deleted successfully")
        return True

    def count_by_scope(self, office: str, adjuster: str) -> int:
        with self._lock:
            return sum(
                1
                for entry in self._db.values()
                if entry["record"]["office"] == office and entry["record"]["adjuster"] == adjuster
            )

    def _sync(self) -> None:
        if self._path:
            self._db.sync()

    def close(self) -> None:
        with self._lock:
            if self._path:
                self._db.close()
