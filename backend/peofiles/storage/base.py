from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional
from pydantic import BaseModel


class UploadItem(BaseModel):
    """One file as selected by the user, before it is named"""
    raw_bytes: bytes
    original_name: Optional[str] = None
    mime_type: Optional[str] = None
    size: Optional[int] = None


class NewFile(BaseModel):
    """A named file ready to be persisted into an office"""
    name: str
    original_name: Optional[str] = None
    mime_type: Optional[str] = None
    size: Optional[int] = None
    adjuster: str
    data: bytes


class FileRecord(BaseModel):
    """A persisted file. data is only filled in by view/download paths."""
    id: int
    name: str
    original_name: Optional[str] = None
    mime_type: Optional[str] = None
    size: Optional[int] = None
    office: str
    adjuster: str
    file_path: Optional[str] = None
    uploaded_at: Optional[datetime] = None
    downloaded_at: Optional[datetime] = None
    data: Optional[bytes] = None


class BlobStore(ABC):
    """
    Persistence contract shared by the embedded keyed store and the
    server-backed store. Callers must not be able to tell them apart.

    Ids are always assigned by the store. Listings are newest upload first.
    """

    @abstractmethod
    def put(self, office: str, new_file: NewFile) -> int:
        """Persist metadata and bytes, return the new id. Raises StorageFault."""

    @abstractmethod
    def list_by_office(self, office: str) -> list[FileRecord]:
        """All records of an office without their bytes. Empty for unknown offices."""

    @abstractmethod
    def list_all(self) -> list[FileRecord]:
        """Every record across offices without their bytes."""

    @abstractmethod
    def get(self, file_id: int) -> FileRecord:
        """Metadata for one record. Raises NotFound."""

    @abstractmethod
    def read(self, file_id: int) -> bytes:
        """Bytes for one record. Raises NotFound if the record or its bytes are gone."""

    @abstractmethod
    def mark_downloaded(self, file_id: int) -> datetime:
        """Set downloaded_at to now. Raises NotFound."""

    @abstractmethod
    def delete_by_id(self, file_id: int) -> bool:
        """Remove metadata and bytes. False when no record has this id."""

    @abstractmethod
    def count_by_scope(self, office: str, adjuster: str) -> int:
        """Number of records whose office and adjuster match exactly."""

    def close(self) -> None:
        pass
