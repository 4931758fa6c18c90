import logging
from typing import Callable, Optional
from pydantic import BaseModel
from peofiles.core.config import Settings
from peofiles.core.errors import StorageFault, ValidationFault
from peofiles.core.offices import Office, list_offices, require_office
from peofiles.core.scheduler import BackgroundTimer, Timer
from peofiles.services.lifecycle import LifecycleManager
from peofiles.services.naming import NamingSequencer
from peofiles.storage.base import BlobStore, FileRecord, NewFile, UploadItem
from peofiles.storage.selector import build_store

logger = logging.getLogger(__name__)


class OfficeSummary(BaseModel):
    code: str
    displayName: str
    fileCount: int


class DownloadedFile(BaseModel):
    record: FileRecord
    content: bytes
    filename: str
    mime_type: str
    auto_delete_scheduled: bool = False


def validate_scope(office: Optional[str], adjuster: Optional[str]) -> Office:
    """Check the office/adjuster pair before anything is named or written"""
    if not office or not adjuster or not adjuster.strip():
        raise ValidationFault("Missing required fields")
    if "/" in adjuster or "\\" in adjuster or adjuster.strip() in (".", ".."):
        raise ValidationFault(f"Adjuster name cannot be used as a folder name: {adjuster!r}")
    return require_office(office)


def validate_item(item: UploadItem) -> None:
    if not item.raw_bytes:
        raise ValidationFault("Missing required fields")


class FileService:
    """
    Operations the UI layer calls. Works the same on every BlobStore, the
    naming and lifecycle rules are shared by both backends.
    """

    def __init__(
        self,
        store: BlobStore,
        timer: Timer,
        auto_delete_delay: float = 120.0,
        default_extension: str = "bin",
    ):
        self.store = store
        self.sequencer = NamingSequencer(store, default_extension)
        self.lifecycle = LifecycleManager(store, timer, auto_delete_delay)

    def list_offices(self) -> list[Office]:
        return list_offices()

    def office_summary(self) -> list[OfficeSummary]:
        """File count per office for the dashboard"""
        return [
            OfficeSummary(
                code=office.code,
                displayName=office.displayName,
                fileCount=len(self.store.list_by_office(office.code)),
            )
            for office in list_offices()
        ]

    def prepare_batch(self, office: str, adjuster: str, files: list[UploadItem]) -> list[NewFile]:
        """
        Name a batch of selected files.

        The scope is counted once and the valid files get consecutive
        numbers. Files missing their data are left out of the batch.
        """
        validate_scope(office, adjuster)

        valid = []
        for item in files:
            try:
                validate_item(item)
            except ValidationFault as e:
                logger.warning(f"Skipping {item.original_name!r} in batch for {office}/{adjuster}: {e.message}")
                continue
            valid.append(item)

        names = self.sequencer.name_batch(office, adjuster, [item.original_name for item in valid])
        return [
            NewFile(
                name=name,
                original_name=item.original_name,
                mime_type=item.mime_type,
                size=item.size if item.size is not None else len(item.raw_bytes),
                adjuster=adjuster,
                data=item.raw_bytes,
            )
            for name, item in zip(names, valid)
        ]

    def save_prepared(self, office: str, new_files: list[NewFile]) -> list[FileRecord]:
        """Persist named files one by one. A failing file does not stop the others."""
        saved = []
        for new_file in new_files:
            try:
                file_id = self.store.put(office, new_file)
            except StorageFault as e:
                logger.error(f"Error saving file {new_file.name} to {office}: {e.message}")
                continue
            saved.append(self.store.get(file_id))
        if len(saved) < len(new_files):
            logger.error(f"Saved {len(saved)} of {len(new_files)} file(s) to {office}")
        return saved

    def upload_batch(self, office: str, adjuster: str, files: list[UploadItem]) -> list[FileRecord]:
        return self.save_prepared(office, self.prepare_batch(office, adjuster, files))

    def upload_named(self, office: str, adjuster: str, name: Optional[str], item: UploadItem) -> int:
        """
        Store a single file. A name computed by the client is kept as is,
        otherwise the next name in the scope is assigned.
        """
        validate_scope(office, adjuster)
        validate_item(item)
        if name:
            if "/" in name or "\\" in name:
                raise ValidationFault(f"Invalid file name: {name!r}")
            new_file = NewFile(
                name=name,
                original_name=item.original_name,
                mime_type=item.mime_type,
                size=item.size if item.size is not None else len(item.raw_bytes),
                adjuster=adjuster,
                data=item.raw_bytes,
            )
        else:
            new_file = self.prepare_batch(office, adjuster, [item])[0]
        return self.store.put(office, new_file)

    def list_files(self, office: str) -> list[FileRecord]:
        return self.store.list_by_office(office)

    def list_all(self) -> list[FileRecord]:
        return self.store.list_all()

    def file_count(self, office: str, adjuster: str) -> int:
        return self.store.count_by_scope(office, adjuster)

    def get_file(self, file_id: int) -> FileRecord:
        return self.store.get(file_id)

    def view_file(self, file_id: int) -> FileRecord:
        """Record with its bytes, for inline display"""
        record = self.store.get(file_id)
        return record.model_copy(update={"data": self.store.read(file_id)})

    def download_file(
        self,
        file_id: int,
        trigger_auto_expire: bool = False,
        on_expired: Optional[Callable[[int], None]] = None,
        on_expire_finished: Optional[Callable[[int], None]] = None,
    ) -> DownloadedFile:
        """
        Fetch bytes for download and record the download time.

        With trigger_auto_expire (download from the image view) the file is
        silently deleted once the auto-delete delay has passed. on_expired
        runs if that delete removed the file, on_expire_finished runs once
        the timer has fired no matter how the delete went.
        """
        record = self.store.get(file_id)
        content = self.store.read(file_id)
        downloaded_at = self.store.mark_downloaded(file_id)
        record = record.model_copy(update={"downloaded_at": downloaded_at})

        if trigger_auto_expire:
            self.lifecycle.schedule_auto_delete(file_id, on_expired, on_expire_finished)

        return DownloadedFile(
            record=record,
            content=content,
            filename=record.name,
            mime_type=record.mime_type or "application/octet-stream",
            auto_delete_scheduled=trigger_auto_expire,
        )

    def delete_file(self, file_id: int) -> bool:
        return self.lifecycle.delete(file_id)

    def close(self) -> None:
        self.lifecycle.cancel_all()
        self.store.close()


def build_file_service(settings: Settings, timer: Optional[Timer] = None) -> FileService:
    """File service over the configured backend, on the background scheduler by default"""
    return FileService(
        build_store(settings),
        timer or BackgroundTimer(),
        auto_delete_delay=settings.AUTO_DELETE_DELAY_SECONDS,
        default_extension=settings.DEFAULT_EXTENSION,
    )
