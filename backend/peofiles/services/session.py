import logging
from typing import Callable, Optional
from peofiles.core.errors import ValidationFault
from peofiles.core.offices import require_office
from peofiles.services.file_service import DownloadedFile, FileService
from peofiles.storage.base import NewFile, UploadItem

logger = logging.getLogger(__name__)


class UploadSession:
    """
    Selection state of one client: chosen office, chosen adjuster and the
    files staged for saving.

    Auto-deletes started from this session belong to it. close() cancels the
    ones that have not fired yet, the same way they would be lost when a
    browser tab is closed.
    """

    def __init__(self, service: FileService, on_refresh: Optional[Callable[[], None]] = None):
        self.service = service
        self.on_refresh = on_refresh
        self.office: Optional[str] = None
        self.adjuster: Optional[str] = None
        self.pending: list[NewFile] = []
        self._auto_delete_ids: set[int] = set()

    def select_office(self, code: Optional[str]) -> None:
        if not code:
            # Clearing the office also clears the adjuster
            self.office = None
            self.adjuster = None
            return
        self.office = require_office(code).code

    def select_adjuster(self, name: Optional[str]) -> None:
        self.adjuster = name or None

    def stage(self, files: list[UploadItem]) -> list[NewFile]:
        """Name the selected files. Replaces anything staged before."""
        if not self.office:
            raise ValidationFault("Please select a PEO office first")
        if not self.adjuster:
            raise ValidationFault("Please select an Adjuster first")
        self.pending = self.service.prepare_batch(self.office, self.adjuster, files)
        return list(self.pending)

    def save(self) -> int:
        """Persist staged files. Returns how many were actually saved."""
        if not self.pending:
            raise ValidationFault("No files to save")
        saved = self.service.save_prepared(self.office, self.pending)
        logger.info(f"{len(saved)} file(s) saved successfully to {self.office.upper()}")
        self.pending = []
        self._refresh()
        return len(saved)

    def list_files(self, office: Optional[str] = None):
        return self.service.list_files(office or self.office)

    def view(self, file_id: int):
        return self.service.view_file(file_id)

    def download(self, file_id: int, from_view: bool = False) -> DownloadedFile:
        downloaded = self.service.download_file(
            file_id,
            trigger_auto_expire=from_view,
            on_expired=self._on_auto_deleted,
            on_expire_finished=self._auto_delete_ids.discard,
        )
        if from_view:
            self._auto_delete_ids.add(file_id)
        return downloaded

    def delete(self, file_id: int) -> bool:
        deleted = self.service.delete_file(file_id)
        self._auto_delete_ids.discard(file_id)
        if deleted:
            self._refresh()
        return deleted

    def close(self) -> int:
        """End the session, dropping auto-deletes that have not fired yet"""
        cancelled = sum(1 for file_id in list(self._auto_delete_ids) if self.service.lifecycle.cancel(file_id))
        self._auto_delete_ids.clear()
        self.pending = []
        return cancelled

    @property
    def pending_auto_deletes(self) -> set[int]:
        """Ids whose auto-delete was started here and has not fired yet"""
        return set(self._auto_delete_ids)

    def _on_auto_deleted(self, file_id: int) -> None:
        self._refresh()

    def _refresh(self) -> None:
        if self.on_refresh is not None:
            self.on_refresh()
