import logging
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import func
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from peofiles.core.database import init_db, make_session_factory
from peofiles.core.errors import NotFound, StorageFault
from peofiles.models.peo_file import PeoFile
from peofiles.storage.base import BlobStore, FileRecord, NewFile
from peofiles.storage.local_storage import LocalStorage

logger = logging.getLogger(__name__)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes, they are stored in UTC
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _to_record(row: PeoFile) -> FileRecord:
    return FileRecord(
        id=row.id,
        name=row.name,
        original_name=row.original_name,
        mime_type=row.type,
        size=row.size,
        office=row.peo_office,
        adjuster=row.adjuster,
        file_path=row.file_path,
        uploaded_at=_as_utc(row.upload_date),
        downloaded_at=_as_utc(row.download_date),
    )


class ServerBlobStore(BlobStore):
    """
    Server-backed store: one peo_files row per file, bytes on disk.

    Bytes are written before the row is inserted so a row never points at
    missing bytes. If the insert fails the bytes just written are removed.
    Deletes run the other way round: the row is committed away first, then
    the bytes go. Timestamps come back as aware UTC datetimes.
    """

    def __init__(self, engine: Engine, storage: LocalStorage):
        self.engine = engine
        self.storage = storage
        self.SessionLocal = make_session_factory(engine)
        init_db(engine)

    def put(self, office: str, new_file: NewFile) -> int:
        file_path = self.storage.save_bytes(office, new_file.adjuster, new_file.name, new_file.data)

        db = self.SessionLocal()
        try:
            db_file = PeoFile(
                name=new_file.name,
                original_name=new_file.original_name,
                file_path=file_path,
                type=new_file.mime_type,
                size=new_file.size,
                peo_office=office,
                adjuster=new_file.adjuster,
            )
            db.add(db_file)
            db.commit()
            db.refresh(db_file)
        except SQLAlchemyError as e:
            db.rollback()
            try:
                self.storage.delete_file(file_path)
            except StorageFault as cleanup_error:
                logger.error(f"Insert failed for {file_path}, bytes left behind: {cleanup_error.message}")
            else:
                logger.error(f"Insert failed for {file_path}, removed its bytes: {str(e)}")
            raise StorageFault(str(e)) from e
        finally:
            db.close()

        logger.info(f"Stored {file_path} as file {db_file.id}")
        return db_file.id

    def list_by_office(self, office: str) -> list[FileRecord]:
        db = self.SessionLocal()
        try:
            rows = (
                db.query(PeoFile)
                .filter(PeoFile.peo_office == office)
                .order_by(PeoFile.upload_date.desc(), PeoFile.id.desc())
                .all()
            )
        except SQLAlchemyError as e:
            raise StorageFault(str(e)) from e
        finally:
            db.close()
        return [_to_record(row) for row in rows]

    def list_all(self) -> list[FileRecord]:
        db = self.SessionLocal()
        try:
            rows = db.query(PeoFile).order_by(PeoFile.upload_date.desc(), PeoFile.id.desc()).all()
        except SQLAlchemyError as e:
            raise StorageFault(str(e)) from e
        finally:
            db.close()
        return [_to_record(row) for row in rows]

    def _get_row(self, db, file_id: int) -> PeoFile:
        try:
            row = db.query(PeoFile).filter(PeoFile.id == file_id).first()
        except SQLAlchemyError as e:
            raise StorageFault(str(e)) from e
        if row is None:
            raise NotFound("File not found")
        return row

    def get(self, file_id: int) -> FileRecord:
        db = self.SessionLocal()
        try:
            return _to_record(self._get_row(db, file_id))
        finally:
            db.close()

    def read(self, file_id: int) -> bytes:
        record = self.get(file_id)
        try:
            return self.storage.read_bytes(record.file_path)
        except FileNotFoundError:
            raise NotFound("File not found on disk")

    def mark_downloaded(self, file_id: int) -> datetime:
        downloaded_at = datetime.now(timezone.utc)
        db = self.SessionLocal()
        try:
            row = self._get_row(db, file_id)
            # Column is naive, values in it are UTC
            row.download_date = downloaded_at.replace(tzinfo=None)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageFault(str(e)) from e
        finally:
            db.close()
        return downloaded_at

    def delete_by_id(self, file_id: int) -> bool:
        db = self.SessionLocal()
        try:
            # A failing lookup propagates as StorageFault, only "no row" is False
            try:
                row = self._get_row(db, file_id)
            except NotFound:
                return False
            name, file_path = row.name, row.file_path

            # Row goes first: if the commit fails the bytes are still there
            db.delete(row)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageFault(str(e)) from e
        finally:
            db.close()

        try:
            if not self.storage.delete_file(file_path):
                logger.warning(f"Bytes already missing for file {file_id} at {file_path}")
        except StorageFault as e:
            logger.error(f"File {file_id} deleted but its bytes are left at {file_path}: {e.message}")

        logger.info(f"File {name} deleted successfully")
        return True

    def count_by_scope(self, office: str, adjuster: str) -> int:
        db = self.SessionLocal()
        try:
            count = (
                db.query(func.count(PeoFile.id))
                .filter(PeoFile.peo_office == office, PeoFile.adjuster == adjuster)
                .scalar()
            )
        except SQLAlchemyError as e:
            raise StorageFault(str(e)) from e
        finally:
            db.close()
        return count or 0

    def close(self) -> None:
        self.engine.dispose()
