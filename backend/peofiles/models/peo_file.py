from sqlalchemy import Column, Integer, String, DateTime, Boolean, BigInteger
from sqlalchemy.sql import func
from peofiles.core.database import Base


class PeoFile(Base):
    """
    Uploaded document scoped to a PEO office and an adjuster.

    Stores metadata only. The bytes live on disk at
    UPLOAD_DIR/file_path, where file_path is office/adjuster/name.
    """
    __tablename__ = "peo_files"
    # AUTOINCREMENT on SQLite so ids of deleted rows are never handed out again
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    # name is the generated display name: {adjuster}_{sequence}.{ext}
    name = Column(String, nullable=False)
    # original_name is what the user selected, kept for provenance only
    original_name = Column(String, nullable=True)
    # Relative to UPLOAD_DIR
    file_path = Column(String, nullable=False)
    type = Column(String, nullable=True)
    size = Column(BigInteger, nullable=True)
    peo_office = Column(String, nullable=False, index=True)
    adjuster = Column(String, nullable=False)
    upload_date = Column(DateTime, server_default=func.now())
    download_date = Column(DateTime, nullable=True)
    # Kept for schema compatibility, never set
    auto_delete_scheduled = Column(Boolean, default=False)
