from datetime import datetime
from typing import List, Optional
from urllib.parse import quote
from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel, ConfigDict, Field, field_serializer
from peofiles.api.dependencies import get_file_service
from peofiles.core.errors import NotFound, ValidationFault
from peofiles.services.file_service import FileService
from peofiles.storage.base import FileRecord, UploadItem
from peofiles.utils.data_url import decode_data_url, encode_data_url

router = APIRouter(tags=["files"])


class FileRowResponse(BaseModel):
    """A file as a peo_files row, column names included"""
    id: int
    name: str
    original_name: Optional[str] = None
    file_path: Optional[str] = None
    type: Optional[str] = None
    size: Optional[int] = None
    peo_office: str
    adjuster: str
    upload_date: Optional[datetime] = None
    download_date: Optional[datetime] = None
    auto_delete_scheduled: bool = False

    @classmethod
    def from_record(cls, record: FileRecord) -> "FileRowResponse":
        return cls(
            id=record.id,
            name=record.name,
            original_name=record.original_name,
            file_path=record.file_path,
            type=record.mime_type,
            size=record.size,
            peo_office=record.office,
            adjuster=record.adjuster,
            upload_date=record.uploaded_at,
            download_date=record.downloaded_at,
        )

    @field_serializer('upload_date', 'download_date')
    def serialize_dates(self, value: Optional[datetime], _info):
        return value.isoformat() if value else None


class FileViewResponse(FileRowResponse):
    dataUrl: str


class UploadRequest(BaseModel):
    """Single file upload. data is a base64 data URL."""
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    original_name: Optional[str] = Field(None, alias="originalName")
    data: Optional[str] = None
    type: Optional[str] = None
    size: Optional[int] = None
    peo_office: Optional[str] = Field(None, alias="peoOffice")
    adjuster: Optional[str] = None


class BatchFile(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    original_name: Optional[str] = Field(None, alias="originalName")
    data: Optional[str] = None
    type: Optional[str] = None
    size: Optional[int] = None


class BatchUploadRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    peo_office: Optional[str] = Field(None, alias="peoOffice")
    adjuster: Optional[str] = None
    files: List[BatchFile] = []


def _to_item(original_name, data, mime_type, size) -> UploadItem:
    return UploadItem(
        raw_bytes=decode_data_url(data) if data else b"",
        original_name=original_name,
        mime_type=mime_type,
        size=size,
    )


@router.get("/files", response_model=List[FileRowResponse])
def list_all_files(service: FileService = Depends(get_file_service)):
    """All files across offices (admin)"""
    return [FileRowResponse.from_record(record) for record in service.list_all()]


@router.get("/files/{office}", response_model=List[FileRowResponse])
def list_office_files(office: str, service: FileService = Depends(get_file_service)):
    """Files of one office, newest upload first"""
    return [FileRowResponse.from_record(record) for record in service.list_files(office)]


@router.get("/file/{file_id}", response_model=FileRowResponse)
def get_file(file_id: int, service: FileService = Depends(get_file_service)):
    return FileRowResponse.from_record(service.get_file(file_id))


@router.get("/count/{office}/{adjuster}")
def count_files(office: str, adjuster: str, service: FileService = Depends(get_file_service)):
    """Number of files an adjuster has in an office"""
    return {"count": service.file_count(office, adjuster)}


@router.post("/upload")
def upload_file(request: UploadRequest, service: FileService = Depends(get_file_service)):
    """Upload one file. Without a name the next sequential name is assigned."""
    if not request.data or not request.peo_office or not request.adjuster:
        raise ValidationFault("Missing required fields")
    item = _to_item(request.original_name, request.data, request.type, request.size)
    file_id = service.upload_named(request.peo_office, request.adjuster, request.name, item)
    return {"success": True, "id": file_id}


@router.post("/upload/batch")
def upload_batch(request: BatchUploadRequest, service: FileService = Depends(get_file_service)):
    """
    Upload files selected together. They are numbered consecutively and
    saved one by one, so some may fail while the rest are kept.
    """
    items = [_to_item(f.original_name, f.data, f.type, f.size) for f in request.files]
    saved = service.upload_batch(request.peo_office, request.adjuster, items)
    return {
        "success": True,
        "savedCount": len(saved),
        "files": [FileRowResponse.from_record(record) for record in saved],
    }


@router.get("/view/{file_id}", response_model=FileViewResponse)
def view_file(file_id: int, service: FileService = Depends(get_file_service)):
    """File row plus its bytes as a data URL for inline display"""
    record = service.view_file(file_id)
    row = FileRowResponse.from_record(record)
    return FileViewResponse(**dict(row), dataUrl=encode_data_url(record.mime_type, record.data))


@router.get("/download/{file_id}")
def download_file(
    file_id: int,
    from_view: bool = Query(False, alias="fromView"),
    service: FileService = Depends(get_file_service),
):
    """Download a file. From the image view this also starts the auto-delete."""
    downloaded = service.download_file(file_id, trigger_auto_expire=from_view)

    ascii_name = downloaded.filename.encode("ascii", "replace").decode("ascii").replace('"', "_")
    headers = {
        "Content-Disposition": (
            f"attachment; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(downloaded.filename)}"
        ),
    }
    return Response(content=downloaded.content, media_type=downloaded.mime_type, headers=headers)


@router.delete("/file/{file_id}")
def delete_file(file_id: int, service: FileService = Depends(get_file_service)):
    """Delete a file from disk and database. 404 if it does not exist."""
    if not service.delete_file(file_id):
        raise NotFound("File not found")
    return {"success": True}
