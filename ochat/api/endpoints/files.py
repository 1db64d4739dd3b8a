from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from ochat.api.schemas import CamelModel, to_http
from ochat.core.config import settings
from ochat.core.database import get_db
from ochat.core.errors import ChatError
from ochat.services.file_service import FileService, image_data_url

router = APIRouter(prefix="/api", tags=["files"])


class ImageUploadResponse(CamelModel):
    url: str


class FileInfo(CamelModel):
    id: int
    message_id: Optional[int] = None
    original_name: str
    size: int
    mime_type: str
    uploaded_at: datetime
    expires_at: datetime
    url: str


def _file_info(record) -> FileInfo:
    return FileInfo(
        id=record.id,
        message_id=record.message_id,
        original_name=record.original_name,
        size=record.size,
        mime_type=record.mime_type,
        uploaded_at=record.uploaded_at,
        expires_at=record.expires_at,
        url=f"/api/files/{record.id}",
    )


async def _read_limited(file: UploadFile, limit: int) -> bytes:
    data = await file.read(limit + 1)
    if len(data) > limit:
        raise HTTPException(
            status_code=413,
            detail=f"File must be {limit // (1024 * 1024)}MB or less",
        )
    if not data:
        raise HTTPException(status_code=400, detail="Missing file")
    return data


@router.post("/upload", response_model=ImageUploadResponse)
async def upload_image(image: UploadFile = File(...)):
    """Inline chat image; returned as a data URL and never stored."""
    content_type = image.content_type or ""
    if not content_type.startswith("image/"):
        raise HTTPException(status_code=400, detail="Only image files are allowed")
    data = await _read_limited(image, settings.MAX_IMAGE_BYTES)
    return ImageUploadResponse(url=image_data_url(data, content_type))


@router.post("/files", response_model=FileInfo, status_code=201)
async def upload_file(
    file: UploadFile = File(...),
    message_id: Optional[int] = Form(default=None, alias="messageId"),
    db: Session = Depends(get_db),
):
    data = await _read_limited(file, settings.MAX_FILE_BYTES)
    record = FileService(db).store(
        data,
        original_name=file.filename or "upload",
        mime_type=file.content_type or "application/octet-stream",
        message_id=message_id,
    )
    return _file_info(record)


@router.get("/files/{file_id}/info", response_model=FileInfo)
async def get_file_info(file_id: int, db: Session = Depends(get_db)):
    try:
        return _file_info(FileService(db).get(file_id))
    except ChatError as e:
        raise to_http(e) from e


@router.get("/files/{file_id}")
async def download_file(file_id: int, db: Session = Depends(get_db)):
    service = FileService(db)
    try:
        record = service.get(file_id)
    except ChatError as e:
        raise to_http(e) from e
    path = service.path_for(record)
    if not path.exists():
        raise HTTPException(status_code=404, detail="File not found")
    return FileResponse(path, media_type=str(record.mime_type), filename=str(record.original_name))
