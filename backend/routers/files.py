import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

import models
import schemas
from auth.dependencies import get_current_user
from database import get_db
from managers import attachments as attachment_manager
from storage import FileStore, get_file_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/files", tags=["files"])


@router.post(
    "/upload/{task_id}",
    response_model=schemas.Envelope[schemas.AttachmentList],
    status_code=status.HTTP_201_CREATED,
)
async def upload_files(
    task_id: int,
    files: Optional[List[UploadFile]] = File(None),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
    store: FileStore = Depends(get_file_store)
):
    """Upload one or more files (multipart field `files`) to a task."""
    records = await attachment_manager.upload_attachments(db, store, task_id, files)
    return schemas.Envelope(
        message=f"{len(records)} file(s) uploaded successfully",
        data=schemas.AttachmentList(files=records),
    )


@router.get("/task/{task_id}", response_model=schemas.Envelope[schemas.AttachmentList])
def list_task_files(
    task_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    records = attachment_manager.list_attachments(db, task_id)
    return schemas.Envelope(data=schemas.AttachmentList(files=records))


@router.get("/download/{task_id}/{filename}")
def download_file(
    task_id: int,
    filename: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
    store: FileStore = Depends(get_file_store)
):
    """Stream an attachment back under its original name."""
    record, path = attachment_manager.get_download(db, store, task_id, filename)
    logger.debug(f"Serving attachment {filename} of task {task_id}")
    return FileResponse(
        path,
        media_type=record.get("mimetype") or "application/octet-stream",
        filename=record.get("original_name") or filename,
    )


@router.delete("/{task_id}/{filename}", response_model=schemas.Envelope[schemas.DeletedAttachment])
def delete_file(
    task_id: int,
    filename: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
    store: FileStore = Depends(get_file_store)
):
    record = attachment_manager.delete_attachment(db, store, task_id, filename)
    return schemas.Envelope(
        message="File deleted successfully",
        data=schemas.DeletedAttachment(deleted_file=record),
    )
