"""
Attachment management for tasks.

Attachment records live in the task's embedded `attachments` list; the
bytes live in the blob store under a server-generated filename.
"""

import logging
from pathlib import Path
from typing import List, Optional

from fastapi import UploadFile
from sqlalchemy.orm import Session

import config
import models
from errors import NotFoundError, ValidationError
from managers.tasks import get_active_task, lock_active_task
from storage import FileStore, generate_filename
from time_utils import utc_now

logger = logging.getLogger(__name__)


def find_attachment(task: models.Task, filename: str) -> Optional[dict]:
    return next((att for att in (task.attachments or []) if att.get("filename") == filename), None)


async def upload_attachments(
    db: Session,
    store: FileStore,
    task_id: int,
    files: Optional[List[UploadFile]],
    max_size: Optional[int] = None,
    max_files: Optional[int] = None,
) -> List[dict]:
    """
    Store uploaded files and append their records to the task.

    The whole call either succeeds or leaves no trace: blobs written before
    a failure are removed and no record is appended.
    """
    max_size = max_size or config.MAX_FILE_SIZE
    max_files = max_files or config.MAX_FILES_PER_UPLOAD

    task = get_active_task(db, task_id, with_users=False)

    files = [f for f in (files or []) if f is not None and f.filename]
    if not files:
        raise ValidationError.for_field("files", "No file uploaded")
    if len(files) > max_files:
        logger.info(f"Rejected upload of {len(files)} files to task {task_id} (limit {max_files})")
        raise ValidationError.for_field("files", f"Too many files. Maximum {max_files} files per upload")

    logger.debug(f"Uploading {len(files)} file(s) to task {task_id}: {[f.filename for f in files]}")

    written = []
    records = []
    try:
        for upload in files:
            filename = generate_filename(upload.filename)
            size = await store.save(filename, upload, max_size)
            written.append(filename)
            records.append({
                "filename": filename,
                "original_name": Path(upload.filename).name,
                "mimetype": upload.content_type or "application/octet-stream",
                "size": size,
                "uploaded_at": utc_now().isoformat(),
            })

        # Append to the current row; another upload may have committed meanwhile
        task = lock_active_task(db, task_id)
        task.attachments = (task.attachments or []) + records
        db.commit()
    except Exception:
        db.rollback()
        for filename in written:
            try:
                store.delete(filename)
            except OSError as e:
                logger.warning(f"Could not clean up blob {filename} after failed upload: {e}")
        raise

    logger.info(f"Uploaded {len(records)} attachment(s) to task {task_id}")
    return records


def list_attachments(db: Session, task_id: int) -> List[dict]:
    task = get_active_task(db, task_id, with_users=False)
    return list(task.attachments or [])


def get_download(db: Session, store: FileStore, task_id: int, filename: str) -> tuple[dict, Path]:
    """
    Resolve an attachment for download.

    Returns:
        tuple: (attachment record, path of the blob on disk)
    """
    task = get_active_task(db, task_id, with_users=False)

    attachment = find_attachment(task, filename)
    if not attachment:
        raise NotFoundError("File not found")

    if not store.exists(filename):
        logger.warning(f"Attachment {filename} on task {task_id} has no blob on disk")
        raise NotFoundError("File not found on server")

    return attachment, store.path_for(filename)


def delete_attachment(db: Session, store: FileStore, task_id: int, filename: str) -> dict:
    """Remove the record (authoritative), then delete the blob best-effort."""
    logger.debug(f"Deleting attachment {filename} from task {task_id}")

    task = lock_active_task(db, task_id)

    attachment = find_attachment(task, filename)
    if not attachment:
        raise NotFoundError("File not found")

    task.attachments = [att for att in task.attachments if att.get("filename") != filename]
    db.commit()

    try:
        store.delete(filename)
    except (OSError, NotFoundError) as e:
        logger.error(f"Failed to delete file from disk: {filename}: {e}")
        # Continue anyway - the record removal stands

    logger.info(f"Deleted attachment {filename} from task {task_id}")
    return attachment
