"""
Local-disk blob store for task attachments.

Blobs are addressed by a server-generated filename only; the store never
sees task ids or original filenames.
"""

import logging
import time
import uuid
from pathlib import Path

from fastapi import UploadFile

import config
from errors import NotFoundError, ServerError, ValidationError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024  # 1MB chunks (max memory footprint)


def generate_filename(original_name: str) -> str:
    """Build a collision-resistant name: <epoch millis>-<random hex><original extension>."""
    file_ext = Path(original_name or "").suffix.lower()
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex}{file_ext}"


class FileStore:
    def __init__(self, root: Path):
        self.root = Path(root)

    def path_for(self, filename: str) -> Path:
        # Reject anything that could escape the upload directory
        if not filename or Path(filename).name != filename or filename in (".", ".."):
            raise NotFoundError("File not found")
        return self.root / filename

    def exists(self, filename: str) -> bool:
        try:
            return self.path_for(filename).is_file()
        except NotFoundError:
            return False

    async def save(self, filename: str, file: UploadFile, max_size: int) -> int:
        """
        Save an uploaded file using chunked streaming.

        Reads the upload in 1MB chunks, validating size incrementally, and
        aborts as soon as the limit is exceeded.

        Returns:
            Number of bytes written
        """
        self.root.mkdir(parents=True, exist_ok=True)
        filepath = self.path_for(filename)
        total_size = 0

        try:
            with open(filepath, "wb") as f:
                while True:
                    chunk = await file.read(CHUNK_SIZE)
                    if not chunk:
                        break

                    total_size += len(chunk)

                    # Fail fast if size exceeded
                    if total_size > max_size:
                        raise ValidationError.for_field(
                            "files",
                            f"File {file.filename} is too large. Maximum size: {max_size / (1024 * 1024):.0f}MB"
                        )

                    f.write(chunk)
        except ValidationError:
            filepath.unlink(missing_ok=True)
            raise
        except OSError as e:
            filepath.unlink(missing_ok=True)
            logger.error(f"Failed to save file {filename}: {e}")
            raise ServerError("Failed to save file")

        logger.debug(f"Stored blob {filename} ({total_size} bytes)")
        return total_size

    def delete(self, filename: str) -> None:
        """Remove a blob. Raises OSError when the file cannot be removed."""
        self.path_for(filename).unlink()
        logger.debug(f"Deleted blob {filename}")


def get_file_store() -> FileStore:
    """FastAPI dependency returning the configured blob store."""
    return FileStore(config.UPLOAD_DIR)
