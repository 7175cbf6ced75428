"""
Upload staging.

Multipart uploads are written to a private file under UPLOAD_DIR for the
duration of one request. The file is removed when the context exits, on
success and on every error path.
"""

import asyncio
import logging
import os
import tempfile
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Optional

from fastapi import UploadFile

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024
DEFAULT_CONTENT_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class StagedUpload:
    """A staged upload owned by the current request."""

    path: Path
    filename: str
    content_type: str
    size: int

    @property
    def is_image(self) -> bool:
        return self.content_type.startswith("image/")

    async def read(self) -> bytes:
        """Read the staged bytes without blocking the event loop."""
        return await asyncio.to_thread(self.path.read_bytes)


async def _write_upload(upload: UploadFile, path: Path) -> int:
    size = 0
    with path.open("wb") as f:
        while True:
            chunk = await upload.read(CHUNK_SIZE)
            if not chunk:
                break
            await asyncio.to_thread(f.write, chunk)
            size += len(chunk)
    return size


@asynccontextmanager
async def stage_upload(upload: UploadFile, directory: str | Path) -> AsyncIterator[StagedUpload]:
    """
    Stage an upload and guarantee its removal.

    Usage:
        async with stage_upload(file, settings.upload_dir) as staged:
            data = await staged.read()
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)

    fd, name = tempfile.mkstemp(dir=directory, prefix="upload-")
    os.close(fd)
    path = Path(name)

    try:
        size = await _write_upload(upload, path)
        logger.debug(f"Staged upload {upload.filename!r} ({size} bytes) at {path}")
        yield StagedUpload(
            path=path,
            filename=upload.filename or path.name,
            content_type=upload.content_type or DEFAULT_CONTENT_TYPE,
            size=size,
        )
    finally:
        path.unlink(missing_ok=True)
        await upload.close()


def has_upload(upload: Optional[UploadFile]) -> bool:
    """Multipart forms may send an empty file field."""
    return upload is not None and bool(upload.filename)
