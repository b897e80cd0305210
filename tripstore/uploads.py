from __future__ import annotations
import asyncio
import logging
import os
import uuid
from typing import Dict, Optional

from starlette.datastructures import UploadFile

from . import messages
from .helpers import now_ts
from .schemas import InvalidKind, InvalidRequest

logger = logging.getLogger(__name__)


class ScreenshotStorage:
    """Payment screenshots in a private directory, addressed by file name."""

    # room for the text fields and multipart boundaries next to the image
    form_overhead = 64 * 1024

    def __init__(self, directory: str, max_bytes: int,
                 allowed_types: Dict[str, str]) -> None:
        self.directory = directory
        self.max_bytes = max_bytes
        self.allowed_types = allowed_types

    def reject_oversized(self, content_length: Optional[str]) -> None:
        """Refuse a body that cannot hold a valid screenshot.

        Runs before the multipart parser spools anything to disk; a
        missing or chunked length is left to :meth:`read_image`.
        """
        try:
            length = int(content_length or "")
        except ValueError:
            return
        if length > self.max_bytes + self.form_overhead:
            raise InvalidRequest(InvalidKind.FILE_TOO_LARGE,
                                 messages.FILE_TOO_LARGE, "screenshot")

    def ensure_dir(self) -> None:
        os.makedirs(self.directory, exist_ok=True)

    def path_for(self, name: str) -> Optional[str]:
        # names come from our own rows, but never step outside the folder
        if not name or os.path.basename(name) != name:
            return None
        return os.path.join(self.directory, name)

    async def read_image(self, upload: UploadFile) -> tuple[bytes, str]:
        """Validate type and size; returns (data, extension).

        Nothing touches the disk here.
        """
        ctype = (upload.content_type or "").split(";")[0].strip().lower()
        ext = self.allowed_types.get(ctype)
        if ext is None:
            raise InvalidRequest(InvalidKind.INVALID_FILE_TYPE,
                                 messages.INVALID_FILE_TYPE, "screenshot")
        if upload.size is not None and upload.size > self.max_bytes:
            raise InvalidRequest(InvalidKind.FILE_TOO_LARGE,
                                 messages.FILE_TOO_LARGE, "screenshot")
        data = await upload.read(self.max_bytes + 1)
        if len(data) > self.max_bytes:
            raise InvalidRequest(InvalidKind.FILE_TOO_LARGE,
                                 messages.FILE_TOO_LARGE, "screenshot")
        return data, ext

    def _write_file(self, name: str, data: bytes) -> None:
        self.ensure_dir()
        with open(os.path.join(self.directory, name), "wb") as f:
            f.write(data)

    async def write(self, data: bytes, ext: str) -> str:
        name = f"{int(now_ts() * 1000)}-{uuid.uuid4().hex[:8]}{ext}"
        # file I/O blocks; keep it off the event loop
        await asyncio.to_thread(self._write_file, name, data)
        return name

    def remove(self, name: Optional[str]) -> bool:
        """Best-effort delete; failures are logged, never raised."""
        if not name:
            return False
        path = self.path_for(name)
        if path is None:
            logger.warning("refusing to remove suspicious name %r", name)
            return False
        try:
            os.remove(path)
        except FileNotFoundError:
            return False
        except OSError:
            logger.exception("could not remove screenshot %s", path)
            return False
        return True
