"""Storage for uploaded PDF files."""

from __future__ import annotations

import asyncio
import logging
import secrets
from dataclasses import dataclass
from pathlib import Path

from fastapi import UploadFile

from .exceptions import NotFoundError, UnsupportedMediaTypeError, UploadTooLargeError, UserInputError
from .utils import ensure_directory, epoch_millis, split_extension

logger = logging.getLogger(__name__)

PDF_MEDIA_TYPE = "application/pdf"


@dataclass
class StoredUpload:
    filename: str
    original_name: str
    path: Path
    size: int


class UploadStore:
    """
    Writes client uploads into ``directory`` under generated unique names.

    Stored names follow ``<field>-<epoch ms>-<random>.<ext>``, keeping the
    original extension, so two uploads of the same file never collide.
    """

    def __init__(
        self,
        directory: Path,
        max_bytes: int = 50 * 1024 * 1024,
        field_name: str = "file",
        chunk_bytes: int = 1024 * 1024,
    ) -> None:
        self.directory = ensure_directory(Path(directory))
        self.max_bytes = max_bytes
        self.field_name = field_name
        self.chunk_bytes = chunk_bytes

    def generate_filename(self, original_name: str) -> str:
        _, extension = split_extension(original_name)
        return f"{self.field_name}-{epoch_millis()}-{secrets.randbelow(10**9)}{extension}"

    async def save(self, upload: UploadFile) -> StoredUpload:
        """
        Validate and persist an uploaded PDF.

        Raises:
            UserInputError: If the upload has no filename
            UnsupportedMediaTypeError: If the declared media type is not PDF
            UploadTooLargeError: If the body exceeds ``max_bytes``; the
                partial file is removed
        """
        if not upload.filename:
            raise UserInputError("No file uploaded")
        content_type = (upload.content_type or "").split(";", 1)[0].strip().lower()
        if content_type != PDF_MEDIA_TYPE:
            raise UnsupportedMediaTypeError(upload.content_type)

        filename = self.generate_filename(upload.filename)
        destination = self.directory / filename
        size = 0
        try:
            buffer = await asyncio.to_thread(destination.open, "wb")
            try:
                while chunk := await upload.read(self.chunk_bytes):
                    size += len(chunk)
                    if size > self.max_bytes:
                        raise UploadTooLargeError(self.max_bytes)
                    await asyncio.to_thread(buffer.write, chunk)
            finally:
                await asyncio.to_thread(buffer.close)
        except UploadTooLargeError:
            destination.unlink(missing_ok=True)
            logger.warning(f"Rejected upload {upload.filename!r}: larger than {self.max_bytes} bytes")
            raise
        finally:
            await upload.close()

        logger.info(f"Stored upload {upload.filename!r} as {filename} ({size} bytes)")
        return StoredUpload(filename=filename, original_name=upload.filename, path=destination, size=size)

    def resolve(self, filename: str) -> Path:
        """
        Map a stored filename back to its path.

        Raises:
            UserInputError: If ``filename`` escapes the upload directory
            NotFoundError: If no such upload exists
        """
        base = self.directory.resolve()
        path = (base / filename).resolve()
        if path.parent != base:
            raise UserInputError("Invalid filename")
        if not path.is_file():
            raise NotFoundError("File not found", {"filename": filename})
        return path

    def discard(self, path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning(f"Failed to remove upload {path}: {exc}")
