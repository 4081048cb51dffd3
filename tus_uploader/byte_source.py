"""Byte sources for chunked uploads.

A source descriptor is either file-backed or memory-backed; ``ByteSource``
reads ``length`` bytes at ``offset`` from whichever variant it wraps.
"""

import base64
import binascii
import logging
import re
from dataclasses import dataclass
from pathlib import Path

import aiofiles

from tus_uploader.const import DEFAULT_FILE_TYPE
from tus_uploader.exceptions import SourceUnavailable, ValidationError

logger = logging.getLogger(__name__)

MIME_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "pdf": "application/pdf",
    "json": "application/json",
    "txt": "text/plain",
    "mp4": "video/mp4",
    "mov": "video/mov",
    "mp3": "audio/mpeg",
}

_DATA_URL_MIME = re.compile(r"data:([^;]+)")


def guess_file_type(file_name: str) -> str:
    """Return the MIME type for a file name based on its extension."""
    extension = file_name.rsplit(".", 1)[-1].lower() if "." in file_name else ""
    return MIME_TYPES.get(extension, DEFAULT_FILE_TYPE)


def mime_type_from_data_url(base64_string: str) -> str:
    """Return the MIME type declared by a ``data:`` URL prefix, if any."""
    if base64_string.startswith("data:"):
        match = _DATA_URL_MIME.match(base64_string)
        if match:
            return match.group(1)
    return DEFAULT_FILE_TYPE


def strip_data_url_prefix(base64_string: str) -> str:
    """Drop a ``data:<mime>;base64,`` prefix, leaving the payload."""
    if "," in base64_string:
        return base64_string.split(",", 1)[1]
    return base64_string


@dataclass(frozen=True)
class FileSource:
    """A file on local disk, sized once when the session starts."""

    path: Path
    total_size: int

    @classmethod
    def from_path(cls, path: str | Path) -> "FileSource":
        """Build a descriptor for an existing file.

        Raises:
            ValidationError: If the path does not point at a regular file.
        """
        file_path = Path(path)
        if not file_path.is_file():
            raise ValidationError(f"File does not exist at path: {path}")
        return cls(path=file_path, total_size=file_path.stat().st_size)


@dataclass(frozen=True)
class MemorySource:
    """An already decoded in-memory buffer."""

    data: bytes

    @property
    def total_size(self) -> int:
        """Length of the buffer in bytes."""
        return len(self.data)

    @classmethod
    def from_base64(cls, base64_string: str) -> "MemorySource":
        """Decode a bare base64 string or a base64 ``data:`` URL.

        Raises:
            ValidationError: If the payload is not valid base64.
        """
        payload = "".join(strip_data_url_prefix(base64_string).split())
        try:
            data = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValidationError(f"Invalid base64 data: {e}") from e
        return cls(data=data)


ByteSourceDescriptor = FileSource | MemorySource


class ByteSource:
    """Read fixed windows of bytes from a source descriptor."""

    def __init__(self, descriptor: ByteSourceDescriptor) -> None:
        """Initialize the reader.

        Args:
            descriptor: The file-backed or memory-backed origin.
        """
        self._descriptor = descriptor

    @property
    def descriptor(self) -> ByteSourceDescriptor:
        """The wrapped source descriptor."""
        return self._descriptor

    @property
    def total_size(self) -> int:
        """Total number of bytes in the source."""
        return self._descriptor.total_size

    async def read(self, offset: int, length: int) -> bytes:
        """Read up to ``length`` bytes starting at ``offset``.

        Args:
            offset: Byte position to start from.
            length: Maximum number of bytes to return.

        Returns:
            Exactly ``min(length, total_size - offset)`` bytes.

        Raises:
            ValueError: If ``offset`` is negative or ``length`` is not positive.
            SourceUnavailable: If ``offset`` is past the end of the source or
                the file cannot be read.
        """
        if offset < 0:
            raise ValueError(f"offset must be non-negative, got {offset}")
        if length <= 0:
            raise ValueError(f"length must be positive, got {length}")

        total_size = self.total_size
        if offset > total_size:
            raise SourceUnavailable(
                f"Offset {offset} exceeds source size {total_size}"
            )

        length = min(length, total_size - offset)
        if length == 0:
            return b""

        if isinstance(self._descriptor, MemorySource):
            return self._descriptor.data[offset : offset + length]
        return await self._read_file(self._descriptor.path, offset, length)

    async def _read_file(self, path: Path, offset: int, length: int) -> bytes:
        """Open, seek and read one window; the handle is closed on every path."""
        try:
            async with aiofiles.open(path, "rb") as f:
                await f.seek(offset)
                data = await f.read(length)
        except OSError as e:
            raise SourceUnavailable(f"File I/O error reading {path}: {e}") from e

        if len(data) != length:
            raise SourceUnavailable(
                f"Short read from {path}: expected {length} bytes at offset "
                f"{offset}, got {len(data)}"
            )
        logger.debug("Read %d bytes from %s at offset %d", length, path, offset)
        return data
