"""Tests for byte sources and source descriptor helpers."""

import base64
from pathlib import Path
from unittest.mock import patch

import aiofiles
import pytest

from tus_uploader.byte_source import (
    ByteSource,
    FileSource,
    MemorySource,
    guess_file_type,
    mime_type_from_data_url,
    strip_data_url_prefix,
)
from tus_uploader.exceptions import SourceUnavailable, ValidationError


class TestFileSource:
    def test_from_path_records_size(self, test_file: Path) -> None:
        source = FileSource.from_path(test_file)
        assert source.path == test_file
        assert source.total_size == 1000

    def test_from_path_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ValidationError, match="does not exist"):
            FileSource.from_path(tmp_path / "missing.bin")

    def test_from_path_rejects_directory(self, tmp_path: Path) -> None:
        with pytest.raises(ValidationError):
            FileSource.from_path(tmp_path)

    @pytest.mark.asyncio
    async def test_reads_windows_at_offsets(self, test_file: Path) -> None:
        content = test_file.read_bytes()
        reader = ByteSource(FileSource.from_path(test_file))

        assert await reader.read(0, 400) == content[:400]
        assert await reader.read(400, 400) == content[400:800]
        # Last window is truncated to the remaining bytes
        assert await reader.read(800, 400) == content[800:]

    @pytest.mark.asyncio
    async def test_read_at_end_returns_empty(self, test_file: Path) -> None:
        reader = ByteSource(FileSource.from_path(test_file))
        assert await reader.read(1000, 10) == b""

    @pytest.mark.asyncio
    async def test_offset_past_end_is_unavailable(self, test_file: Path) -> None:
        reader = ByteSource(FileSource.from_path(test_file))
        with pytest.raises(SourceUnavailable):
            await reader.read(1001, 10)

    @pytest.mark.asyncio
    async def test_deleted_file_is_unavailable(self, test_file: Path) -> None:
        reader = ByteSource(FileSource.from_path(test_file))
        test_file.unlink()
        with pytest.raises(SourceUnavailable, match="File I/O error"):
            await reader.read(0, 10)

    @pytest.mark.asyncio
    async def test_truncated_file_is_unavailable(self, test_file: Path) -> None:
        reader = ByteSource(FileSource.from_path(test_file))
        test_file.write_bytes(b"short")
        with pytest.raises(SourceUnavailable, match="Short read"):
            await reader.read(0, 100)

    @pytest.mark.asyncio
    async def test_file_is_opened_once_per_read(self, test_file: Path) -> None:
        reader = ByteSource(FileSource.from_path(test_file))
        with patch(
            "tus_uploader.byte_source.aiofiles.open", wraps=aiofiles.open
        ) as mock_open:
            await reader.read(0, 100)
            await reader.read(100, 100)
        assert mock_open.call_count == 2


class TestMemorySource:
    @pytest.mark.asyncio
    async def test_reads_are_slices(self) -> None:
        reader = ByteSource(MemorySource(b"0123456789"))
        assert reader.total_size == 10
        assert await reader.read(2, 3) == b"234"
        assert await reader.read(8, 5) == b"89"

    @pytest.mark.asyncio
    async def test_offset_past_end_is_unavailable(self) -> None:
        reader = ByteSource(MemorySource(b"abc"))
        with pytest.raises(SourceUnavailable):
            await reader.read(4, 1)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("offset, length", [(-1, 1), (0, 0), (0, -5)])
    async def test_invalid_arguments(self, offset: int, length: int) -> None:
        reader = ByteSource(MemorySource(b"abc"))
        with pytest.raises(ValueError):
            await reader.read(offset, length)

    def test_from_bare_base64(self) -> None:
        source = MemorySource.from_base64(base64.b64encode(b"hello").decode())
        assert source.data == b"hello"
        assert source.total_size == 5

    def test_from_data_url(self) -> None:
        encoded = base64.b64encode(b"\x89PNG").decode()
        source = MemorySource.from_base64(f"data:image/png;base64,{encoded}")
        assert source.data == b"\x89PNG"

    def test_invalid_base64(self) -> None:
        with pytest.raises(ValidationError, match="Invalid base64"):
            MemorySource.from_base64("abc")

    @pytest.mark.parametrize(
        "payload",
        ["aGVsbG8=$$$!!", "aGVs*bG8=", "data:text/plain;base64,aGVsbG8=#"],
    )
    def test_characters_outside_alphabet_are_rejected(self, payload: str) -> None:
        with pytest.raises(ValidationError, match="Invalid base64"):
            MemorySource.from_base64(payload)

    def test_whitespace_in_payload_is_ignored(self) -> None:
        assert MemorySource.from_base64("aGVs\nbG8=\n").data == b"hello"


@pytest.mark.parametrize(
    "name, expected",
    [
        ("photo.JPG", "image/jpeg"),
        ("clip.mov", "video/mov"),
        ("notes.txt", "text/plain"),
        ("archive.tar.gz", "application/octet-stream"),
        ("README", "application/octet-stream"),
    ],
)
def test_guess_file_type(name: str, expected: str) -> None:
    assert guess_file_type(name) == expected


def test_data_url_helpers() -> None:
    assert mime_type_from_data_url("data:image/gif;base64,R0lG") == "image/gif"
    assert mime_type_from_data_url("R0lG") == "application/octet-stream"
    assert strip_data_url_prefix("data:image/gif;base64,R0lG") == "R0lG"
    assert strip_data_url_prefix("R0lG") == "R0lG"
