from pathlib import Path

import pytest

from tests.unit.helpers import FakeTransferClient


@pytest.fixture
def transfer_client() -> FakeTransferClient:
    return FakeTransferClient()


@pytest.fixture
def test_file(tmp_path: Path) -> Path:
    """A 1000 byte file with non-repeating content."""
    path = tmp_path / "photo.jpg"
    path.write_bytes(bytes(i % 251 for i in range(1000)))
    return path
