"""Shared test doubles for the unit tests."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

from tus_uploader.models import ChunkResponse

UPLOAD_URL = "https://uploads.test/files/3f2b8c1e-4d5a-4b6c-9e7f-0a1b2c3d4e5f"
FINAL_CID = "bafkreih5aznjvttude6c3wbvqeebb6rlx5wkbzyppv7garjiubll2ceym4"

Action = ChunkResponse | BaseException | None


class FakeTransferClient:
    """In-memory stand-in for TransferClient that records every request.

    ``create_actions`` and ``chunk_actions`` are queues consumed one entry per
    request: an exception is raised, a ChunkResponse (or URL for creation) is
    returned, ``None`` falls through to the default success behaviour.
    """

    def __init__(self, keep_data: bool = True) -> None:
        self.keep_data = keep_data
        self.upload_url = UPLOAD_URL
        self.final_headers = {"upload-cid": FINAL_CID}
        self.create_calls: list[dict[str, Any]] = []
        self.chunk_calls: list[tuple[int, int]] = []
        self.chunk_headers: list[dict[str, str]] = []
        self.bodies: list[bytes] = []
        self.create_actions: list[Any] = []
        self.chunk_actions: list[Action] = []
        self.on_chunk: Callable[[int, bytes], None] | None = None
        self.total_size: int | None = None
        self.received = 0
        self.in_flight = 0
        self.max_in_flight = 0

    async def create_session(
        self,
        endpoint: str,
        total_size: int,
        metadata: str,
        headers: dict[str, str],
    ) -> str:
        self.create_calls.append({
            "endpoint": endpoint,
            "total_size": total_size,
            "metadata": metadata,
            "headers": dict(headers),
        })
        self.total_size = total_size
        if self.create_actions:
            action = self.create_actions.pop(0)
            if isinstance(action, BaseException):
                raise action
            if action is not None:
                return action
        return self.upload_url

    async def send_chunk(
        self,
        upload_url: str,
        offset: int,
        data: bytes,
        headers: dict[str, str],
    ) -> ChunkResponse:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            self.chunk_calls.append((offset, len(data)))
            self.chunk_headers.append(dict(headers))
            if self.keep_data:
                self.bodies.append(bytes(data))
            if self.on_chunk is not None:
                self.on_chunk(offset, data)

            if self.chunk_actions:
                action = self.chunk_actions.pop(0)
                if isinstance(action, BaseException):
                    raise action
                if action is not None:
                    return action

            self.received = offset + len(data)
            response_headers = {"upload-offset": str(self.received)}
            if self.total_size is not None and self.received >= self.total_size:
                response_headers.update(self.final_headers)
            return ChunkResponse(status=204, headers=response_headers)
        finally:
            self.in_flight -= 1

