"""HTTP exchanges of the resumable upload protocol.

Session creation is a ``POST`` carrying the total length and encoded
metadata; the ``Location`` header of the response becomes the target for
``PATCH`` chunk requests addressed by ``Upload-Offset``.
"""

import asyncio
import base64
import json
import logging
from collections.abc import Mapping
from urllib.parse import urljoin

import aiohttp

from tus_uploader.const import (
    AUTH_FAILURE_STATUS_CODES,
    CHUNK_CONTENT_TYPE,
    CHUNK_TIMEOUT_SECONDS,
    CREATE_TIMEOUT_SECONDS,
    DEFAULT_SOURCE,
    LOCATION_HEADER,
    SOURCE_HEADER,
    UPLOAD_LENGTH_HEADER,
    UPLOAD_METADATA_HEADER,
    UPLOAD_OFFSET_HEADER,
)
from tus_uploader.exceptions import (
    AuthenticationFailure,
    ProtocolError,
    TransferFailure,
    TransportError,
)
from tus_uploader.models import ChunkResponse

logger = logging.getLogger(__name__)


def _b64(value: str) -> str:
    return base64.b64encode(value.encode("utf-8")).decode("ascii")


def encode_metadata(
    file_name: str,
    file_type: str,
    network: str,
    group_id: str | None = None,
    keyvalues: Mapping[str, str] | None = None,
) -> str:
    """Build the ``Upload-Metadata`` header value.

    Each entry is ``<key> <base64 value>``; entries are comma separated.
    ``keyvalues`` is serialized to JSON before encoding.
    """
    pairs = [
        f"filename {_b64(file_name)}",
        f"filetype {_b64(file_type)}",
        f"network {_b64(network)}",
    ]
    if group_id:
        pairs.append(f"group_id {_b64(group_id)}")
    if keyvalues:
        encoded = json.dumps(dict(keyvalues), separators=(",", ":"))
        pairs.append(f"keyvalues {_b64(encoded)}")
    return ",".join(pairs)


def build_headers(custom_headers: Mapping[str, str] | None) -> dict[str, str]:
    """Return the headers sent with every request of a session.

    Non-empty custom headers replace the default ``Source`` header.
    """
    if custom_headers:
        return dict(custom_headers)
    return {SOURCE_HEADER: DEFAULT_SOURCE}


class TransferClient:
    """Issue creation and chunk requests over a shared aiohttp session."""

    def __init__(self, client_session: aiohttp.ClientSession) -> None:
        """Initialize the client.

        Args:
            client_session: aiohttp ClientSession for HTTP requests
        """
        self._session = client_session

    async def create_session(
        self,
        endpoint: str,
        total_size: int,
        metadata: str,
        headers: Mapping[str, str],
    ) -> str:
        """Create a resumable upload target.

        Args:
            endpoint: Creation URL supplied by the caller.
            total_size: Byte length of the whole upload.
            metadata: Encoded ``Upload-Metadata`` value.
            headers: Session headers (custom or default).

        Returns:
            The absolute URL of the upload target.

        Raises:
            AuthenticationFailure: On 401/403.
            TransferFailure: On any other non-2xx status.
            ProtocolError: If a 2xx response has no ``Location`` header.
            TransportError: If no response was received.
        """
        request_headers = {
            UPLOAD_LENGTH_HEADER: str(total_size),
            UPLOAD_METADATA_HEADER: metadata,
            **headers,
        }
        timeout = aiohttp.ClientTimeout(total=CREATE_TIMEOUT_SECONDS)
        try:
            async with self._session.post(
                endpoint, headers=request_headers, timeout=timeout
            ) as response:
                status = response.status
                if not 200 <= status < 300:
                    error_text = await response.text()
                    if status in AUTH_FAILURE_STATUS_CODES:
                        raise AuthenticationFailure(
                            f"Authentication failed: {error_text}",
                            status,
                            {"error": error_text, "code": "AUTH_ERROR"},
                        )
                    raise TransferFailure(
                        "Error initializing upload",
                        status,
                        {"error": error_text, "code": "HTTP_ERROR"},
                    )

                location = response.headers.get(LOCATION_HEADER)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(f"Upload creation request failed: {e}") from e

        if not location:
            raise ProtocolError(
                f"Upload URL not provided: no {LOCATION_HEADER} header in "
                f"HTTP {status} response"
            )

        upload_url = urljoin(endpoint, location)
        logger.info(f"Created upload target {upload_url} for {total_size} bytes")
        return upload_url

    async def send_chunk(
        self,
        upload_url: str,
        offset: int,
        data: bytes,
        headers: Mapping[str, str],
    ) -> ChunkResponse:
        """Send one chunk at ``offset``.

        Every HTTP status is returned for the retry policy to evaluate;
        response headers are captured so the final identifier can be read
        after the response context exits.

        Raises:
            TransportError: If no response was received.
        """
        request_headers = {
            "Content-Type": CHUNK_CONTENT_TYPE,
            UPLOAD_OFFSET_HEADER: str(offset),
            **headers,
        }
        timeout = aiohttp.ClientTimeout(total=CHUNK_TIMEOUT_SECONDS)
        try:
            async with self._session.patch(
                upload_url, headers=request_headers, data=data, timeout=timeout
            ) as response:
                chunk_response = ChunkResponse(
                    status=response.status,
                    headers={k.lower(): v for k, v in response.headers.items()},
                )
                if not chunk_response.ok:
                    chunk_response.body = await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(
                f"Chunk request at offset {offset} failed: {e}"
            ) from e

        logger.debug(
            f"PATCH {upload_url} offset={offset} bytes={len(data)} "
            f"-> HTTP {chunk_response.status}"
        )
        return chunk_response
