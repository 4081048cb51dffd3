"""High level uploader that owns one session per upload.

``Uploader`` mirrors the surface a UI binding needs: start an upload from a
file or a base64 payload, pause, resume, cancel, and read the latest
progress, error, retry count and upload identifier.
"""

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

import aiohttp
import pydantic

from tus_uploader.byte_source import FileSource, MemorySource, mime_type_from_data_url
from tus_uploader.const import DEFAULT_BASE64_FILE_NAME
from tus_uploader.exceptions import UploaderError, ValidationError
from tus_uploader.models import (
    Network,
    SessionSnapshot,
    UploadOptions,
)
from tus_uploader.transfer_client import TransferClient
from tus_uploader.upload_session import UploadSession

logger = logging.getLogger(__name__)


class Uploader:
    """Start uploads and expose the state of the most recent one.

    Each call to ``upload`` or ``upload_base64`` discards the previous
    session and creates a new one, so no offset or retry counter carries
    over between transfers. The caller must not start a new upload while
    the previous one is still running.
    """

    def __init__(
        self,
        client_session: aiohttp.ClientSession,
        default_options: UploadOptions | None = None,
        transfer_client: TransferClient | None = None,
    ) -> None:
        """Initialize the uploader.

        Args:
            client_session: aiohttp ClientSession for HTTP requests
            default_options: Options used when an upload call passes none.
            transfer_client: Override for the protocol client.
        """
        self._transfer_client = transfer_client or TransferClient(client_session)
        self._default_options = default_options or UploadOptions()
        self._listeners: list[tuple[str, Callable[..., Any]]] = []
        self._session: UploadSession | None = None

    @property
    def session(self) -> UploadSession | None:
        """The session of the most recent upload."""
        return self._session

    @property
    def progress(self) -> float:
        """Progress percentage of the most recent upload."""
        return self._session.progress if self._session else 0.0

    @property
    def loading(self) -> bool:
        """Whether an upload is started and not yet terminal."""
        return self._session.is_active if self._session else False

    @property
    def error(self) -> UploaderError | None:
        """Error of the most recent upload, if it failed."""
        return self._session.error if self._session else None

    @property
    def upload_response(self) -> str | None:
        """Remote identifier of the most recent completed upload."""
        return self._session.upload_id if self._session else None

    @property
    def retry_count(self) -> int:
        """Retries performed by the most recent upload."""
        return self._session.retry_count if self._session else 0

    def on(self, event: str, handler: Callable[..., Any]) -> None:
        """Subscribe ``handler`` to ``event`` on every future session."""
        self._listeners.append((event, handler))
        if self._session is not None:
            self._session.emitter.on(event, handler)

    async def upload(
        self,
        file_path: str | Path,
        network: Network,
        url: str,
        options: UploadOptions | None = None,
    ) -> SessionSnapshot:
        """Upload a local file.

        Args:
            file_path: Path of the file to upload.
            network: ``public`` or ``private``.
            url: Endpoint that creates resumable upload targets.
            options: Per-upload options.

        Returns:
            Snapshot once the upload paused or terminated.
        """
        session = self._new_session()
        try:
            options = self._resolve_options(options, network=network)
            source = FileSource.from_path(file_path)
        except UploaderError as e:
            session.fail(e)
            return session.snapshot()
        return await session.start(source, url, options)

    async def upload_base64(
        self,
        base64_string: str,
        network: Network,
        url: str,
        options: UploadOptions | None = None,
    ) -> SessionSnapshot:
        """Upload a base64 payload or ``data:`` URL held in memory.

        The payload must fit in a single chunk.
        """
        session = self._new_session()
        try:
            resolved = options or self._default_options
            options = self._resolve_options(
                options,
                network=network,
                file_type=resolved.file_type
                or mime_type_from_data_url(base64_string),
                file_name=resolved.file_name
                or resolved.name
                or DEFAULT_BASE64_FILE_NAME,
            )
            source = MemorySource.from_base64(base64_string)
        except UploaderError as e:
            session.fail(e)
            return session.snapshot()
        return await session.start(source, url, options)

    def pause(self) -> None:
        """Pause the current upload at its next checkpoint."""
        if self._session is not None:
            self._session.pause()

    async def resume(self) -> SessionSnapshot | None:
        """Resume the current upload if it is paused."""
        if self._session is None:
            return None
        return await self._session.resume()

    def cancel(self) -> None:
        """Cancel the current upload."""
        if self._session is not None:
            self._session.cancel()

    def reset_state(self) -> None:
        """Forget the most recent upload.

        The session is discarded without being cancelled.
        """
        if self._session is not None and self._session.is_active:
            logger.warning(
                f"Discarding upload session in state {self._session.state.value}"
            )
        self._session = None

    def _new_session(self) -> UploadSession:
        self.reset_state()
        session = UploadSession(self._transfer_client)
        for event, handler in self._listeners:
            session.emitter.on(event, handler)
        self._session = session
        return session

    def _resolve_options(
        self, options: UploadOptions | None, **overrides: Any
    ) -> UploadOptions:
        """Merge ``overrides`` into the upload options and validate the result.

        Raises:
            ValidationError: If an override is not a valid option value.
        """
        resolved = options or self._default_options
        try:
            return UploadOptions.model_validate(
                {**resolved.model_dump(), **overrides}
            )
        except pydantic.ValidationError as e:
            raise ValidationError(f"Invalid upload options: {e}") from e
