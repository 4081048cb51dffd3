"""Upload session state machine.

An ``UploadSession`` drives one transfer from creation of the remote upload
target to completion. Chunks are sent strictly one at a time; pause and
cancel requests are recorded immediately but only observed at checkpoints
(the top of every loop iteration and around every retry wait), so an
in-flight request always runs to completion.
"""

import asyncio
import logging
import threading
from collections.abc import Awaitable

from tus_uploader.bandwidth_limiter import BandwidthLimiter
from tus_uploader.byte_source import (
    ByteSource,
    ByteSourceDescriptor,
    FileSource,
    MemorySource,
    guess_file_type,
)
from tus_uploader.const import (
    DEFAULT_BASE64_FILE_NAME,
    DEFAULT_FILE_NAME,
    DEFAULT_FILE_TYPE,
    MAX_PROGRESS_BEFORE_COMPLETE,
    UPLOAD_CID_HEADER,
)
from tus_uploader.event_emitter import Emitter
from tus_uploader.exceptions import (
    TransferFailure,
    TransportError,
    UploaderError,
    ValidationError,
)
from tus_uploader.models import (
    ChunkResponse,
    SessionSnapshot,
    SessionState,
    UploadOptions,
)
from tus_uploader.retry_policy import RetryPolicy
from tus_uploader.transfer_client import (
    TransferClient,
    build_headers,
    encode_metadata,
)

logger = logging.getLogger(__name__)

_DRIVING_STATES = frozenset(
    {SessionState.INITIALIZING, SessionState.TRANSFERRING, SessionState.FINALIZING}
)


def describe_source(
    source: ByteSourceDescriptor, options: UploadOptions
) -> tuple[str, str]:
    """Return the (file name, MIME type) advertised for a source."""
    if isinstance(source, FileSource):
        file_name = options.name or source.path.name or DEFAULT_FILE_NAME
        file_type = options.file_type or guess_file_type(source.path.name)
    else:
        file_name = options.file_name or options.name or DEFAULT_BASE64_FILE_NAME
        file_type = options.file_type or DEFAULT_FILE_TYPE
    return file_name, file_type


class UploadSession:
    """Drive a single resumable upload.

    A session is used for exactly one transfer. Terminal failures are never
    raised out of ``start`` or ``resume``; they are recorded on the session
    and reported through its ``emitter``.
    """

    def __init__(
        self,
        transfer_client: TransferClient,
        *,
        emitter: Emitter | None = None,
    ) -> None:
        """Initialize an idle session.

        Args:
            transfer_client: Client used for creation and chunk requests.
            emitter: Event channel for observers; a private one is created
                when omitted.
        """
        self._transfer_client = transfer_client
        self.emitter = emitter or Emitter()

        # Guards every field below; never held across an await.
        self._lock = threading.Lock()
        # Held while the driving loop runs: at most one request in flight.
        self._drive_lock = asyncio.Lock()
        self._cancel_event = asyncio.Event()
        self._loop: asyncio.AbstractEventLoop | None = None

        self._state = SessionState.IDLE
        self._source: ByteSource | None = None
        self._retry_policy: RetryPolicy | None = None
        self._limiter: BandwidthLimiter | None = None
        self._headers: dict[str, str] = {}
        self._destination_url: str | None = None
        self._total_size = 0
        self._current_offset = 0
        self._chunk_size = 0
        self._attempt = 0
        self._retry_count = 0
        self._pending_pause = False
        self._pending_cancel = False
        self._last_response: ChunkResponse | None = None
        self._progress = 0.0
        self._upload_id: str | None = None
        self._error: UploaderError | None = None

    @property
    def state(self) -> SessionState:
        """Current lifecycle state."""
        return self._state

    @property
    def progress(self) -> float:
        """Percentage acknowledged; 100 only once completed."""
        return self._progress

    @property
    def current_offset(self) -> int:
        """Bytes acknowledged by the remote."""
        return self._current_offset

    @property
    def total_size(self) -> int:
        """Byte length of the source."""
        return self._total_size

    @property
    def destination_url(self) -> str | None:
        """Upload target assigned by the remote at creation."""
        return self._destination_url

    @property
    def upload_id(self) -> str | None:
        """Remote object identifier, available once completed."""
        return self._upload_id

    @property
    def error(self) -> UploaderError | None:
        """The error that failed the session, if any."""
        return self._error

    @property
    def retry_count(self) -> int:
        """Total retries performed over the life of the session."""
        return self._retry_count

    @property
    def is_active(self) -> bool:
        """Whether the session is started and not yet terminal."""
        return self._state in _DRIVING_STATES or self._state is SessionState.PAUSED

    def snapshot(self) -> SessionSnapshot:
        """Return a consistent view of all observable fields."""
        with self._lock:
            return SessionSnapshot(
                state=self._state,
                progress=self._progress,
                current_offset=self._current_offset,
                total_size=self._total_size,
                destination_url=self._destination_url,
                upload_id=self._upload_id,
                error=self._error,
                retry_count=self._retry_count,
                attempt=self._attempt,
            )

    async def start(
        self,
        source: ByteSourceDescriptor,
        destination: str,
        options: UploadOptions | None = None,
    ) -> SessionSnapshot:
        """Create the remote upload target and transfer the source.

        Returns once the session is paused or has reached a terminal state.

        Args:
            source: File-backed or memory-backed origin of the bytes.
            destination: Endpoint that creates resumable upload targets.
            options: Upload options; defaults apply when omitted.

        Returns:
            Snapshot of the session after the driving loop stopped.

        Raises:
            RuntimeError: If the session was already started.
        """
        options = options or UploadOptions()
        with self._lock:
            if self._state is not SessionState.IDLE:
                raise RuntimeError(
                    f"Upload session already started (state={self._state.value})"
                )
            self._state = SessionState.INITIALIZING
            self._loop = asyncio.get_running_loop()
            self._chunk_size = options.chunk_size
            self._retry_policy = RetryPolicy(options.retry_options)
            self._headers = build_headers(options.custom_headers)
            self._total_size = source.total_size
            if options.bandwidth_limit:
                self._limiter = BandwidthLimiter(options.bandwidth_limit)
        self.emitter.emit(Emitter.STATE_CHANGED, SessionState.INITIALIZING)

        return await self._run(self._initialize(source, destination, options))

    async def resume(self) -> SessionSnapshot:
        """Continue a paused transfer from the acknowledged offset.

        No-op unless the session is paused with an established upload target.
        """
        with self._lock:
            resumable = (
                self._state is SessionState.PAUSED
                and self._destination_url is not None
                and self._source is not None
            )
            if resumable:
                self._state = SessionState.TRANSFERRING
                self._loop = asyncio.get_running_loop()
        if not resumable:
            return self.snapshot()

        logger.info(
            f"Resuming upload to {self._destination_url} at offset "
            f"{self._current_offset}/{self._total_size}"
        )
        self.emitter.emit(Emitter.STATE_CHANGED, SessionState.TRANSFERRING)
        return await self._run(self._drive())

    def pause(self) -> None:
        """Request a pause at the next checkpoint. No-op unless transferring."""
        with self._lock:
            if self._state is SessionState.TRANSFERRING:
                self._pending_pause = True

    def cancel(self) -> None:
        """Request cancellation.

        The flag is set immediately and any retry wait is woken. A session
        that is not currently driving (idle or paused) is cancelled at once;
        otherwise the driving loop observes the flag at its next checkpoint.
        No-op once the session has terminated. Safe to call from any thread.
        """
        with self._lock:
            if self._state.is_terminal:
                return
            self._pending_cancel = True
            cancel_now = self._state in (SessionState.IDLE, SessionState.PAUSED)
        self._wake()
        if cancel_now:
            self._mark_cancelled()

    def _wake(self) -> None:
        """Set the cancel event on the loop that drives the session."""
        loop = self._loop
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if loop is None or loop is running or loop.is_closed():
            self._cancel_event.set()
        else:
            loop.call_soon_threadsafe(self._cancel_event.set)

    def fail(self, error: UploaderError) -> None:
        """Record a failure detected before the transfer could start.

        Only an idle session can be failed this way.
        """
        with self._lock:
            if self._state is not SessionState.IDLE:
                raise RuntimeError(
                    f"Cannot fail a session in state {self._state.value}"
                )
        self._mark_failed(error)

    async def _run(self, step: Awaitable[None]) -> SessionSnapshot:
        """Await a driving step and record any failure on the session."""
        try:
            await step
        except UploaderError as e:
            self._mark_failed(e)
        except asyncio.CancelledError:
            self._mark_cancelled()
            raise
        except Exception as e:
            logger.exception("Unexpected error during upload")
            self._mark_failed(UploaderError(f"Unexpected error: {e}"))
        return self.snapshot()

    async def _initialize(
        self,
        source: ByteSourceDescriptor,
        destination: str,
        options: UploadOptions,
    ) -> None:
        if isinstance(source, MemorySource) and source.total_size > self._chunk_size:
            raise ValidationError(
                f"In-memory source size ({source.total_size} bytes) exceeds "
                f"chunk size ({self._chunk_size} bytes). Use a file upload for "
                "larger payloads."
            )
        self._source = ByteSource(source)

        file_name, file_type = describe_source(source, options)
        metadata = encode_metadata(
            file_name,
            file_type,
            options.network,
            group_id=options.group_id,
            keyvalues=options.keyvalues,
        )
        logger.info(
            f"Starting upload of {file_name} ({self._total_size} bytes, "
            f"{file_type}) to {destination}"
        )

        destination_url = await self._create_with_retries(
            destination, metadata
        )
        if destination_url is None:
            return

        with self._lock:
            if self._state is not SessionState.INITIALIZING:
                return
            self._destination_url = destination_url
            self._state = SessionState.TRANSFERRING
        self.emitter.emit(Emitter.STATE_CHANGED, SessionState.TRANSFERRING)

        await self._drive()

    async def _create_with_retries(
        self, destination: str, metadata: str
    ) -> str | None:
        """Create the upload target, retrying per policy.

        Returns:
            The target URL, or None if the session stopped during a retry wait.
        """
        assert self._retry_policy is not None
        attempt = 0
        while True:
            if self._checkpoint():
                return None
            try:
                return await self._transfer_client.create_session(
                    destination, self._total_size, metadata, self._headers
                )
            except UploaderError as e:
                decision = self._retry_policy.should_retry(attempt, e)
                if not decision.retry:
                    raise
                if not await self._wait_for_retry(attempt, decision.delay, e):
                    return None
                attempt += 1

    async def _drive(self) -> None:
        """Send chunks from the current offset until a checkpoint stops us."""
        async with self._drive_lock:
            while True:
                if self._checkpoint():
                    return

                offset = self._current_offset
                if offset >= self._total_size:
                    self._finalize()
                    return

                assert self._source is not None
                length = min(self._chunk_size, self._total_size - offset)
                data = await self._source.read(offset, length)
                if self._limiter is not None:
                    await self._limiter.acquire(len(data))

                response = await self._send_with_retries(offset, data)
                if response is None:
                    return

                new_offset = offset + len(data)
                progress = min(
                    new_offset / self._total_size * 100, MAX_PROGRESS_BEFORE_COMPLETE
                )
                with self._lock:
                    self._current_offset = new_offset
                    self._last_response = response
                    self._progress = progress
                logger.debug(
                    f"Uploaded chunk: {new_offset}/{self._total_size} bytes"
                )
                self.emitter.emit(
                    Emitter.PROGRESS, progress, new_offset, self._total_size
                )

    async def _send_with_retries(
        self, offset: int, data: bytes
    ) -> ChunkResponse | None:
        """Send one chunk, retrying per policy.

        Returns:
            The successful response, or None if the session stopped during a
            retry wait.

        Raises:
            TransferFailure: On a non-retryable status or exhausted retries.
            TransportError: When transport failures exhaust the retries.
        """
        assert self._retry_policy is not None
        assert self._destination_url is not None
        with self._lock:
            self._attempt = 0

        attempt = 0
        while True:
            try:
                outcome: ChunkResponse | TransportError = (
                    await self._transfer_client.send_chunk(
                        self._destination_url, offset, data, self._headers
                    )
                )
            except TransportError as e:
                outcome = e

            if isinstance(outcome, ChunkResponse) and outcome.ok:
                return outcome

            decision = self._retry_policy.should_retry(attempt, outcome)
            error = self._as_error(outcome)
            if not decision.retry:
                raise error
            if not await self._wait_for_retry(attempt, decision.delay, error):
                return None
            attempt += 1

    @staticmethod
    def _as_error(outcome: ChunkResponse | TransportError) -> UploaderError:
        if isinstance(outcome, ChunkResponse):
            return TransferFailure(
                f"HTTP error during chunk upload: {outcome.body}",
                outcome.status,
                {"error": outcome.body, "code": "HTTP_ERROR"},
            )
        return outcome

    async def _wait_for_retry(
        self, attempt: int, delay: float, error: UploaderError
    ) -> bool:
        """Record a retry and wait out its backoff delay.

        Returns:
            True to send the next attempt, False if a checkpoint stopped the
            session before or during the wait.
        """
        assert self._retry_policy is not None
        max_retries = self._retry_policy.config.max_retries
        logger.warning(
            f"Attempt {attempt + 1}/{max_retries + 1} failed: {error}. "
            f"Retrying in {delay:.1f}s..."
        )
        with self._lock:
            self._attempt = attempt + 1
            self._retry_count += 1
        self.emitter.emit(Emitter.RETRY, attempt + 1, delay, error)

        if self._checkpoint():
            return False
        await self._retry_policy.wait(delay, self._cancel_event)
        return not self._checkpoint()

    def _checkpoint(self) -> bool:
        """Apply a pending cancel or pause.

        Returns:
            True if the driving loop must stop.
        """
        with self._lock:
            if self._state.is_terminal:
                return True
            if self._pending_cancel:
                cancel = True
            elif self._pending_pause and self._state is SessionState.TRANSFERRING:
                cancel = False
                self._pending_pause = False
                self._state = SessionState.PAUSED
            else:
                return False

        if cancel:
            self._mark_cancelled()
        else:
            logger.info(
                f"Upload paused at offset {self._current_offset}/{self._total_size}"
            )
            self.emitter.emit(Emitter.STATE_CHANGED, SessionState.PAUSED)
        return True

    def _finalize(self) -> None:
        """Read the remote identifier from the last chunk response."""
        with self._lock:
            self._state = SessionState.FINALIZING
        self.emitter.emit(Emitter.STATE_CHANGED, SessionState.FINALIZING)

        upload_id = None
        if self._last_response is not None:
            upload_id = self._last_response.header(UPLOAD_CID_HEADER) or None
        if upload_id is None:
            logger.warning(
                f"Upload to {self._destination_url} finished without an "
                f"{UPLOAD_CID_HEADER} header"
            )

        with self._lock:
            self._upload_id = upload_id
            self._progress = 100.0
            self._state = SessionState.COMPLETED
        self._release()
        logger.info(
            f"Upload complete: {self._total_size} bytes, upload id {upload_id}"
        )
        self.emitter.emit(Emitter.STATE_CHANGED, SessionState.COMPLETED)
        self.emitter.emit(Emitter.UPLOAD_COMPLETE, upload_id)

    def _mark_cancelled(self) -> None:
        with self._lock:
            if self._state.is_terminal:
                return
            self._state = SessionState.CANCELLED
        self._release()
        logger.info(
            f"Upload cancelled at offset {self._current_offset}/{self._total_size}"
        )
        self.emitter.emit(Emitter.STATE_CHANGED, SessionState.CANCELLED)
        self.emitter.emit(Emitter.UPLOAD_CANCELLED)

    def _mark_failed(self, error: UploaderError) -> None:
        with self._lock:
            if self._state.is_terminal:
                return
            self._state = SessionState.FAILED
            self._error = error
        self._release()
        logger.error(
            f"Upload failed at offset {self._current_offset}/{self._total_size}: "
            f"{error}"
        )
        self.emitter.emit(Emitter.STATE_CHANGED, SessionState.FAILED)
        self.emitter.emit(Emitter.UPLOAD_FAILED, error)

    def _release(self) -> None:
        """Drop session-owned resources once terminal."""
        with self._lock:
            self._source = None
            self._limiter = None
            self._pending_pause = False
