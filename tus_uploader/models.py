"""Models used by the upload engine."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tus_uploader.const import (
    DEFAULT_BACKOFF_MULTIPLIER,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_INITIAL_DELAY_SECONDS,
    DEFAULT_MAX_DELAY_SECONDS,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRYABLE_STATUS_CODES,
)
from tus_uploader.exceptions import UploaderError
from tus_uploader.helpers import parse_bytes

Network = Literal["public", "private"]


class SessionState(str, Enum):
    """Lifecycle states for an upload session.

    State transitions:
    - IDLE + start() -> INITIALIZING
    - INITIALIZING -> TRANSFERRING (upload target created)
    - TRANSFERRING -> PAUSED -> TRANSFERRING (pause / resume)
    - TRANSFERRING -> FINALIZING -> COMPLETED
    - INITIALIZING | TRANSFERRING | FINALIZING -> FAILED
    - Any non-terminal -> CANCELLED
    """

    IDLE = "idle"
    INITIALIZING = "initializing"
    TRANSFERRING = "transferring"
    PAUSED = "paused"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Whether no transition leaves this state."""
        return self in _TERMINAL_STATES


_TERMINAL_STATES = frozenset(
    {SessionState.COMPLETED, SessionState.CANCELLED, SessionState.FAILED}
)


class RetryConfig(BaseModel):
    """Exponential backoff configuration applied to every request.

    Attributes:
        max_retries: retries allowed after the first attempt. Negative values
            are normalized to zero.
        initial_delay: delay before the first retry, in seconds.
        max_delay: upper bound for any single delay, in seconds.
        backoff_multiplier: growth factor applied per attempt.
        retryable_statuses: HTTP statuses that trigger a retry.
    """

    model_config = ConfigDict(frozen=True)

    max_retries: int = DEFAULT_MAX_RETRIES
    initial_delay: float = Field(default=DEFAULT_INITIAL_DELAY_SECONDS, gt=0)
    max_delay: float = Field(default=DEFAULT_MAX_DELAY_SECONDS, gt=0)
    backoff_multiplier: float = Field(default=DEFAULT_BACKOFF_MULTIPLIER, ge=1)
    retryable_statuses: frozenset[int] = DEFAULT_RETRYABLE_STATUS_CODES

    @field_validator("max_retries", mode="before")
    @classmethod
    def _normalize_max_retries(cls, value: object) -> int:
        if value is None:
            return DEFAULT_MAX_RETRIES
        return max(int(value), 0)  # type: ignore[call-overload]


class UploadOptions(BaseModel):
    """Caller supplied options for a single upload.

    Attributes:
        custom_headers: headers sent on every request. When non-empty they
            replace the default ``Source`` header.
        name: display name of the uploaded object.
        file_name: explicit file name, used for in-memory sources.
        file_type: explicit MIME type, used for in-memory sources.
        keyvalues: key-value tags stored with the object.
        group_id: group the object is added to.
        network: ``public`` or ``private`` network.
        chunk_size: maximum bytes per chunk request. Accepts unit strings
            such as ``"50mb"``; non-positive values fall back to the default.
        retry_options: backoff configuration.
        bandwidth_limit: optional cap on upload rate, in bytes per second.
    """

    model_config = ConfigDict(frozen=True)

    custom_headers: dict[str, str] = Field(default_factory=dict)
    name: str | None = None
    file_name: str | None = None
    file_type: str | None = None
    keyvalues: dict[str, str] | None = None
    group_id: str | None = None
    network: Network = "public"
    chunk_size: int = DEFAULT_CHUNK_SIZE
    retry_options: RetryConfig = Field(default_factory=RetryConfig)
    bandwidth_limit: int | None = Field(default=None, gt=0)

    @field_validator("chunk_size", mode="before")
    @classmethod
    def _parse_chunk_size(cls, value: object) -> int:
        if value is None:
            return DEFAULT_CHUNK_SIZE
        parsed = parse_bytes(value)  # type: ignore[arg-type]
        return parsed if parsed > 0 else DEFAULT_CHUNK_SIZE


@dataclass
class ChunkResponse:
    """HTTP response data captured before the response context is closed.

    Header names are stored lower-cased so lookups are case-insensitive.
    """

    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: str = ""

    @property
    def ok(self) -> bool:
        """Whether the status is 2xx."""
        return 200 <= self.status < 300

    def header(self, name: str) -> str | None:
        """Return a header value by case-insensitive name."""
        return self.headers.get(name.lower())


@dataclass(frozen=True)
class SessionSnapshot:
    """Consistent view of an upload session at one point in time."""

    state: SessionState
    progress: float
    current_offset: int
    total_size: int
    destination_url: str | None
    upload_id: str | None
    error: UploaderError | None
    retry_count: int
    attempt: int
