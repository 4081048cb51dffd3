from .byte_source import ByteSource, FileSource, MemorySource
from .event_emitter import Emitter
from .exceptions import (
    AuthenticationFailure,
    ProtocolError,
    SourceUnavailable,
    TransferFailure,
    TransportError,
    UploaderError,
    ValidationError,
)
from .models import RetryConfig, SessionSnapshot, SessionState, UploadOptions
from .retry_policy import RetryDecision, RetryPolicy
from .transfer_client import TransferClient
from .upload_session import UploadSession
from .uploader import Uploader

__version__ = "0.1.0"

__all__ = [
    "AuthenticationFailure",
    "ByteSource",
    "Emitter",
    "FileSource",
    "MemorySource",
    "ProtocolError",
    "RetryConfig",
    "RetryDecision",
    "RetryPolicy",
    "SessionSnapshot",
    "SessionState",
    "SourceUnavailable",
    "TransferClient",
    "TransferFailure",
    "TransportError",
    "UploadOptions",
    "UploadSession",
    "Uploader",
    "UploaderError",
    "ValidationError",
]
