"""Constants for the resumable upload engine."""

import os

from tus_uploader.helpers import parse_bytes

BYTES_PER_MIB = 1024 * 1024

# Maximum bytes per PATCH body (50 MiB + 1)
BASE_CHUNK_SIZE = 50 * BYTES_PER_MIB + 1
DEFAULT_CHUNK_SIZE = parse_bytes(
    os.getenv("TUS_UPLOADER_CHUNK_SIZE", str(BASE_CHUNK_SIZE))
)

DEFAULT_MAX_RETRIES = 3
DEFAULT_INITIAL_DELAY_SECONDS = 1.0
DEFAULT_MAX_DELAY_SECONDS = 30.0
DEFAULT_BACKOFF_MULTIPLIER = 2.0
DEFAULT_RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})
AUTH_FAILURE_STATUS_CODES = frozenset({401, 403})

CREATE_TIMEOUT_SECONDS = 30
CHUNK_TIMEOUT_SECONDS = 300  # 5 minutes

# Protocol headers
UPLOAD_LENGTH_HEADER = "Upload-Length"
UPLOAD_METADATA_HEADER = "Upload-Metadata"
UPLOAD_OFFSET_HEADER = "Upload-Offset"
UPLOAD_CID_HEADER = "Upload-Cid"
LOCATION_HEADER = "Location"
CHUNK_CONTENT_TYPE = "application/offset+octet-stream"

SOURCE_HEADER = "Source"
DEFAULT_SOURCE = os.getenv("TUS_UPLOADER_SOURCE_HEADER", "sdk/python")

DEFAULT_FILE_TYPE = "application/octet-stream"
DEFAULT_FILE_NAME = "File from SDK"
DEFAULT_BASE64_FILE_NAME = "base64-file"

MAX_PROGRESS_BEFORE_COMPLETE = 99.9
