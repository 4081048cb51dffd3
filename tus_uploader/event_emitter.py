"""Per-session event emitter for observing upload state."""

import asyncio
import logging
from typing import Any

from pyee.asyncio import AsyncIOEventEmitter

logger = logging.getLogger(__name__)


class Emitter(AsyncIOEventEmitter):
    """Event channel owned by a single upload session.

    Exceptions raised by handlers are logged instead of reaching the emitter.
    """

    # Session -> observers
    STATE_CHANGED = "STATE_CHANGED"
    # (state:SessionState)

    PROGRESS = "PROGRESS"
    # (progress:float, current_offset:int, total_size:int)

    RETRY = "RETRY"
    # (attempt:int, delay:float, error:UploaderError)

    UPLOAD_COMPLETE = "UPLOAD_COMPLETE"
    # (upload_id:str | None)

    UPLOAD_FAILED = "UPLOAD_FAILED"
    # (error:UploaderError)

    UPLOAD_CANCELLED = "UPLOAD_CANCELLED"
    # ()

    def __init__(self, *, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Initialize the event emitter.

        Args:
            loop: The event loop to use for async event handlers. Defaults to
                the running loop at emit time.
        """
        super().__init__(loop=loop)
        self.on("error", self._log_handler_error)

    @staticmethod
    def _log_handler_error(error: Exception) -> None:
        logger.error("Event handler raised: %s", error, exc_info=error)

    def emit(self, event: str, *args: Any, **kwargs: Any) -> bool:
        """Emit an event with logging.

        Args:
            event: The event name to emit.
            *args: Positional arguments to pass to handlers.
            **kwargs: Keyword arguments to pass to handlers.

        Returns:
            True if the event had listeners, False otherwise.
        """
        if logger.isEnabledFor(logging.DEBUG):
            formatted_args = []
            for arg in args:
                r = repr(arg)
                formatted_args.append(f"{r[:100]}..." if len(r) > 100 else r)
            logger.debug("EVENT %s: %s", event, ", ".join(formatted_args))
        return super().emit(event, *args, **kwargs)
