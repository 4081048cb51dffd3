import logging

from tus_uploader.event_emitter import Emitter
from tus_uploader.models import SessionState


def test_emit_calls_sync_handlers() -> None:
    emitter = Emitter()
    received = []
    emitter.on(Emitter.PROGRESS, lambda *args: received.append(args))

    assert emitter.emit(Emitter.PROGRESS, 50.0, 500, 1000) is True
    assert received == [(50.0, 500, 1000)]


def test_emit_without_listeners_returns_false() -> None:
    assert Emitter().emit(Emitter.UPLOAD_CANCELLED) is False


def test_emit_logs_truncated_arguments(caplog) -> None:
    emitter = Emitter()

    with caplog.at_level(logging.DEBUG, logger="tus_uploader.event_emitter"):
        emitter.emit(Emitter.STATE_CHANGED, SessionState.PAUSED)
        emitter.emit(Emitter.UPLOAD_COMPLETE, "x" * 500)

    messages = [record.getMessage() for record in caplog.records]
    assert "EVENT STATE_CHANGED" in messages[0]
    assert messages[1].endswith("...")
    assert len(messages[1]) < 200


def test_handler_exception_is_logged_not_raised(caplog) -> None:
    emitter = Emitter()

    def broken_handler(*args) -> None:
        raise RuntimeError("observer bug")

    emitter.on(Emitter.PROGRESS, broken_handler)

    with caplog.at_level(logging.ERROR, logger="tus_uploader.event_emitter"):
        assert emitter.emit(Emitter.PROGRESS, 10.0, 100, 1000) is True

    assert any("observer bug" in record.getMessage() for record in caplog.records)
