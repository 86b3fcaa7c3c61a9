from __future__ import annotations

import pytest

from whatsapp_bridge.engine.errors import (
    BridgeError,
    CaptureError,
    FatalCaptureError,
    PublishError,
    TransientCaptureError,
    classify_capture_error,
)


@pytest.mark.parametrize(
    "message",
    [
        "Session closed. Most likely the page has been closed.",
        "Execution context was destroyed: detached Frame",
        "Protocol error (Runtime.callFunctionOn): Target closed.",
        "Target page, context or browser has been closed",
    ],
)
def test_known_fatal_messages(message) -> None:
    original = RuntimeError(message)
    error = classify_capture_error(original)

    assert isinstance(error, FatalCaptureError)
    assert error.__cause__ is original


def test_other_errors_are_transient() -> None:
    error = classify_capture_error(TimeoutError("evaluate timed out"))
    assert isinstance(error, TransientCaptureError)
    assert str(error) == "evaluate timed out"


def test_empty_message_uses_class_name() -> None:
    assert str(classify_capture_error(ValueError())) == "ValueError"


def test_already_classified_errors_pass_through() -> None:
    fatal = FatalCaptureError("gone")
    transient = TransientCaptureError("later")

    assert classify_capture_error(fatal) is fatal
    assert classify_capture_error(transient) is transient


def test_transient_error_matching_fatal_pattern_is_promoted() -> None:
    error = classify_capture_error(TransientCaptureError("Browser has been closed"))
    assert isinstance(error, FatalCaptureError)


def test_custom_patterns_replace_defaults() -> None:
    assert isinstance(classify_capture_error(RuntimeError("Target closed"), ["gone"]), TransientCaptureError)
    assert isinstance(classify_capture_error(RuntimeError("it is gone"), ["gone"]), FatalCaptureError)


def test_hierarchy() -> None:
    assert issubclass(FatalCaptureError, CaptureError)
    assert issubclass(CaptureError, BridgeError)
    assert issubclass(PublishError, BridgeError)
