"""Error taxonomy shared by the capture, transform and publish stages."""

from __future__ import annotations

from typing import Iterable

from ..config.models import DEFAULT_FATAL_PATTERNS


class BridgeError(Exception):
    """Base class for bridge failures."""


class CaptureError(BridgeError):
    """Raised when pulling a batch from the capture source fails."""


class TransientCaptureError(CaptureError):
    """Capture failure worth retrying after a delay."""


class FatalCaptureError(CaptureError):
    """Capture source is gone for the rest of this run."""


class TransformError(BridgeError):
    """Mapping failure; logged by the engine, never propagated."""


class PublishError(BridgeError):
    """Broker publish failure for a single event."""


def classify_capture_error(
    exc: BaseException, fatal_patterns: Iterable[str] = DEFAULT_FATAL_PATTERNS
) -> CaptureError:
    """Map an arbitrary capture exception to a fatal or transient error."""

    if isinstance(exc, FatalCaptureError):
        return exc
    message = str(exc)
    for pattern in fatal_patterns:
        if pattern and pattern in message:
            error = FatalCaptureError(message)
            error.__cause__ = exc
            return error
    if isinstance(exc, TransientCaptureError):
        return exc
    error = TransientCaptureError(message or exc.__class__.__name__)
    error.__cause__ = exc
    return error


__all__ = [
    "BridgeError",
    "CaptureError",
    "DEFAULT_FATAL_PATTERNS",
    "FatalCaptureError",
    "PublishError",
    "TransformError",
    "TransientCaptureError",
    "classify_capture_error",
]
