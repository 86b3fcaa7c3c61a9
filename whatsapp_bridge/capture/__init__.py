"""Capture sources feeding raw events into the bridge."""

from .base import CaptureSource
from .browser import BrowserCaptureSource

__all__ = ["BrowserCaptureSource", "CaptureSource"]
