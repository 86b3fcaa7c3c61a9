"""Publisher SPI and implementations."""

from .base import BasePublisher
from .file_publisher import FilePublisher
from .nats_publisher import NatsPublisher

__all__ = ["BasePublisher", "FilePublisher", "NatsPublisher"]
