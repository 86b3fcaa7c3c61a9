"""Publisher Service Provider Interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable


class BasePublisher(ABC):
    """Uniform publish contract keyed by logical destination."""

    @abstractmethod
    def publish(self, destination: str, payload: bytes) -> None:
        """Deliver one payload; raise ``PublishError`` on failure."""

    def publish_many(self, messages: Iterable[tuple[str, bytes]]) -> None:
        for destination, payload in messages:
            self.publish(destination, payload)

    @abstractmethod
    def is_connected(self) -> bool:
        """Report whether the next publish can be attempted."""

    def flush(self) -> None:
        """Flush buffered data to destination."""

    @abstractmethod
    def close(self) -> None:
        """Release underlying resources."""


__all__ = ["BasePublisher"]
