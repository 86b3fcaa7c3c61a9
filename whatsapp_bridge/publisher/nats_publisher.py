"""NATS publisher bridging the synchronous pipeline to the asyncio client."""

from __future__ import annotations

import asyncio
import threading
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Awaitable, Callable

import nats
import structlog

from ..config.models import NatsConfig
from ..engine.errors import PublishError
from .base import BasePublisher

Connector = Callable[..., Awaitable[Any]]


class NatsPublisher(BasePublisher):
    """Publish payloads to the subject configured for each destination.

    nats-py is asyncio only, so the publisher owns an event loop running on a
    daemon thread and submits every operation to it, waiting at most
    ``publish_timeout`` seconds for the result.
    """

    def __init__(
        self,
        config: NatsConfig | None = None,
        connector: Connector | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.config = config or NatsConfig()
        self.subjects = self.config.subjects()
        self.logger = logger or structlog.get_logger("whatsapp_bridge.nats")
        self._connector = connector or nats.connect
        self._client: Any | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------
    def connect(self) -> None:
        if self.is_connected():
            return
        loop = self._ensure_loop()
        try:
            self._client = self._wait(
                self._connector(
                    servers=list(self.config.servers),
                    connect_timeout=self.config.connect_timeout,
                    reconnect_time_wait=self.config.reconnect_time_wait,
                    max_reconnect_attempts=self.config.max_reconnect_attempts,
                    error_cb=self._error_cb,
                    disconnected_cb=self._disconnected_cb,
                    reconnected_cb=self._reconnected_cb,
                    closed_cb=self._closed_cb,
                ),
                loop,
                self.config.connect_timeout + 1,
            )
        except Exception as exc:  # noqa: BLE001
            self.logger.error("nats_connect_failed", servers=self.config.servers, error=str(exc))
            raise PublishError(f"Failed to connect to NATS at {', '.join(self.config.servers)}: {exc}") from exc
        self.logger.info("nats_connected", servers=self.config.servers)

    def is_connected(self) -> bool:
        client = self._client
        return bool(client is not None and getattr(client, "is_connected", False))

    def close(self) -> None:
        with self._lock:
            client, loop, thread = self._client, self._loop, self._thread
            self._client = None
            self._loop = None
            self._thread = None
        if loop is None:
            return
        if client is not None:
            try:
                self._wait(client.drain(), loop, self.config.publish_timeout)
            except Exception as exc:  # noqa: BLE001
                self.logger.warning("nats_drain_failed", error=str(exc))
        loop.call_soon_threadsafe(loop.stop)
        if thread is not None:
            thread.join(timeout=self.config.publish_timeout)
        self.logger.info("nats_closed")

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------
    def subject_for(self, destination: str) -> str:
        try:
            return self.subjects[destination]
        except KeyError as exc:
            raise PublishError(f"No subject configured for destination {destination!r}") from exc

    def publish(self, destination: str, payload: bytes) -> None:
        subject = self.subject_for(destination)
        client, loop = self._client, self._loop
        if client is None or loop is None or not self.is_connected():
            raise PublishError("NATS connection not available")
        try:
            self._wait(client.publish(subject, payload), loop, self.config.publish_timeout)
        except Exception as exc:  # noqa: BLE001
            raise PublishError(f"Failed to publish to {subject}: {exc}") from exc
        self.logger.debug("nats_published", subject=subject, size=len(payload))

    def flush(self) -> None:
        client, loop = self._client, self._loop
        if client is None or loop is None or not self.is_connected():
            return
        try:
            self._wait(client.flush(timeout=self.config.publish_timeout), loop, self.config.publish_timeout + 1)
        except Exception as exc:  # noqa: BLE001
            raise PublishError(f"Failed to flush NATS connection: {exc}") from exc

    def connection_info(self) -> dict[str, Any]:
        client = self._client
        url = getattr(client, "connected_url", None) if client is not None else None
        return {
            "servers": list(self.config.servers),
            "connected": self.is_connected(),
            "connected_url": url.geturl() if hasattr(url, "geturl") else url,
            "subjects": dict(self.subjects),
        }

    # ------------------------------------------------------------------
    # Event loop plumbing
    # ------------------------------------------------------------------
    def _ensure_loop(self) -> asyncio.AbstractEventLoop:
        with self._lock:
            if self._loop is None:
                loop = asyncio.new_event_loop()
                thread = threading.Thread(
                    target=self._run_loop, args=(loop,), name="nats-publisher", daemon=True
                )
                thread.start()
                self._loop = loop
                self._thread = thread
            return self._loop

    @staticmethod
    def _run_loop(loop: asyncio.AbstractEventLoop) -> None:
        asyncio.set_event_loop(loop)
        try:
            loop.run_forever()
        finally:
            loop.close()

    @staticmethod
    def _wait(coro: Awaitable[Any], loop: asyncio.AbstractEventLoop, timeout: float) -> Any:
        future = asyncio.run_coroutine_threadsafe(coro, loop)
        try:
            return future.result(timeout=timeout)
        except FutureTimeoutError:
            future.cancel()
            raise

    async def _error_cb(self, exc: Exception) -> None:
        self.logger.warning("nats_error", error=str(exc))

    async def _disconnected_cb(self) -> None:
        self.logger.warning("nats_disconnected")

    async def _reconnected_cb(self) -> None:
        self.logger.info("nats_reconnected")

    async def _closed_cb(self) -> None:
        self.logger.info("nats_connection_closed")


__all__ = ["NatsPublisher"]
