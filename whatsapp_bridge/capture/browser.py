"""Playwright driven capture of WhatsApp Web state changes."""

from __future__ import annotations

from pathlib import Path
from threading import Lock
from typing import Any, Mapping

import structlog

from ..config.models import BrowserConfig
from ..engine.errors import CaptureError
from ..engine.models import RawEvent
from .base import CaptureSource

INJECT_SCRIPT = Path(__file__).resolve().parent / "inject.js"

_SEED_QUEUE = """() => {
    window.whatsappEvents = window.whatsappEvents || [];
    window.injectionComplete = false;
    window.listenersInjected = 0;
}"""

_DRAIN_QUEUE = """() => {
    const queue = window.whatsappEvents || [];
    window.whatsappEvents = [];
    return queue;
}"""

_INJECTION_STATUS = """() => ({
    storeExists: !!(window.Store && window.Store.Msg),
    eventsArrayExists: Array.isArray(window.whatsappEvents),
    injectionComplete: !!window.injectionComplete,
    attempts: window.injectionAttempts || 0,
    listenersCount: window.listenersInjected || 0,
})"""


class BrowserCaptureSource(CaptureSource):
    """Own a persistent Chromium profile logged into WhatsApp Web.

    The Playwright sync API is bound to the thread that started it, so every
    method must be called from the thread that drives the polling loop.
    """

    def __init__(
        self,
        config: BrowserConfig | None = None,
        user_data_dir: Path | None = None,
        page: Any | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.config = config or BrowserConfig()
        self.user_data_dir = user_data_dir or self.config.user_data_dir
        self.logger = logger or structlog.get_logger("whatsapp_bridge.capture")
        self._lock = Lock()
        self._playwright = None
        self._context = None
        self._page = None
        self._closed = False
        if page is not None:
            self._attach(page)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def launch(self) -> None:
        if self._page is not None:
            return
        try:
            from playwright.sync_api import sync_playwright
        except ImportError as exc:  # pragma: no cover
            raise RuntimeError(
                "Browser capture requires installing the 'playwright' package."
            ) from exc

        self.user_data_dir.mkdir(parents=True, exist_ok=True)
        self._playwright = sync_playwright().start()
        launch_kwargs: dict[str, Any] = {
            "headless": self.config.headless,
            "args": list(self.config.args),
            "user_agent": self.config.user_agent,
        }
        if self.config.executable_path:
            launch_kwargs["executable_path"] = self.config.executable_path
        self._context = self._playwright.chromium.launch_persistent_context(
            str(self.user_data_dir), **launch_kwargs
        )
        self._context.on("close", lambda *_: self._mark_closed("context_closed"))
        page = self._context.pages[0] if self._context.pages else self._context.new_page()
        self._attach(page)
        self.logger.info("browser_launched", profile=str(self.user_data_dir))
        self._page.goto(
            self.config.url,
            wait_until="domcontentloaded",
            timeout=self.config.navigation_timeout_ms,
        )

    def wait_for_authentication(self) -> bool:
        page = self._require_page()
        self.logger.info("waiting_for_authentication", selector=self.config.main_app_selector)
        try:
            page.wait_for_selector(self.config.main_app_selector, timeout=self.config.auth_timeout_ms)
        except Exception as exc:  # noqa: BLE001
            self.logger.error("authentication_failed", error=str(exc))
            return False
        self.logger.info("authenticated")
        return True

    def inject(self) -> bool:
        page = self._require_page()
        page.evaluate(_SEED_QUEUE)
        page.add_script_tag(content=INJECT_SCRIPT.read_text(encoding="utf-8"))
        if self.config.injection_wait_ms:
            page.wait_for_timeout(self.config.injection_wait_ms)
        status = self.injection_status()
        self.logger.info("injection_status", **status)
        return bool(status.get("injectionComplete")) and int(status.get("listenersCount") or 0) > 0

    def injection_status(self) -> dict[str, Any]:
        status = self._require_page().evaluate(_INJECTION_STATUS)
        return dict(status) if isinstance(status, Mapping) else {}

    def close(self) -> None:
        with self._lock:
            context, playwright = self._context, self._playwright
            self._context = None
            self._playwright = None
            self._page = None
            self._closed = True
        if context is not None:
            try:
                context.close()
            except Exception as exc:  # noqa: BLE001
                self.logger.warning("browser_close_failed", error=str(exc))
        if playwright is not None:
            playwright.stop()
        self.logger.info("browser_closed")

    # ------------------------------------------------------------------
    # Capture contract
    # ------------------------------------------------------------------
    def poll(self) -> list[RawEvent]:
        page = self._require_page()
        records = page.evaluate(_DRAIN_QUEUE)
        if not isinstance(records, list):
            return []
        events = []
        for record in records:
            if not isinstance(record, Mapping) or not record.get("type"):
                continue
            events.append(RawEvent.from_record(record))
        return events

    def is_healthy(self) -> bool:
        if self._closed or self._page is None:
            return False
        try:
            self._page.evaluate("() => true")
        except Exception as exc:  # noqa: BLE001
            self.logger.debug("health_probe_failed", error=str(exc))
            return False
        return True

    @property
    def available(self) -> bool:
        return self._page is not None and not self._closed

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _attach(self, page: Any) -> None:
        self._page = page
        self._closed = False
        page.on("close", lambda *_: self._mark_closed("page_closed"))
        page.on("crash", lambda *_: self._mark_closed("page_crashed"))

    def _mark_closed(self, reason: str) -> None:
        if not self._closed:
            self._closed = True
            self.logger.warning("browser_unavailable", reason=reason)

    def _require_page(self) -> Any:
        if self._page is None or self._closed:
            raise CaptureError("Session closed: browser page is not available")
        return self._page


__all__ = ["BrowserCaptureSource", "INJECT_SCRIPT"]
