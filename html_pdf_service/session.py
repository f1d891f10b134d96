"""
Render session - one Chromium process for exactly one conversion.

A RenderSession walks a fixed state machine:

    IDLE -> LAUNCHING -> LAUNCHED -> LOADING_CONTENT -> CONTENT_READY
         -> EXPORTING -> EXPORTED

Any failing operation moves the session to FAILED, and close() moves it
from any state to CLOSED. close() runs exactly once, survives task
cancellation and never raises: a browser that refuses to die is logged
as a CloseError so the original outcome of the request is preserved.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .config import ServiceSettings
from .errors import (
    CloseError,
    ContentLoadError,
    ContentTimeoutError,
    ExportError,
    LaunchError,
    RenderError,
    SessionStateError,
)

logger = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF-"

PDF_OPTIONS = {
    "format": "A4",
    "print_background": True,
    "prefer_css_page_size": True,
    "margin": {
        "top": "10mm",
        "right": "10mm",
        "bottom": "10mm",
        "left": "10mm",
    },
}

# Slack on top of Playwright's own content timeout before the asyncio guard fires
CONTENT_TIMEOUT_GRACE_SECONDS = 1.0


class SessionState(str, Enum):
    """Render session states."""
    IDLE = "idle"
    LAUNCHING = "launching"
    LAUNCHED = "launched"
    LOADING_CONTENT = "loading_content"
    CONTENT_READY = "content_ready"
    EXPORTING = "exporting"
    EXPORTED = "exported"
    FAILED = "failed"
    CLOSED = "closed"


TERMINAL_STATES = {SessionState.EXPORTED, SessionState.FAILED, SessionState.CLOSED}


@dataclass
class SessionStats:
    """Process-wide launch/termination counters."""
    launched: int = 0
    closed: int = 0
    close_failures: int = 0

    @property
    def active(self) -> int:
        return self.launched - self.closed - self.close_failures

    def record_launch(self) -> None:
        self.launched += 1

    def record_close(self) -> None:
        self.closed += 1

    def record_close_failure(self) -> None:
        self.close_failures += 1

    def to_dict(self) -> dict:
        return {
            "launched": self.launched,
            "closed": self.closed,
            "closeFailures": self.close_failures,
            "active": self.active,
        }


class RenderSession:
    """Owns one browser process, one context and one page."""

    def __init__(
        self,
        browser_type: Any,
        executable_path: str,
        settings: ServiceSettings,
        stats: Optional[SessionStats] = None,
    ):
        self.browser_type = browser_type
        self.executable_path = executable_path
        self.settings = settings
        self.stats = stats if stats is not None else SessionStats()

        self.state = SessionState.IDLE
        self.started_at: Optional[float] = None
        self.error: Optional[RenderError] = None
        self.close_error: Optional[CloseError] = None

        self._browser: Any = None
        self._context: Any = None
        self._page: Any = None

    async def __aenter__(self) -> "RenderSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None and self.state not in TERMINAL_STATES:
            # Interrupted mid-operation (e.g. cancelled)
            logger.warning(f"Session interrupted in state '{self.state.value}': {exc_type.__name__}")
            self.state = SessionState.FAILED
        await self.close()
        return False

    @property
    def elapsed_ms(self) -> Optional[int]:
        """Milliseconds since launch started."""
        if self.started_at is None:
            return None
        return int((time.monotonic() - self.started_at) * 1000)

    @property
    def browser_version(self) -> Optional[str]:
        if self._browser is None:
            return None
        return self._browser.version

    def _require(self, expected: SessionState, operation: str) -> None:
        if self.state is not expected:
            raise SessionStateError(operation, self.state.value, expected.value)

    def _transition(self, state: SessionState) -> None:
        logger.debug(f"Session {self.state.value} -> {state.value}")
        self.state = state

    def _fail(self, error: RenderError) -> RenderError:
        logger.debug(f"Session {self.state.value} -> failed ({error.error_kind})")
        self.state = SessionState.FAILED
        self.error = error
        return error

    async def launch(self) -> None:
        """Start the Chromium process."""
        self._require(SessionState.IDLE, "launch")
        self._transition(SessionState.LAUNCHING)
        self.started_at = time.monotonic()

        try:
            self._browser = await self.browser_type.launch(
                executable_path=self.executable_path,
                args=self.settings.chromium_args,
                headless=True,
                timeout=self.settings.launch_timeout_ms,
            )
        except PlaywrightTimeoutError as e:
            raise self._fail(LaunchError(
                f"Chromium did not start within {self.settings.launch_timeout_ms}ms",
                details={"executablePath": self.executable_path},
            )) from e
        except PlaywrightError as e:
            raise self._fail(LaunchError(
                f"Chromium failed to start: {e.message}",
                details={"executablePath": self.executable_path},
            )) from e

        self.stats.record_launch()

        if not self._browser.is_connected():
            raise self._fail(LaunchError(
                "Chromium exited immediately after launch",
                details={"executablePath": self.executable_path},
            ))

        self._transition(SessionState.LAUNCHED)
        logger.info(f"✅ Chromium launched ({self.browser_version})")

    async def load_content(self, html: str) -> None:
        """Inject HTML into a fresh page and wait for network idle."""
        self._require(SessionState.LAUNCHED, "load content into")
        self._transition(SessionState.LOADING_CONTENT)
        timeout_ms = self.settings.content_timeout_ms

        try:
            # One bound for the whole phase: context, page and content
            await asyncio.wait_for(
                self._open_page(html, time.monotonic(), timeout_ms),
                timeout=timeout_ms / 1000 + CONTENT_TIMEOUT_GRACE_SECONDS,
            )
        except (PlaywrightTimeoutError, asyncio.TimeoutError) as e:
            raise self._fail(ContentTimeoutError(timeout_ms)) from e
        except PlaywrightError as e:
            raise self._fail(ContentLoadError(f"Failed to load HTML content: {e.message}")) from e

        self._transition(SessionState.CONTENT_READY)
        logger.info(f"✅ HTML content ready after {self.elapsed_ms}ms")

    async def _open_page(self, html: str, started: float, timeout_ms: int) -> None:
        self._context = await self._browser.new_context(
            ignore_https_errors=True,
            viewport=self.settings.viewport,
        )
        self._page = await self._context.new_page()

        spent_ms = int((time.monotonic() - started) * 1000)
        if spent_ms >= timeout_ms:
            raise asyncio.TimeoutError()
        await self._page.set_content(html, wait_until="networkidle", timeout=timeout_ms - spent_ms)

    async def export_pdf(self) -> bytes:
        """Print the loaded page to PDF."""
        self._require(SessionState.CONTENT_READY, "export")
        self._transition(SessionState.EXPORTING)
        timeout_ms = self.settings.export_timeout_ms

        try:
            if timeout_ms:
                pdf_bytes = await asyncio.wait_for(self._page.pdf(**PDF_OPTIONS), timeout=timeout_ms / 1000)
            else:
                pdf_bytes = await self._page.pdf(**PDF_OPTIONS)
        except asyncio.TimeoutError as e:
            raise self._fail(ExportError(
                f"PDF export did not finish within {timeout_ms}ms",
                details={"timeoutMs": timeout_ms},
            )) from e
        except PlaywrightError as e:
            raise self._fail(ExportError(f"PDF export failed: {e.message}")) from e

        if not pdf_bytes:
            raise self._fail(ExportError("PDF export returned an empty document"))
        if not pdf_bytes.startswith(PDF_MAGIC):
            raise self._fail(ExportError("PDF export returned data without a PDF header"))

        self._transition(SessionState.EXPORTED)
        logger.info(f"✅ PDF exported: {len(pdf_bytes)} bytes")
        return pdf_bytes

    async def close(self) -> None:
        """Terminate the browser. Idempotent and never raises."""
        if self.state is SessionState.CLOSED:
            return

        browser, self._browser = self._browser, None
        self._page = None
        self._context = None
        try:
            if browser is not None:
                await asyncio.shield(self._terminate(browser))
        finally:
            self._transition(SessionState.CLOSED)

    async def _terminate(self, browser: Any) -> None:
        try:
            await browser.close()
        except Exception as e:
            self.close_error = CloseError(f"Failed to close Chromium: {e}")
            self.stats.record_close_failure()
            logger.error(f"❌ {self.close_error.message}")
            return
        self.stats.record_close()
        logger.debug("Chromium closed")
