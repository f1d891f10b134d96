"""
Render pipeline - one end-to-end HTML to PDF conversion.

The pipeline validates the request, opens a Playwright driver, resolves
the Chromium executable and drives a single RenderSession through
launch -> load -> export. The session is scoped with ``async with`` and
errors are caught outside that scope, so the browser is always gone by
the time a failure is turned into a RenderResult.
"""

import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from .config import ServiceSettings, get_settings
from .errors import InvalidHtmlError, LaunchError, RenderError
from .resolver import ExecutableResolver, build_resolver
from .session import RenderSession, SessionStats

logger = logging.getLogger(__name__)

PREVIEW_CHARS = 100


def json_type_name(value: Any) -> str:
    """Name a decoded JSON value's type the way clients see it."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    return "object"


@dataclass(frozen=True)
class RenderRequest:
    """HTML submitted for conversion."""
    html: str

    @classmethod
    def from_payload(cls, payload: Any) -> "RenderRequest":
        """
        Build a request from a decoded JSON body.

        Raises:
            InvalidHtmlError: if the body is not an object or ``html`` is
                missing, not a string, or blank
        """
        if not isinstance(payload, dict):
            raise InvalidHtmlError(
                "Request body must be a JSON object with an \"html\" field",
                received_type="undefined",
            )

        if "html" not in payload:
            raise InvalidHtmlError(received_type="undefined")

        html = payload["html"]
        if not isinstance(html, str):
            length = len(html) if isinstance(html, list) else 0
            raise InvalidHtmlError(received_type=json_type_name(html), received_length=length)

        request = cls(html=html)
        request.validate()
        return request

    def validate(self) -> None:
        """Raise InvalidHtmlError unless the HTML is non-blank."""
        if not isinstance(self.html, str):
            raise InvalidHtmlError(received_type=json_type_name(self.html))
        if not self.html.strip():
            raise InvalidHtmlError(received_type="string", received_length=len(self.html))


@dataclass(frozen=True)
class RenderResult:
    """Outcome of one conversion: PDF bytes or the error that stopped it."""
    pdf_bytes: Optional[bytes] = None
    error: Optional[RenderError] = None

    @classmethod
    def succeeded(cls, pdf_bytes: bytes) -> "RenderResult":
        return cls(pdf_bytes=pdf_bytes)

    @classmethod
    def failed(cls, error: RenderError) -> "RenderResult":
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def size_bytes(self) -> int:
        return len(self.pdf_bytes) if self.pdf_bytes is not None else 0

    @property
    def error_kind(self) -> Optional[str]:
        return self.error.error_kind if self.error else None

    @property
    def message(self) -> Optional[str]:
        return self.error.message if self.error else None


ResolverFactory = Callable[[ServiceSettings, Any], ExecutableResolver]


class RenderPipeline:
    """Drives exactly one RenderSession per call to ``render``."""

    def __init__(
        self,
        settings: Optional[ServiceSettings] = None,
        driver_factory: Optional[Callable[[], Any]] = None,
        resolver_factory: Optional[ResolverFactory] = None,
        stats: Optional[SessionStats] = None,
    ):
        self.settings = settings or get_settings()
        self.driver_factory = driver_factory or async_playwright
        self.resolver_factory = resolver_factory or build_resolver
        self.stats = stats if stats is not None else SessionStats()

    async def render(self, request: RenderRequest) -> RenderResult:
        """
        Convert the request's HTML to PDF.

        Args:
            request: HTML to convert

        Returns:
            RenderResult with PDF bytes on success, or the RenderError on failure.
            Validation failures return before any browser work starts.
        """
        try:
            request.validate()
        except InvalidHtmlError as e:
            logger.info(f"❌ Invalid HTML ({e.received_type}, {e.received_length} chars)")
            return RenderResult.failed(e)

        html = request.html
        logger.info(f"📄 Rendering HTML ({len(html)} chars): {html[:PREVIEW_CHARS]!r}")
        started = time.monotonic()

        try:
            pdf_bytes = await self._run(html)
        except RenderError as e:
            logger.error(
                f"❌ PDF generation failed after {self._elapsed_ms(started)}ms: "
                f"{e.to_dict()}"
            )
            return RenderResult.failed(e)

        logger.info(f"✅ PDF generated: {len(pdf_bytes)} bytes in {self._elapsed_ms(started)}ms")
        return RenderResult.succeeded(pdf_bytes)

    @asynccontextmanager
    async def open_driver(self) -> AsyncIterator[Any]:
        """
        Start the Playwright driver for one unit of work.

        Only a failure to start the driver becomes a LaunchError. A driver
        that fails to stop is logged; by then every browser it spawned has
        been closed by its session.
        """
        manager = self.driver_factory()
        try:
            playwright = await manager.__aenter__()
        except PlaywrightError as e:
            raise LaunchError(f"Playwright driver failed: {e.message}") from e

        try:
            yield playwright
        finally:
            try:
                await manager.__aexit__(None, None, None)
            except PlaywrightError as e:
                logger.error(f"❌ Playwright driver failed to stop: {e.message}")

    async def _run(self, html: str) -> bytes:
        async with self.open_driver() as playwright:
            executable_path = self.resolver_factory(self.settings, playwright).resolve()
            logger.info(f"🚀 Launching Chromium: {executable_path}")

            async with RenderSession(
                playwright.chromium, executable_path, self.settings, self.stats
            ) as session:
                await session.launch()
                await session.load_content(html)
                return await session.export_pdf()

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.monotonic() - started) * 1000)
