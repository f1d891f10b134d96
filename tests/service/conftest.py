"""
Pytest fixtures for the HTML to PDF service tests.

Playwright is replaced by AsyncMock/MagicMock objects shaped like the
real driver: ``async_playwright()`` -> playwright -> chromium.launch()
-> browser -> new_context() -> new_page() -> page.
"""

import os

# IMPORTANT: Set environment variables BEFORE any imports from html_pdf_service
# so ServiceSettings is configured correctly when first loaded.
os.environ["ENVIRONMENT"] = "development"
os.environ["STARTUP_CHECK"] = "false"
os.environ.pop("CHROMIUM_EXECUTABLE_PATH", None)

from dataclasses import dataclass
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from html_pdf_service.config import ServiceSettings
from html_pdf_service.pipeline import RenderPipeline
from html_pdf_service.session import SessionStats

SAMPLE_PDF = b"%PDF-1.4\n1 0 obj\n<< /Type /Catalog >>\nendobj\n%%EOF\n"


@dataclass
class FakeEngine:
    """Handles on every mocked Playwright object of one fake driver."""
    factory: MagicMock
    playwright: MagicMock
    chromium: MagicMock
    browser: AsyncMock
    context: AsyncMock
    page: AsyncMock


def make_engine(executable_path: Any = None, pdf_bytes: bytes = SAMPLE_PDF) -> FakeEngine:
    """Build a mocked Playwright driver that renders ``pdf_bytes``."""
    page = AsyncMock()
    page.pdf = AsyncMock(return_value=pdf_bytes)

    context = AsyncMock()
    context.new_page = AsyncMock(return_value=page)

    browser = AsyncMock()
    browser.version = "120.0.6099.28"
    browser.is_connected = MagicMock(return_value=True)
    browser.new_context = AsyncMock(return_value=context)

    chromium = MagicMock()
    chromium.launch = AsyncMock(return_value=browser)
    chromium.executable_path = executable_path

    playwright = MagicMock(chromium=chromium)

    factory = MagicMock()
    factory.return_value.__aenter__ = AsyncMock(return_value=playwright)
    factory.return_value.__aexit__ = AsyncMock(return_value=False)

    return FakeEngine(
        factory=factory,
        playwright=playwright,
        chromium=chromium,
        browser=browser,
        context=context,
        page=page,
    )


@pytest.fixture
def fake_chrome(tmp_path) -> str:
    """An executable file standing in for the Chromium binary."""
    binary = tmp_path / "chrome-linux" / "chrome"
    binary.parent.mkdir()
    binary.write_text("#!/bin/sh\n")
    binary.chmod(0o755)
    return str(binary)


@pytest.fixture
def engine(fake_chrome) -> FakeEngine:
    return make_engine(executable_path=fake_chrome)


@pytest.fixture
def settings() -> ServiceSettings:
    return ServiceSettings(
        environment="development",
        startup_check=False,
        chromium_executable_path=None,
        launch_timeout_ms=1000,
        content_timeout_ms=1000,
        export_timeout_ms=1000,
    )


@pytest.fixture
def stats() -> SessionStats:
    return SessionStats()


@pytest.fixture
def pipeline(settings, engine, stats) -> RenderPipeline:
    return RenderPipeline(settings, driver_factory=engine.factory, stats=stats)


@pytest.fixture
def client(pipeline, settings):
    """Test client wired to the mocked pipeline, engine marked as ready."""
    import html_pdf_service.app as app_module
    from html_pdf_service.app import app, get_pipeline
    from html_pdf_service.config import get_settings

    app_module._engine_ready = True
    app_module._engine_error = None
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    app.dependency_overrides[get_settings] = lambda: settings

    yield TestClient(app)

    app.dependency_overrides.clear()
