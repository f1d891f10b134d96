"""
Unit tests for html_pdf_service/pipeline.py

Covers request validation, outcome mapping and the guarantee that every
browser the pipeline launches is terminated, whatever the outcome.
"""

import pytest
from unittest.mock import AsyncMock, patch
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from html_pdf_service.errors import InvalidHtmlError, ResolutionError
from html_pdf_service.pipeline import RenderPipeline, RenderRequest, RenderResult, json_type_name
from html_pdf_service.resolver import ExecutableResolver


class TestRenderRequest:
    """Tests for RenderRequest construction and validation."""

    def test_from_payload_accepts_html(self):
        request = RenderRequest.from_payload({"html": "<h1>Hello</h1>"})

        assert request.html == "<h1>Hello</h1>"

    @pytest.mark.parametrize(
        "payload,received_type,received_length",
        [
            ({}, "undefined", 0),
            ({"html": ""}, "string", 0),
            ({"html": "  \n\t "}, "string", 5),
            ({"html": 42}, "number", 0),
            ({"html": None}, "null", 0),
            ({"html": True}, "boolean", 0),
            ({"html": ["<p>", "</p>"]}, "array", 2),
            ({"html": {"body": "x"}}, "object", 0),
            ("<h1>Hello</h1>", "undefined", 0),
            (None, "undefined", 0),
        ],
    )
    def test_from_payload_rejects_unusable_html(self, payload, received_type, received_length):
        with pytest.raises(InvalidHtmlError) as exc_info:
            RenderRequest.from_payload(payload)

        assert exc_info.value.received_type == received_type
        assert exc_info.value.received_length == received_length
        assert exc_info.value.http_status == 400

    def test_request_is_immutable(self):
        request = RenderRequest(html="<p>x</p>")

        with pytest.raises(AttributeError):
            request.html = "<p>y</p>"

    def test_json_type_name_bool_is_not_number(self):
        assert json_type_name(False) == "boolean"
        assert json_type_name(1.5) == "number"


class TestRenderResult:
    """Tests for RenderResult accessors."""

    def test_success(self):
        result = RenderResult.succeeded(b"%PDF-1.7")

        assert result.ok
        assert result.size_bytes == 8
        assert result.error_kind is None

    def test_failure(self):
        result = RenderResult.failed(ResolutionError("no chromium"))

        assert not result.ok
        assert result.size_bytes == 0
        assert result.error_kind == "ResolutionError"
        assert result.message == "no chromium"


class TestRender:
    """Tests for RenderPipeline.render()."""

    @pytest.mark.asyncio
    async def test_success_returns_pdf(self, pipeline, engine, stats):
        result = await pipeline.render(RenderRequest(html="<h1>Hello</h1>"))

        assert result.ok
        assert result.pdf_bytes.startswith(b"%PDF-")
        assert result.size_bytes == len(result.pdf_bytes)
        engine.browser.close.assert_awaited_once()
        assert stats.launched == stats.closed == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("html", ["", "   ", "\n\n"])
    async def test_blank_html_never_touches_engine(self, pipeline, engine, stats, html):
        result = await pipeline.render(RenderRequest(html=html))

        assert result.error_kind == "ValidationError"
        engine.factory.assert_not_called()
        engine.chromium.launch.assert_not_awaited()
        assert stats.launched == 0

    @pytest.mark.asyncio
    async def test_missing_executable_is_resolution_error(self, pipeline, engine, tmp_path):
        engine.chromium.executable_path = str(tmp_path / "missing" / "chrome")

        result = await pipeline.render(RenderRequest(html="<h1>Hello</h1>"))

        assert result.error_kind == "ResolutionError"
        engine.chromium.launch.assert_not_awaited()
        engine.factory.return_value.__aexit__.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_configured_executable_is_used(self, settings, engine, stats, fake_chrome):
        configured = settings.model_copy(update={"chromium_executable_path": fake_chrome})
        engine.chromium.executable_path = None
        pipeline = RenderPipeline(configured, driver_factory=engine.factory, stats=stats)

        result = await pipeline.render(RenderRequest(html="<h1>Hello</h1>"))

        assert result.ok
        assert engine.chromium.launch.await_args.kwargs["executable_path"] == fake_chrome

    @pytest.mark.asyncio
    async def test_injected_resolver(self, settings, engine, stats, fake_chrome):
        class StaticResolver(ExecutableResolver):
            source = "static"

            def resolve(self):
                return fake_chrome

        pipeline = RenderPipeline(
            settings,
            driver_factory=engine.factory,
            resolver_factory=lambda settings, playwright: StaticResolver(),
            stats=stats,
        )

        result = await pipeline.render(RenderRequest(html="<p>x</p>"))

        assert result.ok

    @pytest.mark.asyncio
    async def test_launch_failure(self, pipeline, engine, stats):
        engine.chromium.launch.side_effect = PlaywrightError("spawn ENOENT")

        result = await pipeline.render(RenderRequest(html="<h1>Hello</h1>"))

        assert result.error_kind == "LaunchError"
        assert "spawn ENOENT" in result.message
        assert stats.launched == 0

    @pytest.mark.asyncio
    async def test_driver_failure_is_launch_error(self, pipeline, engine):
        engine.factory.return_value.__aenter__ = AsyncMock(
            side_effect=PlaywrightError("Driver not found")
        )

        result = await pipeline.render(RenderRequest(html="<h1>Hello</h1>"))

        assert result.error_kind == "LaunchError"
        assert "Driver not found" in result.message

    @pytest.mark.asyncio
    async def test_driver_stop_failure_keeps_pdf(self, pipeline, engine, stats):
        engine.factory.return_value.__aexit__ = AsyncMock(
            side_effect=PlaywrightError("Connection closed while stopping driver")
        )

        result = await pipeline.render(RenderRequest(html="<h1>Hello</h1>"))

        assert result.ok
        assert result.pdf_bytes.startswith(b"%PDF-")
        engine.browser.close.assert_awaited_once()
        assert stats.active == 0

    @pytest.mark.asyncio
    async def test_driver_stop_failure_keeps_original_error(self, pipeline, engine):
        engine.page.pdf.side_effect = PlaywrightError("Printing failed")
        engine.factory.return_value.__aexit__ = AsyncMock(
            side_effect=PlaywrightError("Connection closed while stopping driver")
        )

        result = await pipeline.render(RenderRequest(html="<h1>Hello</h1>"))

        assert result.error_kind == "ExportError"
        assert "Printing failed" in result.message

    @pytest.mark.asyncio
    async def test_failure_is_logged_with_error_fields(self, pipeline, engine):
        engine.page.pdf.side_effect = PlaywrightError("Printing failed")

        with patch("html_pdf_service.pipeline.logger") as mock_logger:
            await pipeline.render(RenderRequest(html="<h1>Hello</h1>"))

        logged = mock_logger.error.call_args.args[0]
        assert "'errorKind': 'ExportError'" in logged
        assert "Printing failed" in logged

    @pytest.mark.asyncio
    async def test_content_timeout(self, pipeline, engine, stats):
        engine.page.set_content.side_effect = PlaywrightTimeoutError("Timeout 1000ms exceeded")

        result = await pipeline.render(RenderRequest(html="<img src='http://10.255.255.1/x.png'>"))

        assert result.error_kind == "ContentTimeoutError"
        engine.browser.close.assert_awaited_once()
        assert stats.active == 0

    @pytest.mark.asyncio
    async def test_export_failure(self, pipeline, engine, stats):
        engine.page.pdf.side_effect = PlaywrightError("Printing failed")

        result = await pipeline.render(RenderRequest(html="<style>@page { size: bogus }</style>"))

        assert result.error_kind == "ExportError"
        engine.browser.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_failure_does_not_mask_result(self, pipeline, engine, stats):
        engine.browser.close = AsyncMock(side_effect=PlaywrightError("Connection closed"))

        result = await pipeline.render(RenderRequest(html="<h1>Hello</h1>"))

        assert result.ok
        assert stats.close_failures == 1

    @pytest.mark.asyncio
    async def test_session_closed_before_error_is_returned(self, pipeline, engine):
        events = []
        engine.page.pdf.side_effect = PlaywrightError("Printing failed")
        engine.browser.close = AsyncMock(side_effect=lambda: events.append("closed"))

        with patch("html_pdf_service.pipeline.logger") as mock_logger:
            mock_logger.error.side_effect = lambda *args: events.append("translated")
            result = await pipeline.render(RenderRequest(html="<h1>Hello</h1>"))

        assert result.error_kind == "ExportError"
        assert events == ["closed", "translated"]

    @pytest.mark.asyncio
    async def test_unexpected_errors_propagate(self, settings, engine, stats):
        def broken_resolver(settings, playwright):
            raise RuntimeError("resolver bug")

        pipeline = RenderPipeline(
            settings, driver_factory=engine.factory, resolver_factory=broken_resolver, stats=stats
        )

        with pytest.raises(RuntimeError, match="resolver bug"):
            await pipeline.render(RenderRequest(html="<h1>Hello</h1>"))

        engine.factory.return_value.__aexit__.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_no_process_leak_across_mixed_requests(self, pipeline, engine, stats, tmp_path):
        """Every launched browser is terminated, whatever each request ended in."""
        good_path = engine.chromium.executable_path

        outcomes = []
        for scenario in ["ok", "blank", "launch", "timeout", "export", "resolve", "ok"]:
            engine.chromium.executable_path = good_path
            engine.chromium.launch.side_effect = None
            engine.page.set_content.side_effect = None
            engine.page.pdf.side_effect = None

            html = "<h1>Hello</h1>"
            if scenario == "blank":
                html = " "
            elif scenario == "launch":
                engine.chromium.launch.side_effect = PlaywrightError("crashed")
            elif scenario == "timeout":
                engine.page.set_content.side_effect = PlaywrightTimeoutError("Timeout")
            elif scenario == "export":
                engine.page.pdf.side_effect = PlaywrightError("Printing failed")
            elif scenario == "resolve":
                engine.chromium.executable_path = str(tmp_path / "gone")

            result = await pipeline.render(RenderRequest(html=html))
            outcomes.append(result.error_kind)

        assert outcomes == [
            None,
            "ValidationError",
            "LaunchError",
            "ContentTimeoutError",
            "ExportError",
            "ResolutionError",
            None,
        ]
        assert stats.launched == 4
        assert stats.closed == stats.launched
        assert engine.browser.close.await_count == stats.launched
        assert stats.active == 0

    @pytest.mark.asyncio
    async def test_repeated_render_is_same_length(self, pipeline):
        html = "<html><body><h1>Invoice</h1><p>Static content</p></body></html>"

        first = await pipeline.render(RenderRequest(html=html))
        second = await pipeline.render(RenderRequest(html=html))

        assert first.size_bytes == second.size_bytes > 0
