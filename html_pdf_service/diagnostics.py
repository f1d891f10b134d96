"""
Diagnostic report for the rendering environment.

Answers "can this host render at all?" without converting a document:
collects interpreter and package metadata, resolves the Chromium
executable and launches (then closes) one RenderSession.
"""

import logging
import os
import platform
import sys
from datetime import datetime, timezone
from importlib import metadata
from typing import Any, Dict, List, Optional

from .config import ServiceSettings
from .errors import LaunchError, RenderError
from .models import DiagnosticLogEntry, DiagnosticsResponse, ResolverReport
from .pipeline import RenderPipeline
from .session import RenderSession

logger = logging.getLogger(__name__)

REPORTED_PACKAGES = ("playwright", "fastapi", "pydantic", "pydantic-settings")
REPORTED_ENV_VARS = ("PATH", "HOME", "TMPDIR", "PLAYWRIGHT_BROWSERS_PATH")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def package_versions() -> Dict[str, Optional[str]]:
    """Installed versions of the packages rendering depends on."""
    versions: Dict[str, Optional[str]] = {}
    for name in REPORTED_PACKAGES:
        try:
            versions[name] = metadata.version(name)
        except metadata.PackageNotFoundError:
            versions[name] = None
    return versions


def environment_report(settings: ServiceSettings) -> Dict[str, Any]:
    return {
        "environment": settings.environment,
        "platform": sys.platform,
        "machine": platform.machine(),
        "python": platform.python_version(),
        "pid": os.getpid(),
        "packages": package_versions(),
        "env": {name: os.environ.get(name) for name in REPORTED_ENV_VARS},
    }


class DiagnosticTrace:
    """Timestamped log lines returned to the caller and mirrored to the logger."""

    def __init__(self):
        self.entries: List[DiagnosticLogEntry] = []

    def log(self, msg: str, type: str = "info") -> None:
        self.entries.append(DiagnosticLogEntry(ts=_now(), type=type, msg=msg))
        if type == "error":
            logger.error(msg)
        else:
            logger.info(msg)


async def collect_diagnostics(pipeline: RenderPipeline) -> DiagnosticsResponse:
    """
    Build the diagnostic report using the pipeline's collaborators.

    The launch probe goes through a RenderSession so the probe browser is
    counted and closed like any other.
    """
    settings = pipeline.settings
    trace = DiagnosticTrace()
    trace.log("🔬 Diagnostics started")

    env = environment_report(settings)
    trace.log(f"🖥️ Platform: {env['platform']} ({env['machine']}), Python {env['python']}")
    for name, version in env["packages"].items():
        if version is None:
            trace.log(f"⚠️ Package not installed: {name}", "error")
        else:
            trace.log(f"   {name}: {version}")

    response = DiagnosticsResponse(
        environment=env,
        chromiumArgs=settings.chromium_args,
        timestamp=_now(),
    )

    try:
        async with pipeline.open_driver() as playwright:
            resolver = pipeline.resolver_factory(settings, playwright)
            try:
                executable_path = resolver.resolve()
            except RenderError as e:
                trace.log(f"❌ Chromium executable unavailable: {e.message}", "error")
                response.resolver = ResolverReport(
                    source=resolver.source,
                    ok=False,
                    executablePath=e.details.get("path"),
                    error=e.message,
                    directoryListing=e.details.get("directoryListing"),
                )
                response.launchError = e.message
            else:
                trace.log(f"🔍 Chromium executable: {executable_path} (from {resolver.source})")
                response.resolver = ResolverReport(
                    source=resolver.source, ok=True, executablePath=executable_path
                )
                async with RenderSession(
                    playwright.chromium, executable_path, settings, pipeline.stats
                ) as session:
                    try:
                        await session.launch()
                    except RenderError as e:
                        trace.log(f"❌ Chromium launch failed: {e.message}", "error")
                        response.launchError = e.message
                    else:
                        response.browserVersion = session.browser_version
                        trace.log(f"✅ Chromium launched: {response.browserVersion}")
    except LaunchError as e:
        trace.log(f"❌ {e.message}", "error")
        response.launchError = e.message

    response.sessions = pipeline.stats.to_dict()
    response.logs = trace.entries
    return response
