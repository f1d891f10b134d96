"""
Chromium executable resolution.

The pipeline only depends on ``ExecutableResolver.resolve()``. Which binary
is used (an explicitly configured one on constrained hosts, or the build
Playwright manages) is decided by ``build_resolver``.

A resolver never hands back a path it has not checked: the file must exist,
be a regular file and be executable, otherwise ResolutionError is raised so
a broken host is reported as such instead of as an obscure launch failure.
"""

import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, List, Optional

from .config import ServiceSettings
from .errors import ResolutionError

MAX_LISTING_ENTRIES = 50


def directory_listing(path: str) -> Optional[List[str]]:
    """List the parent directory of ``path`` (None if it cannot be read)."""
    parent = Path(path).parent
    try:
        entries = sorted(entry.name for entry in parent.iterdir())
    except OSError:
        return None
    return entries[:MAX_LISTING_ENTRIES]


def verify_executable(path: Optional[str], source: str) -> str:
    """
    Check that ``path`` denotes a runnable binary.

    Args:
        path: Candidate executable path (may be empty)
        source: Resolver label used in error messages

    Returns:
        The path as a string

    Raises:
        ResolutionError: if the path is empty, missing, not a file or not executable
    """
    if not path:
        raise ResolutionError(
            f"{source} reported no Chromium executable",
            details={"source": source},
        )

    candidate = Path(path)
    details = {"source": source, "path": str(candidate)}

    if not candidate.exists():
        raise ResolutionError(
            f"Chromium executable not found: {candidate}",
            details={**details, "directoryListing": directory_listing(str(candidate))},
        )
    if not candidate.is_file():
        raise ResolutionError(f"Chromium executable is not a file: {candidate}", details=details)
    if not os.access(candidate, os.X_OK):
        raise ResolutionError(f"Chromium executable is not executable: {candidate}", details=details)

    return str(candidate)


class ExecutableResolver(ABC):
    """Locates the Chromium binary for a render session."""

    source = "unknown"

    @abstractmethod
    def resolve(self) -> str:
        """Return a verified executable path or raise ResolutionError."""


class ConfiguredExecutableResolver(ExecutableResolver):
    """Uses the binary named by CHROMIUM_EXECUTABLE_PATH."""

    source = "CHROMIUM_EXECUTABLE_PATH"

    def __init__(self, path: Optional[str]):
        self.path = path

    def resolve(self) -> str:
        return verify_executable(self.path, self.source)


class BundledExecutableResolver(ExecutableResolver):
    """Uses the Chromium build installed by ``playwright install chromium``."""

    source = "playwright"

    def __init__(self, browser_type: Any):
        self.browser_type = browser_type

    def resolve(self) -> str:
        try:
            path = self.browser_type.executable_path
        except Exception as e:
            raise ResolutionError(
                f"Playwright could not report a Chromium executable: {e}",
                details={"source": self.source},
            ) from e
        return verify_executable(path, self.source)


def build_resolver(settings: ServiceSettings, playwright: Any) -> ExecutableResolver:
    """Pick the resolver for the current host configuration."""
    if settings.chromium_executable_path:
        return ConfiguredExecutableResolver(settings.chromium_executable_path)
    return BundledExecutableResolver(playwright.chromium)
