"""
Pydantic models for the HTML to PDF service responses.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = "healthy"
    timestamp: datetime
    version: str
    engine_ready: bool = True
    engine_error: Optional[str] = None
    active_sessions: int
    sessions_launched: int
    sessions_closed: int


class DiagnosticLogEntry(BaseModel):
    """One line of the diagnostic trace."""
    ts: str
    type: str = "info"
    msg: str


class ResolverReport(BaseModel):
    """Outcome of resolving the Chromium executable."""
    source: str
    ok: bool
    executablePath: Optional[str] = None
    error: Optional[str] = None
    directoryListing: Optional[List[str]] = None


class DiagnosticsResponse(BaseModel):
    """Environment and engine report; no document is rendered."""
    logs: List[DiagnosticLogEntry] = Field(default_factory=list)
    environment: Dict[str, Any] = Field(default_factory=dict)
    resolver: Optional[ResolverReport] = None
    chromiumArgs: List[str] = Field(default_factory=list)
    browserVersion: Optional[str] = None
    launchError: Optional[str] = None
    sessions: Dict[str, int] = Field(default_factory=dict)
    timestamp: str
