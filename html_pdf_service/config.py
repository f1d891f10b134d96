"""
HTML to PDF Service Configuration Module

Centralized configuration management with Pydantic validation.
All environment variables are validated at startup to catch misconfigurations early.
"""

import logging
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class ServiceSettings(BaseSettings):
    """
    Service configuration with validation.

    All settings can be overridden via environment variables.
    Validation happens at startup to fail fast on misconfiguration.
    """

    # === Server ===
    environment: str = Field(
        default="production",
        description="Environment: development, staging, production"
    )
    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=3000, ge=1, le=65535, description="Bind port")
    log_level: str = Field(default="INFO", description="Root log level")

    # === Chromium ===
    chromium_executable_path: Optional[str] = Field(
        default=None,
        description="Explicit Chromium binary (overrides the Playwright-managed build)"
    )
    chromium_disable_sandbox: bool = Field(
        default=True,
        description="Pass --no-sandbox (hosts that forbid privileged syscalls)"
    )
    chromium_disable_dev_shm: bool = Field(
        default=True,
        description="Pass --disable-dev-shm-usage (hosts with a tiny /dev/shm)"
    )
    chromium_extra_args: str = Field(
        default="",
        description="Comma-separated extra Chromium flags"
    )

    # === Timeouts (milliseconds) ===
    launch_timeout_ms: int = Field(
        default=30000,
        ge=1000,
        le=120000,
        description="Browser launch timeout (1000-120000)"
    )
    content_timeout_ms: int = Field(
        default=30000,
        ge=1000,
        le=120000,
        description="Upper bound for the network-idle wait (1000-120000)"
    )
    export_timeout_ms: int = Field(
        default=60000,
        ge=0,
        le=300000,
        description="Upper bound for PDF export, 0 disables (0-300000)"
    )

    # === Page ===
    viewport_width: int = Field(default=800, ge=100, le=4000)
    viewport_height: int = Field(default=600, ge=100, le=4000)

    # === Requests ===
    max_body_bytes: int = Field(
        default=10 * 1024 * 1024,
        ge=1024,
        description="Maximum accepted request body size in bytes"
    )
    startup_check: bool = Field(
        default=True,
        description="Launch Chromium once at startup to report readiness"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment is a known value."""
        allowed = {"development", "staging", "production"}
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"environment must be one of: {', '.join(sorted(allowed))}")
        return v_lower

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a standard logging level name."""
        v_upper = v.upper()
        if v_upper not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return v_upper

    @field_validator("chromium_executable_path")
    @classmethod
    def blank_path_is_unset(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @property
    def chromium_args(self) -> List[str]:
        """Fixed Chromium flag set for headless rendering on constrained hosts."""
        args = []
        if self.chromium_disable_sandbox:
            args.extend(["--no-sandbox", "--disable-setuid-sandbox"])
        if self.chromium_disable_dev_shm:
            args.append("--disable-dev-shm-usage")
        args.extend(["--disable-gpu", "--hide-scrollbars", "--mute-audio"])
        args.extend(
            arg.strip() for arg in self.chromium_extra_args.split(",") if arg.strip()
        )
        return args

    @property
    def viewport(self) -> dict:
        return {"width": self.viewport_width, "height": self.viewport_height}

    def validate_runtime_config(self) -> List[str]:
        """
        Check configuration against the host.

        Returns list of warning messages.
        """
        issues = []

        if self.chromium_executable_path and not Path(self.chromium_executable_path).is_file():
            issues.append(
                f"WARNING: CHROMIUM_EXECUTABLE_PATH does not exist: {self.chromium_executable_path}"
            )
        if self.export_timeout_ms == 0:
            issues.append("WARNING: EXPORT_TIMEOUT_MS=0, PDF export is unbounded")
        if self.is_development and not self.chromium_disable_sandbox:
            issues.append("WARNING: Chromium sandbox enabled, launch fails on hosts without user namespaces")

        return issues

    class Config:
        env_prefix = ""  # No prefix, use exact env var names
        case_sensitive = False  # CONTENT_TIMEOUT_MS = content_timeout_ms


@lru_cache()
def get_settings() -> ServiceSettings:
    """
    Get cached settings instance.

    Settings are loaded once and cached for performance.
    Use this function to access configuration throughout the app.
    """
    return ServiceSettings()


def validate_config_on_startup() -> ServiceSettings:
    """
    Validate configuration at application startup.

    Raises ValueError with details if config is invalid.
    Logs warnings for non-critical issues.
    """
    try:
        settings = get_settings()
    except Exception as e:
        raise ValueError(f"Configuration validation failed: {e}")

    for issue in settings.validate_runtime_config():
        logger.warning(issue)

    # Log loaded configuration
    logger.info(f"Configuration loaded: environment={settings.environment}")
    logger.info(f"  chromium_executable_path={settings.chromium_executable_path or '(playwright bundled)'}")
    logger.info(f"  chromium_args={settings.chromium_args}")
    logger.info(
        f"  timeouts: launch={settings.launch_timeout_ms}ms "
        f"content={settings.content_timeout_ms}ms export={settings.export_timeout_ms}ms"
    )

    return settings
