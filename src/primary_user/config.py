"""Run configuration loaded from environment variables.

Environment Variables:
    SIGNIN_WINDOW_DAYS: Trailing sign-in window in days (default: 30)
    SIGNIN_APP_FILTER: Application whose sign-ins count (default: "Windows Sign In")
    REPORT_OUTPUT_DIR: Directory for the CSV report (default: current directory)
    GRAPH_REQUEST_TIMEOUT: Seconds per Graph request (default: 60)
    DRY_RUN: Decide without writing (default: false)

Credentials (AZURE_TENANT_ID, AZURE_CLIENT_ID, AZURE_CLIENT_SECRET,
AZURE_TOKEN_URL) and GRAPH_BASE_URL are read by TokenManager and GraphClient.
"""

import os

from .api.exceptions import ConfigurationError

DEFAULT_WINDOW_DAYS = 30
DEFAULT_APP_FILTER = "Windows Sign In"


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, str(default))
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(
            f"{name} must be an integer, got {raw!r}",
            missing_keys=[name],
        )


class SyncConfig:
    """Configuration loaded from environment variables."""

    def __init__(self):
        self.window_days = _int_env("SIGNIN_WINDOW_DAYS", DEFAULT_WINDOW_DAYS)
        self.app_filter = os.getenv("SIGNIN_APP_FILTER", DEFAULT_APP_FILTER)
        self.output_dir = os.getenv("REPORT_OUTPUT_DIR", ".")
        self.request_timeout = float(_int_env("GRAPH_REQUEST_TIMEOUT", 60))
        self.dry_run = os.getenv("DRY_RUN", "false").lower() == "true"

    def apply_overrides(
        self,
        window_days=None,
        app_filter=None,
        output_dir=None,
        dry_run=False,
    ) -> "SyncConfig":
        """Let command-line flags win over the environment."""
        if window_days is not None:
            self.window_days = window_days
        if app_filter:
            self.app_filter = app_filter
        if output_dir:
            self.output_dir = output_dir
        if dry_run:
            self.dry_run = True
        self.validate()
        return self

    def validate(self) -> None:
        if self.window_days <= 0:
            raise ConfigurationError(
                f"Sign-in window must be at least one day, got {self.window_days}",
                missing_keys=["SIGNIN_WINDOW_DAYS"],
            )
        if not self.app_filter.strip():
            raise ConfigurationError(
                "Sign-in application filter is empty",
                missing_keys=["SIGNIN_APP_FILTER"],
            )

    def __repr__(self):
        return (
            f"SyncConfig("
            f"window={self.window_days}d, "
            f"app={self.app_filter!r}, "
            f"output_dir={self.output_dir!r}, "
            f"dry_run={self.dry_run})"
        )
