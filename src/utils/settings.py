"""
Environment-specific configuration settings.

Defaults mirror the network layer's retry policy (3 retries, 1s initial backoff).
"""

from dataclasses import dataclass
import os
from typing import Optional


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass
class Settings:
    """Application settings read once per process."""

    # Environment
    environment: str = "dev"

    # CRM backend
    api_base_url: str = "http://localhost:3000"
    request_retries: int = 3
    request_backoff_ms: int = 1000
    request_timeout_seconds: int = 30

    # Auth: a static token wins over the Cognito refresh flow
    api_token: Optional[str] = None
    cognito_client_id: Optional[str] = None
    cognito_refresh_token: Optional[str] = None
    aws_region: str = "eu-west-2"

    # Notifications
    activity_alerts_enabled: bool = False

    @classmethod
    def from_environment(cls) -> "Settings":
        """Load settings from environment variables."""
        env = os.environ.get("ENVIRONMENT", "dev")
        common = dict(
            environment=env,
            api_base_url=os.environ.get("CRM_API_BASE_URL", "http://localhost:3000"),
            request_retries=_env_int("REQUEST_RETRIES", 3),
            request_backoff_ms=_env_int("REQUEST_BACKOFF_MS", 1000),
            api_token=os.environ.get("CRM_API_TOKEN") or None,
            cognito_client_id=os.environ.get("COGNITO_CLIENT_ID") or None,
            cognito_refresh_token=os.environ.get("COGNITO_REFRESH_TOKEN") or None,
            aws_region=os.environ.get("AWS_REGION", "eu-west-2"),
            activity_alerts_enabled=os.environ.get("ACTIVITY_ALERTS_ENABLED", "false").lower()
            == "true",
        )

        # Production overrides
        if env == "prod":
            return cls(
                request_timeout_seconds=_env_int("REQUEST_TIMEOUT_SECONDS", 60),
                **common,
            )

        return cls(request_timeout_seconds=_env_int("REQUEST_TIMEOUT_SECONDS", 30), **common)
