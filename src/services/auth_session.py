"""
Session providers for the CRM client.

A session supplies the bearer token attached to backend calls, can refresh it
after a 401, and can be signed out when the backend rejects it for good.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

import boto3
from botocore.exceptions import ClientError

from utils.logging_config import get_logger
from utils.settings import Settings

logger = get_logger(__name__)


class SessionProvider(Protocol):
    def access_token(self) -> Optional[str]:
        ...

    def refresh(self) -> bool:
        ...

    def sign_out(self) -> None:
        ...


@dataclass
class StaticTokenSession:
    """Fixed token from configuration; cannot be refreshed."""

    token: Optional[str] = None

    def access_token(self) -> Optional[str]:
        return self.token

    def refresh(self) -> bool:
        return False

    def sign_out(self) -> None:
        self.token = None


@dataclass
class CognitoSession:
    """Cognito user-pool session kept alive with the refresh-token flow."""

    client_id: str
    refresh_token: Optional[str]
    region: str = "eu-west-2"
    token: Optional[str] = None
    client: Any = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self.client is None:
            self.client = boto3.client("cognito-idp", region_name=self.region)

    def access_token(self) -> Optional[str]:
        if self.token is None and self.refresh_token:
            self.refresh()
        return self.token

    def refresh(self) -> bool:
        """Exchange the refresh token for a new access token."""
        if not self.refresh_token:
            return False
        try:
            response = self.client.initiate_auth(
                ClientId=self.client_id,
                AuthFlow="REFRESH_TOKEN_AUTH",
                AuthParameters={"REFRESH_TOKEN": self.refresh_token},
            )
        except ClientError as exc:
            logger.warning("Session refresh failed", extra={"error": str(exc)})
            return False

        token = (response.get("AuthenticationResult") or {}).get("AccessToken")
        if not token:
            logger.warning("Session refresh returned no access token")
            return False
        self.token = token
        return True

    def sign_out(self) -> None:
        """Revoke the session everywhere and forget local tokens."""
        if self.token:
            try:
                self.client.global_sign_out(AccessToken=self.token)
            except ClientError as exc:
                logger.warning("Global sign-out failed", extra={"error": str(exc)})
        self.token = None
        self.refresh_token = None


def session_from_settings(settings: Settings) -> SessionProvider:
    """A static token wins; otherwise Cognito when configured."""
    if settings.api_token:
        return StaticTokenSession(settings.api_token)
    if settings.cognito_client_id and settings.cognito_refresh_token:
        return CognitoSession(
            client_id=settings.cognito_client_id,
            refresh_token=settings.cognito_refresh_token,
            region=settings.aws_region,
        )
    logger.warning("No CRM credentials configured; requests will be anonymous")
    return StaticTokenSession()
