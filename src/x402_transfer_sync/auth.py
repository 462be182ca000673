"""Request authentication for indexer endpoints.

Bitquery takes a static API key. BigQuery takes a short-lived OAuth2 access
token, minted from Application Default Credentials and refreshed whenever it
expires, so long-lived schedulers keep working past the token lifetime.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator, Generator, Sequence
from typing import Any

import google.auth
import httpx
from google.auth.exceptions import DefaultCredentialsError, GoogleAuthError
from google.auth.transport.requests import Request

from x402_transfer_sync.errors import TransportError

logger = logging.getLogger(__name__)

BIGQUERY_SCOPE = "https://www.googleapis.com/auth/bigquery"


class BearerAuth(httpx.Auth):
    """Static Bearer token."""

    def __init__(self, token: str) -> None:
        self._token = token

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        request.headers["Authorization"] = f"Bearer {self._token}"
        yield request


class GoogleCredentialsAuth(httpx.Auth):
    """Bearer token from google-auth credentials, refreshed when no longer valid.

    Example:
        ```python
        auth = GoogleCredentialsAuth.from_default()
        client = IndexerClient(bigquery_query_url(project_id), auth)
        ```
    """

    def __init__(self, credentials: Any) -> None:
        """Initialize with google-auth credentials.

        Args:
            credentials: Object exposing `valid`, `token` and `refresh(request)`.
        """
        self.credentials = credentials

    @classmethod
    def from_default(cls, scopes: Sequence[str] = (BIGQUERY_SCOPE,)) -> GoogleCredentialsAuth:
        """Load Application Default Credentials.

        Raises:
            ValueError: If no default credentials are available.
        """
        try:
            credentials, project = google.auth.default(scopes=list(scopes))
        except DefaultCredentialsError as e:
            raise ValueError(
                "No Google credentials found: set BIGQUERY_ACCESS_TOKEN or configure "
                "Application Default Credentials (GOOGLE_APPLICATION_CREDENTIALS)"
            ) from e
        logger.info("Loaded Google default credentials: project=%s", project)
        return cls(credentials)

    def _refresh(self) -> None:
        try:
            self.credentials.refresh(Request())
        except GoogleAuthError as e:
            raise TransportError(None, f"Google access token refresh failed: {e}") from e
        logger.debug("Refreshed Google access token")

    def _apply(self, request: httpx.Request) -> None:
        request.headers["Authorization"] = f"Bearer {self.credentials.token}"

    def sync_auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        if not self.credentials.valid:
            self._refresh()
        self._apply(request)
        yield request

    async def async_auth_flow(
        self, request: httpx.Request
    ) -> AsyncGenerator[httpx.Request, httpx.Response]:
        # google-auth refreshes over blocking HTTP.
        if not self.credentials.valid:
            await asyncio.to_thread(self._refresh)
        self._apply(request)
        yield request
