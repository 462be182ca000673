"""HTTP request executor for chain indexer APIs.

Every provider is reached the same way: one authenticated POST with a JSON
body, answered by a JSON envelope that either carries a result or a list of
errors. There is no retry here; a failed request aborts the current page or
window and propagates to the orchestrator.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from datetime import datetime
from types import TracebackType
from typing import Any

import httpx

from x402_transfer_sync.auth import BearerAuth
from x402_transfer_sync.errors import MalformedResponseError, ProviderError, TransportError
from x402_transfer_sync.models import TransferEvent
from x402_transfer_sync.providers.base import ProviderQuery, QueryContext

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 120.0


def _error_messages(errors: list[Any]) -> list[str]:
    messages = []
    for error in errors:
        if isinstance(error, Mapping) and error.get("message"):
            messages.append(str(error["message"]))
        else:
            messages.append(json.dumps(error, default=str))
    return messages


class IndexerClient:
    """Executes provider queries against one indexer endpoint.

    Example:
        ```python
        async with IndexerClient(api_url, api_key) as client:
            transfers = await client.fetch_page(query, context, since, now, page_size=1000)
        ```
    """

    def __init__(
        self,
        api_url: str,
        auth: str | httpx.Auth,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            api_url: Provider endpoint receiving the POST.
            auth: Static Bearer token, or an httpx.Auth that sets the
                Authorization header per request.
            timeout_seconds: Per-request timeout.
            http_client: Optional pre-built httpx client (owned by the caller).
        """
        self.api_url = api_url
        self._auth = BearerAuth(auth) if isinstance(auth, str) else auth
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout_seconds)

    async def __aenter__(self) -> IndexerClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def execute(self, query: str, provider_query: ProviderQuery, *, page_size: int) -> Any:
        """POST a query and return the provider-shaped payload.

        Raises:
            TransportError: Network failure or non-2xx status.
            MalformedResponseError: Body is not a JSON object.
            ProviderError: Envelope carries an API-level error list.
        """
        headers = {"Content-Type": "application/json"}
        try:
            response = await self._http.post(
                self.api_url,
                json=provider_query.request_body(query, page_size),
                headers=headers,
                auth=self._auth,
            )
        except httpx.HTTPError as e:
            raise TransportError(None, f"{type(e).__name__}: {e}") from e

        if not response.is_success:
            raise TransportError(response.status_code, response.text)

        try:
            envelope = response.json()
        except ValueError as e:
            raise MalformedResponseError(f"Indexer response is not JSON: {response.text[:200]}") from e
        if not isinstance(envelope, Mapping):
            raise MalformedResponseError("Indexer response is not a JSON object")

        errors = envelope.get("errors")
        if errors:
            if not isinstance(errors, list):
                errors = [errors]
            raise ProviderError(_error_messages(errors))

        return provider_query.extract_payload(envelope)

    async def fetch_page(
        self,
        provider_query: ProviderQuery,
        context: QueryContext,
        start: datetime,
        end: datetime,
        *,
        page_size: int,
        offset: int | None = None,
    ) -> list[TransferEvent]:
        """Build, execute and transform one page of transfers."""
        query = provider_query.build_query(context, start, end, page_size, offset)
        logger.debug(
            "Querying %s: chain=%s facilitator=%s start=%s end=%s offset=%s",
            context.provider.value,
            context.chain.value,
            context.facilitator.id,
            start.isoformat(),
            end.isoformat(),
            offset,
        )
        payload = await self.execute(query, provider_query, page_size=page_size)
        return provider_query.transform_response(payload, context)
