"""Tests for the indexer HTTP executor."""

from __future__ import annotations

import json
from datetime import UTC, datetime

import httpx
import pytest

from x402_transfer_sync.auth import GoogleCredentialsAuth
from x402_transfer_sync.client import IndexerClient
from x402_transfer_sync.errors import MalformedResponseError, ProviderError, TransportError
from x402_transfer_sync.providers.bitquery import BitqueryEvmTransfersQuery

API_URL = "https://indexer.test/graphql"
START = datetime(2025, 6, 1, tzinfo=UTC)
END = datetime(2025, 6, 2, tzinfo=UTC)


def _client(handler) -> IndexerClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return IndexerClient(API_URL, "secret-key", http_client=http)


class TestExecute:
    """Tests for IndexerClient.execute."""

    @pytest.mark.asyncio
    async def test_posts_query_with_bearer_token(self) -> None:
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"data": {"ok": True}})

        client = _client(handler)
        payload = await client.execute("{ q }", BitqueryEvmTransfersQuery("base"), page_size=10)

        assert payload == {"ok": True}
        assert seen == {
            "method": "POST",
            "url": API_URL,
            "auth": "Bearer secret-key",
            "body": {"query": "{ q }"},
        }

    @pytest.mark.asyncio
    async def test_non_success_status_raises_transport_error(self) -> None:
        client = _client(lambda request: httpx.Response(502, text="bad gateway"))

        with pytest.raises(TransportError) as exc_info:
            await client.execute("{ q }", BitqueryEvmTransfersQuery("base"), page_size=10)

        assert exc_info.value.status == 502
        assert exc_info.value.body == "bad gateway"

    @pytest.mark.asyncio
    async def test_network_failure_raises_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = _client(handler)

        with pytest.raises(TransportError) as exc_info:
            await client.execute("{ q }", BitqueryEvmTransfersQuery("base"), page_size=10)

        assert exc_info.value.status is None
        assert "ConnectError" in exc_info.value.body

    @pytest.mark.asyncio
    async def test_error_envelope_raises_provider_error(self) -> None:
        body = {"data": None, "errors": [{"message": "limit exceeded"}, {"code": 7}]}
        client = _client(lambda request: httpx.Response(200, json=body))

        with pytest.raises(ProviderError) as exc_info:
            await client.execute("{ q }", BitqueryEvmTransfersQuery("base"), page_size=10)

        assert exc_info.value.messages == ["limit exceeded", '{"code": 7}']

    @pytest.mark.asyncio
    async def test_non_json_body_raises_malformed(self) -> None:
        client = _client(lambda request: httpx.Response(200, text="<html>oops</html>"))

        with pytest.raises(MalformedResponseError):
            await client.execute("{ q }", BitqueryEvmTransfersQuery("base"), page_size=10)

    @pytest.mark.asyncio
    async def test_missing_data_raises_malformed(self) -> None:
        client = _client(lambda request: httpx.Response(200, json={"extensions": {}}))

        with pytest.raises(MalformedResponseError):
            await client.execute("{ q }", BitqueryEvmTransfersQuery("base"), page_size=10)


class TestFetchPage:
    """Tests for IndexerClient.fetch_page."""

    @pytest.mark.asyncio
    async def test_builds_executes_and_transforms(self, base_context) -> None:
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["query"] = json.loads(request.content)["query"]
            return httpx.Response(
                200,
                json={
                    "data": {
                        "EVM": {
                            "Transfers": [
                                {
                                    "Transfer": {
                                        "Amount": "0.25",
                                        "Sender": "0xAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA",
                                        "Receiver": "0xBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBB",
                                        "Currency": {
                                            "SmartContract": "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
                                        },
                                    },
                                    "Transaction": {
                                        "Hash": "0xABC",
                                        "From": "0xdbdf3d8ed80f84c35d01c6c9f9271761bad90ba6",
                                    },
                                    "Block": {"Time": "2025-06-01T10:00:00Z"},
                                }
                            ]
                        }
                    }
                },
            )

        client = _client(handler)
        transfers = await client.fetch_page(
            BitqueryEvmTransfersQuery("base"), base_context, START, END, page_size=100, offset=200
        )

        assert "offset: 200" in seen["query"]
        assert len(transfers) == 1
        assert transfers[0].amount == 250_000
        assert transfers[0].tx_hash == "0xabc"


class TestLifecycle:
    """Tests for client ownership and closing."""

    @pytest.mark.asyncio
    async def test_does_not_close_injected_client(self) -> None:
        http = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        async with IndexerClient(API_URL, "k", http_client=http):
            pass
        assert not http.is_closed
        await http.aclose()

    @pytest.mark.asyncio
    async def test_closes_owned_client(self) -> None:
        client = IndexerClient(API_URL, "k")
        await client.close()
        assert client._http.is_closed


class TestRefreshingAuth:
    """Tests for clients built with a refreshing credential."""

    @pytest.mark.asyncio
    async def test_uses_current_token_per_request(self, fake_credentials) -> None:
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.headers["Authorization"])
            return httpx.Response(200, json={"data": {}})

        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        client = IndexerClient(API_URL, GoogleCredentialsAuth(fake_credentials), http_client=http)

        await client.execute("{ q }", BitqueryEvmTransfersQuery("base"), page_size=10)
        fake_credentials.valid = False
        await client.execute("{ q }", BitqueryEvmTransfersQuery("base"), page_size=10)

        assert seen == ["Bearer ya29.token-1", "Bearer ya29.token-2"]
