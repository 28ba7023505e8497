"""
Tests for the dataset-server API client.
"""

import httpx
import pytest
from unittest.mock import patch

from deck.api_client import DatasetServerClient
from deck.config import Config
from deck.exceptions import UpstreamTimeout, UpstreamUnavailable

from .fakes import OPENFAKE, FakeDatasetServer, openfake_row


def client_for(handler) -> DatasetServerClient:
    return DatasetServerClient(
        base_url="https://datasets-server.test",
        transport=httpx.MockTransport(handler),
    )


class TestDatasetServerClient:
    """Test suite for DatasetServerClient."""

    @pytest.fixture
    def server(self):
        server = FakeDatasetServer()
        server.add(OPENFAKE, [openfake_row(i) for i in range(250)])
        return server

    @pytest.mark.asyncio
    async def test_client_initialization(self, server):
        async with server.client() as client:
            assert client.base_url == "https://datasets-server.test"
            assert client.session is not None
            assert client.headers["Accept"] == "application/json"
            assert client.timeout == Config.API_TIMEOUT

    def test_invalid_configuration(self):
        with patch.object(Config, "validate", return_value=False):
            with pytest.raises(ValueError):
                DatasetServerClient()

    @pytest.mark.asyncio
    async def test_auth_header_sent(self, server):
        with patch.object(Config, "HF_TOKEN", "hf_secret"):
            async with server.client() as client:
                await client.get_split_size("ComplexDataLab/OpenFake", "default", "test")

        assert server.requests[0].headers["Authorization"] == "Bearer hf_secret"

    @pytest.mark.asyncio
    async def test_get_split_size(self, server):
        async with server.client() as client:
            count = await client.get_split_size("ComplexDataLab/OpenFake", "default", "test")

        assert count == 250
        request = server.requests[0]
        assert request.url.path == "/info"
        assert request.url.params["dataset"] == "ComplexDataLab/OpenFake"
        assert request.url.params["config"] == "default"
        assert request.url.params["split"] == "test"

    @pytest.mark.asyncio
    async def test_get_split_size_missing_split(self):
        def handler(request):
            return httpx.Response(200, json={"dataset_info": {"splits": {"train": {"num_examples": 9}}}})

        async with client_for(handler) as client:
            with pytest.raises(UpstreamUnavailable):
                await client.get_split_size("d", "default", "test")

    @pytest.mark.asyncio
    async def test_get_split_size_zero(self):
        def handler(request):
            return httpx.Response(200, json={"dataset_info": {"splits": {"test": {"num_examples": 0}}}})

        async with client_for(handler) as client:
            with pytest.raises(UpstreamUnavailable):
                await client.get_split_size("d", "default", "test")

    @pytest.mark.asyncio
    async def test_get_split_size_malformed_count(self):
        def handler(request):
            return httpx.Response(200, json={"dataset_info": {"splits": {"test": {"num_examples": "lots"}}}})

        async with client_for(handler) as client:
            with pytest.raises(UpstreamUnavailable):
                await client.get_split_size("d", "default", "test")

    @pytest.mark.asyncio
    async def test_get_rows(self, server):
        async with server.client() as client:
            rows = await client.get_rows("ComplexDataLab/OpenFake", "default", "test", 40, 20)

        assert len(rows) == 20
        assert rows[0]["row_idx"] == 40
        assert rows[-1]["row_idx"] == 59
        assert rows[0]["row"]["label"] == "fake"

    @pytest.mark.asyncio
    async def test_get_rows_caps_page_size(self, server):
        async with server.client() as client:
            rows = await client.get_rows("ComplexDataLab/OpenFake", "default", "test", 0, 500)

        assert len(rows) == Config.MAX_PAGE_SIZE
        assert server.requests[0].url.params["limit"] == str(Config.MAX_PAGE_SIZE)

    @pytest.mark.asyncio
    async def test_get_rows_clamps_negative_offset(self, server):
        async with server.client() as client:
            await client.get_rows("ComplexDataLab/OpenFake", "default", "test", -5, 10)

        assert server.requests[0].url.params["offset"] == "0"

    @pytest.mark.asyncio
    async def test_non_2xx_raises_unavailable(self, server):
        server.fail(OPENFAKE, "error")
        async with server.client() as client:
            with pytest.raises(UpstreamUnavailable) as excinfo:
                await client.get_rows("ComplexDataLab/OpenFake", "default", "test", 0, 10)

        assert excinfo.value.status_code == 503
        assert isinstance(excinfo.value.__cause__, httpx.HTTPStatusError)

    @pytest.mark.asyncio
    async def test_timeout_raises_upstream_timeout(self, server):
        server.fail(OPENFAKE, "timeout")
        async with server.client() as client:
            with pytest.raises(UpstreamTimeout):
                await client.get_split_size("ComplexDataLab/OpenFake", "default", "test")

    @pytest.mark.asyncio
    async def test_network_error_raises_unavailable(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with client_for(handler) as client:
            with pytest.raises(UpstreamUnavailable):
                await client.get_rows("d", "default", "test", 0, 10)

    @pytest.mark.asyncio
    async def test_non_json_body_raises_unavailable(self):
        def handler(request):
            return httpx.Response(200, text="<html>maintenance</html>")

        async with client_for(handler) as client:
            with pytest.raises(UpstreamUnavailable):
                await client.get_rows("d", "default", "test", 0, 10)

    @pytest.mark.asyncio
    async def test_non_object_payload_raises_unavailable(self):
        def handler(request):
            return httpx.Response(200, json=[1, 2, 3])

        async with client_for(handler) as client:
            with pytest.raises(UpstreamUnavailable):
                await client.get_rows("d", "default", "test", 0, 10)

    @pytest.mark.asyncio
    async def test_rate_limiting(self, server):
        with patch.object(Config, "RATE_LIMIT_DELAY", 0.5):
            async with server.client() as client:
                with patch("deck.api_client.asyncio.sleep") as mock_sleep:
                    await client.get_rows("ComplexDataLab/OpenFake", "default", "test", 0, 5)
                    mock_sleep.assert_called_with(0.5)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
