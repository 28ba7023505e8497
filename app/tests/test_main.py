"""
Tests for the deck HTTP server.
"""

import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, MagicMock, patch

import app.main as main_module
from app.main import app, get_assembler
from deck.exceptions import NoImagesAvailable
from deck.models import Card, DisplayLabel, GroundTruth


def make_card(index: int, truth: GroundTruth) -> Card:
    source = "openfake" if truth is GroundTruth.AI else "coco"
    return Card(
        id=f"{source}-x-{index}",
        source=source,
        image_url=f"https://datasets-server.huggingface.co/assets/{index}.jpg",
        ground_truth=truth,
        display_label=DisplayLabel.for_truth(truth),
        prompt_or_caption="A caption",
        model_name="flux.1-dev" if truth is GroundTruth.AI else None,
        credit_line="credit",
        source_url="https://huggingface.co/datasets/x",
    )


@pytest.fixture
def assembler():
    assembler = MagicMock()
    cards = [make_card(i, GroundTruth.AI) for i in range(5)] + [make_card(i, GroundTruth.REAL) for i in range(4)]
    assembler.fetch_deck = AsyncMock(return_value=cards)
    assembler.fetch_quick_deck = AsyncMock(return_value=cards[:8])
    assembler.context.cache_sizes.return_value = {"openfake": 3, "coco": 1}
    return assembler


@pytest.fixture
def client(assembler):
    app.dependency_overrides[get_assembler] = lambda: assembler
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestDeckEndpoints:
    """Test suite for the deck endpoints."""

    def test_get_deck(self, client, assembler):
        response = client.get("/v1/deck", params={"count": 9, "limit_per_fetch": 30})

        assert response.status_code == 200
        body = response.json()
        assert body["count"] == 9
        assert body["requested"] == 9
        assert body["fake"] == 5
        assert body["real"] == 4
        assert body["cards"][0]["imageUrl"].endswith("0.jpg")
        assert body["cards"][0]["groundTruth"] == "ai"
        assembler.fetch_deck.assert_awaited_once_with(9, 30)

    def test_quick_deck(self, client, assembler):
        response = client.get("/v1/deck/quick")

        assert response.status_code == 200
        assert response.json()["count"] == 8
        assembler.fetch_quick_deck.assert_awaited_once()

    @pytest.mark.parametrize("params", [
        {"count": 0},
        {"count": 500},
        {"count": "many"},
        {"limit_per_fetch": 0},
        {"limit_per_fetch": 1000},
    ])
    def test_invalid_parameters(self, client, params):
        assert client.get("/v1/deck", params=params).status_code == 422

    def test_no_images_returns_503(self, client, assembler):
        assembler.fetch_deck = AsyncMock(side_effect=NoImagesAvailable())

        response = client.get("/v1/deck")

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "5"
        assert "Check your connection" in response.json()["detail"]

    def test_assembler_not_ready(self):
        with patch("app.main.ASSEMBLER", None):
            response = TestClient(app).get("/v1/deck")

        assert response.status_code == 503


class TestInfoEndpoints:
    """Test suite for health and attribution endpoints."""

    def test_sources(self, client):
        response = client.get("/v1/sources")

        assert response.status_code == 200
        sources = response.json()["sources"]
        assert set(sources) == {"openfake", "nano-banana", "coco", "openfake-real"}
        assert sources["coco"]["datasetId"] == "lmms-lab/COCO-Caption2017"

    def test_health(self, client, assembler):
        with patch("app.main.ASSEMBLER", assembler):
            response = client.get("/health")

        assert response.json() == {"ok": True, "cache_sizes": {"openfake": 3, "coco": 1}}

    def test_service_uses_api_logger(self):
        assert main_module.logger.name == "api"

    def test_health_before_startup(self, client):
        with patch("app.main.ASSEMBLER", None):
            response = client.get("/health")

        assert response.json() == {"ok": False, "cache_sizes": None}


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
