"""
In-memory stand-in for the dataset-server API and row builders.
"""

from typing import Dict, List, Optional, Tuple

import httpx

from deck.api_client import DatasetServerClient
from deck.config import FetchPolicy

IMAGE_HOST = "https://datasets-server.huggingface.co/assets"

OPENFAKE = ("ComplexDataLab/OpenFake", "test")
COCO = ("lmms-lab/COCO-Caption2017", "val")


def openfake_row(index: int, label: str = "fake", model: Optional[str] = "flux.1-dev",
                 prompt: Optional[str] = "A cat wearing a crown", src: Optional[str] = None) -> dict:
    return {
        "image": {"src": src or f"{IMAGE_HOST}/openfake/{index}.jpg", "width": 512, "height": 512},
        "label": label,
        "prompt": prompt,
        "model": model,
    }


def coco_row(index: int, captions: Optional[List[str]] = None, file_name: Optional[str] = None,
             src: Optional[str] = None) -> dict:
    return {
        "image": {"src": src or f"{IMAGE_HOST}/coco/{index}.jpg", "width": 640, "height": 480},
        "answer": ["A dog running on a beach"] if captions is None else captions,
        "question": "Describe the image.",
        "file_name": f"{index:012d}.jpg" if file_name is None else file_name,
    }


class FakeDatasetServer:
    """Serves ``/info`` and ``/rows`` for registered (dataset, split) pairs."""

    def __init__(self):
        self.datasets: Dict[Tuple[str, str], List[dict]] = {}
        self.failures: Dict[Tuple[str, str], str] = {}
        self.requests: List[httpx.Request] = []

    def add(self, key: Tuple[str, str], rows: List[dict]) -> None:
        self.datasets[key] = rows

    def fail(self, key: Tuple[str, str], mode: str = "error") -> None:
        """Make every call for ``key`` fail: ``timeout``, ``error``, ``info-error`` or ``rows-error``."""
        self.failures[key] = mode

    def calls(self, path: str, key: Optional[Tuple[str, str]] = None) -> int:
        return sum(
            1 for r in self.requests
            if r.url.path == path and (
                key is None or (r.url.params.get("dataset"), r.url.params.get("split")) == key
            )
        )

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        params = request.url.params
        key = (params.get("dataset"), params.get("split"))
        mode = self.failures.get(key)
        if mode == "timeout":
            raise httpx.ReadTimeout("timed out", request=request)
        if mode == "error" or (mode == "info-error" and request.url.path == "/info"):
            return httpx.Response(503, json={"error": "unavailable"})

        rows = self.datasets.get(key, [])
        if request.url.path == "/info":
            return httpx.Response(200, json={
                "dataset_info": {
                    "splits": {key[1]: {"name": key[1], "num_examples": len(rows)}}
                },
                "partial": False,
            })
        if request.url.path == "/rows":
            if mode == "rows-error":
                return httpx.Response(500, json={"error": "boom"})
            offset = int(params.get("offset", 0))
            limit = int(params.get("limit", 100))
            page = rows[offset:offset + limit]
            return httpx.Response(200, json={
                "rows": [
                    {"row_idx": offset + i, "row": row, "truncated_cells": []}
                    for i, row in enumerate(page)
                ],
                "num_rows_total": len(rows),
                "num_rows_per_page": limit,
                "partial": False,
            })
        return httpx.Response(404, json={"error": "not found"})

    def client(self) -> DatasetServerClient:
        return DatasetServerClient(
            base_url="https://datasets-server.test",
            transport=httpx.MockTransport(self.handler),
        )


TEST_POLICY = FetchPolicy(max_attempts=2, fetch_multiplier=2, floor_limit=12, backoff_seconds=0)
