"""
Async client for the Hugging Face dataset-server query API.
"""

import asyncio
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from core.logging_config import setup_logger

from .config import Config
from .exceptions import UpstreamTimeout, UpstreamUnavailable
from .models import InfoResponse, RowsResponse

logger = setup_logger(__name__)


class DatasetServerClient:
    """Client for dataset-server ``/info`` and ``/rows`` calls."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the API client.

        Args:
            base_url: Override for ``Config.API_BASE_URL``
            timeout: Per-request deadline in seconds
            transport: Custom httpx transport (tests pass ``httpx.MockTransport``)
        """
        if not Config.validate():
            raise ValueError("Invalid configuration")

        self.base_url = (base_url or Config.API_BASE_URL).rstrip("/")
        self.headers = Config.get_headers()
        self.timeout = Config.API_TIMEOUT if timeout is None else timeout
        self.rate_limit_delay = Config.RATE_LIMIT_DELAY
        self.max_page_size = Config.MAX_PAGE_SIZE

        # Connection-level retries only; status retries belong to the assembler
        if transport is None:
            transport = httpx.AsyncHTTPTransport(retries=Config.MAX_RETRIES)

        self.session = httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=httpx.Timeout(self.timeout),
            transport=transport,
        )

        logger.info(f"Dataset-server client initialized for {self.base_url}")

    async def __aenter__(self) -> "DatasetServerClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP session."""
        await self.session.aclose()

    async def _make_request(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Make a request to the API.

        Args:
            endpoint: API endpoint
            params: Query parameters

        Returns:
            dict: API response data

        Raises:
            UpstreamTimeout: If the request exceeds its deadline
            UpstreamUnavailable: On network failure, non-2xx status or a non-JSON body
        """
        url = f"{self.base_url}/{endpoint}"

        logger.debug(f"Making request to {url} with params: {params}")

        if self.rate_limit_delay > 0:
            await asyncio.sleep(self.rate_limit_delay)

        try:
            response = await self.session.get(f"/{endpoint}", params=params)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            logger.error(f"API request timed out after {self.timeout}s: {url}")
            raise UpstreamTimeout(f"Request to {url} timed out", url=url) from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error(f"API request failed with status {status}: {url}")
            raise UpstreamUnavailable(
                f"Request to {url} failed: {status}", url=url, status_code=status
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"API request failed: {e}")
            raise UpstreamUnavailable(f"Request to {url} failed: {e}", url=url) from e
        except ValueError as e:
            logger.error(f"API returned a non-JSON body: {url}")
            raise UpstreamUnavailable(f"Malformed response from {url}", url=url) from e

        if not isinstance(data, dict):
            raise UpstreamUnavailable(f"Unexpected payload from {url}", url=url)
        return data

    async def get_split_size(self, dataset: str, config: str, split: str) -> int:
        """
        Get the number of rows in a dataset split.

        Args:
            dataset: Dataset id, e.g. ``ComplexDataLab/OpenFake``
            config: Dataset config name
            split: Split name

        Returns:
            Positive row count

        Raises:
            UpstreamUnavailable: If the count is missing or not positive
        """
        data = await self._make_request(
            "info", {"dataset": dataset, "config": config, "split": split}
        )
        try:
            info = InfoResponse(**data)
        except ValidationError as e:
            raise UpstreamUnavailable(f"Malformed info payload for {dataset}") from e

        split_info = info.dataset_info.splits.get(split) if info.dataset_info else None
        count = split_info.num_examples if split_info else None
        if not count or count <= 0:
            raise UpstreamUnavailable(
                f"Unable to determine dataset size for {dataset} ({split} split)"
            )
        return count

    async def get_rows(
        self,
        dataset: str,
        config: str,
        split: str,
        offset: int,
        limit: int,
    ) -> List[Any]:
        """
        Get one page of rows.

        Args:
            dataset: Dataset id
            config: Dataset config name
            split: Split name
            offset: Index of the first row
            limit: Number of rows (capped at the API page size)

        Returns:
            List of raw ``{"row_idx": ..., "row": {...}}`` entries
        """
        limit = max(1, min(limit, self.max_page_size))
        data = await self._make_request(
            "rows",
            {
                "dataset": dataset,
                "config": config,
                "split": split,
                "offset": max(offset, 0),
                "limit": limit,
            },
        )
        try:
            page = RowsResponse(**data)
        except ValidationError as e:
            raise UpstreamUnavailable(f"Malformed rows payload for {dataset}") from e

        logger.debug(f"Fetched {len(page.rows)} rows from {dataset} at offset {offset}")
        return page.rows
