"""
Product API Client

HTTP wrappers around the shop's catalog, search, product detail and
quotation endpoints. The catalog summary is cached on local disk and a
stale copy is served when the remote call fails.
"""

import logging
import os
import time
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

CATALOG_CACHE_SECONDS = 86400
REQUEST_TIMEOUT = 30.0


class ProductAPIClient:
    """Client for the merchant product API"""

    def __init__(
        self,
        catalog_summary_url: str,
        product_search_url: str,
        product_detail_url: str,
        quotation_url: Optional[str] = None,
        cache_file: str = "./cache/catalog-summary.txt",
        cache_seconds: int = CATALOG_CACHE_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.catalog_summary_url = catalog_summary_url
        self.product_search_url = product_search_url
        self.product_detail_url = product_detail_url
        self.quotation_url = quotation_url
        self.cache_file = cache_file
        self.cache_seconds = cache_seconds
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=REQUEST_TIMEOUT, transport=self._transport)

    def _read_cache(self, fresh_only: bool) -> Optional[str]:
        if not os.path.exists(self.cache_file):
            return None
        age = time.time() - os.path.getmtime(self.cache_file)
        if fresh_only and age >= self.cache_seconds:
            return None
        with open(self.cache_file, "r", encoding="utf-8") as f:
            content = f.read()
        return content or None

    def _write_cache(self, content: str) -> None:
        try:
            os.makedirs(os.path.dirname(self.cache_file) or ".", exist_ok=True)
            with open(self.cache_file, "w", encoding="utf-8") as f:
                f.write(content)
        except OSError as e:
            logger.warning(f"Could not write catalog cache {self.cache_file}: {str(e)}")

    async def get_catalog_summary(self) -> Optional[str]:
        """
        Fetch the product catalog summary, served from disk within 24 hours.

        Returns:
            Catalog text, the stale cached copy when the API fails, or None
        """
        cached = self._read_cache(fresh_only=True)
        if cached:
            logger.info("Using cached catalog summary")
            return cached

        logger.info(f"Fetching catalog summary from {self.catalog_summary_url}")
        try:
            async with self._client() as client:
                response = await client.get(self.catalog_summary_url)
        except httpx.HTTPError as e:
            logger.error(f"Catalog summary request failed: {str(e)}")
            return self._stale_catalog()

        if response.status_code != 200:
            logger.error(f"Catalog summary returned HTTP {response.status_code}")
            return self._stale_catalog()

        self._write_cache(response.text)
        return response.text

    def _stale_catalog(self) -> Optional[str]:
        stale = self._read_cache(fresh_only=False)
        if stale:
            logger.warning("Serving stale catalog summary from cache")
        return stale

    def clear_cache(self) -> bool:
        if os.path.exists(self.cache_file):
            os.remove(self.cache_file)
            logger.info("Catalog summary cache cleared")
            return True
        return False

    async def _post(self, url: str, payload: Dict[str, Any], label: str) -> Optional[str]:
        logger.info(f"{label} request: {payload}")
        try:
            async with self._client() as client:
                response = await client.post(url, json=payload)
        except httpx.HTTPError as e:
            logger.error(f"{label} request failed: {str(e)}")
            return None

        if response.status_code != 200:
            logger.error(f"{label} returned HTTP {response.status_code}: {response.text[:200]}")
            return None
        return response.text

    async def search_products(self, criterias: List[str]) -> Optional[str]:
        """Search products by catalog category names"""
        return await self._post(self.product_search_url, {"criterias": criterias}, "Product search")

    async def get_product_detail(self, product_name: str) -> Optional[str]:
        """Look up one product by its exact name"""
        return await self._post(self.product_detail_url, {"productName": product_name}, "Product detail")

    async def generate_quotation(self, quota_detail: List[Dict[str, Any]], price_type: str) -> Optional[str]:
        """Request a quotation; callers must check authorization first"""
        if not self.quotation_url:
            logger.error("Quotation URL is not configured")
            return None
        return await self._post(
            self.quotation_url,
            {"quotaDetail": quota_detail, "priceType": price_type},
            "Quotation",
        )
