"""Token prices from CoinGecko, fronted by the tiered cache."""

import time
from collections.abc import Iterable
from typing import Any

import httpx

from folioscope.core.models import TokenPrice
from folioscope.storage.cache import TieredCache
from folioscope.utils.errors import PriceSourceError
from folioscope.utils.logging import get_logger

logger = get_logger(__name__)

# Avalanche C-Chain token addresses (lowercase) to CoinGecko ids
DEFAULT_TOKEN_IDS: dict[str, str] = {
    "native": "avalanche-2",
    "0xb31f66aa3c1e785363f0875a1b74e27b85fd66c7": "avalanche-2",  # WAVAX
    "0xb97ef9ef8734c71904d8002f8b6bc66dd9c48a6e": "usd-coin",  # USDC
    "0x9702230a8ea53601f5cd2dc00fdbc13d4df4a8c7": "tether",  # USDT
    "0x49d5c2bdffac6ce2bfdb6640f4f80f226bc10bab": "ethereum",  # WETH.e
    "0x50b7545627a5162f82a992c33b87adc75187b218": "bitcoin",  # WBTC.e
}


class CoinGeckoClient:
    """Client for the CoinGecko simple price API."""

    def __init__(
        self,
        base_url: str = "https://api.coingecko.com/api/v3",
        timeout: float = 30.0,
    ) -> None:
        """Initialize CoinGecko client.

        Args:
            base_url: Base URL for the API.
            timeout: Request timeout in seconds.
        """
        self.base_url = base_url
        self._http = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"Accept": "application/json"},
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._http.aclose()

    async def get_prices(
        self, ids: Iterable[str], currency: str = "usd"
    ) -> dict[str, TokenPrice]:
        """Get current prices and 24h change for CoinGecko ids.

        Args:
            ids: CoinGecko coin ids; duplicates are requested once.
            currency: Quote currency.

        Returns:
            Mapping of id to price for every id the API knows.

        Raises:
            PriceSourceError: If the request fails.
        """
        unique_ids = list(dict.fromkeys(ids))
        if not unique_ids:
            return {}

        params = {
            "ids": ",".join(unique_ids),
            "vs_currencies": currency,
            "include_24hr_change": "true",
        }
        try:
            response = await self._http.get("/simple/price", params=params)
            response.raise_for_status()
            data: dict[str, Any] = response.json()
        except httpx.HTTPStatusError as e:
            logger.error("CoinGecko returned {}", e.response.status_code)
            raise PriceSourceError(
                f"CoinGecko API error: {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            logger.error("Failed to fetch prices: {}", str(e))
            raise PriceSourceError(f"Failed to fetch prices: {e}") from e

        fetched_at = time.time()
        result: dict[str, TokenPrice] = {}
        for coin_id in unique_ids:
            quote = data.get(coin_id)
            if not quote:
                continue
            result[coin_id] = TokenPrice(
                usd=float(quote.get(currency) or 0.0),
                usd_24h_change=float(quote.get(f"{currency}_24h_change") or 0.0),
                last_updated_at=fetched_at,
            )
        return result


class PriceService:
    """Cache-first token price lookups.

    Cached prices are served directly. Misses with a known CoinGecko id are
    fetched in one batch and written back to the cache. If the fetch fails
    the caller gets whatever was cached.
    """

    def __init__(
        self,
        cache: TieredCache,
        client: CoinGeckoClient,
        token_ids: dict[str, str] | None = None,
        currency: str = "usd",
    ) -> None:
        self._cache = cache
        self._client = client
        self._token_ids = {
            address.lower(): coin_id
            for address, coin_id in (token_ids or DEFAULT_TOKEN_IDS).items()
        }
        self._currency = currency

    async def get_token_prices(self, addresses: Iterable[str]) -> dict[str, TokenPrice]:
        """Get prices keyed by the addresses as given.

        Addresses with neither a cached price nor a known id are omitted.
        """
        addresses = list(addresses)
        result: dict[str, TokenPrice] = {}
        missing: dict[str, str] = {}

        for address in addresses:
            key = address.lower()
            cached = await self._cache.get(key)
            if cached is not None:
                result[address] = cached
                continue
            coin_id = self._token_ids.get(key)
            if coin_id:
                missing[key] = coin_id

        if not missing:
            return result

        try:
            prices = await self._client.get_prices(missing.values(), self._currency)
        except PriceSourceError as e:
            logger.warning("Price fetch failed, serving cached prices only: {}", str(e))
            return result

        for address in addresses:
            key = address.lower()
            coin_id = missing.get(key)
            if coin_id and coin_id in prices:
                result[address] = prices[coin_id]
                self._cache.set(key, prices[coin_id])

        return result

    async def get_native_token_price(self) -> TokenPrice | None:
        """Get the chain's native token price."""
        prices = await self.get_token_prices(["native"])
        return prices.get("native")
