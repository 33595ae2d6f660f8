"""Price data collaborators."""

from folioscope.data.prices import DEFAULT_TOKEN_IDS, CoinGeckoClient, PriceService

__all__ = ["CoinGeckoClient", "DEFAULT_TOKEN_IDS", "PriceService"]
