"""
IsThereAnyDeal API Helper
Pricing/deals adapter. When disabled it answers every call with an empty result.
"""

from typing import Any, Dict, List, Optional

import config
from helpers.game_helper import Game, GameSource, PriceInfo
from helpers.http_helper import ApiError, RateLimitedClient
from helpers.logging_helper import get_logger

DEFAULT_SHOPS = "steam"

logger = get_logger("DealsCatalog")


class DealsCatalog:
    """IsThereAnyDeal adapter restricted to the Steam shop."""

    def __init__(
        self,
        client: Optional[RateLimitedClient],
        api_key: Optional[str] = None,
        enabled: bool = True,
        api_base_url: str = config.ITAD_API_BASE_URL,
        country: str = config.ITAD_COUNTRY,
    ):
        self.client = client
        self.api_key = api_key
        self.enabled = enabled and client is not None
        self.api_base_url = api_base_url.rstrip("/")
        self.country = country
        if not self.enabled:
            logger.info("Deals adapter disabled - price lookups will return no results")

    def _params(self, **extra) -> Dict[str, Any]:
        params = {"key": self.api_key, "country": self.country, "shops": DEFAULT_SHOPS}
        params.update(extra)
        return params

    async def _deal_list(self, **params) -> List[Dict[str, Any]]:
        data = await self.client.get(f"{self.api_base_url}/deals/v01/list", params=self._params(**params))
        return (data or {}).get("list") or []

    async def get_current_deals(self, limit: int = 20, offset: int = 0, sort: str = "price:asc") -> List[Dict[str, Any]]:
        if not self.enabled:
            return []
        try:
            return await self._deal_list(limit=limit, offset=offset, sort=sort)
        except ApiError as e:
            logger.error(f"Failed to get deals from ITAD: {e}")
            return []

    async def get_top_deals(self, min_discount: int = 50) -> List[Dict[str, Any]]:
        if not self.enabled:
            return []
        try:
            deals = await self._deal_list(limit=50, sort="cut:desc")
        except ApiError as e:
            logger.error(f"Failed to get top deals from ITAD: {e}")
            return []
        return [deal for deal in deals if (deal.get("price_cut") or 0) >= min_discount]

    async def get_games_by_price_range(self, max_price: Optional[float] = None, is_free: bool = False) -> List[Dict[str, Any]]:
        if not self.enabled:
            return []

        params: Dict[str, Any] = {"limit": 30, "sort": "price:asc"}
        if is_free:
            params["price_max"] = 0
        elif max_price is not None:
            params["price_max"] = max_price

        try:
            return await self._deal_list(**params)
        except ApiError as e:
            logger.error(f"Failed to get games by price range from ITAD: {e}")
            return []

    async def search_game(self, game_name: str) -> List[Dict[str, Any]]:
        if not self.enabled:
            return []
        try:
            data = await self.client.get(
                f"{self.api_base_url}/search/search",
                params={"key": self.api_key, "q": game_name, "limit": 5},
            )
        except ApiError as e:
            logger.error(f"Failed to search game in ITAD for '{game_name}': {e}")
            return []
        return (data or {}).get("results") or []

    async def convert_to_plain_name(self, game_name: str) -> Optional[str]:
        results = await self.search_game(game_name)
        return results[0].get("plain") if results else None

    def format_deal(self, deal: Dict[str, Any]) -> Optional[Game]:
        if not deal:
            return None

        current = float(deal.get("price_new") or 0)
        original = float(deal.get("price_old") or current)
        discount = int(deal.get("price_cut") or 0)
        urls = deal.get("urls") or {}

        return Game(
            source=GameSource.ITAD,
            game_id=deal.get("plain") or deal.get("title", ""),
            name=deal.get("title", "Unknown Game"),
            price=PriceInfo(
                amount=current,
                formatted=f"{current:.2f}",
                initial_formatted=f"{original:.2f}" if discount > 0 else None,
                discount_percent=discount,
                is_free=current == 0,
            ),
            store_url=urls.get("buy") or urls.get("game"),
        )
