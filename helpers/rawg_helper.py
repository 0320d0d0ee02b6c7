"""
RAWG API Helper
Metadata/discovery adapter: search, genres, top rated and Steam id lookup
"""

import random
import re
from typing import Any, Dict, List, Optional, Tuple, Union

import config
from helpers.game_helper import (
    Game,
    GameSource,
    MAX_GENRE_DISPLAY,
    parse_release_year,
    truncate_description,
)
from helpers.http_helper import ApiError, RateLimitedClient
from helpers.logging_helper import get_logger

STEAM_STORE_ID = 1  # RAWG's id for the Steam store
MAX_RANDOM_PAGE = 500
TOP_RATED_PAGE_SIZE = 40

_STEAM_APP_URL = re.compile(r"/app/(\d+)")

logger = get_logger("RawgCatalog")


class RawgCatalog:
    """
    RAWG adapter. Search errors propagate as ApiError; lookups that are
    only nice-to-have return None or [] instead.
    """

    def __init__(
        self,
        client: RateLimitedClient,
        api_key: Optional[str] = None,
        api_base_url: str = config.RAWG_API_BASE_URL,
        min_votes: int = config.HIGH_RATED_MIN_VOTES,
    ):
        self.client = client
        self.api_key = api_key
        self.api_base_url = api_base_url.rstrip("/")
        self.min_votes = min_votes

    def _params(self, **extra) -> Dict[str, Any]:
        params = {"key": self.api_key}
        params.update(extra)
        return params

    async def search_games(
        self,
        search: Optional[str] = None,
        genres: Optional[str] = None,
        tags: Optional[str] = None,
        ordering: Optional[str] = None,
        metacritic: Optional[str] = None,
        stores: Optional[str] = None,
        page_size: int = 20,
        page: int = 1,
    ) -> Dict[str, Any]:
        """
        GET /games. Returns {"count": int, "results": [...]}.
        """
        params = self._params(
            search=search,
            genres=genres,
            tags=tags,
            ordering=ordering,
            metacritic=metacritic,
            stores=stores,
            page_size=page_size,
            page=page,
        )
        data = await self.client.get(f"{self.api_base_url}/games", params=params)
        data = data or {}
        return {"count": data.get("count", 0) or 0, "results": data.get("results") or []}

    async def get_game_details(self, game_id: Union[int, str]) -> Optional[Dict[str, Any]]:
        try:
            return await self.client.get(f"{self.api_base_url}/games/{game_id}", params=self._params())
        except ApiError as e:
            logger.error(f"Failed to get game details from RAWG for {game_id}: {e}")
            return None

    async def get_genres(self) -> List[Dict[str, Any]]:
        try:
            data = await self.client.get(f"{self.api_base_url}/genres", params=self._params())
        except ApiError as e:
            logger.error(f"Failed to get genres from RAWG: {e}")
            return []
        return (data or {}).get("results") or []

    async def get_random_game_by_genre(self, genre_slug: str) -> Optional[Dict[str, Any]]:
        """
        Pick a random page (one game per page) within the first 500 results for a genre.
        """
        try:
            first = await self.search_games(genres=genre_slug, page_size=1)
            if not first["count"]:
                return None

            random_page = random.randint(1, min(MAX_RANDOM_PAGE, first["count"]))
            response = await self.search_games(
                genres=genre_slug,
                page_size=1,
                page=random_page,
                ordering="-rating",
            )
        except ApiError as e:
            logger.error(f"Failed to get random game for genre {genre_slug}: {e}")
            return None

        return response["results"][0] if response["results"] else None

    async def get_top_rated_games(self, min_rating: float = config.HIGH_RATED_THRESHOLD) -> List[Dict[str, Any]]:
        """
        Highly rated games with enough votes for the score to mean something.
        """
        try:
            response = await self.search_games(
                ordering="-rating",
                metacritic="80,100",
                page_size=TOP_RATED_PAGE_SIZE,
            )
        except ApiError as e:
            logger.error(f"Failed to get top rated games: {e}")
            return []

        return [
            game for game in response["results"]
            if (game.get("rating") or 0) >= min_rating and (game.get("ratings_count") or 0) > self.min_votes
        ]

    async def search_steam_game(self, game_name: str) -> Optional[Tuple[int, Dict[str, Any]]]:
        """
        Find a game on RAWG restricted to the Steam store and return (steam_app_id, rawg_game).
        """
        try:
            response = await self.search_games(search=game_name, stores=str(STEAM_STORE_ID), page_size=1)
        except ApiError as e:
            logger.error(f"Failed to search Steam game in RAWG for '{game_name}': {e}")
            return None

        if not response["results"]:
            return None

        game = response["results"][0]
        for store in game.get("stores") or []:
            store_info = store.get("store") or {}
            if store_info.get("id") != STEAM_STORE_ID:
                continue
            match = _STEAM_APP_URL.search(store.get("url") or "")
            if match:
                return int(match.group(1)), game

        return None

    def format_game(self, rawg_game: Dict[str, Any]) -> Optional[Game]:
        if not rawg_game:
            return None

        released = rawg_game.get("released")
        return Game(
            source=GameSource.RAWG,
            game_id=rawg_game.get("id"),
            name=rawg_game.get("name", "Unknown Game"),
            description=truncate_description(rawg_game.get("description_raw")),
            genres=[g["name"] for g in rawg_game.get("genres") or [] if g.get("name")][:MAX_GENRE_DISPLAY],
            tags=[t["name"] for t in rawg_game.get("tags") or [] if t.get("name")],
            release_date=released or "TBA",
            release_year=parse_release_year(released),
            header_image=rawg_game.get("background_image"),
            platforms={
                p["platform"]["name"]: True
                for p in rawg_game.get("platforms") or []
                if (p.get("platform") or {}).get("name")
            },
            rating=rawg_game.get("rating"),
            metacritic=rawg_game.get("metacritic"),
        )
