"""
Steam API Helper
Catalog adapter: full app list, per-app store details and normalization to Game
"""

import random
from typing import Any, Dict, List, Optional, Union

import config
from helpers.cache_helper import CacheStore
from helpers.game_helper import (
    Game,
    GameSource,
    MAX_GENRE_DISPLAY,
    PriceInfo,
    parse_release_year,
    truncate_description,
)
from helpers.http_helper import ApiError, RateLimitedClient
from helpers.logging_helper import get_logger

APP_LIST_CACHE_KEY = "steam_app_list"
APP_DETAILS_CACHE_KEY = "steam_app_details_{app_id}"

logger = get_logger("SteamCatalog")


class CatalogUnavailableError(Exception):
    """The app list could not be loaded from cache or from Steam."""


# ===== URL HELPERS =====

def get_steam_app_url(app_id: Union[int, str], store_base_url: str = config.STEAM_STORE_BASE_URL) -> str:
    """
    Generate Steam store URL for app.
    """
    return f"{store_base_url}/app/{app_id}/"


def get_app_header_url(app_id: Union[int, str]) -> str:
    """
    Generate Steam app header image URL.
    """
    return f"https://steamcdn-a.akamaihd.net/steam/apps/{app_id}/header.jpg"


def parse_price_overview(details: Dict[str, Any]) -> PriceInfo:
    """
    Build PriceInfo from an appdetails payload. Steam reports amounts in cents.
    """
    if details.get("is_free"):
        return PriceInfo(amount=0.0, formatted="Free", is_free=True)

    price_info = details.get("price_overview") or {}
    if not price_info:
        return PriceInfo()

    discount = int(price_info.get("discount_percent") or 0)
    return PriceInfo(
        amount=(price_info.get("final") or 0) / 100,
        formatted=price_info.get("final_formatted") or "Price unknown",
        initial_formatted=price_info.get("initial_formatted") if discount > 0 else None,
        discount_percent=discount,
        currency=price_info.get("currency"),
        is_free=False,
    )


class SteamCatalog:
    """
    Steam catalog adapter.

    The full app list is cached for a day; store details are cached per app.
    """

    def __init__(
        self,
        client: RateLimitedClient,
        cache: CacheStore,
        api_key: Optional[str] = None,
        api_base_url: str = config.STEAM_API_BASE_URL,
        store_base_url: str = config.STEAM_STORE_BASE_URL,
        language: str = config.STEAM_LANGUAGE,
        country: str = config.STEAM_COUNTRY,
        app_list_ttl: float = config.APP_LIST_CACHE_TTL,
        details_ttl: float = config.GAME_DETAILS_CACHE_TTL,
    ):
        self.client = client
        self.cache = cache
        self.api_key = api_key
        self.api_base_url = api_base_url.rstrip("/")
        self.store_base_url = store_base_url.rstrip("/")
        self.language = language
        self.country = country
        self.app_list_ttl = app_list_ttl
        self.details_ttl = details_ttl

    # ===== APP LIST =====

    async def list_all(self) -> List[Dict[str, Any]]:
        """
        Return [{"appid", "name"}, ...] for the whole catalog.
        """
        cached = await self.cache.get(APP_LIST_CACHE_KEY)
        if isinstance(cached, list) and cached:
            logger.debug(f"Loaded Steam app list from cache ({len(cached)} apps)")
            return cached

        params = {"key": self.api_key} if self.api_key else None
        try:
            data = await self.client.get(f"{self.api_base_url}/ISteamApps/GetAppList/v2/", params=params)
        except ApiError as e:
            logger.error(f"Failed to fetch Steam app list: {e}")
            raise CatalogUnavailableError("Could not load the Steam app list") from e

        apps = (data or {}).get("applist", {}).get("apps", [])
        apps = [app for app in apps if app.get("name")]
        if not apps:
            raise CatalogUnavailableError("Steam returned an empty app list")

        await self.cache.set(APP_LIST_CACHE_KEY, apps, self.app_list_ttl)
        logger.info(f"Fetched and cached Steam app list ({len(apps)} apps)")
        return apps

    async def random_app(self) -> Dict[str, Any]:
        apps = await self.list_all()
        return random.choice(apps)

    async def search_by_name(self, game_name: str) -> Optional[Dict[str, Any]]:
        """
        Find an app by name: exact (case-insensitive) match first, then the
        best partial match, preferring prefix matches and shorter names.
        """
        term = (game_name or "").lower().strip()
        if not term:
            return None

        apps = await self.list_all()
        for app in apps:
            if app["name"].lower() == term:
                return app

        partial = [app for app in apps if term in app["name"].lower()]
        if not partial:
            return None

        partial.sort(key=lambda app: (not app["name"].lower().startswith(term), len(app["name"])))
        return partial[0]

    # ===== APP DETAILS =====

    async def get_details(self, app_id: Union[int, str]) -> Optional[Dict[str, Any]]:
        """
        Raw appdetails payload for one app, or None if Steam has nothing usable.
        """
        cache_key = APP_DETAILS_CACHE_KEY.format(app_id=app_id)
        cached = await self.cache.get(cache_key)
        if isinstance(cached, dict):
            return cached

        try:
            data = await self.client.get(
                f"{self.store_base_url}/api/appdetails",
                params={"appids": app_id, "l": self.language, "cc": self.country},
            )
        except ApiError as e:
            logger.error(f"Failed to fetch app details for {app_id}: {e}")
            return None

        entry = (data or {}).get(str(app_id))
        if not entry or not entry.get("success"):
            logger.warning(f"App details request unsuccessful for {app_id}")
            return None

        details = entry.get("data") or None
        if details:
            await self.cache.set(cache_key, details, self.details_ttl)
        return details

    async def get_game(self, app_id: Union[int, str]) -> Optional[Game]:
        details = await self.get_details(app_id)
        if not details:
            return None
        return self.format_game_details(details, fallback_id=app_id)

    def format_game_details(self, details: Dict[str, Any], fallback_id: Union[int, str, None] = None) -> Optional[Game]:
        if not details:
            return None

        app_id = details.get("steam_appid") or fallback_id
        try:
            app_id = int(app_id)
        except (TypeError, ValueError):
            pass

        release_date = (details.get("release_date") or {}).get("date") or "TBA"
        platforms = details.get("platforms") or {}
        metacritic = (details.get("metacritic") or {}).get("score")
        description = details.get("short_description") or details.get("detailed_description")

        return Game(
            source=GameSource.STEAM,
            game_id=app_id,
            name=details.get("name", "Unknown Game"),
            description=truncate_description(description),
            app_type=details.get("type"),
            genres=[g["description"] for g in details.get("genres", []) if g.get("description")][:MAX_GENRE_DISPLAY],
            tags=[c["description"] for c in details.get("categories", []) if c.get("description")],
            price=parse_price_overview(details),
            release_date=release_date,
            release_year=parse_release_year(release_date),
            header_image=details.get("header_image") or (get_app_header_url(app_id) if app_id else None),
            store_url=get_steam_app_url(app_id, self.store_base_url),
            developers=list(details.get("developers") or []),
            publishers=list(details.get("publishers") or []),
            platforms={
                "windows": bool(platforms.get("windows")),
                "mac": bool(platforms.get("mac")),
                "linux": bool(platforms.get("linux")),
            },
            metacritic=metacritic,
        )
