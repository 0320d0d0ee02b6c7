"""
Recommendation Helper
Turns a user (or nobody) into one chosen game using a layered fallback chain
"""

import asyncio
import random
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

import config
from database import PreferenceStore
from helpers.game_helper import Game, InteractionAction
from helpers.itad_helper import DealsCatalog
from helpers.logging_helper import get_logger
from helpers.rawg_helper import RawgCatalog
from helpers.steam_helper import CatalogUnavailableError, SteamCatalog

PERSONALIZED_CANDIDATES = 20
SIMILAR_CANDIDATES = 10
SIMILAR_PICK_WINDOW = 5
GENRE_SEARCH_PAGE_SIZE = 20
PREFERENCE_SUMMARY_GENRES = 5
PREFERENCE_SUMMARY_RATINGS = 20
PREFERENCE_SUMMARY_HISTORY = 50

logger = get_logger("Recommendations")


class RatingWriteError(Exception):
    """An explicit rating could not be saved."""


@dataclass
class RatingResult:
    game: Game
    rating: int
    similar: Optional[Game] = None


def genre_slug(genre: str) -> str:
    """'Massively Multiplayer' -> 'massively-multiplayer'"""
    return "-".join(genre.strip().lower().split())


class RecommendationEngine:
    """
    Stateless per call: asking again with the same inputs is how callers get
    "another one". Every stage catches and logs its own failures, so only an
    explicit rating write failure (RatingWriteError) leaves this class;
    "nothing found" is None or [].
    """

    def __init__(
        self,
        store: PreferenceStore,
        steam: SteamCatalog,
        rawg: RawgCatalog,
        deals: Optional[DealsCatalog] = None,
        high_rated_threshold: float = config.HIGH_RATED_THRESHOLD,
        high_rated_max_candidates: int = config.HIGH_RATED_MAX_CANDIDATES,
        random_max_attempts: int = config.RANDOM_MAX_ATTEMPTS,
        genre_request_nudge: float = config.GENRE_REQUEST_NUDGE,
        price_batch_size: int = config.PRICE_BATCH_SIZE,
        price_target_count: int = config.PRICE_TARGET_COUNT,
        price_max_batches: int = config.PRICE_MAX_BATCHES,
    ):
        self.store = store
        self.steam = steam
        self.rawg = rawg
        self.deals = deals
        self.high_rated_threshold = high_rated_threshold
        self.high_rated_max_candidates = high_rated_max_candidates
        self.random_max_attempts = random_max_attempts
        self.genre_request_nudge = genre_request_nudge
        self.price_batch_size = price_batch_size
        self.price_target_count = price_target_count
        self.price_max_batches = price_max_batches

    # ===== RESOLUTION =====

    async def _resolve_steam_game(self, app_id: Union[int, str]) -> Optional[Game]:
        """Live Steam details for an app, only if it is an actual game."""
        game = await self.steam.get_game(app_id)
        if game is None or not game.is_game:
            return None
        return game

    async def _resolve_rated_steam_game(self, app_id: Union[int, str], rating: Optional[float]) -> Optional[Game]:
        """Steam details with the RAWG rating filled in; Steam itself reports no user score."""
        game = await self._resolve_steam_game(app_id)
        if game is not None and game.rating is None and rating is not None:
            game.rating = rating
        return game

    async def _resolve_via_rawg(self, name: str, rating: Optional[float] = None) -> Optional[Game]:
        match = await self.rawg.search_steam_game(name)
        if not match:
            return None
        app_id, rawg_game = match
        if rating is None:
            rating = (rawg_game or {}).get("rating")
        return await self._resolve_rated_steam_game(app_id, rating)

    # ===== FALLBACK STAGES =====

    async def _personalized_stage(self, user_id: str) -> Optional[Game]:
        candidates = await self.store.get_recommended_games(user_id, PERSONALIZED_CANDIDATES)
        if not candidates:
            logger.debug(f"No personalized candidates for user {user_id}")
            return None

        choice = random.choice(candidates)
        game = await self._resolve_rated_steam_game(choice["game_id"], choice.get("rating"))
        if game is None:
            logger.info(f"Personalized pick {choice['game_id']} could not be resolved for user {user_id}")
        return game

    async def _high_rated_stage(self) -> Optional[Game]:
        top_rated = await self.rawg.get_top_rated_games(self.high_rated_threshold)
        if not top_rated:
            return None

        candidates = random.sample(top_rated, min(len(top_rated), self.high_rated_max_candidates))
        for candidate in candidates:
            name = candidate.get("name")
            if not name:
                continue
            game = await self._resolve_via_rawg(name, candidate.get("rating"))
            if game:
                return game

        logger.info(f"None of {len(candidates)} high-rated candidates resolved to a Steam game")
        return None

    async def _random_stage(self) -> Optional[Game]:
        for attempt in range(1, self.random_max_attempts + 1):
            try:
                app = await self.steam.random_app()
            except CatalogUnavailableError as e:
                logger.error(f"Random stage aborted, catalog unavailable: {e}")
                return None

            game = await self._resolve_steam_game(app["appid"])
            if game:
                return game
            logger.debug(f"Random attempt {attempt}/{self.random_max_attempts}: app {app['appid']} is not a game")

        return None

    async def _run_stage(self, stage_name: str, stage, *args) -> Optional[Game]:
        try:
            game = await stage(*args)
        except Exception as e:
            logger.error(f"{stage_name} stage failed: {e}", exc_info=True)
            return None
        if game:
            logger.info(f"{stage_name} stage picked '{game.name}' ({game.game_id})")
        return game

    # ===== PUBLIC OPERATIONS =====

    async def get_personalized(self, user_id: Optional[str] = None) -> Optional[Game]:
        """
        Personalized pick, then a high-rated pick, then a random catalog draw.
        Returns None when every stage comes up empty.
        """
        if user_id is not None:
            game = await self._run_stage("Personalized", self._personalized_stage, str(user_id))
            if game:
                return game

        game = await self._run_stage("High-rated", self._high_rated_stage)
        if game:
            return game

        game = await self._run_stage("Random", self._random_stage)
        if game:
            return game

        logger.warning(f"No recommendation available for user {user_id}")
        return None

    async def get_high_rated(self) -> Optional[Game]:
        return await self._run_stage("High-rated", self._high_rated_stage)

    async def get_random(self) -> Optional[Game]:
        return await self._run_stage("Random", self._random_stage)

    async def _genre_stage(self, user_id: str, genre: str) -> Optional[Game]:
        response = await self.rawg.search_games(
            genres=genre_slug(genre),
            ordering="-rating",
            page_size=GENRE_SEARCH_PAGE_SIZE,
        )
        seen = await self.store.get_history_game_ids(user_id)

        for candidate in response["results"]:
            if str(candidate.get("id")) in seen:
                logger.debug(f"Skipping {candidate.get('name')}: already in history of user {user_id}")
                continue

            name = candidate.get("name")
            if not name:
                continue
            match = await self.rawg.search_steam_game(name)
            if not match:
                continue
            app_id, _ = match
            if str(app_id) in seen:
                logger.debug(f"Skipping {name}: Steam app {app_id} already in history of user {user_id}")
                continue

            game = await self._resolve_rated_steam_game(app_id, candidate.get("rating"))
            if game:
                return game

        return None

    async def get_by_genre(self, user_id: str, genre: str) -> Optional[Game]:
        """
        Unseen, store-backed game from the requested genre, best rated first.
        Asking for a genre counts as a weak interest signal for it.
        """
        user_id = str(user_id)
        try:
            await self.store.update_genre_preference(user_id, genre, self.genre_request_nudge)
        except Exception as e:
            logger.error(f"Failed to nudge genre '{genre}' for user {user_id}: {e}", exc_info=True)

        game = await self._run_stage(f"Genre '{genre}'", self._genre_stage, user_id, genre)
        if game:
            return game

        logger.info(f"No unseen '{genre}' game resolved for user {user_id}, falling back to random")
        return await self._run_stage("Random", self._random_stage)

    async def get_by_price_range(
        self,
        max_price: float,
        min_price: float = 0.0,
        target_count: Optional[int] = None,
    ) -> List[Game]:
        """
        Sample random catalog batches, resolve each batch in parallel and keep
        games priced within [min_price, max_price]. Stops at target_count or
        after price_max_batches batches, whichever comes first.
        """
        if min_price < 0 or max_price < min_price:
            raise ValueError(f"Invalid price range {min_price}..{max_price}")

        target_count = target_count or self.price_target_count
        try:
            apps = await self.steam.list_all()
        except CatalogUnavailableError as e:
            logger.error(f"Price search aborted, catalog unavailable: {e}")
            return []

        found: Dict[str, Game] = {}
        for batch_number in range(1, self.price_max_batches + 1):
            batch = random.sample(apps, min(self.price_batch_size, len(apps)))
            results = await asyncio.gather(
                *(self._resolve_steam_game(app["appid"]) for app in batch),
                return_exceptions=True,
            )

            for result in results:
                if isinstance(result, Exception):
                    logger.debug(f"Price lookup failed: {result}")
                    continue
                if result is None or result.price_amount is None:
                    continue
                if min_price <= result.price_amount <= max_price:
                    found.setdefault(str(result.game_id), result)

            logger.debug(f"Price batch {batch_number}: {len(found)}/{target_count} games in range")
            if len(found) >= target_count:
                break

        games = list(found.values())[:target_count]
        logger.info(f"Price search {min_price}-{max_price} found {len(games)} games")
        return games

    async def get_similar(self, game_id: Union[int, str]) -> Optional[Game]:
        """A random pick among the closest cached games, resolved live."""
        try:
            similar = await self.store.get_similar_games(game_id, SIMILAR_CANDIDATES)
            candidates = similar[:SIMILAR_PICK_WINDOW]
            random.shuffle(candidates)
            for candidate in candidates:
                game = await self._resolve_rated_steam_game(candidate["game_id"], candidate.get("rating"))
                if game:
                    return game
        except Exception as e:
            logger.error(f"Similar game lookup failed for {game_id}: {e}", exc_info=True)
        return None

    async def record_action(
        self,
        user_id: str,
        username: Optional[str],
        game: Game,
        action: Union[InteractionAction, str],
        rating: Optional[int] = None,
    ) -> bool:
        """Best-effort bookkeeping. Returns False if the write failed."""
        try:
            await self.store.record_interaction(str(user_id), username, game, action, rating)
            return True
        except Exception as e:
            logger.error(f"Failed to record '{action}' for user {user_id}: {e}", exc_info=True)
            return False

    async def rate_game(self, user_id: str, username: Optional[str], game: Game, rating: int) -> RatingResult:
        """
        Save an explicit rating. Raises RatingWriteError if it could not be
        stored. Ratings of 4 or 5 come back with a similar game when one exists.
        """
        try:
            await self.store.record_interaction(str(user_id), username, game, InteractionAction.RATED, rating)
        except ValueError:
            raise
        except Exception as e:
            logger.error(f"Failed to save rating {rating} for game {game.game_id} by user {user_id}: {e}", exc_info=True)
            raise RatingWriteError(f"Could not save your rating for {game.name}") from e

        similar = await self.get_similar(game.game_id) if rating >= 4 else None
        return RatingResult(game=game, rating=rating, similar=similar)

    async def find_game(self, game_name: str) -> Optional[Game]:
        """
        Look a game up by name: Steam catalog first, then RAWG (via Steam when
        RAWG knows the Steam id), else the RAWG record itself.
        """
        try:
            try:
                app = await self.steam.search_by_name(game_name)
            except CatalogUnavailableError as e:
                logger.warning(f"Catalog unavailable for name search: {e}")
                app = None

            if app:
                game = await self.steam.get_game(app["appid"])
                if game:
                    return game

            response = await self.rawg.search_games(search=game_name, page_size=1)
            if not response["results"]:
                return None

            game = await self._resolve_via_rawg(game_name)
            if game:
                return game
            return self.rawg.format_game(response["results"][0])
        except Exception as e:
            logger.error(f"Game lookup failed for '{game_name}': {e}", exc_info=True)
            return None

    async def get_user_preferences(self, user_id: str) -> Dict[str, Any]:
        user_id = str(user_id)
        genres = await self.store.get_genre_preferences(user_id)
        ratings = await self.store.get_ratings(user_id, PREFERENCE_SUMMARY_RATINGS)
        history = await self.store.get_history(user_id, limit=PREFERENCE_SUMMARY_HISTORY)

        return {
            "genres": genres[:PREFERENCE_SUMMARY_GENRES],
            "ratings": ratings,
            "viewed_count": sum(1 for h in history if h["action"] == InteractionAction.VIEWED.value),
            "recommended_count": sum(1 for h in history if h["action"] == InteractionAction.RECOMMENDED.value),
        }

    async def get_top_rated(self, min_rating: float = config.TOP_RATED_THRESHOLD) -> Optional[Game]:
        try:
            top_rated = await self.rawg.get_top_rated_games(min_rating)
            if not top_rated:
                return None
            pick = random.choice(top_rated)
            game = await self._resolve_via_rawg(pick.get("name", ""), pick.get("rating"))
            return game or self.rawg.format_game(pick)
        except Exception as e:
            logger.error(f"Top rated lookup failed: {e}", exc_info=True)
            return None

    async def get_top_deals(self, min_discount: int = 50, limit: int = 5) -> List[Game]:
        if self.deals is None:
            return []
        deals = await self.deals.get_top_deals(min_discount)
        return [game for game in (self.deals.format_deal(deal) for deal in deals[:limit]) if game]
