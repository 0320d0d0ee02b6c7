import aiosqlite
import json
import os
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

import config
from helpers.game_helper import Game, GameSource, InteractionAction, action_value
from helpers.logging_helper import get_logger

# ------------------------------------------------------
# Configuration constants
# ------------------------------------------------------
DB_TIMEOUT = 30.0  # Database operation timeout in seconds
MIN_GENRE_SCORE = 0.0
MAX_GENRE_SCORE = 5.0
FALLBACK_MIN_RATING = 4.0  # generic picks for users without genre preferences

logger = get_logger("PreferenceStore")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _feature_row_to_dict(row: aiosqlite.Row) -> Dict[str, Any]:
    data = dict(row)
    for column in ("genres", "tags"):
        try:
            data[column] = json.loads(data.get(column) or "[]")
        except (TypeError, ValueError):
            data[column] = []
    return data


class PreferenceStore:
    """
    Durable per-user preference model on SQLite.

    Each public call is its own connection and its own statement-level
    transaction. Storage errors are logged and re-raised to the caller.
    """

    def __init__(
        self,
        db_path: Union[str, os.PathLike] = config.DB_PATH,
        timeout: float = DB_TIMEOUT,
        rating_score_factor: float = config.RATING_SCORE_FACTOR,
        recommended_nudge: float = config.RECOMMENDED_NUDGE,
        top_genre_window: int = config.TOP_GENRE_WINDOW,
        similar_genre_points: int = config.SIMILAR_GENRE_POINTS,
        similar_rating_points: int = config.SIMILAR_RATING_POINTS,
        similar_year_points: int = config.SIMILAR_YEAR_POINTS,
    ):
        self.db_path = str(db_path)
        self.timeout = timeout
        self.rating_score_factor = rating_score_factor
        self.recommended_nudge = recommended_nudge
        self.top_genre_window = top_genre_window
        self.similar_genre_points = similar_genre_points
        self.similar_rating_points = similar_rating_points
        self.similar_year_points = similar_year_points

    # ------------------------------------------------------
    # Core execution helper
    # ------------------------------------------------------

    async def execute_db_operation(self, operation_name: str, query: str, params=None, fetch_type=None):
        """
        Execute one statement in its own connection with timing and error logging.

        Args:
            operation_name: Human-readable name for the operation
            query: SQL query to execute
            params: Query parameters
            fetch_type: 'one', 'all', 'rowcount', 'lastrowid' or None for no fetch
        """
        logger.debug(f"Executing {operation_name}")
        if params:
            logger.debug(f"Parameters: {params}")

        start_time = time.time()

        try:
            async with aiosqlite.connect(self.db_path, timeout=self.timeout) as db:
                db.row_factory = aiosqlite.Row
                cursor = await db.execute(query, params or ())

                result = None
                if fetch_type == 'one':
                    result = await cursor.fetchone()
                elif fetch_type == 'all':
                    result = await cursor.fetchall()
                elif fetch_type == 'rowcount':
                    result = cursor.rowcount
                elif fetch_type == 'lastrowid':
                    result = cursor.lastrowid

                await cursor.close()
                await db.commit()

            execution_time = time.time() - start_time
            logger.debug(f"{operation_name} completed in {execution_time:.3f}s")
            return result

        except aiosqlite.Error as db_error:
            execution_time = time.time() - start_time
            logger.error(f"{operation_name} failed after {execution_time:.3f}s: {db_error}")
            raise

    # ------------------------------------------------------
    # Schema
    # ------------------------------------------------------

    async def _init_user_profiles_table(self, db):
        await db.execute("""
            CREATE TABLE IF NOT EXISTS user_profiles (
                user_id TEXT PRIMARY KEY,
                username TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

    async def _init_genre_preferences_table(self, db):
        await db.execute("""
            CREATE TABLE IF NOT EXISTS user_genre_preferences (
                user_id TEXT NOT NULL,
                genre TEXT NOT NULL COLLATE NOCASE,
                score REAL NOT NULL DEFAULT 0,
                updated_at TEXT NOT NULL,
                PRIMARY KEY (user_id, genre)
            )
        """)

    async def _init_game_ratings_table(self, db):
        await db.execute("""
            CREATE TABLE IF NOT EXISTS user_game_ratings (
                user_id TEXT NOT NULL,
                game_id TEXT NOT NULL,
                game_name TEXT,
                rating INTEGER NOT NULL CHECK (rating BETWEEN 1 AND 5),
                created_at TEXT NOT NULL,
                PRIMARY KEY (user_id, game_id)
            )
        """)

    async def _init_game_history_table(self, db):
        await db.execute("""
            CREATE TABLE IF NOT EXISTS user_game_history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                game_id TEXT NOT NULL,
                game_name TEXT,
                action TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
        """)
        await db.execute(
            "CREATE INDEX IF NOT EXISTS idx_history_user ON user_game_history (user_id, id)"
        )

    async def _init_game_features_table(self, db):
        await db.execute("""
            CREATE TABLE IF NOT EXISTS game_features (
                game_id TEXT PRIMARY KEY,
                game_name TEXT,
                genres TEXT NOT NULL DEFAULT '[]',
                tags TEXT NOT NULL DEFAULT '[]',
                rating REAL,
                release_year INTEGER,
                updated_at TEXT NOT NULL
            )
        """)
        await db.execute("""
            CREATE TABLE IF NOT EXISTS game_feature_genres (
                game_id TEXT NOT NULL,
                genre TEXT NOT NULL COLLATE NOCASE,
                position INTEGER NOT NULL,
                PRIMARY KEY (game_id, genre)
            )
        """)
        await db.execute(
            "CREATE INDEX IF NOT EXISTS idx_feature_genres_genre ON game_feature_genres (genre)"
        )

    async def init(self):
        """Create every table and index; safe to call repeatedly."""
        logger.info("=" * 60)
        logger.info("STARTING DATABASE INITIALIZATION")
        logger.info("=" * 60)

        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        table_init_functions = [
            ("User Profiles", self._init_user_profiles_table),
            ("Genre Preferences", self._init_genre_preferences_table),
            ("Game Ratings", self._init_game_ratings_table),
            ("Game History", self._init_game_history_table),
            ("Game Features", self._init_game_features_table),
        ]

        start_time = time.time()
        failures = []

        async with aiosqlite.connect(self.db_path, timeout=self.timeout) as db:
            for table_name, init_function in table_init_functions:
                try:
                    await init_function(db)
                    logger.debug(f"✅ {table_name} table initialized successfully")
                except aiosqlite.Error as table_error:
                    failures.append(table_name)
                    logger.error(f"❌ Failed to initialize {table_name} table: {table_error}", exc_info=True)
            await db.commit()

        total_time = time.time() - start_time
        logger.info("DATABASE INITIALIZATION SUMMARY")
        logger.info(f"Successfully initialized: {len(table_init_functions) - len(failures)}/{len(table_init_functions)}")
        logger.info(f"Total time: {total_time:.2f} seconds")

        if failures:
            raise RuntimeError(f"Failed to initialize tables: {', '.join(failures)}")
        logger.info("✅ All database tables initialized successfully")

    # ------------------------------------------------------
    # User profiles
    # ------------------------------------------------------

    async def create_or_update_user(self, user_id: str, username: Optional[str]):
        now = _now()
        await self.execute_db_operation(
            f"upsert user profile {user_id}",
            """
            INSERT INTO user_profiles (user_id, username, created_at, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(user_id) DO UPDATE SET
                username = excluded.username,
                updated_at = excluded.updated_at
            """,
            (str(user_id), username, now, now),
        )

    async def get_user_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        row = await self.execute_db_operation(
            f"get user profile {user_id}",
            "SELECT user_id, username, created_at, updated_at FROM user_profiles WHERE user_id = ?",
            (str(user_id),),
            fetch_type='one',
        )
        return dict(row) if row else None

    # ------------------------------------------------------
    # Genre preferences
    # ------------------------------------------------------

    async def update_genre_preference(self, user_id: str, genre: str, delta: float):
        """Add delta to the (user, genre) score, creating the row if needed. Result stays in [0, 5]."""
        await self.execute_db_operation(
            f"update genre preference {user_id}/{genre}",
            """
            INSERT INTO user_genre_preferences (user_id, genre, score, updated_at)
            VALUES (?, ?, MIN(MAX(?, ?), ?), ?)
            ON CONFLICT(user_id, genre) DO UPDATE SET
                score = MIN(MAX(score + ?, ?), ?),
                updated_at = excluded.updated_at
            """,
            (
                str(user_id), genre, delta, MIN_GENRE_SCORE, MAX_GENRE_SCORE, _now(),
                delta, MIN_GENRE_SCORE, MAX_GENRE_SCORE,
            ),
        )

    async def get_genre_preferences(self, user_id: str) -> List[Dict[str, Any]]:
        rows = await self.execute_db_operation(
            f"get genre preferences {user_id}",
            """
            SELECT genre, score FROM user_genre_preferences
            WHERE user_id = ?
            ORDER BY score DESC, genre ASC
            """,
            (str(user_id),),
            fetch_type='all',
        )
        return [dict(row) for row in rows]

    # ------------------------------------------------------
    # Ratings
    # ------------------------------------------------------

    async def add_game_rating(self, user_id: str, game_id: Union[int, str], game_name: Optional[str], rating: int):
        """One rating per (user, game); a new rating replaces the old one."""
        if not isinstance(rating, int) or isinstance(rating, bool) or not 1 <= rating <= 5:
            raise ValueError(f"Rating must be an integer between 1 and 5, got {rating!r}")

        await self.execute_db_operation(
            f"rate game {game_id} for {user_id}",
            """
            INSERT INTO user_game_ratings (user_id, game_id, game_name, rating, created_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(user_id, game_id) DO UPDATE SET
                game_name = excluded.game_name,
                rating = excluded.rating,
                created_at = excluded.created_at
            """,
            (str(user_id), str(game_id), game_name, rating, _now()),
        )

    async def get_ratings(self, user_id: str, limit: int = 20) -> List[Dict[str, Any]]:
        rows = await self.execute_db_operation(
            f"get ratings {user_id}",
            """
            SELECT game_id, game_name, rating, created_at FROM user_game_ratings
            WHERE user_id = ?
            ORDER BY created_at DESC
            LIMIT ?
            """,
            (str(user_id), limit),
            fetch_type='all',
        )
        return [dict(row) for row in rows]

    # ------------------------------------------------------
    # Interaction history
    # ------------------------------------------------------

    async def add_history(
        self,
        user_id: str,
        game_id: Union[int, str],
        game_name: Optional[str],
        action: Union[InteractionAction, str],
    ) -> int:
        return await self.execute_db_operation(
            f"add history {user_id}/{game_id}",
            """
            INSERT INTO user_game_history (user_id, game_id, game_name, action, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (str(user_id), str(game_id), game_name, action_value(action), _now()),
            fetch_type='lastrowid',
        )

    async def get_history(
        self,
        user_id: str,
        action: Union[InteractionAction, str, None] = None,
        limit: int = 50,
    ) -> List[Dict[str, Any]]:
        if action is None:
            query = """
                SELECT id, game_id, game_name, action, created_at FROM user_game_history
                WHERE user_id = ?
                ORDER BY id DESC
                LIMIT ?
            """
            params = (str(user_id), limit)
        else:
            query = """
                SELECT id, game_id, game_name, action, created_at FROM user_game_history
                WHERE user_id = ? AND action = ?
                ORDER BY id DESC
                LIMIT ?
            """
            params = (str(user_id), action_value(action), limit)

        rows = await self.execute_db_operation(f"get history {user_id}", query, params, fetch_type='all')
        return [dict(row) for row in rows]

    async def get_history_game_ids(self, user_id: str) -> set:
        """Every game id the user has any history row for."""
        rows = await self.execute_db_operation(
            f"get history game ids {user_id}",
            "SELECT DISTINCT game_id FROM user_game_history WHERE user_id = ?",
            (str(user_id),),
            fetch_type='all',
        )
        return {row["game_id"] for row in rows}

    # ------------------------------------------------------
    # Game features
    # ------------------------------------------------------

    async def save_game_features(self, game: Game):
        """Idempotent upsert of a game's attributes and its genre rows; last write wins."""
        game_id = str(game.game_id)
        now = _now()
        start_time = time.time()

        try:
            async with aiosqlite.connect(self.db_path, timeout=self.timeout) as db:
                await db.execute(
                    """
                    INSERT INTO game_features (game_id, game_name, genres, tags, rating, release_year, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(game_id) DO UPDATE SET
                        game_name = excluded.game_name,
                        genres = excluded.genres,
                        tags = excluded.tags,
                        rating = COALESCE(excluded.rating, game_features.rating),
                        release_year = COALESCE(excluded.release_year, game_features.release_year),
                        updated_at = excluded.updated_at
                    """,
                    (
                        game_id,
                        game.name,
                        json.dumps(list(game.genres)),
                        json.dumps(list(game.tags)),
                        game.rating,
                        game.release_year,
                        now,
                    ),
                )
                await db.execute("DELETE FROM game_feature_genres WHERE game_id = ?", (game_id,))
                await db.executemany(
                    "INSERT OR IGNORE INTO game_feature_genres (game_id, genre, position) VALUES (?, ?, ?)",
                    [(game_id, genre, position) for position, genre in enumerate(game.genres)],
                )
                await db.commit()
        except aiosqlite.Error as db_error:
            logger.error(f"save game features {game_id} failed after {time.time() - start_time:.3f}s: {db_error}")
            raise

        logger.debug(f"Saved features for game {game_id} ({len(game.genres)} genres)")

    async def get_game_features(self, game_id: Union[int, str]) -> Optional[Dict[str, Any]]:
        row = await self.execute_db_operation(
            f"get game features {game_id}",
            "SELECT * FROM game_features WHERE game_id = ?",
            (str(game_id),),
            fetch_type='one',
        )
        return _feature_row_to_dict(row) if row else None

    # ------------------------------------------------------
    # Composite write
    # ------------------------------------------------------

    async def record_interaction(
        self,
        user_id: str,
        username: Optional[str],
        game: Game,
        action: Union[InteractionAction, str],
        rating: Optional[int] = None,
    ):
        """
        Record one interaction: refresh the profile, append history, store the
        game's features (Steam records only) and apply the preference signal.

        An explicit rating moves each of the game's genres by
        (rating - 3) * rating_score_factor. A plain "recommended" event nudges
        them by recommended_nudge. Scores stay within [0, 5].
        """
        action = action_value(action)
        if rating is not None and (not isinstance(rating, int) or isinstance(rating, bool) or not 1 <= rating <= 5):
            raise ValueError(f"Rating must be an integer between 1 and 5, got {rating!r}")

        await self.create_or_update_user(user_id, username)
        await self.add_history(user_id, game.game_id, game.name, action)

        if game.genres and game.source is GameSource.STEAM:
            await self.save_game_features(game)
        elif game.genres:
            logger.debug(f"Not caching features for {game.source.value} record {game.game_id}: ids are not Steam app ids")

        if rating is not None:
            await self.add_game_rating(user_id, game.game_id, game.name, rating)
            delta = (rating - 3) * self.rating_score_factor
            if delta:
                for genre in game.genres:
                    await self.update_genre_preference(user_id, genre, delta)
        elif action == InteractionAction.RECOMMENDED.value:
            for genre in game.genres:
                await self.update_genre_preference(user_id, genre, self.recommended_nudge)

        logger.info(f"Recorded '{action}' for user {user_id} on game {game.game_id} ({game.name})")

    # ------------------------------------------------------
    # Recommendation queries
    # ------------------------------------------------------

    async def get_recommended_games(self, user_id: str, limit: int = 10) -> List[Dict[str, Any]]:
        """
        Cached games matching any of the user's top genres, minus games they
        already rated, best rated first. Users without preferences get the
        generic high-rated set instead.
        """
        user_id = str(user_id)
        preferences = await self.get_genre_preferences(user_id)

        if not preferences:
            rows = await self.execute_db_operation(
                f"get fallback recommendations {user_id}",
                """
                SELECT f.* FROM game_features f
                WHERE f.rating >= ?
                  AND f.game_id NOT IN (SELECT game_id FROM user_game_ratings WHERE user_id = ?)
                ORDER BY f.rating DESC
                LIMIT ?
                """,
                (FALLBACK_MIN_RATING, user_id, limit),
                fetch_type='all',
            )
            return [_feature_row_to_dict(row) for row in rows]

        top_genres = [pref["genre"] for pref in preferences[:self.top_genre_window]]
        placeholders = ", ".join("?" for _ in top_genres)
        rows = await self.execute_db_operation(
            f"get genre recommendations {user_id}",
            f"""
            SELECT f.* FROM game_features f
            WHERE EXISTS (
                SELECT 1 FROM game_feature_genres g
                WHERE g.game_id = f.game_id AND g.genre IN ({placeholders})
            )
              AND f.game_id NOT IN (SELECT game_id FROM user_game_ratings WHERE user_id = ?)
            ORDER BY f.rating IS NULL, f.rating DESC
            LIMIT ?
            """,
            (*top_genres, user_id, limit),
            fetch_type='all',
        )
        return [_feature_row_to_dict(row) for row in rows]

    async def get_similar_games(self, game_id: Union[int, str], limit: int = 5) -> List[Dict[str, Any]]:
        """
        Other cached games sharing the target's primary genre, ranked by
        points: the shared genre, a rating within 0.5 and a release year
        within 3. Ties go to the higher rated game.
        """
        target = await self.get_game_features(game_id)
        if not target or not target["genres"]:
            return []

        primary_genre = target["genres"][0]
        rows = await self.execute_db_operation(
            f"get similar games {game_id}",
            """
            SELECT f.*,
                ?
                + (CASE WHEN ABS(f.rating - ?) < 0.5 THEN ? ELSE 0 END)
                + (CASE WHEN ABS(f.release_year - ?) < 3 THEN ? ELSE 0 END) AS similarity_score
            FROM game_features f
            WHERE f.game_id != ?
              AND EXISTS (
                SELECT 1 FROM game_feature_genres g
                WHERE g.game_id = f.game_id AND g.genre = ?
              )
            ORDER BY similarity_score DESC, f.rating IS NULL, f.rating DESC
            LIMIT ?
            """,
            (
                self.similar_genre_points,
                target["rating"], self.similar_rating_points,
                target["release_year"], self.similar_year_points,
                str(game_id),
                primary_genre,
                limit,
            ),
            fetch_type='all',
        )
        return [_feature_row_to_dict(row) for row in rows]
