"""Tests for PreferenceStore against a temporary SQLite file."""

import aiosqlite
import pytest

from conftest import make_game
from database import PreferenceStore
from helpers.game_helper import GameSource, InteractionAction


async def _score(store: PreferenceStore, user_id: str, genre: str):
    for pref in await store.get_genre_preferences(user_id):
        if pref["genre"].lower() == genre.lower():
            return pref["score"]
    return None


async def test_init_is_idempotent(store: PreferenceStore) -> None:
    await store.init()
    assert await store.get_genre_preferences("nobody") == []


async def test_profile_created_then_username_refreshed(store: PreferenceStore) -> None:
    await store.create_or_update_user("u1", "first")
    created = await store.get_user_profile("u1")
    await store.create_or_update_user("u1", "second")
    updated = await store.get_user_profile("u1")

    assert updated["username"] == "second"
    assert updated["created_at"] == created["created_at"]
    assert updated["updated_at"] >= created["updated_at"]


@pytest.mark.parametrize("rating, expected", [(1, 1.4), (2, 1.7), (3, 2.0), (4, 2.3), (5, 2.6)])
async def test_rating_delta(store: PreferenceStore, rating: int, expected: float) -> None:
    await store.update_genre_preference("u1", "Action", 2.0)
    game = make_game(genres=["Action"])

    await store.record_interaction("u1", "user", game, InteractionAction.RATED, rating)

    assert await _score(store, "u1", "Action") == pytest.approx(expected)


async def test_rating_score_clamped_at_upper_bound(store: PreferenceStore) -> None:
    await store.update_genre_preference("u1", "Action", 4.9)
    await store.record_interaction("u1", "user", make_game(genres=["Action"]), "rated", 5)
    assert await _score(store, "u1", "Action") == 5.0


async def test_rating_score_clamped_at_lower_bound(store: PreferenceStore) -> None:
    await store.update_genre_preference("u1", "Action", 0.2)
    await store.record_interaction("u1", "user", make_game(genres=["Action"]), "rated", 1)
    assert await _score(store, "u1", "Action") == 0.0


async def test_recommended_nudges_each_genre_without_rating_row(store: PreferenceStore) -> None:
    game = make_game(game_id=7, genres=["Puzzle", "Indie"])

    await store.record_interaction("u1", "user", game, InteractionAction.RECOMMENDED)

    assert await _score(store, "u1", "Puzzle") == pytest.approx(0.1)
    assert await _score(store, "u1", "Indie") == pytest.approx(0.1)
    assert await store.get_ratings("u1") == []
    history = await store.get_history("u1")
    assert len(history) == 1
    assert history[0]["action"] == "recommended"


async def test_viewed_does_not_change_scores(store: PreferenceStore) -> None:
    await store.record_interaction("u1", "user", make_game(genres=["RPG"]), InteractionAction.VIEWED)
    assert await store.get_genre_preferences("u1") == []


async def test_second_rating_overwrites_first(store: PreferenceStore) -> None:
    game = make_game(game_id=42, name="Answer")
    await store.add_game_rating("u1", game.game_id, game.name, 2)
    await store.add_game_rating("u1", game.game_id, game.name, 5)

    ratings = await store.get_ratings("u1")
    assert len(ratings) == 1
    assert ratings[0]["game_id"] == "42"
    assert ratings[0]["rating"] == 5


@pytest.mark.parametrize("rating", [0, 6, 3.5, True])
async def test_invalid_rating_rejected(store: PreferenceStore, rating) -> None:
    with pytest.raises(ValueError):
        await store.record_interaction("u1", "user", make_game(), "rated", rating)


async def test_unknown_action_rejected(store: PreferenceStore) -> None:
    with pytest.raises(ValueError):
        await store.add_history("u1", 1, "One", "clicked")


async def test_history_newest_first_with_filter(store: PreferenceStore) -> None:
    await store.add_history("u1", 1, "One", "viewed")
    await store.add_history("u1", 2, "Two", "recommended")
    await store.add_history("u1", 3, "Three", "viewed")

    assert [h["game_id"] for h in await store.get_history("u1")] == ["3", "2", "1"]
    assert [h["game_id"] for h in await store.get_history("u1", action="viewed")] == ["3", "1"]
    assert [h["game_id"] for h in await store.get_history("u1", limit=1)] == ["3"]
    assert await store.get_history_game_ids("u1") == {"1", "2", "3"}


async def test_game_features_round_trip(store: PreferenceStore) -> None:
    game = make_game(game_id=10, genres=["Action", "RPG"], rating=4.2, release_year=2015)
    game.tags = ["Single-player"]
    await store.save_game_features(game)
    await store.save_game_features(game)

    features = await store.get_game_features(10)
    assert features["genres"] == ["Action", "RPG"]
    assert features["tags"] == ["Single-player"]
    assert features["rating"] == 4.2
    assert features["release_year"] == 2015


async def test_fallback_recommendations_exclude_rated_games(store: PreferenceStore) -> None:
    await store.save_game_features(make_game(game_id=1, name="Top", genres=["Action"], rating=4.8))
    await store.save_game_features(make_game(game_id=2, name="Rated", genres=["Action"], rating=4.5))
    await store.save_game_features(make_game(game_id=3, name="Good", genres=["Action"], rating=4.1))
    await store.save_game_features(make_game(game_id=4, name="Meh", genres=["Action"], rating=3.9))
    await store.add_game_rating("u1", 2, "Rated", 4)

    games = await store.get_recommended_games("u1", 10)

    assert [g["game_id"] for g in games] == ["1", "3"]
    assert all(g["rating"] >= 4.0 for g in games)


async def test_recommendations_use_top_three_genres(store: PreferenceStore) -> None:
    for genre, score in [("Puzzle", 4.0), ("RPG", 3.0), ("Indie", 2.0), ("Sports", 1.0)]:
        await store.update_genre_preference("u1", genre, score)

    await store.save_game_features(make_game(game_id=1, genres=["Action", "Puzzle"], rating=3.5))
    await store.save_game_features(make_game(game_id=2, genres=["RPG"], rating=4.5))
    await store.save_game_features(make_game(game_id=3, genres=["Sports"], rating=5.0))
    await store.save_game_features(make_game(game_id=4, genres=["indie"], rating=4.0))
    await store.save_game_features(make_game(game_id=5, genres=["RPG"], rating=4.9))
    await store.add_game_rating("u1", 5, "Rated", 3)

    games = await store.get_recommended_games("u1", 10)

    assert [g["game_id"] for g in games] == ["2", "4", "1"]


async def test_similar_games_scored_and_ranked(store: PreferenceStore) -> None:
    await store.save_game_features(make_game(game_id=1, genres=["RPG", "Action"], rating=4.5, release_year=2015))
    # genre + rating + year = 6
    await store.save_game_features(make_game(game_id=2, genres=["Action", "RPG"], rating=4.4, release_year=2016))
    # genre + year = 4
    await store.save_game_features(make_game(game_id=3, genres=["Indie", "RPG"], rating=2.0, release_year=2014))
    # genre only = 3, ties with #6 and wins on rating
    await store.save_game_features(make_game(game_id=6, genres=["rpg"], rating=3.0, release_year=1999))
    await store.save_game_features(make_game(game_id=7, genres=["RPG"], rating=1.0, release_year=1990))
    # close rating and year but a different genre
    await store.save_game_features(make_game(game_id=4, genres=["Sports"], rating=4.6, release_year=2014))

    similar = await store.get_similar_games(1, 10)

    assert [g["game_id"] for g in similar] == ["2", "3", "6", "7"]
    assert [g["similarity_score"] for g in similar] == [6, 4, 3, 3]


async def test_similar_games_need_target_genre(store: PreferenceStore) -> None:
    await store.save_game_features(make_game(game_id=1, genres=[], rating=4.5, release_year=2015))
    await store.save_game_features(make_game(game_id=2, genres=["RPG"], rating=4.5, release_year=2015))

    assert await store.get_similar_games(1) == []


async def test_similar_games_unknown_target(store: PreferenceStore) -> None:
    assert await store.get_similar_games(999) == []


async def test_similar_weights_are_configurable(tmp_path) -> None:
    store = PreferenceStore(tmp_path / "w.db", similar_genre_points=10, similar_rating_points=0, similar_year_points=0)
    await store.init()
    await store.save_game_features(make_game(game_id=1, genres=["RPG"], rating=4.0))
    await store.save_game_features(make_game(game_id=2, genres=["RPG"], rating=4.0))

    similar = await store.get_similar_games(1)
    assert similar[0]["similarity_score"] == 10


async def test_storage_errors_propagate(tmp_path) -> None:
    store = PreferenceStore(tmp_path / "uninitialized.db")
    with pytest.raises(aiosqlite.Error):
        await store.get_genre_preferences("u1")


async def test_only_steam_records_populate_game_features(store: PreferenceStore) -> None:
    rawg_game = make_game(game_id=620, name="Not Portal 2", genres=["Racing"], rating=3.1, source=GameSource.RAWG)
    steam_game = make_game(game_id=400, name="Portal", genres=["Puzzle"], rating=4.7)

    await store.record_interaction("u1", "user", rawg_game, InteractionAction.RATED, 5)
    await store.record_interaction("u1", "user", steam_game, InteractionAction.VIEWED)

    assert await store.get_game_features(620) is None
    assert (await store.get_game_features(400))["genres"] == ["Puzzle"]
    assert await _score(store, "u1", "Racing") == pytest.approx(0.6)
    assert [r["game_id"] for r in await store.get_ratings("u1")] == ["620"]
