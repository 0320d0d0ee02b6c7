"""Shared fixtures: temporary stores, a fake aiohttp session and game builders."""

from typing import Any, List, Optional

import pytest

from database import PreferenceStore
from helpers.cache_helper import CacheStore
from helpers.game_helper import Game, GameSource, PriceInfo


class FakeResponse:
    def __init__(self, status: int = 200, payload: Any = None, body: str = ""):
        self.status = status
        self._payload = payload
        self._body = body

    async def text(self) -> str:
        return self._body

    async def json(self, content_type=None) -> Any:
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class _RequestContext:
    def __init__(self, outcome):
        self._outcome = outcome

    async def __aenter__(self):
        if isinstance(self._outcome, BaseException):
            raise self._outcome
        return self._outcome

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """
    Stands in for aiohttp.ClientSession. Each request consumes the next
    scripted outcome: a FakeResponse, or an exception to raise.
    """

    def __init__(self, outcomes: List[Any]):
        self.outcomes = list(outcomes)
        self.calls: List[dict] = []
        self.closed = False

    def request(self, method: str, url: str, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        return _RequestContext(self.outcomes.pop(0))

    async def close(self):
        self.closed = True


def make_game(
    game_id=100,
    name="Alpha",
    genres: Optional[List[str]] = None,
    rating: Optional[float] = None,
    release_year: Optional[int] = None,
    price: Optional[float] = None,
    is_free: bool = False,
    app_type: Optional[str] = "game",
    source: GameSource = GameSource.STEAM,
) -> Game:
    price_info = None
    if is_free:
        price_info = PriceInfo(amount=0.0, formatted="Free", is_free=True)
    elif price is not None:
        price_info = PriceInfo(amount=price, formatted=f"${price:.2f}")
    return Game(
        source=source,
        game_id=game_id,
        name=name,
        app_type=app_type,
        genres=list(genres or []),
        price=price_info,
        rating=rating,
        release_year=release_year,
    )


@pytest.fixture
async def cache(tmp_path) -> CacheStore:
    store = CacheStore(tmp_path / "cache")
    await store.init()
    return store


@pytest.fixture
async def store(tmp_path) -> PreferenceStore:
    preference_store = PreferenceStore(tmp_path / "data" / "test.db")
    await preference_store.init()
    return preference_store
