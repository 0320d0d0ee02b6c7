"""Tests for ServiceManager wiring."""

from utils.service_manager import ServiceManager


async def test_components_share_one_client_per_upstream(tmp_path) -> None:
    services = ServiceManager(db_path=str(tmp_path / "bot.db"), cache_dir=str(tmp_path / "cache"), start_jobs=False)

    assert services.steam.client is services.steam_client
    assert services.rawg.client is services.rawg_client
    assert services.steam_client.rate_limiter is not services.rawg_client.rate_limiter
    assert services.engine.store is services.store
    assert services.engine.steam is services.steam
    assert services.steam.cache is services.cache


async def test_init_creates_storage_and_close_is_clean(tmp_path) -> None:
    services = ServiceManager(db_path=str(tmp_path / "data" / "bot.db"), cache_dir=str(tmp_path / "cache"), start_jobs=False)

    await services.init()
    await services.init()
    assert (tmp_path / "data" / "bot.db").exists()
    assert (tmp_path / "cache").is_dir()
    assert await services.store.get_genre_preferences("nobody") == []

    await services.close()
