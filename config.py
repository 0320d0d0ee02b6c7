import os
from dotenv import load_dotenv

load_dotenv()


def _int_env(key, default=None):
    val = os.getenv(key)
    if val is None or val == "":
        return default
    try:
        return int(val)
    except ValueError:
        return default


def _float_env(key, default=None):
    val = os.getenv(key)
    if val is None or val == "":
        return default
    try:
        return float(val)
    except ValueError:
        return default


def _bool_env(key, default=False):
    val = os.getenv(key)
    if val is None or val == "":
        return default
    return val.strip().lower() in ("1", "true", "yes", "on")


# API credentials - supplied by the deployment environment
STEAM_API_KEY = os.getenv("STEAM_API_KEY")
RAWG_API_KEY = os.getenv("RAWG_API_KEY")
ITAD_API_KEY = os.getenv("ITAD_API_KEY")

# The deals adapter can be switched off globally; it is off when no key is configured
ITAD_ENABLED = _bool_env("ITAD_ENABLED", default=bool(ITAD_API_KEY))

# Upstream base URLs
STEAM_API_BASE_URL = os.getenv("STEAM_API_BASE_URL", "https://api.steampowered.com")
STEAM_STORE_BASE_URL = os.getenv("STEAM_STORE_BASE_URL", "https://store.steampowered.com")
RAWG_API_BASE_URL = os.getenv("RAWG_API_BASE_URL", "https://api.rawg.io/api")
ITAD_API_BASE_URL = os.getenv("ITAD_API_BASE_URL", "https://api.isthereanydeal.com/v01")

STEAM_LANGUAGE = os.getenv("STEAM_LANGUAGE", "english")
STEAM_COUNTRY = os.getenv("STEAM_COUNTRY", "us")
ITAD_COUNTRY = os.getenv("ITAD_COUNTRY", "US")

# Storage locations
DB_PATH = os.getenv("DATABASE_PATH", os.path.join(os.path.dirname(__file__), "data", "bot.db"))
CACHE_DIR = os.getenv("CACHE_DIR", os.path.join(os.path.dirname(__file__), "cache"))

# Outbound HTTP policy
API_TIMEOUT = _float_env("API_TIMEOUT", 5.0)  # seconds
API_MAX_RETRIES = _int_env("API_MAX_RETRIES", 3)
API_RETRY_DELAY = _float_env("API_RETRY_DELAY", 1.0)  # seconds, doubled per retry
MAX_REQUESTS_PER_SECOND = _int_env("MAX_REQUESTS_PER_SECOND", 10)
MAX_REQUESTS_PER_MINUTE = _int_env("MAX_REQUESTS_PER_MINUTE", 100)

# Cache freshness windows (seconds)
APP_LIST_CACHE_TTL = _int_env("APP_LIST_CACHE_TTL", 24 * 60 * 60)
GAME_DETAILS_CACHE_TTL = _int_env("GAME_DETAILS_CACHE_TTL", 6 * 60 * 60)

# Background maintenance
CACHE_CLEANUP_INTERVAL_HOURS = _float_env("CACHE_CLEANUP_INTERVAL_HOURS", 1.0)
CACHE_STATS_INTERVAL_HOURS = _float_env("CACHE_STATS_INTERVAL_HOURS", 24.0)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Personalization tuning. These are product choices rather than invariants.
RATING_SCORE_FACTOR = _float_env("RATING_SCORE_FACTOR", 0.3)  # (rating - 3) * factor
RECOMMENDED_NUDGE = _float_env("RECOMMENDED_NUDGE", 0.1)
GENRE_REQUEST_NUDGE = _float_env("GENRE_REQUEST_NUDGE", 0.2)
TOP_GENRE_WINDOW = _int_env("TOP_GENRE_WINDOW", 3)

SIMILAR_GENRE_POINTS = _int_env("SIMILAR_GENRE_POINTS", 3)
SIMILAR_RATING_POINTS = _int_env("SIMILAR_RATING_POINTS", 2)
SIMILAR_YEAR_POINTS = _int_env("SIMILAR_YEAR_POINTS", 1)

HIGH_RATED_THRESHOLD = _float_env("HIGH_RATED_THRESHOLD", 4.0)
TOP_RATED_THRESHOLD = _float_env("TOP_RATED_THRESHOLD", 4.3)
HIGH_RATED_MIN_VOTES = _int_env("HIGH_RATED_MIN_VOTES", 50)
HIGH_RATED_MAX_CANDIDATES = _int_env("HIGH_RATED_MAX_CANDIDATES", 20)
RANDOM_MAX_ATTEMPTS = _int_env("RANDOM_MAX_ATTEMPTS", 5)

PRICE_BATCH_SIZE = _int_env("PRICE_BATCH_SIZE", 10)
PRICE_TARGET_COUNT = _int_env("PRICE_TARGET_COUNT", 5)
PRICE_MAX_BATCHES = _int_env("PRICE_MAX_BATCHES", 5)
