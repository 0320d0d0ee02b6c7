"""
Game Record Helpers
One normalized game shape shared by every adapter, the preference store and the engine
"""

import re
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional, Union

MAX_DESCRIPTION_LENGTH = 300
MAX_GENRE_DISPLAY = 3

_YEAR_PATTERN = re.compile(r"\b(1[89]\d{2}|20\d{2})\b")


class GameSource(Enum):
    """Which upstream a record was normalized from"""
    STEAM = "steam"
    RAWG = "rawg"
    ITAD = "itad"


class InteractionAction(Enum):
    """Kinds of interaction events kept in the history log"""
    VIEWED = "viewed"
    RECOMMENDED = "recommended"
    RATED = "rated"
    SEARCHED = "searched"


@dataclass
class PriceInfo:
    """Price of a game in the store currency's major unit"""
    amount: float = 0.0
    formatted: str = "Price not available"
    initial_formatted: Optional[str] = None
    discount_percent: int = 0
    currency: Optional[str] = None
    is_free: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PriceInfo':
        return cls(**data)


@dataclass
class Game:
    """Normalized game record"""
    source: GameSource
    game_id: Union[int, str]
    name: str
    description: str = "No description available"
    app_type: Optional[str] = None  # "game", "dlc", "music", ... when known
    genres: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    price: Optional[PriceInfo] = None
    release_date: Optional[str] = None
    release_year: Optional[int] = None
    header_image: Optional[str] = None
    store_url: Optional[str] = None
    developers: List[str] = field(default_factory=list)
    publishers: List[str] = field(default_factory=list)
    platforms: Dict[str, bool] = field(default_factory=dict)
    rating: Optional[float] = None
    metacritic: Optional[int] = None

    @property
    def is_game(self) -> bool:
        return self.app_type is None or self.app_type == "game"

    @property
    def price_amount(self) -> Optional[float]:
        if self.price is None:
            return None
        return 0.0 if self.price.is_free else self.price.amount

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['source'] = self.source.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Game':
        data = dict(data)
        data['source'] = GameSource(data['source'])
        if data.get('price') is not None:
            data['price'] = PriceInfo.from_dict(data['price'])
        return cls(**data)


def parse_release_year(release_date: Optional[str]) -> Optional[int]:
    """
    Pull a four digit year out of "Nov 10, 2015", "10 Nov, 2015" or "2015-11-10".
    """
    if not release_date:
        return None
    match = _YEAR_PATTERN.search(str(release_date))
    return int(match.group(1)) if match else None


def truncate_description(text: Optional[str], limit: int = MAX_DESCRIPTION_LENGTH) -> str:
    if not text:
        return "No description available"
    text = text.strip()
    if len(text) > limit:
        return text[:limit - 3] + "..."
    return text


def action_value(action: Union[InteractionAction, str]) -> str:
    """Accept either the enum or its string value; reject anything else."""
    if isinstance(action, InteractionAction):
        return action.value
    return InteractionAction(action).value
