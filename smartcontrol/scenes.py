"""Built-in firmware scenes.

Scene ids are protocol constants baked into the bulb firmware. 0 means
"no scene".
"""

from types import MappingProxyType
from typing import Mapping, Optional

NO_SCENE = 0

SCENES: Mapping[str, int] = MappingProxyType(
    {
        "ocean": 1,
        "romance": 2,
        "sunset": 3,
        "party": 4,
        "fireplace": 5,
        "cozy": 6,
        "forest": 7,
        "pastel": 8,
        "wakeup": 9,
        "bedtime": 10,
        "warmwhite": 11,
        "daylight": 12,
        "coolwhite": 13,
        "nightlight": 14,
        "focus": 15,
        "relax": 16,
        "truecolors": 17,
        "tvtime": 18,
        "plantgrowth": 19,
        "spring": 20,
        "summer": 21,
        "fall": 22,
        "deepdive": 23,
        "jungle": 24,
        "mojito": 25,
        "club": 26,
        "christmas": 27,
        "halloween": 28,
        "candlelight": 29,
        "goldenwhite": 30,
        "pulse": 31,
        "steampunk": 32,
        "diwali": 33,
    }
)

SCENE_NAMES: Mapping[int, str] = MappingProxyType({v: k for k, v in SCENES.items()})


def scene_id(name: Optional[str]) -> int:
    """Return the id for a scene name, or NO_SCENE if unknown."""
    if not name:
        return NO_SCENE
    return SCENES.get(name.strip().lower(), NO_SCENE)


def scene_name(sid: Optional[int]) -> Optional[str]:
    """Return the name for a scene id, or None if the table does not know it."""
    if not sid:
        return None
    return SCENE_NAMES.get(sid)
