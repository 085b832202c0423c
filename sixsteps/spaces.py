"""
SPACES - The six fixed exploration contexts a session can reflect in
"""

from enum import Enum
from typing import Dict, List

from .errors import InvalidSpace


class Space(str, Enum):
    HERE = "here"
    THERE = "there"
    BEFORE = "before"
    AFTER = "after"
    INSIDE = "inside"
    OUTSIDE = "outside"


# Shown on the space selection cards
SPACE_DESCRIPTIONS: Dict[Space, Dict[str, str]] = {
    Space.HERE: {"name": "Here", "description": "The present moment."},
    Space.THERE: {"name": "There", "description": "Where you'd like to be."},
    Space.BEFORE: {"name": "Before", "description": "Life before the change."},
    Space.AFTER: {"name": "After", "description": "What has happened since."},
    Space.INSIDE: {"name": "Inside", "description": "Your internal world."},
    Space.OUTSIDE: {"name": "Outside", "description": "The world around you."},
}


def parse_space(value) -> Space:
    """Return the Space for a value, or raise InvalidSpace"""
    if isinstance(value, Space):
        return value
    if isinstance(value, str):
        try:
            return Space(value.strip().lower())
        except ValueError:
            pass
    raise InvalidSpace(value)


def space_options() -> List[Dict[str, str]]:
    return [
        {"key": space.value, "label": info["name"], "description": info["description"]}
        for space, info in SPACE_DESCRIPTIONS.items()
    ]
