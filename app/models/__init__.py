"""
Models package

Map and MapVersion are owned by this service; Player is managed elsewhere and
only referenced as the map author.
"""

from .player import Player
from .map import Map
from .map_version import MapVersion

__all__ = [
    "Player",
    "Map",
    "MapVersion",
]
