"""
Canonical naming of uploaded maps.

The internal name is what the map editor embedded in the scenario file
(``/maps/<folder>/<name>.scmap``). The canonical name is derived from the
display name and version so every published map follows the same layout.
"""
import re
from dataclasses import dataclass

from constants import INVALID_MAP_NAMES
from exceptions import InvalidMapName
from utils import sanitize_filename

MAP_PATH_PATTERN = re.compile(r"(?:([^/\\]+)[/\\])?([^/\\]+)\.scmap")


@dataclass(frozen=True)
class InternalMapName:
    name: str
    folder: str


def parse_internal_name(raw_map_path: str) -> InternalMapName:
    """Extract the internal map name and folder from the scenario's map path."""
    match = MAP_PATH_PATTERN.search(raw_map_path or "")
    if not match:
        raise InvalidMapName(raw_map_path)

    name = match.group(2)
    if name.lower() in INVALID_MAP_NAMES:
        raise InvalidMapName(name)

    folder = match.group(1)
    if not folder or folder.lower() == "maps" or folder in (".", ".."):
        folder = name
    return InternalMapName(name=name, folder=folder)


def normalize_map_name(display_name: str) -> str:
    segments = re.split(r"[/\\]", display_name.lower().replace(" ", "_"))
    kept = [segment for segment in segments if segment not in ("", ".", "..")]
    normalized = sanitize_filename("_".join(kept))
    if not normalized.strip("."):
        raise InvalidMapName(display_name)
    return normalized


def generate_map_filename(display_name: str, version: int, extension: str) -> str:
    return "%s.v%04d.%s" % (normalize_map_name(display_name), version, extension)


def folder_name_from_filename(filename: str) -> str:
    """my_map.v0007.zip -> my_map.v0007"""
    stem, _, _ = filename.rpartition(".")
    return stem or filename
