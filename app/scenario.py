"""
Scenario descriptor access.

Wraps the evaluated *_scenario.lua globals and exposes the ScenarioInfo table
through typed accessors. Paths are sequences of keys; integer keys follow the
Lua convention of starting at 1.
"""
import logging
import re
from pathlib import Path

from constants import MAP_CHARSET, SCENARIO_FILE_SUFFIX
from exceptions import ScenarioDescriptorMissing, ScenarioValueInvalid
from lua import LuaSyntaxError, LuaTable, load_file, tostring

logger = logging.getLogger("main")

LOC_TAG_PATTERN = re.compile(r"<LOC .*?>")
NUMERIC_STRING_PATTERN = re.compile(r"\s*[-+]?(\d+\.?\d*|\.\d+)([eE][-+]?\d+)?\s*")


def clean_description(text):
    """Remove localisation tags such as <LOC map_desc> from a description."""
    return LOC_TAG_PATTERN.sub("", text)


def _describe(path):
    return ".".join(str(key) for key in path)


class ScenarioInfo:
    def __init__(self, table: LuaTable):
        self._table = table

    def get(self, *path):
        node = self._table
        for key in path:
            if not isinstance(node, LuaTable):
                return None
            node = node.get(key)
            if node is None:
                return None
        return node

    def string(self, *path) -> str:
        value = self.get(*path)
        if isinstance(value, bool) or not isinstance(value, (str, int, float)):
            raise ScenarioValueInvalid(_describe(path))
        return tostring(value)

    def integer(self, *path) -> int:
        value = self.get(*path)
        if isinstance(value, bool):
            raise ScenarioValueInvalid(_describe(path))
        if isinstance(value, int):
            return value
        if isinstance(value, float):
            if value != value or value in (float("inf"), float("-inf")):
                raise ScenarioValueInvalid(_describe(path))
            return int(value)
        if isinstance(value, str) and NUMERIC_STRING_PATTERN.fullmatch(value):
            try:
                return int(float(value))
            except OverflowError:
                raise ScenarioValueInvalid(_describe(path))
        raise ScenarioValueInvalid(_describe(path))

    def length(self, *path) -> int:
        value = self.get(*path)
        if isinstance(value, str):
            return len(value)
        if not isinstance(value, LuaTable):
            raise ScenarioValueInvalid(_describe(path))
        return len(value)

    def table(self, *path) -> "ScenarioInfo":
        value = self.get(*path)
        if not isinstance(value, LuaTable):
            raise ScenarioValueInvalid(_describe(path))
        return ScenarioInfo(value)


def find_scenario_file(folder):
    candidates = sorted(p for p in Path(folder).iterdir() if p.is_file() and p.name.endswith(SCENARIO_FILE_SUFFIX))
    if not candidates:
        raise ScenarioDescriptorMissing()
    if len(candidates) > 1:
        logger.warning(f"Several scenario files in {folder}, using {candidates[0].name}")
    return candidates[0]


def load_scenario(folder) -> ScenarioInfo:
    """Evaluate the scenario descriptor of a map folder and return its ScenarioInfo table."""
    scenario_path = find_scenario_file(folder)
    try:
        root = load_file(scenario_path, encoding=MAP_CHARSET)
    except (OSError, LuaSyntaxError, RecursionError) as e:
        logger.warning(f"Could not evaluate {scenario_path.name}: {e}")
        raise ScenarioDescriptorMissing() from e

    scenario_info = root.get("ScenarioInfo")
    if not isinstance(scenario_info, LuaTable):
        logger.warning(f"{scenario_path.name} does not define a ScenarioInfo table")
        raise ScenarioDescriptorMissing()
    return ScenarioInfo(scenario_info)
