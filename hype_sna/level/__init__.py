"""Level file location, parse context assembly and relocation inspection."""

from .inspection import LevelInspection, PointerCounts, inspect_level, inspect_levels
from .parse_context import ParseContext, build_parse_context
from .records import AnimationRecord, LevelRecord
from .world_root import read_world_roots

__all__ = [
    "AnimationRecord", "LevelInspection", "LevelRecord", "ParseContext",
    "PointerCounts", "build_parse_context", "inspect_level", "inspect_levels",
    "read_world_roots",
]
