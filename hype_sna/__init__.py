"""Hype: The Time Quest level decoder.

Loads the OpenSpace/Montreal SNA memory images of a level together with
their relocation tables, rebuilds the relocated address space and decodes
the SuperObject graph into placed geometry, actors and animated characters.

Quick use:
    from hype_sna import LevelRecord, parse_level, parse_actors

    level = LevelRecord.from_directory(".../Gamedata/World/Levels/brigand")
    scene = parse_level(None, level, [])
    characters = parse_actors(level)
"""

__version__ = "0.4.0"

from .actor import ActorCache, CharacterActorAsset
from .diagnostics import Diagnostic, Diagnostics, Severity
from .errors import (
    DecompressionError, OutOfBoundsError, RelocationError, SnaError, SnaFormatError,
)
from .level import AnimationRecord, LevelInspection, LevelRecord, inspect_level, inspect_levels
from .memory import Address
from .parser import (
    ActorParseResult, LevelParseResult, parse_actor, parse_actors, parse_level,
    parse_main_actor,
)
from .profiles import ParseProfile, get_profile, get_profile_items, register_profile
from .scene_graph import EntityKind, ResolvedEntity, ResolvedMesh, Transform

__all__ = [
    "ActorCache", "ActorParseResult", "Address", "AnimationRecord",
    "CharacterActorAsset", "DecompressionError", "Diagnostic", "Diagnostics",
    "EntityKind", "LevelInspection", "LevelParseResult", "LevelRecord",
    "OutOfBoundsError", "ParseProfile", "RelocationError", "ResolvedEntity",
    "ResolvedMesh", "Severity", "SnaError", "SnaFormatError", "Transform",
    "get_profile", "get_profile_items", "inspect_level", "inspect_levels",
    "parse_actor", "parse_actors", "parse_level", "parse_main_actor",
    "register_profile",
]
