"""Public entry points: level scenes and level characters.

Every function here returns its results together with the diagnostics
collected while decoding; malformed data never raises out of them.
"""

import logging
import os
from dataclasses import dataclass, field, replace
from typing import List

from .actor.actor_cache import LevelActors
from .actor.sg_actor import CharacterDecoder
from .diagnostics import Diagnostics, Severity
from .level.parse_context import build_parse_context
from .level.world_root import read_world_roots
from .profiles import resolve_profile
from .scene_graph.sg_entities import EntityKind
from .scene_graph.sg_scene import SceneDecoder, build_animation_anchors

_log = logging.getLogger("hype_sna.parser")


@dataclass
class LevelParseResult:
    level_name: str
    entities: List = field(default_factory=list)
    diagnostics: List = field(default_factory=list)

    @property
    def succeeded(self):
        return not any(d.severity is Severity.ERROR for d in self.diagnostics)

    def entities_of_kind(self, kind):
        return [e for e in self.entities if e.kind is kind]

    @property
    def geometry(self):
        return self.entities_of_kind(EntityKind.GEOMETRY)

    @property
    def actors(self):
        return self.entities_of_kind(EntityKind.ACTOR)

    @property
    def anchors(self):
        return self.entities_of_kind(EntityKind.ANIMATION_ANCHOR)


@dataclass
class ActorParseResult:
    level_name: str
    succeeded: bool
    actors: List = field(default_factory=list)
    diagnostics: List = field(default_factory=list)

    @property
    def main_actor(self):
        return self.actors[0] if self.actors else None


def _resolve_level(game_root, level):
    """Anchor a relative level directory at game_root."""
    if game_root and not os.path.isabs(level.directory):
        return replace(level, directory=os.path.join(os.fspath(game_root), level.directory))
    return level


# ---------------------------------------------------------------------------
# Scene
# ---------------------------------------------------------------------------

def parse_level(game_root, level, animations=(), profile=None) -> LevelParseResult:
    """Decode a level into placed entities.

    Geometry and actor entities come from the SuperObject graph; one
    animation anchor per record in animations is always appended, even when
    the level itself could not be loaded.
    """
    profile = resolve_profile(profile)
    level = _resolve_level(game_root, level)
    diagnostics = Diagnostics("Scene")
    entities = []

    context = build_parse_context(level, diagnostics, profile)
    if context is not None:
        try:
            roots = read_world_roots(context.space, context.level_gpt_address, diagnostics)
            _log.debug("%s: %d world roots", level.name, len(roots))
            decoder = SceneDecoder(context.space, diagnostics, profile)
            entities.extend(decoder.decode(roots))
        except Exception as exc:
            _log.debug("Scene parse of %s failed", level.name, exc_info=True)
            diagnostics.error(f"Scene parse failed: {exc}")

    entities.extend(build_animation_anchors(animations, profile))
    diagnostics.emit(_log, level.name)
    return LevelParseResult(level.name, entities, diagnostics.items)


# ---------------------------------------------------------------------------
# Characters
# ---------------------------------------------------------------------------

def _parse_level_actors(level, profile):
    diagnostics = Diagnostics("Character")
    actors = []

    context = build_parse_context(level, diagnostics, profile)
    if context is None:
        diagnostics.emit(_log, level.name)
        return LevelActors(False, [], diagnostics.items)

    try:
        roots = read_world_roots(context.space, context.level_gpt_address, diagnostics)
        decoder = CharacterDecoder(context.space, diagnostics, profile)
        actors = decoder.decode(roots, level.name)
    except Exception as exc:
        _log.debug("Character parse of %s failed", level.name, exc_info=True)
        diagnostics.error(f"Character parse failed: {exc}")
        actors = []

    diagnostics.emit(_log, level.name)
    return LevelActors(bool(actors), actors, diagnostics.items)


def _level_actors(level, profile, cache):
    profile = resolve_profile(profile)
    if cache is None:
        return _parse_level_actors(level, profile)
    return cache.get_or_parse(level, lambda lvl: _parse_level_actors(lvl, profile))


def parse_actors(level, profile=None, cache=None) -> ActorParseResult:
    """All animated actors of a level, best candidate first.

    cache, an ActorCache, reuses the result of an earlier parse of the same
    level.
    """
    parsed = _level_actors(level, profile, cache)
    return ActorParseResult(level.name, parsed.succeeded, list(parsed.actors),
                            list(parsed.diagnostics))


def parse_main_actor(level, profile=None, cache=None):
    """(actor or None, diagnostics) for the highest ranked actor."""
    parsed = _level_actors(level, profile, cache)
    return parsed.main_actor, list(parsed.diagnostics)


def parse_actor(level, actor_id, profile=None, cache=None):
    """(actor or None, diagnostics) for one actor id such as "perso:lvl:block:...@0x..."."""
    parsed = _level_actors(level, profile, cache)
    diagnostics = list(parsed.diagnostics)
    if not parsed.succeeded or not actor_id or not actor_id.strip():
        return None, diagnostics

    actor = parsed.find(actor_id)
    if actor is None:
        missing = Diagnostics("Character")
        missing.warning(f"Requested actor '{actor_id}' was not found in level '{level.name}'.")
        diagnostics.extend(missing.items)
    return actor, diagnostics
