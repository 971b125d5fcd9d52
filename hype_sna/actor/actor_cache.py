"""Caller-owned cache of decoded level actors."""

import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from .sg_animation import CharacterActorAsset


@dataclass
class LevelActors:
    """Outcome of one character parse of a level."""
    succeeded: bool
    actors: List[CharacterActorAsset] = field(default_factory=list)
    diagnostics: List = field(default_factory=list)

    def __post_init__(self):
        self.actors_by_id: Dict[str, CharacterActorAsset] = {}
        for actor in self.actors:
            self.actors_by_id.setdefault(actor.actor_id.lower(), actor)

    @property
    def main_actor(self) -> Optional[CharacterActorAsset]:
        return self.actors[0] if self.actors else None

    def find(self, actor_id) -> Optional[CharacterActorAsset]:
        if not actor_id or not actor_id.strip():
            return None
        return self.actors_by_id.get(actor_id.strip().lower())


class ActorCache:
    """Thread-safe map of level key -> LevelActors.

    Keys are "<level directory>::<level name>", compared case-insensitively.
    The parse itself runs outside the lock, so two threads asking for the
    same uncached level may both parse it; the first stored result wins.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: Dict[str, LevelActors] = {}

    def __len__(self):
        with self._lock:
            return len(self._entries)

    @staticmethod
    def key_for(level):
        return level.cache_key.lower()

    def get(self, level) -> Optional[LevelActors]:
        with self._lock:
            return self._entries.get(self.key_for(level))

    def get_or_parse(self, level, parse: Callable[[object], LevelActors]) -> LevelActors:
        cached = self.get(level)
        if cached is not None:
            return cached
        result = parse(level)
        with self._lock:
            return self._entries.setdefault(self.key_for(level), result)

    def invalidate(self, level=None):
        """Drop one level's entry, or every entry when level is None."""
        with self._lock:
            if level is None:
                self._entries.clear()
            else:
                self._entries.pop(self.key_for(level), None)
