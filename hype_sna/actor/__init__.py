"""Animated character (Perso) extraction."""

from .actor_cache import ActorCache, LevelActors
from .sg_actor import CharacterDecoder
from .sg_animation import (
    ChannelSample, CharacterActorAsset, Frame, ObjectVisual, read_compressed_transform,
)

__all__ = [
    "ActorCache", "ChannelSample", "CharacterActorAsset", "CharacterDecoder",
    "Frame", "LevelActors", "ObjectVisual", "read_compressed_transform",
]
