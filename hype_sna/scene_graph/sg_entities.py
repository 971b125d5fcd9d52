"""Entities emitted by the scene decoder."""

import enum

from .sg_math import Transform


class EntityKind(enum.Enum):
    GEOMETRY = "geometry"
    LIGHT = "light"
    PARTICLE_SOURCE = "particle_source"
    ANIMATION_ANCHOR = "animation_anchor"
    ACTOR = "actor"


class ActorRole(enum.Enum):
    HERO = "hero"
    LEVEL_ACTOR = "level_actor"
    ENEMY = "enemy"
    NPC = "npc"


class ResolvedEntity:
    """A placed object of the level in world space."""

    __slots__ = (
        'id', 'name', 'kind', 'transform', 'flip_winding', 'source_file',
        'mesh', 'actor_id', 'is_main_actor', 'is_sector_member',
        'is_targetable', 'custom_bits', 'role',
    )

    def __init__(self, entity_id, name, kind, transform=None):
        self.id = entity_id
        self.name = name
        self.kind = kind
        self.transform = transform if transform is not None else Transform.identity()
        self.flip_winding = False
        self.source_file = None
        self.mesh = None
        self.actor_id = None
        self.is_main_actor = False
        self.is_sector_member = False
        self.is_targetable = False
        self.custom_bits = 0
        self.role = None        # ActorRole for actors

    def __repr__(self):
        return f"ResolvedEntity({self.id!r}, {self.kind.value})"

    def to_dict(self):
        data = {
            "id": self.id,
            "name": self.name,
            "kind": self.kind.value,
            "position": list(self.transform.position),
            "matrix": list(self.transform.to_matrix4()),
        }
        if self.kind is EntityKind.GEOMETRY:
            data["flip_winding"] = self.flip_winding
            if self.mesh is not None:
                data["mesh"] = self.mesh.to_dict()
        elif self.kind is EntityKind.ACTOR:
            data.update({
                "actor_id": self.actor_id,
                "role": self.role.value if self.role else None,
                "is_main_actor": self.is_main_actor,
                "is_sector_member": self.is_sector_member,
                "is_targetable": self.is_targetable,
                "custom_bits": self.custom_bits,
            })
        elif self.kind is EntityKind.ANIMATION_ANCHOR:
            data["source_file"] = self.source_file
        return data


def actor_role(custom_bits, is_sector_member, profile):
    """Role of a Perso from its custom bits and sector membership."""
    if custom_bits & profile.main_actor_bit:
        return ActorRole.HERO
    if not is_sector_member:
        return ActorRole.LEVEL_ACTOR
    if custom_bits & profile.targetable_bit:
        return ActorRole.ENEMY
    return ActorRole.NPC
