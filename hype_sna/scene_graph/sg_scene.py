"""Level scene decoding: SuperObject graph to placed entities.

Walks every world root once, emitting
    - a Geometry entity for each IPO whose mesh has at least one surface
    - an Actor entity for each Perso, classified by its custom bits and by
      whether some Sector's character list references its data record
and afterwards one AnimationAnchor per known animation file.
"""

import logging

from .sg_classes import SuperObjectGraph, read_custom_bits
from .sg_entities import ActorRole, EntityKind, ResolvedEntity, actor_role
from .sg_geometry import GeometryDecoder
from .sg_materials import MaterialDecoder
from .sg_math import Transform
from ..diagnostics import DECODE_ERRORS

_log = logging.getLogger("hype_sna.scene")


class SceneDecoder:
    """Visitor over the SuperObject graph collecting ResolvedEntity objects."""

    def __init__(self, space, diagnostics, profile):
        self.space = space
        self.diagnostics = diagnostics
        self.profile = profile
        self.materials = MaterialDecoder(space, diagnostics)
        self.geometry = GeometryDecoder(space, diagnostics, self.materials, profile)
        self.graph = SuperObjectGraph(space, diagnostics, profile, geometry=self.geometry)
        self.entities = []
        self._sector_members = set()

    def decode(self, roots):
        self.entities = []
        self._sector_members = self.graph.collect_sector_character_addresses(roots)
        _log.debug("%d sector character list members", len(self._sector_members))
        self.graph.walk(self, roots)
        return self.entities

    # --- Visitor callbacks ---

    def visit_ipo(self, record, world):
        mesh = record.mesh
        if mesh is None or not mesh.surfaces:
            return
        entity = ResolvedEntity(f"geo:{record.address}", record.name, EntityKind.GEOMETRY, world)
        entity.flip_winding = world.determinant() < 0.0
        entity.mesh = mesh
        self.entities.append(entity)

    def visit_perso(self, record, world):
        if record.data is None:
            return
        custom_bits = self._read_perso_custom_bits(record.data)
        is_member = record.data in self._sector_members
        role = actor_role(custom_bits, is_member, self.profile)

        entity = ResolvedEntity(f"actor:{record.address}",
                                f"{role.value}_{record.address.offset:08X}",
                                EntityKind.ACTOR, world)
        entity.actor_id = f"perso:{record.address}"
        entity.is_main_actor = bool(custom_bits & self.profile.main_actor_bit)
        entity.is_sector_member = is_member
        entity.is_targetable = bool(custom_bits & self.profile.targetable_bit)
        entity.custom_bits = custom_bits
        entity.role = role
        if role is ActorRole.HERO:
            _log.debug("Main actor %s", record.address)
        self.entities.append(entity)

    def _read_perso_custom_bits(self, data):
        try:
            reader = self.space.create_reader(data)
            reader.read_pointer()
            std_game = reader.read_pointer()
        except DECODE_ERRORS as exc:
            self.diagnostics.error(f"Failed to parse Perso runtime state at {data}: {exc}")
            return 0
        return read_custom_bits(self.space, std_game, self.profile)


def build_animation_anchors(animations, profile):
    """AnimationAnchor placeholders laid out on a grid, one per record."""
    anchors = []
    width = profile.anchor_grid_width
    spacing = profile.anchor_spacing
    for index, animation in enumerate(animations):
        name = animation.display_name if animation.source_file else animation.id
        origin = ((index % width) * spacing, profile.anchor_height, (index // width) * spacing)
        entity = ResolvedEntity(animation.id, name, EntityKind.ANIMATION_ANCHOR,
                                Transform.from_translation(origin))
        entity.source_file = animation.source_file
        anchors.append(entity)
    return anchors
