"""Character discovery: animated Persos with their family object meshes.

Perso data:
    ptr  3d_data
    ptr  std_game
    ptr, u32, ptr x5, u32, ptr

3dData:
    ptr
    ptr  state_current
    ptr
    ptr  object_list
    ptr  object_list_initial
    ptr

Object list (family objects table):
    ptr x3
    ptr  start
    ptr
    u16  entry_count
    u16
  entries at start, 20 bytes each:
    ptr  scale              (xzy f32, default (1, 1, 1))
    ptr  physical_object
    u32, u16, u16, u32

State:
    ptr x3
    ptr  animation
    (ptr, ptr, u32) x2      (linked list headers)
    ptr, ptr
    u32, u32
    u8 x3
    u8   speed              (frames per second)
"""

import logging

from .sg_animation import CharacterActorAsset, ObjectVisual, parse_animation
from ..diagnostics import DECODE_ERRORS, guarded
from ..scene_graph.sg_classes import SuperObjectGraph, read_custom_bits
from ..scene_graph.sg_geometry import GeometryDecoder
from ..scene_graph.sg_materials import MaterialDecoder

_log = logging.getLogger("hype_sna.actor")

OBJECT_ENTRY_SIZE = 20


def object_visual_score(visuals):
    """Rank of an object visual set: meshes, then surfaces, then vertices."""
    meshes = surfaces = vertices = 0
    for visual in visuals.values():
        if visual.mesh is None:
            continue
        meshes += 1
        surfaces += len(visual.mesh.surfaces)
        vertices += visual.mesh.vertex_count
    return (meshes << 40) + (surfaces << 20) + vertices


def select_better_visuals(primary, candidate):
    """Keep primary unless candidate scores strictly higher."""
    if not primary:
        return candidate
    if not candidate:
        return primary
    if object_visual_score(candidate) > object_visual_score(primary):
        return candidate
    return primary


def actor_sort_key(actor):
    """Descending preference: main actor, sector member, channels, frames, objects."""
    return (actor.is_main_actor, actor.is_sector_member, actor.channel_count,
            len(actor.frames), len(actor.objects))


def dedupe_actors(actors):
    """One actor per actor id (case-insensitive), best first."""
    best = {}
    order = []
    for actor in actors:
        key = actor.actor_id.lower()
        current = best.get(key)
        if current is None:
            best[key] = actor
            order.append(key)
        elif actor_sort_key(actor) > actor_sort_key(current):
            best[key] = actor
    result = [best[key] for key in order]
    result.sort(key=actor_sort_key, reverse=True)
    return result


class CharacterDecoder:
    """Walks the SuperObject graph and decodes every animated Perso."""

    def __init__(self, space, diagnostics, profile):
        self.space = space
        self.diagnostics = diagnostics
        self.profile = profile
        self.materials = MaterialDecoder(space, diagnostics)
        self.geometry = GeometryDecoder(space, diagnostics, self.materials, profile,
                                        character_lods=True)
        self.graph = SuperObjectGraph(space, diagnostics, profile)
        self._sector_members = set()
        self._candidates = []

    def decode(self, roots, level_name):
        """Deduplicated, ordered CharacterActorAsset list for the level."""
        self._candidates = []
        self._sector_members = self.graph.collect_sector_character_addresses(roots)
        self.graph.walk(self, roots)

        actors = dedupe_actors(self._candidates)
        for actor in actors:
            actor.level_name = level_name
        if not actors:
            self.diagnostics.warning(f"No actor with animation was discovered in '{level_name}'.")
        return actors

    def visit_perso(self, record, world):
        if record.data is None:
            return
        is_member = record.data in self._sector_members
        try:
            actor = self._parse_perso(record, is_member)
        except DECODE_ERRORS as exc:
            self.diagnostics.error(f"Failed to parse Perso '{record.address}': {exc}")
            return
        if actor is not None:
            self._candidates.append(actor)

    # ------------------------------------------------------------------

    def _parse_perso(self, record, is_member):
        reader = self.space.create_reader(record.data)
        data_3d = reader.read_pointer()
        std_game = reader.read_pointer()
        reader.read_pointer()
        reader.read_u32()
        for _ in range(5):
            reader.read_pointer()
        reader.read_u32()
        reader.read_pointer()

        if data_3d is None:
            return None

        custom_bits = read_custom_bits(self.space, std_game, self.profile)

        reader = self.space.create_reader(data_3d)
        reader.read_pointer()
        state = reader.read_pointer()
        reader.read_pointer()
        object_list = reader.read_pointer()
        object_list_initial = reader.read_pointer()
        reader.read_pointer()

        if state is None:
            return None

        visuals = None
        if object_list is not None:
            visuals = self._parse_object_list(object_list)
        if object_list_initial is not None and object_list_initial != object_list:
            visuals = select_better_visuals(visuals, self._parse_object_list(object_list_initial))
        if not visuals:
            return None

        animation, speed = self._read_state(state)
        if animation is None:
            return None

        parsed = guarded(self.diagnostics, f"Montreal animation {animation}",
                         parse_animation, self.space, animation)
        if not parsed:
            return None
        frames, channel_count = parsed

        actor = CharacterActorAsset(
            level_name="",
            actor_id=f"perso:{record.address}",
            is_main_actor=bool(custom_bits & self.profile.main_actor_bit),
            is_sector_member=is_member,
            is_targetable=bool(custom_bits & self.profile.targetable_bit),
            custom_bits=custom_bits,
            fps=float(max(1, speed)),
            channel_count=channel_count,
            objects=[visuals[index] for index in sorted(visuals)],
            frames=frames,
        )
        _log.debug("Actor %s: %d objects, %d frames", actor.actor_id,
                   len(actor.objects), len(actor.frames))
        return actor

    def _read_state(self, address):
        """(animation address, speed) of a state record."""
        reader = self.space.create_reader(address)
        for _ in range(3):
            reader.read_pointer()
        animation = reader.read_pointer()
        for _ in range(2):
            reader.read_pointer()
            reader.read_pointer()
            reader.read_u32()
        reader.read_pointer()
        reader.read_pointer()
        reader.read_u32()
        reader.read_u32()
        reader.skip(3)
        speed = reader.read_u8()
        return animation, speed

    def _parse_object_list(self, address):
        """object index -> ObjectVisual; entries read before a failure are kept."""
        visuals = {}
        try:
            reader = self.space.create_reader(address)
            for _ in range(3):
                reader.read_pointer()
            start = reader.read_pointer()
            reader.read_pointer()
            entry_count = reader.read_u16()
            reader.read_u16()
            if start is None or entry_count == 0:
                return visuals

            reader = self.space.create_reader(start)
            for object_index in range(entry_count):
                scale_address = reader.read_pointer()
                physical = reader.read_pointer()
                reader.read_u32()
                reader.read_u16()
                reader.read_u16()
                reader.read_u32()
                if physical is None:
                    continue

                scale = (1.0, 1.0, 1.0)
                if scale_address is not None:
                    scale = self.space.create_reader(scale_address).read_xzy_vector3()
                visuals[object_index] = ObjectVisual(
                    object_index, scale, self.geometry.parse_physical_object(physical))
        except DECODE_ERRORS as exc:
            self.diagnostics.error(f"Failed to parse ObjectList {address}: {exc}")
        return visuals
