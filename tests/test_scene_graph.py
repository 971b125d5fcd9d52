import pytest

from hype_sna.scene_graph.sg_classes import (
    SuperObjectGraph, SuperObjectType, read_custom_bits, read_legacy_transform,
)
from hype_sna.scene_graph.sg_entities import ActorRole, EntityKind, actor_role
from hype_sna.scene_graph.sg_scene import SceneDecoder

from sna_builders import (
    TYPE_IPO, TYPE_PERSO, TYPE_SECTOR, TYPE_WORLD, Block, build_space,
    simple_triangle_mesh,
)


class RecordingVisitor:
    def __init__(self):
        self.nodes = []
        self.persos = []

    def visit_node(self, record, world):
        self.nodes.append(record.address)

    def visit_perso(self, record, world):
        self.persos.append(record.address)


def _walk(heap, diagnostics, profile, roots):
    space = build_space([heap])
    graph = SuperObjectGraph(space, diagnostics, profile)
    visitor = RecordingVisitor()
    graph.walk(visitor, [heap.address(r) for r in roots])
    return visitor


def test_super_object_record(heap, writer, diagnostics, profile):
    perso = writer.super_object(TYPE_PERSO, data=writer.perso_data())
    space = build_space([heap])
    record = SuperObjectGraph(space, diagnostics, profile).parse(heap.address(perso))

    assert record.type is SuperObjectType.PERSO
    assert record.name == f"Perso_{perso - heap.base:08X}"
    assert record.first_child is None
    assert record.local_transform.is_identity()
    assert SuperObjectType.from_code(0x99) is SuperObjectType.UNKNOWN


def test_walk_is_depth_first_in_brother_order(heap, writer, diagnostics, profile):
    root = writer.super_object(TYPE_WORLD)
    a = writer.super_object(TYPE_SECTOR)
    b = writer.super_object(TYPE_PERSO)
    a1 = writer.super_object(TYPE_IPO)
    writer.set_children(root, [a, b])
    writer.set_children(a, [a1])

    visitor = _walk(heap, diagnostics, profile, [root])
    assert visitor.nodes == [heap.address(x) for x in (root, a, a1, b)]
    assert visitor.persos == [heap.address(b)]
    assert not diagnostics


def test_walk_survives_cycles(heap, writer, diagnostics, profile):
    root = writer.super_object(TYPE_WORLD)
    child = writer.super_object(TYPE_SECTOR)
    writer.set_children(root, [child], count=3)
    writer.set_next_brother(child, child)
    writer.set_children(child, [root])

    visitor = _walk(heap, diagnostics, profile, [root])
    assert visitor.nodes == [heap.address(root), heap.address(child)]


def test_walk_caps_child_chain(heap, writer, diagnostics, profile):
    root = writer.super_object(TYPE_WORLD)
    children = [writer.super_object(TYPE_IPO) for _ in range(4)]
    writer.set_children(root, children)

    capped = profile.with_overrides(max_child_chain=2)
    visitor = _walk(heap, diagnostics, capped, [root])
    assert visitor.nodes == [heap.address(x) for x in [root] + children[:2]]


def test_walk_respects_child_count(heap, writer, diagnostics, profile):
    root = writer.super_object(TYPE_WORLD)
    children = [writer.super_object(TYPE_IPO) for _ in range(3)]
    writer.set_children(root, children, count=1)

    visitor = _walk(heap, diagnostics, profile, [root])
    assert visitor.nodes == [heap.address(root), heap.address(children[0])]


def test_unreadable_child_is_reported_once(heap, writer, diagnostics, profile):
    root = writer.super_object(TYPE_WORLD)
    tail = heap.alloc(8)
    writer.set_children(root, [tail])

    space = build_space([heap])
    graph = SuperObjectGraph(space, diagnostics, profile)
    graph.walk(RecordingVisitor(), [heap.address(root)])
    graph.walk(RecordingVisitor(), [heap.address(root)])
    errors = diagnostics.errors()
    assert len(errors) == 1
    assert errors[0].message.startswith(f"Failed to parse SuperObject {heap.address(tail)}")


def test_legacy_transform_swaps_axes(heap, writer):
    matrix = writer.transform(position=(1.0, 2.0, 3.0))
    space = build_space([heap])
    transform = read_legacy_transform(space, heap.address(matrix))
    assert transform.position == pytest.approx((1.0, 3.0, 2.0))
    assert transform.determinant() == pytest.approx(1.0)


def test_legacy_transform_mirror_scale(heap, writer):
    matrix = writer.transform(scale=((-1.0, 0.0, 0.0), (0.0, 1.0, 0.0), (0.0, 0.0, 1.0)))
    space = build_space([heap])
    assert read_legacy_transform(space, heap.address(matrix)).determinant() == pytest.approx(-1.0)


def test_world_transform_composes_parent_first(heap, writer, diagnostics, profile):
    root = writer.super_object(TYPE_WORLD, matrix=writer.transform(position=(10.0, 0.0, 0.0)))
    child = writer.super_object(TYPE_IPO, matrix=writer.transform(position=(0.0, 0.0, 5.0)))
    writer.set_children(root, [child])

    worlds = {}

    class Visitor:
        def visit_node(self, record, world):
            worlds[record.address] = world

    space = build_space([heap])
    SuperObjectGraph(space, diagnostics, profile).walk(Visitor(), [heap.address(root)])
    assert worlds[heap.address(child)].position == pytest.approx((10.0, 5.0, 0.0))


# --- Custom bits and roles ---

def test_custom_bits_prefers_nested_record(heap, writer, profile):
    nested = writer.std_game(custom_bits=0x22)
    std_game = writer.std_game(custom_bits=0x11, nested=nested)
    space = build_space([heap])
    assert read_custom_bits(space, heap.address(std_game), profile) == 0x22


def test_custom_bits_direct_offset(heap, writer, profile):
    std_game = writer.std_game(custom_bits=0x80000001)
    space = build_space([heap])
    assert read_custom_bits(space, heap.address(std_game), profile) == 0x80000001


def test_custom_bits_legacy_offset(profile):
    short = Block(0x10, 0x07, 0x00600000)
    std_game = short.alloc(40)
    short.u32(std_game + 36, 0x5)
    space = build_space([short])
    assert read_custom_bits(space, short.address(std_game), profile) == 0x5


def test_custom_bits_without_record(profile):
    assert read_custom_bits(None, None, profile) == 0


@pytest.mark.parametrize("bits, member, role", [
    (0x80000000, False, ActorRole.HERO),
    (0x80000001, True, ActorRole.HERO),
    (0x0, False, ActorRole.LEVEL_ACTOR),
    (0x1, True, ActorRole.ENEMY),
    (0x0, True, ActorRole.NPC),
])
def test_actor_role(bits, member, role, profile):
    assert actor_role(bits, member, profile) is role


# --- Scene decoding ---

def _decode(heap, diagnostics, profile, roots):
    space = build_space([heap])
    return SceneDecoder(space, diagnostics, profile).decode([heap.address(r) for r in roots])


def test_empty_world_yields_nothing(heap, writer, diagnostics, profile):
    root = writer.super_object(TYPE_WORLD)
    assert _decode(heap, diagnostics, profile, [root]) == []
    assert not diagnostics.has_errors


def test_main_actor_outside_sectors_is_hero(heap, writer, diagnostics, profile):
    std_game = writer.std_game(custom_bits=0x80000000)
    perso = writer.super_object(TYPE_PERSO, data=writer.perso_data(std_game=std_game))
    root = writer.super_object(TYPE_WORLD)
    writer.set_children(root, [perso])

    entities = _decode(heap, diagnostics, profile, [root])
    assert len(entities) == 1
    actor = entities[0]
    assert actor.kind is EntityKind.ACTOR
    assert actor.role is ActorRole.HERO
    assert actor.is_main_actor
    assert not actor.is_sector_member
    assert actor.name == f"hero_{perso - heap.base:08X}"
    assert actor.actor_id == f"perso:{heap.address(perso)}"
    assert actor.id == f"actor:{heap.address(perso)}"


def test_sector_members_are_enemies_or_npcs(heap, writer, diagnostics, profile):
    enemy_data = writer.perso_data(std_game=writer.std_game(custom_bits=0x1))
    npc_data = writer.perso_data(std_game=writer.std_game(custom_bits=0x0))
    loner_data = writer.perso_data(std_game=writer.std_game(custom_bits=0x0))
    enemy = writer.super_object(TYPE_PERSO, data=enemy_data)
    npc = writer.super_object(TYPE_PERSO, data=npc_data)
    loner = writer.super_object(TYPE_PERSO, data=loner_data)
    sector = writer.super_object(TYPE_SECTOR, data=writer.sector_data([enemy_data, npc_data]))
    root = writer.super_object(TYPE_WORLD)
    writer.set_children(root, [sector, loner])
    writer.set_children(sector, [enemy, npc])

    entities = _decode(heap, diagnostics, profile, [root])
    roles = {e.actor_id: e.role for e in entities}
    assert roles == {
        f"perso:{heap.address(enemy)}": ActorRole.ENEMY,
        f"perso:{heap.address(npc)}": ActorRole.NPC,
        f"perso:{heap.address(loner)}": ActorRole.LEVEL_ACTOR,
    }
    enemy_entity = next(e for e in entities if e.role is ActorRole.ENEMY)
    assert enemy_entity.is_targetable
    assert enemy_entity.is_sector_member


def test_ipo_becomes_geometry_entity(heap, writer, diagnostics, profile):
    ipo_data = writer.ipo(simple_triangle_mesh(writer))
    plain = writer.super_object(TYPE_IPO, data=ipo_data,
                                matrix=writer.transform(position=(0.0, 0.0, 4.0)))
    mirrored = writer.super_object(
        TYPE_IPO, data=ipo_data,
        matrix=writer.transform(scale=((-1.0, 0.0, 0.0), (0.0, 1.0, 0.0), (0.0, 0.0, 1.0))))
    empty = writer.super_object(TYPE_IPO)
    root = writer.super_object(TYPE_WORLD)
    writer.set_children(root, [plain, mirrored, empty])

    entities = _decode(heap, diagnostics, profile, [root])
    assert [e.id for e in entities] == [f"geo:{heap.address(plain)}",
                                        f"geo:{heap.address(mirrored)}"]
    first, second = entities
    assert first.kind is EntityKind.GEOMETRY
    assert first.name == f"IPO_{plain - heap.base:08X}"
    assert first.transform.position == pytest.approx((0.0, 4.0, 0.0))
    assert not first.flip_winding
    assert second.flip_winding
    assert first.mesh is second.mesh
    assert first.mesh.surface_count == 1
    assert first.to_dict()["mesh"]["surfaces"][0]["triangle_count"] == 1
    assert not diagnostics.has_errors


def test_shared_node_under_two_roots_is_emitted_twice(heap, writer, diagnostics, profile):
    ipo = writer.super_object(TYPE_IPO, data=writer.ipo(simple_triangle_mesh(writer)))
    first_root = writer.super_object(TYPE_WORLD)
    second_root = writer.super_object(TYPE_WORLD)
    writer.set_children(first_root, [ipo])
    writer.set_children(second_root, [ipo])

    entities = _decode(heap, diagnostics, profile, [first_root, second_root])
    assert len(entities) == 2
