import pytest

from hype_sna.diagnostics import Severity
from hype_sna.scene_graph.sg_geometry import (
    GeometryDecoder, build_sprite_surface, build_triangle_surface, compute_face_normal,
)
from hype_sna.scene_graph.sg_materials import MaterialDecoder, normalize_texture_name

from sna_builders import build_space

TRIANGLE = [(0.0, 0.0, 0.0), (1.0, 0.0, 0.0), (0.0, 0.0, 1.0)]
UVS = [(0.0, 0.0), (1.0, 0.0), (0.0, 1.0)]


def _decoder(heap, diagnostics, profile, character_lods=False):
    space = build_space([heap])
    materials = MaterialDecoder(space, diagnostics)
    return GeometryDecoder(space, diagnostics, materials, profile,
                           character_lods=character_lods)


# --- Triangle surfaces ---

def test_face_normal():
    assert compute_face_normal(*TRIANGLE) == pytest.approx((0.0, -1.0, 0.0))
    assert compute_face_normal((0, 0, 0), (0, 0, 0), (0, 0, 0)) == (0.0, 1.0, 0.0)


def test_opposing_authored_normal_swaps_winding():
    surface = build_triangle_surface(TRIANGLE, None, [0, 1, 2], [0, 1, 2],
                                     [(0.0, 1.0, 0.0)], UVS)
    assert surface.indices == [0, 2, 1]
    assert surface.vertices == TRIANGLE
    assert surface.normals == [(0.0, 1.0, 0.0)] * 3


def test_agreeing_authored_normal_keeps_winding():
    surface = build_triangle_surface(TRIANGLE, None, [0, 1, 2], [0, 1, 2],
                                     [(0.0, -2.0, 0.0)], UVS)
    assert surface.indices == [0, 1, 2]


def test_missing_face_normals_use_computed_normal():
    surface = build_triangle_surface(TRIANGLE, None, [0, 1, 2], [2, 1, 0], None, UVS)
    assert surface.indices == [0, 1, 2]
    assert surface.normals[0] == pytest.approx((0.0, -1.0, 0.0))
    assert surface.uvs == [UVS[2], UVS[1], UVS[0]]


def test_vertex_normals_override_flat_normal():
    vertex_normals = [(0.0, 0.0, 2.0), (0.0, 0.0, 0.0), (1.0, 0.0, 0.0)]
    surface = build_triangle_surface(TRIANGLE, vertex_normals, [0, 1, 2], [0, 1, 2],
                                     None, UVS)
    assert surface.normals[0] == pytest.approx((0.0, 0.0, 1.0))
    assert surface.normals[1] == pytest.approx((0.0, -1.0, 0.0))
    assert surface.normals[2] == pytest.approx((1.0, 0.0, 0.0))


def test_out_of_range_triangles_are_dropped():
    surface = build_triangle_surface(TRIANGLE, None, [0, 1, 7, 0, 1, 2], [0, 1, 2, 0, 1, 5],
                                     None, UVS)
    assert surface.triangle_count == 1
    assert surface.uvs[2] == UVS[5 % 3]
    assert build_triangle_surface(TRIANGLE, None, [0, 1, -1], [0, 1, 2], None, UVS) is None


def test_sprite_quad():
    surface = build_sprite_surface((5.0, 0.0, 0.0), 2.0, 4.0)
    assert surface.vertices[0] == (5.0, -2.0, -1.0)
    assert surface.vertices[3] == (5.0, 2.0, 1.0)
    assert surface.indices == [0, 2, 1, 1, 2, 3]
    assert surface.normals == [(1.0, 0.0, 0.0)] * 4
    assert surface.uvs[3] == (1.0, 1.0)


def test_sprite_mirror_flags_extend_uvs():
    surface = build_sprite_surface((0.0, 0.0, 0.0), 1.0, 1.0, flags_byte=0x4 | 0x8)
    assert surface.uvs == [(0.0, -1.0), (2.0, -1.0), (0.0, 1.0), (2.0, 1.0)]


def test_degenerate_sprite():
    assert build_sprite_surface((0.0, 0.0, 0.0), 0.0, 1.0) is None


# --- Decoder ---

def test_geometric_object_winding_correction(heap, writer, diagnostics, profile):
    element = writer.triangle_element([0, 1, 2], UVS, face_normals=[(0.0, 1.0, 0.0)])
    geometric = writer.geometric_object(TRIANGLE, [(1, element)])
    decoder = _decoder(heap, diagnostics, profile)

    mesh = decoder.parse_geometric_object(heap.address(geometric))
    surface = mesh.surfaces[0]
    assert surface.indices == [0, 2, 1]
    assert surface.vertices == TRIANGLE
    assert surface.double_sided
    assert not diagnostics


def test_geometric_object_is_cached(heap, writer, diagnostics, profile):
    geometric = writer.geometric_object(TRIANGLE, [(1, writer.triangle_element([0, 1, 2], UVS))])
    decoder = _decoder(heap, diagnostics, profile)
    first = decoder.parse_geometric_object(heap.address(geometric))
    assert decoder.parse_geometric_object(heap.address(geometric)) is first

    again = _decoder(heap, diagnostics, profile).parse_geometric_object(heap.address(geometric))
    assert again.surfaces[0].indices == first.surfaces[0].indices
    assert again.surfaces[0].vertices == first.surfaces[0].vertices


def test_unknown_element_type_reported_once(heap, writer, diagnostics, profile):
    dummy = heap.alloc(16)
    first = writer.geometric_object(TRIANGLE, [(5, dummy), (5, dummy),
                                               (1, writer.triangle_element([0, 1, 2], UVS))])
    second = writer.geometric_object(TRIANGLE, [(5, dummy)])
    decoder = _decoder(heap, diagnostics, profile)

    mesh = decoder.parse_geometric_object(heap.address(first))
    assert decoder.parse_geometric_object(heap.address(second)) is None
    assert mesh.surface_count == 1
    warnings = diagnostics.warnings()
    assert len(warnings) == 1
    assert warnings[0].severity is Severity.WARNING
    assert "Unsupported geometric visual element type 5" in warnings[0].message


def test_sprite_element(heap, writer, diagnostics, profile):
    texture = writer.texture_info("Sprites/Flare.gf", flags_byte=0x4)
    visual = writer.visual_material(texture=texture)
    element = writer.sprite_element(2.0, 2.0, 1, visual=visual)
    geometric = writer.geometric_object(TRIANGLE, [(3, element)])

    surface = _decoder(heap, diagnostics, profile).parse_geometric_object(
        heap.address(geometric)).surfaces[0]
    assert surface.vertices[0] == (1.0, -1.0, -1.0)
    assert surface.texture_name == "Sprites\\Flare.tga"
    assert surface.uvs[1] == (2.0, 0.0)
    assert surface.double_sided


def test_triangle_material_and_culling(heap, writer, diagnostics, profile):
    texture = writer.texture_info("gamedata/Textures/Rock.gf", flags=0x20, alpha_mask=0xFF,
                                  flags_byte=0x8)
    visual = writer.visual_material(flags=1 << 10, texture=texture)
    material = writer.game_material(visual)
    element = writer.triangle_element([0, 1, 2], UVS, material=material)
    geometric = writer.geometric_object(TRIANGLE, [(1, element)])

    mesh = _decoder(heap, diagnostics, profile).parse_geometric_object(heap.address(geometric))
    surface = mesh.surfaces[0]
    assert surface.texture_name == "Textures\\Rock.tga"
    assert surface.texture_flags == 0x20
    assert surface.alpha_mask == 0xFF
    assert surface.texture_flags_byte == 0x8
    assert surface.visual_flags == 1 << 10
    assert not surface.double_sided
    assert mesh.texture_names == ["Textures\\Rock.tga"]


def test_scene_mode_takes_first_resolvable_lod(heap, writer, diagnostics, profile):
    near = writer.geometric_object(TRIANGLE, [(1, writer.triangle_element([0, 1, 2], UVS))])
    physical = writer.physical_object([0, near])
    mesh = _decoder(heap, diagnostics, profile).parse_physical_object(heap.address(physical))
    assert mesh.vertex_count == 3


def test_scene_mode_skips_patch_sets(heap, writer, diagnostics, profile):
    geometric = writer.geometric_object(TRIANGLE, [(1, writer.triangle_element([0, 1, 2], UVS))])
    physical = writer.physical_object([writer.patch_object(geometric, [])], set_type=1)
    assert _decoder(heap, diagnostics, profile).parse_physical_object(
        heap.address(physical)) is None


def test_character_mode_sorts_lods_by_distance(heap, writer, diagnostics, profile):
    far = writer.geometric_object(TRIANGLE, [(1, writer.triangle_element([0, 1, 2], UVS))])
    quad = TRIANGLE + [(1.0, 0.0, 1.0)]
    near = writer.geometric_object(quad, [(1, writer.triangle_element([0, 1, 2, 1, 3, 2],
                                                                       UVS + [(1.0, 1.0)]))])
    physical = writer.physical_object([far, near], distances=[50.0, 5.0])

    decoder = _decoder(heap, diagnostics, profile, character_lods=True)
    mesh = decoder.parse_physical_object(heap.address(physical))
    assert mesh.surfaces[0].triangle_count == 2


def test_character_mode_applies_patch_deltas(heap, writer, diagnostics, profile):
    geometric = writer.geometric_object(TRIANGLE, [(1, writer.triangle_element([0, 1, 2], UVS))])
    patch = writer.patch_object(geometric, [(1, (0.0, 1.0, 0.0)), (1, (0.0, 1.0, 0.0))])
    physical = writer.physical_object([patch], set_type=1)

    decoder = _decoder(heap, diagnostics, profile, character_lods=True)
    mesh = decoder.parse_physical_object(heap.address(physical))
    assert mesh.surfaces[0].vertices[1] == pytest.approx((1.0, 2.0, 0.0))
    base = decoder.parse_geometric_object(heap.address(geometric))
    assert base.surfaces[0].vertices[1] == (1.0, 0.0, 0.0)


def test_truncated_geometric_object_is_reported(heap, writer, diagnostics, profile):
    geometric = heap.alloc(8)
    heap.u32(geometric, 3)
    decoder = _decoder(heap, diagnostics, profile)
    assert decoder.parse_geometric_object(heap.address(geometric)) is None
    assert decoder.parse_geometric_object(heap.address(geometric)) is None
    assert len(diagnostics.errors()) == 1


# --- Texture names ---

@pytest.mark.parametrize("raw, expected", [
    (None, None),
    ("   ", None),
    ("Textures/Rock.gf", "Textures\\Rock.tga"),
    ("\\Game\\GameData\\World\\Wall.GF", "World\\Wall.tga"),
    ("gamedata\\sky.png", "sky.png"),
    ("  tree.gf  ", "tree.tga"),
])
def test_normalize_texture_name(raw, expected):
    assert normalize_texture_name(raw) == expected
