"""Mesh extraction from GeometricObject records.

Record layouts (pointers relocated, vectors stored x, z, y):

IPO:
    ptr  physical_object, ptr

PhysicalObject:
    ptr  visual_set, ptr, ptr, u32

VisualSet:
    u32
    u16  lod_count
    u16  type               (0 GeometricObject, 1 patch GeometricObject)
    ptr  lod_distances      (f32 per LOD, optional)
    ptr  lod_data           (ptr per LOD)
    u32

Patch GeometricObject (VisualSet type 1):
    ptr  geometric_object
    u32  property_count
    ptr  properties         (u16 vertex_index, u16, f32 dx, dz, dy)

GeometricObject:
    u32  vertex_count
    ptr  vertices           (xzy f32 x vertex_count)
    ptr  normals            (xzy f32 x vertex_count, optional)
    ptr
    i32
    u32  element_count
    ptr  element_types      (u16 x element_count)
    ptr  elements           (ptr x element_count)
    i32 x4, f32 x4

Triangle element (type 1):
    ptr  game_material
    u16  triangle_count
    u16  uv_count
    ptr  triangles          (i16 x 3 per triangle)
    ptr  mapping            (i16 x 3 per triangle, indexes uvs)
    ptr  face_normals       (xzy f32 per triangle, optional)
    ptr  uvs                (f32 u, v per uv)
    u32, ptr, u16, u16, u32

Sprite element (type 3):
    f32  scale_x, scale_y
    ptr  visual_material
    u16  vertex_index, u16, u16

Every triangle gets its own three vertex copies. Some surfaces mix
windings, so the authored face normal is used to detect and correct the
winding of each triangle by swapping its last two indices.
"""

import logging
import math

from .sg_math import (
    EPSILON, vec_add, vec_cross, vec_dot, vec_length_squared, vec_normalized, vec_sub,
)
from ..diagnostics import Severity, guarded
from ..memory.memory_reader import (
    read_i16_array, read_u16_array, read_vector2_array, read_xzy_vector3_array,
)

_log = logging.getLogger("hype_sna.geometry")

ELEMENT_TRIANGLES = 1
ELEMENT_SPRITE = 3

VISUAL_SET_GEOMETRIC = 0
VISUAL_SET_PATCH = 1

_UP = (0.0, 1.0, 0.0)
_RIGHT = (1.0, 0.0, 0.0)


class MeshSurface:
    """One material batch: flat vertex arrays plus a triangle list."""

    __slots__ = (
        'vertices', 'indices', 'uvs', 'normals', 'double_sided',
        'texture_name', 'visual_flags', 'texture_flags',
        'texture_flags_byte', 'alpha_mask',
    )

    def __init__(self):
        self.vertices = []      # list of (x, y, z)
        self.indices = []       # triangle list, 3 per face
        self.uvs = []           # list of (u, v)
        self.normals = []       # list of (nx, ny, nz)
        self.double_sided = True
        self.texture_name = None
        self.visual_flags = 0
        self.texture_flags = 0
        self.texture_flags_byte = 0
        self.alpha_mask = 0

    @property
    def vertex_count(self):
        return len(self.vertices)

    @property
    def triangle_count(self):
        return len(self.indices) // 3

    def apply_visual_material(self, visual):
        if visual is None:
            return
        self.visual_flags = visual.flags
        texture = visual.texture
        if texture is not None:
            self.texture_name = texture.name
            self.texture_flags = texture.flags
            self.texture_flags_byte = texture.flags_byte
            self.alpha_mask = texture.alpha_mask

    def to_dict(self):
        return {
            "vertex_count": self.vertex_count,
            "triangle_count": self.triangle_count,
            "double_sided": self.double_sided,
            "texture": self.texture_name,
            "visual_flags": self.visual_flags,
            "texture_flags": self.texture_flags,
            "texture_flags_byte": self.texture_flags_byte,
            "alpha_mask": self.alpha_mask,
        }


class ResolvedMesh:
    __slots__ = ('surfaces',)

    def __init__(self, surfaces=None):
        self.surfaces = list(surfaces or [])

    @property
    def vertex_count(self):
        return sum(s.vertex_count for s in self.surfaces)

    @property
    def surface_count(self):
        return len(self.surfaces)

    @property
    def texture_names(self):
        names = []
        for surface in self.surfaces:
            if surface.texture_name and surface.texture_name not in names:
                names.append(surface.texture_name)
        return names

    def to_dict(self):
        return {"surfaces": [s.to_dict() for s in self.surfaces]}


# ---------------------------------------------------------------------------
# Triangle helpers
# ---------------------------------------------------------------------------

def compute_face_normal(a, b, c):
    """Unit normal of triangle (a, b, c), or +Y for degenerate faces."""
    normal = vec_cross(vec_sub(b, a), vec_sub(c, a))
    if vec_length_squared(normal) > EPSILON:
        return vec_normalized(normal)
    return _UP


def vertex_normal(normals, index):
    """Normalised per-vertex normal, or None if absent or degenerate."""
    if normals is None or not 0 <= index < len(normals):
        return None
    normal = normals[index]
    if vec_length_squared(normal) > EPSILON:
        return vec_normalized(normal)
    return None


def authored_face_normal(face_normals, triangle_index):
    if face_normals is None or not 0 <= triangle_index < len(face_normals):
        return None
    normal = face_normals[triangle_index]
    if vec_length_squared(normal) <= EPSILON:
        return None
    return vec_normalized(normal)


def wrap_index(index, length):
    if length <= 0:
        return 0
    return index % length


def build_triangle_surface(vertices, vertex_normals, triangles, mapping,
                           face_normals, uvs):
    """Expand indexed triangles into per-face vertex copies.

    triangles and mapping are flat lists of three entries per face.
    Triangles referencing vertices out of range are dropped. Returns a
    MeshSurface without material information, or None if nothing was
    emitted.
    """
    surface = MeshSurface()
    triangle_count = len(triangles) // 3
    vertex_total = len(vertices)
    uv_total = len(uvs)

    for triangle_index in range(triangle_count):
        base = triangle_index * 3
        i0, i1, i2 = triangles[base:base + 3]
        if not (0 <= i0 < vertex_total and 0 <= i1 < vertex_total and 0 <= i2 < vertex_total):
            continue
        m0, m1, m2 = mapping[base:base + 3]
        v0, v1, v2 = vertices[i0], vertices[i1], vertices[i2]

        swapped = False
        authored = authored_face_normal(face_normals, triangle_index)
        if authored is not None:
            swapped = vec_dot(compute_face_normal(v0, v1, v2), authored) < 0.0

        if face_normals is not None and triangle_index < len(face_normals):
            flat = face_normals[triangle_index]
        else:
            flat = compute_face_normal(v0, v1, v2)

        vertex_base = len(surface.vertices)
        surface.vertices.extend((v0, v1, v2))
        surface.uvs.extend((uvs[wrap_index(m0, uv_total)],
                            uvs[wrap_index(m1, uv_total)],
                            uvs[wrap_index(m2, uv_total)]))
        for index in (i0, i1, i2):
            normal = vertex_normal(vertex_normals, index)
            surface.normals.append(normal if normal is not None else flat)

        if swapped:
            surface.indices.extend((vertex_base, vertex_base + 2, vertex_base + 1))
        else:
            surface.indices.extend((vertex_base, vertex_base + 1, vertex_base + 2))

    if not surface.vertices:
        return None
    return surface


def build_sprite_surface(center, scale_x, scale_y, flags_byte=0):
    """Camera-independent quad in the YZ plane around center, or None if degenerate."""
    half_x = abs(scale_x) * 0.5
    half_y = abs(scale_y) * 0.5
    if half_x <= EPSILON or half_y <= EPSILON:
        return None

    surface = MeshSurface()
    surface.vertices = [
        vec_add(center, (0.0, -half_y, -half_x)),
        vec_add(center, (0.0, -half_y, half_x)),
        vec_add(center, (0.0, half_y, -half_x)),
        vec_add(center, (0.0, half_y, half_x)),
    ]
    u_max = 2.0 if flags_byte & 0x4 else 1.0
    v_min = -1.0 if flags_byte & 0x8 else 0.0
    surface.uvs = [(0.0, v_min), (u_max, v_min), (0.0, 1.0), (u_max, 1.0)]
    surface.normals = [_RIGHT] * 4
    surface.indices = [0, 2, 1, 1, 2, 3]
    surface.double_sided = True
    return surface


def apply_vertex_deltas(vertices, deltas):
    """Return a copy of vertices with per-index deltas added."""
    if not deltas:
        return vertices
    result = list(vertices)
    for index, delta in deltas.items():
        if 0 <= index < len(result):
            result[index] = vec_add(result[index], delta)
    return result


# ---------------------------------------------------------------------------
# Decoder
# ---------------------------------------------------------------------------

class GeometryDecoder:
    """Decodes IPO / PhysicalObject / GeometricObject chains into meshes.

    Scene mode takes the first resolvable LOD of a type 0 visual set.
    Character mode (character_lods=True) also accepts patch visual sets
    and tries LODs by ascending distance.
    """

    def __init__(self, space, diagnostics, materials, profile, character_lods=False):
        self.space = space
        self.diagnostics = diagnostics
        self.materials = materials
        self.profile = profile
        self.character_lods = character_lods
        self._ipo_meshes = {}
        self._physical_meshes = {}
        self._geometric_meshes = {}
        self._reported_element_types = set()

    # --- IPO / PhysicalObject ---

    def parse_ipo(self, address):
        if address is None:
            return None
        if address in self._ipo_meshes:
            return self._ipo_meshes[address]
        mesh = guarded(self.diagnostics, f"IPO {address}", self._read_ipo, address)
        self._ipo_meshes[address] = mesh
        return mesh

    def _read_ipo(self, address):
        reader = self.space.create_reader(address)
        physical = reader.read_pointer()
        reader.read_pointer()
        return self.parse_physical_object(physical)

    def parse_physical_object(self, address):
        if address is None:
            return None
        if address in self._physical_meshes:
            return self._physical_meshes[address]
        mesh = guarded(self.diagnostics, f"PhysicalObject {address}",
                       self._read_physical_object, address)
        self._physical_meshes[address] = mesh
        return mesh

    def _read_physical_object(self, address):
        reader = self.space.create_reader(address)
        visual_set = reader.read_pointer()
        reader.read_pointer()
        reader.read_pointer()
        reader.read_u32()
        if visual_set is None:
            return None

        reader = self.space.create_reader(visual_set)
        reader.read_u32()
        lod_count = reader.read_u16()
        set_type = reader.read_u16()
        lod_distances = reader.read_pointer()
        lod_data = reader.read_pointer()
        reader.read_u32()

        if lod_count == 0 or lod_data is None:
            return None

        if not self.character_lods:
            if set_type != VISUAL_SET_GEOMETRIC:
                return None
            lod_reader = self.space.create_reader(lod_data)
            for _ in range(lod_count):
                lod = lod_reader.read_pointer()
                if lod is None:
                    continue
                mesh = self.parse_geometric_object(lod)
                if mesh is not None:
                    return mesh
            return None

        if set_type not in (VISUAL_SET_GEOMETRIC, VISUAL_SET_PATCH):
            return None
        for lod, _distance in self._read_lod_candidates(lod_count, lod_data, lod_distances):
            if set_type == VISUAL_SET_GEOMETRIC:
                mesh = self.parse_geometric_object(lod)
            else:
                mesh = self.parse_patch_object(lod)
            if mesh is not None:
                return mesh
        return None

    def _read_lod_candidates(self, lod_count, lod_data, lod_distances):
        """(address, distance) pairs sorted by distance; index stands in for missing distances."""
        candidates = []
        lod_reader = self.space.create_reader(lod_data)
        distance_reader = self.space.create_reader(lod_distances) if lod_distances is not None else None
        for index in range(lod_count):
            lod = lod_reader.read_pointer()
            distance = float(index)
            if distance_reader is not None:
                distance = distance_reader.read_f32()
            if lod is not None:
                candidates.append((lod, distance))
        candidates.sort(key=lambda item: item[1])
        return candidates

    # --- GeometricObject ---

    def parse_patch_object(self, address):
        """Patched GeometricObject: base mesh with accumulated vertex deltas."""
        return guarded(self.diagnostics, f"PatchGeometricObject {address}",
                       self._read_patch_object, address)

    def _read_patch_object(self, address):
        reader = self.space.create_reader(address)
        geometric = reader.read_pointer()
        property_count = reader.read_u32()
        properties = reader.read_pointer()
        if geometric is None:
            return None

        deltas = {}
        if property_count > 0 and properties is not None:
            reader = self.space.create_reader(properties)
            for _ in range(property_count):
                vertex_index = reader.read_u16()
                reader.read_u16()
                delta = reader.read_xzy_vector3()
                previous = deltas.get(vertex_index)
                deltas[vertex_index] = delta if previous is None else vec_add(previous, delta)

        if not deltas:
            return self.parse_geometric_object(geometric)
        # patched meshes are not shared, so they bypass the cache
        return guarded(self.diagnostics, f"GeometricObject {geometric}",
                       self._read_geometric_object, geometric, deltas)

    def parse_geometric_object(self, address):
        if address is None:
            return None
        if address in self._geometric_meshes:
            return self._geometric_meshes[address]
        mesh = guarded(self.diagnostics, f"GeometricObject {address}",
                       self._read_geometric_object, address)
        self._geometric_meshes[address] = mesh
        return mesh

    def _read_geometric_object(self, address, deltas=None):
        reader = self.space.create_reader(address)
        vertex_count = reader.read_u32()
        vertices_address = reader.read_pointer()
        normals_address = reader.read_pointer()
        reader.read_pointer()
        reader.read_i32()
        element_count = reader.read_u32()
        types_address = reader.read_pointer()
        elements_address = reader.read_pointer()
        reader.skip(4 * 4)
        reader.skip(4 * 4)

        if (vertex_count <= 0 or element_count <= 0 or vertices_address is None
                or types_address is None or elements_address is None):
            return None

        vertices = read_xzy_vector3_array(self.space, vertices_address, vertex_count)
        vertices = apply_vertex_deltas(vertices, deltas)
        vertex_normals = None
        if normals_address is not None:
            vertex_normals = read_xzy_vector3_array(self.space, normals_address, vertex_count)
        element_types = read_u16_array(self.space, types_address, element_count)

        surfaces = []
        for element_index, element_type in enumerate(element_types):
            element_reader = self.space.create_reader(elements_address.add(element_index * 4))
            element = element_reader.read_pointer()
            if element is None:
                continue

            if element_type == ELEMENT_TRIANGLES:
                surface = guarded(self.diagnostics, f"triangle element {element}",
                                  self._read_triangle_element, element,
                                  vertices, vertex_normals)
            elif element_type == ELEMENT_SPRITE:
                surface = guarded(self.diagnostics, f"sprite element {element}",
                                  self._read_sprite_element, element, vertices)
            else:
                self.diagnostics.add_once(
                    ("element_type", element_type), Severity.WARNING,
                    f"Unsupported geometric visual element type {element_type} "
                    f"in GeometricObject {address}.")
                continue

            if surface is not None:
                surfaces.append(surface)

        if not surfaces:
            return None
        _log.debug("GeometricObject %s: %d surfaces", address, len(surfaces))
        return ResolvedMesh(surfaces)

    def _read_triangle_element(self, address, vertices, vertex_normals):
        reader = self.space.create_reader(address)
        material_address = reader.read_pointer()
        triangle_count = reader.read_u16()
        uv_count = reader.read_u16()
        triangles_address = reader.read_pointer()
        mapping_address = reader.read_pointer()
        face_normals_address = reader.read_pointer()
        uvs_address = reader.read_pointer()
        reader.read_u32()
        reader.read_pointer()
        reader.read_u16()
        reader.read_u16()
        reader.read_u32()

        if (triangle_count <= 0 or uv_count <= 0 or triangles_address is None
                or mapping_address is None or uvs_address is None):
            return None

        visual = self.materials.visual_for_game_material(material_address)
        mapping = read_i16_array(self.space, mapping_address, triangle_count * 3)
        uvs = read_vector2_array(self.space, uvs_address, uv_count)
        triangles = read_i16_array(self.space, triangles_address, triangle_count * 3)
        face_normals = None
        if face_normals_address is not None:
            face_normals = read_xzy_vector3_array(self.space, face_normals_address, triangle_count)

        surface = build_triangle_surface(vertices, vertex_normals, triangles, mapping,
                                         face_normals, uvs)
        if surface is None:
            return None
        surface.apply_visual_material(visual)
        if visual is not None:
            surface.double_sided = visual.is_double_sided(self.profile.backface_culling_flag)
        return surface

    def _read_sprite_element(self, address, vertices):
        reader = self.space.create_reader(address)
        scale_x = reader.read_f32()
        scale_y = reader.read_f32()
        visual_address = reader.read_pointer()
        vertex_index = reader.read_u16()
        reader.read_u16()
        reader.read_u16()

        if not 0 <= vertex_index < len(vertices):
            return None
        if not (math.isfinite(scale_x) and math.isfinite(scale_y)):
            return None

        visual = self.materials.parse_visual_material(visual_address)
        flags_byte = visual.texture.flags_byte if visual is not None and visual.texture else 0
        surface = build_sprite_surface(vertices[vertex_index], scale_x, scale_y, flags_byte)
        if surface is None:
            return None
        surface.apply_visual_material(visual)
        surface.double_sided = True
        return surface
