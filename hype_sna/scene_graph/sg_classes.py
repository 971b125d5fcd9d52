"""SuperObject graph: record parsing and the shared traversal.

SuperObject record:
    u32  type_code          (0x0 World, 0x4 Perso, 0x8 Sector, 0xD IPO, 0x15 IPO2)
    ptr  data
    ptr  child_head
    ptr  child_tail
    u32  child_count
    ptr  next_brother
    ptr  prev_brother
    ptr  parent
    ptr  matrix             (-> legacy transform)
    ptr  static_matrix
    i32, u32, u32
    ptr  bounding_volume

Legacy transform:
    u32  type
    f32  x, y, z            (position)
    f32  x9                 (rotation columns 0..2)
    f32  x9                 (scale columns 0..2)

Children form a chain starting at child_head and following each child's
next_brother. Level data can be corrupt, so the chain is capped by
child_count and the profile's max_child_chain, and a node already on the
current traversal path is not entered again.
"""

import enum
import logging

from .sg_math import Transform, columns_to_quaternion, signed_scale
from ..diagnostics import DECODE_ERRORS, guarded, quietly

_log = logging.getLogger("hype_sna.scene")


class SuperObjectType(enum.Enum):
    UNKNOWN = "Unknown"
    WORLD = "World"
    PERSO = "Perso"
    SECTOR = "Sector"
    IPO = "IPO"
    IPO2 = "IPO2"

    @classmethod
    def from_code(cls, type_code):
        return _TYPE_CODES.get(type_code, cls.UNKNOWN)


_TYPE_CODES = {
    0x0: SuperObjectType.WORLD,
    0x4: SuperObjectType.PERSO,
    0x8: SuperObjectType.SECTOR,
    0xD: SuperObjectType.IPO,
    0x15: SuperObjectType.IPO2,
}

# visitor callback per type; every node also gets visit_node
_VISIT_METHODS = {
    SuperObjectType.WORLD: 'visit_world',
    SuperObjectType.PERSO: 'visit_perso',
    SuperObjectType.SECTOR: 'visit_sector',
    SuperObjectType.IPO: 'visit_ipo',
    SuperObjectType.IPO2: 'visit_ipo',
}


class SuperObject:
    """One decoded SuperObject record."""

    __slots__ = (
        'address', 'type', 'type_code', 'data', 'first_child', 'child_count',
        'next_brother', 'local_transform', 'mesh',
    )

    def __init__(self, address, type_code):
        self.address = address
        self.type_code = type_code
        self.type = SuperObjectType.from_code(type_code)
        self.data = None
        self.first_child = None
        self.child_count = 0
        self.next_brother = None
        self.local_transform = Transform.identity()
        self.mesh = None        # ResolvedMesh for IPO / IPO2

    @property
    def name(self):
        return f"{self.type.value}_{self.address.offset:08X}"

    @property
    def is_ipo(self):
        return self.type in (SuperObjectType.IPO, SuperObjectType.IPO2)


def read_legacy_transform(space, address):
    """Decode a legacy transform record into a Transform."""
    reader = space.create_reader(address)
    reader.read_u32()
    px = reader.read_f32()
    py = reader.read_f32()
    pz = reader.read_f32()
    rotation = [tuple(reader.read_f32() for _ in range(3)) for _ in range(3)]
    scale = [tuple(reader.read_f32() for _ in range(3)) for _ in range(3)]

    position = (px, pz, py)
    scale_vector = (
        signed_scale(scale[0], rotation[0]),
        signed_scale(scale[2], rotation[2]),
        signed_scale(scale[1], rotation[1]),
    )
    quaternion = columns_to_quaternion(*rotation, convert_axes=True)
    return Transform.from_quaternion(quaternion, scale_vector, position)


class _Frame:
    __slots__ = ('address', 'world', 'next_child', 'remaining', 'visited')

    def __init__(self, address, world, next_child, remaining):
        self.address = address
        self.world = world
        self.next_child = next_child
        self.remaining = remaining
        self.visited = set()


class SuperObjectGraph:
    """Memoized SuperObject parsing plus the depth-first walk.

    geometry, when given, is a GeometryDecoder used to attach meshes to
    IPO nodes at parse time.
    """

    def __init__(self, space, diagnostics, profile, geometry=None):
        self.space = space
        self.diagnostics = diagnostics
        self.profile = profile
        self.geometry = geometry
        self._records = {}

    def parse(self, address):
        """SuperObject at address, or None if it cannot be decoded."""
        if address is None:
            return None
        if address in self._records:
            return self._records[address]
        record = guarded(self.diagnostics, f"SuperObject {address}", self._read, address)
        self._records[address] = record
        return record

    def _read(self, address):
        reader = self.space.create_reader(address)
        record = SuperObject(address, reader.read_u32())
        record.data = reader.read_pointer()
        record.first_child = reader.read_pointer()
        reader.read_pointer()
        record.child_count = reader.read_u32()
        record.next_brother = reader.read_pointer()
        reader.read_pointer()
        reader.read_pointer()
        matrix = reader.read_pointer()
        reader.read_pointer()
        reader.read_i32()
        reader.read_u32()
        reader.read_u32()
        reader.read_pointer()

        if matrix is not None:
            record.local_transform = read_legacy_transform(self.space, matrix)
        if record.is_ipo and record.data is not None and self.geometry is not None:
            record.mesh = self.geometry.parse_ipo(record.data)
        return record

    # --- Traversal ---

    def walk(self, visitor, roots, parent_transform=None):
        """Depth-first walk from each root, calling visitor methods.

        For every entered node visitor.visit_node(record, world) is called
        and then the per-type method (visit_world, visit_perso,
        visit_sector, visit_ipo) if the visitor defines it. The walk uses an
        explicit work stack so deep chains cannot exhaust the interpreter
        stack.
        """
        if parent_transform is None:
            parent_transform = Transform.identity()
        for root in roots:
            self._walk_from(root, visitor, parent_transform)

    def _walk_from(self, root, visitor, parent_transform):
        on_path = set()
        stack = []
        frame = self._enter(root, parent_transform, visitor, on_path)
        if frame is not None:
            stack.append(frame)

        while stack:
            frame = stack[-1]
            child = frame.next_child
            if child is None or frame.remaining <= 0 or child in frame.visited:
                stack.pop()
                on_path.discard(frame.address)
                continue

            frame.remaining -= 1
            frame.visited.add(child)
            child_record = self.parse(child)
            frame.next_child = child_record.next_brother if child_record is not None else None

            if child in on_path:
                continue
            child_frame = self._enter(child, frame.world, visitor, on_path)
            if child_frame is not None:
                stack.append(child_frame)

    def _enter(self, address, parent_transform, visitor, on_path):
        record = self.parse(address)
        if record is None:
            return None
        on_path.add(address)
        world = parent_transform * record.local_transform

        if hasattr(visitor, 'visit_node'):
            visitor.visit_node(record, world)
        method = _VISIT_METHODS.get(record.type)
        if method is not None and hasattr(visitor, method):
            getattr(visitor, method)(record, world)

        remaining = min(record.child_count, self.profile.max_child_chain)
        return _Frame(address, world, record.first_child, remaining)

    # --- Sector character lists ---

    def collect_sector_character_addresses(self, roots):
        """Perso data addresses linked from any Sector's character list."""
        collector = _SectorCharacterCollector(self)
        self.walk(collector, roots)
        return collector.addresses

    def read_sector_character_list(self, sector_data, output):
        """Append the connection of every node of a sector's character list.

        Node layout: ptr connection, ptr next. The list head is at
        sector_character_list_offset in the Sector data record.
        """
        try:
            reader = self.space.create_reader(
                sector_data.add(self.profile.sector_character_list_offset))
            node = reader.read_pointer()
            visited = set()
            remaining = self.profile.max_linked_list
            while node is not None and remaining > 0 and node not in visited:
                remaining -= 1
                visited.add(node)
                node_reader = self.space.create_reader(node)
                connection = node_reader.read_pointer()
                following = node_reader.read_pointer()
                if connection is not None:
                    output.add(connection)
                node = following
        except DECODE_ERRORS as exc:
            self.diagnostics.error(
                f"Failed to parse sector character list at {sector_data}: {exc}")


class _SectorCharacterCollector:
    def __init__(self, graph):
        self.graph = graph
        self.addresses = set()

    def visit_sector(self, record, world):
        if record.data is not None:
            self.graph.read_sector_character_list(record.data, self.addresses)


# ---------------------------------------------------------------------------
# Perso helpers
# ---------------------------------------------------------------------------

def _try_read_pointer(space, base, offset):
    def read():
        return space.create_reader(base.add(offset)).read_pointer()
    return quietly(read)


def _try_read_u32(space, base, offset):
    def read():
        return space.create_reader(base.add(offset)).read_u32()
    return quietly(read)


def read_custom_bits(space, std_game, profile):
    """Custom bits of a Perso from its standard-game record.

    Lookup order: the nested record at std_game + custom_bits_pointer_offset,
    then each of custom_bits_offsets directly on std_game. Unreadable
    candidates are skipped silently; nothing readable gives 0.
    """
    if std_game is None:
        return 0
    offsets = profile.custom_bits_offsets
    nested = _try_read_pointer(space, std_game, profile.custom_bits_pointer_offset)
    if nested is not None and offsets:
        bits = _try_read_u32(space, nested, offsets[0])
        if bits is not None:
            return bits
    for offset in offsets:
        bits = _try_read_u32(space, std_game, offset)
        if bits is not None:
            return bits
    return 0
