"""Parse Montreal character animations.

An actor's current state points at one animation. Frames store, per
channel, a compressed transform and the index of the object (mesh slot in
the family object list) drawn by that channel, plus an optional channel
hierarchy for that frame.

Field layouts:

Animation:
    ptr  frames
    u8   num_frames
    u8
    u8   num_channels
    u8
    ptr
    u32 x3
    f32 x21
    u32 x2

Frame (16 bytes, num_frames of them at frames):
    ptr  channels           (-> ptr per channel)
    ptr
    ptr
    ptr  hierarchies

Channel:
    u32  matrix_ptr_or_flag (values 0 and 1 are flags, others point at a
                             compressed transform)
    u8   object_index       (0xFF means no object)
    u8
    i16, i16
    u8, u8
    u32

Hierarchy header:
    u32  count
    ptr  pairs              (i16 child, i16 parent) x count

Compressed transform:
    u16  packed_type        (type = packed & 0xF below 128, else 128)
    i16 x3  position / 512          types 1, 3, 7, 11, 15
    i16 x4  quaternion w,x,y,z / 32767   types 2, 3, 7, 11, 15
    i16     uniform scale / 256     type 7
    i16 x3  scale / 256             type 11
    i16 x6  scale matrix / 256      type 15 (diagonal entries 0, 3, 5)
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from ..diagnostics import DECODE_ERRORS
from ..scene_graph.sg_math import (
    Transform, columns_to_quaternion, quaternion_to_columns,
)

_log = logging.getLogger("hype_sna.actor")

FRAME_RECORD_SIZE = 16

POSITION_SCALE = 512.0
QUATERNION_SCALE = 32767.0
SCALE_SCALE = 256.0

_POSITION_TYPES = (1, 3, 7, 11, 15)
_ROTATION_TYPES = (2, 3, 7, 11, 15)


@dataclass
class ChannelSample:
    """One channel's state in one frame."""
    object_index: int = -1
    transform: Transform = field(default_factory=Transform.identity)


@dataclass
class Frame:
    samples: List[ChannelSample] = field(default_factory=list)
    parent_channels: List[int] = field(default_factory=list)


@dataclass
class ObjectVisual:
    """Mesh slot of the actor's family object list."""
    object_index: int
    scale: Tuple[float, float, float] = (1.0, 1.0, 1.0)
    mesh: object = None         # ResolvedMesh or None


@dataclass
class CharacterActorAsset:
    """A Perso with a resolvable animation and at least one object visual."""
    level_name: str
    actor_id: str
    is_main_actor: bool = False
    is_sector_member: bool = False
    is_targetable: bool = False
    custom_bits: int = 0
    fps: float = 1.0
    channel_count: int = 0
    objects: List[ObjectVisual] = field(default_factory=list)
    frames: List[Frame] = field(default_factory=list)

    @property
    def frame_count(self):
        return len(self.frames)

    def get_object(self, object_index) -> Optional[ObjectVisual]:
        for visual in self.objects:
            if visual.object_index == object_index:
                return visual
        return None

    def to_dict(self):
        return {
            "level": self.level_name,
            "actor_id": self.actor_id,
            "is_main_actor": self.is_main_actor,
            "is_sector_member": self.is_sector_member,
            "is_targetable": self.is_targetable,
            "custom_bits": self.custom_bits,
            "fps": self.fps,
            "channel_count": self.channel_count,
            "frame_count": self.frame_count,
            "objects": [
                {
                    "object_index": v.object_index,
                    "scale": list(v.scale),
                    "mesh": v.mesh.to_dict() if v.mesh is not None else None,
                }
                for v in self.objects
            ],
        }


# ---------------------------------------------------------------------------
# Compressed transforms
# ---------------------------------------------------------------------------

def read_compressed_transform(space, address):
    """Decode a packed channel transform into a Transform."""
    reader = space.create_reader(address)
    packed_type = reader.read_u16()
    actual_type = packed_type & 0xF if packed_type < 128 else 128

    raw_position = (0.0, 0.0, 0.0)
    raw_scale = (1.0, 1.0, 1.0)
    rotation = None

    if actual_type in _POSITION_TYPES:
        raw_position = tuple(reader.read_i16() / POSITION_SCALE for _ in range(3))

    if actual_type in _ROTATION_TYPES:
        w = reader.read_i16() / QUATERNION_SCALE
        x = reader.read_i16() / QUATERNION_SCALE
        y = reader.read_i16() / QUATERNION_SCALE
        z = reader.read_i16() / QUATERNION_SCALE
        internal = columns_to_quaternion(*quaternion_to_columns((x, y, z, w)), convert_axes=False)
        rotation = columns_to_quaternion(*quaternion_to_columns(internal), convert_axes=True)

    if actual_type == 7:
        uniform = reader.read_i16() / SCALE_SCALE
        raw_scale = (uniform, uniform, uniform)
    elif actual_type == 11:
        raw_scale = tuple(reader.read_i16() / SCALE_SCALE for _ in range(3))
    elif actual_type == 15:
        matrix = [reader.read_i16() / SCALE_SCALE for _ in range(6)]
        raw_scale = (matrix[0], matrix[3], matrix[5])

    position = (raw_position[0], raw_position[2], raw_position[1])
    scale = (raw_scale[0], raw_scale[2], raw_scale[1])
    if rotation is None:
        rotation = (0.0, 0.0, 0.0, 1.0)
    return Transform.from_quaternion(rotation, scale, position)


# ---------------------------------------------------------------------------
# Animation records
# ---------------------------------------------------------------------------

def parse_channel_sample(space, address):
    """Object index and transform of one channel record.

    Any decode failure gives the empty sample (-1, identity).
    """
    try:
        reader = space.create_reader(address)
        field_address, matrix_value = reader.read_raw_pointer()
        object_index = reader.read_u8()
        reader.read_u8()
        reader.read_i16()
        reader.read_i16()
        reader.read_u8()
        reader.read_u8()
        reader.read_u32()

        if object_index == 0xFF:
            object_index = -1
        transform = Transform.identity()
        if matrix_value > 1:
            matrix = space.resolve_pointer(field_address, matrix_value)
            if matrix is None:
                matrix = space.resolve_raw_address(matrix_value)
            if matrix is not None:
                transform = read_compressed_transform(space, matrix)
        return ChannelSample(object_index, transform)
    except DECODE_ERRORS:
        return ChannelSample()


def _read_hierarchy(space, address, channel_count):
    parents = [-1] * channel_count
    if address is None:
        return parents
    reader = space.create_reader(address)
    count = reader.read_u32()
    pairs = reader.read_pointer()
    if count <= 0 or pairs is None:
        return parents
    reader = space.create_reader(pairs)
    for _ in range(count):
        child = reader.read_i16()
        parent = reader.read_i16()
        if 0 <= child < channel_count and 0 <= parent < channel_count and child != parent:
            parents[child] = parent
    return parents


def parse_animation(space, address):
    """(frames, channel_count) of an animation record, or None without data.

    Decode errors propagate to the caller.
    """
    reader = space.create_reader(address)
    frames_address = reader.read_pointer()
    frame_count = reader.read_u8()
    reader.read_u8()
    channel_count = reader.read_u8()
    reader.read_u8()
    reader.read_pointer()
    reader.skip(3 * 4)
    reader.skip(21 * 4)
    reader.skip(2 * 4)

    if frames_address is None or frame_count == 0 or channel_count == 0:
        return None

    frames = []
    for frame_index in range(frame_count):
        frame_reader = space.create_reader(frames_address.add(frame_index * FRAME_RECORD_SIZE))
        channels = frame_reader.read_pointer()
        frame_reader.read_pointer()
        frame_reader.read_pointer()
        hierarchies = frame_reader.read_pointer()

        samples = [ChannelSample() for _ in range(channel_count)]
        if channels is not None:
            pointer_reader = space.create_reader(channels)
            for channel_index in range(channel_count):
                channel = pointer_reader.read_pointer()
                if channel is not None:
                    samples[channel_index] = parse_channel_sample(space, channel)

        frames.append(Frame(samples, _read_hierarchy(space, hierarchies, channel_count)))

    _log.debug("Animation %s: %d frames, %d channels", address, frame_count, channel_count)
    return frames, channel_count
