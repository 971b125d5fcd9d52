"""Forward-only cursor over one segment of the relocated address space."""

import struct

from .address import Address
from ..errors import OutOfBoundsError
from ..sna_format.sna_constants import NULL_POINTER_VALUES

_U8 = struct.Struct('<B')
_I16 = struct.Struct('<h')
_U16 = struct.Struct('<H')
_I32 = struct.Struct('<i')
_U32 = struct.Struct('<I')
_F32 = struct.Struct('<f')


class MemoryReader:
    """Reads little-endian primitives and pointers, advancing its position.

    Any read past the end of the bound segment raises OutOfBoundsError.
    read_pointer() returns None for null sentinels and for values that
    neither the relocation maps nor the raw-address fallback can resolve.
    """

    __slots__ = ('_space', '_position')

    def __init__(self, space, start):
        self._space = space
        self._position = Address(*start)

    @property
    def position(self):
        return self._position

    def skip(self, count):
        self._read(count)

    def _read(self, length):
        data = self._space.read_slice(self._position, length)
        if data is None:
            raise OutOfBoundsError(self._position, length)
        self._position = self._position.add(length)
        return data

    def _unpack(self, fmt):
        return fmt.unpack(self._read(fmt.size))[0]

    def read_u8(self):
        return self._unpack(_U8)

    def read_i16(self):
        return self._unpack(_I16)

    def read_u16(self):
        return self._unpack(_U16)

    def read_i32(self):
        return self._unpack(_I32)

    def read_u32(self):
        return self._unpack(_U32)

    def read_f32(self):
        return self._unpack(_F32)

    def read_bytes(self, length):
        return bytes(self._read(length))

    def read_fixed_string(self, length):
        """ASCII string of fixed width, cut at the first NUL."""
        raw = self._read(length)
        end = raw.find(b"\x00")
        if end >= 0:
            raw = raw[:end]
        return raw.decode("ascii", errors="replace")

    def read_pointer(self):
        field = self._position
        raw = self.read_u32()
        if raw in NULL_POINTER_VALUES:
            return None
        resolved = self._space.resolve_pointer(field, raw)
        if resolved is None:
            resolved = self._space.resolve_raw_address(raw)
        return resolved

    def read_raw_pointer(self):
        """Return (field address, raw value) without resolving."""
        field = self._position
        return field, self.read_u32()

    def read_xzy_vector3(self):
        """Read a stored (x, z, y) float triple as (x, y, z)."""
        x = self.read_f32()
        z = self.read_f32()
        y = self.read_f32()
        return (x, y, z)


def read_xzy_vector3_array(space, address, count):
    reader = space.create_reader(address)
    return [reader.read_xzy_vector3() for _ in range(count)]


def read_i16_array(space, address, count):
    reader = space.create_reader(address)
    return [reader.read_i16() for _ in range(count)]


def read_u16_array(space, address, count):
    reader = space.create_reader(address)
    return [reader.read_u16() for _ in range(count)]


def read_vector2_array(space, address, count):
    reader = space.create_reader(address)
    return [(reader.read_f32(), reader.read_f32()) for _ in range(count)]
