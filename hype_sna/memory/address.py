"""Relocated addresses: (segment id, byte offset) handles."""

from typing import NamedTuple


class Address(NamedTuple):
    """A location inside one segment of the relocated address space.

    Offsets are relative to the segment start, never raw runtime values.
    """
    segment_id: str
    offset: int

    def add(self, delta):
        return Address(self.segment_id, self.offset + delta)

    def __str__(self):
        return f"{self.segment_id}@0x{self.offset:08X}"
