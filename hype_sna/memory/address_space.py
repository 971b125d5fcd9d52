"""Relocated address space built from SNA blocks and pointer files.

Two kinds of segments live here:

Block segment
    Bytes of one SNA block plus its original runtime base address. Its
    pointer map is keyed by original memory address (base + offset) and
    comes from the relocation table block with the same (module, block id).

Pointer-file segment
    Bytes of a GPT/PTX file with no base address. Its pointer map is keyed
    by byte offset and is built by scanning every 4-byte aligned word for
    values equal to some relocation entry's offset_in_memory.

Resolving a raw pointer read at a field:
    1. block segment: look the field's memory address up in the block map
    2. pointer-file segment: look the field's offset up in the file map
    3. either hit names a target (module, block id); among all block
       segments with that key, the largest one whose range contains the raw
       value wins (first loaded on ties)
Raw-address fallback (used by the reader when the maps have no entry) takes
the first block segment in load order whose range contains the value.
"""

import logging
import struct
from typing import Dict, List, Optional

from .address import Address
from .memory_reader import MemoryReader
from ..sna_format.sna_constants import NULL_POINTER_VALUES, relocation_key

_log = logging.getLogger("hype_sna.memory")


class Segment:
    """Immutable byte range registered in the address space."""

    __slots__ = ('segment_id', 'data', 'base_in_memory', 'block_pointer_map',
                 'file_pointer_map')

    def __init__(self, segment_id, data, base_in_memory=None,
                 block_pointer_map=None, file_pointer_map=None):
        self.segment_id = segment_id
        self.data = data
        # unsigned runtime base, None for pointer files
        self.base_in_memory = None if base_in_memory is None else base_in_memory & 0xFFFFFFFF
        self.block_pointer_map = block_pointer_map  # memory address -> PointerInfo
        self.file_pointer_map = file_pointer_map    # byte offset -> PointerInfo

    def __len__(self):
        return len(self.data)

    @property
    def is_block(self):
        return self.base_in_memory is not None

    def relative(self, raw_value):
        """Offset of raw_value inside this block, or None if outside it."""
        if self.base_in_memory is None:
            return None
        rel = raw_value - self.base_in_memory
        if 0 <= rel < len(self.data):
            return rel
        return None


class RelocatedAddressSpace:
    """Aggregates block and pointer-file segments and resolves raw pointers."""

    def __init__(self):
        self._segments: Dict[str, Segment] = {}
        self._block_buckets: Dict[int, List[Segment]] = {}
        self._block_list: List[Segment] = []

    # --- Construction ---

    def add_sna_blocks(self, sna, table, source_tag):
        """Register every block of an SNA image as a block segment.

        table supplies the block-local pointer maps; it may be None.
        """
        if sna is None:
            return
        for index, block in enumerate(sna.blocks):
            segment_id = block_segment_id(source_tag, block.module, block.block_id, index)
            segment = Segment(
                segment_id,
                block.data,
                base_in_memory=block.base_in_memory,
                block_pointer_map=_build_block_pointer_map(table, block.module, block.block_id),
            )
            self._segments[segment_id] = segment
            self._block_list.append(segment)
            self._block_buckets.setdefault(block.key, []).append(segment)

    def add_pointer_file(self, segment_id, data, table):
        """Register a GPT/PTX pointer file. Empty or missing files are ignored."""
        if not data:
            return
        file_map = _build_pointer_file_map(data, table)
        if file_map is None and table is not None:
            _log.debug("%s: no relocation entries matched pointer file values", segment_id)
        self._segments[segment_id] = Segment(segment_id, data, file_pointer_map=file_map)

    # --- Queries ---

    @property
    def segment_ids(self):
        return list(self._segments)

    @property
    def block_segment_count(self):
        return len(self._block_list)

    def has_segment(self, segment_id):
        return segment_id in self._segments

    def get_segment(self, segment_id) -> Optional[Segment]:
        return self._segments.get(segment_id)

    def segment_start(self, segment_id) -> Optional[Address]:
        if segment_id in self._segments:
            return Address(segment_id, 0)
        return None

    def create_reader(self, address):
        return MemoryReader(self, address)

    def read_slice(self, address, length):
        """Return length bytes at address, or None if out of range."""
        segment = self._segments.get(address.segment_id)
        if segment is None:
            return None
        if address.offset < 0 or length < 0 or address.offset + length > len(segment.data):
            return None
        return segment.data[address.offset:address.offset + length]

    # --- Resolution ---

    def resolve_pointer(self, field_address, raw_value) -> Optional[Address]:
        """Resolve a raw pointer through the relocation maps only."""
        if raw_value in NULL_POINTER_VALUES:
            return None
        segment = self._segments.get(field_address.segment_id)
        if segment is None:
            return None

        if segment.block_pointer_map is not None and segment.base_in_memory is not None:
            memory_address = (segment.base_in_memory + field_address.offset) & 0xFFFFFFFF
            info = segment.block_pointer_map.get(memory_address)
            if info is not None:
                return self._resolve_target(info, raw_value)

        if segment.file_pointer_map is not None:
            info = segment.file_pointer_map.get(field_address.offset)
            if info is not None:
                return self._resolve_target(info, raw_value)

        return None

    def resolve_raw_address(self, raw_value) -> Optional[Address]:
        """First block segment in load order whose runtime range contains raw_value."""
        if raw_value in NULL_POINTER_VALUES:
            return None
        for segment in self._block_list:
            rel = segment.relative(raw_value)
            if rel is not None:
                return Address(segment.segment_id, rel)
        return None

    def _resolve_target(self, info, raw_value):
        candidates = self._block_buckets.get(relocation_key(info.module, info.block_id))
        if not candidates:
            return None
        best = None
        best_rel = -1
        best_len = -1
        for candidate in candidates:
            rel = candidate.relative(raw_value)
            if rel is None:
                continue
            if len(candidate.data) > best_len:
                best, best_rel, best_len = candidate, rel, len(candidate.data)
        if best is None:
            return None
        return Address(best.segment_id, best_rel)


def block_segment_id(source_tag, module, block_id, index):
    return f"{source_tag}:block:{module:02X}:{block_id:02X}:{index:04X}"


def _build_block_pointer_map(table, module, block_id):
    if table is None:
        return None
    block = table.get_block(module, block_id)
    if block is None or not block.pointers:
        return None
    result = {}
    for pointer in block.pointers:
        # first entry for an address wins
        result.setdefault(pointer.offset_in_memory, pointer)
    return result


def _build_pointer_file_map(data, table):
    if table is None or len(data) < 4:
        return None
    lookup = {}
    for pointer in table.iter_pointers():
        lookup.setdefault(pointer.offset_in_memory, pointer)
    if not lookup:
        return None

    result = {}
    word_count = len(data) // 4
    for index, (value,) in enumerate(struct.iter_unpack('<I', data[:word_count * 4])):
        info = lookup.get(value)
        if info is not None:
            result[index * 4] = info
    return result or None
