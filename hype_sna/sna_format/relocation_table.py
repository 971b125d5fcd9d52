"""Relocation table reader (RTB / RTP / RTT).

A relocation table lists, per source block, which original runtime
addresses hold pointers and which (module, block id) each pointer targets.

File layout (little-endian):
    uint8   block_count
    uint32  extra header dword      (only in some files, see below)
    block_count x:
        uint8   module
        uint8   block_id
        uint32  pointer_count
        if pointer_count > 0:
            compressed framing (see lzo_payload) whose payload holds the
            pointer records, or pointer_count raw records when the file
            does not use compressed framing

Pointer record (8 bytes):
    uint32  offset_in_memory
    uint8   module
    uint8   block_id
    uint8   byte6
    uint8   byte7

The extra header dword is a known file variant with no flag announcing it,
so the layout without it is tried first and the layout with it second.
"""

import logging
import struct
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .lzo_payload import CompressedBlockHeader, decompress_lzo
from .sna_constants import (
    RELOCATION_BLOCK_HEADER_SIZE, RELOCATION_POINTER_SIZE, relocation_key,
)
from ..errors import DecompressionError, RelocationError

_log = logging.getLogger("hype_sna.sna")


@dataclass(frozen=True)
class PointerInfo:
    """One patch site: the dword at offset_in_memory points into (module, block_id)."""
    offset_in_memory: int
    module: int
    block_id: int
    byte6: int = 0
    byte7: int = 0

    @property
    def target_key(self):
        return relocation_key(self.module, self.block_id)


@dataclass
class PointerBlock:
    module: int
    block_id: int
    pointers: List[PointerInfo] = field(default_factory=list)

    @property
    def key(self):
        return relocation_key(self.module, self.block_id)


class RelocationTable:
    """Parsed relocation table.

    Usage:
        table = RelocationTable.load("path/to/level.rtb")
        block = table.get_block(module, block_id)
    """

    def __init__(self, path, pointer_blocks, saw_compressed_blocks=False):
        self.path = path
        self.pointer_blocks = list(pointer_blocks)
        self.saw_compressed_blocks = saw_compressed_blocks
        self._lookup: Dict[int, PointerBlock] = {}
        for block in self.pointer_blocks:
            self._lookup[block.key] = block

    def __repr__(self):
        return f"RelocationTable({self.path!r}, blocks={len(self.pointer_blocks)})"

    def get_block(self, module, block_id) -> Optional[PointerBlock]:
        return self._lookup.get(relocation_key(module, block_id))

    @property
    def pointer_count(self):
        return sum(len(b.pointers) for b in self.pointer_blocks)

    def iter_pointers(self):
        for block in self.pointer_blocks:
            yield from block.pointers

    @classmethod
    def load(cls, path, sna_compression=True):
        """Read and parse a relocation table file."""
        if not path:
            raise ValueError("Relocation table path is empty")
        with open(path, "rb") as f:
            data = f.read()
        return cls.parse(data, str(path), sna_compression)

    @classmethod
    def parse(cls, data, path="<memory>", sna_compression=True):
        """Parse relocation table bytes.

        Raises RelocationError if neither header layout fits the data.
        """
        for extra_dword in (False, True):
            table = cls._try_layout(data, path, sna_compression, extra_dword)
            if table is not None:
                if extra_dword:
                    _log.debug("%s: parsed with extra header dword", path)
                return table
        raise RelocationError(f"Could not parse relocation table '{path}'")

    @classmethod
    def _try_layout(cls, data, path, sna_compression, extra_dword):
        size = len(data)
        if size < 1:
            return None
        count = data[0]
        pos = 1
        if extra_dword:
            if pos + 4 > size:
                return None
            pos += 4

        saw_compressed = False
        blocks = []
        for _ in range(count):
            if pos + RELOCATION_BLOCK_HEADER_SIZE > size:
                return None
            module, block_id, pointer_count = struct.unpack_from('<BBI', data, pos)
            pos += RELOCATION_BLOCK_HEADER_SIZE
            pointers = []

            if pointer_count > 0:
                if sna_compression:
                    header = CompressedBlockHeader.read(data, pos)
                    if header is None or not header.sizes_valid:
                        return None
                    pos += 20
                    if pos + header.compressed_size > size:
                        return None
                    payload = data[pos:pos + header.compressed_size]
                    pos += header.compressed_size
                    if header.is_compressed:
                        try:
                            payload = decompress_lzo(payload, header.decompressed_size)
                        except DecompressionError:
                            return None
                        saw_compressed = True
                    if not _read_pointer_records(payload, 0, pointer_count, pointers):
                        return None
                else:
                    if pos + pointer_count * RELOCATION_POINTER_SIZE > size:
                        return None
                    _read_pointer_records(data, pos, pointer_count, pointers)
                    pos += pointer_count * RELOCATION_POINTER_SIZE

            blocks.append(PointerBlock(module, block_id, pointers))

        return cls(path, blocks, saw_compressed)

    @classmethod
    def merge(cls, *tables):
        """Union several tables keyed by (module, block id).

        Pointer lists of a key present in several tables are concatenated in
        argument order; keys keep their first-seen order. None entries are
        skipped. Returns None when no table contributes a block.
        """
        ordered = []
        merged: Dict[int, PointerBlock] = {}
        paths = []
        saw_compressed = False
        for table in tables:
            if table is None:
                continue
            paths.append(table.path)
            saw_compressed = saw_compressed or table.saw_compressed_blocks
            for block in table.pointer_blocks:
                target = merged.get(block.key)
                if target is None:
                    target = PointerBlock(block.module, block.block_id, [])
                    merged[block.key] = target
                    ordered.append(target)
                target.pointers.extend(block.pointers)

        if not ordered:
            return None
        return cls("+".join(paths) if paths else "merged", ordered, saw_compressed)


def _read_pointer_records(data, pos, count, out):
    """Append count pointer records starting at pos. False if data runs out."""
    for _ in range(count):
        if pos + RELOCATION_POINTER_SIZE > len(data):
            return False
        offset, module, block_id, b6, b7 = struct.unpack_from('<IBBBB', data, pos)
        out.append(PointerInfo(offset, module, block_id, b6, b7))
        pos += RELOCATION_POINTER_SIZE
    return True
