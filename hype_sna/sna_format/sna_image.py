"""SNA image reader.

An SNA file is a sequence of memory blocks as they existed in the original
game's address space. Each block record:

    uint8   module
    uint8   block_id
    int32   base_in_memory      (-1 marks an unused slot with no further data)
    uint32  unk2
    uint32  unk3
    uint32  max_pos_minus_9
    uint32  size
    payload                     (compressed framing, see lzo_payload, or
                                 `size` raw bytes when compression is off)

Blocks are keyed by (module, block_id); the same key may appear in both the
shared fix image and a level image.
"""

import logging
import struct
from dataclasses import dataclass
from typing import Dict, List, Optional

from .lzo_payload import CompressedBlockHeader, decompress_lzo
from .sna_constants import (
    COMPRESSED_HEADER_SIZE, SNA_BLOCK_HEADER_SIZE, SNA_BLOCK_PREFIX_SIZE,
    SNA_UNUSED_BASE, relocation_key,
)
from ..errors import SnaFormatError

_log = logging.getLogger("hype_sna.sna")

_INT_MAX = 0x7FFFFFFF


@dataclass
class SnaBlock:
    module: int
    block_id: int
    base_in_memory: int
    size: int
    data: bytes

    @property
    def key(self):
        return relocation_key(self.module, self.block_id)

    @property
    def unsigned_base(self):
        return self.base_in_memory & 0xFFFFFFFF

    def contains(self, raw_address):
        return 0 <= raw_address - self.unsigned_base < len(self.data)


class SnaImage:
    """Parsed SNA image.

    Usage:
        image = SnaImage.load("path/to/level.sna")
        for block in image.blocks:
            ...
    """

    def __init__(self, path, blocks, saw_compressed_blocks=False):
        self.path = path
        self.blocks: List[SnaBlock] = list(blocks)
        self.saw_compressed_blocks = saw_compressed_blocks
        self._lookup: Dict[int, SnaBlock] = {}
        for block in self.blocks:
            self._lookup[block.key] = block

    def __repr__(self):
        return f"SnaImage({self.path!r}, blocks={len(self.blocks)})"

    def get_block(self, module, block_id) -> Optional[SnaBlock]:
        return self._lookup.get(relocation_key(module, block_id))

    @classmethod
    def load(cls, path, sna_compression=True):
        """Read and parse an SNA file."""
        if not path:
            raise ValueError("SNA path is empty")
        with open(path, "rb") as f:
            data = f.read()
        return cls.parse(data, str(path), sna_compression)

    @classmethod
    def parse(cls, data, path="<memory>", sna_compression=True):
        """Parse SNA bytes into blocks.

        Raises SnaFormatError (or DecompressionError) on truncated headers,
        payloads running past the end of the file and short block data.
        """
        size_total = len(data)
        pos = 0
        blocks = []
        saw_compressed = False

        while pos < size_total:
            if pos + SNA_BLOCK_PREFIX_SIZE > size_total:
                break
            module, block_id, base = struct.unpack_from('<BBi', data, pos)
            pos += SNA_BLOCK_PREFIX_SIZE
            if base == SNA_UNUSED_BASE:
                continue

            if pos + SNA_BLOCK_HEADER_SIZE > size_total:
                raise SnaFormatError(f"Invalid SNA block header in '{path}'")
            _unk2, _unk3, _max_pos, size = struct.unpack_from('<4I', data, pos)
            pos += SNA_BLOCK_HEADER_SIZE
            if size > _INT_MAX:
                raise SnaFormatError(f"SNA block too large in '{path}'")

            if size == 0:
                block_data = b""
            elif sna_compression:
                header = CompressedBlockHeader.read(data, pos)
                if header is None:
                    raise SnaFormatError(f"Invalid compressed SNA block in '{path}'")
                if not header.sizes_valid:
                    raise SnaFormatError(f"Invalid compressed SNA size in '{path}'")
                pos += COMPRESSED_HEADER_SIZE
                if pos + header.compressed_size > size_total:
                    raise SnaFormatError(
                        f"SNA compressed payload exceeds file length in '{path}'")
                payload = bytes(data[pos:pos + header.compressed_size])
                pos += header.compressed_size
                if header.is_compressed:
                    block_data = decompress_lzo(payload, header.decompressed_size)
                    saw_compressed = True
                else:
                    block_data = payload
            else:
                if pos + size > size_total:
                    raise SnaFormatError(f"SNA block exceeds file length in '{path}'")
                block_data = bytes(data[pos:pos + size])
                pos += size

            if len(block_data) < size:
                raise SnaFormatError(f"SNA block data is truncated in '{path}'")
            block_data = block_data[:size]

            _log.debug("%s: block %02X:%02X base=0x%08X size=%d",
                       path, module, block_id, base & 0xFFFFFFFF, size)
            blocks.append(SnaBlock(module, block_id, base, size, block_data))

        return cls(path, blocks, saw_compressed)
