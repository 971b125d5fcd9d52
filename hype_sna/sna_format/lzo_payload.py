"""Length-prefixed LZO payload framing shared by SNA images and relocation tables.

Layout (little-endian, 20 bytes followed by the payload):
    uint32  is_compressed
    uint32  compressed_size
    uint32  compressed_checksum     (advisory, never validated)
    uint32  decompressed_size
    uint32  decompressed_checksum   (advisory, never validated)
    byte[compressed_size] payload   (raw LZO1X stream when is_compressed != 0)
"""

import struct
from dataclasses import dataclass

import lzo

from .sna_constants import COMPRESSED_HEADER_SIZE
from ..errors import DecompressionError

_INT_MAX = 0x7FFFFFFF


@dataclass
class CompressedBlockHeader:
    is_compressed: bool
    compressed_size: int
    compressed_checksum: int
    decompressed_size: int
    decompressed_checksum: int

    @classmethod
    def read(cls, data, pos):
        """Read a header at pos. Returns None when fewer than 20 bytes remain."""
        if pos + COMPRESSED_HEADER_SIZE > len(data):
            return None
        flag, csize, cchk, dsize, dchk = struct.unpack_from('<5I', data, pos)
        return cls(flag != 0, csize, cchk, dsize, dchk)

    @property
    def sizes_valid(self):
        return self.compressed_size <= _INT_MAX and self.decompressed_size <= _INT_MAX


def decompress_lzo(payload, decompressed_size):
    """Decompress a raw (headerless) LZO1X payload.

    Raises DecompressionError when the stream is corrupt.
    """
    if decompressed_size == 0:
        return b""
    try:
        return lzo.decompress(bytes(payload), False, decompressed_size)
    except lzo.error as exc:
        raise DecompressionError(f"LZO decompression failed: {exc}") from exc


def compress_lzo(data):
    """Compress data as a raw LZO1X payload (no python-lzo header)."""
    return lzo.compress(bytes(data), 1, False)


def build_compressed_block(data, compress=True):
    """Frame data with the 20-byte payload header; used by tooling and tests."""
    payload = compress_lzo(data) if compress else bytes(data)
    header = struct.pack('<5I', 1 if compress else 0, len(payload), 0, len(data), 0)
    return header + payload
