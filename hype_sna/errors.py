"""Exception types raised by the SNA loaders and the memory reader.

Everything derives from ValueError so callers that only care about
"bad data" can keep catching ValueError the same way they would for a
struct or decompression failure.
"""


class SnaError(ValueError):
    """Base class for malformed or unreadable level data."""


class SnaFormatError(SnaError):
    """An SNA image has an invalid or truncated block layout."""


class RelocationError(SnaError):
    """A relocation table (RTB/RTP/RTT) matched neither known header layout."""


class DecompressionError(SnaError):
    """An LZO block payload could not be decompressed."""


class OutOfBoundsError(SnaError):
    """A memory read ran past the end of its segment.

    Kept distinct from an unresolved pointer, which is reported as None.
    """

    def __init__(self, address, length):
        self.address = address
        self.length = length
        super().__init__(f"Read out of bounds at {address} (+{length})")
