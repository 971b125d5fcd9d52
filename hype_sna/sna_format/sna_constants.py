"""Constants for the OpenSpace/Montreal SNA, relocation and pointer files."""

# Relocation file kinds. Only RTB, RTP and RTT are read by the loader;
# the rest are listed so file type lookups stay complete.
RELOCATION_RTB = 0      # SNA block pointers
RELOCATION_RTP = 1      # GPT pointer file
RELOCATION_RTS = 2
RELOCATION_RTT = 3      # PTX pointer file
RELOCATION_RTL = 4
RELOCATION_RTD = 5
RELOCATION_RTG = 6
RELOCATION_RTV = 7

RELOCATION_EXTENSIONS = {
    ".rtb": RELOCATION_RTB,
    ".rtp": RELOCATION_RTP,
    ".rts": RELOCATION_RTS,
    ".rtt": RELOCATION_RTT,
    ".rtl": RELOCATION_RTL,
    ".rtd": RELOCATION_RTD,
    ".rtg": RELOCATION_RTG,
    ".rtv": RELOCATION_RTV,
}

# SNA block header: module, block id, base address (-1 = unused slot)
SNA_BLOCK_PREFIX_SIZE = 6
# unk2, unk3, maxPosMinus9, size
SNA_BLOCK_HEADER_SIZE = 16
SNA_UNUSED_BASE = -1

# Compressed payload header: isCompressed, compressedSize, compressedChecksum,
# decompressedSize, decompressedChecksum (all uint32)
COMPRESSED_HEADER_SIZE = 20

# Relocation table block header: module, block id, pointer count
RELOCATION_BLOCK_HEADER_SIZE = 6
# offsetInMemory (u32), module, blockId, byte6, byte7
RELOCATION_POINTER_SIZE = 8

# Raw 32-bit values that always mean "no pointer"
NULL_POINTER_VALUES = (0x00000000, 0xFFFFFFFF)

# Pointer-file segment names in the relocated address space
SEGMENT_FIX_GPT = "fix_gpt"
SEGMENT_LVL_GPT = "lvl_gpt"
SEGMENT_FIX_PTX = "fix_ptx"
SEGMENT_LVL_PTX = "lvl_ptx"

# Block segment source tags
SOURCE_FIX = "fix"
SOURCE_LEVEL = "lvl"

# Level file extensions
LEVEL_EXTENSIONS = (".sna", ".rtb", ".rtp", ".rtt", ".gpt", ".ptx")
REQUIRED_LEVEL_EXTENSIONS = (".sna", ".rtb", ".gpt")
FIX_BASENAME = "fix"
FIXLVL_RTB = "fixlvl.rtb"


def relocation_key(module, block_id):
    """Pack (module, block id) into the 16-bit key used by relocation lookups."""
    return ((module & 0xFF) << 8) | (block_id & 0xFF)
