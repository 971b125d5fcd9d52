"""Reads the root SuperObject addresses from the level GPT.

GPT header at the start of lvl_gpt:
    ptr, ptr, ptr       (unused here)
    uint32
    ptr actual_world
    ptr dynamic_world
    ptr father_sector
    uint32
"""

from ..diagnostics import DECODE_ERRORS


def read_world_roots(space, level_gpt_address, diagnostics):
    """Unique, order-preserving list of resolvable root SuperObjects.

    A read failure keeps the roots found so far and records a diagnostic.
    """
    roots = []
    try:
        reader = space.create_reader(level_gpt_address)
        reader.read_pointer()
        reader.read_pointer()
        reader.read_pointer()
        reader.read_u32()
        for _ in range(3):
            address = reader.read_pointer()
            if address is not None and address not in roots:
                roots.append(address)
        reader.read_u32()
    except DECODE_ERRORS as exc:
        diagnostics.error(f"Failed to read GPT world roots: {exc}", "Level")
    return roots
