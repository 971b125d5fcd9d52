"""Builds the relocated address space for one level."""

import logging
from dataclasses import dataclass

from .level_files import levels_root_for, load_fix_files, load_level_files
from ..memory.address import Address
from ..memory.address_space import RelocatedAddressSpace
from ..profiles import resolve_profile
from ..sna_format.relocation_table import RelocationTable
from ..sna_format.sna_constants import (
    SEGMENT_FIX_GPT, SEGMENT_FIX_PTX, SEGMENT_LVL_GPT, SEGMENT_LVL_PTX,
    SOURCE_FIX, SOURCE_LEVEL,
)

_log = logging.getLogger("hype_sna.level")


@dataclass
class ParseContext:
    level_name: str
    space: RelocatedAddressSpace
    level_gpt_address: Address
    profile: object


def build_parse_context(level, diagnostics, profile=None):
    """Load the fix and level files and assemble the address space.

    Returns a ParseContext, or None after recording an Error diagnostic when
    a required artifact (level SNA/RTB/GPT) is missing or the level GPT
    segment cannot be mapped.
    """
    profile = resolve_profile(profile)
    levels_root = levels_root_for(level)
    if levels_root is None:
        diagnostics.error("Could not resolve levels root from level directory.", "Level")
        return None

    fix = load_fix_files(levels_root, diagnostics, profile, "Fix")
    files = load_level_files(level, diagnostics, profile, "Level")

    if fix.sna is None and fix.paths.get("sna") is None:
        diagnostics.warning("Missing fix.sna in levels root; shared blocks unavailable.", "Fix")
    if files.rtp is None and files.paths.get("rtp") is None:
        diagnostics.warning(
            f"Missing level RTP pointer file for '{level.name}'. GPT relocation checks disabled.",
            "Level")
    if files.rtt is None and files.paths.get("rtt") is None:
        diagnostics.warning(
            f"Missing level RTT pointer file for '{level.name}'. PTX relocation checks disabled.",
            "Level")

    missing = files.missing_required()
    if missing:
        diagnostics.error(
            "Level is missing required parse files (SNA/RTB/GPT): " + ", ".join(missing) + ".",
            "Level")
        return None

    merged_fix_rtb = RelocationTable.merge(fix.rtb, files.fixlvl_rtb)
    space = RelocatedAddressSpace()
    space.add_sna_blocks(fix.sna, merged_fix_rtb, SOURCE_FIX)
    space.add_sna_blocks(files.sna, files.rtb, SOURCE_LEVEL)
    space.add_pointer_file(SEGMENT_FIX_GPT, fix.gpt, fix.rtp)
    space.add_pointer_file(SEGMENT_LVL_GPT, files.gpt, files.rtp)
    space.add_pointer_file(SEGMENT_FIX_PTX, fix.ptx, fix.rtt)
    space.add_pointer_file(SEGMENT_LVL_PTX, files.ptx, files.rtt)

    entry = space.segment_start(SEGMENT_LVL_GPT)
    if entry is None:
        diagnostics.error("Could not map level GPT segment.", "Level")
        return None

    _log.debug("%s: %d block segments, segments=%s",
               level.name, space.block_segment_count, space.segment_ids)
    return ParseContext(level.name, space, entry, profile)
