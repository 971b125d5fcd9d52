"""Relocation health report for levels.

Independently of the graph decoders, checks how many relocation entries of
each table actually land inside a loaded block:

SNA pointers
    For every pointer of fix.rtb (+ fixlvl.rtb) and <level>.rtb, read the
    dword at offset_in_memory inside its source block and check that it
    falls inside the target (module, block id).
GPT / PTX pointers
    For every 4-byte word of a pointer file that matches a relocation entry
    of the companion RTP / RTT table, check the same containment.

Level blocks override fix blocks with the same key in the target catalog.
"""

import logging
import struct
from dataclasses import dataclass, field
from typing import List

from .level_files import (
    level_file_path, levels_root_for, load_fix_files, load_level_files,
)
from ..diagnostics import Diagnostics
from ..profiles import resolve_profile
from ..sna_format.relocation_table import RelocationTable

_log = logging.getLogger("hype_sna.level")


@dataclass
class PointerCounts:
    resolved: int = 0
    unresolved: int = 0

    @property
    def total(self):
        return self.resolved + self.unresolved


@dataclass
class LevelInspection:
    level_name: str
    succeeded: bool
    fix_sna_block_count: int = 0
    level_sna_block_count: int = 0
    fix_relocation_block_count: int = 0
    level_relocation_block_count: int = 0
    sna_pointers: PointerCounts = field(default_factory=PointerCounts)
    gpt_pointers: PointerCounts = field(default_factory=PointerCounts)
    ptx_pointers: PointerCounts = field(default_factory=PointerCounts)
    diagnostics: List = field(default_factory=list)

    def summary(self):
        status = "ok" if self.succeeded else "FAILED"
        return (f"{self.level_name}: {status} "
                f"blocks fix={self.fix_sna_block_count} lvl={self.level_sna_block_count} "
                f"sna={self.sna_pointers.resolved}/{self.sna_pointers.total} "
                f"gpt={self.gpt_pointers.resolved}/{self.gpt_pointers.total} "
                f"ptx={self.ptx_pointers.resolved}/{self.ptx_pointers.total}")


def inspect_levels(levels, profile=None, levels_root=None) -> List[LevelInspection]:
    """Inspect several levels sharing one set of fix files."""
    profile = resolve_profile(profile)
    levels = list(levels)
    if not levels:
        return []
    if levels_root is None:
        levels_root = levels_root_for(levels[0])
    fix_diagnostics = Diagnostics("Fix")
    fix = _load_fix(levels_root, fix_diagnostics, profile)
    return [inspect_level(level, profile, fix, fix_diagnostics) for level in levels]


def inspect_level(level, profile=None, fix=None, fix_diagnostics=None) -> LevelInspection:
    profile = resolve_profile(profile)
    diagnostics = Diagnostics("Level")
    if fix is None:
        fix_diagnostics = Diagnostics("Fix")
        fix = _load_fix(levels_root_for(level), fix_diagnostics, profile)
    if fix_diagnostics is not None:
        diagnostics.extend(fix_diagnostics)

    _report_missing_level_files(level, diagnostics)
    files = load_level_files(level, diagnostics, profile, "Level")

    merged_fix_rtb = RelocationTable.merge(fix.rtb, files.fixlvl_rtb)
    catalog = _build_block_catalog(fix.sna, files.sna)

    sna_counts = PointerCounts()
    _check_block_pointers(merged_fix_rtb, fix.sna, catalog, "FixRtb", diagnostics, sna_counts)
    _check_block_pointers(files.rtb, files.sna, catalog, "LevelRtb", diagnostics, sna_counts)

    gpt_counts = PointerCounts()
    _check_pointer_file(fix.gpt, fix.rtp, catalog, "FixGpt", diagnostics, gpt_counts)
    _check_pointer_file(files.gpt, files.rtp, catalog, "LevelGpt", diagnostics, gpt_counts)

    ptx_counts = PointerCounts()
    _check_pointer_file(fix.ptx, fix.rtt, catalog, "FixPtx", diagnostics, ptx_counts)
    _check_pointer_file(files.ptx, files.rtt, catalog, "LevelPtx", diagnostics, ptx_counts)

    result = LevelInspection(
        level_name=level.name,
        succeeded=not diagnostics.has_errors,
        fix_sna_block_count=len(fix.sna.blocks) if fix.sna else 0,
        level_sna_block_count=len(files.sna.blocks) if files.sna else 0,
        fix_relocation_block_count=len(merged_fix_rtb.pointer_blocks) if merged_fix_rtb else 0,
        level_relocation_block_count=len(files.rtb.pointer_blocks) if files.rtb else 0,
        sna_pointers=sna_counts,
        gpt_pointers=gpt_counts,
        ptx_pointers=ptx_counts,
        diagnostics=diagnostics.items,
    )
    _log.info(result.summary())
    return result


def _load_fix(levels_root, diagnostics, profile):
    fix = load_fix_files(levels_root, diagnostics, profile, "Fix")
    if fix.paths.get("sna") is None:
        diagnostics.error("Missing fix.sna in levels root.", "Fix")
    if fix.paths.get("rtb") is None:
        diagnostics.error("Missing fix.rtb in levels root.", "Fix")
    return fix


def _report_missing_level_files(level, diagnostics):
    name = level.name
    if level_file_path(level, ".sna") is None:
        diagnostics.error(f"Missing level SNA file for '{name}'.")
    if level_file_path(level, ".rtb") is None:
        diagnostics.error(f"Missing level RTB file for '{name}'.")
    if level_file_path(level, ".rtp") is None:
        diagnostics.warning(
            f"Missing level RTP pointer file for '{name}'. GPT relocation checks disabled.")
    if level_file_path(level, ".rtt") is None:
        diagnostics.warning(
            f"Missing level RTT pointer file for '{name}'. PTX relocation checks disabled.")


def _build_block_catalog(fix_sna, level_sna):
    catalog = {}
    for image in (fix_sna, level_sna):
        if image is None:
            continue
        for block in image.blocks:
            catalog[block.key] = block
    return catalog


def _target_contains(catalog, pointer, value):
    target = catalog.get(pointer.target_key)
    return target is not None and target.contains(value)


def _check_block_pointers(table, source_sna, catalog, phase, diagnostics, counts):
    if table is None or source_sna is None:
        return
    for pointer_block in table.pointer_blocks:
        source = source_sna.get_block(pointer_block.module, pointer_block.block_id)
        if source is None:
            counts.unresolved += len(pointer_block.pointers)
            diagnostics.warning(
                f"Source block ({pointer_block.module},{pointer_block.block_id}) "
                f"was not found in SNA.", phase)
            continue
        for pointer in pointer_block.pointers:
            rel = pointer.offset_in_memory - source.unsigned_base
            if rel < 0 or rel + 4 > len(source.data):
                counts.unresolved += 1
                continue
            value = struct.unpack_from('<I', source.data, rel)[0]
            if _target_contains(catalog, pointer, value):
                counts.resolved += 1
            else:
                counts.unresolved += 1


def _check_pointer_file(data, table, catalog, phase, diagnostics, counts):
    if data is None or table is None:
        return
    if len(data) < 4:
        diagnostics.warning("Pointer file is too small.", phase)
        return

    lookup = {}
    for pointer in table.iter_pointers():
        lookup.setdefault(pointer.offset_in_memory, pointer)

    matched = 0
    word_count = len(data) // 4
    for (value,) in struct.iter_unpack('<I', data[:word_count * 4]):
        pointer = lookup.get(value)
        if pointer is None:
            continue
        matched += 1
        if _target_contains(catalog, pointer, value):
            counts.resolved += 1
        else:
            counts.unresolved += 1

    if matched == 0:
        diagnostics.warning("No relocation entries matched pointer file values.", phase)
