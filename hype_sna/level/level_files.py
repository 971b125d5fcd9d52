"""Locating and loading the companion files of a level.

Shared files live in the levels root (the parent of every level directory):
    fix.sna  fix.rtb  fix.rtp  fix.rtt  fix.gpt  fix.ptx
Per-level files live in the level directory:
    <level>.sna  <level>.rtb  <level>.rtp  <level>.rtt  <level>.gpt  <level>.ptx
    fixlvl.rtb   (optional override merged into fix.rtb)

Missing files load as None silently; the callers decide whether a missing
file is an error or a warning. Files that exist but fail to parse are
reported here as Error diagnostics.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, Optional

from ..diagnostics import DECODE_ERRORS
from ..sna_format.relocation_table import RelocationTable
from ..sna_format.sna_constants import FIX_BASENAME, FIXLVL_RTB
from ..sna_format.sna_image import SnaImage

_log = logging.getLogger("hype_sna.level")


def find_path(directory, file_name) -> Optional[str]:
    """Case-insensitive lookup of file_name inside directory."""
    if not directory or not os.path.isdir(directory):
        return None
    wanted = file_name.lower()
    for entry in sorted(os.listdir(directory)):
        if entry.lower() == wanted:
            path = os.path.join(directory, entry)
            if os.path.isfile(path):
                return path
    return None


def levels_root_for(level) -> Optional[str]:
    directory = os.path.normpath(os.path.abspath(level.directory))
    parent = os.path.dirname(directory)
    if not parent or parent == directory:
        return None
    return parent


def _exists(path):
    return bool(path) and os.path.isfile(path)


def try_load_sna(path, tag, diagnostics, sna_compression=True, phase=None):
    if not _exists(path):
        return None
    try:
        return SnaImage.load(path, sna_compression)
    except DECODE_ERRORS as exc:
        diagnostics.error(f"Failed to parse {tag}: {exc}", phase)
        return None


def try_load_relocation(path, tag, diagnostics, sna_compression=True, phase=None):
    if not _exists(path):
        return None
    try:
        return RelocationTable.load(path, sna_compression)
    except DECODE_ERRORS as exc:
        diagnostics.error(f"Failed to parse {tag}: {exc}", phase)
        return None


def try_load_bytes(path, tag, diagnostics, phase=None):
    if not _exists(path):
        return None
    try:
        with open(path, "rb") as f:
            return f.read()
    except OSError as exc:
        diagnostics.error(f"Failed to read {tag}: {exc}", phase)
        return None


@dataclass
class FixFiles:
    """Shared fix.* artifacts of one levels root."""
    levels_root: Optional[str]
    paths: Dict[str, Optional[str]] = field(default_factory=dict)
    sna: Optional[SnaImage] = None
    rtb: Optional[RelocationTable] = None
    rtp: Optional[RelocationTable] = None
    rtt: Optional[RelocationTable] = None
    gpt: Optional[bytes] = None
    ptx: Optional[bytes] = None


@dataclass
class LevelFiles:
    """Per-level artifacts."""
    level_name: str
    paths: Dict[str, Optional[str]] = field(default_factory=dict)
    sna: Optional[SnaImage] = None
    rtb: Optional[RelocationTable] = None
    fixlvl_rtb: Optional[RelocationTable] = None
    rtp: Optional[RelocationTable] = None
    rtt: Optional[RelocationTable] = None
    gpt: Optional[bytes] = None
    ptx: Optional[bytes] = None

    def missing_required(self):
        """Names of required artifacts that are absent or failed to load."""
        missing = []
        for ext, value in ((".sna", self.sna), (".rtb", self.rtb), (".gpt", self.gpt)):
            if value is None:
                missing.append(f"{self.level_name}{ext}")
        return missing


def load_fix_files(levels_root, diagnostics, profile, phase=None) -> FixFiles:
    compression = profile.sna_compression
    paths = {ext: find_path(levels_root, f"{FIX_BASENAME}.{ext}")
             for ext in ("sna", "rtb", "rtp", "rtt", "gpt", "ptx")}
    fix = FixFiles(levels_root=levels_root, paths=paths)
    fix.sna = try_load_sna(paths["sna"], "fix.sna", diagnostics, compression, phase)
    fix.rtb = try_load_relocation(paths["rtb"], "fix.rtb", diagnostics, compression, phase)
    fix.rtp = try_load_relocation(paths["rtp"], "fix.rtp", diagnostics, compression, phase)
    fix.rtt = try_load_relocation(paths["rtt"], "fix.rtt", diagnostics, compression, phase)
    fix.gpt = try_load_bytes(paths["gpt"], "fix.gpt", diagnostics, phase)
    fix.ptx = try_load_bytes(paths["ptx"], "fix.ptx", diagnostics, phase)
    _log.debug("fix files in %s: %s", levels_root,
               {k: bool(v) for k, v in paths.items()})
    return fix


def level_file_path(level, extension):
    path = level.level_file(extension)
    if path is None:
        path = find_path(level.directory, f"{level.name}{extension}")
    return path


def load_level_files(level, diagnostics, profile, phase=None) -> LevelFiles:
    compression = profile.sna_compression
    name = level.name
    paths = {ext: level_file_path(level, f".{ext}")
             for ext in ("sna", "rtb", "rtp", "rtt", "gpt", "ptx")}
    paths["fixlvl"] = level.core_file(FIXLVL_RTB) or find_path(level.directory, FIXLVL_RTB)

    files = LevelFiles(level_name=name, paths=paths)
    files.sna = try_load_sna(paths["sna"], f"{name}.sna", diagnostics, compression, phase)
    files.rtb = try_load_relocation(paths["rtb"], f"{name}.rtb", diagnostics, compression, phase)
    files.fixlvl_rtb = try_load_relocation(paths["fixlvl"], FIXLVL_RTB, diagnostics, compression, phase)
    files.rtp = try_load_relocation(paths["rtp"], f"{name}.rtp", diagnostics, compression, phase)
    files.rtt = try_load_relocation(paths["rtt"], f"{name}.rtt", diagnostics, compression, phase)
    files.gpt = try_load_bytes(paths["gpt"], f"{name}.gpt", diagnostics, phase)
    files.ptx = try_load_bytes(paths["ptx"], f"{name}.ptx", diagnostics, phase)
    return files
