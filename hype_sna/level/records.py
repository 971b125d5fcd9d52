"""Level and animation records supplied by the asset-location layer."""

import os
from dataclasses import dataclass, field
from typing import Dict, Optional

from ..sna_format.sna_constants import FIXLVL_RTB, LEVEL_EXTENSIONS


@dataclass
class LevelRecord:
    """One level as located on disk.

    core_files maps a file name (e.g. "brigand.sna", "fixlvl.rtb") to its
    full path. Lookups are case-insensitive.
    """
    name: str
    directory: str
    core_files: Dict[str, str] = field(default_factory=dict)
    language_files: Dict[str, str] = field(default_factory=dict)

    def core_file(self, file_name) -> Optional[str]:
        path = self.core_files.get(file_name)
        if path is None:
            wanted = file_name.lower()
            for key, value in self.core_files.items():
                if key.lower() == wanted:
                    path = value
                    break
        if path and path.strip():
            return path
        return None

    def level_file(self, extension) -> Optional[str]:
        return self.core_file(f"{self.name}{extension}")

    @property
    def cache_key(self):
        return f"{self.directory}::{self.name}"

    @classmethod
    def from_directory(cls, directory, name=None):
        """Build a record from the files already present in a level directory."""
        directory = os.fspath(directory)
        if name is None:
            name = os.path.basename(os.path.normpath(directory))
        wanted = {f"{name}{ext}".lower() for ext in LEVEL_EXTENSIONS}
        wanted.add(FIXLVL_RTB)
        core_files = {}
        if os.path.isdir(directory):
            for entry in sorted(os.listdir(directory)):
                if entry.lower() in wanted:
                    core_files[entry] = os.path.join(directory, entry)
        return cls(name=name, directory=directory, core_files=core_files)


@dataclass
class AnimationRecord:
    id: str
    source_level: str
    source_file: str
    virtual_path: str = ""

    @property
    def display_name(self):
        return os.path.splitext(os.path.basename(self.source_file.replace("\\", "/")))[0]
