"""Readers for SNA images, relocation tables and LZO block payloads."""

from .relocation_table import PointerBlock, PointerInfo, RelocationTable
from .sna_image import SnaBlock, SnaImage

__all__ = [
    "PointerBlock", "PointerInfo", "RelocationTable",
    "SnaBlock", "SnaImage",
]
