"""Relocated address space, addresses and the memory reader."""

from .address import Address
from .address_space import RelocatedAddressSpace, Segment
from .memory_reader import MemoryReader

__all__ = ["Address", "MemoryReader", "RelocatedAddressSpace", "Segment"]
