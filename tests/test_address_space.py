import struct

import pytest

from hype_sna.errors import OutOfBoundsError
from hype_sna.memory.address import Address
from hype_sna.memory.address_space import RelocatedAddressSpace
from hype_sna.memory.memory_reader import read_i16_array, read_xzy_vector3_array
from hype_sna.sna_format.relocation_table import RelocationTable
from hype_sna.sna_format.sna_image import SnaImage

from sna_builders import (
    Block, RecordWriter, build_space, encode_relocation_table, encode_sna, relocation_entries,
)


def _image(blocks):
    return SnaImage.parse(encode_sna(blocks), sna_compression=False)


def _table(blocks):
    return RelocationTable.parse(encode_relocation_table(relocation_entries(blocks)),
                                 sna_compression=False)


def test_address_str():
    assert str(Address("lvl_gpt", 0x10)) == "lvl_gpt@0x00000010"
    assert Address("a", 4).add(8) == Address("a", 12)


def test_reader_primitives(heap):
    start = heap.alloc(32)
    heap.write(start, '<BhHiIf', 7, -2, 0xBEEF, -5, 0xDEADBEEF, 1.5)
    text = heap.alloc(8)
    heap.data[text - heap.base:text - heap.base + 5] = b"rock\x00"
    space = build_space([heap])

    reader = space.create_reader(heap.address(start))
    assert reader.read_u8() == 7
    assert reader.read_i16() == -2
    assert reader.read_u16() == 0xBEEF
    assert reader.read_i32() == -5
    assert reader.read_u32() == 0xDEADBEEF
    assert reader.read_f32() == 1.5
    assert reader.position == heap.address(start + 17)

    assert space.create_reader(heap.address(text)).read_fixed_string(8) == "rock"


def test_array_helpers(heap):
    writer = RecordWriter(heap)
    points = writer.vectors([(1.0, 2.0, 3.0), (4.0, 5.0, 6.0)])
    shorts = writer.i16_array([-1, 0, 300])
    space = build_space([heap])

    assert read_xzy_vector3_array(space, heap.address(points), 2) == [
        (1.0, 2.0, 3.0), (4.0, 5.0, 6.0)]
    assert read_i16_array(space, heap.address(shorts), 3) == [-1, 0, 300]


def test_out_of_bounds_read_raises(heap):
    start = heap.alloc(4)
    space = build_space([heap])
    reader = space.create_reader(heap.address(start + 2))
    with pytest.raises(OutOfBoundsError):
        reader.read_u32()
    assert reader.position == heap.address(start + 2)


def test_unknown_segment_read_raises():
    space = RelocatedAddressSpace()
    with pytest.raises(OutOfBoundsError):
        space.create_reader(Address("missing", 0)).read_u8()


def test_null_sentinels(heap):
    field = heap.alloc(8)
    heap.u32(field, 0)
    heap.u32(field + 4, 0xFFFFFFFF)
    space = build_space([heap])
    reader = space.create_reader(heap.address(field))
    assert reader.read_pointer() is None
    assert reader.read_pointer() is None


def test_relocated_pointer_into_other_block():
    source = Block(0x10, 0x01, 0x00400000)
    target = Block(0x10, 0x05, 0x00800000)
    record = target.alloc(16)
    field = source.alloc(4)
    source.pointer(field, record + 8, target_block=target)
    space = build_space([source, target])

    resolved = space.create_reader(source.address(field)).read_pointer()
    assert resolved == target.address(record + 8, index=1)


def test_largest_containing_candidate_wins():
    source = Block(0x10, 0x01, 0x00400000)
    small = Block(0x10, 0x05, 0x00800000)
    small.alloc(16)
    big = Block(0x10, 0x05, 0x00800000)
    big.alloc(64)
    field = source.alloc(4)
    source.pointer(field, 0x00800008, target_block=big)

    space = RelocatedAddressSpace()
    space.add_sna_blocks(_image([small]), None, "fix")
    space.add_sna_blocks(_image([source, big]), _table([source]), "lvl")

    resolved = space.create_reader(source.address(field)).read_pointer()
    assert resolved == Address("lvl:block:10:05:0001", 8)


def test_equal_size_candidates_keep_load_order():
    source = Block(0x10, 0x01, 0x00400000)
    first = Block(0x10, 0x05, 0x00800000)
    first.alloc(32)
    second = Block(0x10, 0x05, 0x00800000)
    second.alloc(32)
    field = source.alloc(4)
    source.pointer(field, 0x00800010, target_block=first)

    space = RelocatedAddressSpace()
    space.add_sna_blocks(_image([first]), None, "fix")
    space.add_sna_blocks(_image([source, second]), _table([source]), "lvl")

    resolved = space.create_reader(source.address(field)).read_pointer()
    assert resolved == Address("fix:block:10:05:0000", 0x10)


def test_relocation_target_outside_every_candidate():
    source = Block(0x10, 0x01, 0x00400000)
    target = Block(0x10, 0x05, 0x00800000)
    target.alloc(16)
    field = source.alloc(4)
    source.pointer(field, 0x00900000, target_block=target)
    space = build_space([source, target])

    assert space.resolve_pointer(source.address(field), 0x00900000) is None
    assert space.create_reader(source.address(field)).read_pointer() is None


def test_raw_address_fallback_takes_first_loaded():
    source = Block(0x10, 0x01, 0x00400000)
    fix_block = Block(0x20, 0x00, 0x00800000)
    fix_block.alloc(32)
    lvl_block = Block(0x30, 0x00, 0x00800000)
    lvl_block.alloc(64)
    field = source.alloc(4)
    source.pointer(field, 0x00800004, relocate=False)

    space = RelocatedAddressSpace()
    space.add_sna_blocks(_image([fix_block]), None, "fix")
    space.add_sna_blocks(_image([source, lvl_block]), None, "lvl")

    assert space.resolve_pointer(source.address(field), 0x00800004) is None
    assert space.create_reader(source.address(field)).read_pointer() == Address(
        "fix:block:20:00:0000", 4)


def test_pointer_file_segment():
    target = Block(0x10, 0x02, 0x00400000)
    record = target.alloc(32)
    gpt = struct.pack('<3I', 0, record + 4, 0x12345678)
    rtp = RelocationTable.parse(
        encode_relocation_table([(0x10, 0x02, [(record + 4, 0x10, 0x02)])]),
        sna_compression=False)

    space = build_space([target])
    space.add_pointer_file("lvl_gpt", gpt, rtp)
    segment = space.get_segment("lvl_gpt")
    assert not segment.is_block
    assert set(segment.file_pointer_map) == {4}

    reader = space.create_reader(space.segment_start("lvl_gpt"))
    assert reader.read_pointer() is None
    assert reader.read_pointer() == target.address(record + 4)
    assert reader.read_pointer() is None


def test_empty_pointer_file_is_ignored():
    space = RelocatedAddressSpace()
    space.add_pointer_file("lvl_ptx", b"", None)
    space.add_pointer_file("fix_ptx", None, None)
    assert not space.has_segment("lvl_ptx")
    assert space.segment_start("fix_ptx") is None
    assert space.segment_ids == []


def test_segment_ids_follow_load_order(heap):
    other = Block(0x10, 0x03, 0x00500000)
    other.alloc(4)
    heap.alloc(4)
    space = build_space([heap, other])
    assert space.segment_ids == ["lvl:block:10:02:0000", "lvl:block:10:03:0001"]
    assert space.block_segment_count == 2
