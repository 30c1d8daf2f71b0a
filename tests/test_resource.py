import struct

import pytest
from hypothesis import given
from hypothesis import strategies as st

from vringkit.remoteproc import RemoteprocError, RemoteprocErrorCode, ResourceType
from vringkit.resource import (
    CarveoutResource,
    DevmemResource,
    ResourceTable,
    TraceResource,
    VdevResource,
    VdevVring,
    VendorResource,
    parse_resource,
    parse_resource_table,
)

u32 = st.integers(min_value=0, max_value=0xFFFFFFFF)
names = st.text(alphabet="abcdefghijklmnopqrstuvwxyz_-0123456789", max_size=32)


def _sample_table():
    return ResourceTable(
        [
            CarveoutResource(da=0x1000, pa=0x2000, length=0x100, name="text"),
            TraceResource(da=0x3000, length=0x40, name="trace0"),
            CarveoutResource(da=0x4000, pa=0x5000, length=0x200, name="data"),
            VdevResource(
                id=7,
                notifyid=1,
                dfeatures=1,
                vrings=[VdevVring(0x6000, 0x1000, 256, 2), VdevVring(0x7000, 0x1000, 256, 3)],
                config=b"\x01\x02\x03\x04",
            ),
            VendorResource(ResourceType.VENDOR_START, b"abc"),
        ]
    )


def test_carveout_packed_size_and_type():
    raw = CarveoutResource(da=1, pa=2, length=3, name="x").pack()
    assert len(raw) == 56
    assert struct.unpack_from("<I", raw)[0] == ResourceType.CARVEOUT


def test_vring_entry_is_five_words():
    raw = VdevVring(1, 2, 4, 5).pack()
    assert len(raw) == 20
    assert struct.unpack("<5I", raw) == (1, 2, 4, 5, 0)


def test_empty_table_bytes():
    assert ResourceTable().pack() == b"\x01\x00\x00\x00" + bytes(12)


@given(u32, u32, u32, u32, names)
def test_carveout_round_trip(da, pa, length, flags, name):
    rsc = CarveoutResource(da, pa, length, flags, name)
    assert parse_resource(rsc.pack(), 0) == rsc


@given(u32, u32, names)
def test_devmem_round_trip(da, pa, name):
    rsc = DevmemResource(da, pa, 8, 0, name)
    parsed = parse_resource(rsc.pack(), 0)
    assert isinstance(parsed, DevmemResource)
    assert parsed == rsc


def test_long_name_is_cut():
    rsc = TraceResource(da=0, length=1, name="n" * 40)
    assert parse_resource(rsc.pack(), 0).name == "n" * 32


def test_vdev_round_trip():
    vdev = _sample_table().resources[3]
    assert parse_resource(vdev.pack(), 0) == vdev


def test_vendor_round_trip_and_range():
    rsc = VendorResource(ResourceType.VENDOR_END, b"payload")
    assert parse_resource(rsc.pack(), 0) == rsc
    with pytest.raises(ValueError):
        VendorResource(ResourceType.LAST)


def test_table_round_trip():
    table = _sample_table()
    assert parse_resource_table(table.pack()) == table


def test_find_offsets_point_at_entries():
    table = _sample_table()
    raw = table.pack()
    second = table.find(ResourceType.CARVEOUT, 1)
    assert parse_resource(raw, second) == table.resources[2]
    trace = table.find(ResourceType.TRACE, 0)
    assert parse_resource(raw, trace) == table.resources[1]
    assert table.find(ResourceType.DEVMEM, 0) is None
    assert table.find(ResourceType.CARVEOUT, 2) is None


def test_wrong_version_rejected():
    raw = bytearray(_sample_table().pack())
    raw[0] = 2
    with pytest.raises(RemoteprocError) as info:
        parse_resource_table(bytes(raw))
    assert info.value.code == RemoteprocErrorCode.RSC_TAB_VER


def test_reserved_fields_must_be_zero():
    raw = bytearray(_sample_table().pack())
    raw[8] = 1
    with pytest.raises(RemoteprocError) as info:
        parse_resource_table(bytes(raw))
    assert info.value.code == RemoteprocErrorCode.RSC_TAB_RSVD


@pytest.mark.parametrize("cut", [0, 10, 20, 40])
def test_truncated_table(cut):
    raw = _sample_table().pack()
    with pytest.raises(RemoteprocError) as info:
        parse_resource_table(raw[:cut])
    assert info.value.code == RemoteprocErrorCode.RSC_TAB_TRUNC


def test_truncated_vdev_config():
    raw = _sample_table().resources[3].pack()
    with pytest.raises(RemoteprocError) as info:
        parse_resource(raw[:-1], 0)
    assert info.value.code == RemoteprocErrorCode.RSC_TAB_TRUNC


def test_unknown_types_skipped_in_table():
    known = CarveoutResource(da=1, pa=2, length=3, name="a").pack()
    unknown = struct.pack("<II", ResourceType.LAST, 0)
    header_len = 16 + 2 * 4
    raw = (
        struct.pack("<IIII", 1, 2, 0, 0)
        + struct.pack("<II", header_len, header_len + len(unknown))
        + unknown
        + known
    )
    table = parse_resource_table(raw)
    assert table.resources == [CarveoutResource(da=1, pa=2, length=3, name="a")]
    with pytest.raises(RemoteprocError) as info:
        parse_resource(raw, header_len)
    assert info.value.code == RemoteprocErrorCode.EINVAL


def test_too_many_vrings():
    vdev = VdevResource(id=1, notifyid=0, vrings=[VdevVring(0, 16, 2, i) for i in range(256)])
    with pytest.raises(RemoteprocError) as info:
        vdev.pack()
    assert info.value.code == RemoteprocErrorCode.RSC_TAB_VDEV_NRINGS