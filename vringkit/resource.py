"""Firmware resource table: entry layouts, packing and parsing."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import ClassVar, Union

from .remoteproc import (
    RPROC_MAX_NAME_LEN,
    RemoteprocError,
    RemoteprocErrorCode,
    ResourceType,
)

RSC_TAB_SUPPORTED_VERSION = 1

_TABLE_HEADER = struct.Struct("<IIII")  # ver, num, reserved[2]
_OFFSET = struct.Struct("<I")
_TYPE = struct.Struct("<I")
_REGION = struct.Struct(f"<6I{RPROC_MAX_NAME_LEN}s")
_TRACE = struct.Struct(f"<4I{RPROC_MAX_NAME_LEN}s")
_VRING = struct.Struct("<5I")
_VDEV = struct.Struct("<6IBB2s")
_VENDOR = struct.Struct("<II")

_MAX_VRINGS = 0xFF


def _encode_name(name: str) -> bytes:
    return name.encode("utf-8")[:RPROC_MAX_NAME_LEN]


def _decode_name(raw: bytes) -> str:
    return raw.split(b"\0", 1)[0].decode("utf-8", errors="replace")


def _truncated(what: str) -> RemoteprocError:
    return RemoteprocError(RemoteprocErrorCode.RSC_TAB_TRUNC, f"{what} is truncated")


def _unpack(layout: struct.Struct, data: bytes, offset: int, what: str) -> tuple:
    if offset < 0 or offset + layout.size > len(data):
        raise _truncated(what)
    return layout.unpack_from(data, offset)


def _is_vendor(rsc_type: int) -> bool:
    return ResourceType.VENDOR_START <= rsc_type <= ResourceType.VENDOR_END


@dataclass
class _RegionResource:
    rsc_type: ClassVar[ResourceType]

    da: int
    pa: int
    length: int
    flags: int = 0
    name: str = ""
    reserved: int = 0

    def _pack_region(self) -> bytes:
        return _REGION.pack(
            self.rsc_type, self.da, self.pa, self.length,
            self.flags, self.reserved, _encode_name(self.name),
        )

    @classmethod
    def _unpack(cls, data: bytes, offset: int):
        _, da, pa, length, flags, reserved, name = _unpack(
            _REGION, data, offset, cls.__name__
        )
        return cls(da, pa, length, flags, _decode_name(name), reserved)


@dataclass
class CarveoutResource(_RegionResource):
    """Request for a physically contiguous memory region."""

    rsc_type: ClassVar[ResourceType] = ResourceType.CARVEOUT

    def pack(self) -> bytes:
        """Encode the entry in its packed little-endian layout."""
        return self._pack_region()


@dataclass
class DevmemResource(_RegionResource):
    """Request to map a memory-based peripheral."""

    rsc_type: ClassVar[ResourceType] = ResourceType.DEVMEM

    def pack(self) -> bytes:
        """Encode the entry in its packed little-endian layout."""
        return self._pack_region()


@dataclass
class TraceResource:
    """A trace buffer into which the remote writes its log."""

    rsc_type: ClassVar[ResourceType] = ResourceType.TRACE

    da: int
    length: int
    name: str = ""
    reserved: int = 0

    def pack(self) -> bytes:
        """Encode the entry in its packed little-endian layout."""
        return _TRACE.pack(
            self.rsc_type, self.da, self.length, self.reserved, _encode_name(self.name)
        )

    @classmethod
    def _unpack(cls, data: bytes, offset: int) -> TraceResource:
        _, da, length, reserved, name = _unpack(_TRACE, data, offset, "trace resource")
        return cls(da, length, _decode_name(name), reserved)


@dataclass
class VdevVring:
    """One vring of a virtio device entry."""

    da: int
    align: int
    num: int
    notifyid: int
    reserved: int = 0

    def pack(self) -> bytes:
        """Encode the vring descriptor in its packed little-endian layout."""
        return _VRING.pack(self.da, self.align, self.num, self.notifyid, self.reserved)


@dataclass
class VdevResource:
    """A virtio device header with its vrings and config space."""

    rsc_type: ClassVar[ResourceType] = ResourceType.VDEV

    id: int
    notifyid: int
    dfeatures: int = 0
    gfeatures: int = 0
    status: int = 0
    vrings: list[VdevVring] = field(default_factory=list)
    config: bytes = b""

    def pack(self) -> bytes:
        """Encode header, vrings and config space in their packed layout."""
        if len(self.vrings) > _MAX_VRINGS:
            raise RemoteprocError(
                RemoteprocErrorCode.RSC_TAB_VDEV_NRINGS,
                f"{len(self.vrings)} vrings do not fit in one vdev entry",
            )
        header = _VDEV.pack(
            self.rsc_type, self.id, self.notifyid, self.dfeatures,
            self.gfeatures, len(self.config), self.status,
            len(self.vrings), b"\0\0",
        )
        return header + b"".join(v.pack() for v in self.vrings) + bytes(self.config)

    @classmethod
    def _unpack(cls, data: bytes, offset: int) -> VdevResource:
        (_, vid, notifyid, dfeatures, gfeatures, config_len,
         status, nrings, _reserved) = _unpack(_VDEV, data, offset, "vdev resource")
        pos = offset + _VDEV.size
        vrings = []
        for _ in range(nrings):
            vrings.append(VdevVring(*_unpack(_VRING, data, pos, "vdev vring")))
            pos += _VRING.size
        if pos + config_len > len(data):
            raise _truncated("vdev config space")
        config = bytes(data[pos:pos + config_len])
        return cls(vid, notifyid, dfeatures, gfeatures, status, vrings, config)


@dataclass
class VendorResource:
    """A vendor specific entry; ``data`` is the payload after the header."""

    rsc_type: int
    data: bytes = b""

    def __post_init__(self) -> None:
        if not _is_vendor(self.rsc_type):
            raise ValueError(f"type {self.rsc_type} is outside the vendor range")

    def pack(self) -> bytes:
        """Encode type, payload length and payload."""
        return _VENDOR.pack(self.rsc_type, len(self.data)) + bytes(self.data)

    @classmethod
    def _unpack(cls, data: bytes, offset: int) -> VendorResource:
        rsc_type, length = _unpack(_VENDOR, data, offset, "vendor resource")
        start = offset + _VENDOR.size
        if start + length > len(data):
            raise _truncated("vendor resource payload")
        return cls(rsc_type, bytes(data[start:start + length]))


Resource = Union[
    CarveoutResource, DevmemResource, TraceResource, VdevResource, VendorResource
]

_PARSERS = {
    ResourceType.CARVEOUT: CarveoutResource._unpack,
    ResourceType.DEVMEM: DevmemResource._unpack,
    ResourceType.TRACE: TraceResource._unpack,
    ResourceType.VDEV: VdevResource._unpack,
}


def _type_at(data: bytes, offset: int) -> int:
    return _unpack(_TYPE, data, offset, "resource header")[0]


def _is_known(rsc_type: int) -> bool:
    return rsc_type in _PARSERS or _is_vendor(rsc_type)


def parse_resource(data: bytes, offset: int) -> Resource:
    """Decode the resource entry that starts at ``offset`` in ``data``."""
    rsc_type = _type_at(data, offset)
    if _is_vendor(rsc_type):
        return VendorResource._unpack(data, offset)
    parser = _PARSERS.get(rsc_type)
    if parser is None:
        raise RemoteprocError(
            RemoteprocErrorCode.EINVAL, f"unsupported resource type {rsc_type}"
        )
    return parser(data, offset)


@dataclass
class ResourceTable:
    """A firmware resource table: a version and a list of entries."""

    resources: list[Resource] = field(default_factory=list)
    version: int = RSC_TAB_SUPPORTED_VERSION

    def _layout(self) -> list[tuple[int, bytes]]:
        pos = _TABLE_HEADER.size + _OFFSET.size * len(self.resources)
        layout = []
        for rsc in self.resources:
            blob = rsc.pack()
            layout.append((pos, blob))
            pos += len(blob)
        return layout

    def pack(self) -> bytes:
        """Encode the header, the offset array and the entries in order."""
        layout = self._layout()
        header = _TABLE_HEADER.pack(self.version, len(layout), 0, 0)
        offsets = b"".join(_OFFSET.pack(off) for off, _ in layout)
        return header + offsets + b"".join(blob for _, blob in layout)

    def find(self, rsc_type: int, index: int) -> int | None:
        """Offset in ``pack()`` of the ``index``-th entry of a type, or None."""
        seen = 0
        for (offset, _), rsc in zip(self._layout(), self.resources):
            if rsc.rsc_type != rsc_type:
                continue
            if seen == index:
                return offset
            seen += 1
        return None


def parse_resource_table(data: bytes) -> ResourceTable:
    """Decode a resource table; entries of unsupported types are skipped."""
    version, num, reserved0, reserved1 = _unpack(
        _TABLE_HEADER, data, 0, "resource table header"
    )
    if version != RSC_TAB_SUPPORTED_VERSION:
        raise RemoteprocError(
            RemoteprocErrorCode.RSC_TAB_VER, f"unsupported table version {version}"
        )
    if reserved0 or reserved1:
        raise RemoteprocError(
            RemoteprocErrorCode.RSC_TAB_RSVD, "reserved table fields are not zero"
        )
    if _TABLE_HEADER.size + num * _OFFSET.size > len(data):
        raise _truncated("resource offset array")
    resources = []
    for (offset,) in _OFFSET.iter_unpack(
        data[_TABLE_HEADER.size:_TABLE_HEADER.size + num * _OFFSET.size]
    ):
        if _is_known(_type_at(data, offset)):
            resources.append(parse_resource(data, offset))
    return ResourceTable(resources, version)