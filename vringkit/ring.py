"""Split virtqueue ring layout over a block of shared memory."""

from __future__ import annotations

import struct
from dataclasses import dataclass

VRING_DESC_F_NEXT = 1
VRING_DESC_F_WRITE = 2
VRING_DESC_F_INDIRECT = 4

VRING_USED_F_NO_NOTIFY = 1
VRING_AVAIL_F_NO_INTERRUPT = 1

# Largest virtqueue size is 2**15, so this value is never a valid index.
VQ_RING_DESC_CHAIN_END = 32768

_DESC = struct.Struct("<QIHH")
_USED_ELEM = struct.Struct("<II")
_U16 = struct.Struct("<H")
_RING_HEADER = 4  # flags + idx, both 16 bit

_MASK16 = 0xFFFF
_MASK32 = 0xFFFFFFFF
_MASK64 = 0xFFFFFFFFFFFFFFFF


class SharedMemory:
    """A byte region shared with the other side, mapped at a physical base."""

    def __init__(self, size: int, phys_base: int = 0) -> None:
        if size < 0:
            raise ValueError("memory size must not be negative")
        if phys_base < 0:
            raise ValueError("physical base must not be negative")
        self.buffer = bytearray(size)
        self.phys_base = phys_base

    def __len__(self) -> int:
        return len(self.buffer)

    def _check_range(self, offset: int, size: int) -> None:
        if offset < 0 or size < 0 or offset + size > len(self.buffer):
            raise IndexError(
                f"range {offset}+{size} outside memory of {len(self.buffer)} bytes"
            )

    def read(self, offset: int, size: int) -> bytes:
        """Return ``size`` bytes starting at ``offset``."""
        self._check_range(offset, size)
        return bytes(self.buffer[offset:offset + size])

    def write(self, offset: int, data: bytes) -> None:
        """Copy ``data`` into memory at ``offset``."""
        data = bytes(data)
        self._check_range(offset, len(data))
        self.buffer[offset:offset + len(data)] = data

    def fill(self, offset: int, value: int, size: int) -> None:
        """Set ``size`` bytes at ``offset`` to the byte ``value``."""
        if not 0 <= value <= 0xFF:
            raise ValueError("fill value must be a byte")
        self._check_range(offset, size)
        self.buffer[offset:offset + size] = bytes([value]) * size

    def phys_to_offset(self, phys: int) -> int:
        """Translate a physical address into an offset within this region."""
        offset = phys - self.phys_base
        if not 0 <= offset < len(self.buffer):
            raise ValueError(f"physical address {phys:#x} is outside the region")
        return offset

    def offset_to_phys(self, offset: int) -> int:
        """Translate an offset within this region into a physical address."""
        if not 0 <= offset < len(self.buffer):
            raise ValueError(f"offset {offset} is outside the region")
        return self.phys_base + offset


@dataclass
class VringDesc:
    """One ring descriptor: buffer address, length, flags and chain link."""

    addr: int = 0
    length: int = 0
    flags: int = 0
    next: int = 0


@dataclass
class VringUsedElem:
    """One used-ring entry: head of the used chain and bytes written."""

    id: int = 0
    length: int = 0


def vring_size(num: int, align: int) -> int:
    """Bytes needed for a ring of ``num`` descriptors with used-ring ``align``."""
    size = num * _DESC.size
    size += _RING_HEADER + num * _U16.size + _U16.size
    size = (size + align - 1) & ~(align - 1)
    size += _RING_HEADER + num * _USED_ELEM.size + _U16.size
    return size


def vring_need_event(event_idx: int, new_idx: int, old: int) -> bool:
    """Whether moving the index from ``old`` to ``new_idx`` passes ``event_idx``."""
    return ((new_idx - event_idx - 1) & _MASK16) < ((new_idx - old) & _MASK16)


class Vring:
    """Descriptor table, available ring and used ring laid out in memory."""

    def __init__(self, memory: SharedMemory, offset: int, num: int, align: int) -> None:
        if num < 0:
            raise ValueError("ring size must not be negative")
        if align <= 0 or align & (align - 1):
            raise ValueError("alignment must be a positive power of two")
        self.memory = memory
        self.num = num
        self.align = align
        self.desc_offset = offset
        self.avail_offset = offset + num * _DESC.size
        avail_end = self.avail_offset + _RING_HEADER + num * _U16.size + _U16.size
        used_phys = (memory.phys_base + avail_end + align - 1) & ~(align - 1)
        self.used_offset = used_phys - memory.phys_base
        end = self.used_offset + _RING_HEADER + num * _USED_ELEM.size + _U16.size
        if offset < 0 or end > len(memory):
            raise ValueError("ring does not fit in the shared memory")

    def _get_u16(self, offset: int) -> int:
        return _U16.unpack(self.memory.read(offset, _U16.size))[0]

    def _set_u16(self, offset: int, value: int) -> None:
        self.memory.write(offset, _U16.pack(value & _MASK16))

    def _check_slot(self, slot: int) -> None:
        if not 0 <= slot < self.num:
            raise IndexError(f"slot {slot} outside ring of {self.num} entries")

    def read_desc(self, index: int) -> VringDesc:
        """Return descriptor ``index``."""
        self._check_slot(index)
        raw = self.memory.read(self.desc_offset + index * _DESC.size, _DESC.size)
        return VringDesc(*_DESC.unpack(raw))

    def write_desc(self, index: int, desc: VringDesc) -> None:
        """Store ``desc`` as descriptor ``index``."""
        self._check_slot(index)
        raw = _DESC.pack(
            desc.addr & _MASK64,
            desc.length & _MASK32,
            desc.flags & _MASK16,
            desc.next & _MASK16,
        )
        self.memory.write(self.desc_offset + index * _DESC.size, raw)

    @property
    def avail_flags(self) -> int:
        return self._get_u16(self.avail_offset)

    @avail_flags.setter
    def avail_flags(self, value: int) -> None:
        self._set_u16(self.avail_offset, value)

    @property
    def avail_idx(self) -> int:
        return self._get_u16(self.avail_offset + 2)

    @avail_idx.setter
    def avail_idx(self, value: int) -> None:
        self._set_u16(self.avail_offset + 2, value)

    def get_avail_entry(self, slot: int) -> int:
        """Return the descriptor head stored in available-ring ``slot``."""
        self._check_slot(slot)
        return self._get_u16(self.avail_offset + _RING_HEADER + slot * _U16.size)

    def set_avail_entry(self, slot: int, value: int) -> None:
        """Store a descriptor head in available-ring ``slot``."""
        self._check_slot(slot)
        self._set_u16(self.avail_offset + _RING_HEADER + slot * _U16.size, value)

    @property
    def used_event(self) -> int:
        """Event index published after the available ring."""
        return self._get_u16(self.avail_offset + _RING_HEADER + self.num * _U16.size)

    @used_event.setter
    def used_event(self, value: int) -> None:
        self._set_u16(self.avail_offset + _RING_HEADER + self.num * _U16.size, value)

    @property
    def used_flags(self) -> int:
        return self._get_u16(self.used_offset)

    @used_flags.setter
    def used_flags(self, value: int) -> None:
        self._set_u16(self.used_offset, value)

    @property
    def used_idx(self) -> int:
        return self._get_u16(self.used_offset + 2)

    @used_idx.setter
    def used_idx(self, value: int) -> None:
        self._set_u16(self.used_offset + 2, value)

    def get_used_elem(self, slot: int) -> VringUsedElem:
        """Return used-ring entry ``slot``."""
        self._check_slot(slot)
        offset = self.used_offset + _RING_HEADER + slot * _USED_ELEM.size
        return VringUsedElem(*_USED_ELEM.unpack(self.memory.read(offset, _USED_ELEM.size)))

    def set_used_elem(self, slot: int, elem_id: int, length: int) -> None:
        """Store a used-ring entry in ``slot``."""
        self._check_slot(slot)
        offset = self.used_offset + _RING_HEADER + slot * _USED_ELEM.size
        self.memory.write(offset, _USED_ELEM.pack(elem_id & _MASK32, length & _MASK32))

    @property
    def avail_event(self) -> int:
        """Event index published after the used ring."""
        return self._get_u16(self.used_offset + _RING_HEADER + self.num * _USED_ELEM.size)

    @avail_event.setter
    def avail_event(self, value: int) -> None:
        self._set_u16(self.used_offset + _RING_HEADER + self.num * _USED_ELEM.size, value)