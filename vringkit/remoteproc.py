"""Remote processor states, error codes and the memory it can reach."""

from __future__ import annotations

import enum
from collections.abc import Iterator
from dataclasses import dataclass

from .ring import SharedMemory

RSC_NOTIFY_ID_ANY = 0xFFFFFFFF
RPROC_MAX_NAME_LEN = 32

FW_RSC_U64_ADDR_ANY = 0xFFFFFFFFFFFFFFFF
FW_RSC_U32_ADDR_ANY = 0xFFFFFFFF


class ResourceType(enum.IntEnum):
    """Types of entries in a firmware resource table."""

    CARVEOUT = 0
    DEVMEM = 1
    TRACE = 2
    VDEV = 3
    LAST = 4
    VENDOR_START = 128
    VENDOR_END = 512


class RemoteprocState(enum.IntEnum):
    """Lifecycle states of a remote processor."""

    OFFLINE = 0
    CONFIGURED = 1
    READY = 2
    RUNNING = 3
    SUSPENDED = 4
    ERROR = 5
    STOPPED = 6
    LAST = 7


class RemoteprocErrorCode(enum.IntEnum):
    """Numeric remoteproc error codes; failures report their negation."""

    ENOMEM = 1
    EINVAL = 2
    ENODEV = 3
    EAGAIN = 4
    RSC_TAB_TRUNC = 5
    RSC_TAB_VER = 6
    RSC_TAB_RSVD = 7
    RSC_TAB_VDEV_NRINGS = 9
    RSC_TAB_NP = 10
    RSC_TAB_NS = 11
    LOADER_STATE = 12
    EMAX = 16


class RemoteprocError(Exception):
    """A remoteproc operation failed; ``code`` tells how."""

    def __init__(self, code: RemoteprocErrorCode, message: str | None = None) -> None:
        self.code = RemoteprocErrorCode(code)
        super().__init__(message or f"remoteproc error {self.code.name}")


@dataclass
class RemoteprocMemory:
    """A memory region of the remote processor, seen at two addresses."""

    name: str
    pa: int
    da: int
    size: int
    io: SharedMemory

    @classmethod
    def create(
        cls,
        name: str | None,
        pa: int,
        da: int,
        size: int,
        io: SharedMemory | None,
    ) -> RemoteprocMemory:
        """Describe a region; the name is cut to the maximum name length."""
        if io is None:
            raise RemoteprocError(RemoteprocErrorCode.EINVAL, "memory needs an I/O region")
        if size <= 0:
            raise RemoteprocError(RemoteprocErrorCode.EINVAL, "memory size must be positive")
        return cls(
            name=(name or "")[:RPROC_MAX_NAME_LEN],
            pa=pa,
            da=da,
            size=size,
            io=io,
        )


class MemoryMap:
    """The ordered list of memory regions known to a remote processor."""

    def __init__(self) -> None:
        self._mems: list[RemoteprocMemory] = []

    def __iter__(self) -> Iterator[RemoteprocMemory]:
        return iter(self._mems)

    def __len__(self) -> int:
        return len(self._mems)

    def add(self, mem: RemoteprocMemory) -> None:
        """Append a region to the end of the map."""
        if mem is None:
            raise RemoteprocError(RemoteprocErrorCode.EINVAL, "no memory to add")
        self._mems.append(mem)

    def by_name(self, name: str) -> RemoteprocMemory | None:
        """First region with the given name, or None."""
        return next((mem for mem in self._mems if mem.name == name), None)