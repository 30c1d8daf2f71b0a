"""Vring layout, remoteproc memory, resource tables and ELF image headers."""

__version__ = "0.1.0"

__all__ = ["elf", "remoteproc", "resource", "ring"]