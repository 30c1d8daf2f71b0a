"""ELF image headers: identification, parsing and resource table lookup."""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass, field

EI_NIDENT = 16

EI_MAG0 = 0
EI_MAG1 = 1
EI_MAG2 = 2
EI_MAG3 = 3
EI_CLASS = 4
EI_DATA = 5
EI_VERSION = 6
EI_OSABI = 7
EI_ABIVERSION = 8
EI_PAD = 9

ELFMAG = b"\x7fELF"
SELFMAG = 4
ELFOSABI_NONE = 0

ET_NONE = 0
ET_REL = 1
ET_EXEC = 2
ET_DYN = 3
ET_CORE = 4
ET_LOOS = 0xFE00
ET_HIOS = 0xFEFF
ET_LOPROC = 0xFF00
ET_HIPROC = 0xFFFF

EM_ARM = 40
EV_CURRENT = 1

PT_NULL = 0
PT_LOAD = 1
PT_DYNAMIC = 2
PT_INTERP = 3
PT_NOTE = 4
PT_SHLIB = 5
PT_PHDR = 6
PT_TLS = 7
PT_LOOS = 0x60000000
PT_HIOS = 0x6FFFFFFF
PT_LOPROC = 0x70000000
PT_HIPROC = 0x7FFFFFFF

SHT_NULL = 0
SHT_PROGBITS = 1
SHT_SYMTAB = 2
SHT_STRTAB = 3
SHT_RELA = 4
SHT_HASH = 5
SHT_DYNAMIC = 6
SHT_NOTE = 7
SHT_NOBITS = 8
SHT_REL = 9
SHT_SHLIB = 10
SHT_DYNSYM = 11
SHT_INIT_ARRAY = 14
SHT_FINI_ARRAY = 15
SHT_PREINIT_ARRAY = 16
SHT_GROUP = 17
SHT_SYMTAB_SHNDX = 18
SHT_LOOS = 0x60000000
SHT_HIOS = 0x6FFFFFFF
SHT_LOPROC = 0x70000000
SHT_HIPROC = 0x7FFFFFFF
SHT_LOUSER = 0x80000000
SHT_HIUSER = 0xFFFFFFFF

SHF_WRITE = 0x1
SHF_ALLOC = 0x2
SHF_EXECINSTR = 0x4
SHF_MASKPROC = 0xF0000000

R_ARM_ABS32 = 2
R_ARM_GLOB_DAT = 21
R_ARM_JUMP_SLOT = 22
R_ARM_RELATIVE = 23

SUPPORT_SEEK = 1
RPROC_LOAD_ANYADDR = 0xFFFFFFFFFFFFFFFF

ELF_STATE_MASK = 0xFF00
ELF_NEXT_SEGMENT_MASK = 0x00FF
RPROC_LOADER_MASK = 0x00FF0000
RPROC_LOADER_PRIVATE_MASK = 0x0000FFFF
RPROC_LOADER_RESERVED_MASK = 0x0F000000

RSC_TABLE_SECTION = ".resource_table"

_SHN_UNDEF = 0


class ElfFormatError(ValueError):
    """The data is not a well-formed ELF image."""


class ElfClass(enum.IntEnum):
    """File class byte of the ELF identification."""

    NONE = 0
    ELF32 = 1
    ELF64 = 2


class ElfData(enum.IntEnum):
    """Data encoding byte of the ELF identification."""

    NONE = 0
    LSB = 1
    MSB = 2


class LoaderState(enum.IntFlag):
    """Parsing states of the image loader and of the ELF header reader."""

    NOT_READY = 0x0
    WAIT_FOR_PHDRS = 0x100
    WAIT_FOR_SHDRS = 0x200
    WAIT_FOR_SHSTRTAB = 0x400
    HDRS_COMPLETE = 0x800
    READY_TO_LOAD = 0x10000
    POST_DATA_LOAD = 0x20000
    LOAD_COMPLETE = 0x40000


_IDENT = struct.Struct(f"{EI_NIDENT}s")

_FORMATS = {
    ElfClass.ELF32: ("16sHHIIIIIHHHHHH", "8I", "10I"),
    ElfClass.ELF64: ("16sHHIQQQIHHHHHH", "IIQQQQQQ", "IIQQQQIIQQ"),
}


def _layouts(elf_class: ElfClass, data: ElfData) -> tuple[struct.Struct, struct.Struct, struct.Struct]:
    order = "<" if data == ElfData.LSB else ">"
    ehdr, phdr, shdr = _FORMATS[elf_class]
    return struct.Struct(order + ehdr), struct.Struct(order + phdr), struct.Struct(order + shdr)


@dataclass(frozen=True)
class ElfHeader:
    """The ELF file header, with the class and encoding it was read with."""

    ident: bytes
    type: int
    machine: int
    version: int
    entry: int
    phoff: int
    shoff: int
    flags: int
    ehsize: int
    phentsize: int
    phnum: int
    shentsize: int
    shnum: int
    shstrndx: int

    @property
    def elf_class(self) -> ElfClass:
        return ElfClass(self.ident[EI_CLASS])

    @property
    def data(self) -> ElfData:
        return ElfData(self.ident[EI_DATA])


@dataclass(frozen=True)
class ProgramHeader:
    """One segment entry of the program header table."""

    type: int = 0
    offset: int = 0
    vaddr: int = 0
    paddr: int = 0
    filesz: int = 0
    memsz: int = 0
    flags: int = 0
    align: int = 0


@dataclass(frozen=True)
class SectionHeader:
    """One entry of the section header table."""

    name: int = 0
    type: int = 0
    flags: int = 0
    addr: int = 0
    offset: int = 0
    size: int = 0
    link: int = 0
    info: int = 0
    addralign: int = 0
    entsize: int = 0


def elf_identify(data: bytes) -> bool:
    """Whether ``data`` starts with the ELF magic number."""
    return len(data) >= SELFMAG and bytes(data[:SELFMAG]) == ELFMAG


def parse_elf_header(data: bytes) -> ElfHeader:
    """Decode the ELF file header at the start of ``data``."""
    if not elf_identify(data):
        raise ElfFormatError("not an ELF image")
    if len(data) < EI_NIDENT:
        raise ElfFormatError("ELF identification is truncated")
    try:
        elf_class = ElfClass(data[EI_CLASS])
        encoding = ElfData(data[EI_DATA])
    except ValueError:
        raise ElfFormatError("unknown ELF class or data encoding") from None
    if elf_class == ElfClass.NONE or encoding == ElfData.NONE:
        raise ElfFormatError("invalid ELF class or data encoding")
    ehdr, _, _ = _layouts(elf_class, encoding)
    if len(data) < ehdr.size:
        raise ElfFormatError("ELF header is truncated")
    return ElfHeader(*ehdr.unpack_from(data, 0))


def _table(data: bytes, start: int, count: int, entsize: int, layout: struct.Struct, what: str):
    if count == 0:
        return
    if entsize < layout.size:
        raise ElfFormatError(f"{what} entry size {entsize} is too small")
    if start < 0 or start + (count - 1) * entsize + layout.size > len(data):
        raise ElfFormatError(f"{what} table is truncated")
    for index in range(count):
        yield layout.unpack_from(data, start + index * entsize)


def parse_program_headers(data: bytes, header: ElfHeader) -> list[ProgramHeader]:
    """Decode the program header table described by ``header``."""
    _, phdr, _ = _layouts(header.elf_class, header.data)
    entries = _table(data, header.phoff, header.phnum, header.phentsize, phdr, "program header")
    if header.elf_class == ElfClass.ELF32:
        return [ProgramHeader(*fields) for fields in entries]
    return [
        ProgramHeader(p_type, offset, vaddr, paddr, filesz, memsz, flags, align)
        for p_type, flags, offset, vaddr, paddr, filesz, memsz, align in entries
    ]


def parse_section_headers(data: bytes, header: ElfHeader) -> list[SectionHeader]:
    """Decode the section header table described by ``header``."""
    _, _, shdr = _layouts(header.elf_class, header.data)
    entries = _table(data, header.shoff, header.shnum, header.shentsize, shdr, "section header")
    return [SectionHeader(*fields) for fields in entries]


@dataclass
class ElfImage:
    """The headers of an ELF image and its section name string table."""

    header: ElfHeader
    program_headers: list[ProgramHeader] = field(default_factory=list)
    section_headers: list[SectionHeader] = field(default_factory=list)
    shstrtab: bytes = b""

    @property
    def entry(self) -> int:
        """Entry point address."""
        return self.header.entry

    def section_name(self, section: SectionHeader) -> str:
        """Name of ``section`` as found in the section name string table."""
        if not 0 <= section.name < len(self.shstrtab):
            raise ElfFormatError(f"section name offset {section.name} is out of range")
        raw = self.shstrtab[section.name:].split(b"\0", 1)[0]
        return raw.decode("utf-8", errors="replace")

    def find_section(self, name: str) -> SectionHeader | None:
        """First section with the given name, or None."""
        if not self.shstrtab:
            return None
        return next(
            (sec for sec in self.section_headers if self.section_name(sec) == name),
            None,
        )

    def locate_rsc_table(self) -> tuple[int, int, int] | None:
        """Device address, file offset and size of the resource table, or None."""
        section = self.find_section(RSC_TABLE_SECTION)
        if section is None:
            return None
        return section.addr, section.offset, section.size


def parse_elf(data: bytes) -> ElfImage:
    """Decode the file header, both header tables and the section names."""
    header = parse_elf_header(data)
    phdrs = parse_program_headers(data, header)
    shdrs = parse_section_headers(data, header)
    shstrtab = b""
    if header.shstrndx != _SHN_UNDEF and header.shstrndx < len(shdrs):
        strtab = shdrs[header.shstrndx]
        if strtab.offset + strtab.size > len(data):
            raise ElfFormatError("section name string table is truncated")
        shstrtab = bytes(data[strtab.offset:strtab.offset + strtab.size])
    return ElfImage(header, phdrs, shdrs, shstrtab)


def elf32_r_sym(info: int) -> int:
    """Symbol index of a 32-bit relocation info field."""
    return info >> 8


def elf32_r_type(info: int) -> int:
    """Relocation type of a 32-bit relocation info field."""
    return info & 0xFF


def elf64_r_sym(info: int) -> int:
    """Symbol index of a 64-bit relocation info field."""
    return info >> 32


def elf64_r_type(info: int) -> int:
    """Relocation type of a 64-bit relocation info field."""
    return info & 0xFFFFFFFF