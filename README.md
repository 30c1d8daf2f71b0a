# vringkit

Pure-Python building blocks for asymmetric multiprocessing (AMP) setups that
share memory over virtio rings and describe their firmware with resource
tables. The package has no runtime dependencies.

## Modules

### `vringkit.ring`: split vring layout

- `SharedMemory(size, phys_base=0)` is a byte region mapped at a physical base
  address. Its methods are:
  - `read` and `write`;
  - `fill`;
  - `phys_to_offset` and `offset_to_phys`.

  It raises `IndexError` for an access outside the region. It raises
  `ValueError` for an address or offset outside the region.
- `Vring(memory, offset, num, align)` lays out three parts in a `SharedMemory`:
  - a descriptor table;
  - an available ring;
  - a used ring, aligned to `align`.

  It accesses them through:
  - `read_desc` / `write_desc`, which work on `VringDesc`;
  - `get_avail_entry` / `set_avail_entry`;
  - `get_used_elem` / `set_used_elem`, which return `VringUsedElem`;
  - the properties `avail_flags`, `avail_idx`, `used_flags`, `used_idx`,
    `used_event` and `avail_event`.

  All values are stored little-endian.
- `vring_size(num, align)` gives the bytes a ring needs.
- `vring_need_event(event_idx, new_idx, old)` applies the event-index rule with
  16-bit wrap-around.
- The flag constants are `VRING_DESC_F_NEXT`, `VRING_DESC_F_WRITE`,
  `VRING_DESC_F_INDIRECT`, `VRING_USED_F_NO_NOTIFY` and
  `VRING_AVAIL_F_NO_INTERRUPT`. The chain terminator is
  `VQ_RING_DESC_CHAIN_END`.

### `vringkit.remoteproc`: remote processor model

- The enums are `ResourceType`, `RemoteprocState` and `RemoteprocErrorCode`.
- `RemoteprocError` carries a `code`.
- `RemoteprocMemory.create(name, pa, da, size, io)` describes a region. It cuts
  the name to 32 characters. It raises `RemoteprocError` (EINVAL) when there is
  no I/O region or the size is not positive.
- `MemoryMap` keeps regions in order, with `add` and `by_name`.

### `vringkit.resource`: firmware resource tables

- The entry types are:
  - `CarveoutResource` and `DevmemResource`;
  - `TraceResource`;
  - `VdevResource`, which holds `VdevVring` entries and config bytes;
  - `VendorResource`.

  Each entry has `pack()`.
- `ResourceTable.pack()` writes the header, the offset array and the entries.
- `ResourceTable.find(rsc_type, index)` returns the offset of the `index`-th
  entry of a type in the packed table, or `None`.
- `parse_resource(data, offset)` decodes a single entry.
- `parse_resource_table(data)` decodes a whole table. It skips entries of
  unsupported types. It raises `RemoteprocError` with one of these codes:
  - `RSC_TAB_VER` for a version other than 1;
  - `RSC_TAB_RSVD` for non-zero reserved fields;
  - `RSC_TAB_TRUNC` for truncated data.

### `vringkit.elf`: ELF image headers

- `elf_identify(data)` checks the ELF magic number.
- The individual readers are `parse_elf_header`, `parse_program_headers` and
  `parse_section_headers`. They handle 32- and 64-bit images in either byte
  order.
- `parse_elf(data)` reads everything into an `ElfImage`.
- `ElfImage` has `entry`, `section_name`, `find_section` and
  `locate_rsc_table`. `locate_rsc_table` returns the device address, file
  offset and size of the `.resource_table` section, or `None`.
- Malformed data raises `ElfFormatError`, a `ValueError`.
- Relocation info helpers: `elf32_r_sym`, `elf32_r_type`, `elf64_r_sym` and
  `elf64_r_type`.

## Installation

```
pip install vringkit
```

With the test requirements:

```
pip install "vringkit[test]"
```

## Examples

Post one buffer on a ring:

```python
from vringkit.ring import SharedMemory, Vring, VringDesc, vring_need_event

mem = SharedMemory(4096, phys_base=0x10000000)
ring = Vring(mem, 0, 16, 64)

ring.write_desc(0, VringDesc(addr=mem.offset_to_phys(1024), length=64))
ring.set_avail_entry(0, 0)
ring.avail_idx = 1

assert vring_need_event(0, 1, 0)
```

Build a resource table, pack it and read it back:

```python
from vringkit.remoteproc import ResourceType
from vringkit.resource import (
    CarveoutResource, ResourceTable, VdevResource, VdevVring, parse_resource_table,
)

table = ResourceTable([
    CarveoutResource(da=0x20000000, pa=0x20000000, length=0x10000, name="text"),
    VdevResource(id=7, notifyid=0, vrings=[VdevVring(da=0x30000000, align=16, num=8, notifyid=1)]),
])
blob = table.pack()
assert parse_resource_table(blob) == table
vdev_offset = table.find(ResourceType.VDEV, 0)
```

Find the resource table in a firmware image:

```python
from vringkit.elf import parse_elf
from vringkit.resource import parse_resource_table

with open("firmware.elf", "rb") as f:
    data = f.read()

image = parse_elf(data)
located = image.locate_rsc_table()
if located is not None:
    da, offset, size = located
    table = parse_resource_table(data[offset:offset + size])
```

## What the package does not do

- **Rings are layout only.** There is no queue logic on top of `Vring`. No
  code adds or reclaims buffer chains. No code keeps free-descriptor
  bookkeeping, runs callbacks or sends notifications. The caller updates
  descriptors and indices directly.
- **No messaging.** There is no messaging layer on top of the rings.
- **ELF images are only read.** Their headers are parsed, but nothing loads
  segments into memory or starts a remote processor.

## Running the tests

```
pytest
```