"""
Memory provider backed by an LLDB target (live process or core file).
"""

import lldb
from typing import Hashable, List, Optional

from .memory import ByteOrder, MemoryProvider, MemoryRegion


class LLDBMemoryProvider(MemoryProvider):
    """Read a process image through the LLDB SB API."""

    def __init__(self, target: lldb.SBTarget):
        self.target = target
        self.process = target.GetProcess() if target and target.IsValid() else None

    def is_valid(self) -> bool:
        return bool(self.target and self.target.IsValid()
                    and self.process and self.process.IsValid())

    def identity(self) -> Hashable:
        # A new target (or a reloaded core) gets a new unique id
        return (self.target.GetExecutable().fullpath,
                self.process.GetUniqueID() if self.process else None)

    def list_regions(self) -> List[MemoryRegion]:
        """Get list of memory regions."""
        regions = []
        region_list = self.process.GetMemoryRegions()
        region = lldb.SBMemoryRegionInfo()

        for i in range(region_list.GetSize()):
            if not region_list.GetMemoryRegionAtIndex(i, region):
                continue
            regions.append(MemoryRegion(
                start=region.GetRegionBase(),
                end=region.GetRegionEnd(),
                readable=region.IsReadable(),
                writable=region.IsWritable(),
                executable=region.IsExecutable()
            ))

        return regions

    def read_bytes(self, addr: int, size: int) -> Optional[bytes]:
        error = lldb.SBError()
        data = self.process.ReadMemory(addr, size, error)
        if error.Success() and data:
            return data
        return None

    def address_width(self) -> int:
        return self.process.GetAddressByteSize()

    def byte_order(self) -> ByteOrder:
        if self.process.GetByteOrder() == lldb.eByteOrderBig:
            return ByteOrder.BIG
        return ByteOrder.LITTLE
