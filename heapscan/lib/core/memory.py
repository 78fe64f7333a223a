"""
Memory reading utilities over a captured process image.
"""

import struct
from typing import Callable, Hashable, List, Optional, Tuple
from dataclasses import dataclass
from collections import OrderedDict
from enum import Enum


# Pages are usually around 1MB, so this is more than enough per read
DEFAULT_BLOCK_SIZE = 1024 * 1024


class ByteOrder(Enum):
    """Byte order of the captured image."""
    LITTLE = "little"
    BIG = "big"


@dataclass
class MemoryRegion:
    """Represents a memory region."""
    start: int
    end: int
    readable: bool = True
    writable: bool = True
    executable: bool = False

    @property
    def size(self) -> int:
        return self.end - self.start

    def contains(self, addr: int, size: int = 1) -> bool:
        return self.start <= addr and addr + size <= self.end


class MemoryProvider:
    """Source of raw bytes for a process image.

    Subclasses supply regions and reads; everything above this layer
    only sees addresses and bytes.
    """

    def is_valid(self) -> bool:
        """Check if there is an image to read from."""
        return True

    def identity(self) -> Hashable:
        """Value that changes whenever the underlying image changes."""
        return id(self)

    def list_regions(self) -> List[MemoryRegion]:
        raise NotImplementedError

    def list_writable_regions(self) -> List[MemoryRegion]:
        """Regions that may hold heap objects."""
        return [r for r in self.list_regions() if r.writable]

    def read_bytes(self, addr: int, size: int) -> Optional[bytes]:
        """Read raw bytes, None on failure."""
        raise NotImplementedError

    def address_width(self) -> int:
        return 8

    def byte_order(self) -> ByteOrder:
        return ByteOrder.LITTLE


class ImageMemoryProvider(MemoryProvider):
    """Process image held in memory as (region, bytes) pairs."""

    def __init__(self, segments: List[Tuple[MemoryRegion, bytes]],
                 address_width: int = 8,
                 byte_order: ByteOrder = ByteOrder.LITTLE):
        if address_width not in (4, 8):
            raise ValueError(f"Unsupported address width: {address_width}")
        self._segments = sorted(segments, key=lambda s: s[0].start)
        self._address_width = address_width
        self._byte_order = byte_order

    def list_regions(self) -> List[MemoryRegion]:
        return [region for region, _ in self._segments]

    def read_bytes(self, addr: int, size: int) -> Optional[bytes]:
        if size <= 0:
            return None
        for region, data in self._segments:
            if region.contains(addr, size):
                offset = addr - region.start
                chunk = data[offset:offset + size]
                if len(chunk) == size:
                    return bytes(chunk)
                return None
        return None

    def address_width(self) -> int:
        return self._address_width

    def byte_order(self) -> ByteOrder:
        return self._byte_order


class MemoryCache:
    """LRU cache for memory reads."""

    CHUNK = 64

    def __init__(self, max_size: int = 1024 * 1024):  # 1MB default
        self.max_size = max_size
        self.cache: OrderedDict = OrderedDict()
        self.current_size = 0

    def get(self, addr: int, size: int) -> Optional[bytes]:
        """Get from cache if the whole range is available."""
        base = addr - (addr % self.CHUNK)
        result = bytearray()
        for chunk_addr in range(base, addr + size, self.CHUNK):
            chunk = self.cache.get(chunk_addr)
            if chunk is None:
                return None
            self.cache.move_to_end(chunk_addr)
            result.extend(chunk)
        start = addr - base
        data = bytes(result[start:start + size])
        return data if len(data) == size else None

    def put(self, addr: int, data: bytes):
        """Add chunk-aligned data to cache with LRU eviction."""
        for offset in range(0, len(data), self.CHUNK):
            chunk_addr = addr + offset
            chunk = data[offset:offset + self.CHUNK]
            if len(chunk) < self.CHUNK:
                break

            if chunk_addr in self.cache:
                self.current_size -= len(self.cache[chunk_addr])

            self.cache[chunk_addr] = chunk
            self.cache.move_to_end(chunk_addr)
            self.current_size += len(chunk)

            while self.current_size > self.max_size and self.cache:
                _, oldest = self.cache.popitem(last=False)
                self.current_size -= len(oldest)

    def invalidate(self):
        """Drop every cached chunk."""
        self.cache.clear()
        self.current_size = 0


class MemoryReader:
    """Word-level reads with caching, honouring the image byte order."""

    def __init__(self, provider: MemoryProvider, cache_size: int = 1024 * 1024):
        self.provider = provider
        self.cache = MemoryCache(cache_size)
        self.word_size = provider.address_width()
        prefix = '<' if provider.byte_order() == ByteOrder.LITTLE else '>'
        self._prefix = prefix
        self._word_fmt = prefix + ('Q' if self.word_size == 8 else 'I')

    def read(self, addr: int, size: int, use_cache: bool = True) -> Optional[bytes]:
        """Read memory with optional caching."""
        if addr <= 0 or size <= 0:
            return None

        if use_cache:
            cached = self.cache.get(addr, size)
            if cached is not None:
                return cached

        if use_cache:
            # Fill whole chunks so neighbouring fields hit the cache
            base = addr - (addr % MemoryCache.CHUNK)
            end = addr + size
            end += -end % MemoryCache.CHUNK
            data = self.provider.read_bytes(base, end - base)
            if data:
                self.cache.put(base, data)
                return data[addr - base:addr - base + size]

        data = self.provider.read_bytes(addr, size)
        if data and len(data) == size:
            return data
        return None

    def unpack_words(self, data: bytes) -> List[int]:
        """Decode a run of words in image byte order."""
        count = len(data) // self.word_size
        fmt = self._prefix + self._word_fmt[1] * count
        return list(struct.unpack(fmt, data[:count * self.word_size]))

    def read_word(self, addr: int) -> Optional[int]:
        """Read one pointer-sized unsigned word."""
        data = self.read(addr, self.word_size)
        if data is None:
            return None
        return struct.unpack(self._word_fmt, data)[0]

    def read_pointer(self, addr: int) -> Optional[int]:
        """Read pointer-sized value."""
        return self.read_word(addr)

    def read_double(self, addr: int) -> Optional[float]:
        data = self.read(addr, 8)
        if data is None:
            return None
        return struct.unpack(self._prefix + 'd', data)[0]

    def clear_cache(self):
        """Clear the memory cache."""
        self.cache.invalidate()


# Visitor receives (location, word) and returns how many bytes to advance.
# Returning 0 abandons the rest of the current region.
MemoryVisitor = Callable[[int, int], int]


class MemoryScanner:
    """Brute force walk over every aligned word of the writable regions."""

    def __init__(self, provider: MemoryProvider, block_size: int = DEFAULT_BLOCK_SIZE,
                 log: Optional[Callable[[str], None]] = None):
        self.provider = provider
        self.block_size = block_size
        self._log = log or (lambda msg: None)

    def scan_regions(self, visitor: MemoryVisitor) -> int:
        """Visit every word of every writable region. Returns words visited."""
        addr_size = self.provider.address_width()
        if addr_size == 4:
            fmt = 'I'
        elif addr_size == 8:
            fmt = 'Q'
        else:
            return 0
        fmt = ('<' if self.provider.byte_order() == ByteOrder.LITTLE else '>') + fmt

        # Keep blocks word aligned so no word straddles two reads
        block_size = max(self.block_size - self.block_size % addr_size, addr_size)
        regions = self.provider.list_writable_regions()
        self._log(f"Scanning {len(regions)} writable region(s)")

        visited = 0
        for region in regions:
            address_end = region.end
            aborted = False

            for block_start in range(region.start, address_end, block_size):
                loaded = min(address_end - block_start, block_size)
                block = self.provider.read_bytes(block_start, loaded)
                if not block:
                    self._log(f"Read failed at 0x{block_start:x}, "
                              f"skipping rest of region 0x{region.start:x}-0x{region.end:x}")
                    break

                j = 0
                while j + addr_size <= len(block):
                    word = struct.unpack_from(fmt, block, j)[0]
                    visited += 1
                    increment = visitor(block_start + j, word)
                    if increment == 0:
                        aborted = True
                        break
                    j += increment

                if aborted:
                    break

        return visited
