import struct

import pytest

from heapscan.lib.core.memory import (
    ByteOrder,
    ImageMemoryProvider,
    MemoryCache,
    MemoryReader,
    MemoryRegion,
    MemoryScanner,
)


def _words(*values, fmt="<Q") -> bytes:
    return b"".join(struct.pack(fmt, v) for v in values)


class FailingProvider(ImageMemoryProvider):
    """Image whose reads at one address always fail."""

    def __init__(self, segments, bad_addr):
        super().__init__(segments)
        self.bad_addr = bad_addr

    def read_bytes(self, addr, size):
        if addr == self.bad_addr:
            return None
        return super().read_bytes(addr, size)


def test_scan_visits_every_word_of_writable_regions():
    """Read-only regions are skipped; each word is seen once with its location."""
    writable = MemoryRegion(0x1000, 0x1020)
    readonly = MemoryRegion(0x2000, 0x2010, writable=False)
    provider = ImageMemoryProvider([
        (writable, _words(1, 2, 3, 4)),
        (readonly, _words(5, 6)),
    ])

    seen = []
    visited = MemoryScanner(provider).scan_regions(lambda loc, word: seen.append((loc, word)) or 8)

    assert visited == 4
    assert seen == [(0x1000, 1), (0x1008, 2), (0x1010, 3), (0x1018, 4)]


def test_block_size_is_rounded_to_whole_words():
    """A block size that is not a word multiple never splits a word."""
    provider = ImageMemoryProvider([(MemoryRegion(0x1000, 0x1040), _words(*range(8)))])
    seen = []
    MemoryScanner(provider, block_size=12).scan_regions(lambda loc, word: seen.append(word) or 8)
    assert seen == list(range(8))


def test_read_failure_abandons_rest_of_region():
    """The failed block and everything after it in the region is skipped."""
    first = MemoryRegion(0x1000, 0x1020)
    second = MemoryRegion(0x3000, 0x3010)
    provider = FailingProvider([
        (first, _words(1, 2, 3, 4)),
        (second, _words(7, 8)),
    ], bad_addr=0x1010)

    seen = []
    MemoryScanner(provider, block_size=16).scan_regions(lambda loc, word: seen.append(word) or 8)
    assert seen == [1, 2, 7, 8]


def test_visitor_returning_zero_aborts_region():
    """Returning 0 stops the current region only."""
    provider = ImageMemoryProvider([
        (MemoryRegion(0x1000, 0x1020), _words(1, 2, 3, 4)),
        (MemoryRegion(0x2000, 0x2010), _words(5, 6)),
    ])
    seen = []

    def visit(loc, word):
        seen.append(word)
        return 0 if word == 2 else 8

    MemoryScanner(provider).scan_regions(visit)
    assert seen == [1, 2, 5, 6]


def test_big_endian_32_bit_words():
    """Words are decoded in the byte order of the image."""
    region = MemoryRegion(0x1000, 0x1008)
    provider = ImageMemoryProvider([(region, _words(0x11223344, 0x55667788, fmt=">I"))],
                                   address_width=4, byte_order=ByteOrder.BIG)
    reader = MemoryReader(provider)
    assert reader.word_size == 4
    assert reader.read_word(0x1000) == 0x11223344
    assert reader.read_word(0x1004) == 0x55667788

    seen = []
    MemoryScanner(provider).scan_regions(lambda loc, word: seen.append(word) or 4)
    assert seen == [0x11223344, 0x55667788]


def test_reader_falls_back_when_chunk_exceeds_region():
    """A region smaller than a cache chunk can still be read."""
    provider = ImageMemoryProvider([(MemoryRegion(0x1000, 0x1018), _words(1, 2, 3))])
    reader = MemoryReader(provider)
    assert reader.read_word(0x1010) == 3
    assert reader.read_word(0x1018) is None
    assert reader.read(0, 8) is None


def test_reader_reads_doubles():
    data = struct.pack("<d", 2.5) + bytes(56)
    reader = MemoryReader(ImageMemoryProvider([(MemoryRegion(0x1000, 0x1040), data)]))
    assert reader.read_double(0x1000) == 2.5


def test_cache_evicts_least_recently_used():
    cache = MemoryCache(max_size=128)
    cache.put(0, bytes(64))
    cache.put(64, bytes([1]) * 64)
    assert cache.get(0, 8) == bytes(8)

    cache.put(128, bytes([2]) * 64)
    assert cache.get(64, 8) is None
    assert cache.get(0, 8) == bytes(8)
    assert cache.get(130, 4) == bytes([2]) * 4
    assert cache.current_size == 128


def test_provider_rejects_unsupported_width():
    with pytest.raises(ValueError):
        ImageMemoryProvider([], address_width=2)
