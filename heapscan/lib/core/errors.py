"""
Error kinds raised while decoding a heap image.
"""


class HeapScanError(Exception):
    """Base class for all heapscan errors."""


class ReadFailure(HeapScanError):
    """The memory provider could not supply the requested bytes."""

    def __init__(self, addr: int, size: int):
        super().__init__(f"Cannot read {size} bytes at 0x{addr:x}")
        self.addr = addr
        self.size = size


class DecodeFailure(HeapScanError):
    """A value does not have the expected shape."""


class LookupMiss(HeapScanError):
    """An expected property or field is absent."""


class ScanTargetError(HeapScanError):
    """There is no valid process image to scan."""


class SmallIntegerSearchError(HeapScanError):
    """Small integers are not heap references and cannot be searched for."""


class CommandError(HeapScanError):
    """Invalid command arguments."""
