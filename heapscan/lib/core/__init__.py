"""
Core library for reading captured process images.
"""

from .errors import (
    HeapScanError,
    ReadFailure,
    DecodeFailure,
    LookupMiss,
    ScanTargetError,
    SmallIntegerSearchError,
    CommandError,
)
from .memory import (
    ByteOrder,
    MemoryRegion,
    MemoryProvider,
    ImageMemoryProvider,
    MemoryCache,
    MemoryReader,
    MemoryScanner,
)

__all__ = [
    'HeapScanError',
    'ReadFailure',
    'DecodeFailure',
    'LookupMiss',
    'ScanTargetError',
    'SmallIntegerSearchError',
    'CommandError',
    'ByteOrder',
    'MemoryRegion',
    'MemoryProvider',
    'ImageMemoryProvider',
    'MemoryCache',
    'MemoryReader',
    'MemoryScanner',
]
