"""
Heap object layout model and printer.
"""

from .constants import (
    InstanceType,
    StringTag,
    OddballKind,
    LAYOUT_VERSION,
)
from .types import Map, Descriptor, DescriptorArray, FixedArray, is_smi, is_heap_object
from .layout import LayoutModel
from .inspector import ObjectPrinter, PrinterOptions

__all__ = [
    'InstanceType',
    'StringTag',
    'OddballKind',
    'LAYOUT_VERSION',
    'Map',
    'Descriptor',
    'DescriptorArray',
    'FixedArray',
    'is_smi',
    'is_heap_object',
    'LayoutModel',
    'ObjectPrinter',
    'PrinterOptions',
]
