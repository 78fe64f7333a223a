"""
Heap data structure representations.
"""

from dataclasses import dataclass
from typing import List, Optional, TYPE_CHECKING

from .constants import (
    DescriptorArrayOffset,
    FixedArrayOffset,
    HEAP_OBJECT_TAG,
    HEAP_OBJECT_TAG_MASK,
    MapBitField3,
    MapOffset,
    PropertyDetails,
    Representation,
    SMI_TAG,
    SMI_TAG_MASK,
)

if TYPE_CHECKING:
    from ..core.memory import MemoryReader


def is_smi(word: int) -> bool:
    """Check if a word is a tagged small integer."""
    return (word & SMI_TAG_MASK) == SMI_TAG


def is_heap_object(word: int) -> bool:
    """Check if a word is a tagged heap object pointer."""
    return (word & HEAP_OBJECT_TAG_MASK) == HEAP_OBJECT_TAG


def smi_value(word: int, word_size: int) -> int:
    """Decode a tagged small integer."""
    if word_size == 8:
        value = word >> 32
        if value & 0x80000000:
            value -= 1 << 32
    else:
        value = (word & 0xFFFFFFFF) >> 1
        if value & 0x40000000:
            value -= 1 << 31
    return value


def make_smi(value: int, word_size: int) -> int:
    """Encode a small integer as a tagged word."""
    if word_size == 8:
        return (value << 32) & 0xFFFFFFFFFFFFFFFF
    return (value << 1) & 0xFFFFFFFF


def untag(word: int) -> int:
    """Address of a tagged heap object pointer."""
    return word - HEAP_OBJECT_TAG


def read_words(reader: 'MemoryReader', word: int, first: int, count: int) -> Optional[List[int]]:
    """Read `count` consecutive words of the object `word`, starting at word `first`."""
    size = reader.word_size
    if count <= 0:
        return []
    data = reader.read(untag(word) + first * size, count * size)
    if data is None:
        return None
    return reader.unpack_words(data)


@dataclass
class Map:
    """Parsed Map structure."""
    addr: int                  # tagged pointer to the map
    instance_size: int
    instance_type: int
    inobject_properties: int
    bit_field3: int
    descriptors: int
    constructor_name: int

    @classmethod
    def from_memory(cls, reader: 'MemoryReader', addr: int) -> Optional['Map']:
        """Parse Map header from memory."""
        words = read_words(reader, addr, 0, MapOffset.SIZE)
        if words is None:
            return None

        smi_fields = (MapOffset.INSTANCE_SIZE, MapOffset.INSTANCE_TYPE,
                      MapOffset.INOBJECT_PROPERTIES, MapOffset.BIT_FIELD3)
        if not all(is_smi(words[i]) for i in smi_fields):
            return None

        size = reader.word_size
        return cls(
            addr=addr,
            instance_size=smi_value(words[MapOffset.INSTANCE_SIZE], size),
            instance_type=smi_value(words[MapOffset.INSTANCE_TYPE], size),
            inobject_properties=smi_value(words[MapOffset.INOBJECT_PROPERTIES], size),
            bit_field3=smi_value(words[MapOffset.BIT_FIELD3], size),
            descriptors=words[MapOffset.DESCRIPTORS],
            constructor_name=words[MapOffset.CONSTRUCTOR_NAME],
        )

    @property
    def own_descriptors(self) -> int:
        return self.bit_field3 & MapBitField3.OWN_DESCRIPTORS_MASK

    @property
    def is_dictionary_map(self) -> bool:
        return bool(self.bit_field3 & MapBitField3.DICTIONARY_MAP)

    def __repr__(self) -> str:
        return (f"Map(0x{self.addr:x}, type=0x{self.instance_type:x}, "
                f"size={self.instance_size}, descriptors={self.own_descriptors})")


@dataclass
class Descriptor:
    """One (key, details, value) entry of a DescriptorArray."""
    key: int
    details: int
    value: int

    @property
    def is_accessor(self) -> bool:
        return bool(self.details & PropertyDetails.KIND_ACCESSOR)

    @property
    def is_field(self) -> bool:
        """Data property stored in the object itself."""
        return not self.is_accessor and not (self.details & PropertyDetails.LOCATION_DESCRIPTOR)

    @property
    def is_const(self) -> bool:
        return bool(self.details & PropertyDetails.CONSTNESS_CONST)

    @property
    def is_const_field(self) -> bool:
        return self.is_field and self.is_const

    @property
    def is_descriptor(self) -> bool:
        """Value lives in the descriptor array rather than the object."""
        return bool(self.details & PropertyDetails.LOCATION_DESCRIPTOR)

    @property
    def representation(self) -> int:
        return (self.details & PropertyDetails.REPRESENTATION_MASK) >> PropertyDetails.REPRESENTATION_SHIFT

    @property
    def is_double_field(self) -> bool:
        return self.is_field and self.representation == Representation.DOUBLE

    @property
    def field_index(self) -> int:
        return (self.details & PropertyDetails.FIELD_INDEX_MASK) >> PropertyDetails.FIELD_INDEX_SHIFT


@dataclass
class DescriptorArray:
    """Parsed DescriptorArray."""
    addr: int
    entries: List[Descriptor]

    @classmethod
    def from_memory(cls, reader: 'MemoryReader', addr: int,
                    own_descriptors: int) -> Optional['DescriptorArray']:
        """Parse the first `own_descriptors` entries."""
        if not is_heap_object(addr):
            return None
        header = read_words(reader, addr, DescriptorArrayOffset.NUMBER_OF_DESCRIPTORS, 1)
        if header is None or not is_smi(header[0]):
            return None
        available = smi_value(header[0], reader.word_size)
        if own_descriptors > available or own_descriptors < 0:
            return None

        words = read_words(reader, addr, DescriptorArrayOffset.FIRST_ENTRY,
                           own_descriptors * DescriptorArrayOffset.ENTRY_SIZE)
        if words is None:
            return None

        entries = []
        for i in range(own_descriptors):
            base = i * DescriptorArrayOffset.ENTRY_SIZE
            details = words[base + DescriptorArrayOffset.DETAILS]
            entries.append(Descriptor(
                key=words[base + DescriptorArrayOffset.KEY],
                details=smi_value(details, reader.word_size) if is_smi(details) else 0,
                value=words[base + DescriptorArrayOffset.VALUE],
            ))
        return cls(addr=addr, entries=entries)


@dataclass
class FixedArray:
    """Parsed FixedArray header; slots are read on demand."""
    addr: int
    length: int

    @classmethod
    def from_memory(cls, reader: 'MemoryReader', addr: int) -> Optional['FixedArray']:
        if not is_heap_object(addr):
            return None
        words = read_words(reader, addr, FixedArrayOffset.LENGTH, 1)
        if words is None or not is_smi(words[0]):
            return None
        length = smi_value(words[0], reader.word_size)
        if length < 0:
            return None
        return cls(addr=addr, length=length)

    def get(self, reader: 'MemoryReader', index: int) -> Optional[int]:
        """Raw tagged value of slot `index`."""
        if index < 0 or index >= self.length:
            return None
        words = read_words(reader, self.addr, FixedArrayOffset.HEADER + index, 1)
        return words[0] if words else None

    def slots(self, reader: 'MemoryReader', start: int = 0,
              count: Optional[int] = None) -> Optional[List[int]]:
        """Raw tagged values of a run of slots."""
        if count is None:
            count = self.length - start
        if start < 0 or count < 0 or start + count > self.length:
            return None
        return read_words(reader, self.addr, FixedArrayOffset.HEADER + start, count)
