"""
Lay out small synthetic heaps for the tests.

Every value handed out is a tagged word: heap objects are address + 1,
small integers come from `smi()`.
"""

import struct
from typing import Dict, Optional, Sequence, Tuple

from heapscan.lib.core.memory import ByteOrder, ImageMemoryProvider, MemoryReader, MemoryRegion
from heapscan.lib.heap.constants import (
    ConsStringOffset,
    ContextSlot,
    DescriptorArrayOffset,
    FixedArrayOffset,
    HeapNumberOffset,
    InstanceType,
    JSArrayOffset,
    JSObjectOffset,
    MapBitField3,
    MapOffset,
    NameDictionaryOffset,
    OddballKind,
    PropertyDetails,
    Representation,
    ScopeInfoSlot,
    SlicedStringOffset,
    StringOffset,
    StringTag,
    ThinStringOffset,
    VARIABLE_SIZE,
)
from heapscan.lib.heap.layout import LayoutModel
from heapscan.lib.heap.types import make_smi
from heapscan.lib.scan.session import ScanConfig, ScanSession

ONE_BYTE_SEQ = StringTag.SEQ | StringTag.ONE_BYTE
TWO_BYTE_SEQ = StringTag.SEQ | StringTag.TWO_BYTE
CONS = StringTag.CONS | StringTag.ONE_BYTE
SLICED = StringTag.SLICED | StringTag.ONE_BYTE
THIN = StringTag.THIN | StringTag.ONE_BYTE
EXTERNAL = StringTag.EXTERNAL | StringTag.ONE_BYTE


class HeapImage:
    """Bump allocator over one writable region."""

    def __init__(self, base: int = 0x100000, size: int = 0x8000, word_size: int = 8,
                 byte_order: ByteOrder = ByteOrder.LITTLE):
        self.base = base
        self.size = size
        self.word_size = word_size
        self.byte_order = byte_order
        self.data = bytearray(size)
        self.top = 0
        prefix = '<' if byte_order == ByteOrder.LITTLE else '>'
        self._prefix = prefix
        self._word_fmt = prefix + ('Q' if word_size == 8 else 'I')

        self.texts: Dict[int, str] = {}
        self._maps: Dict[Tuple, int] = {}
        self._names: Dict[str, int] = {}

        self.meta_map = self._meta_map()
        self.empty_descriptors = self._descriptor_array([])
        self.empty_fixed_array = self.fixed_array([])
        self.undefined = self.oddball(OddballKind.UNDEFINED)
        self.null = self.oddball(OddballKind.NULL)
        self.true = self.oddball(OddballKind.TRUE)
        self.false = self.oddball(OddballKind.FALSE)
        self.hole = self.oddball(OddballKind.THE_HOLE)

    # Raw memory

    def smi(self, value: int) -> int:
        return make_smi(value, self.word_size)

    def alloc(self, words: int) -> int:
        addr = self.base + self.top
        self.top += words * self.word_size
        if self.top > self.size:
            raise MemoryError("synthetic heap is full")
        return addr + 1

    def write_word(self, obj: int, index: int, value: int):
        offset = (obj - 1) - self.base + index * self.word_size
        struct.pack_into(self._word_fmt, self.data, offset, value)

    def write_words(self, obj: int, values: Sequence[int], start: int = 0):
        for i, value in enumerate(values):
            self.write_word(obj, start + i, value)

    def root(self, value: int) -> int:
        """A bare word pointing at `value`, standing in for a stack slot."""
        slot = self.alloc(1)
        self.write_word(slot, 0, value)
        return slot - 1

    def provider(self, extra_regions: Sequence[Tuple[MemoryRegion, bytes]] = ()) -> ImageMemoryProvider:
        segments = [(MemoryRegion(self.base, self.base + self.size), bytes(self.data))]
        segments.extend(extra_regions)
        return ImageMemoryProvider(segments, self.word_size, self.byte_order)

    # Maps

    def _meta_map(self) -> int:
        meta = self.alloc(MapOffset.SIZE)
        self._fill_map(meta, meta, InstanceType.MAP, MapOffset.SIZE * self.word_size)
        return meta

    def _fill_map(self, map_obj: int, meta: int, instance_type: int, instance_size: int,
                  inobject: int = 0, bit_field3: int = 0, descriptors: Optional[int] = None,
                  constructor_name: Optional[int] = None):
        self.write_words(map_obj, [
            meta,
            self.smi(instance_size),
            self.smi(instance_type),
            self.smi(inobject),
            self.smi(bit_field3),
            descriptors if descriptors is not None else self.smi(0),
            constructor_name if constructor_name is not None else self.smi(0),
        ])

    def make_map(self, instance_type: int, instance_size: int = VARIABLE_SIZE, inobject: int = 0,
                 own_descriptors: int = 0, dictionary: bool = False,
                 descriptors: Optional[int] = None, constructor_name: Optional[int] = None,
                 meta: Optional[int] = None) -> int:
        map_obj = self.alloc(MapOffset.SIZE)
        bit_field3 = own_descriptors & MapBitField3.OWN_DESCRIPTORS_MASK
        if dictionary:
            bit_field3 |= MapBitField3.DICTIONARY_MAP
        if descriptors is None and hasattr(self, 'empty_descriptors'):
            descriptors = self.empty_descriptors
        self._fill_map(map_obj, meta or self.meta_map, instance_type, instance_size,
                       inobject, bit_field3, descriptors, constructor_name)
        return map_obj

    def shared_map(self, instance_type: int, instance_size: int = VARIABLE_SIZE) -> int:
        key = (instance_type, instance_size)
        if key not in self._maps:
            self._maps[key] = self.make_map(instance_type, instance_size)
        return self._maps[key]

    # Primitive objects

    def oddball(self, kind: int) -> int:
        obj = self.alloc(2)
        oddball_map = self.shared_map(InstanceType.ODDBALL, 2 * self.word_size)
        self.write_words(obj, [oddball_map, self.smi(kind)])
        return obj

    def heap_number(self, value: float) -> int:
        words = max(HeapNumberOffset.SIZE, 1 + 8 // self.word_size)
        obj = self.alloc(words)
        number_map = self.shared_map(InstanceType.HEAP_NUMBER, words * self.word_size)
        self.write_word(obj, 0, number_map)
        offset = (obj - 1) - self.base + HeapNumberOffset.VALUE * self.word_size
        struct.pack_into(self._prefix + 'd', self.data, offset, value)
        return obj

    def fixed_array(self, values: Sequence[int], instance_type: int = InstanceType.FIXED_ARRAY) -> int:
        obj = self.alloc(FixedArrayOffset.HEADER + len(values))
        self.write_words(obj, [self.shared_map(instance_type), self.smi(len(values))])
        self.write_words(obj, values, FixedArrayOffset.HEADER)
        return obj

    # Strings

    def seq_string(self, text: str, two_byte: bool = False) -> int:
        if two_byte:
            encoding = 'utf-16-le' if self.byte_order == ByteOrder.LITTLE else 'utf-16-be'
            data = text.encode(encoding)
            tag = TWO_BYTE_SEQ
        else:
            data = text.encode('latin-1')
            tag = ONE_BYTE_SEQ
        char_words = (len(data) + self.word_size - 1) // self.word_size
        obj = self.alloc(StringOffset.CHARS + char_words)
        self.write_words(obj, [self.shared_map(tag), self.smi(len(text)), self.smi(0)])
        offset = (obj - 1) - self.base + StringOffset.CHARS * self.word_size
        self.data[offset:offset + len(data)] = data
        self.texts[obj] = text
        return obj

    def name(self, text: str) -> int:
        """Internalized string, shared by every use of the same text."""
        if text not in self._names:
            self._names[text] = self.seq_string(text)
        return self._names[text]

    def cons_string(self, first: int, second: int) -> int:
        obj = self.alloc(ConsStringOffset.SIZE)
        text = self.texts[first] + self.texts[second]
        cons_map = self.shared_map(CONS, ConsStringOffset.SIZE * self.word_size)
        self.write_words(obj, [cons_map, self.smi(len(text)), self.smi(0), first, second])
        self.texts[obj] = text
        return obj

    def sliced_string(self, parent: int, offset: int, length: int) -> int:
        obj = self.alloc(SlicedStringOffset.SIZE)
        sliced_map = self.shared_map(SLICED, SlicedStringOffset.SIZE * self.word_size)
        self.write_words(obj, [sliced_map, self.smi(length), self.smi(0), parent, self.smi(offset)])
        self.texts[obj] = self.texts[parent][offset:offset + length]
        return obj

    def thin_string(self, actual: int) -> int:
        obj = self.alloc(ThinStringOffset.SIZE)
        thin_map = self.shared_map(THIN, ThinStringOffset.SIZE * self.word_size)
        self.write_words(obj, [thin_map, self.smi(len(self.texts[actual])), self.smi(0), actual])
        self.texts[obj] = self.texts[actual]
        return obj

    def external_string(self, length: int) -> int:
        obj = self.alloc(4)
        external_map = self.shared_map(EXTERNAL, 4 * self.word_size)
        self.write_words(obj, [external_map, self.smi(length), self.smi(0), self.smi(0)])
        return obj

    # Objects

    def _details(self, field_index: int, const: bool = False, in_descriptor: bool = False,
                 representation: int = Representation.TAGGED) -> int:
        details = representation << PropertyDetails.REPRESENTATION_SHIFT
        details |= field_index << PropertyDetails.FIELD_INDEX_SHIFT
        if const:
            details |= PropertyDetails.CONSTNESS_CONST
        if in_descriptor:
            details |= PropertyDetails.LOCATION_DESCRIPTOR
        return details

    def _descriptor_array(self, entries: Sequence[Tuple[int, int, int]]) -> int:
        words = DescriptorArrayOffset.FIRST_ENTRY + len(entries) * DescriptorArrayOffset.ENTRY_SIZE
        obj = self.alloc(words)
        descriptor_map = self.shared_map(InstanceType.DESCRIPTOR_ARRAY)
        self.write_words(obj, [descriptor_map, self.smi(len(entries))])
        for i, (key, details, value) in enumerate(entries):
            base = DescriptorArrayOffset.FIRST_ENTRY + i * DescriptorArrayOffset.ENTRY_SIZE
            self.write_words(obj, [key, self.smi(details), value], base)
        return obj

    def object_map(self, names: Sequence[str], constructor: Optional[str] = None,
                   instance_type: int = InstanceType.JS_OBJECT, in_object: bool = True,
                   header: int = JSObjectOffset.HEADER, const_names: Sequence[str] = (),
                   double_names: Sequence[str] = (),
                   descriptor_values: Optional[Dict[str, int]] = None) -> int:
        """Map with one descriptor per name; fields are numbered in order."""
        descriptor_values = descriptor_values or {}
        entries = []
        field_index = 0
        for name in names:
            if name in descriptor_values:
                entries.append((self.name(name), self._details(0, in_descriptor=True),
                                descriptor_values[name]))
                continue
            representation = Representation.DOUBLE if name in double_names else Representation.TAGGED
            details = self._details(field_index, const=name in const_names,
                                    representation=representation)
            entries.append((self.name(name), details, self.smi(0)))
            field_index += 1

        inobject = field_index if in_object else 0
        descriptors = self._descriptor_array(entries) if entries else self.empty_descriptors
        constructor_name = self.name(constructor) if constructor else None
        return self.make_map(instance_type, (header + inobject) * self.word_size,
                             inobject=inobject, own_descriptors=len(entries),
                             descriptors=descriptors, constructor_name=constructor_name)

    def js_object(self, props: Sequence[Tuple[str, int]] = (), constructor: Optional[str] = None,
                  elements: Optional[Sequence[int]] = None, map_obj: Optional[int] = None,
                  instance_type: int = InstanceType.JS_OBJECT, in_object: bool = True,
                  const_names: Sequence[str] = (), double_names: Sequence[str] = (),
                  descriptor_values: Optional[Dict[str, int]] = None) -> int:
        """Object whose field values follow `props` order."""
        descriptor_values = descriptor_values or {}
        names = [name for name, _ in props]
        if map_obj is None:
            map_obj = self.object_map(names, constructor, instance_type, in_object,
                                      const_names=const_names, double_names=double_names,
                                      descriptor_values=descriptor_values)
        values = [value for name, value in props if name not in descriptor_values]

        elements_obj = self.fixed_array(elements) if elements else self.empty_fixed_array
        if in_object:
            obj = self.alloc(JSObjectOffset.HEADER + len(values))
            self.write_words(obj, [map_obj, self.empty_fixed_array, elements_obj])
            self.write_words(obj, values, JSObjectOffset.HEADER)
        else:
            obj = self.alloc(JSObjectOffset.HEADER)
            self.write_words(obj, [map_obj, self.fixed_array(values), elements_obj])
        return obj

    def dictionary_object(self, props: Sequence[Tuple[str, int]],
                          constructor: Optional[str] = None) -> int:
        """Object in dictionary mode, with one unused dictionary entry."""
        capacity = len(props) + 1
        slots = [self.smi(len(props)), self.smi(0), self.smi(capacity), self.smi(len(props) + 1),
                 self.smi(0)]
        for name, value in props:
            slots.extend([self.name(name), value, self.smi(0)])
        slots.extend([self.undefined, self.undefined, self.smi(0)])
        assert len(slots) == NameDictionaryOffset.FIRST_ENTRY + capacity * NameDictionaryOffset.ENTRY_SIZE
        dictionary = self.fixed_array(slots, InstanceType.NAME_DICTIONARY)

        constructor_name = self.name(constructor) if constructor else None
        map_obj = self.make_map(InstanceType.JS_OBJECT, JSObjectOffset.HEADER * self.word_size,
                                dictionary=True, constructor_name=constructor_name)
        obj = self.alloc(JSObjectOffset.HEADER)
        self.write_words(obj, [map_obj, dictionary, self.empty_fixed_array])
        return obj

    def js_array(self, values: Sequence[int]) -> int:
        array_map = self.shared_map(InstanceType.JS_ARRAY, JSArrayOffset.HEADER * self.word_size)
        elements = self.fixed_array(values) if values else self.empty_fixed_array
        obj = self.alloc(JSArrayOffset.HEADER)
        self.write_words(obj, [array_map, self.empty_fixed_array, elements, self.smi(len(values))])
        return obj

    def typed_array(self) -> int:
        typed_map = self.shared_map(InstanceType.JS_TYPED_ARRAY, JSObjectOffset.HEADER * self.word_size)
        obj = self.alloc(JSObjectOffset.HEADER)
        self.write_words(obj, [typed_map, self.empty_fixed_array, self.empty_fixed_array])
        return obj

    def context(self, local_slots: Sequence[Tuple[str, int]]) -> int:
        """Function context holding the given closure locals."""
        scope_slots = [self.smi(0), self.smi(0), self.smi(len(local_slots))]
        scope_slots.extend(self.name(name) for name, _ in local_slots)
        scope_info = self.fixed_array(scope_slots, InstanceType.SCOPE_INFO)

        slots = [scope_info, self.smi(0), self.smi(0), self.smi(0)]
        assert len(slots) == ContextSlot.MIN_CONTEXT_SLOTS
        slots.extend(value for _, value in local_slots)
        assert ScopeInfoSlot.FIRST_LOCAL_NAME == 3
        return self.fixed_array(slots, InstanceType.FUNCTION_CONTEXT)


def layout_for(heap: HeapImage) -> LayoutModel:
    return LayoutModel(MemoryReader(heap.provider()))


def scanned_session(heap: HeapImage, map_cache=None, **config) -> ScanSession:
    """Session that has already built the histogram of `heap`."""
    session = ScanSession(ScanConfig(**config))
    session.scan_heap_for_objects(heap.provider(), map_cache=map_cache)
    return session
