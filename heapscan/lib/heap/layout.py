"""
Query interface over the heap object layout.

The scanners never touch offsets directly; they ask the layout model to
classify words, decode strings and walk properties. Accessors raise
DecodeFailure, ReadFailure or LookupMiss; callers skip the offending
candidate or property.
"""

from typing import List, Optional, Tuple

from ..core.errors import DecodeFailure, LookupMiss, ReadFailure
from ..core.memory import ByteOrder, MemoryReader
from .constants import (
    ConsStringOffset,
    ContextSlot,
    FixedArrayOffset,
    HeapNumberOffset,
    InstanceType,
    JSObjectOffset,
    LAYOUT_VERSION,
    NameDictionaryOffset,
    OBJECT_FAMILY_TYPES,
    OddballKind,
    OddballOffset,
    ScopeInfoSlot,
    SlicedStringOffset,
    StringOffset,
    StringTag,
    ThinStringOffset,
    VARIABLE_SIZE,
    type_name_for,
)
from .types import (
    Descriptor,
    DescriptorArray,
    FixedArray,
    Map,
    is_heap_object,
    is_smi,
    read_words,
    smi_value,
    untag,
)


class LayoutModel:
    """Classify and decode heap objects of one image."""

    version = LAYOUT_VERSION

    def __init__(self, reader: MemoryReader):
        self.reader = reader
        self.word_size = reader.word_size

    # Classification

    def is_small_integer(self, word: int) -> bool:
        return is_smi(word)

    def smi_value(self, word: int) -> int:
        return smi_value(word, self.word_size)

    def as_heap_object(self, word: int) -> Optional[int]:
        """Return the tagged object if `word` points at something with a map word."""
        if not is_heap_object(word) or untag(word) <= 0:
            return None
        map_word = self.reader.read_pointer(untag(word))
        if map_word is None or not is_heap_object(map_word):
            return None
        return word

    def map_of(self, obj: int) -> Optional[Map]:
        """Map of a heap object, None unless the map's own map is the meta map."""
        map_word = self.reader.read_pointer(untag(obj))
        if map_word is None or not is_heap_object(map_word):
            return None

        heap_map = Map.from_memory(self.reader, map_word)
        if heap_map is None:
            return None

        meta_word = self.reader.read_pointer(untag(map_word))
        if meta_word is None or not is_heap_object(meta_word):
            return None
        meta_map = Map.from_memory(self.reader, meta_word)
        if meta_map is None or meta_map.instance_type != InstanceType.MAP:
            return None
        return heap_map

    def require_map(self, obj: int) -> Map:
        heap_map = self.map_of(obj) if is_heap_object(obj) else None
        if heap_map is None:
            raise DecodeFailure(f"0x{obj:x} is not a heap object")
        return heap_map

    def type_tag(self, obj: int) -> int:
        return self.require_map(obj).instance_type

    def first_non_string_type(self) -> int:
        return InstanceType.FIRST_NONSTRING_TYPE

    def is_object_family(self, tag: int) -> bool:
        return tag in OBJECT_FAMILY_TYPES

    def is_string_type(self, tag: int) -> bool:
        return tag < self.first_non_string_type()

    def is_context_type(self, tag: int) -> bool:
        return InstanceType.FIRST_CONTEXT_TYPE <= tag <= InstanceType.LAST_CONTEXT_TYPE

    def is_histogram_type(self, tag: int) -> bool:
        """Objects that are counted by the type histogram."""
        if self.is_object_family(tag):
            return True
        if tag in (InstanceType.JS_ARRAY, InstanceType.JS_TYPED_ARRAY):
            return True
        return self.is_string_type(tag)

    def is_string(self, word: int) -> bool:
        if not is_heap_object(word):
            return False
        heap_map = self.map_of(word)
        return heap_map is not None and self.is_string_type(heap_map.instance_type)

    def type_name(self, obj: int, heap_map: Optional[Map] = None) -> str:
        """Constructor name for JS objects, a bracketed kind for the rest."""
        heap_map = heap_map or self.require_map(obj)
        tag = heap_map.instance_type
        if self.is_object_family(tag):
            name = heap_map.constructor_name
            if is_heap_object(name) and self.is_string(name):
                try:
                    text = self.string_to_text(name)
                except (DecodeFailure, ReadFailure):
                    text = ""
                if text:
                    return text
            return "Object"
        return type_name_for(tag)

    def object_size(self, obj: int, heap_map: Optional[Map] = None) -> int:
        """Byte size reported by the map, derived from length when variable."""
        heap_map = heap_map or self.require_map(obj)
        if heap_map.instance_size != VARIABLE_SIZE:
            return heap_map.instance_size

        w = self.word_size
        tag = heap_map.instance_type
        if self.is_string_type(tag):
            representation = tag & StringTag.REPRESENTATION_MASK
            if representation == StringTag.SEQ:
                char_size = 1 if tag & StringTag.ENCODING_MASK == StringTag.ONE_BYTE else 2
                size = StringOffset.CHARS * w + self.string_length(obj) * char_size
                return size + (-size % w)
            if representation == StringTag.THIN:
                return ThinStringOffset.SIZE * w
            return ConsStringOffset.SIZE * w
        if tag in (InstanceType.FIXED_ARRAY, InstanceType.SCOPE_INFO,
                   InstanceType.NAME_DICTIONARY, InstanceType.DESCRIPTOR_ARRAY) \
                or self.is_context_type(tag):
            array = self._fixed_array(obj)
            return (FixedArrayOffset.HEADER + array.length) * w
        return 0

    # Oddballs and numbers

    def oddball_kind(self, word: int) -> Optional[int]:
        if not is_heap_object(word):
            return None
        heap_map = self.map_of(word)
        if heap_map is None or heap_map.instance_type != InstanceType.ODDBALL:
            return None
        words = read_words(self.reader, word, OddballOffset.KIND, 1)
        if not words or not is_smi(words[0]):
            return None
        return self.smi_value(words[0])

    def is_oddball(self, word: int) -> bool:
        return self.oddball_kind(word) is not None

    def is_hole(self, word: int) -> bool:
        return self.oddball_kind(word) == OddballKind.THE_HOLE

    def heap_number_value(self, obj: int) -> float:
        value = self.reader.read_double(untag(obj) + HeapNumberOffset.VALUE * self.word_size)
        if value is None:
            raise ReadFailure(untag(obj), 8)
        return value

    # Strings

    def string_length(self, obj: int) -> int:
        words = read_words(self.reader, obj, StringOffset.LENGTH, 1)
        if words is None:
            raise ReadFailure(untag(obj), self.word_size)
        if not is_smi(words[0]):
            raise DecodeFailure(f"String 0x{obj:x} has no valid length")
        length = self.smi_value(words[0])
        if length < 0:
            raise DecodeFailure(f"String 0x{obj:x} has negative length")
        return length

    def string_representation(self, obj: int) -> int:
        tag = self.type_tag(obj)
        if not self.is_string_type(tag):
            raise DecodeFailure(f"0x{obj:x} is not a string")
        return tag & StringTag.REPRESENTATION_MASK

    def string_components(self, obj: int) -> List[Tuple[str, int]]:
        """Strings a composite string points to, labelled by slot."""
        representation = self.string_representation(obj)
        if representation == StringTag.CONS:
            words = self._words(obj, ConsStringOffset.FIRST, 2)
            return [("<First>", words[0]), ("<Second>", words[1])]
        if representation == StringTag.SLICED:
            words = self._words(obj, SlicedStringOffset.PARENT, 1)
            return [("<Parent>", words[0])]
        if representation == StringTag.THIN:
            words = self._words(obj, ThinStringOffset.ACTUAL, 1)
            return [("<Actual>", words[0])]
        return []

    def string_to_text(self, obj: int, limit: int = 0) -> str:
        """Flatten any string representation to text."""
        parts: List[str] = []
        total = 0
        budget = 4 * self.string_length(obj) + 16
        stack = [obj]

        while stack:
            budget -= 1
            if budget < 0:
                raise DecodeFailure(f"String 0x{obj:x} does not terminate")

            word = stack.pop()
            tag = self.type_tag(word)
            if not self.is_string_type(tag):
                raise DecodeFailure(f"0x{word:x} is not a string")

            representation = tag & StringTag.REPRESENTATION_MASK
            if representation == StringTag.SEQ:
                text = self._seq_string(word, tag)
            elif representation == StringTag.CONS:
                first, second = self._words(word, ConsStringOffset.FIRST, 2)
                stack.append(second)
                stack.append(first)
                continue
            elif representation == StringTag.THIN:
                stack.append(self._words(word, ThinStringOffset.ACTUAL, 1)[0])
                continue
            elif representation == StringTag.SLICED:
                parent, offset = self._words(word, SlicedStringOffset.PARENT, 2)
                if not is_smi(offset):
                    raise DecodeFailure(f"Sliced string 0x{word:x} has no valid offset")
                start = self.smi_value(offset)
                text = self._flat_text(parent)[start:start + self.string_length(word)]
            else:
                raise DecodeFailure(f"Cannot decode external string 0x{word:x}")

            parts.append(text)
            total += len(text)
            if limit and total >= limit:
                break

        text = "".join(parts)
        return text[:limit] if limit else text

    def _flat_text(self, obj: int) -> str:
        """Text of a sequential string, following thin indirections."""
        word = obj
        seen = set()
        while word not in seen:
            seen.add(word)
            tag = self.type_tag(word)
            if not self.is_string_type(tag):
                raise DecodeFailure(f"0x{word:x} is not a string")
            representation = tag & StringTag.REPRESENTATION_MASK
            if representation == StringTag.SEQ:
                return self._seq_string(word, tag)
            if representation != StringTag.THIN:
                raise DecodeFailure(f"Slice parent 0x{obj:x} is not flat")
            word = self._words(word, ThinStringOffset.ACTUAL, 1)[0]
        raise DecodeFailure(f"Thin string 0x{obj:x} refers back to itself")

    def _seq_string(self, obj: int, tag: int) -> str:
        length = self.string_length(obj)
        if length == 0:
            return ""
        one_byte = tag & StringTag.ENCODING_MASK == StringTag.ONE_BYTE
        size = length if one_byte else length * 2
        addr = untag(obj) + StringOffset.CHARS * self.word_size
        data = self.reader.read(addr, size)
        if data is None:
            raise ReadFailure(addr, size)
        if one_byte:
            return data.decode('latin-1')
        little = self.reader.provider.byte_order() == ByteOrder.LITTLE
        return data.decode('utf-16-le' if little else 'utf-16-be', errors='replace')

    # Objects and arrays

    def _words(self, obj: int, first: int, count: int) -> List[int]:
        words = read_words(self.reader, obj, first, count)
        if words is None:
            raise ReadFailure(untag(obj) + first * self.word_size, count * self.word_size)
        return words

    def _fixed_array(self, word: int) -> FixedArray:
        array = FixedArray.from_memory(self.reader, word)
        if array is None:
            raise DecodeFailure(f"0x{word:x} is not a fixed array")
        return array

    def elements(self, obj: int) -> FixedArray:
        return self._fixed_array(self._words(obj, JSObjectOffset.ELEMENTS, 1)[0])

    def array_length(self, obj: int) -> int:
        """Number of indexed elements in the object's backing store."""
        return self.elements(obj).length

    def element_values(self, obj: int) -> List[int]:
        elements = self.elements(obj)
        values = elements.slots(self.reader)
        if values is None:
            raise ReadFailure(untag(elements.addr), elements.length * self.word_size)
        return values

    def own_descriptors(self, heap_map: Map) -> List[Descriptor]:
        count = heap_map.own_descriptors
        if count == 0:
            return []
        descriptors = DescriptorArray.from_memory(self.reader, heap_map.descriptors, count)
        if descriptors is None:
            raise DecodeFailure(f"Map 0x{heap_map.addr:x} has no valid descriptors")
        return descriptors.entries

    def field_value(self, obj: int, heap_map: Map, descriptor: Descriptor) -> int:
        """Read a field either from the object body or its properties store."""
        index = descriptor.field_index - heap_map.inobject_properties
        if index < 0:
            addr = untag(obj) + heap_map.instance_size + index * self.word_size
            value = self.reader.read_word(addr)
            if value is None:
                raise ReadFailure(addr, self.word_size)
            return value

        properties = self._fixed_array(self._words(obj, JSObjectOffset.PROPERTIES, 1)[0])
        value = properties.get(self.reader, index)
        if value is None:
            raise LookupMiss(f"0x{obj:x} has no out-of-object field {index}")
        return value

    def property_entries(self, obj: int) -> List[Tuple[int, int]]:
        """(key, value) pairs of the named properties of an object."""
        heap_map = self.require_map(obj)
        if heap_map.is_dictionary_map:
            return self._dictionary_entries(obj)

        entries = []
        for descriptor in self.own_descriptors(heap_map):
            if descriptor.is_field:
                try:
                    value = self.field_value(obj, heap_map, descriptor)
                except (DecodeFailure, ReadFailure, LookupMiss):
                    continue
            else:
                value = descriptor.value
            entries.append((descriptor.key, value))
        return entries

    def _dictionary_entries(self, obj: int) -> List[Tuple[int, int]]:
        dictionary = self._fixed_array(self._words(obj, JSObjectOffset.PROPERTIES, 1)[0])
        slots = dictionary.slots(self.reader)
        if slots is None or len(slots) <= NameDictionaryOffset.CAPACITY:
            raise DecodeFailure(f"0x{obj:x} has no valid property dictionary")
        capacity = slots[NameDictionaryOffset.CAPACITY]
        if not is_smi(capacity):
            raise DecodeFailure(f"0x{obj:x} has no valid dictionary capacity")

        entries = []
        for i in range(self.smi_value(capacity)):
            base = NameDictionaryOffset.FIRST_ENTRY + i * NameDictionaryOffset.ENTRY_SIZE
            if base + NameDictionaryOffset.VALUE >= len(slots):
                break
            key = slots[base + NameDictionaryOffset.KEY]
            if is_smi(key) or self.is_oddball(key):
                continue
            entries.append((key, slots[base + NameDictionaryOffset.VALUE]))
        return entries

    def property_names(self, heap_map: Map) -> List[str]:
        """Names of the map's own descriptors, in descriptor order."""
        names = []
        for descriptor in self.own_descriptors(heap_map):
            try:
                names.append(self.string_to_text(descriptor.key))
            except (DecodeFailure, ReadFailure):
                continue
        return names

    def keys(self, obj: int) -> List[str]:
        names = []
        for key, _ in self.property_entries(obj):
            try:
                names.append(self.string_to_text(key))
            except (DecodeFailure, ReadFailure):
                continue
        return names

    def get_property(self, obj: int, name: str) -> int:
        for key, value in self.property_entries(obj):
            try:
                if self.string_to_text(key) == name:
                    return value
            except (DecodeFailure, ReadFailure):
                continue
        raise LookupMiss(f"0x{obj:x} has no property {name!r}")

    # Contexts

    def context_locals(self, ctx: int) -> List[Tuple[int, int]]:
        """(name, value) pairs of the local variable slots of a context."""
        context = self._fixed_array(ctx)
        scope_info = self._fixed_array(context.get(self.reader, ContextSlot.SCOPE_INFO) or 0)
        count_word = scope_info.get(self.reader, ScopeInfoSlot.CONTEXT_LOCAL_COUNT)
        if count_word is None or not is_smi(count_word):
            raise DecodeFailure(f"Context 0x{ctx:x} has no valid scope info")

        count = self.smi_value(count_word)
        names = scope_info.slots(self.reader, ScopeInfoSlot.FIRST_LOCAL_NAME, count)
        values = context.slots(self.reader, ContextSlot.MIN_CONTEXT_SLOTS, count)
        if names is None or values is None:
            raise DecodeFailure(f"Context 0x{ctx:x} locals do not fit")
        return list(zip(names, values))
