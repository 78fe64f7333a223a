"""
Heap layout offsets, type tags and magic numbers.

Offsets are in words; multiply by the image address width to get bytes.
"""

LAYOUT_VERSION = 1


# Every heap object starts with its map
class HeapObjectOffset:
    """Offsets within any heap object."""
    MAP = 0


class MapOffset:
    """Offsets within a Map."""
    INSTANCE_SIZE = 1          # Smi, bytes (0 = variable sized)
    INSTANCE_TYPE = 2          # Smi
    INOBJECT_PROPERTIES = 3    # Smi
    BIT_FIELD3 = 4             # Smi
    DESCRIPTORS = 5            # DescriptorArray*
    CONSTRUCTOR_NAME = 6       # String* or Smi 0
    SIZE = 7


class MapBitField3:
    """Bits of Map::bit_field3."""
    OWN_DESCRIPTORS_MASK = 0x3FF
    DICTIONARY_MAP = 1 << 21


VARIABLE_SIZE = 0


class FixedArrayOffset:
    """Offsets within a FixedArray (also ScopeInfo and NameDictionary)."""
    LENGTH = 1
    HEADER = 2


class JSObjectOffset:
    """Offsets within a JSObject."""
    PROPERTIES = 1
    ELEMENTS = 2
    HEADER = 3


class JSArrayOffset:
    """Offsets within a JSArray."""
    LENGTH = 3
    HEADER = 4


class StringOffset:
    """Offsets shared by every string representation."""
    LENGTH = 1
    HASH = 2
    HEADER = 3
    CHARS = 3                  # SeqString payload, in words


class ConsStringOffset:
    FIRST = 3
    SECOND = 4
    SIZE = 5


class SlicedStringOffset:
    PARENT = 3
    OFFSET = 4                 # Smi
    SIZE = 5


class ThinStringOffset:
    ACTUAL = 3
    SIZE = 4


class HeapNumberOffset:
    VALUE = 1
    SIZE = 2


class OddballOffset:
    KIND = 1                   # Smi
    SIZE = 2


class DescriptorArrayOffset:
    """Offsets within a DescriptorArray."""
    NUMBER_OF_DESCRIPTORS = 1  # Smi
    FIRST_ENTRY = 2
    ENTRY_SIZE = 3
    KEY = 0
    DETAILS = 1
    VALUE = 2


class NameDictionaryOffset:
    """Slots within a NameDictionary (FixedArray shaped)."""
    NUMBER_OF_ELEMENTS = 0
    NUMBER_OF_DELETED = 1
    CAPACITY = 2
    NEXT_ENUMERATION_INDEX = 3
    HASH = 4
    FIRST_ENTRY = 5
    ENTRY_SIZE = 3
    KEY = 0
    VALUE = 1
    DETAILS = 2


class ContextSlot:
    """Slots within a Context (FixedArray shaped)."""
    SCOPE_INFO = 0
    PREVIOUS = 1
    EXTENSION = 2
    NATIVE_CONTEXT = 3
    MIN_CONTEXT_SLOTS = 4


class ScopeInfoSlot:
    """Slots within a ScopeInfo (FixedArray shaped)."""
    FLAGS = 0
    PARAMETER_COUNT = 1
    CONTEXT_LOCAL_COUNT = 2
    FIRST_LOCAL_NAME = 3


# Instance types
class InstanceType:
    """Runtime type tags stored in Map::instance_type."""
    # Strings occupy everything below FIRST_NONSTRING_TYPE
    FIRST_NONSTRING_TYPE = 0x80

    SYMBOL = 0x80
    HEAP_NUMBER = 0x81
    BIGINT = 0x82
    ODDBALL = 0x83
    MAP = 0x84
    CODE = 0x85
    FIXED_ARRAY = 0x86
    DESCRIPTOR_ARRAY = 0x87
    SCOPE_INFO = 0x88
    NAME_DICTIONARY = 0x89
    FIXED_DOUBLE_ARRAY = 0x8A

    FUNCTION_CONTEXT = 0x90
    BLOCK_CONTEXT = 0x91
    CATCH_CONTEXT = 0x92
    MODULE_CONTEXT = 0x93
    SCRIPT_CONTEXT = 0x94
    NATIVE_CONTEXT = 0x95
    FIRST_CONTEXT_TYPE = FUNCTION_CONTEXT
    LAST_CONTEXT_TYPE = NATIVE_CONTEXT

    JS_ARRAY_BUFFER = 0xA0
    JS_TYPED_ARRAY = 0xA1
    JS_DATA_VIEW = 0xA2
    JS_REGEXP = 0xA3
    JS_DATE = 0xA4
    JS_FUNCTION = 0xA5
    JS_ARRAY = 0xA6
    JS_ERROR = 0xA7
    JS_OBJECT = 0xA8
    JS_API_OBJECT = 0xA9
    JS_SPECIAL_API_OBJECT = 0xAA


OBJECT_FAMILY_TYPES = frozenset([
    InstanceType.JS_OBJECT,
    InstanceType.JS_API_OBJECT,
    InstanceType.JS_SPECIAL_API_OBJECT,
    InstanceType.JS_ERROR,
])


class StringTag:
    """Bits of a string instance type."""
    REPRESENTATION_MASK = 0x07
    SEQ = 0x0
    CONS = 0x1
    EXTERNAL = 0x2
    SLICED = 0x3
    THIN = 0x5

    ENCODING_MASK = 0x08
    TWO_BYTE = 0x00
    ONE_BYTE = 0x08

    INTERNALIZED = 0x10


class OddballKind:
    """Oddball::kind values."""
    FALSE = 0
    TRUE = 1
    THE_HOLE = 2
    NULL = 3
    ARGUMENTS_MARKER = 4
    UNDEFINED = 5
    UNINITIALIZED = 6
    EXCEPTION = 8


ODDBALL_NAMES = {
    OddballKind.FALSE: "false",
    OddballKind.TRUE: "true",
    OddballKind.THE_HOLE: "hole",
    OddballKind.NULL: "null",
    OddballKind.ARGUMENTS_MARKER: "arguments_marker",
    OddballKind.UNDEFINED: "undefined",
    OddballKind.UNINITIALIZED: "uninitialized",
    OddballKind.EXCEPTION: "exception",
}


class PropertyDetails:
    """Bit layout of a descriptor's details Smi."""
    KIND_MASK = 0x1            # 0 data, 1 accessor
    KIND_ACCESSOR = 0x1
    LOCATION_MASK = 0x2        # 0 field, 1 descriptor
    LOCATION_DESCRIPTOR = 0x2
    CONSTNESS_MASK = 0x4       # 0 mutable, 1 const
    CONSTNESS_CONST = 0x4
    REPRESENTATION_SHIFT = 3
    REPRESENTATION_MASK = 0x7 << 3
    FIELD_INDEX_SHIFT = 6
    FIELD_INDEX_MASK = 0x3FF << 6


class Representation:
    NONE = 0
    SMI = 1
    DOUBLE = 2
    HEAP_OBJECT = 3
    TAGGED = 4


# Tagging
SMI_TAG_MASK = 0x1
SMI_TAG = 0x0
HEAP_OBJECT_TAG_MASK = 0x3
HEAP_OBJECT_TAG = 0x1


def type_name_for(instance_type: int) -> str:
    """Generic name for objects that carry no constructor name."""
    if instance_type < InstanceType.FIRST_NONSTRING_TYPE:
        return "(String)"
    names = {
        InstanceType.SYMBOL: "(Symbol)",
        InstanceType.HEAP_NUMBER: "(HeapNumber)",
        InstanceType.BIGINT: "(BigInt)",
        InstanceType.ODDBALL: "(Oddball)",
        InstanceType.MAP: "(Map)",
        InstanceType.CODE: "(Code)",
        InstanceType.FIXED_ARRAY: "(FixedArray)",
        InstanceType.DESCRIPTOR_ARRAY: "(DescriptorArray)",
        InstanceType.SCOPE_INFO: "(ScopeInfo)",
        InstanceType.NAME_DICTIONARY: "(NameDictionary)",
        InstanceType.FIXED_DOUBLE_ARRAY: "(FixedDoubleArray)",
        InstanceType.JS_ARRAY_BUFFER: "(ArrayBuffer)",
        InstanceType.JS_TYPED_ARRAY: "(ArrayBufferView)",
        InstanceType.JS_DATA_VIEW: "(ArrayBufferView)",
        InstanceType.JS_REGEXP: "(RegExp)",
        InstanceType.JS_DATE: "(Date)",
        InstanceType.JS_FUNCTION: "(Function)",
        InstanceType.JS_ARRAY: "(Array)",
    }
    if InstanceType.FIRST_CONTEXT_TYPE <= instance_type <= InstanceType.LAST_CONTEXT_TYPE:
        return "(Context)"
    return names.get(instance_type, "<unknown>")
