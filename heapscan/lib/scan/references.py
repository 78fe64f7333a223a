"""
Reference indices: who points at a value, who has a property, who holds a string.
"""

from enum import Enum
from typing import TYPE_CHECKING, Callable, Dict, Hashable, List, Set

from ..core.errors import DecodeFailure, LookupMiss, ReadFailure
from ..heap.constants import InstanceType
from ..heap.layout import LayoutModel
from ..heap.types import is_heap_object

if TYPE_CHECKING:
    from .session import ScanSession


class ScanType(Enum):
    """Which index a search goes through."""
    VALUE = "value"
    PROPERTY = "property"
    STRING = "string"


class ReferenceIndex:
    """Three maps from a key to the addresses referencing it.

    `get_references` creates an empty entry for a key it has never seen, so
    key presence alone does not mean anything references the key. Use
    `was_queried` to tell looked-up keys apart and `is_loaded` to know
    whether an indexing pass has populated a kind.
    """

    def __init__(self):
        self._maps: Dict[ScanType, Dict[Hashable, List[int]]] = {kind: {} for kind in ScanType}
        self._queried: Dict[ScanType, Set[Hashable]] = {kind: set() for kind in ScanType}
        self._added: Dict[ScanType, int] = {kind: 0 for kind in ScanType}

    def get_references(self, kind: ScanType, key: Hashable) -> List[int]:
        """Referrers of `key`, in scan order. Creates the entry if missing."""
        self._queried[kind].add(key)
        return self._maps[kind].setdefault(key, [])

    def add_reference(self, kind: ScanType, key: Hashable, source: int):
        self._maps[kind].setdefault(key, []).append(source)
        self._added[kind] += 1

    def is_loaded(self, kind: ScanType) -> bool:
        """True once an indexing pass recorded at least one reference."""
        return self._added[kind] > 0

    def was_queried(self, kind: ScanType, key: Hashable) -> bool:
        return key in self._queried[kind]

    def has_key(self, kind: ScanType, key: Hashable) -> bool:
        return key in self._maps[kind]

    def key_count(self, kind: ScanType) -> int:
        return len(self._maps[kind])

    def clear(self):
        for kind in ScanType:
            self._maps[kind].clear()
            self._queried[kind].clear()
            self._added[kind] = 0


ScanRule = Callable[[LayoutModel, ReferenceIndex, int], None]


def _element_values(layout: LayoutModel, obj: int) -> List[int]:
    try:
        return layout.element_values(obj)
    except (DecodeFailure, ReadFailure, LookupMiss):
        return []


def _string_text(layout: LayoutModel, word: int):
    """Text of `word` if it is a decodable string, else None."""
    if not is_heap_object(word) or not layout.is_string(word):
        return None
    try:
        return layout.string_to_text(word)
    except (DecodeFailure, ReadFailure):
        return None


# Objects and arrays

def _scan_object_values(layout: LayoutModel, index: ReferenceIndex, obj: int):
    already_saved = set()
    for value in _element_values(layout, obj):
        if value in already_saved:
            continue
        index.add_reference(ScanType.VALUE, value, obj)
        already_saved.add(value)

    for _, value in layout.property_entries(obj):
        if value in already_saved:
            continue
        index.add_reference(ScanType.VALUE, value, obj)
        already_saved.add(value)


def _scan_object_properties(layout: LayoutModel, index: ReferenceIndex, obj: int):
    # Elements have no names
    for key, _ in layout.property_entries(obj):
        try:
            name = layout.string_to_text(key)
        except (DecodeFailure, ReadFailure):
            continue
        index.add_reference(ScanType.PROPERTY, name, obj)


def _scan_object_strings(layout: LayoutModel, index: ReferenceIndex, obj: int):
    already_saved = set()
    values = _element_values(layout, obj)
    values.extend(value for _, value in layout.property_entries(obj))
    for value in values:
        text = _string_text(layout, value)
        if text is None or text in already_saved:
            continue
        index.add_reference(ScanType.STRING, text, obj)
        already_saved.add(text)


# Strings

def _scan_string_values(layout: LayoutModel, index: ReferenceIndex, string: int):
    already_saved = set()
    for _, component in layout.string_components(string):
        # A cons string of two identical halves refers to it once
        if component in already_saved:
            continue
        index.add_reference(ScanType.VALUE, component, string)
        already_saved.add(component)


def _scan_string_properties(layout: LayoutModel, index: ReferenceIndex, string: int):
    pass


def _scan_string_strings(layout: LayoutModel, index: ReferenceIndex, string: int):
    already_saved = set()
    for _, component in layout.string_components(string):
        text = _string_text(layout, component)
        if text is None or text in already_saved:
            continue
        index.add_reference(ScanType.STRING, text, string)
        already_saved.add(text)


OBJECT_SCANNERS: Dict[ScanType, ScanRule] = {
    ScanType.VALUE: _scan_object_values,
    ScanType.PROPERTY: _scan_object_properties,
    ScanType.STRING: _scan_object_strings,
}

STRING_SCANNERS: Dict[ScanType, ScanRule] = {
    ScanType.VALUE: _scan_string_values,
    ScanType.PROPERTY: _scan_string_properties,
    ScanType.STRING: _scan_string_strings,
}


def scan_for_references(session: 'ScanSession', kind: ScanType) -> int:
    """Walk every histogram instance and populate one index. Returns sources scanned."""
    layout = session.layout
    index = session.references
    scan_object = OBJECT_SCANNERS[kind]
    scan_string = STRING_SCANNERS[kind]

    scanned = 0
    for _, addr in session.histogram.instances():
        try:
            tag = layout.type_tag(addr)
            if layout.is_object_family(tag) or tag == InstanceType.JS_ARRAY:
                # Objects can have elements and arrays can have named properties
                scan_object(layout, index, addr)
            elif layout.is_string_type(tag):
                scan_string(layout, index, addr)
            else:
                # Typed arrays point at off-heap memory
                continue
        except (DecodeFailure, ReadFailure, LookupMiss) as e:
            session.log(f"Skipping 0x{addr:x} while indexing by {kind.value}: {e}")
            continue
        scanned += 1

    session.log(f"Indexed {scanned} object(s) by {kind.value}, "
                f"{index.key_count(kind)} key(s)")
    return scanned
