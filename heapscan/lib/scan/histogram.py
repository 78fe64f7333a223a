"""
Type histogram of the objects found in a heap image.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

from ..core.errors import DecodeFailure, LookupMiss, ReadFailure
from ..heap.constants import InstanceType
from ..heap.layout import LayoutModel
from ..heap.types import Map


@dataclass
class TypeRecord:
    """Instances sharing one type name."""
    type_name: str
    total_size: int = 0
    # Insertion ordered set of tagged addresses
    instances: Dict[int, None] = field(default_factory=dict)

    @property
    def instance_count(self) -> int:
        return len(self.instances)

    def add_instance(self, addr: int, size: int) -> bool:
        """Record an instance once. Returns False if it was already present."""
        if addr in self.instances:
            return False
        self.instances[addr] = None
        self.total_size += size
        return True

    def sample(self) -> Optional[int]:
        """First instance recorded."""
        return next(iter(self.instances), None)

    def sort_key(self) -> Tuple[int, int, str]:
        return (self.instance_count, self.total_size, self.type_name)


@dataclass
class DetailedTypeRecord(TypeRecord):
    """Instances sharing a type name, element count and property list."""
    own_descriptors: int = 0
    indexed_properties: int = 0


@dataclass
class MapCacheEntry:
    """Classification shared by every object of one map."""
    type_name: str = ""
    is_context: bool = False
    is_histogram: bool = False
    own_descriptors: int = 0
    properties: List[str] = field(default_factory=list)

    @classmethod
    def load(cls, layout: LayoutModel, obj: int, heap_map: Map) -> 'MapCacheEntry':
        tag = heap_map.instance_type
        if layout.is_context_type(tag):
            return cls(is_context=True)

        entry = cls(is_histogram=layout.is_histogram_type(tag))
        if entry.is_histogram:
            entry.type_name = layout.type_name(obj, heap_map)
        entry.own_descriptors = heap_map.own_descriptors
        entry.properties = layout.property_names(heap_map)
        return entry

    def type_name_with_properties(self, indexed_count: Optional[int] = None,
                                  max_properties: int = 0) -> str:
        """Type name followed by the first `max_properties` names (0 = all)."""
        name = self.type_name
        if indexed_count is not None:
            name += f"[{indexed_count}]"

        shown = self.properties
        if max_properties:
            shown = self.properties[:max_properties]
        for i, prop in enumerate(shown):
            name += (", " if i else ": ") + prop
        if len(shown) < len(self.properties):
            name += ", ..."
        return name


class ContextSet:
    """Addresses of closure context objects."""

    def __init__(self):
        self._contexts: Dict[int, None] = {}

    def add(self, addr: int):
        self._contexts[addr] = None

    def __contains__(self, addr: int) -> bool:
        return addr in self._contexts

    def __len__(self) -> int:
        return len(self._contexts)

    def __iter__(self) -> Iterator[int]:
        return iter(sorted(self._contexts))

    def clear(self):
        self._contexts.clear()


class TypeHistogram:
    """Type name to instances, plus a detailed variant keyed by shape."""

    def __init__(self):
        self.records: Dict[str, TypeRecord] = {}
        self.detailed_records: Dict[str, DetailedTypeRecord] = {}

    def add(self, entry: MapCacheEntry, addr: int, size: int, indexed_count: int,
            key_property_limit: int = 0, detailed_property_count: int = 3):
        """File one instance under its coarse and its detailed bucket."""
        record = self.records.get(entry.type_name)
        if record is None:
            record = self.records[entry.type_name] = TypeRecord(entry.type_name)
        record.add_instance(addr, size)

        key = entry.type_name_with_properties(indexed_count, key_property_limit)
        detailed = self.detailed_records.get(key)
        if detailed is None:
            detailed = self.detailed_records[key] = DetailedTypeRecord(
                entry.type_name_with_properties(None, detailed_property_count),
                own_descriptors=entry.own_descriptors,
                indexed_properties=indexed_count,
            )
        detailed.add_instance(addr, size)

    def get(self, type_name: str) -> Optional[TypeRecord]:
        return self.records.get(type_name)

    def sorted_records(self) -> List[TypeRecord]:
        """Ascending by instance count, then total size, then name."""
        return sorted(self.records.values(), key=TypeRecord.sort_key)

    def sorted_detailed_records(self) -> List[DetailedTypeRecord]:
        items = sorted(self.detailed_records.items(),
                       key=lambda item: (item[1].sort_key(), item[0]))
        return [record for _, record in items]

    def instances(self) -> Iterator[Tuple[TypeRecord, int]]:
        """Every recorded instance, grouped by type name in name order."""
        for name in sorted(self.records):
            record = self.records[name]
            for addr in list(record.instances):
                yield record, addr

    def total_instances(self) -> int:
        return sum(r.instance_count for r in self.records.values())

    def total_size(self) -> int:
        return sum(r.total_size for r in self.records.values())

    def is_empty(self) -> bool:
        return not self.records

    def clear(self):
        self.records.clear()
        self.detailed_records.clear()


class FindObjectsVisitor:
    """Memory visitor that files every decodable object it is pointed at."""

    def __init__(self, layout: LayoutModel, histogram: TypeHistogram, contexts: ContextSet,
                 map_cache: Optional[Dict[int, MapCacheEntry]] = None,
                 key_property_limit: int = 0, detailed_property_count: int = 3):
        self.layout = layout
        self.histogram = histogram
        self.contexts = contexts
        self.map_cache = map_cache
        self.key_property_limit = key_property_limit
        self.detailed_property_count = detailed_property_count
        self.word_size = layout.word_size
        self.found_count = 0

    def __call__(self, location: int, word: int) -> int:
        # Always advance one word; objects are not assumed to be contiguous
        step = self.word_size
        layout = self.layout

        if layout.is_small_integer(word):
            return step
        obj = layout.as_heap_object(word)
        if obj is None:
            return step
        heap_map = layout.map_of(obj)
        if heap_map is None:
            return step

        entry = self._classify(obj, heap_map)
        if entry is None:
            return step

        if entry.is_context:
            self.contexts.add(obj)
            return step
        if not entry.is_histogram:
            return step

        try:
            indexed_count = self._indexed_count(obj, heap_map.instance_type)
            size = layout.object_size(obj, heap_map)
        except (DecodeFailure, ReadFailure, LookupMiss):
            return step

        self.histogram.add(entry, obj, size, indexed_count,
                           self.key_property_limit, self.detailed_property_count)
        self.found_count += 1
        return step

    def _classify(self, obj: int, heap_map: Map) -> Optional[MapCacheEntry]:
        if self.map_cache is not None:
            entry = self.map_cache.get(heap_map.addr)
            if entry is not None:
                return entry
        try:
            entry = MapCacheEntry.load(self.layout, obj, heap_map)
        except (DecodeFailure, ReadFailure, LookupMiss):
            return None
        if self.map_cache is not None:
            self.map_cache[heap_map.addr] = entry
        return entry

    def _indexed_count(self, obj: int, tag: int) -> int:
        if self.layout.is_object_family(tag) or tag == InstanceType.JS_ARRAY:
            return self.layout.array_length(obj)
        return 0
