"""
Heap snapshot export in the .heapsnapshot JSON format understood by
Chrome DevTools and other heap viewers.
"""

import json
from dataclasses import dataclass
from enum import IntEnum
from typing import TYPE_CHECKING, Dict, List, Optional

from ..core.errors import DecodeFailure, LookupMiss, ReadFailure
from ..heap.constants import InstanceType, StringTag
from .references import ScanType

if TYPE_CHECKING:
    from .session import ScanSession


class NodeType(IntEnum):
    """Node type, as an index into meta.node_types[0]."""
    HIDDEN = 0
    ARRAY = 1
    STRING = 2
    OBJECT = 3
    CODE = 4
    CLOSURE = 5
    REGEXP = 6
    NUMBER = 7
    NATIVE = 8
    SYNTHETIC = 9
    CONS_STRING = 10
    SLICED_STRING = 11
    SYMBOL = 12
    SIMD = 13
    INVALID = 14


class EdgeType(IntEnum):
    """Edge type, as an index into meta.edge_types[0]."""
    CONTEXT = 0
    ELEMENT = 1
    PROPERTY = 2
    INTERNAL = 3
    HIDDEN = 4
    SHORTCUT = 5
    WEAK = 6


NODE_FIELDS = ["type", "name", "id", "self_size", "edge_count", "trace_node_id"]
EDGE_FIELDS = ["type", "name_or_index", "to_node"]

ROOT_NODE_ID = 1
GC_ROOTS_NODE_ID = 2
FIRST_OBJECT_NODE_ID = 4
NODE_ID_STEP = 2

# Edges point at the first field of the target node in the flat nodes array
UNRESOLVED_NODE = 0

SNAPSHOT_META = {
    "node_fields": NODE_FIELDS,
    "node_types": [
        ["hidden", "array", "string", "object", "code", "closure", "regexp", "number",
         "native", "synthetic", "concatenated string", "sliced string"],
        "string", "number", "number", "number", "number", "number",
    ],
    "edge_fields": EDGE_FIELDS,
    "edge_types": [
        ["context", "element", "property", "internal", "hidden", "shortcut", "weak"],
        "string_or_number", "node",
    ],
    "trace_function_info_fields": ["function_id", "name", "script_name", "script_id",
                                   "line", "column"],
    "trace_node_fields": ["id", "function_info_index", "count", "size", "children"],
    "sample_fields": ["timestamp_us", "last_assigned_id"],
}


@dataclass
class HeapGraphNode:
    """One object in the exported graph."""
    address: int
    node_type: NodeType
    name: int                  # string table id
    id: int
    self_size: int
    edge_count: int = 0
    trace_node_id: int = 0

    def fields(self) -> List[int]:
        return [int(self.node_type), self.name, self.id, self.self_size,
                self.edge_count, self.trace_node_id]


@dataclass
class HeapGraphEdge:
    """Directed, labelled link from a node to another address."""
    edge_type: EdgeType
    name_or_index: int         # string table id or element index
    to_address: int
    to_node: int = UNRESOLVED_NODE

    def fields(self) -> List[int]:
        return [int(self.edge_type), self.name_or_index, self.to_node]


class StringTable:
    """De-duplicated strings; ids are 1-based in first-seen order."""

    def __init__(self):
        self._strings: List[str] = []
        self._ids: Dict[str, int] = {}

    def get_id(self, text: str) -> int:
        string_id = self._ids.get(text)
        if string_id is None:
            self._strings.append(text)
            string_id = self._ids[text] = len(self._strings)
        return string_id

    def strings(self) -> List[str]:
        return list(self._strings)

    def __len__(self) -> int:
        return len(self._strings)


class HeapSnapshotBuilder:
    """Build a node/edge graph from a scanned session and serialize it."""

    def __init__(self, session: 'ScanSession'):
        self.session = session
        self.layout = session.layout
        self.nodes: List[HeapGraphNode] = []
        self.edges: List[HeapGraphEdge] = []
        self.strings = StringTable()

    def build(self) -> 'HeapSnapshotBuilder':
        """Rebuild the graph from scratch."""
        self.nodes = []
        self.edges = []
        self.strings = StringTable()
        # Edges are only emitted when the value index confirms them
        self.session.ensure_references(ScanType.VALUE)

        self._add_synthetic("", ROOT_NODE_ID)
        self._add_synthetic("(GC roots)", GC_ROOTS_NODE_ID)

        visited: Dict[int, int] = {}
        next_id = FIRST_OBJECT_NODE_ID
        for record, addr in self.session.histogram.instances():
            if addr in visited:
                break

            node_type = self._node_type(addr)
            if node_type == NodeType.INVALID:
                continue

            edges = self._edges(addr)
            node = HeapGraphNode(
                address=addr,
                node_type=node_type,
                name=self.strings.get_id(record.type_name),
                id=next_id,
                self_size=self._self_size(addr),
                edge_count=len(edges),
            )
            next_id += NODE_ID_STEP
            visited[addr] = len(self.nodes)
            self.nodes.append(node)
            self.edges.extend(edges)

        self._resolve_edges(visited)
        self.session.log(f"Snapshot has {len(self.nodes)} node(s), {len(self.edges)} edge(s)")
        return self

    def _add_synthetic(self, name: str, node_id: int):
        self.nodes.append(HeapGraphNode(
            address=0,
            node_type=NodeType.SYNTHETIC,
            name=self.strings.get_id(name),
            id=node_id,
            self_size=0,
        ))

    def _resolve_edges(self, visited: Dict[int, int]):
        for edge in self.edges:
            position = visited.get(edge.to_address)
            if position is None or self.nodes[position].address != edge.to_address:
                edge.to_node = UNRESOLVED_NODE
                continue
            edge.to_node = position * len(NODE_FIELDS)

    def _node_type(self, addr: int) -> NodeType:
        layout = self.layout
        try:
            tag = layout.type_tag(addr)
            if layout.is_string_type(tag):
                representation = layout.string_representation(addr)
                if representation == StringTag.CONS:
                    return NodeType.CONS_STRING
                if representation == StringTag.SLICED:
                    return NodeType.SLICED_STRING
                return NodeType.STRING
        except (DecodeFailure, ReadFailure):
            return NodeType.INVALID

        if tag == InstanceType.CODE:
            return NodeType.CODE
        if tag == InstanceType.JS_FUNCTION:
            return NodeType.CLOSURE
        if tag == InstanceType.JS_REGEXP:
            return NodeType.REGEXP
        if layout.is_object_family(tag):
            return NodeType.OBJECT
        if tag == InstanceType.HEAP_NUMBER:
            return NodeType.NUMBER
        if tag == InstanceType.SYMBOL:
            return NodeType.SYMBOL
        if tag in (InstanceType.JS_ARRAY_BUFFER, InstanceType.JS_TYPED_ARRAY,
                   InstanceType.FIXED_ARRAY, InstanceType.JS_ARRAY):
            return NodeType.ARRAY
        return NodeType.INVALID

    def _self_size(self, addr: int) -> int:
        try:
            return self.layout.object_size(addr)
        except (DecodeFailure, ReadFailure):
            return 0

    def _edge_target(self, source: int, value: int) -> Optional[int]:
        """`value` if it is an object the value index links back to `source`."""
        layout = self.layout
        if layout.is_small_integer(value) or layout.as_heap_object(value) is None:
            return None
        if layout.is_hole(value):
            return None
        try:
            tag = layout.type_tag(value)
        except (DecodeFailure, ReadFailure):
            return None
        if tag in (InstanceType.ODDBALL, InstanceType.JS_FUNCTION):
            return None
        if source not in self.session.references.get_references(ScanType.VALUE, value):
            return None
        return value

    def _edges(self, addr: int) -> List[HeapGraphEdge]:
        layout = self.layout
        try:
            heap_map = layout.require_map(addr)
        except (DecodeFailure, ReadFailure):
            return []
        tag = heap_map.instance_type
        if not (layout.is_object_family(tag) or tag == InstanceType.JS_ARRAY):
            return []

        edges = []
        try:
            elements = layout.element_values(addr)
        except (DecodeFailure, ReadFailure, LookupMiss):
            elements = []
        for i, value in enumerate(elements):
            target = self._edge_target(addr, value)
            if target is not None:
                edges.append(HeapGraphEdge(EdgeType.ELEMENT, i, target))

        try:
            descriptors = layout.own_descriptors(heap_map)
        except (DecodeFailure, ReadFailure):
            descriptors = []
        for descriptor in descriptors:
            # Constant and descriptor-held values are not object slots
            if descriptor.is_const_field or descriptor.is_descriptor:
                continue
            if not descriptor.is_field or descriptor.is_double_field:
                continue
            try:
                value = layout.field_value(addr, heap_map, descriptor)
                name = layout.string_to_text(descriptor.key)
            except (DecodeFailure, ReadFailure, LookupMiss):
                continue
            target = self._edge_target(addr, value)
            if target is not None:
                edges.append(HeapGraphEdge(EdgeType.PROPERTY, self.strings.get_id(name), target))

        return edges

    def to_json(self) -> dict:
        """Snapshot document with the fixed field order viewers expect."""
        nodes: List[int] = []
        for node in self.nodes:
            nodes.extend(node.fields())
        edges: List[int] = []
        for edge in self.edges:
            edges.extend(edge.fields())

        return {
            "snapshot": {
                "meta": SNAPSHOT_META,
                "node_count": len(self.nodes),
                "edge_count": len(self.edges),
                "trace_function_count": 0,
            },
            "nodes": nodes,
            "edges": edges,
            "trace_function_infos": [],
            "trace_tree": [],
            "samples": [],
            "strings": ["<dummy>"] + self.strings.strings(),
        }

    def serialize(self) -> str:
        return json.dumps(self.to_json(), separators=(",", ":"))

    def write(self, path: str) -> str:
        """Write the snapshot to `path` and return it."""
        with open(path, "w", encoding="utf-8") as f:
            f.write(self.serialize())
        self.session.log(f"Wrote heap snapshot to {path}")
        return path
