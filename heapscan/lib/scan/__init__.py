"""
Heap scanning engine: histogram, reference indices, traversal, snapshots.
"""

from .histogram import (
    TypeRecord,
    DetailedTypeRecord,
    MapCacheEntry,
    ContextSet,
    TypeHistogram,
    FindObjectsVisitor,
)
from .references import ScanType, ReferenceIndex, scan_for_references
from .reports import Pagination, format_histogram, format_detailed_histogram, format_instances, node_info
from .session import ScanConfig, ScanSession
from .snapshot import NodeType, EdgeType, HeapGraphNode, HeapGraphEdge, StringTable, HeapSnapshotBuilder
from .traversal import ReferenceTraversal

__all__ = [
    'TypeRecord',
    'DetailedTypeRecord',
    'MapCacheEntry',
    'ContextSet',
    'TypeHistogram',
    'FindObjectsVisitor',
    'ScanType',
    'ReferenceIndex',
    'scan_for_references',
    'Pagination',
    'format_histogram',
    'format_detailed_histogram',
    'format_instances',
    'node_info',
    'ScanConfig',
    'ScanSession',
    'NodeType',
    'EdgeType',
    'HeapGraphNode',
    'HeapGraphEdge',
    'StringTable',
    'HeapSnapshotBuilder',
    'ReferenceTraversal',
]
