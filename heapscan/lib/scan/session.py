"""
Scan session: owns the histogram, contexts and reference indices of one image.
"""

from dataclasses import dataclass, fields
from typing import Dict, Hashable, List, Optional, Tuple

from ..core.errors import CommandError, ScanTargetError
from ..core.memory import DEFAULT_BLOCK_SIZE, MemoryProvider, MemoryReader, MemoryScanner
from ..heap.layout import LayoutModel
from .histogram import ContextSet, FindObjectsVisitor, MapCacheEntry, TypeHistogram
from .references import ReferenceIndex, ScanType, scan_for_references
from .reports import Pagination


@dataclass
class ScanConfig:
    """Configuration for a scan session."""
    verbose: bool = False
    block_size: int = DEFAULT_BLOCK_SIZE
    detailed_property_count: int = 3   # property names shown in detailed type names
    key_property_limit: int = 0        # property names in the detailed bucket key, 0 = all
    tree_padding: int = 2              # indentation per recursive findrefs level
    string_length: int = 16            # printer truncation, 0 = full strings
    snapshot_path: str = "core-dump.heapsnapshot"

    def items(self) -> List[Tuple[str, object]]:
        return [(f.name, getattr(self, f.name)) for f in fields(self)]

    def set_value(self, name: str, text: str):
        """Update one setting from its textual form."""
        for f in fields(self):
            if f.name != name:
                continue
            if f.type in (bool, 'bool'):
                value = text.lower() in ('1', 'true', 'yes', 'on')
            elif f.type in (int, 'int'):
                try:
                    value = int(text, 0)
                except ValueError:
                    raise CommandError(f"Invalid value for {name}: {text}")
                if value < 0:
                    raise CommandError(f"{name} cannot be negative")
            else:
                value = text
            setattr(self, name, value)
            return
        raise CommandError(f"Unknown setting: {name}")


class ScanSession:
    """Scan state for one process image.

    Everything is discarded when the image changes identity; addresses of
    distinct images are not comparable.
    """

    name = "heapscan"

    def __init__(self, config: ScanConfig = None):
        self.config = config or ScanConfig()
        self.histogram = TypeHistogram()
        self.contexts = ContextSet()
        self.references = ReferenceIndex()
        self.pagination = Pagination()

        self.provider: Optional[MemoryProvider] = None
        self.reader: Optional[MemoryReader] = None
        self.layout: Optional[LayoutModel] = None
        self._identity: Optional[Hashable] = None

    def log(self, msg: str):
        """Log with session prefix."""
        if self.config.verbose:
            print(f"[{self.name}] {msg}")

    def attach(self, provider: Optional[MemoryProvider]):
        """Point the session at an image, dropping results of a different one."""
        if provider is None or not provider.is_valid():
            raise ScanTargetError("No valid process image, please load a core file or process")

        identity = provider.identity()
        if self.provider is not None and identity == self._identity:
            self.provider = provider
            return

        if self.provider is not None:
            self.log("Target changed, discarding previous scan")
        self.clear()
        self.provider = provider
        self._identity = identity
        self.reader = MemoryReader(provider)
        self.layout = LayoutModel(self.reader)

    def clear(self):
        """Discard every result of the current image."""
        self.histogram.clear()
        self.contexts.clear()
        self.references.clear()
        self.pagination = Pagination()
        if self.reader is not None:
            self.reader.clear_cache()

    def scan_heap_for_objects(self, provider: Optional[MemoryProvider],
                              map_cache: Optional[Dict[int, MapCacheEntry]] = None) -> TypeHistogram:
        """Populate the histogram and context set unless already done for this image."""
        self.attach(provider)
        if not self.histogram.is_empty():
            return self.histogram

        visitor = FindObjectsVisitor(
            self.layout, self.histogram, self.contexts, map_cache,
            key_property_limit=self.config.key_property_limit,
            detailed_property_count=self.config.detailed_property_count,
        )
        scanner = MemoryScanner(provider, self.config.block_size, self.log)
        words = scanner.scan_regions(visitor)
        self.log(f"Visited {words} word(s), found {visitor.found_count} object(s) "
                 f"and {len(self.contexts)} context(s)")
        return self.histogram

    def ensure_references(self, kind: ScanType):
        """Build one reference index on first use."""
        if self.layout is None:
            raise ScanTargetError("No heap has been scanned yet")
        if not self.references.is_loaded(kind):
            scan_for_references(self, kind)
