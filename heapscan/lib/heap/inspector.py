"""
High-level object rendering utilities.
"""

from dataclasses import dataclass
from typing import List

from ..core.errors import DecodeFailure, LookupMiss, ReadFailure
from .constants import InstanceType, ODDBALL_NAMES
from .layout import LayoutModel
from .types import is_heap_object


@dataclass
class PrinterOptions:
    """How much of an object to render."""
    detailed: bool = False
    full_string: bool = False
    length: int = 16           # string chars and array elements, 0 = all
    print_map: bool = False
    output_limit: int = 0      # instance listing page size, 0 = all


class ObjectPrinter:
    """Render heap values as one-line summaries."""

    def __init__(self, layout: LayoutModel, options: PrinterOptions = None):
        self.layout = layout
        self.options = options or PrinterOptions()

    def stringify(self, word: int) -> str:
        """Render any tagged word."""
        if self.layout.is_small_integer(word):
            return f"<Smi: {self.layout.smi_value(word)}>"
        if self.layout.as_heap_object(word) is None:
            return f"0x{word:x}:<unknown>"
        try:
            return self._stringify_object(word, self.options.detailed)
        except (DecodeFailure, ReadFailure, LookupMiss):
            return f"0x{word:x}:<unknown>"

    def _stringify_object(self, obj: int, detailed: bool) -> str:
        layout = self.layout
        heap_map = layout.require_map(obj)
        tag = heap_map.instance_type
        prefix = f"0x{obj:x}:"
        suffix = f" map=0x{heap_map.addr:x}" if self.options.print_map else ""

        if layout.is_string_type(tag):
            return f'{prefix}<String: "{self._string_text(obj)}"{suffix}>'

        if tag == InstanceType.ODDBALL:
            kind = layout.oddball_kind(obj)
            return f"<{ODDBALL_NAMES.get(kind, 'Oddball')}>"

        if tag == InstanceType.HEAP_NUMBER:
            return f"{prefix}<Number: {layout.heap_number_value(obj)}{suffix}>"

        if tag == InstanceType.JS_ARRAY:
            length = layout.array_length(obj)
            text = f"{prefix}<Array: length={length}{suffix}"
            if detailed:
                text += self._elements(obj, length)
            return text + ">"

        if layout.is_object_family(tag):
            text = f"{prefix}<Object: {layout.type_name(obj, heap_map)}{suffix}"
            if detailed:
                text += self._properties(obj)
            return text + ">"

        if layout.is_context_type(tag):
            return f"{prefix}<Context{suffix}>"

        name = layout.type_name(obj, heap_map).strip("()")
        return f"{prefix}<{name}{suffix}>"

    def _string_text(self, obj: int) -> str:
        if self.options.full_string or self.options.length <= 0:
            return self.layout.string_to_text(obj)
        limit = self.options.length
        text = self.layout.string_to_text(obj, limit + 1)
        if len(text) > limit:
            return text[:limit] + "..."
        return text

    def _nested(self, word: int) -> str:
        if self.layout.is_small_integer(word) or not is_heap_object(word):
            return self.stringify(word)
        try:
            return self._stringify_object(word, False)
        except (DecodeFailure, ReadFailure, LookupMiss):
            return f"0x{word:x}:<unknown>"

    def _properties(self, obj: int) -> str:
        lines: List[str] = []
        for key, value in self.layout.property_entries(obj):
            try:
                name = self.layout.string_to_text(key)
            except (DecodeFailure, ReadFailure):
                name = f"0x{key:x}"
            lines.append(f"    .{name}={self._nested(value)}")
        if not lines:
            return ""
        return " properties {\n" + ",\n".join(lines) + "}"

    def _elements(self, obj: int, length: int) -> str:
        shown = length
        if not self.options.full_string and self.options.length > 0:
            shown = min(length, self.options.length)
        lines = []
        for i, value in enumerate(self.layout.element_values(obj)[:shown]):
            lines.append(f"    [{i}]={self._nested(value)}")
        if not lines:
            return ""
        more = ",\n    ..." if shown < length else ""
        return " [\n" + ",\n".join(lines) + more + "]"
