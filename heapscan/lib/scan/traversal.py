"""
Reference lookups with optional recursive expansion through referrers.
"""

from typing import TYPE_CHECKING, Iterator, List, Optional, Set, Tuple, Union

from ..core.errors import DecodeFailure, LookupMiss, ReadFailure, SmallIntegerSearchError
from ..heap.constants import InstanceType
from .references import ScanType

if TYPE_CHECKING:
    from .session import ScanSession

# (lines printed for a referrer, the referrer to expand)
Hit = Tuple[List[str], int]

SEEN_MARKER = "+ [seen above]"


class ReferenceTraversal:
    """Print who references a value, property name or string."""

    def __init__(self, session: 'ScanSession'):
        self.session = session
        self.layout = session.layout
        self.index = session.references

    def find_references(self, kind: ScanType, key: Union[int, str],
                        recursive: bool = False) -> List[str]:
        """Lines describing each referrer of `key`, expanded by value when recursive."""
        if kind == ScanType.VALUE and self.layout.is_small_integer(key):
            raise SmallIntegerSearchError(
                f"Cannot search for references to small integer 0x{key:x}")

        self.session.ensure_references(kind)
        if recursive:
            self.session.ensure_references(ScanType.VALUE)

        padding = self.session.config.tree_padding
        out: List[str] = []
        # Shared by every branch; the only thing that stops cycles
        visited: Set[int] = set()
        stack = [(0, self._hits(kind, key))]

        while stack:
            level, hits = stack[-1]
            hit = next(hits, None)
            if hit is None:
                stack.pop()
                continue

            lines, referrer = hit
            prefix = self._prefix(level, padding)
            out.extend(prefix + line for line in lines)
            if not recursive:
                continue

            if referrer in visited:
                out.append(" " * (padding * level) + SEEN_MARKER)
            else:
                visited.add(referrer)
                stack.append((level + 1, self._hits(ScanType.VALUE, referrer)))

        return out

    @staticmethod
    def _prefix(level: int, padding: int) -> str:
        if level == 0:
            return ""
        return " " * (padding * (level - 1)) + "+ "

    def _hits(self, kind: ScanType, key) -> Iterator[Hit]:
        if kind == ScanType.VALUE:
            for addr in list(self.index.get_references(kind, key)):
                lines = self._value_lines(addr, key)
                if lines is not None:
                    yield lines, addr
            # Closure locals are only reachable through their contexts
            yield from self._context_hits(key)
        elif kind == ScanType.PROPERTY:
            for addr in list(self.index.get_references(kind, key)):
                lines = self._property_lines(addr, key)
                if lines is not None:
                    yield lines, addr
        else:
            for addr in list(self.index.get_references(kind, key)):
                lines = self._string_lines(addr, key)
                if lines is not None:
                    yield lines, addr

    def _kind_of(self, addr: int) -> Optional[str]:
        """'object', 'string' or None for referrers that are not printed."""
        try:
            tag = self.layout.type_tag(addr)
        except (DecodeFailure, ReadFailure):
            return None
        if self.layout.is_object_family(tag) or tag == InstanceType.JS_ARRAY:
            return 'object'
        if self.layout.is_string_type(tag):
            return 'string'
        return None

    def _slots(self, addr: int) -> List[Tuple[str, int]]:
        """(slot label, value) for the elements and named properties of an object."""
        layout = self.layout
        slots = []
        try:
            for i, value in enumerate(layout.element_values(addr)):
                slots.append((f"[{i}]", value))
        except (DecodeFailure, ReadFailure, LookupMiss):
            pass
        try:
            entries = layout.property_entries(addr)
        except (DecodeFailure, ReadFailure, LookupMiss):
            entries = []
        for key, value in entries:
            slots.append(("." + self._key_text(key), value))
        return slots

    def _key_text(self, key: int) -> str:
        try:
            return self.layout.string_to_text(key)
        except (DecodeFailure, ReadFailure):
            return "???"

    def _type_name(self, addr: int) -> str:
        try:
            return self.layout.type_name(addr)
        except (DecodeFailure, ReadFailure):
            return "<unknown>"

    def _string_components(self, addr: int) -> List[Tuple[str, int]]:
        try:
            return [("." + label, word) for label, word in self.layout.string_components(addr)]
        except (DecodeFailure, ReadFailure):
            return []

    def _value_lines(self, addr: int, target: int) -> Optional[List[str]]:
        kind = self._kind_of(addr)
        if kind is None:
            return None
        slots = self._slots(addr) if kind == 'object' else self._string_components(addr)
        type_name = self._type_name(addr)
        return [f"0x{addr:x}: {type_name}{slot}=0x{target:x}"
                for slot, value in slots if value == target]

    def _property_lines(self, addr: int, name: str) -> Optional[List[str]]:
        if self._kind_of(addr) != 'object':
            return None
        type_name = self._type_name(addr)
        return [f"0x{addr:x}: {type_name}{slot}=0x{value:x}"
                for slot, value in self._slots(addr)
                if slot.startswith(".") and slot[1:] == name]

    def _string_lines(self, addr: int, text: str) -> Optional[List[str]]:
        kind = self._kind_of(addr)
        if kind is None:
            return None
        slots = self._slots(addr) if kind == 'object' else self._string_components(addr)
        type_name = self._type_name(addr)
        lines = []
        for slot, value in slots:
            if not self.layout.is_string(value):
                continue
            try:
                if self.layout.string_to_text(value) != text:
                    continue
            except (DecodeFailure, ReadFailure):
                continue
            lines.append(f"0x{addr:x}: {type_name}{slot}=0x{value:x} '{text}'")
        return lines

    def _context_hits(self, target: int) -> Iterator[Hit]:
        for ctx in self.session.contexts:
            try:
                local_slots = self.layout.context_locals(ctx)
            except (DecodeFailure, ReadFailure, LookupMiss):
                # Unreadable locals, try the next context
                continue
            for name, value in local_slots:
                if value != target:
                    continue
                line = f"0x{ctx:x}: Context.{self._key_text(name)}=0x{target:x}"
                yield [line], ctx
