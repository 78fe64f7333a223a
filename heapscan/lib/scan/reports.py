"""
Text reports over a scanned heap.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional, Tuple

from ..core.errors import DecodeFailure, LookupMiss, ReadFailure

if TYPE_CHECKING:
    from ..heap.inspector import ObjectPrinter
    from ..heap.layout import LayoutModel
    from .histogram import TypeHistogram
    from .session import ScanSession


def format_histogram(histogram: 'TypeHistogram') -> str:
    """Instances, total size and name per type, with a totals row."""
    lines = [
        " Instances  Total Size Name",
        " ---------- ---------- ----",
    ]
    for record in histogram.sorted_records():
        lines.append(f" {record.instance_count:10d} {record.total_size:10d} {record.type_name}")
    lines.append(" ---------- ---------- ")
    lines.append(f" {histogram.total_instances():10d} {histogram.total_size():10d} ")
    return "\n".join(lines)


def format_detailed_histogram(histogram: 'TypeHistogram') -> str:
    """Per shape: a sample object, counts, sizes, property and element counts."""
    lines = [
        "   Sample Obj.  Instances  Total Size  Properties  Elements  Name",
        " ------------- ---------- ----------- ----------- --------- ----",
    ]
    total_count = 0
    total_size = 0
    for record in histogram.sorted_detailed_records():
        lines.append(
            f" {record.sample() or 0:13x} {record.instance_count:10d} "
            f"{record.total_size:11d} {record.own_descriptors:11d} "
            f"{record.indexed_properties:9d} {record.type_name}"
        )
        total_count += record.instance_count
        total_size += record.total_size
    lines.append(" ------------- ---------- ----------- ----------- --------- ----")
    lines.append(f" {'':13} {total_count:10d} {total_size:11d} ")
    return "\n".join(lines)


@dataclass
class Pagination:
    """Page state of the instance listing."""
    command: str = ""
    output_limit: int = 0
    current_page: int = 0
    total_entries: int = 0

    def next_page(self, command: str, output_limit: int, total_entries: int) -> Tuple[int, int]:
        """Advance to the page to show and return its [start, end) offsets.

        A new query starts at page 0; repeating it moves one page on and wraps
        to page 0 after the last one.
        """
        if command != self.command or output_limit != self.output_limit:
            self.command = command
            self.output_limit = output_limit
            self.current_page = 0
        elif output_limit <= 0 or (self.current_page + 1) * output_limit >= total_entries:
            self.current_page = 0
        else:
            self.current_page += 1
        self.total_entries = total_entries

        initial = self.current_page * output_limit
        final = initial + min(output_limit, total_entries - initial)
        if final <= 0:
            final = total_entries
        return initial, final


def format_instances(session: 'ScanSession', type_name: str, printer: 'ObjectPrinter',
                     output_limit: int = 0) -> Optional[str]:
    """One page of the instances of a type, or None if the type is unknown."""
    record = session.histogram.get(type_name)
    if record is None:
        return None

    instances = sorted(record.instances)
    initial, final = session.pagination.next_page(type_name, output_limit, len(instances))

    lines = [printer.stringify(addr) for addr in instances[initial:final]]
    if final < len(instances):
        lines.append("..........")
    lines.append(f"(Showing {initial + 1} to {final} of {len(instances)} instances)")
    return "\n".join(lines)


def _string_property(layout: 'LayoutModel', obj: int, name: str) -> Optional[str]:
    try:
        return layout.string_to_text(layout.get_property(obj, name))
    except (DecodeFailure, ReadFailure, LookupMiss):
        return None


def _object_property(layout: 'LayoutModel', obj: int, name: str) -> Optional[int]:
    try:
        value = layout.get_property(obj, name)
    except (DecodeFailure, ReadFailure, LookupMiss):
        return None
    if layout.as_heap_object(value) is None:
        return None
    return value


def _string_elements(layout: 'LayoutModel', array: int) -> List[str]:
    lines = []
    try:
        values = layout.element_values(array)
    except (DecodeFailure, ReadFailure, LookupMiss):
        return lines
    for i, value in enumerate(values):
        try:
            text = layout.string_to_text(value)
        except (DecodeFailure, ReadFailure):
            continue
        lines.append(f"    [{i}] = '{text}'")
    return lines


def node_info(session: 'ScanSession') -> str:
    """Describe every `process` object: pid, platform, versions, argv."""
    record = session.histogram.get("process")
    if record is None:
        return "No process objects found."

    layout = session.layout
    lines: List[str] = []
    for obj in sorted(record.instances):
        try:
            pid = layout.get_property(obj, "pid")
        except (DecodeFailure, ReadFailure, LookupMiss):
            # Not the process object we are looking for
            continue
        if not layout.is_small_integer(pid):
            continue
        lines.append(f"Information for process id {layout.smi_value(pid)} (process=0x{obj:x})")

        summary = []
        for label, name in (("Platform", "platform"), ("Architecture", "arch"),
                            ("Node Version", "version")):
            text = _string_property(layout, obj, name)
            if text is not None:
                summary.append(f"{label} = {text}")
        if summary:
            lines.append(", ".join(summary))

        versions = _object_property(layout, obj, "versions")
        if versions is not None:
            lines.append(f"Component versions (process.versions=0x{versions:x}):")
            try:
                keys = sorted(layout.keys(versions))
            except (DecodeFailure, ReadFailure, LookupMiss):
                keys = []
            for key in keys:
                text = _string_property(layout, versions, key)
                if text is not None:
                    lines.append(f"    {key} = {text}")

        release = _object_property(layout, obj, "release")
        if release is not None:
            lines.append(f"Release Info (process.release=0x{release:x}):")
            try:
                keys = layout.keys(release)
            except (DecodeFailure, ReadFailure, LookupMiss):
                keys = []
            for key in keys:
                text = _string_property(layout, release, key)
                if text is not None:
                    lines.append(f"    {key} = {text}")

        exec_path = _string_property(layout, obj, "execPath")
        if exec_path is not None:
            lines.append(f"Executable Path = {exec_path}")

        argv = _object_property(layout, obj, "argv")
        if argv is not None:
            lines.append(f"Command line arguments (process.argv=0x{argv:x}):")
            lines.extend(_string_elements(layout, argv))

        exec_argv = _object_property(layout, obj, "execArgv")
        if exec_argv is not None:
            lines.append(f"Node.js Command line arguments (process.execArgv=0x{exec_argv:x}):")
            lines.extend(_string_elements(layout, exec_argv))

    if not lines:
        return "No process objects found."
    return "\n".join(lines)
