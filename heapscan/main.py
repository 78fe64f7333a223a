#!/usr/bin/env python3
"""
LLDB entry point for heapscan.

Usage:
    (lldb) target create node --core core.1234
    (lldb) command script import heapscan.main
    (lldb) heap-findjsobjects
    (lldb) heap-findjsinstances Foo
    (lldb) heap-findrefs -r 0x3f2a8c0b1d41
    (lldb) heap-snapshot dump.heapsnapshot
"""

from typing import Callable, Optional

from heapscan.lib.core.errors import CommandError, HeapScanError
from heapscan.lib.core.lldb_provider import LLDBMemoryProvider
from heapscan.lib.debug.commands import CommandRegistry, CommandSpec
from heapscan.lib.debug.options import (
    parse_detailed_flag,
    parse_printer_options,
    parse_scan_options,
    split_command,
)
from heapscan.lib.heap.inspector import ObjectPrinter
from heapscan.lib.scan.references import ScanType
from heapscan.lib.scan.reports import (
    format_detailed_histogram,
    format_histogram,
    format_instances,
    node_info,
)
from heapscan.lib.scan.session import ScanSession
from heapscan.lib.scan.snapshot import HeapSnapshotBuilder
from heapscan.lib.scan.traversal import ReferenceTraversal

# Global session
_session: Optional[ScanSession] = None


def _get_session() -> ScanSession:
    global _session
    if _session is None:
        _session = ScanSession()
    return _session


def _scan(debugger) -> ScanSession:
    """Make sure the selected target has been scanned."""
    session = _get_session()
    provider = LLDBMemoryProvider(debugger.GetSelectedTarget())
    session.scan_heap_for_objects(provider, map_cache={})
    return session


def _run(result, action: Callable[[], str]):
    """Run a command body, turning heapscan errors into command errors."""
    try:
        output = action()
    except HeapScanError as e:
        result.SetError(f"{e}\n")
        return
    if output:
        result.write(output + "\n")


def _evaluate(debugger, expr: str) -> int:
    """Integer literal or an expression evaluated in the selected frame."""
    try:
        return int(expr, 0)
    except ValueError:
        pass

    target = debugger.GetSelectedTarget()
    frame = target.GetProcess().GetSelectedThread().GetSelectedFrame()
    value = frame.EvaluateExpression(expr) if frame.IsValid() else target.EvaluateExpression(expr)
    if not value.GetError().Success():
        raise CommandError(f"Failed to evaluate expression: {expr}")
    return value.GetValueAsUnsigned()


def heap_findjsobjects(debugger, command, result, internal_dict):
    """
    List every object type with its instance count and total size.

    Usage: heap-findjsobjects [-d]
    """
    def body():
        detailed = parse_detailed_flag("heap-findjsobjects", command)
        session = _scan(debugger)
        if detailed:
            return format_detailed_histogram(session.histogram)
        return format_histogram(session.histogram)

    _run(result, body)


def heap_findjsinstances(debugger, command, result, internal_dict):
    """
    List the instances of one type, one page per invocation.

    Usage: heap-findjsinstances [-d] [-F] [-l N] [-m] [-n N] <type>
    """
    def body():
        options, args = parse_printer_options(
            "heap-findjsinstances", command, length=_get_session().config.string_length)
        if not args:
            raise CommandError("Usage: heap-findjsinstances [flags] <type>")

        session = _scan(debugger)
        type_name = " ".join(args)
        printer = ObjectPrinter(session.layout, options)
        listing = format_instances(session, type_name, printer, options.output_limit)
        if listing is None:
            raise CommandError(f"No objects found with type name {type_name}")
        return listing

    _run(result, body)


def heap_findrefs(debugger, command, result, internal_dict):
    """
    Find the objects referencing a value, property name or string.

    Usage: heap-findrefs [-v|-n|-s] [-r] <expr|name|string>
    """
    def body():
        options, args = parse_scan_options("heap-findrefs", command)
        if not args:
            raise CommandError("Usage: heap-findrefs [-v|-n|-s] [-r] <expr|name|string>")

        if options.scan_type == ScanType.VALUE:
            key = _evaluate(debugger, " ".join(args))
        elif len(args) != 1:
            raise CommandError("Only one search term is allowed with -n and -s")
        else:
            key = args[0]

        session = _scan(debugger)
        lines = ReferenceTraversal(session).find_references(
            options.scan_type, key, recursive=options.recursive)
        return "\n".join(lines)

    _run(result, body)


def heap_snapshot(debugger, command, result, internal_dict):
    """
    Export the scanned heap as a .heapsnapshot file.

    Usage: heap-snapshot [path]
    """
    def body():
        args = split_command(command)
        session = _scan(debugger)
        path = args[0] if args else session.config.snapshot_path
        builder = HeapSnapshotBuilder(session).build()
        builder.write(path)
        return f"Wrote {len(builder.nodes)} nodes and {len(builder.edges)} edges to {path}"

    _run(result, body)


def heap_nodeinfo(debugger, command, result, internal_dict):
    """
    Print information about the Node.js process objects in the heap.
    """
    _run(result, lambda: node_info(_scan(debugger)))


def heap_inspect(debugger, command, result, internal_dict):
    """
    Print one heap value.

    Usage: heap-inspect [-d] [-F] [-l N] [-m] <expr>
    """
    def body():
        session = _get_session()
        session.attach(LLDBMemoryProvider(debugger.GetSelectedTarget()))
        options, args = parse_printer_options(
            "heap-inspect", command, length=session.config.string_length)
        if not args:
            raise CommandError("Usage: heap-inspect [flags] <expr>")
        word = _evaluate(debugger, " ".join(args))
        return ObjectPrinter(session.layout, options).stringify(word)

    _run(result, body)


def heap_settings(debugger, command, result, internal_dict):
    """
    Show or change scan settings.

    Usage: heap-settings [name value]
    """
    def body():
        config = _get_session().config
        args = split_command(command)
        if len(args) == 2:
            config.set_value(args[0], args[1])
        elif args:
            raise CommandError("Usage: heap-settings [name value]")
        return "\n".join(f"  {name:24} = {value}" for name, value in config.items())

    _run(result, body)


COMMANDS = [
    CommandSpec("heap-findjsobjects", heap_findjsobjects,
                "List object types with instance counts and sizes",
                "Usage: heap-findjsobjects [-d]"),
    CommandSpec("heap-findjsinstances", heap_findjsinstances,
                "List instances of a type, paginated",
                "Usage: heap-findjsinstances [-d] [-F] [-l N] [-m] [-n N] <type>"),
    CommandSpec("heap-findrefs", heap_findrefs,
                "Find references to a value, property name or string",
                "Usage: heap-findrefs [-v|-n|-s] [-r] <expr|name|string>"),
    CommandSpec("heap-snapshot", heap_snapshot,
                "Write a .heapsnapshot file",
                "Usage: heap-snapshot [path]"),
    CommandSpec("heap-nodeinfo", heap_nodeinfo,
                "Show Node.js process information"),
    CommandSpec("heap-inspect", heap_inspect,
                "Inspect the heap value at an address",
                "Usage: heap-inspect [-d] [-F] [-l N] [-m] <expr>"),
    CommandSpec("heap-settings", heap_settings,
                "Show or change scan settings",
                "Usage: heap-settings [name value]"),
]


def __lldb_init_module(debugger, internal_dict):
    """Initialize module and register commands."""
    registry = CommandRegistry(debugger)
    registry.register_multi(COMMANDS)

    # Print banner
    print("=" * 70)
    print("heapscan - heap snapshot scanner")
    print("=" * 70)
    print()
    print(registry.help_text())
    print()
    print("Quick start:")
    print("  (lldb) heap-findjsobjects")
    print("  (lldb) heap-snapshot")
    print("=" * 70)


if __name__ == "__main__":
    print("This script is meant to be run within LLDB")
    print("Load it with: command script import heapscan.main")
