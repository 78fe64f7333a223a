#!/usr/bin/env python3
"""
Command-line interface for non-interactive heap scans.

Runs lldb against a core file, loads the heapscan commands and executes
them in batch, so a report or snapshot can be produced from a shell.

Usage:
    heapscan /path/to/node core.1234
    heapscan node core.1234 --command "heap-findjsinstances -n 10 Foo"
    heapscan node core.1234 --snapshot dump.heapsnapshot -o report.txt
"""

import argparse
import shlex
import subprocess
import sys
from typing import List

DEFAULT_COMMAND = "heap-findjsobjects"


def build_lldb_command(args: argparse.Namespace) -> List[str]:
    """Build the lldb invocation for the parsed arguments."""
    init_cmds = []
    if args.executable:
        init_cmds.append(f"target create {shlex.quote(args.executable)} "
                         f"--core {shlex.quote(args.core)}")
    else:
        init_cmds.append(f"target create --core {shlex.quote(args.core)}")

    init_cmds.append("command script import heapscan.main")

    if args.verbose:
        init_cmds.append("heap-settings verbose true")

    commands = list(args.command) or [DEFAULT_COMMAND]
    if args.snapshot:
        commands.append(f"heap-snapshot {shlex.quote(args.snapshot)}")
    init_cmds.extend(commands)

    lldb_cmd = [args.lldb, "--batch"]
    for cmd in init_cmds:
        lldb_cmd.extend(["-o", cmd])
    lldb_cmd.extend(["-o", "quit"])
    return lldb_cmd


def parse_args(argv: List[str] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="heapscan",
        description="Scan a core dump for heap objects",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Type histogram of a core file
  %(prog)s /usr/bin/node core.1234

  # Page through instances of a type
  %(prog)s node core.1234 -c "heap-findjsinstances -n 10 Foo"

  # Find who holds on to an object, recursively
  %(prog)s node core.1234 -c "heap-findrefs -r 0x3f2a8c0b1d41"

  # Export a snapshot for Chrome DevTools
  %(prog)s node core.1234 --snapshot dump.heapsnapshot
        """
    )

    parser.add_argument(
        "executable",
        nargs="?",
        help="Executable that produced the core file"
    )

    parser.add_argument(
        "core",
        help="Core file to scan"
    )

    parser.add_argument(
        "--command", "-c",
        action="append",
        default=[],
        help=f"heapscan command to run, may be repeated (default: {DEFAULT_COMMAND})"
    )

    parser.add_argument(
        "--snapshot", "-s",
        help="Also write a .heapsnapshot file to this path"
    )

    parser.add_argument(
        "--output", "-o",
        help="Output file for results"
    )

    parser.add_argument(
        "--lldb",
        default="lldb",
        help="lldb binary to run (default: lldb)"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Verbose output"
    )

    return parser.parse_args(argv)


def main(argv: List[str] = None) -> int:
    args = parse_args(argv)
    lldb_cmd = build_lldb_command(args)

    output_file = None
    if args.output:
        output_file = open(args.output, 'w')

    try:
        print(f"[CLI] Commands: {' '.join(shlex.quote(c) for c in lldb_cmd)}")
        if output_file:
            result = subprocess.run(lldb_cmd, stdout=output_file, stderr=subprocess.STDOUT)
        else:
            result = subprocess.run(lldb_cmd)
        print(f"[CLI] LLDB exited with code: {result.returncode}")
    except FileNotFoundError:
        print(f"Error: {args.lldb} not found")
        return 1
    finally:
        if output_file:
            output_file.close()

    return result.returncode


if __name__ == "__main__":
    sys.exit(main())
