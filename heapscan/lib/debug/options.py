"""
Option parsing shared by the heap commands.
"""

import argparse
import shlex
from dataclasses import dataclass
from typing import List, Tuple

from ..core.errors import CommandError
from ..heap.inspector import PrinterOptions
from ..scan.references import ScanType


class CommandArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that reports problems instead of exiting the debugger."""

    def __init__(self, prog: str, **kwargs):
        kwargs.setdefault('add_help', False)
        super().__init__(prog=prog, **kwargs)

    def error(self, message):
        raise CommandError(f"{self.prog}: {message}")

    def exit(self, status=0, message=None):
        raise CommandError(message or f"{self.prog}: exited with status {status}")


@dataclass
class ScanOptions:
    """What findrefs searches for."""
    scan_type: ScanType = ScanType.VALUE
    recursive: bool = False


def split_command(command: str) -> List[str]:
    try:
        return shlex.split(command or "")
    except ValueError as e:
        raise CommandError(f"Cannot parse arguments: {e}")


def parse_printer_options(prog: str, command: str, length: int = 16,
                          detailed: bool = False) -> Tuple[PrinterOptions, List[str]]:
    """Parse printer flags, returning the options and the remaining words."""
    parser = CommandArgumentParser(prog)
    parser.add_argument('-F', '--full-string', action='store_true')
    parser.add_argument('-l', '--length', type=int, default=length)
    parser.add_argument('-m', '--print-map', action='store_true')
    parser.add_argument('-d', '-v', '--detailed', '--verbose', dest='detailed',
                        action='store_true', default=detailed)
    parser.add_argument('-n', '--output-limit', type=int, default=0)
    parser.add_argument('args', nargs='*')
    args = parser.parse_args(split_command(command))

    if args.length < 0 or args.output_limit < 0:
        raise CommandError(f"{prog}: limits cannot be negative")

    options = PrinterOptions(
        detailed=args.detailed,
        full_string=args.full_string,
        length=args.length,
        print_map=args.print_map,
        output_limit=args.output_limit,
    )
    return options, args.args


def parse_scan_options(prog: str, command: str) -> Tuple[ScanOptions, List[str]]:
    """Parse findrefs flags. More than one scan type is a bad option."""
    parser = CommandArgumentParser(prog)
    parser.add_argument('-v', '--value', action='store_true')
    parser.add_argument('-n', '--name', action='store_true')
    parser.add_argument('-s', '--string', action='store_true')
    parser.add_argument('-r', '--recursive', action='store_true')
    parser.add_argument('args', nargs='*')
    args = parser.parse_args(split_command(command))

    chosen = [kind for flag, kind in ((args.value, ScanType.VALUE),
                                      (args.name, ScanType.PROPERTY),
                                      (args.string, ScanType.STRING)) if flag]
    if len(chosen) > 1:
        raise CommandError(f"{prog}: only one of -v, -n and -s may be given")

    options = ScanOptions(scan_type=chosen[0] if chosen else ScanType.VALUE,
                          recursive=args.recursive)
    return options, args.args


def parse_detailed_flag(prog: str, command: str) -> bool:
    parser = CommandArgumentParser(prog)
    parser.add_argument('-d', '--detailed', action='store_true')
    return parser.parse_args(split_command(command)).detailed
