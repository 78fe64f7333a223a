"""
Command registration and option parsing.
"""

from .commands import CommandSpec, CommandRegistry
from .options import (
    CommandArgumentParser,
    ScanOptions,
    parse_printer_options,
    parse_scan_options,
    parse_detailed_flag,
)

__all__ = [
    'CommandSpec',
    'CommandRegistry',
    'CommandArgumentParser',
    'ScanOptions',
    'parse_printer_options',
    'parse_scan_options',
    'parse_detailed_flag',
]
