"""
heapscan - Core Library
"""

from . import core
from . import heap
from . import scan
from . import debug

__all__ = [
    'core',
    'heap',
    'scan',
    'debug',
]
