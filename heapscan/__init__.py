"""
heapscan - reconstruct a typed object graph from a captured heap image.
"""

__version__ = "1.0.0"
