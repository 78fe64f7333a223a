import pytest

from heap_builder import HeapImage


@pytest.fixture
def heap() -> HeapImage:
    """Empty synthetic heap with the usual oddballs and maps."""
    return HeapImage()
