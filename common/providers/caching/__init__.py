from .models import CachedData
from .read_through_cache import ReadThroughCache

__all__ = [
    "CachedData",
    "ReadThroughCache",
]
