"""Homepage payload aggregation."""

from .aggregator import PreloadAggregator, PreloadSource, TotalUnavailableError

__all__ = [
    "PreloadAggregator",
    "PreloadSource",
    "TotalUnavailableError",
]
