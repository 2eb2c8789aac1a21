__all__ = [
    "AggregatorVenue",
    "RouterVenue",
    "SwapVenue",
    "ZeroExClient",
    "select_best_tier",
]

from rawmove.venues.aggregator import AggregatorVenue, ZeroExClient
from rawmove.venues.base import SwapVenue
from rawmove.venues.router import RouterVenue, select_best_tier
