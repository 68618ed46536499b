"""
Plot stats aggregator
"""
from collections import Counter
from typing import Iterable

from schemas.plot import PlotStats, PlotStatus


def aggregate(plots: Iterable) -> PlotStats:
    """
    Count plots per status in a single pass.

    Args:
        plots: anything with a `status` attribute (Plot, PlotNodeData, ...)

    Returns:
        PlotStats: the four counts sum to the number of plots
    """
    counts = Counter(PlotStatus(p.status) for p in plots)
    return PlotStats(
        available=counts[PlotStatus.AVAILABLE],
        booked=counts[PlotStatus.BOOKED],
        reserved=counts[PlotStatus.RESERVED],
        sold=counts[PlotStatus.SOLD],
    )
