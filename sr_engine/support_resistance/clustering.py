"""
Price clustering shared by the pivot and rejection-wick detectors.
"""

from dataclasses import dataclass
from typing import Iterable, List, Tuple

from ..utils.helpers import relative_distance


@dataclass(frozen=True)
class PriceCluster:
    """Group of nearby prices replaced by their average"""
    price: float
    members: Tuple[float, ...]

    @property
    def count(self) -> int:
        return len(self.members)


def _close_cluster(members: List[float]) -> PriceCluster:
    return PriceCluster(price=sum(members) / len(members), members=tuple(members))


def cluster_prices(prices: Iterable[float], tolerance: float) -> List[PriceCluster]:
    """
    Cluster prices in ascending order.

    A cluster keeps growing while each next price lies within ``tolerance``
    (relative) of the running cluster average; the closed cluster is
    represented by that average.
    """
    ordered = sorted(float(p) for p in prices)
    if not ordered:
        return []

    clusters: List[PriceCluster] = []
    members = [ordered[0]]

    for price in ordered[1:]:
        average = sum(members) / len(members)
        if relative_distance(price, average) < tolerance:
            members.append(price)
        else:
            clusters.append(_close_cluster(members))
            members = [price]

    clusters.append(_close_cluster(members))
    return clusters
