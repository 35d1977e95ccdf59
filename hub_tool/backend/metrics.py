"""
Hub balance metrics and allocation validity checks.
Implements Gini, max/min ratio and Equity Score over hub sizes.
"""
from typing import Any

import numpy as np

from allocator import hub_sizes
from graph import AdjacencyGraph
from models import BalanceMetrics


# ============================================================================
# Balance Metrics
# ============================================================================

def gini(values: np.ndarray | list) -> float:
    """
    Spread of tower counts across the hubs of a region.

    0.0 when every hub holds the same number of towers; approaches 1.0 as
    the towers pile into a single hub. Negative sizes are dropped.

    Args:
        values: Tower count of each hub

    Returns:
        Mean absolute pairwise difference over twice the mean, in [0, 1)
    """
    x = np.asarray(values, dtype=float)
    x = x[x >= 0]

    if x.size == 0:
        return 0.0

    mean = x.mean()
    if mean == 0:
        return 0.0

    # Sum of all pairwise absolute differences / (2 * n^2 * mean)
    diff_sum = np.abs(x[:, None] - x[None, :]).sum()
    n = x.size

    return float(diff_sum / (2.0 * n * n * mean))


def equity_score_from_gini(g: float) -> int:
    """Hub balance as an integer percentage: 100 for equal hub sizes, lower as gini grows."""
    g = max(0.0, min(g, 1.0))
    score = int(round((1.0 - g) * 100))
    return max(0, min(score, 100))


def max_min_ratio(values: np.ndarray | list) -> float:
    """
    Tower count of the busiest hub divided by that of the quietest.
    Empty hubs are ignored; a region with no towers reports 1.0.
    """
    x = np.asarray(values, dtype=float)
    x = x[x > 0]

    if x.size == 0:
        return 1.0

    return float(x.max() / x.min())


def compute_balance_metrics(allocation: dict[str, int]) -> BalanceMetrics:
    """
    Compute balance metrics over the hub sizes of an allocation.

    Args:
        allocation: node_id -> hub

    Returns:
        BalanceMetrics with gini, max_min_ratio and equity_score
    """
    sizes = list(hub_sizes(allocation).values())
    g = gini(sizes)

    return BalanceMetrics(
        gini=round(g, 4),
        max_min_ratio=round(max_min_ratio(sizes), 2),
        equity_score=equity_score_from_gini(g),
    )


# ============================================================================
# Validity Checks
# ============================================================================

def find_conflicts(
    allocation: dict[str, int],
    graph: AdjacencyGraph,
) -> list[tuple[str, str]]:
    """
    Adjacent node pairs that share a hub.
    Nodes missing from the allocation are ignored.
    """
    conflicts = []
    for u, v, _ in graph.edges():
        if u in allocation and v in allocation and allocation[u] == allocation[v]:
            conflicts.append((u, v))
    return conflicts


def check_allocation_validity(
    allocation: dict[str, int],
    graph: AdjacencyGraph,
) -> dict[str, Any]:
    """
    Evaluate whether an allocation is a proper coloring of a graph.
    Returns a dict with:
      - conflicts: list of (u, v) adjacent pairs sharing a hub
      - unallocated: graph nodes with no hub
      - ok: True if there are no conflicts and every node is allocated
    """
    conflicts = find_conflicts(allocation, graph)
    unallocated = sorted(n for n in graph.nodes if n not in allocation)

    return {
        "conflicts": conflicts,
        "unallocated": unallocated,
        "ok": not conflicts and not unallocated,
    }
