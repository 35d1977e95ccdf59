"""
Structural refinements that trade adjacency constraints for fewer hubs.

- Triangle elimination: drop the heaviest (longest) edge of every triangle
- Convergence: repeatedly drop the heaviest edge of towers sitting in hubs
  above the target and re-allocate until the hub count converges
"""
from dataclasses import dataclass, field

from allocator import allocate, hub_count
from config import DEFAULT_MAX_ITERATIONS, DEFAULT_TARGET_MAX_HUBS
from graph import AdjacencyGraph, find_triangles


# ============================================================================
# Triangle Elimination
# ============================================================================

def _heaviest_triangle_edge(
    graph: AdjacencyGraph,
    triangle: tuple[str, str, str],
    removed: set[tuple[str, str]],
) -> tuple[str, str] | None:
    """
    Heaviest edge of a triangle none of whose edges is in removed.
    Returns None when any of the three edges has already been removed.
    Equal weights resolve to the smallest (u, v) pair.
    """
    u, v, w = triangle
    pairs = [(u, v), (u, w), (v, w)]
    if any(pair in removed for pair in pairs):
        return None
    weights = [graph.weight(a, b) for a, b in pairs]
    top = max(weights)
    return min(pair for pair, weight in zip(pairs, weights) if weight == top)


def refine_triangles_with_report(
    graph: AdjacencyGraph,
) -> tuple[AdjacencyGraph, list[tuple[str, str]]]:
    """
    Remove the heaviest edge of every triangle and report what was removed.

    Triangles are found on the input graph and processed in discovery order,
    so removing an edge can dissolve a later triangle that shared it; such
    triangles are skipped.

    Returns:
        (refined graph, removed edges as (u, v) with u < v)
    """
    removed: list[tuple[str, str]] = []
    removed_set: set[tuple[str, str]] = set()
    for triangle in find_triangles(graph):
        edge = _heaviest_triangle_edge(graph, triangle, removed_set)
        if edge is None:
            continue
        removed.append(edge)
        removed_set.add(edge)

    return graph.without_edges(removed), removed


def refine_triangles(graph: AdjacencyGraph) -> AdjacencyGraph:
    """Triangle-eliminated copy of the graph; feed it back to allocate()."""
    refined, _ = refine_triangles_with_report(graph)
    return refined


# ============================================================================
# Convergence Refinement
# ============================================================================

@dataclass
class ConvergenceResult:
    """
    Outcome of the convergence pass.

    graph, allocation, iterations and removed_edges all describe the best
    iteration, so removed_edges is exactly what graph lacks from the input.
    """
    graph: AdjacencyGraph
    allocation: dict[str, int]
    iterations: int
    converged: bool
    # Best hub count after each iteration (index 0 is the starting allocation)
    hub_counts: list[int] = field(default_factory=list)
    # Hub count each iteration actually produced
    raw_hub_counts: list[int] = field(default_factory=list)
    removed_edges: list[tuple[str, str]] = field(default_factory=list)
    # Iterations run in total, including any after the best one
    total_iterations: int = 0
    warning: str | None = None

    @property
    def hub_count(self) -> int:
        return hub_count(self.allocation)


def reduce_hubs(
    allocation: dict[str, int],
    graph: AdjacencyGraph,
    target_max: int = DEFAULT_TARGET_MAX_HUBS,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
) -> ConvergenceResult:
    """
    Break edges until the allocation uses at most target_max hubs.

    Each iteration removes, for every tower whose hub index exceeds
    target_max (ascending id), its heaviest remaining incident edge, then
    re-runs the greedy allocator on the thinner graph.

    Stops when:
      - the hub count is <= target_max (converged)
      - no over-indexed tower has an edge left to remove (fixed point)
      - max_iterations is reached

    The returned graph is the one that produced the lowest hub count seen,
    so allocate(result.graph) reproduces result.allocation.

    Args:
        allocation: Current allocation derived from graph
        graph: Adjacency graph the allocation was derived from
        target_max: Maximum acceptable hub count
        max_iterations: Iteration cap

    Returns:
        ConvergenceResult with the best graph and allocation found
    """
    if target_max < 1:
        raise ValueError(f"target_max must be >= 1, got {target_max}")
    if max_iterations < 1:
        raise ValueError(f"max_iterations must be >= 1, got {max_iterations}")

    working = graph
    current = dict(allocation)
    best_graph = graph
    best_allocation = dict(current)
    best_count = hub_count(current)
    best_removed: list[tuple[str, str]] = []
    best_iterations = 0
    hub_counts = [best_count]
    raw_hub_counts = [best_count]
    removed: list[tuple[str, str]] = []
    iterations = 0
    stalled = False

    while hub_count(current) > target_max and iterations < max_iterations:
        over_indexed = sorted(n for n, hub in current.items() if hub > target_max)

        round_removed: set[tuple[str, str]] = set()
        for node_id in over_indexed:
            heaviest = working.heaviest_edge(node_id, excluding=round_removed)
            if heaviest is None:
                continue
            neighbor, _ = heaviest
            edge = (min(node_id, neighbor), max(node_id, neighbor))
            round_removed.add(edge)
            removed.append(edge)

        if not round_removed:
            stalled = True
            break

        iterations += 1
        working = working.without_edges(round_removed)
        current = allocate(working)
        count = hub_count(current)
        raw_hub_counts.append(count)
        if count < best_count:
            best_count = count
            best_allocation = dict(current)
            best_graph = working
            best_removed = list(removed)
            best_iterations = iterations
        hub_counts.append(best_count)

    converged = best_count <= target_max
    warning = None
    if not converged:
        reason = "no removable edges left" if stalled else f"iteration cap {max_iterations} reached"
        warning = (
            f"Hub count {best_count} still above target {target_max} ({reason})"
        )

    return ConvergenceResult(
        graph=best_graph.copy(),
        allocation=best_allocation,
        iterations=best_iterations,
        converged=converged,
        hub_counts=hub_counts,
        raw_hub_counts=raw_hub_counts,
        removed_edges=best_removed,
        total_iterations=iterations,
        warning=warning,
    )
