"""
Weighted adjacency graph between towers.
Builds the graph from a distance matrix with a threshold rule and enumerates triangles.

An absent key means "no edge". A weight of 0.0 is a real edge between co-located towers.
"""
import math
from typing import Iterable, Iterator

import numpy as np

from distances import DistanceMatrix

# Relative/absolute tolerance used when checking matrix symmetry
SYMMETRY_TOLERANCE = 1e-9


class AdjacencyGraph:
    """
    Undirected weighted graph keyed by node id.

    Instances are treated as immutable by callers: every transformation
    returns a new graph (see without_edges). The private edge table is only
    written while a graph is being constructed or copied.
    """

    def __init__(
        self,
        nodes: Iterable[str],
        edges: Iterable[tuple[str, str, float]] = (),
    ):
        self._nodes: tuple[str, ...] = tuple(nodes)
        if len(set(self._nodes)) != len(self._nodes):
            raise ValueError("Duplicate node ids in graph")
        self._adj: dict[str, dict[str, float]] = {n: {} for n in self._nodes}
        for u, v, weight in edges:
            self._set_edge(u, v, weight)

    # ------------------------------------------------------------------
    # Private mutation (copies only)
    # ------------------------------------------------------------------

    def _set_edge(self, u: str, v: str, weight: float) -> None:
        if u == v:
            raise ValueError(f"Self-loop on node '{u}' is not allowed")
        if u not in self._adj or v not in self._adj:
            raise ValueError(f"Edge ({u}, {v}) references an unknown node")
        self._adj[u][v] = float(weight)
        self._adj[v][u] = float(weight)

    def _remove_edge(self, u: str, v: str) -> None:
        self._adj[u].pop(v, None)
        self._adj[v].pop(u, None)

    # ------------------------------------------------------------------
    # Read API
    # ------------------------------------------------------------------

    @property
    def nodes(self) -> tuple[str, ...]:
        return self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._adj

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AdjacencyGraph):
            return NotImplemented
        return set(self._nodes) == set(other._nodes) and self._adj == other._adj

    def __repr__(self) -> str:
        return f"AdjacencyGraph(nodes={len(self._nodes)}, edges={self.edge_count})"

    def has_edge(self, u: str, v: str) -> bool:
        return v in self._adj.get(u, {})

    def weight(self, u: str, v: str) -> float | None:
        """Edge weight, or None when the pair is not adjacent."""
        return self._adj.get(u, {}).get(v)

    def neighbors(self, node_id: str) -> dict[str, float]:
        """Copy of neighbor -> weight for a node."""
        return dict(self._adj[node_id])

    def degree(self, node_id: str) -> int:
        return len(self._adj[node_id])

    def edges(self) -> Iterator[tuple[str, str, float]]:
        """Yield each undirected edge once as (u, v, weight) with u < v."""
        for u in sorted(self._adj):
            for v, weight in sorted(self._adj[u].items()):
                if u < v:
                    yield u, v, weight

    @property
    def edge_count(self) -> int:
        return sum(len(nbrs) for nbrs in self._adj.values()) // 2

    def heaviest_edge(
        self,
        node_id: str,
        excluding: set[tuple[str, str]] | None = None,
    ) -> tuple[str, float] | None:
        """
        Heaviest incident edge of a node as (neighbor, weight).
        Equal weights resolve to the smallest neighbor id.
        Pairs in excluding (stored as (u, v) with u < v) are skipped.
        """
        nbrs = self._adj[node_id]
        if excluding:
            nbrs = {
                v: w for v, w in nbrs.items()
                if (min(node_id, v), max(node_id, v)) not in excluding
            }
        if not nbrs:
            return None
        neighbor = min(nbrs, key=lambda v: (-nbrs[v], v))
        return neighbor, nbrs[neighbor]

    def is_symmetric(self) -> bool:
        for u, nbrs in self._adj.items():
            for v, weight in nbrs.items():
                if self._adj.get(v, {}).get(u) != weight:
                    return False
        return True

    def to_adjacency_sets(self) -> dict[str, set[str]]:
        """Unweighted node -> neighbor set view."""
        return {n: set(nbrs) for n, nbrs in self._adj.items()}

    # ------------------------------------------------------------------
    # Derivations
    # ------------------------------------------------------------------

    def copy(self) -> "AdjacencyGraph":
        return AdjacencyGraph(self._nodes, self.edges())

    def without_edges(self, pairs: Iterable[tuple[str, str]]) -> "AdjacencyGraph":
        """New graph with the given pairs removed; unknown pairs are ignored."""
        result = self.copy()
        for u, v in pairs:
            if u in result._adj and v in result._adj:
                result._remove_edge(u, v)
        return result


# ============================================================================
# Graph Construction
# ============================================================================

def validate_distance_matrix(distances: DistanceMatrix) -> None:
    """
    Reject malformed distance matrices.

    Raises:
        ValueError: on shape mismatch, duplicate ids, NaN/inf, negative
            entries, asymmetry or a non-zero diagonal
    """
    values = np.asarray(distances.values, dtype=float)
    n = len(distances.node_ids)

    if values.ndim != 2 or values.shape != (n, n):
        raise ValueError(
            f"Distance matrix shape {values.shape} does not match {n} node ids"
        )
    if len(set(distances.node_ids)) != n:
        raise ValueError("Distance matrix has duplicate node ids")
    if n == 0:
        return
    if not np.all(np.isfinite(values)):
        raise ValueError("Distance matrix contains NaN or infinite values")
    if np.any(values < 0):
        raise ValueError("Distance matrix contains negative distances")
    if not np.allclose(values, values.T, rtol=SYMMETRY_TOLERANCE, atol=SYMMETRY_TOLERANCE):
        raise ValueError("Distance matrix is not symmetric")
    if np.any(np.diag(values) != 0):
        raise ValueError("Distance matrix diagonal must be zero")


def build_graph(distances: DistanceMatrix, threshold: float) -> AdjacencyGraph:
    """
    Build the adjacency graph from pairwise distances.

    A pair becomes an edge weighted by its distance iff distance <= threshold.
    Pairs above the threshold have no edge.

    Args:
        distances: Validated symmetric distance matrix
        threshold: Adjacency distance threshold (same unit as the matrix)

    Returns:
        New AdjacencyGraph over all matrix nodes
    """
    if threshold is None or math.isnan(threshold) or threshold < 0:
        raise ValueError(f"Threshold must be a non-negative number, got {threshold}")
    validate_distance_matrix(distances)

    ids = distances.node_ids
    values = distances.values
    edges = []
    for i in range(len(ids)):
        for j in range(i + 1, len(ids)):
            dist = float(values[i, j])
            if dist <= threshold:
                edges.append((ids[i], ids[j], dist))

    return AdjacencyGraph(ids, edges)


# ============================================================================
# Triangle Detection
# ============================================================================

def find_triangles(graph: AdjacencyGraph) -> list[tuple[str, str, str]]:
    """
    Enumerate all 3-cliques.

    Each triangle is reported once as an id-sorted tuple (u, v, w) and the
    list is in ascending lexicographic order, which is the processing order
    used by the triangle refinement.
    """
    adjacency = graph.to_adjacency_sets()
    triangles = []
    for u in sorted(adjacency):
        higher = sorted(v for v in adjacency[u] if v > u)
        for i, v in enumerate(higher):
            for w in higher[i + 1:]:
                if w in adjacency[v]:
                    triangles.append((u, v, w))
    return triangles
