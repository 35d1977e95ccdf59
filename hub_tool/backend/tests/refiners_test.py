import random

import pytest

from allocator import allocate, hub_count
from graph import AdjacencyGraph, find_triangles
from refiners import reduce_hubs, refine_triangles, refine_triangles_with_report


def complete_graph() -> AdjacencyGraph:
    return AdjacencyGraph(
        ["A", "B", "C", "D"],
        [
            ("A", "B", 1.0),
            ("A", "C", 2.0),
            ("A", "D", 3.0),
            ("B", "C", 4.0),
            ("B", "D", 5.0),
            ("C", "D", 6.0),
        ],
    )


def scenario_graph() -> AdjacencyGraph:
    return AdjacencyGraph(
        ["A", "B", "C", "D"],
        [("A", "B", 5.0), ("A", "C", 8.0), ("B", "C", 6.0)],
    )


# ============================================================================
# Triangle Elimination
# ============================================================================

def test_refine_triangles_removes_heaviest_edge():
    graph = scenario_graph()
    refined = refine_triangles(graph)

    assert not refined.has_edge("A", "C")
    assert refined.has_edge("A", "B")
    assert refined.has_edge("B", "C")
    assert allocate(refined) == {"A": 2, "B": 1, "C": 2, "D": 1}


def test_refine_triangles_does_not_mutate_input():
    graph = scenario_graph()
    refine_triangles(graph)
    assert graph.has_edge("A", "C")


def test_refine_triangles_is_identity_without_triangles():
    graph = AdjacencyGraph(
        ["A", "B", "C", "D"],
        [("A", "B", 1.0), ("B", "C", 2.0), ("C", "D", 3.0)],
    )
    refined, removed = refine_triangles_with_report(graph)

    assert refined == graph
    assert removed == []


def test_refine_triangles_skips_triangles_broken_earlier():
    refined, removed = refine_triangles_with_report(complete_graph())

    # B-C, B-D and C-D go; the last triangle (B, C, D) is already broken
    assert removed == [("B", "C"), ("B", "D"), ("C", "D")]
    assert sorted(refined.edges()) == [("A", "B", 1.0), ("A", "C", 2.0), ("A", "D", 3.0)]
    assert find_triangles(refined) == []
    assert refined.is_symmetric()


def test_refine_triangles_zero_weight_triangle():
    graph = AdjacencyGraph(
        ["A", "B", "C"],
        [("A", "B", 0.0), ("A", "C", 0.0), ("B", "C", 0.0)],
    )
    refined, removed = refine_triangles_with_report(graph)

    assert removed == [("A", "B")]
    assert refined.edge_count == 2


# ============================================================================
# Convergence Refinement
# ============================================================================

def test_reduce_hubs_converges_on_complete_graph():
    graph = complete_graph()
    allocation = allocate(graph)
    assert hub_count(allocation) == 4

    result = reduce_hubs(allocation, graph, target_max=2)

    assert result.converged
    assert result.warning is None
    assert result.iterations == 2
    assert result.hub_counts == [4, 3, 2]
    assert result.removed_edges == [("C", "D"), ("B", "D"), ("B", "C")]
    assert result.allocation == {"A": 1, "B": 2, "C": 2, "D": 2}
    assert allocate(result.graph) == result.allocation
    assert result.graph.is_symmetric()
    # Input graph untouched
    assert graph.edge_count == 6


def test_reduce_hubs_noop_when_already_within_target():
    graph = scenario_graph()
    allocation = allocate(graph)

    result = reduce_hubs(allocation, graph, target_max=3)

    assert result.converged
    assert result.iterations == 0
    assert result.graph == graph
    assert result.allocation == allocation


def test_reduce_hubs_stops_at_iteration_cap():
    graph = complete_graph()
    result = reduce_hubs(allocate(graph), graph, target_max=2, max_iterations=1)

    assert not result.converged
    assert result.iterations == 1
    assert result.hub_count == 3
    assert result.removed_edges == [("C", "D"), ("B", "D")]
    assert result.graph.edge_count == 4
    assert "iteration cap" in result.warning


def test_reduce_hubs_stops_when_no_edges_remain():
    graph = AdjacencyGraph(["A", "B", "C"])
    result = reduce_hubs({"A": 1, "B": 2, "C": 3}, graph, target_max=2)

    assert not result.converged
    assert result.iterations == 0
    assert "no removable edges" in result.warning


def random_graph(rng: random.Random, size: int = 14, density: float = 0.5) -> AdjacencyGraph:
    nodes = [f"N{i:02d}" for i in range(size)]
    edges = [
        (u, v, rng.uniform(0, 20))
        for i, u in enumerate(nodes)
        for v in nodes[i + 1:]
        if rng.random() < density
    ]
    return AdjacencyGraph(nodes, edges)


def path_graph() -> AdjacencyGraph:
    # A-B-C-D; the first round leaves B-C, so the hub count stays at 2
    return AdjacencyGraph(
        ["A", "B", "C", "D"],
        [("A", "B", 1.0), ("B", "C", 1.0), ("C", "D", 2.0)],
    )


def test_reduce_hubs_reports_best_iteration_not_last():
    graph = path_graph()
    allocation = allocate(graph)
    assert allocation == {"A": 2, "B": 1, "C": 2, "D": 1}

    result = reduce_hubs(allocation, graph, target_max=1, max_iterations=1)

    assert not result.converged
    assert result.total_iterations == 1
    assert result.raw_hub_counts == [2, 2]
    assert result.hub_counts == [2, 2]
    # The round that did not help is discarded along with its edges
    assert result.iterations == 0
    assert result.removed_edges == []
    assert result.graph == graph
    assert result.allocation == allocation


def test_reduce_hubs_path_converges_after_flat_round():
    graph = path_graph()
    result = reduce_hubs(allocate(graph), graph, target_max=1, max_iterations=2)

    assert result.converged
    assert result.iterations == 2
    assert result.raw_hub_counts == [2, 2, 1]
    assert result.removed_edges == [("A", "B"), ("C", "D"), ("B", "C")]
    assert result.graph.edge_count == 0


def test_reduce_hubs_removed_edges_match_returned_graph():
    rng = random.Random(11)
    for case in range(60):
        graph = random_graph(rng, size=rng.randint(6, 16), density=rng.uniform(0.3, 0.8))
        target_max = rng.choice([1, 2, 3])
        max_iterations = rng.randint(1, 3)
        allocation = allocate(graph)

        result = reduce_hubs(allocation, graph, target_max=target_max, max_iterations=max_iterations)

        assert graph.edge_count - result.graph.edge_count == len(result.removed_edges), case
        assert len(set(result.removed_edges)) == len(result.removed_edges)
        for u, v in result.removed_edges:
            assert u < v
            assert graph.has_edge(u, v)
            assert not result.graph.has_edge(u, v)
        assert result.iterations <= result.total_iterations <= max_iterations
        assert allocate(result.graph) == result.allocation
        assert result.hub_count == result.hub_counts[-1]


def test_reduce_hubs_tracks_best_of_raw_counts():
    rng = random.Random(3)
    for _ in range(15):
        graph = random_graph(rng)
        allocation = allocate(graph)

        result = reduce_hubs(allocation, graph, target_max=2)

        raw = result.raw_hub_counts
        assert raw[0] == hub_count(allocation)
        assert len(raw) == result.total_iterations + 1
        assert result.hub_counts == [min(raw[:i + 1]) for i in range(len(raw))]
        assert result.hub_count == min(raw)
        assert raw[result.iterations] == result.hub_count
        assert result.converged
        assert allocate(result.graph) == result.allocation
        assert result.graph.is_symmetric()


def test_reduce_hubs_rejects_bad_target():
    with pytest.raises(ValueError):
        reduce_hubs({}, AdjacencyGraph([]), target_max=0)
