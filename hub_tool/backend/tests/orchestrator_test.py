import pytest

import orchestrator
from distances import DistanceMatrix
from models import TowerNode
from orchestrator import allocate_region, allocate_regions, group_by_region


def tower(node_id, lat=40.0, lon=-75.0, county="Bucks", state="PA", carrier="Acme"):
    return TowerNode(
        node_id=node_id,
        latitude=lat,
        longitude=lon,
        county=county,
        state=state,
        carrier=carrier,
    )


def fixed_distances(pairs: dict[tuple[str, str], float]):
    """Replacement for build_distance_matrix returning fixed pair distances."""
    def build(nodes, unit="km"):
        return DistanceMatrix.from_pairs([n.node_id for n in nodes], pairs)
    return build


SCENARIO_PAIRS = {
    ("A", "B"): 5.0,
    ("A", "C"): 8.0,
    ("A", "D"): 25.0,
    ("B", "C"): 6.0,
    ("B", "D"): 22.0,
    ("C", "D"): 30.0,
}

# Five-cycle A-B-C-D-E-A, every other pair far apart
CYCLE_PAIRS = {
    ("A", "B"): 1.0,
    ("B", "C"): 2.0,
    ("C", "D"): 3.0,
    ("D", "E"): 4.0,
    ("A", "E"): 5.0,
    ("A", "C"): 50.0,
    ("A", "D"): 50.0,
    ("B", "D"): 50.0,
    ("B", "E"): 50.0,
    ("C", "E"): 50.0,
}


# ============================================================================
# Single Region
# ============================================================================

def test_single_tower_region_gets_one_hub():
    result = allocate_region([tower("T1")])
    assert result.assignments == {"T1": 1}
    assert result.hub_count == 1


def test_two_tower_region_gets_two_hubs_regardless_of_distance():
    far_apart = [tower("T2", lat=40.0), tower("T1", lat=45.0)]
    result = allocate_region(far_apart, threshold=20)

    assert result.assignments == {"T1": 1, "T2": 2}
    assert result.hub_count == 2


def test_empty_region_requires_key():
    result = allocate_region([], region_key=("PA", "Bucks", "Acme"))
    assert result.assignments == {}
    assert result.hub_count == 0

    with pytest.raises(ValueError):
        allocate_region([])


def test_scenario_region(monkeypatch):
    monkeypatch.setattr(orchestrator, "build_distance_matrix", fixed_distances(SCENARIO_PAIRS))
    nodes = [tower(n) for n in ["A", "B", "C", "D"]]

    result = allocate_region(nodes, threshold=20, target_max=2)

    assert result.assignments == {"A": 2, "B": 1, "C": 2, "D": 1}
    assert result.hub_count == 2
    assert result.triangles_found == 1
    assert result.triangle_edges_removed == 1
    assert result.convergence_iterations == 0
    assert result.conflicts == [["A", "C"]]
    assert result.hub_sizes == {1: 2, 2: 2}
    assert result.balance.equity_score == 100


def test_real_coordinates_triangle_region():
    # ~0.11 km, ~0.17 km and ~0.20 km apart: a single triangle
    nodes = [
        tower("A", lat=40.000, lon=-75.000),
        tower("B", lat=40.001, lon=-75.000),
        tower("C", lat=40.000, lon=-75.002),
    ]
    result = allocate_region(nodes, threshold=20)

    assert result.triangle_edges_removed == 1
    assert result.assignments == {"A": 1, "B": 2, "C": 2}
    assert result.conflicts == [["B", "C"]]


def test_disconnected_region_forced_to_two_alternating_hubs():
    # Roughly 111 km between consecutive towers
    nodes = [tower(f"T{i}", lat=30.0 + i) for i in range(1, 6)]
    result = allocate_region(nodes, threshold=20)

    assert result.assignments == {"T1": 1, "T2": 2, "T3": 1, "T4": 2, "T5": 1}
    assert result.hub_count == 2
    assert result.conflicts == []


def test_over_fragmented_region_runs_convergence(monkeypatch):
    monkeypatch.setattr(orchestrator, "build_distance_matrix", fixed_distances(CYCLE_PAIRS))
    nodes = [tower(n) for n in ["A", "B", "C", "D", "E"]]

    result = allocate_region(nodes, threshold=20, target_max=2)

    assert result.triangles_found == 0
    assert result.convergence_iterations == 1
    assert result.convergence_edges_removed == 1
    assert result.converged
    assert result.assignments == {"A": 2, "B": 1, "C": 2, "D": 1, "E": 2}
    assert result.conflicts == [["A", "E"]]


def test_non_converged_region_reports_warning(monkeypatch):
    monkeypatch.setattr(orchestrator, "build_distance_matrix", fixed_distances(CYCLE_PAIRS))
    nodes = [tower(n) for n in ["A", "B", "C", "D", "E"]]

    result = allocate_region(nodes, threshold=20, target_max=1, max_iterations=1)

    assert result.status == "ok"
    assert not result.converged
    assert result.hub_count > 1
    assert result.warnings and "above target 1" in result.warnings[0]


def test_allocate_region_rejects_mixed_regions():
    with pytest.raises(ValueError):
        allocate_region([tower("T1", county="Bucks"), tower("T2", county="Berks")])


# ============================================================================
# All Regions
# ============================================================================

def test_group_by_region_sorts_members():
    groups = group_by_region([
        tower("T2", county="Bucks"),
        tower("T1", county="Bucks"),
        tower("T3", county="Berks"),
        tower("T4", county="Bucks", carrier="Other"),
    ])

    assert list(groups) == [
        ("PA", "Berks", "Acme"),
        ("PA", "Bucks", "Acme"),
        ("PA", "Bucks", "Other"),
    ]
    assert [n.node_id for n in groups[("PA", "Bucks", "Acme")]] == ["T1", "T2"]


def test_tower_state_is_normalized():
    assert tower("T1", state=" pa ").state == "PA"
    with pytest.raises(ValueError):
        tower("T1", state="  ")


def test_state_case_does_not_split_regions():
    groups = group_by_region([
        tower("T1", state="PA"),
        tower("T2", state="pa", lat=40.05),
        tower("T3", state="Pa", lat=45.0),
    ])

    assert list(groups) == [("PA", "Bucks", "Acme")]
    assert [n.node_id for n in groups[("PA", "Bucks", "Acme")]] == ["T1", "T2", "T3"]


def test_allocate_regions_merges_by_node_id():
    nodes = [
        tower("B1", county="Berks"),
        tower("B2", county="Berks", lat=41.0),
        tower("K1", county="Bucks"),
    ]
    run = allocate_regions(nodes)

    assert run.assignments == {"B1": 1, "B2": 2, "K1": 1}
    assert [r.county for r in run.regions] == ["Berks", "Bucks"]
    assert run.failed_regions == []


def test_allocate_regions_parallel_matches_serial():
    nodes = [
        tower(f"{county}-{i}", lat=40.0 + i * 0.05, lon=-75.0 + (i % 3) * 0.05, county=county)
        for county in ["Berks", "Bucks", "Chester", "Delaware"]
        for i in range(7)
    ]
    serial = allocate_regions(nodes, threshold=10)
    parallel = allocate_regions(nodes, threshold=10, max_workers=4)

    assert serial.assignments == parallel.assignments
    assert [r.region_key for r in serial.regions] == [r.region_key for r in parallel.regions]
    for region in serial.regions:
        assert region.hub_count <= 2


def test_allocate_regions_rejects_duplicate_ids():
    with pytest.raises(ValueError):
        allocate_regions([tower("T1", county="Berks"), tower("T1", county="Bucks")])


def test_failed_region_does_not_abort_others(monkeypatch):
    real_build_graph = orchestrator.build_graph

    def flaky_build_graph(distances, threshold):
        if "BAD-1" in distances:
            raise ValueError("Distance matrix contains negative distances")
        return real_build_graph(distances, threshold)

    monkeypatch.setattr(orchestrator, "build_graph", flaky_build_graph)
    nodes = [tower(f"BAD-{i}", county="Berks", lat=40 + i) for i in range(1, 4)]
    nodes += [tower(f"OK-{i}", county="Bucks", lat=40 + i) for i in range(1, 4)]

    run = allocate_regions(nodes)

    failed = run.failed_regions
    assert [r.county for r in failed] == ["Berks"]
    assert "negative" in failed[0].error
    assert set(run.assignments) == {"OK-1", "OK-2", "OK-3"}
    assert any("Berks" in w for w in run.warnings)
