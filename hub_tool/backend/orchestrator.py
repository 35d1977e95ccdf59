"""
Region-level hub allocation.
Runs graph building, greedy allocation and both refinement passes for each
(state, county, carrier) region and merges the results by tower id.
"""
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, Sequence

from allocator import (
    allocate,
    alternating_allocation,
    hub_count,
    hub_sizes,
    sequential_allocation,
)
from config import (
    DEFAULT_DISTANCE_UNIT,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_TARGET_MAX_HUBS,
    DEFAULT_THRESHOLD_KM,
)
from distances import build_distance_matrix
from graph import build_graph, find_triangles
from metrics import check_allocation_validity, compute_balance_metrics
from models import AllocationRun, RegionResult, TowerNode
from refiners import reduce_hubs, refine_triangles_with_report

# Regions at or below this size get one hub per tower without a graph
TRIVIAL_REGION_SIZE = 2

# Minimum hubs per region so every area keeps a redundant hub
MIN_HUBS = 2


def group_by_region(nodes: Iterable[TowerNode]) -> dict[tuple[str, str, str], list[TowerNode]]:
    """Group towers by (state, county, carrier), regions and members sorted."""
    groups: dict[tuple[str, str, str], list[TowerNode]] = defaultdict(list)
    for node in nodes:
        groups[node.region_key].append(node)
    return {
        key: sorted(members, key=lambda n: n.node_id)
        for key, members in sorted(groups.items())
    }


def _check_unique_ids(nodes: Sequence[TowerNode]) -> None:
    seen: set[str] = set()
    duplicates: set[str] = set()
    for node in nodes:
        if node.node_id in seen:
            duplicates.add(node.node_id)
        seen.add(node.node_id)
    if duplicates:
        sample = ", ".join(sorted(duplicates)[:5])
        raise ValueError(f"{len(duplicates)} duplicate node ids (sample: {sample})")


# ============================================================================
# Single Region
# ============================================================================

def allocate_region(
    nodes: Sequence[TowerNode],
    threshold: float = DEFAULT_THRESHOLD_KM,
    target_max: int = DEFAULT_TARGET_MAX_HUBS,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    distance_unit: str = DEFAULT_DISTANCE_UNIT,
    region_key: tuple[str, str, str] | None = None,
) -> RegionResult:
    """
    Allocate hubs for the towers of a single region.

    Pipeline:
    1. <= 2 towers: hubs 1..count in id order, no graph
    2. Build the distance matrix and threshold graph
    3. If the graph has triangles, eliminate them before allocating
    4. Fewer than 2 hubs: alternate towers between hub 1 and hub 2
    5. More than target_max hubs: run the convergence pass and
       re-derive the allocation from its graph

    Args:
        nodes: Towers of one (state, county, carrier) region
        threshold: Adjacency distance threshold
        target_max: Target maximum hub count
        max_iterations: Iteration cap for the convergence pass
        distance_unit: "km" or "mi"
        region_key: Region key, required when nodes is empty

    Returns:
        RegionResult for the region

    Raises:
        ValueError: on mixed regions, duplicate ids or invalid parameters
    """
    if target_max < 1:
        raise ValueError(f"target_max must be >= 1, got {target_max}")

    nodes = sorted(nodes, key=lambda n: n.node_id)
    keys = {n.region_key for n in nodes}
    if len(keys) > 1:
        raise ValueError(f"Towers span {len(keys)} regions; allocate_region expects one")
    if region_key is None:
        if not nodes:
            raise ValueError("region_key is required for an empty region")
        region_key = nodes[0].region_key
    elif keys and keys != {region_key}:
        raise ValueError(f"Towers do not belong to region {region_key}")
    _check_unique_ids(nodes)

    state, county, carrier = region_key
    result = RegionResult(state=state, county=county, carrier=carrier, node_count=len(nodes))
    node_ids = [n.node_id for n in nodes]

    if len(nodes) <= TRIVIAL_REGION_SIZE:
        assignments = sequential_allocation(node_ids)
        return _finish(result, assignments)

    distances = build_distance_matrix(nodes, unit=distance_unit)
    graph = build_graph(distances, threshold)

    triangles = find_triangles(graph)
    result.triangles_found = len(triangles)
    if triangles:
        refined, removed = refine_triangles_with_report(graph)
        result.triangle_edges_removed = len(removed)
    else:
        refined = graph
    assignments = allocate(refined)

    if hub_count(assignments) < MIN_HUBS:
        assignments = alternating_allocation(node_ids)
    elif hub_count(assignments) > target_max:
        convergence = reduce_hubs(
            assignments,
            refined,
            target_max=target_max,
            max_iterations=max_iterations,
        )
        assignments = allocate(convergence.graph)
        result.convergence_edges_removed = len(convergence.removed_edges)
        result.convergence_iterations = convergence.iterations
        result.converged = convergence.converged
        if convergence.warning:
            result.warnings.append(f"{state}/{county}/{carrier}: {convergence.warning}")

    validity = check_allocation_validity(assignments, graph)
    result.conflicts = [list(pair) for pair in validity["conflicts"]]
    if validity["unallocated"]:
        raise ValueError(f"{len(validity['unallocated'])} towers left without a hub")
    return _finish(result, assignments)


def _finish(result: RegionResult, assignments: dict[str, int]) -> RegionResult:
    result.assignments = assignments
    result.hub_count = hub_count(assignments)
    result.hub_sizes = hub_sizes(assignments)
    result.balance = compute_balance_metrics(assignments)
    return result


def _allocate_region_safely(
    region_key: tuple[str, str, str],
    nodes: Sequence[TowerNode],
    threshold: float,
    target_max: int,
    max_iterations: int,
    distance_unit: str,
) -> RegionResult:
    """Run allocate_region, recording a ValueError on the region instead of raising."""
    try:
        return allocate_region(
            nodes,
            threshold=threshold,
            target_max=target_max,
            max_iterations=max_iterations,
            distance_unit=distance_unit,
            region_key=region_key,
        )
    except ValueError as exc:
        state, county, carrier = region_key
        print(f"[orchestrator] Region {state}/{county}/{carrier} failed: {exc}")
        return RegionResult(
            state=state,
            county=county,
            carrier=carrier,
            node_count=len(nodes),
            status="failed",
            error=str(exc),
            converged=False,
        )


# ============================================================================
# All Regions
# ============================================================================

def allocate_regions(
    nodes: Sequence[TowerNode],
    threshold: float = DEFAULT_THRESHOLD_KM,
    target_max: int = DEFAULT_TARGET_MAX_HUBS,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    distance_unit: str = DEFAULT_DISTANCE_UNIT,
    max_workers: int | None = None,
) -> AllocationRun:
    """
    Allocate every region independently and merge by tower id.

    Regions share no state, so with max_workers > 1 they run on a thread
    pool; results are identical to a serial run.

    Args:
        nodes: Towers from any number of regions
        threshold: Adjacency distance threshold
        target_max: Target maximum hub count per region
        max_iterations: Iteration cap for the convergence pass
        distance_unit: "km" or "mi"
        max_workers: Thread count; None or 1 runs serially

    Returns:
        AllocationRun with per-region results and merged assignments

    Raises:
        ValueError: if node ids are not unique across the input
    """
    nodes = list(nodes)
    _check_unique_ids(nodes)
    groups = group_by_region(nodes)

    def run(item: tuple[tuple[str, str, str], list[TowerNode]]) -> RegionResult:
        key, members = item
        return _allocate_region_safely(
            key, members, threshold, target_max, max_iterations, distance_unit
        )

    if max_workers and max_workers > 1 and len(groups) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            regions = list(executor.map(run, groups.items()))
    else:
        regions = [run(item) for item in groups.items()]

    assignments: dict[str, int] = {}
    warnings: list[str] = []
    for region in regions:
        assignments.update(region.assignments)
        warnings.extend(region.warnings)
        if region.status == "failed":
            warnings.append(
                f"Region {region.state}/{region.county}/{region.carrier} failed: {region.error}"
            )

    not_converged = sum(1 for r in regions if r.status == "ok" and not r.converged)
    failed = sum(1 for r in regions if r.status == "failed")
    print(
        f"[orchestrator] regions={len(regions)} towers={len(nodes)} "
        f"threshold={threshold}{distance_unit} target_max={target_max} "
        f"not_converged={not_converged} failed={failed}"
    )

    return AllocationRun(regions=regions, assignments=assignments, warnings=warnings)
