"""
Greedy hub allocation.
Partitions a tower graph into hubs of mutually non-adjacent towers by repeatedly
extracting a maximal independent set seeded at the highest-degree tower.
"""
from collections import defaultdict

from graph import AdjacencyGraph


def allocate(graph: AdjacencyGraph) -> dict[str, int]:
    """
    Assign every node of the graph to a hub.

    Algorithm (greedy maximal-independent-set cover):
    1. Compute each node's degree in the graph
    2. Pick the unallocated node with the highest degree (ties -> smallest id)
       and open a new hub with it
    3. Scan the remaining unallocated nodes, highest degree first, and absorb
       every node that is not a neighbor of any current hub member; each
       absorbed node adds its neighbors to the forbidden set
    4. Close the hub and repeat until every node is allocated

    Args:
        graph: Adjacency graph to partition

    Returns:
        Allocation dict (node_id -> hub index, dense from 1)
    """
    degrees = {n: graph.degree(n) for n in graph.nodes}
    # Selection order: highest degree first, ties broken by ascending id
    order = sorted(graph.nodes, key=lambda n: (-degrees[n], n))

    allocation: dict[str, int] = {}
    hub = 0

    for seed in order:
        if seed in allocation:
            continue

        hub += 1
        allocation[seed] = hub
        forbidden = set(graph.neighbors(seed))

        for candidate in order:
            if candidate in allocation or candidate in forbidden:
                continue
            allocation[candidate] = hub
            forbidden.update(graph.neighbors(candidate))

    return allocation


# ============================================================================
# Allocation Helpers
# ============================================================================

def hub_count(allocation: dict[str, int]) -> int:
    """Number of distinct hubs in an allocation."""
    return len(set(allocation.values()))


def hub_members(allocation: dict[str, int]) -> dict[int, list[str]]:
    """Hub index -> sorted member ids."""
    members: dict[int, list[str]] = defaultdict(list)
    for node_id, hub in allocation.items():
        members[hub].append(node_id)
    return {hub: sorted(nodes) for hub, nodes in sorted(members.items())}


def hub_sizes(allocation: dict[str, int]) -> dict[int, int]:
    """Hub index -> member count."""
    return {hub: len(nodes) for hub, nodes in hub_members(allocation).items()}


def hub_label(hub: int) -> str:
    """Display label used by reporting layers."""
    return f"Hub {hub}"


def sequential_allocation(node_ids) -> dict[str, int]:
    """One hub per node, in ascending id order."""
    return {node_id: i + 1 for i, node_id in enumerate(sorted(node_ids))}


def alternating_allocation(node_ids) -> dict[str, int]:
    """Alternate nodes between hub 1 and hub 2 in ascending id order."""
    return {node_id: (i % 2) + 1 for i, node_id in enumerate(sorted(node_ids))}
