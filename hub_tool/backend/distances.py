"""
Great-circle distances between towers.
Provides the haversine primitive and the id-indexed DistanceMatrix consumed by graph building.
"""
from typing import Iterable, Sequence

import numpy as np

from config import DEFAULT_DISTANCE_UNIT

# Earth radius per supported distance unit
EARTH_RADIUS = {
    "km": 6371.0,
    "mi": 3958.8,
}


def haversine(lat1, lon1, lat2, lon2, unit: str = "km"):
    """
    Vectorized haversine distance.

    Accepts scalars or numpy arrays (broadcasting applies) and returns
    a float for scalar input, an array otherwise.
    """
    if unit not in EARTH_RADIUS:
        raise ValueError(f"Unsupported distance unit '{unit}'. Must be one of: {sorted(EARTH_RADIUS)}")
    radius = EARTH_RADIUS[unit]

    lat1, lon1, lat2, lon2 = map(np.radians, map(np.asarray, [lat1, lon1, lat2, lon2]))

    dlat = lat2 - lat1
    dlon = lon2 - lon1

    a = np.sin(dlat / 2) ** 2 + np.cos(lat1) * np.cos(lat2) * np.sin(dlon / 2) ** 2
    # Clip guards against rounding pushing a slightly above 1
    c = 2 * np.arcsin(np.sqrt(np.clip(a, 0.0, 1.0)))
    result = radius * c
    if np.ndim(result) == 0:
        return float(result)
    return result


def haversine_km(lat1, lon1, lat2, lon2):
    """Haversine distance in kilometers."""
    return haversine(lat1, lon1, lat2, lon2, unit="km")


class DistanceMatrix:
    """
    Symmetric pairwise distances addressed by node id.

    Wraps a square numpy array with an id -> index table so callers never
    depend on positional indexing. Treated as read-only once built.
    """

    def __init__(self, node_ids: Sequence[str], values):
        self.node_ids: tuple[str, ...] = tuple(str(n) for n in node_ids)
        self.values = np.array(values, dtype=float)
        self.values.setflags(write=False)
        self._index = {node_id: i for i, node_id in enumerate(self.node_ids)}

    @classmethod
    def from_pairs(
        cls,
        node_ids: Iterable[str],
        pairs: dict[tuple[str, str], float],
    ) -> "DistanceMatrix":
        """
        Build a matrix from unordered pair distances.
        Missing pairs raise ValueError; the diagonal is zero.
        """
        ids = [str(n) for n in node_ids]
        index = {node_id: i for i, node_id in enumerate(ids)}
        values = np.zeros((len(ids), len(ids)), dtype=float)
        for (u, v), dist in pairs.items():
            if u not in index or v not in index:
                raise ValueError(f"Distance pair ({u}, {v}) references an unknown node")
            values[index[u], index[v]] = dist
            values[index[v], index[u]] = dist
        for i, u in enumerate(ids):
            for j in range(i + 1, len(ids)):
                v = ids[j]
                if (u, v) not in pairs and (v, u) not in pairs:
                    raise ValueError(f"Missing distance for pair ({u}, {v})")
        return cls(ids, values)

    def __len__(self) -> int:
        return len(self.node_ids)

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._index

    def distance(self, u: str, v: str) -> float:
        """Distance between two node ids."""
        return float(self.values[self._index[u], self._index[v]])


def build_distance_matrix(nodes: Sequence, unit: str = DEFAULT_DISTANCE_UNIT) -> DistanceMatrix:
    """
    Compute pairwise haversine distances for a list of towers.

    Args:
        nodes: Objects with node_id, latitude and longitude attributes
        unit: "km" or "mi"

    Returns:
        DistanceMatrix in the order the nodes were given
    """
    node_ids = [n.node_id for n in nodes]
    if not nodes:
        return DistanceMatrix([], np.zeros((0, 0)))

    lats = np.array([n.latitude for n in nodes], dtype=float)
    lons = np.array([n.longitude for n in nodes], dtype=float)

    values = haversine(lats[:, None], lons[:, None], lats[None, :], lons[None, :], unit=unit)
    # Exact symmetry and zero diagonal, independent of floating point order
    values = (values + values.T) / 2.0
    np.fill_diagonal(values, 0.0)

    return DistanceMatrix(node_ids, values)
