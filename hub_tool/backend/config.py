"""
Runtime defaults for hub allocation.
Each value can be overridden with an environment variable.
"""
import os
from pathlib import Path


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


# ============================================================================
# Allocation Defaults
# ============================================================================

# Two towers closer than this are adjacent and must not share a hub
DEFAULT_THRESHOLD_KM = _env_float("HUB_THRESHOLD", 20.0)

# Hub count each region is driven towards by the convergence pass
DEFAULT_TARGET_MAX_HUBS = _env_int("HUB_TARGET_MAX", 2)

# Safety cap for the convergence pass
DEFAULT_MAX_ITERATIONS = _env_int("HUB_MAX_ITERATIONS", 100)

# "km" or "mi"
DEFAULT_DISTANCE_UNIT = os.environ.get("HUB_DISTANCE_UNIT", "km").strip().lower() or "km"


# ============================================================================
# Data Location
# ============================================================================

def default_csv_path() -> Path:
    """CSV path from HUB_CSV_PATH, else towers.csv at the project root."""
    csv_path = os.environ.get("HUB_CSV_PATH")
    if csv_path:
        return Path(csv_path)
    # Project root is two levels up from backend
    backend_dir = Path(__file__).parent
    return backend_dir.parent.parent / "towers.csv"
