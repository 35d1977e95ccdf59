"""
Data loading for tower hub allocation.
Handles CSV loading, column aliasing, type coercion and conversion to TowerNode records.
"""
from pathlib import Path

import pandas as pd

from config import default_csv_path
from models import TowerNode


# ============================================================================
# Column Definitions
# ============================================================================

REQUIRED_COLUMNS = ["node_id", "latitude", "longitude", "county", "state", "carrier"]

# Accepted header variations -> canonical column
COLUMN_ALIASES = {
    "id": "node_id",
    "tower_id": "node_id",
    "site_id": "node_id",
    "lat": "latitude",
    "lon": "longitude",
    "lng": "longitude",
    "long": "longitude",
    "county_name": "county",
    "state_code": "state",
    "license": "carrier",
    "licensee": "carrier",
}

TEXT_COLUMNS = ["node_id", "county", "state", "carrier"]


def normalize_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Lowercase/strip column names and map known aliases to canonical names."""
    renamed = {}
    for col in df.columns:
        key = str(col).strip().lower().replace(" ", "_")
        renamed[col] = COLUMN_ALIASES.get(key, key)
    df = df.rename(columns=renamed)
    # Keep the first occurrence if two aliases collapse onto one name
    return df.loc[:, ~df.columns.duplicated()]


def clean_towers(df: pd.DataFrame) -> pd.DataFrame:
    """
    Coerce types and drop rows that cannot be allocated.

    Rows missing a required field or with out-of-range coordinates are
    dropped. No imputation or deduplication is done here.
    """
    df = normalize_columns(df)
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"CSV is missing required columns: {missing}")

    df = df[REQUIRED_COLUMNS].copy()
    for col in TEXT_COLUMNS:
        df[col] = df[col].where(df[col].isna(), df[col].astype(str).str.strip())
        df[col] = df[col].replace("", pd.NA)
    df["state"] = df["state"].str.upper()
    df["latitude"] = pd.to_numeric(df["latitude"], errors="coerce")
    df["longitude"] = pd.to_numeric(df["longitude"], errors="coerce")

    valid_mask = df[REQUIRED_COLUMNS].notna().all(axis=1)
    valid_mask &= df["latitude"].between(-90, 90) & df["longitude"].between(-180, 180)
    dropped = int((~valid_mask).sum())
    if dropped > 0:
        print(f"[data_loader] Removed {dropped:,} rows with missing or invalid fields")

    return df[valid_mask].reset_index(drop=True)


def dataframe_to_nodes(df: pd.DataFrame) -> list[TowerNode]:
    """Convert a cleaned tower DataFrame into TowerNode records."""
    return [
        TowerNode(
            node_id=str(row.node_id),
            latitude=float(row.latitude),
            longitude=float(row.longitude),
            county=str(row.county),
            state=str(row.state),
            carrier=str(row.carrier),
        )
        for row in df.itertuples(index=False)
    ]


class DataStore:
    """
    Singleton-like data store that holds the loaded towers.
    """

    def __init__(self):
        self.df: pd.DataFrame | None = None
        self.nodes: list[TowerNode] = []
        self._loaded = False

    def load_data(self, csv_path: str | Path) -> None:
        """
        Load and clean a tower CSV.

        Args:
            csv_path: Path to the CSV file.
        """
        csv_path = Path(csv_path)
        if not csv_path.exists():
            raise FileNotFoundError(f"CSV file not found: {csv_path}")

        print(f"[data_loader] Loading towers from {csv_path}...")
        raw = pd.read_csv(
            csv_path,
            dtype=str,
            na_values=["", "NA", "N/A", "null", "NULL"],
        )
        self.load_frame(raw)

    def load_frame(self, raw: pd.DataFrame) -> None:
        """Load towers from an in-memory DataFrame."""
        original_count = len(raw)
        self.df = clean_towers(raw)
        self.nodes = dataframe_to_nodes(self.df)
        self._loaded = True
        print(f"[data_loader] Loaded {len(self.nodes):,} of {original_count:,} towers in {self.region_count:,} regions")

    def get_nodes(
        self,
        states: list[str] | None = None,
        counties: list[str] | None = None,
        carriers: list[str] | None = None,
    ) -> list[TowerNode]:
        """
        Get loaded towers with optional filtering.
        Empty or None filters match everything; state matching is case-insensitive.
        """
        state_set = {s.strip().upper() for s in states} if states else None
        county_set = {c.strip() for c in counties} if counties else None
        carrier_set = {c.strip() for c in carriers} if carriers else None

        return [
            n for n in self.nodes
            if (state_set is None or n.state in state_set)
            and (county_set is None or n.county in county_set)
            and (carrier_set is None or n.carrier in carrier_set)
        ]

    def get_carriers(self) -> list[str]:
        return sorted({n.carrier for n in self.nodes})

    @property
    def row_count(self) -> int:
        return len(self.nodes)

    @property
    def state_count(self) -> int:
        return len({n.state for n in self.nodes})

    @property
    def county_count(self) -> int:
        return len({(n.state, n.county) for n in self.nodes})

    @property
    def carrier_count(self) -> int:
        return len({n.carrier for n in self.nodes})

    @property
    def region_count(self) -> int:
        return len({n.region_key for n in self.nodes})

    @property
    def is_loaded(self) -> bool:
        return self._loaded


# Global data store instance
data_store = DataStore()


def get_data_store() -> DataStore:
    """Get the global data store instance."""
    return data_store


def load_csv_data(csv_path: str | Path | None = None) -> DataStore:
    """
    Load data from CSV, using the configured default path if not specified.
    Returns the data store instance.
    """
    if csv_path is None:
        csv_path = default_csv_path()

    data_store.load_data(csv_path)
    return data_store
