"""
Pydantic models for tower records and API request/response schemas.
"""
from typing import Optional
from pydantic import BaseModel, Field, field_validator

from config import (
    DEFAULT_DISTANCE_UNIT,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_TARGET_MAX_HUBS,
    DEFAULT_THRESHOLD_KM,
)


# ============================================================================
# Tower Records
# ============================================================================

class TowerNode(BaseModel):
    """A single cell tower. Immutable once loaded."""
    node_id: str = Field(min_length=1)
    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)
    county: str
    state: str
    carrier: str

    class Config:
        frozen = True

    @field_validator("state")
    @classmethod
    def normalize_state(cls, v: str) -> str:
        """State codes compare case-insensitively, so "pa" and "PA" share regions."""
        v = v.strip().upper()
        if not v:
            raise ValueError("state must not be empty")
        return v

    @property
    def region_key(self) -> tuple[str, str, str]:
        """(state, county, carrier) partition this tower is allocated in."""
        return (self.state, self.county, self.carrier)


# ============================================================================
# Balance Metrics
# ============================================================================

class BalanceMetrics(BaseModel):
    """Balance of hub sizes within a region."""
    gini: float = 0.0
    max_min_ratio: float = 1.0
    equity_score: int = 100


# ============================================================================
# Region Result
# ============================================================================

class RegionResult(BaseModel):
    """Allocation outcome for one (state, county, carrier) region."""
    state: str
    county: str
    carrier: str
    node_count: int = 0
    assignments: dict[str, int] = Field(default_factory=dict)  # node_id -> hub
    hub_count: int = 0
    hub_sizes: dict[int, int] = Field(default_factory=dict)  # hub -> member count
    balance: BalanceMetrics = Field(default_factory=BalanceMetrics)
    triangles_found: int = 0
    triangle_edges_removed: int = 0
    convergence_edges_removed: int = 0
    convergence_iterations: int = 0
    converged: bool = True
    # Pairs within threshold that ended up sharing a hub after edge removal
    conflicts: list[list[str]] = Field(default_factory=list)
    status: str = Field(default="ok", pattern="^(ok|failed)$")
    error: Optional[str] = None
    warnings: list[str] = Field(default_factory=list)

    @property
    def region_key(self) -> tuple[str, str, str]:
        return (self.state, self.county, self.carrier)


class AllocationRun(BaseModel):
    """Per-region results merged into one region-wide allocation."""
    regions: list[RegionResult] = Field(default_factory=list)
    assignments: dict[str, int] = Field(default_factory=dict)  # node_id -> hub
    warnings: list[str] = Field(default_factory=list)

    @property
    def failed_regions(self) -> list[RegionResult]:
        return [r for r in self.regions if r.status == "failed"]


# ============================================================================
# Configuration Response
# ============================================================================

class ConfigResponse(BaseModel):
    """Response model for GET /config endpoint."""
    default_threshold: float = Field(default=DEFAULT_THRESHOLD_KM)
    default_target_max: int = Field(default=DEFAULT_TARGET_MAX_HUBS)
    default_max_iterations: int = Field(default=DEFAULT_MAX_ITERATIONS)
    distance_unit: str = Field(default=DEFAULT_DISTANCE_UNIT)
    data_loaded: bool = False
    row_count: int = 0
    state_count: int = 0
    county_count: int = 0
    carrier_count: int = 0
    region_count: int = 0
    carriers: list[str] = Field(default_factory=list)


# ============================================================================
# API Requests
# ============================================================================

class AllocateRequest(BaseModel):
    """Request body for POST /allocate endpoint."""
    threshold: float = Field(
        default=DEFAULT_THRESHOLD_KM,
        ge=0,
        description="Adjacency distance threshold in distance_unit",
    )
    target_max: int = Field(
        default=DEFAULT_TARGET_MAX_HUBS,
        ge=1,
        le=50,
        description="Target maximum hub count per region",
    )
    max_iterations: int = Field(
        default=DEFAULT_MAX_ITERATIONS,
        ge=1,
        le=10000,
        description="Iteration cap for the convergence pass",
    )
    distance_unit: str = Field(default=DEFAULT_DISTANCE_UNIT, pattern="^(km|mi)$")
    nodes: Optional[list[TowerNode]] = Field(
        default=None,
        description="Inline towers; when omitted the loaded CSV is used",
    )
    states: list[str] = Field(default_factory=list, description="Only allocate these states")
    counties: list[str] = Field(default_factory=list, description="Only allocate these counties")
    carriers: list[str] = Field(default_factory=list, description="Only allocate these carriers")


# ============================================================================
# API Responses
# ============================================================================

class AllocateResponse(BaseModel):
    """Response for POST /allocate endpoint."""
    regions: list[RegionResult]
    assignments: dict[str, int]
    hub_labels: dict[str, str] = Field(default_factory=dict)  # node_id -> "Hub N"
    warnings: list[str] = Field(default_factory=list)


class HealthResponse(BaseModel):
    """Response for GET /health endpoint."""
    status: str = "ok"
