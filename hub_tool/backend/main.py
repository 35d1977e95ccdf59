"""
FastAPI application for the Tower Hub Planner.
Provides endpoints for hub allocation over cell tower regions.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException

from allocator import hub_label
from config import default_csv_path
from data_loader import get_data_store, load_csv_data
from models import (
    AllocateRequest,
    AllocateResponse,
    ConfigResponse,
    HealthResponse,
)
from orchestrator import allocate_regions


# ============================================================================
# Application Lifecycle
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load tower data on startup."""
    csv_path = default_csv_path()
    print(f"Looking for CSV at: {csv_path}")

    if csv_path.exists():
        load_csv_data(csv_path)
    else:
        print(f"WARNING: CSV file not found at {csv_path}")
        print("API will start but /allocate requires inline nodes until data is loaded.")

    yield


# ============================================================================
# FastAPI Application
# ============================================================================

app = FastAPI(
    title="Tower Hub Planner API",
    description="Backend API for allocating cell towers to non-adjacent hubs",
    version="1.0.0",
    lifespan=lifespan,
)


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Simple health check endpoint."""
    return HealthResponse(status="ok")


# ============================================================================
# Configuration
# ============================================================================

@app.get("/config", response_model=ConfigResponse)
async def get_config():
    """
    Get allocation defaults and counts for the loaded tower data.
    """
    store = get_data_store()

    return ConfigResponse(
        data_loaded=store.is_loaded,
        row_count=store.row_count,
        state_count=store.state_count,
        county_count=store.county_count,
        carrier_count=store.carrier_count,
        region_count=store.region_count,
        carriers=store.get_carriers(),
    )


# ============================================================================
# Allocation Endpoint
# ============================================================================

@app.post("/allocate", response_model=AllocateResponse)
def allocate_hubs(request: AllocateRequest):
    """
    Allocate hubs for every (state, county, carrier) region.
    Uses inline nodes when provided, otherwise the loaded CSV.
    """
    if request.nodes is not None:
        state_set = {s.strip().upper() for s in request.states}
        nodes = [
            n for n in request.nodes
            if (not state_set or n.state in state_set)
            and (not request.counties or n.county in request.counties)
            and (not request.carriers or n.carrier in request.carriers)
        ]
    else:
        store = get_data_store()
        if not store.is_loaded:
            raise HTTPException(status_code=503, detail="Data not loaded. Provide nodes inline or load a CSV.")
        nodes = store.get_nodes(
            states=request.states,
            counties=request.counties,
            carriers=request.carriers,
        )

    if not nodes:
        raise HTTPException(
            status_code=400,
            detail="No towers match the requested filters",
        )

    filter_msgs = []
    if request.states:
        filter_msgs.append(f"states={request.states}")
    if request.counties:
        filter_msgs.append(f"counties={request.counties}")
    if request.carriers:
        filter_msgs.append(f"carriers={request.carriers}")
    if filter_msgs:
        print(f"[allocate] Filtering: {', '.join(filter_msgs)}")

    try:
        run = allocate_regions(
            nodes,
            threshold=request.threshold,
            target_max=request.target_max,
            max_iterations=request.max_iterations,
            distance_unit=request.distance_unit,
        )
    except ValueError as exc:
        raise HTTPException(
            status_code=422,
            detail=f"Invalid tower input: {exc}",
        ) from exc

    return AllocateResponse(
        regions=run.regions,
        assignments=run.assignments,
        hub_labels={node_id: hub_label(hub) for node_id, hub in run.assignments.items()},
        warnings=run.warnings,
    )


# ============================================================================
# Entry Point
# ============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
