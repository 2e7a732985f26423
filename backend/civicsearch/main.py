"""
main.py - FastAPI application entry point for district lookup.

Exposes:
    GET  /                                  - health check (root)
    GET  /health                            - detailed health info
    GET  /api/v1/lookup                     - district for one lat/lon
    POST /api/v1/lookup/batch               - districts for many points, in order
    GET  /api/v1/districts                  - list all loaded district names
    GET  /api/v1/districts/geojson/{name}   - GeoJSON for one district
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from civicsearch import config
from civicsearch.batch import BatchResolver
from civicsearch.catalog import DistrictCatalog
from civicsearch.errors import CatalogError
from civicsearch.loader import load_catalog
from civicsearch.models import Point, QueryPoint
from civicsearch.schemas import BatchRequest, BatchResultOut, district_out, json_value
from civicsearch.services import locate

# ── Logging ──────────────────────────────────────────────────────────────────
logging.basicConfig(level=config.LOG_LEVEL, format="%(levelname)s: %(message)s")
logger = logging.getLogger(__name__)

# ── Application-level catalog (built once at startup) ─────────────────────────
catalog: DistrictCatalog | None = None
load_error: str | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the district catalog before accepting requests."""
    global catalog, load_error
    try:
        catalog = load_catalog()
        load_error = None
    except CatalogError as exc:
        catalog = None
        load_error = str(exc)
        logger.error("Could not load district catalog: %s", exc)
    if catalog is not None:
        logger.info("Loaded %d districts (name field %s)", catalog.count(), catalog.name_field)
    yield
    logger.info("Shutting down; releasing catalog.")


# ── FastAPI app ───────────────────────────────────────────────────────────────
app = FastAPI(
    title="District Lookup API",
    description="Find the legislative district that contains a coordinate, from a shapefile.",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


def _require_catalog() -> DistrictCatalog:
    if catalog is None:
        detail = "District catalog not loaded."
        if load_error:
            detail = f"{detail} {load_error}"
        raise HTTPException(status_code=503, detail=detail)
    return catalog


# ── Routes ────────────────────────────────────────────────────────────────────

@app.get("/", tags=["health"])
def root():
    """Root health-check endpoint."""
    return {"status": "ok", "message": "District Lookup API is running."}


@app.get("/health", tags=["health"])
def health():
    """Detailed health check: returns the loaded district count."""
    current = _require_catalog()
    return {
        "status": "ok",
        "districts_loaded": current.count(),
        "name_field": current.name_field,
        "source": current.source,
    }


@app.get("/api/v1/lookup", tags=["lookup"])
def lookup(
    lat: float = Query(..., ge=-90, le=90, description="Latitude (-90 to 90)"),
    lon: float = Query(..., ge=-180, le=180, description="Longitude (-180 to 180)"),
):
    """
    Return the district that contains the supplied coordinate.

    Points exactly on a district boundary count as outside it. When districts
    overlap, the first one in file order is returned with ``ambiguous`` set.

    Raises:
        HTTPException 404: If no district contains the point.
        HTTPException 503: If the catalog has not been loaded.
    """
    current = _require_catalog()
    result = locate(current, Point(lon, lat))

    if not result.found:
        logger.warning("No district found for (%.6f, %.6f): %s", lat, lon, result.reason)
        raise HTTPException(
            status_code=404,
            detail=f"No district found for coordinates ({lat}, {lon}): {result.reason}.",
        )

    logger.info("Lookup (%.4f, %.4f) -> %s", lat, lon, result.district.name)
    return {
        "latitude": lat,
        "longitude": lon,
        "district": district_out(result),
        "ambiguous": result.ambiguous,
    }


@app.post("/api/v1/lookup/batch", tags=["lookup"], response_model=dict[str, list[BatchResultOut]])
def lookup_batch(request: BatchRequest):
    """
    Resolve many points at once. Every input point gets one result, in
    input order; points outside all districts come back as ``not_found``.
    """
    current = _require_catalog()
    if len(request.points) > config.BATCH_MAX_POINTS:
        raise HTTPException(
            status_code=413,
            detail=f"At most {config.BATCH_MAX_POINTS} points per batch.",
        )

    queries = [
        QueryPoint(p.id if p.id is not None else i, Point(p.lon, p.lat))
        for i, p in enumerate(request.points)
    ]
    results = BatchResolver(current).resolve_all(queries)

    return {
        "results": [
            BatchResultOut(
                id=r.query.row,
                latitude=r.query.point.y,
                longitude=r.query.point.x,
                status=r.status.value,
                district=district_out(r),
                ambiguous=r.ambiguous,
                reason=r.reason,
            )
            for r in results
        ]
    }


@app.get("/api/v1/districts", tags=["metadata"])
def list_districts():
    """Return the sorted names of all loaded districts."""
    current = _require_catalog()
    return {"districts": sorted(d.name for d in current)}


@app.get("/api/v1/districts/geojson/{name}", tags=["metadata"])
def get_district_geojson(name: str):
    """
    Return the GeoJSON feature for a single district by name (case-insensitive).

    Raises:
        HTTPException 404: If no district has that name.
    """
    current = _require_catalog()
    district = current.find_by_name(name)

    if district is None:
        raise HTTPException(status_code=404, detail=f"District '{name}' not found.")

    feature = district.to_geojson()
    feature["properties"] = {
        k: json_value(v) for k, v in feature["properties"].items()
    }
    return {"type": "FeatureCollection", "features": [feature]}
