"""
schemas.py - Pydantic request and response models for the HTTP layer.

Dates in attribute values are written as ISO strings so every response is
plain JSON.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Optional

from pydantic import BaseModel, Field

from civicsearch.models import LocationResult


class BatchPoint(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)
    id: Optional[Any] = None


class BatchRequest(BaseModel):
    points: list[BatchPoint]


class DistrictOut(BaseModel):
    name: str
    record_number: int
    attributes: dict[str, Any]


class BatchResultOut(BaseModel):
    id: Optional[Any] = None
    latitude: float
    longitude: float
    status: str
    district: Optional[DistrictOut] = None
    ambiguous: bool = False
    reason: Optional[str] = None


def district_out(result: LocationResult) -> Optional[DistrictOut]:
    district = result.district
    if district is None:
        return None
    return DistrictOut(
        name=district.name,
        record_number=district.record_number,
        attributes={k: json_value(v) for k, v in district.attributes.items()},
    )


def json_value(value: Any) -> Any:
    return value.isoformat() if isinstance(value, date) else value
