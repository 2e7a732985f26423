"""
services.py - Point location against a DistrictCatalog.

Responsibilities:
    - Filtering districts by bounding box before the exact ring test
      (delegated to raycast.py).
    - Picking the first matching district in catalog order and flagging
      points claimed by more than one district.
    - Turning caller input into QueryPoints.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Iterator, Optional

from civicsearch.catalog import DistrictCatalog
from civicsearch.models import District, LocationResult, LocationStatus, Point, QueryPoint
from civicsearch.raycast import point_in_polygon

logger = logging.getLogger(__name__)

_NAN_POINT = Point(math.nan, math.nan)


class PointLocator:
    """
    Finds the district containing a point.

    Lookups are pure functions of (point, catalog) and never raise for
    geometric reasons; "no district" is an ordinary result.
    """

    def __init__(self, catalog: DistrictCatalog):
        self.catalog = catalog

    def candidates(self, point: Point) -> Iterator[District]:
        """Districts whose bounding box contains the point, in catalog order."""
        for district in self.catalog:
            bbox = district.bbox
            if bbox is not None and bbox.contains(point):
                yield district

    def matches(self, point: Point, limit: Optional[int] = None) -> list[District]:
        """Districts that contain the point, in catalog order, at most ``limit``."""
        found = []
        for district in self.candidates(point):
            if point_in_polygon(point, district.polygon):
                found.append(district)
                if limit is not None and len(found) >= limit:
                    break
        return found

    def locate(self, point: Point) -> Optional[District]:
        """
        Return the first district in catalog order that contains the point.

        Args:
            point: Query point (x = longitude, y = latitude).

        Returns:
            The containing District, or None if no district contains it.
        """
        if not point.is_finite():
            return None
        found = self.matches(point, limit=1)
        return found[0] if found else None

    def resolve(self, query: QueryPoint) -> LocationResult:
        """
        Locate a tagged query point and describe the outcome.

        When several districts claim the point (overlapping source data) the
        first in catalog order wins and the result is marked ambiguous.
        """
        point = query.point
        if not point.is_finite():
            return LocationResult(query, status=LocationStatus.INVALID, reason="coordinates are not finite numbers")

        found = self.matches(point, limit=2)
        if not found:
            extent = self.catalog.bbox
            if extent is None or not extent.contains(point):
                reason = "point is outside the extent of all districts"
            else:
                reason = "no district contains the point"
            return LocationResult(query, status=LocationStatus.NOT_FOUND, reason=reason)

        district = found[0]
        ambiguous = len(found) > 1
        if ambiguous:
            logger.debug(
                "Row %r (%.6f, %.6f) is claimed by %r and %r; using the first",
                query.row, point.x, point.y, district.name, found[1].name,
            )
        return LocationResult(query, district=district, ambiguous=ambiguous, status=LocationStatus.FOUND)


# ── Input helpers ────────────────────────────────────────────────────────────

def to_query_point(value: Any, row: Any) -> QueryPoint:
    """
    Coerce caller input into a QueryPoint.

    Accepts a QueryPoint (kept as is), a Point, or any ``(x, y)`` pair.
    Values that cannot be read as two numbers become a NaN point, which the
    locator reports as INVALID instead of raising.
    """
    if isinstance(value, QueryPoint):
        if isinstance(value.point, Point):
            return value
        row, value = value
    try:
        x, y = value
        return QueryPoint(row, Point(float(x), float(y)))
    except (TypeError, ValueError):
        logger.debug("Row %r is not a coordinate pair: %r", row, value)
        return QueryPoint(row, _NAN_POINT)


# ── Public API ────────────────────────────────────────────────────────────────

def locate(catalog: DistrictCatalog, point: Any) -> LocationResult:
    """Locate a single point; a bare point or pair gets row 0."""
    return PointLocator(catalog).resolve(to_query_point(point, 0))
