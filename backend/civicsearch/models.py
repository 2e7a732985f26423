"""
models.py - Immutable data model shared by the decoder, catalog and locator.

Ring orientation follows the shapefile convention: outer boundaries run
clockwise and holes run counter-clockwise. Ring.signed_area is positive for
clockwise rings, so a negative area marks a hole.
"""

from __future__ import annotations

import enum
import logging
import math
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, NamedTuple, Optional

logger = logging.getLogger(__name__)


# ── Geometry primitives ──────────────────────────────────────────────────────

class Point(NamedTuple):
    """A coordinate pair: x is longitude, y is latitude."""
    x: float
    y: float

    def is_finite(self) -> bool:
        return math.isfinite(self.x) and math.isfinite(self.y)


class BoundingBox(NamedTuple):
    min_x: float
    min_y: float
    max_x: float
    max_y: float

    @classmethod
    def from_points(cls, points) -> "BoundingBox":
        xs = [p[0] for p in points]
        ys = [p[1] for p in points]
        return cls(min(xs), min(ys), max(xs), max(ys))

    @classmethod
    def union(cls, boxes) -> Optional["BoundingBox"]:
        boxes = list(boxes)
        if not boxes:
            return None
        return cls(
            min(b.min_x for b in boxes),
            min(b.min_y for b in boxes),
            max(b.max_x for b in boxes),
            max(b.max_y for b in boxes),
        )

    def contains(self, point: Point) -> bool:
        """Inclusive containment: points on the box boundary are candidates."""
        return self.min_x <= point.x <= self.max_x and self.min_y <= point.y <= self.max_y

    def contains_box(self, other: "BoundingBox") -> bool:
        return (
            self.min_x <= other.min_x and other.max_x <= self.max_x
            and self.min_y <= other.min_y and other.max_y <= self.max_y
        )

    @property
    def area(self) -> float:
        return (self.max_x - self.min_x) * (self.max_y - self.min_y)


@dataclass(frozen=True)
class Ring:
    """
    A closed sequence of points (first == last).

    A ring read from a file that is not closed gets its first point appended.
    """
    points: tuple[Point, ...]
    bbox: BoundingBox = field(init=False, repr=False, compare=False)
    signed_area: float = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        points = tuple(Point(float(p[0]), float(p[1])) for p in self.points)
        if points and points[0] != points[-1]:
            points = points + (points[0],)
        object.__setattr__(self, "points", points)
        object.__setattr__(
            self, "bbox", BoundingBox.from_points(points) if points else BoundingBox(0.0, 0.0, 0.0, 0.0)
        )
        object.__setattr__(self, "signed_area", _signed_area(points))

    @property
    def is_hole(self) -> bool:
        return self.signed_area < 0

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self) -> Iterator[Point]:
        return iter(self.points)


def _signed_area(points: tuple[Point, ...]) -> float:
    """Shoelace area, negated so that clockwise rings come out positive."""
    if len(points) < 3:
        return 0.0
    area2 = 0.0
    for (x0, y0), (x1, y1) in zip(points, points[1:]):
        area2 += x0 * y1 - x1 * y0
    return -area2 / 2.0


@dataclass(frozen=True)
class PolygonPart:
    """One disjoint component of a polygon: an outer ring and its holes."""
    outer: Ring
    holes: tuple[Ring, ...] = ()

    @property
    def bbox(self) -> BoundingBox:
        return self.outer.bbox


@dataclass(frozen=True)
class Polygon:
    parts: tuple[PolygonPart, ...]
    bbox: Optional[BoundingBox] = None

    @classmethod
    def from_rings(cls, rings, bbox: Optional[BoundingBox] = None) -> "Polygon":
        """
        Group rings into parts using their winding.

        Each hole goes to the smallest outer ring whose bounding box contains
        the hole's bounding box. A hole without any such outer ring becomes an
        outer ring of its own. If every ring is a hole the winding is taken to
        be reversed and all rings become outer rings.

        Args:
            rings: Ring objects in file order.
            bbox:  Bounding box stored with the shape record, if any.

        Returns:
            Polygon with one part per outer ring, in file order.
        """
        rings = [r for r in rings if len(r) > 0]
        outers = [r for r in rings if not r.is_hole]
        holes = [r for r in rings if r.is_hole]

        if not outers:
            outers, holes = holes, []

        assigned: dict[int, list[Ring]] = {i: [] for i in range(len(outers))}
        orphans: list[Ring] = []
        for hole in holes:
            candidates = [i for i, outer in enumerate(outers) if outer.bbox.contains_box(hole.bbox)]
            if not candidates:
                orphans.append(hole)
                continue
            best = min(candidates, key=lambda i: abs(outers[i].signed_area))
            assigned[best].append(hole)

        if orphans:
            logger.warning("Promoting %d orphaned hole ring(s) to outer rings", len(orphans))

        parts = [PolygonPart(outer, tuple(assigned[i])) for i, outer in enumerate(outers)]
        parts.extend(PolygonPart(hole) for hole in orphans)

        if bbox is None and parts:
            bbox = BoundingBox.union(p.bbox for p in parts)
        return cls(parts=tuple(parts), bbox=bbox)

    @property
    def rings(self) -> tuple[Ring, ...]:
        return tuple(r for part in self.parts for r in (part.outer, *part.holes))

    def is_empty(self) -> bool:
        return not self.parts


# ── Attribute records ────────────────────────────────────────────────────────

class AttributeRecord(Mapping):
    """
    Read-only mapping of field name to typed value for one table row.

    Attributes:
        row: Physical 0-based row index in the attribute table.
    """

    __slots__ = ("row", "_values")

    def __init__(self, row: int, values: Mapping[str, Any]):
        self.row = row
        self._values = MappingProxyType(dict(values))

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"AttributeRecord(row={self.row}, {dict(self._values)!r})"

    def as_dict(self) -> dict[str, Any]:
        return dict(self._values)


# ── Domain entities ──────────────────────────────────────────────────────────

@dataclass(frozen=True, eq=False)
class District:
    """
    One feature of the catalog.

    Attributes:
        index:         0-based position of the feature in the shapefile.
        record_number: 1-based record number from the .shp record header.
        name:          Display name taken from the configured attribute field.
        polygon:       Geometry with holes grouped under their outer rings.
        attributes:    The feature's attribute record.
    """
    index: int
    record_number: int
    name: str
    polygon: Polygon
    attributes: AttributeRecord

    @property
    def bbox(self) -> Optional[BoundingBox]:
        return self.polygon.bbox

    def to_geojson(self) -> dict:
        """Return the district as a GeoJSON Feature with MultiPolygon geometry."""
        coordinates = [
            [[[p.x, p.y] for p in ring] for ring in (part.outer, *part.holes)]
            for part in self.polygon.parts
        ]
        return {
            "type": "Feature",
            "properties": {"name": self.name, **self.attributes.as_dict()},
            "geometry": {"type": "MultiPolygon", "coordinates": coordinates},
        }


class QueryPoint(NamedTuple):
    """A point to locate, tagged with the caller's input-row identity."""
    row: Any
    point: Point


class LocationStatus(str, enum.Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    INVALID = "invalid"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class LocationResult:
    query: QueryPoint
    district: Optional[District] = None
    ambiguous: bool = False
    status: LocationStatus = LocationStatus.NOT_FOUND
    reason: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.district is not None
