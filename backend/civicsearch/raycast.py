"""
raycast.py - Point-in-polygon test for district boundaries.

Uses the crossing-number (even-odd) method: cast a horizontal ray from the
test point eastward to infinity and count boundary crossings. An odd count
means the point is inside the ring.

Boundary rule: a point lying exactly on a ring segment, vertices included,
is outside. This holds for outer rings and holes alike, so a point on the
shared edge of two abutting districts belongs to neither. The on-segment
test uses exact arithmetic (zero cross product), which keeps the answer
deterministic for identical input.

Reference:
    W. Randolph Franklin, "PNPOLY - Point Inclusion in Polygon Test"
    https://wrfranklin.org/Research/Short_Notes/pnpoly.html
"""

from __future__ import annotations

from civicsearch.models import Point, Polygon, PolygonPart, Ring


def _is_point_on_ring_edge(x: float, y: float, ring: Ring) -> bool:
    """
    Return True if (x, y) lies exactly on any segment of the ring.

    Args:
        x:    Longitude of the test point.
        y:    Latitude  of the test point.
        ring: Closed ring.
    """
    points = ring.points
    for (xi, yi), (xj, yj) in zip(points, points[1:]):
        if not (min(xi, xj) <= x <= max(xi, xj) and min(yi, yj) <= y <= max(yi, yj)):
            continue
        if (xj - xi) * (y - yi) - (yj - yi) * (x - xi) == 0:
            return True
    return False


def _is_point_in_ring(x: float, y: float, ring: Ring) -> bool:
    """
    Run the ray-casting test for a single closed ring.

    The result for points exactly on the boundary is unspecified here;
    callers check _is_point_on_ring_edge first.

    Args:
        x:    Longitude of the test point.
        y:    Latitude  of the test point.
        ring: Closed ring.

    Returns:
        True if the point is inside the ring, False otherwise.
    """
    inside = False
    points = ring.points

    # Iterate over each edge (points[i], points[i + 1]); the ring is closed
    for (xi, yi), (xj, yj) in zip(points, points[1:]):
        # Check whether the ray crosses this edge
        if ((yi > y) != (yj > y)) and (x < (xj - xi) * (y - yi) / (yj - yi) + xi):
            inside = not inside

    return inside


def ring_contains_point(ring: Ring, point: Point) -> bool:
    """Strict containment: inside the ring and not on its boundary."""
    if not ring.bbox.contains(point):
        return False
    if _is_point_on_ring_edge(point.x, point.y, ring):
        return False
    return _is_point_in_ring(point.x, point.y, ring)


def _test_part(point: Point, part: PolygonPart) -> bool:
    """
    Test a point against one polygon part (outer ring + holes).

    Returns:
        True if the point is strictly inside the outer ring and neither
        inside nor on the boundary of any hole.
    """
    if not ring_contains_point(part.outer, point):
        return False

    # Inside the outer ring: the point must be clear of every hole
    for hole in part.holes:
        if not hole.bbox.contains(point):
            continue
        if _is_point_on_ring_edge(point.x, point.y, hole) or _is_point_in_ring(point.x, point.y, hole):
            return False

    return True


def point_in_polygon(point: Point, polygon: Polygon) -> bool:
    """
    Test whether a point falls inside a polygon.

    The point is inside if it is inside any of the polygon's parts. Each part
    is rejected early by its bounding box before the exact ring test.

    Args:
        point:   Query point (x = longitude, y = latitude).
        polygon: Polygon whose holes are grouped under their outer rings.

    Returns:
        True if the point is inside the polygon, False otherwise (including
        points on any ring edge).
    """
    if polygon.bbox is not None and not polygon.bbox.contains(point):
        return False
    return any(_test_part(point, part) for part in polygon.parts)
