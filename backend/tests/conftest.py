"""
conftest.py - Shared pytest fixtures for the district lookup test suite.

Provides:
    - Builders that write .shp / .shx / .dbf bytes in memory, so tests never
      touch real data files.
    - Ring fixtures with shapefile winding (outer clockwise, holes
      counter-clockwise).
    - Ready-made catalogs: a single square, a square with a hole, two
      abutting squares and two overlapping squares.
"""

from __future__ import annotations

import io
import struct
import zipfile

import pytest

from civicsearch.catalog import build_catalog

FIELDS = [
    ("NAMELSAD", "C", 40, 0),
    ("DISTRICT", "N", 3, 0),
    ("ALAND", "N", 14, 2),
    ("UPDATED", "D", 8, 0),
]


# ── Byte builders ─────────────────────────────────────────────────────────────

def _bbox(points):
    xs = [p[0] for p in points] or [0.0]
    ys = [p[1] for p in points] or [0.0]
    return min(xs), min(ys), max(xs), max(ys)


def _polygon_content(rings, shape_type=5) -> bytes:
    if shape_type == 0:
        return struct.pack("<i", 0)
    points = [p for ring in rings for p in ring]
    parts, start = [], 0
    for ring in rings:
        parts.append(start)
        start += len(ring)
    flat = [c for p in points for c in p]
    return (
        struct.pack("<i", shape_type)
        + struct.pack("<4d", *_bbox(points))
        + struct.pack("<2i", len(parts), len(points))
        + struct.pack(f"<{len(parts)}i", *parts)
        + struct.pack(f"<{len(flat)}d", *flat)
    )


def _file_header(length_bytes: int, shape_type: int, bbox, file_code: int = 9994) -> bytes:
    return (
        struct.pack(">6i", file_code, 0, 0, 0, 0, 0)
        + struct.pack(">i", length_bytes // 2)
        + struct.pack("<2i", 1000, shape_type)
        + struct.pack("<4d", *bbox)
        + struct.pack("<4d", 0.0, 0.0, 0.0, 0.0)
    )


def build_shapefile(polygons, shape_type=5, record_types=None, file_code=9994):
    """
    Build matching .shp and .shx bytes.

    Args:
        polygons:     One list of rings per record; a ring is a list of (x, y).
        shape_type:   Shape type written to both headers.
        record_types: Optional per-record shape types (e.g. 0 for a null shape).
        file_code:    File signature, 9994 unless testing a bad header.

    Returns:
        (shp_bytes, shx_bytes)
    """
    record_types = record_types or [shape_type] * len(polygons)
    records, index = [], []
    offset = 100
    for number, (rings, rtype) in enumerate(zip(polygons, record_types), start=1):
        content = _polygon_content(rings, rtype)
        records.append(struct.pack(">2i", number, len(content) // 2) + content)
        index.append(struct.pack(">2i", offset // 2, len(content) // 2))
        offset += 8 + len(content)

    all_points = [p for rings in polygons for ring in rings for p in ring]
    bbox = _bbox(all_points)
    body = b"".join(records)
    shp = _file_header(100 + len(body), shape_type, bbox, file_code) + body
    shx_body = b"".join(index)
    shx = _file_header(100 + len(shx_body), shape_type, bbox, file_code) + shx_body
    return shp, shx


def build_dbf(fields, rows, deleted=()) -> bytes:
    """
    Build a dBASE III table.

    Args:
        fields:  (name, type, length, decimals) tuples.
        rows:    One list of raw string values per row.
        deleted: Row indices to flag as deleted.
    """
    header_length = 32 + 32 * len(fields) + 1
    record_length = 1 + sum(f[2] for f in fields)
    out = io.BytesIO()
    out.write(struct.pack("<4BIHH20x", 3, 124, 1, 1, len(rows), header_length, record_length))
    for name, ftype, length, decimals in fields:
        out.write(struct.pack("<11sc4xBB14x", name.encode("ascii"), ftype.encode("ascii"), length, decimals))
    out.write(b"\r")
    for i, row in enumerate(rows):
        out.write(b"*" if i in deleted else b" ")
        for (name, ftype, length, decimals), value in zip(fields, row):
            raw = str(value).encode("utf-8")
            raw = raw.rjust(length) if ftype in ("N", "F") else raw.ljust(length)
            out.write(raw[:length])
    out.write(b"\x1a")
    return out.getvalue()


def district_rows(names):
    return [[name, str(i + 1), f"{1000.5 * (i + 1):.2f}", "20190101"] for i, name in enumerate(names)]


def build_zip(members: dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, data in members.items():
            archive.writestr(name, data)
    return buffer.getvalue()


# ── Ring fixtures ─────────────────────────────────────────────────────────────

SQUARE = [(0, 0), (0, 10), (10, 10), (10, 0), (0, 0)]            # clockwise
HOLE = [(4, 4), (6, 4), (6, 6), (4, 6), (4, 4)]                  # counter-clockwise
EAST_SQUARE = [(10, 0), (10, 10), (20, 10), (20, 0), (10, 0)]    # shares x=10 with SQUARE
OVERLAP_SQUARE = [(5, 5), (5, 15), (15, 15), (15, 5), (5, 5)]


@pytest.fixture
def square_ring():
    return list(SQUARE)


@pytest.fixture
def hole_ring():
    return list(HOLE)


# ── Shapefile fixtures ────────────────────────────────────────────────────────

@pytest.fixture
def make_layer():
    """
    Factory returning (shp, shx, dbf) bytes for named polygons.

    Usage: make_layer([("1st District", [SQUARE]), ...])
    """
    def _make(named_polygons, deleted=()):
        names = [name for name, _ in named_polygons]
        shp, shx = build_shapefile([rings for _, rings in named_polygons])
        dbf = build_dbf(FIELDS, district_rows(names), deleted=deleted)
        return shp, shx, dbf
    return _make


@pytest.fixture
def make_catalog(make_layer):
    def _make(named_polygons, **kwargs):
        shp, shx, dbf = make_layer(named_polygons)
        return build_catalog(shp, shx, dbf, name_field="NAMELSAD", **kwargs)
    return _make


@pytest.fixture
def square_catalog(make_catalog):
    """One district: the square (0,0)-(10,10)."""
    return make_catalog([("Square District", [SQUARE])])


@pytest.fixture
def holed_catalog(make_catalog):
    """One district: the square (0,0)-(10,10) with a hole (4,4)-(6,6)."""
    return make_catalog([("Donut District", [SQUARE, HOLE])])


@pytest.fixture
def abutting_catalog(make_catalog):
    """Two districts sharing the edge x = 10."""
    return make_catalog([("West District", [SQUARE]), ("East District", [EAST_SQUARE])])


@pytest.fixture
def overlapping_catalog(make_catalog):
    """Two districts overlapping on (5,5)-(10,10)."""
    return make_catalog([("First District", [SQUARE]), ("Second District", [OVERLAP_SQUARE])])


@pytest.fixture
def layer_zip(make_layer):
    """A TIGER-style zip archive holding one layer."""
    shp, shx, dbf = make_layer([("Square District", [SQUARE]), ("East District", [EAST_SQUARE])])
    return build_zip({
        "tl_2019_25_sldl.shp": shp,
        "tl_2019_25_sldl.shx": shx,
        "tl_2019_25_sldl.dbf": dbf,
        "tl_2019_25_sldl.cpg": b"UTF-8",
        "tl_2019_25_sldl.prj": b"GEOGCS[]",
        "tl_2019_25_sldl.shp.iso.xml": b"<xml/>",
    })
