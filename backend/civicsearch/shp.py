"""
shp.py - Decoder for the geometry (.shp) member of a shapefile.

Layout of the stream:
    * 100-byte file header. File code and file length are big-endian, the
      version, shape type and bounding box are little-endian.
    * Variable-length records. Each has a big-endian 8-byte header (record
      number, content length in 16-bit words) followed by a little-endian
      payload.

Only the polygon family is decoded. Every field is read with its own
explicit struct format, so byte order is decided per field.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from itertools import accumulate
from typing import Iterator, Optional

from civicsearch.errors import FormatError, UnsupportedShapeType
from civicsearch.models import BoundingBox, Point, Polygon, Ring

logger = logging.getLogger(__name__)

# ── Format constants ─────────────────────────────────────────────────────────
FILE_CODE = 9994
HEADER_SIZE = 100
EXPECTED_VERSION = 1000

NULL_SHAPE = 0
POLYGON = 5
POLYGON_Z = 15
POLYGON_M = 25
POLYGON_TYPES = frozenset({POLYGON, POLYGON_Z, POLYGON_M})

_FILE_CODE = struct.Struct(">i")
_FILE_LENGTH = struct.Struct(">i")
_VERSION_AND_TYPE = struct.Struct("<2i")
_BBOX = struct.Struct("<4d")
_RECORD_HEADER = struct.Struct(">2i")
_SHAPE_TYPE = struct.Struct("<i")
_COUNTS = struct.Struct("<2i")


@dataclass(frozen=True)
class FileHeader:
    """
    The fixed 100-byte header shared by .shp and .shx streams.

    Attributes:
        file_length: Declared length in bytes (the stored value is in words).
    """
    file_code: int
    file_length: int
    version: int
    shape_type: int
    bbox: BoundingBox


def read_file_header(data: bytes, error_cls: type[FormatError] = FormatError) -> FileHeader:
    """
    Parse and validate the 100-byte shapefile header.

    Args:
        data:      Entire stream contents.
        error_cls: FormatError subclass to raise, so the index reader can
                   report its own failures.

    Raises:
        FormatError: If the stream is too short, the file code is not 9994,
            or the declared length differs from the actual length.
    """
    if len(data) < HEADER_SIZE:
        raise error_cls(f"Stream is {len(data)} bytes, shorter than the {HEADER_SIZE}-byte header", offset=0)

    (file_code,) = _FILE_CODE.unpack_from(data, 0)
    if file_code != FILE_CODE:
        raise error_cls(f"Bad file signature {file_code}, expected {FILE_CODE}", offset=0)

    (length_words,) = _FILE_LENGTH.unpack_from(data, 24)
    file_length = length_words * 2
    if file_length != len(data):
        raise error_cls(
            f"Header declares {file_length} bytes but stream holds {len(data)}",
            offset=24,
        )

    version, shape_type = _VERSION_AND_TYPE.unpack_from(data, 28)
    if version != EXPECTED_VERSION:
        logger.warning("Unexpected shapefile version %d (expected %d)", version, EXPECTED_VERSION)

    bbox = BoundingBox(*_BBOX.unpack_from(data, 36))
    return FileHeader(file_code, file_length, version, shape_type, bbox)


def part_offsets_from_counts(counts) -> tuple[int, ...]:
    """Rebuild a record's part start-index table from per-ring point counts."""
    counts = list(counts)
    return tuple(accumulate([0] + counts[:-1])) if counts else ()


# ── Records ──────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ShapeRecord:
    """
    One decoded geometry record.

    Attributes:
        index:          0-based position of the record in the stream.
        record_number:  1-based number from the record header.
        content_length: Content length in 16-bit words, as stored.
        shape_type:     Shape type code of this record.
        bbox:           Record bounding box, None for a null shape.
        parts:          Start index of each ring in ``points``.
        points:         Flat point array of all rings.
        offset:         Byte offset of the record header in the stream.
    """
    index: int
    record_number: int
    content_length: int
    shape_type: int
    bbox: Optional[BoundingBox]
    parts: tuple[int, ...]
    points: tuple[Point, ...]
    offset: int

    @property
    def ring_count(self) -> int:
        return len(self.parts)

    @property
    def is_null(self) -> bool:
        return self.shape_type == NULL_SHAPE

    def ring_point_counts(self) -> list[int]:
        ends = list(self.parts[1:]) + [len(self.points)]
        return [end - start for start, end in zip(self.parts, ends)]

    def ring_points(self) -> list[tuple[Point, ...]]:
        """Split the flat point array into rings with the part table."""
        ends = list(self.parts[1:]) + [len(self.points)]
        return [self.points[start:end] for start, end in zip(self.parts, ends)]

    def rings(self) -> list[Ring]:
        return [Ring(points) for points in self.ring_points()]

    def to_polygon(self) -> Polygon:
        return Polygon.from_rings(self.rings(), bbox=self.bbox)


class ShapeRecordDecoder:
    """
    Decodes a .shp byte stream.

    The header is validated on construction. Iterating yields ShapeRecord
    objects lazily by a linear scan; ``record_at`` decodes a single record at
    a known offset, for index-driven access.
    """

    def __init__(self, data: bytes):
        self._data = bytes(data)
        self.header = read_file_header(self._data)
        if self.header.shape_type not in POLYGON_TYPES:
            raise UnsupportedShapeType(self.header.shape_type)

    def __iter__(self) -> Iterator[ShapeRecord]:
        offset = HEADER_SIZE
        index = 0
        while offset < len(self._data):
            record, offset = self._decode_record(offset, index)
            yield record
            index += 1
        logger.debug("Scanned %d shape records", index)

    def record_at(self, offset: int, index: int) -> ShapeRecord:
        """Decode the record whose header starts at ``offset``."""
        if offset < HEADER_SIZE:
            raise FormatError("Record offset points inside the file header", offset=offset, record_index=index)
        record, _ = self._decode_record(offset, index)
        return record

    def _require(self, start: int, size: int, what: str, index: int, limit: Optional[int] = None):
        end = len(self._data) if limit is None else limit
        if size < 0 or start + size > end:
            raise FormatError(f"Truncated {what}: need {size} bytes", offset=start, record_index=index)

    def _decode_record(self, offset: int, index: int) -> tuple[ShapeRecord, int]:
        data = self._data
        self._require(offset, _RECORD_HEADER.size, "record header", index)
        record_number, content_words = _RECORD_HEADER.unpack_from(data, offset)

        content_start = offset + _RECORD_HEADER.size
        content_end = content_start + content_words * 2
        if content_words < 2 or content_end > len(data):
            raise FormatError(
                f"Record content length of {content_words} words does not fit the stream",
                offset=offset,
                record_index=index,
            )

        (shape_type,) = _SHAPE_TYPE.unpack_from(data, content_start)
        if shape_type == NULL_SHAPE:
            record = ShapeRecord(index, record_number, content_words, shape_type, None, (), (), offset)
            return record, content_end
        if shape_type not in POLYGON_TYPES:
            raise UnsupportedShapeType(shape_type, record_index=index)

        pos = content_start + _SHAPE_TYPE.size
        self._require(pos, _BBOX.size + _COUNTS.size, "polygon header", index, content_end)
        bbox = BoundingBox(*_BBOX.unpack_from(data, pos))
        pos += _BBOX.size
        num_parts, num_points = _COUNTS.unpack_from(data, pos)
        pos += _COUNTS.size
        if num_parts < 0 or num_points < 0:
            raise FormatError(
                f"Negative part or point count ({num_parts}, {num_points})", offset=pos, record_index=index
            )

        self._require(pos, 4 * num_parts, "part index table", index, content_end)
        parts = struct.unpack_from(f"<{num_parts}i", data, pos)
        pos += 4 * num_parts
        _validate_parts(parts, num_points, pos, index)

        self._require(pos, 16 * num_points, "point array", index, content_end)
        flat = struct.unpack_from(f"<{2 * num_points}d", data, pos)
        points = tuple(Point(flat[i], flat[i + 1]) for i in range(0, len(flat), 2))

        record = ShapeRecord(index, record_number, content_words, shape_type, bbox, tuple(parts), points, offset)
        return record, content_end


def _validate_parts(parts, num_points: int, offset: int, index: int):
    if num_points and not parts:
        raise FormatError("Record has points but no rings", offset=offset, record_index=index)
    if not parts:
        return
    if parts[0] != 0:
        raise FormatError(f"First ring starts at point {parts[0]}, expected 0", offset=offset, record_index=index)
    for start, end in zip(parts, parts[1:]):
        if end < start:
            raise FormatError("Ring start indices are not ascending", offset=offset, record_index=index)
    if parts[-1] >= num_points:
        raise FormatError(
            f"Ring start index {parts[-1]} is beyond the {num_points} points", offset=offset, record_index=index
        )
