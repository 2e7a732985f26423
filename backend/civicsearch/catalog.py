"""
catalog.py - Joins decoded geometry and attributes into named Districts.

The shapefile format has no join key: shape record i belongs to attribute
row i. That pairing happens once, in _pair_records, which is also the only
place an AlignmentError is raised.
"""

from __future__ import annotations

import logging
from typing import Iterator, Optional, Sequence

from civicsearch.dbf import AttributeTable, read_attribute_table
from civicsearch.errors import (
    AlignmentError,
    FormatError,
    IndexFormatError,
    MissingFieldError,
    UnsupportedShapeType,
)
from civicsearch.models import AttributeRecord, BoundingBox, District
from civicsearch.shp import HEADER_SIZE, ShapeRecord, ShapeRecordDecoder
from civicsearch.shx import IndexEntry, read_index

logger = logging.getLogger(__name__)


class DistrictCatalog:
    """
    Ordered, read-only collection of Districts built once per run.

    Safe for concurrent lookups: neither the catalog nor its districts
    change after construction.
    """

    def __init__(
        self,
        districts: Sequence[District],
        name_field: str,
        field_names: Sequence[str] = (),
        source: Optional[str] = None,
    ):
        self._districts = tuple(districts)
        self.name_field = name_field
        self.field_names = tuple(field_names)
        self.source = source
        self.bbox: Optional[BoundingBox] = BoundingBox.union(
            d.bbox for d in self._districts if d.bbox is not None
        )

    def all_districts(self) -> tuple[District, ...]:
        return self._districts

    def count(self) -> int:
        return len(self._districts)

    def __len__(self) -> int:
        return len(self._districts)

    def __iter__(self) -> Iterator[District]:
        return iter(self._districts)

    def find_by_name(self, name: str) -> Optional[District]:
        """Return the first district whose name matches, ignoring case."""
        wanted = name.strip().lower()
        return next((d for d in self._districts if d.name.lower() == wanted), None)

    def __repr__(self) -> str:
        return f"DistrictCatalog({len(self._districts)} districts, name_field={self.name_field!r})"


# ── Construction ─────────────────────────────────────────────────────────────

def build_catalog(
    shape_bytes: bytes,
    index_bytes: Optional[bytes],
    attribute_bytes: bytes,
    name_field: str,
    encoding: str = "utf-8",
    source: Optional[str] = None,
) -> DistrictCatalog:
    """
    Decode the three shapefile streams and build a DistrictCatalog.

    Args:
        shape_bytes:     Contents of the .shp member.
        index_bytes:     Contents of the .shx member, or None. A corrupt index
                         is ignored in favour of a linear scan.
        attribute_bytes: Contents of the .dbf member.
        name_field:      Attribute field holding each district's display name.
        encoding:        Text encoding of the attribute table.
        source:          Description of where the data came from, for logs.

    Returns:
        Fully built DistrictCatalog.

    Raises:
        FormatError:          Malformed .shp or .dbf stream.
        UnsupportedShapeType: Non-polygon geometry.
        AlignmentError:       Shape and attribute counts differ.
        MissingFieldError:    ``name_field`` is not in the table schema.
    """
    decoder = ShapeRecordDecoder(shape_bytes)
    table = read_attribute_table(attribute_bytes, encoding=encoding)

    if name_field not in table.field_names:
        raise MissingFieldError(name_field, table.field_names)

    shapes = _decode_shapes(decoder, index_bytes, len(shape_bytes))
    districts = [
        District(
            index=shape.index,
            record_number=shape.record_number,
            name=_district_name(attributes, name_field, shape),
            polygon=shape.to_polygon(),
            attributes=attributes,
        )
        for shape, attributes in _pair_records(shapes, table)
    ]

    catalog = DistrictCatalog(districts, name_field, table.field_names, source=source)
    logger.info("Built catalog of %d districts from %s", catalog.count(), source or "shapefile bytes")
    return catalog


def _decode_shapes(decoder: ShapeRecordDecoder, index_bytes: Optional[bytes], stream_length: int) -> list[ShapeRecord]:
    if index_bytes is None:
        logger.debug("No shape index; scanning records linearly")
        return list(decoder)

    try:
        entries = read_index(index_bytes)
        records = [decoder.record_at(entry.byte_offset, i) for i, entry in enumerate(entries)]
        _check_index(entries, records, stream_length)
    except (FormatError, UnsupportedShapeType) as exc:
        # A bad offset can land on garbage; the linear scan re-raises real problems
        logger.warning("Ignoring unusable shape index (%s); scanning records linearly", exc)
        return list(decoder)

    logger.debug("Read %d shape records through the index", len(records))
    return records


def _check_index(entries: list[IndexEntry], records: list[ShapeRecord], stream_length: int):
    """The index must describe every record of the .shp stream, in file order."""
    expected_offset = HEADER_SIZE
    for i, (entry, record) in enumerate(zip(entries, records)):
        if entry.byte_offset != expected_offset:
            raise IndexFormatError(
                f"Index entry points at byte {entry.byte_offset}, record {i + 1} starts at {expected_offset}",
                offset=entry.byte_offset,
                record_index=i,
            )
        if entry.content_length != record.content_length:
            raise IndexFormatError(
                f"Index gives content length {entry.content_length}, record header says {record.content_length}",
                offset=entry.byte_offset,
                record_index=i,
            )
        expected_offset += entry.byte_length
    if expected_offset != stream_length:
        raise IndexFormatError(f"Index covers {expected_offset} of {stream_length} shape bytes")


def _pair_records(
    shapes: list[ShapeRecord],
    table: AttributeTable,
) -> list[tuple[ShapeRecord, AttributeRecord]]:
    """
    Zip shape record i with attribute row i.

    Rows deleted from the table drop their shape as well; the physical row
    count still has to match the number of shapes.
    """
    if len(shapes) != table.row_count:
        raise AlignmentError(len(shapes), table.row_count)

    by_row = {record.row: record for record in table.records}
    pairs = []
    for shape in shapes:
        attributes = by_row.get(shape.index)
        if attributes is None:
            logger.warning("Skipping shape record %d: its attribute row is deleted", shape.record_number)
            continue
        pairs.append((shape, attributes))
    return pairs


def _district_name(attributes: AttributeRecord, name_field: str, shape: ShapeRecord) -> str:
    value = attributes.get(name_field)
    if value is None or str(value).strip() == "":
        logger.warning("Record %d has no %s value", shape.record_number, name_field)
        return f"Record {shape.record_number}"
    return str(value).strip()
