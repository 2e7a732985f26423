"""
errors.py - Exception taxonomy for shapefile decoding and catalog construction.

Everything derived from CatalogError is fatal to building a DistrictCatalog.
FieldParseError is the one recoverable error: the attribute reader records it
and substitutes a null value instead of raising.
"""

from __future__ import annotations

from typing import Optional


class CivicSearchError(Exception):
    """Base class for all civicsearch errors."""


class CatalogError(CivicSearchError):
    """A failure that aborts catalog construction."""


class FormatError(CatalogError):
    """
    Malformed shapefile bytes: bad signature, declared length mismatch,
    truncated record or inconsistent table layout.

    Attributes:
        offset:       Byte offset in the stream where the problem was found.
        record_index: 0-based record index, when the problem is inside a record.
    """

    def __init__(
        self,
        message: str,
        offset: Optional[int] = None,
        record_index: Optional[int] = None,
    ):
        self.offset = offset
        self.record_index = record_index
        context = []
        if record_index is not None:
            context.append(f"record {record_index}")
        if offset is not None:
            context.append(f"byte offset {offset}")
        if context:
            message = f"{message} ({', '.join(context)})"
        super().__init__(message)


class IndexFormatError(FormatError):
    """The .shx index stream is corrupt or disagrees with the .shp stream."""


class UnsupportedShapeType(CatalogError):
    """A shape type outside the polygon family was found."""

    def __init__(self, shape_type: int, record_index: Optional[int] = None):
        self.shape_type = shape_type
        self.record_index = record_index
        where = "file header" if record_index is None else f"record {record_index}"
        super().__init__(f"Unsupported shape type {shape_type} in {where}; only polygons are supported")


class FieldParseError(CivicSearchError):
    """A single attribute value could not be parsed for its declared type."""

    def __init__(self, row: int, field: str, raw: bytes, expected: str):
        self.row = row
        self.field = field
        self.raw = raw
        self.expected = expected
        super().__init__(f"Row {row}, field {field!r}: cannot parse {raw!r} as {expected}")


class AlignmentError(CatalogError):
    """Shape records and attribute rows differ in number."""

    def __init__(self, shape_count: int, attribute_count: int):
        self.shape_count = shape_count
        self.attribute_count = attribute_count
        super().__init__(
            f"Shape file has {shape_count} records but attribute table has {attribute_count} rows"
        )


class MissingFieldError(CatalogError):
    """The configured name field is absent from the attribute schema."""

    def __init__(self, field: str, available: list[str]):
        self.field = field
        self.available = available
        super().__init__(f"Name field {field!r} not found; available fields: {', '.join(available)}")


class MissingMemberError(CatalogError):
    """A required member (.shp or .dbf) is absent from the archive or directory."""

    def __init__(self, extension: str, source: str):
        self.extension = extension
        self.source = source
        super().__init__(f"Required .{extension} file not found in {source}")


class AmbiguousMemberError(CatalogError):
    """More than one candidate member matches and no layer name was given."""

    def __init__(self, extension: str, candidates: list[str]):
        self.extension = extension
        self.candidates = candidates
        super().__init__(f"Too many .{extension} files: {', '.join(candidates)}")


class ArchiveError(CatalogError):
    """The source archive could not be opened or read."""
