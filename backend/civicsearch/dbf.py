"""
dbf.py - Reader for the attribute table (.dbf) member of a shapefile.

The table is a dBASE III file: a 32-byte header, an array of 32-byte field
descriptors closed by a 0x0D byte, then fixed-width records. Each record
starts with a deletion flag (space = live, '*' = deleted).

Rows keep their physical position (AttributeRecord.row) even when deleted
rows are skipped, because the table is joined to the shapes by position.
"""

from __future__ import annotations

import logging
import math
import re
import struct
from dataclasses import dataclass
from datetime import date
from typing import Any, Iterator

from civicsearch.errors import FieldParseError, FormatError
from civicsearch.models import AttributeRecord

logger = logging.getLogger(__name__)

_TABLE_HEADER = struct.Struct("<4xIHH20x")
_NUMBER = re.compile(rb"[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")
_FIELD_DESCRIPTOR = struct.Struct("<11sc4xBB14x")
_HEADER_TERMINATOR = 0x0D
_LIVE = b" "
_DELETED = b"*"


@dataclass(frozen=True)
class FieldDescriptor:
    name: str
    type: str
    length: int
    decimals: int


@dataclass(frozen=True)
class AttributeTable:
    """
    Decoded attribute table.

    Attributes:
        fields:       Field descriptors in table order.
        records:      Live rows in physical order.
        row_count:    Number of physical rows, deleted ones included.
        deleted_rows: Physical indices of deleted rows.
        parse_errors: Values that failed to parse and were nulled.
    """
    fields: tuple[FieldDescriptor, ...]
    records: tuple[AttributeRecord, ...]
    row_count: int
    deleted_rows: tuple[int, ...] = ()
    parse_errors: tuple[FieldParseError, ...] = ()

    @property
    def field_names(self) -> list[str]:
        return [f.name for f in self.fields]


class AttributeTableReader:
    """
    Parses the table header and field descriptors on construction;
    ``iter_records`` then decodes rows lazily and ``read`` collects them.

    Args:
        data:     Entire .dbf stream.
        encoding: Text encoding of names and character values.
    """

    def __init__(self, data: bytes, encoding: str = "utf-8"):
        self._data = bytes(data)
        self.encoding = encoding
        self.parse_errors: list[FieldParseError] = []
        self.deleted_rows: list[int] = []

        if len(self._data) < _TABLE_HEADER.size:
            raise FormatError("Attribute table is shorter than its 32-byte header", offset=0)
        self.record_count, self.header_length, self.record_length = _TABLE_HEADER.unpack_from(self._data, 0)
        self.fields = self._read_fields()

        width = 1 + sum(f.length for f in self.fields)
        if width > self.record_length:
            raise FormatError(
                f"Fields need {width} bytes per record but header declares {self.record_length}", offset=10
            )

        body_end = self.header_length + self.record_count * self.record_length
        if body_end > len(self._data):
            raise FormatError(
                f"Table declares {self.record_count} records of {self.record_length} bytes "
                f"but the stream ends at {len(self._data)}",
                offset=self.header_length,
            )

    def _read_fields(self) -> tuple[FieldDescriptor, ...]:
        data = self._data
        fields = []
        pos = _TABLE_HEADER.size
        while True:
            if pos >= len(data):
                raise FormatError("Field descriptor array is not terminated", offset=pos)
            if data[pos] == _HEADER_TERMINATOR:
                break
            if pos + _FIELD_DESCRIPTOR.size > self.header_length:
                raise FormatError("Field descriptor array runs past the declared header length", offset=pos)
            raw_name, raw_type, length, decimals = _FIELD_DESCRIPTOR.unpack_from(data, pos)
            name = raw_name.split(b"\x00", 1)[0].decode(self.encoding, "replace").strip()
            fields.append(FieldDescriptor(name, raw_type.decode("ascii", "replace").upper(), length, decimals))
            pos += _FIELD_DESCRIPTOR.size
        return tuple(fields)

    @property
    def field_names(self) -> list[str]:
        return [f.name for f in self.fields]

    def iter_records(self) -> Iterator[AttributeRecord]:
        data = self._data
        for row in range(self.record_count):
            start = self.header_length + row * self.record_length
            flag = data[start:start + 1]
            if flag == _DELETED:
                self.deleted_rows.append(row)
                logger.debug("Skipping deleted attribute row %d", row)
                continue
            if flag != _LIVE:
                logger.debug("Row %d has unknown deletion flag %r; treating as live", row, flag)

            values: dict[str, Any] = {}
            pos = start + 1
            for fd in self.fields:
                raw = data[pos:pos + fd.length]
                pos += fd.length
                try:
                    values[fd.name] = self._parse_value(fd, raw, row)
                except FieldParseError as exc:
                    logger.warning("%s; using null", exc)
                    self.parse_errors.append(exc)
                    values[fd.name] = None
            yield AttributeRecord(row, values)

    def read(self) -> AttributeTable:
        records = tuple(self.iter_records())
        logger.info(
            "Read %d attribute rows (%d deleted, %d unparseable values)",
            self.record_count, len(self.deleted_rows), len(self.parse_errors),
        )
        return AttributeTable(
            fields=self.fields,
            records=records,
            row_count=self.record_count,
            deleted_rows=tuple(self.deleted_rows),
            parse_errors=tuple(self.parse_errors),
        )

    def _parse_value(self, fd: FieldDescriptor, raw: bytes, row: int) -> Any:
        if fd.type in ("N", "F"):
            return _parse_number(fd, raw, row)
        if fd.type == "D":
            return _parse_date(fd, raw, row)
        if fd.type == "L":
            flag = raw.strip()
            if flag and flag in b"YyTt":
                return True
            if flag and flag in b"NnFf":
                return False
            return None
        return raw.decode(self.encoding, "replace").rstrip("\x00").strip()


def _parse_number(fd: FieldDescriptor, raw: bytes, row: int):
    text = raw.split(b"\x00", 1)[0].strip()
    if not text or not text.strip(b"*"):
        return None
    if not _NUMBER.fullmatch(text):
        raise FieldParseError(row, fd.name, raw, "number")
    try:
        if fd.decimals or fd.type == "F":
            value = float(text)
            if math.isinf(value):
                raise OverflowError(text)
            return value
        try:
            return int(text)
        except ValueError:
            return int(float(text))
    except (ValueError, OverflowError):
        raise FieldParseError(row, fd.name, raw, "number") from None


def _parse_date(fd: FieldDescriptor, raw: bytes, row: int):
    text = raw.replace(b"\x00", b"").strip()
    if not text or not text.strip(b"0"):
        return None
    if len(text) != 8 or not text.isdigit():
        raise FieldParseError(row, fd.name, raw, "date (YYYYMMDD)")
    try:
        return date(int(text[:4]), int(text[4:6]), int(text[6:8]))
    except ValueError:
        raise FieldParseError(row, fd.name, raw, "date (YYYYMMDD)") from None


def read_attribute_table(data: bytes, encoding: str = "utf-8") -> AttributeTable:
    return AttributeTableReader(data, encoding=encoding).read()
