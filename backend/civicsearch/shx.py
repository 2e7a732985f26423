"""
shx.py - Reader for the index (.shx) member of a shapefile.

The index repeats the 100-byte .shp header and then holds one 8-byte entry
per shape record: big-endian offset and content length, both counted in
16-bit words. It only speeds up record access; callers must be able to do
without it.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass

from civicsearch.errors import IndexFormatError
from civicsearch.shp import HEADER_SIZE, FileHeader, read_file_header

logger = logging.getLogger(__name__)

_ENTRY = struct.Struct(">2i")


@dataclass(frozen=True)
class IndexEntry:
    offset: int
    content_length: int

    @property
    def byte_offset(self) -> int:
        return self.offset * 2

    @property
    def byte_length(self) -> int:
        """Record size in bytes, including its 8-byte record header."""
        return self.content_length * 2 + 8


class IndexReader:
    """Parses a .shx stream into an ordered list of IndexEntry objects."""

    def __init__(self, data: bytes):
        self.header: FileHeader = read_file_header(data, error_cls=IndexFormatError)
        body = len(data) - HEADER_SIZE
        if body % _ENTRY.size:
            raise IndexFormatError(
                f"Index body of {body} bytes is not a whole number of {_ENTRY.size}-byte entries",
                offset=HEADER_SIZE,
            )
        self.entries = [
            IndexEntry(*_ENTRY.unpack_from(data, pos))
            for pos in range(HEADER_SIZE, len(data), _ENTRY.size)
        ]
        for i, entry in enumerate(self.entries):
            if entry.byte_offset < HEADER_SIZE or entry.content_length < 0:
                raise IndexFormatError(
                    f"Entry points at offset {entry.byte_offset}",
                    offset=HEADER_SIZE + i * _ENTRY.size,
                    record_index=i,
                )
        logger.debug("Read %d index entries", len(self.entries))

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)


def read_index(data: bytes) -> list[IndexEntry]:
    return IndexReader(data).entries
