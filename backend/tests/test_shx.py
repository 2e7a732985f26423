"""
test_shx.py - Tests for the .shx index reader.
"""

import pytest

from conftest import HOLE, SQUARE, build_shapefile
from civicsearch.errors import FormatError, IndexFormatError
from civicsearch.shp import ShapeRecordDecoder
from civicsearch.shx import IndexReader, read_index


class TestIndexReader:

    def test_one_entry_per_record(self):
        _, shx = build_shapefile([[SQUARE], [SQUARE, HOLE], [HOLE]])
        assert len(read_index(shx)) == 3

    def test_entries_point_at_shape_records(self):
        shp, shx = build_shapefile([[SQUARE], [SQUARE, HOLE]])
        records = list(ShapeRecordDecoder(shp))
        entries = read_index(shx)
        assert [e.byte_offset for e in entries] == [r.offset for r in records]
        assert [e.content_length for e in entries] == [r.content_length for r in records]

    def test_first_entry_follows_header(self):
        _, shx = build_shapefile([[SQUARE]])
        (entry,) = read_index(shx)
        assert entry.offset == 50
        assert entry.byte_offset == 100

    def test_empty_index(self):
        _, shx = build_shapefile([])
        assert IndexReader(shx).entries == []

    def test_bad_signature_raises_index_error(self):
        _, shx = build_shapefile([[SQUARE]], file_code=1)
        with pytest.raises(IndexFormatError):
            IndexReader(shx)

    def test_index_error_is_a_format_error(self):
        assert issubclass(IndexFormatError, FormatError)

    def test_partial_entry_raises(self):
        _, shx = build_shapefile([[SQUARE]])
        broken = bytearray(shx[:-4])
        broken[24:28] = (len(broken) // 2).to_bytes(4, "big")
        with pytest.raises(IndexFormatError, match="whole number"):
            IndexReader(bytes(broken))

    def test_entry_pointing_into_header_raises(self):
        _, shx = build_shapefile([[SQUARE]])
        broken = bytearray(shx)
        broken[100:104] = (10).to_bytes(4, "big")
        with pytest.raises(IndexFormatError):
            IndexReader(bytes(broken))
