"""
config.py - Runtime configuration, read once from environment variables.
"""

import os
from pathlib import Path

# District archive (.zip) or directory holding the .shp/.shx/.dbf members
DATA_PATH = Path(os.getenv("CIVICSEARCH_DATA_PATH", "data/districts.zip"))

# TIGER shapefiles keep the district's display name in NAMELSAD
NAME_FIELD = os.getenv("CIVICSEARCH_NAME_FIELD", "NAMELSAD")

# Base name of the layer to use when the archive holds several .shp files
LAYER = os.getenv("CIVICSEARCH_LAYER") or None

# Overridden by a .cpg member when the archive has one
DBF_ENCODING = os.getenv("CIVICSEARCH_DBF_ENCODING", "utf-8")

BATCH_WORKERS = int(os.getenv("CIVICSEARCH_BATCH_WORKERS", 1))
BATCH_CHUNK_SIZE = int(os.getenv("CIVICSEARCH_BATCH_CHUNK_SIZE", 256))
BATCH_MAX_POINTS = int(os.getenv("CIVICSEARCH_BATCH_MAX_POINTS", 10_000))

LOG_LEVEL = os.getenv("CIVICSEARCH_LOG_LEVEL", "INFO").upper()
