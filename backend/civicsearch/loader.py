"""
loader.py - Locating shapefile members and loading a DistrictCatalog.

Responsible for:
    - Finding the .shp, .shx, .dbf (and optional .cpg) members in a .zip
      archive, raw zip bytes, or a directory.
    - Reading them into memory as a ShapefileMembers bundle.
    - Building the DistrictCatalog from that bundle.

A TIGER archive looks like this; only the first four members are used:

    tl_2019_25_sldl.zip
    |- tl_2019_25_sldl.shp
    |- tl_2019_25_sldl.shx
    |- tl_2019_25_sldl.dbf
    |- tl_2019_25_sldl.cpg
    |- tl_2019_25_sldl.prj
    |- tl_2019_25_sldl.shp.iso.xml
"""

from __future__ import annotations

import codecs
import logging
import zipfile
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path, PurePosixPath
from typing import Callable, Optional, Union

from civicsearch import config
from civicsearch.catalog import DistrictCatalog, build_catalog
from civicsearch.errors import AmbiguousMemberError, ArchiveError, MissingMemberError

logger = logging.getLogger(__name__)

Source = Union[str, Path, bytes]


# ── ShapefileMembers ─────────────────────────────────────────────────────────
@dataclass(frozen=True)
class ShapefileMembers:
    """
    In-memory contents of one shapefile layer.

    Attributes:
        base_name: Layer name shared by the members (e.g. "tl_2019_25_sldl").
        shp:       Geometry stream.
        shx:       Index stream, or None when the layer has no index.
        dbf:       Attribute table stream.
        encoding:  Attribute text encoding from the .cpg member, if present.
        source:    Where the members were read from, for log messages.
    """
    base_name: str
    shp: bytes
    shx: Optional[bytes]
    dbf: bytes
    encoding: Optional[str] = None
    source: str = "<memory>"


# ── Member resolution ────────────────────────────────────────────────────────

def _pick_shp(names: list[str], layer: Optional[str], source: str) -> str:
    """Choose the .shp member, by layer name when several are present."""
    shp_names = [n for n in names if PurePosixPath(n).suffix.lower() == ".shp"]
    if layer is not None:
        shp_names = [n for n in shp_names if PurePosixPath(n).stem == layer]
    if not shp_names:
        raise MissingMemberError("shp", source)
    if len(shp_names) > 1:
        raise AmbiguousMemberError("shp", shp_names)
    return shp_names[0]


def _sibling(names: list[str], shp_name: str, extension: str) -> Optional[str]:
    """Find the member with the same directory and base name as the .shp."""
    shp_path = PurePosixPath(shp_name)
    for name in names:
        path = PurePosixPath(name)
        if path.parent == shp_path.parent and path.stem == shp_path.stem and path.suffix.lower() == extension:
            return name
    return None


def _collect(
    names: list[str],
    read: Callable[[str], bytes],
    layer: Optional[str],
    source: str,
) -> ShapefileMembers:
    shp_name = _pick_shp(names, layer, source)
    dbf_name = _sibling(names, shp_name, ".dbf")
    if dbf_name is None:
        raise MissingMemberError("dbf", source)

    shx_name = _sibling(names, shp_name, ".shx")
    if shx_name is None:
        logger.warning("No .shx index for %s in %s; records will be scanned linearly", shp_name, source)

    cpg_name = _sibling(names, shp_name, ".cpg")
    encoding = _read_encoding(read(cpg_name)) if cpg_name else None

    return ShapefileMembers(
        base_name=PurePosixPath(shp_name).stem,
        shp=read(shp_name),
        shx=read(shx_name) if shx_name else None,
        dbf=read(dbf_name),
        encoding=encoding,
        source=source,
    )


def _read_encoding(cpg: bytes) -> Optional[str]:
    """Return the codec named by a .cpg member, or None if Python lacks it."""
    name = cpg.decode("ascii", "ignore").strip()
    if not name:
        return None
    try:
        return codecs.lookup(name).name
    except LookupError:
        logger.warning("Ignoring unknown .cpg encoding %r", name)
        return None


def _members_from_zip(archive: zipfile.ZipFile, layer: Optional[str], source: str) -> ShapefileMembers:
    names = [info.filename for info in archive.infolist() if not info.is_dir()]
    logger.debug("Archive %s contains %d files", source, len(names))
    return _collect(names, archive.read, layer, source)


def resolve_members(source: Source, layer: Optional[str] = None) -> ShapefileMembers:
    """
    Read the members of one shapefile layer.

    Args:
        source: Path to a .zip archive or a directory, or zip archive bytes.
        layer:  Base name of the layer, required only when the source holds
                more than one .shp file.

    Returns:
        ShapefileMembers with the .shp, .shx (optional) and .dbf contents.

    Raises:
        MissingMemberError:   No .shp, or no .dbf next to it.
        AmbiguousMemberError: Several .shp files and no ``layer``.
        ArchiveError:         The source cannot be read or opened as an archive.
    """
    if isinstance(source, (bytes, bytearray)):
        try:
            with zipfile.ZipFile(BytesIO(source)) as archive:
                return _members_from_zip(archive, layer, "<zip bytes>")
        except zipfile.BadZipFile as exc:
            raise ArchiveError(f"Invalid zip archive: {exc}") from exc

    path = Path(source)
    try:
        if path.is_dir():
            names = sorted(p.relative_to(path).as_posix() for p in path.rglob("*") if p.is_file())
            return _collect(names, lambda name: (path / name).read_bytes(), layer, str(path))

        with zipfile.ZipFile(path) as archive:
            return _members_from_zip(archive, layer, path.name)
    except FileNotFoundError as exc:
        raise ArchiveError(f"Shapefile source not found: {path}") from exc
    except zipfile.BadZipFile as exc:
        raise ArchiveError(f"Invalid zip archive {path.name}: {exc}") from exc
    except OSError as exc:
        raise ArchiveError(f"Cannot read shapefile source {path}: {exc}") from exc


# ── Loaders ──────────────────────────────────────────────────────────────────

def load_catalog(
    source: Source = config.DATA_PATH,
    name_field: str = config.NAME_FIELD,
    layer: Optional[str] = config.LAYER,
    encoding: str = config.DBF_ENCODING,
) -> DistrictCatalog:
    """
    Resolve the shapefile members of ``source`` and build a DistrictCatalog.

    This should be called once per run; the catalog is read-only afterwards.
    Any failure is raised as a CatalogError subclass.
    """
    members = resolve_members(source, layer=layer)
    logger.info("Loading layer %s from %s", members.base_name, members.source)
    return build_catalog(
        members.shp,
        members.shx,
        members.dbf,
        name_field=name_field,
        encoding=members.encoding or encoding,
        source=f"{members.source}:{members.base_name}",
    )
