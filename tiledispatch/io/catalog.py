"""Catalog of tiled LAS/LAZ files."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator, List, Optional, Sequence, Union

import pandas as pd

from ..backends.exports import caller_frame
from ..core.dispatcher import Dispatcher
from ..core.exceptions import CatalogError
from ..utils.logging import get_logger

LOGGER = get_logger(__name__)

HEADER_COLUMNS = ["filename", "min_x", "min_y", "min_z", "max_x", "max_y", "max_z", "point_count"]


def read_las_header(path: Union[str, Path]) -> dict:
    """Read the bounding box and point count of one LAS/LAZ file."""
    import laspy

    with laspy.open(path) as reader:
        hdr = reader.header
        return {
            "filename": str(path),
            "min_x": float(hdr.mins[0]),
            "min_y": float(hdr.mins[1]),
            "min_z": float(hdr.mins[2]),
            "max_x": float(hdr.maxs[0]),
            "max_y": float(hdr.maxs[1]),
            "max_z": float(hdr.maxs[2]),
            "point_count": int(hdr.point_count),
        }


@dataclass
class Catalog:
    """Ordered set of tile files belonging to one dataset.

    ``files`` is the tile source handed to the dispatcher; ``headers``
    optionally carries one row per file with its extent and point count.
    """
    files: List[str]
    headers: Optional[pd.DataFrame] = field(default=None, repr=False)

    @classmethod
    def from_directory(
        cls,
        folder: Union[str, Path],
        patterns: Sequence[str] = ("*.las", "*.laz"),
        recursive: bool = False,
        read_headers: bool = False,
    ) -> "Catalog":
        folder = Path(folder)
        if not folder.is_dir():
            raise CatalogError(f"Catalog folder not found: {folder}")

        found = set()
        for pattern in patterns:
            matches = folder.rglob(pattern) if recursive else folder.glob(pattern)
            found.update(p for p in matches if p.is_file())
        if not found:
            raise CatalogError(f"No tiles matching {list(patterns)} in {folder}")

        files = [str(p) for p in sorted(found)]
        LOGGER.info(f"Catalog built from {folder}: {len(files)} tiles")

        headers = None
        if read_headers:
            headers = pd.DataFrame([read_las_header(f) for f in files], columns=HEADER_COLUMNS)
        return cls(files=files, headers=headers)

    def __len__(self) -> int:
        return len(self.files)

    def __iter__(self) -> Iterator[str]:
        return iter(self.files)

    def process(self, func, **kwargs: Any) -> Any:
        """Apply ``func`` to every tile; see :func:`tiledispatch.process`."""
        scope = caller_frame()
        config = kwargs.pop("config", None)
        try:
            return Dispatcher(config).run(self, func, scope=scope, **kwargs)
        finally:
            del scope


__all__ = ["Catalog", "read_las_header", "HEADER_COLUMNS"]
