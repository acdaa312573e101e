"""
Simple, composable file utilities shared by the pipeline stages.

Every stage takes explicit paths; nothing here depends on the current
working directory.
"""

import logging
import os
from pathlib import Path
from typing import Iterable, List, Optional

import pandas as pd

logger = logging.getLogger(__name__)


def ensure_directory(path: Path) -> Path:
    """Create ``path`` (and parents) if absent."""
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def sorted_case_insensitive(paths: Iterable[Path]) -> List[Path]:
    """Order paths by lower-cased file name, ties broken by the exact name."""
    return sorted(paths, key=lambda p: (p.name.lower(), p.name))


def list_csv_files(folder: Path) -> List[Path]:
    """CSV files directly inside ``folder`` in case-insensitive name order."""
    folder = Path(folder)
    return sorted_case_insensitive(
        p for p in folder.iterdir()
        if p.is_file() and p.suffix.lower() == '.csv'
    )


def find_specimen_folders(
    root: Path,
    markers: Iterable[str],
    exclude: Optional[Iterable[Path]] = None
) -> List[Path]:
    """Directories under ``root`` (``root`` included) holding any of the ``markers`` files.

    Subfolders of a specimen (outlines, masks) do not hide the specimen.

    Args:
        root: Cohort root directory
        markers: File names that identify a specimen folder
        exclude: Directories (and their subtrees) to ignore, e.g. output areas

    Returns:
        Specimen folders in case-insensitive walk order
    """
    root = Path(root).resolve()
    markers = list(markers)
    excluded = [Path(p).resolve() for p in (exclude or [])]

    def _is_excluded(path: Path) -> bool:
        return any(path == ex or ex in path.parents for ex in excluded)

    folders = []
    for dirpath, dirnames, filenames in os.walk(root):
        current = Path(dirpath)
        dirnames[:] = sorted(
            (d for d in dirnames if not _is_excluded(current / d)),
            key=lambda d: (d.lower(), d)
        )
        if any(name in filenames for name in markers):
            folders.append(current)
    return folders


def write_table(table: pd.DataFrame, path: Path) -> Path:
    """Write ``table`` as CSV, warning when an existing file is overwritten."""
    path = Path(path)
    ensure_directory(path.parent)
    if path.exists():
        logger.warning(f"Overwriting existing output: {path}")
    table.to_csv(path, index=False)
    return path
