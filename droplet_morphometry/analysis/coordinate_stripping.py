"""
Coordinate stripping for tagged droplet tables.

Drops the x/y columns and removes exact duplicate rows. Runs only on tables
that already carry a specimen tag, so rows from different specimens can never
collapse into one.
"""

import logging
from pathlib import Path
from typing import List, Optional

import pandas as pd

from .droplet_schema import COORDINATE_COLUMNS, SPECIMEN_COLUMN, read_source_table
from .error_handling import NoDataFoundError, SchemaError
from ..utils.helpers import ensure_directory, list_csv_files, write_table

logger = logging.getLogger(__name__)

COMPONENT = "CoordinateStripper"
WITHOUT_COORDS_SUFFIX = "_withoutCoords"


def strip_coordinates(table: pd.DataFrame, source: str = "table") -> pd.DataFrame:
    """Remove coordinate columns and exact duplicate rows.

    Tables without both coordinate columns pass through unchanged, which also
    makes the operation idempotent.

    Raises:
        SchemaError: Coordinates are present but the rows are not yet tagged
            with a specimen id
    """
    present = [c for c in COORDINATE_COLUMNS if c in table.columns]
    if len(present) < len(COORDINATE_COLUMNS):
        if present:
            logger.warning(f"{source}: only {present} present, leaving table unchanged")
        return table

    if SPECIMEN_COLUMN not in table.columns:
        raise SchemaError(
            f"{source} has coordinates but no '{SPECIMEN_COLUMN}' column; "
            f"tag rows by specimen before de-duplicating",
            component=COMPONENT,
            context={"source": source}
        )

    stripped = table.drop(columns=list(COORDINATE_COLUMNS)).drop_duplicates().reset_index(drop=True)
    n_collapsed = len(table) - len(stripped)
    if n_collapsed:
        logger.info(f"{source}: collapsed {n_collapsed} duplicate row(s) after removing coordinates")
    return stripped


class CoordinateStripper:
    """Writes coordinate-free copies of every table in a folder."""

    def __init__(self, output_dir_name: str = "withoutCoords"):
        self.output_dir_name = output_dir_name

    @staticmethod
    def output_file_name(path: Path) -> str:
        return f"{Path(path).stem}{WITHOUT_COORDS_SUFFIX}.csv"

    def strip_file(self, path: Path, output_dir: Path) -> Path:
        table = read_source_table(path, COMPONENT)
        stripped = strip_coordinates(table, source=Path(path).name)
        return write_table(stripped, Path(output_dir) / self.output_file_name(path))

    def strip_directory(self, input_dir: Path, output_dir: Optional[Path] = None) -> List[Path]:
        """Strip every CSV in ``input_dir``.

        Args:
            input_dir: Folder of tagged per-specimen tables
            output_dir: Destination (default ``input_dir/<output_dir_name>``)

        Returns:
            Written paths in case-insensitive input order
        """
        input_dir = Path(input_dir)
        output_dir = Path(output_dir) if output_dir else input_dir / self.output_dir_name

        if not input_dir.is_dir():
            raise NoDataFoundError(f"Input folder does not exist: {input_dir}",
                                   component=COMPONENT, context={"input_dir": str(input_dir)})
        files = list_csv_files(input_dir)
        if not files:
            raise NoDataFoundError(f"No CSV files found in: {input_dir}",
                                   component=COMPONENT, context={"input_dir": str(input_dir)})

        ensure_directory(output_dir)
        written = []
        for path in files:
            written.append(self.strip_file(path, output_dir))
            logger.info(f"Processed: {path.name} -> {written[-1].name}")

        logger.info(f"All files saved to: {output_dir}")
        return written
