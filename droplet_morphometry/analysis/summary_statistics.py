"""
Per-specimen summary statistics

Reduces each specimen's droplet table to a single row: total droplet area
plus the mean of every numeric descriptor. Text columns (image name, tags)
keep their column in the summary but always summarise to NA; which columns
count as text comes from the droplet schema, with dtype inspection only for
columns the schema does not know.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple

import numpy as np
import pandas as pd
from pandas.api.types import is_bool_dtype, is_numeric_dtype

from .droplet_schema import (
    AREA_SUM_COLUMN,
    COLUMN_KINDS,
    FILE_NAME_COLUMN,
    mean_column,
    read_source_table
)
from .error_handling import ErrorHandler, NoDataFoundError, create_error_handler
from ..utils.helpers import list_csv_files, write_table

logger = logging.getLogger(__name__)

COMPONENT = "SummaryAggregator"
AREA_COLUMN = 'area'


def _is_numeric_column(name: str, values: pd.Series) -> bool:
    kind = COLUMN_KINDS.get(name)
    if kind is not None:
        return kind == 'numeric'
    return is_numeric_dtype(values) and not is_bool_dtype(values)


def _as_numeric(name: str, values: pd.Series, file_name: str, error_handler: ErrorHandler) -> pd.Series:
    converted = pd.to_numeric(values, errors='coerce')
    n_lost = int((converted.isna() & values.notna()).sum())
    if n_lost:
        error_handler.log_warning(
            f"{file_name}: {n_lost} non-numeric value(s) in '{name}' ignored",
            "COERCED",
            {"file_name": file_name, "column": name, "n_values": n_lost}
        )
    return converted


def summarize_specimen(
    table: pd.DataFrame,
    file_name: str,
    error_handler: Optional[ErrorHandler] = None
) -> Dict[str, Any]:
    """One summary row for one specimen table.

    ``area_sum`` is NA when there is no ``area`` column or no droplet with an
    area value, never zero.
    """
    if error_handler is None:
        error_handler = create_error_handler(COMPONENT)
    row: Dict[str, Any] = {FILE_NAME_COLUMN: file_name, AREA_SUM_COLUMN: np.nan}

    if AREA_COLUMN in table.columns:
        area = _as_numeric(AREA_COLUMN, table[AREA_COLUMN], file_name, error_handler)
        row[AREA_SUM_COLUMN] = area.sum(min_count=1)
    if table.empty:
        logger.warning(f"{file_name}: no droplet rows, summary is undefined")

    for name in table.columns:
        values = table[name]
        if _is_numeric_column(name, values):
            row[mean_column(name)] = _as_numeric(name, values, file_name, error_handler).mean()
        else:
            row[mean_column(name)] = np.nan
    return row


def summarize_tables(
    tables: Iterable[Tuple[str, pd.DataFrame]],
    error_handler: Optional[ErrorHandler] = None
) -> pd.DataFrame:
    """Summary table with one row per ``(file_name, table)`` pair, in input order."""
    rows = [summarize_specimen(table, name, error_handler) for name, table in tables]
    if not rows:
        return pd.DataFrame(columns=[FILE_NAME_COLUMN, AREA_SUM_COLUMN])
    return pd.DataFrame(rows)


class SummaryAggregator:
    """Builds the per-cohort summary-statistics table from a folder of specimen tables."""

    def __init__(self, summary_dir_name: str = "summaryStats",
                 summary_file_name: str = "summaryStats.csv"):
        self.summary_dir_name = summary_dir_name
        self.summary_file_name = summary_file_name
        self.error_handler = create_error_handler(COMPONENT)

    def default_output_path(self, input_dir: Path) -> Path:
        return Path(input_dir) / self.summary_dir_name / self.summary_file_name

    def summarize_directory(self, input_dir: Path, output_path: Optional[Path] = None) -> pd.DataFrame:
        """Summarise every CSV directly inside ``input_dir``.

        Rows follow case-insensitive file-name order. The summary is written
        to ``output_path`` (default ``<input_dir>/summaryStats/summaryStats.csv``).

        Raises:
            NoDataFoundError: The folder holds no CSV files
        """
        input_dir = Path(input_dir)
        files = list_csv_files(input_dir) if input_dir.is_dir() else []
        if not files:
            raise NoDataFoundError(f"No CSV files to summarise in: {input_dir}",
                                   component=COMPONENT, context={"input_dir": str(input_dir)})

        summary = summarize_tables(
            ((path.name, read_source_table(path, COMPONENT)) for path in files),
            self.error_handler
        )
        output_path = Path(output_path) if output_path else self.default_output_path(input_dir)
        write_table(summary, output_path)
        logger.info(f"Summary statistics for {len(summary)} specimen(s) saved to: {output_path}")
        return summary
