"""
Cohort Consolidation

Collects each specimen's merged droplet table from a directory tree, tags the
rows with the specimen folder name and an optional imaging-session label, and
writes the tagged copy into one output area. Source files are only read,
never moved or modified.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from .droplet_schema import (
    MERGED_COLUMNS,
    SESSION_COLUMN,
    SPECIMEN_COLUMN,
    read_source_table,
    require_columns
)
from .error_handling import (
    NoDataFoundError,
    SchemaError,
    create_error_handler
)
from ..utils.helpers import ensure_directory, find_specimen_folders, write_table

logger = logging.getLogger(__name__)

COMPONENT = "CohortConsolidator"


@dataclass
class ConsolidationReport:
    """What a consolidation run produced and what it left out."""
    cohort_root: Path
    output_dir: Path
    processed: List[str] = field(default_factory=list)
    skipped: Dict[str, str] = field(default_factory=dict)
    output_files: List[Path] = field(default_factory=list)
    cohort_table: Optional[pd.DataFrame] = None

    @property
    def n_specimens(self) -> int:
        return len(self.processed) + len(self.skipped)

    @property
    def n_skipped(self) -> int:
        return len(self.skipped)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'cohort_root': str(self.cohort_root),
            'output_dir': str(self.output_dir),
            'n_specimens': self.n_specimens,
            'n_processed': len(self.processed),
            'n_skipped': self.n_skipped,
            'processed': list(self.processed),
            'skipped': dict(self.skipped),
            'n_droplets': 0 if self.cohort_table is None else len(self.cohort_table)
        }


def tag_specimen_table(
    table: pd.DataFrame,
    specimen_id: str,
    session_id: Optional[str] = None
) -> pd.DataFrame:
    """Return a copy of ``table`` with specimen and session tag columns."""
    tagged = table.copy()
    tagged[SPECIMEN_COLUMN] = specimen_id
    tagged[SESSION_COLUMN] = session_id if session_id is not None else pd.NA
    return tagged


class CohortConsolidator:
    """Gathers per-specimen merged tables into one tagged cohort."""

    def __init__(
        self,
        merged_file_name: str = "final_merged_csv.csv",
        session_id: Optional[str] = None,
        source_file_names: Sequence[str] = ("coords.csv", "Results.csv")
    ):
        self.merged_file_name = merged_file_name
        self.session_id = session_id
        # Folders holding only raw sources are specimens whose merge failed.
        self.source_file_names = list(source_file_names)
        self.error_handler = create_error_handler(COMPONENT)

    def output_file_name(self, specimen_id: str) -> str:
        name = f"{specimen_id}_{self.merged_file_name}"
        if self.session_id:
            name = f"{self.session_id}_{name}"
        return name

    def consolidate(
        self,
        cohort_root: Path,
        output_dir: Path,
        cohort_table_path: Optional[Path] = None
    ) -> ConsolidationReport:
        """Copy every specimen's tagged merged table into ``output_dir``.

        Args:
            cohort_root: Directory tree; a specimen is any folder holding the
                merged file or one of the raw source files
            output_dir: Destination for the tagged per-specimen copies
            cohort_table_path: Optional path for the concatenated cohort table;
                keep it outside ``output_dir`` so later stages do not treat it
                as a specimen

        Returns:
            ConsolidationReport with processed and skipped specimens

        Raises:
            NoDataFoundError: No specimen folder exists, or every one was skipped
        """
        cohort_root = Path(cohort_root)
        output_dir = Path(output_dir)
        if not cohort_root.is_dir():
            self.error_handler.raise_error(NoDataFoundError(
                f"Cohort root does not exist: {cohort_root}",
                component=COMPONENT,
                context={"cohort_root": str(cohort_root)}
            ))

        folders = find_specimen_folders(
            cohort_root, [self.merged_file_name, *self.source_file_names], exclude=[output_dir]
        )
        report = ConsolidationReport(cohort_root=cohort_root, output_dir=output_dir)
        tables = []

        for folder in folders:
            specimen_id = folder.name
            source = folder / self.merged_file_name

            if not source.exists():
                report.skipped[specimen_id] = f"missing {self.merged_file_name}"
                logger.warning(f"Skipping specimen '{specimen_id}': no {self.merged_file_name} in {folder}")
                continue
            if specimen_id in report.processed:
                report.skipped[f"{specimen_id} ({folder})"] = "duplicate specimen id"
                logger.warning(f"Skipping '{folder}': specimen id '{specimen_id}' already consolidated")
                continue

            try:
                table = read_source_table(source, COMPONENT)
                require_columns(table, MERGED_COLUMNS, f"Merged table for '{specimen_id}'", COMPONENT)
            except SchemaError as e:
                self.error_handler.record_skip(specimen_id, e)
                report.skipped[specimen_id] = str(e)
                continue

            tagged = tag_specimen_table(table, specimen_id, self.session_id)
            ensure_directory(output_dir)
            report.output_files.append(
                write_table(tagged, output_dir / self.output_file_name(specimen_id))
            )
            report.processed.append(specimen_id)
            tables.append(tagged)
            logger.info(f"Copied {len(tagged)} droplet rows for: {specimen_id}")

        if not report.processed:
            self.error_handler.raise_error(NoDataFoundError(
                f"No usable specimen under {cohort_root} "
                f"({len(folders)} folder(s), {report.n_skipped} skipped)",
                component=COMPONENT,
                context={"cohort_root": str(cohort_root), "skipped": dict(report.skipped)},
                recovery_suggestion="Run the merge stage first or check the folder layout"
            ))

        report.cohort_table = pd.concat(tables, ignore_index=True)
        if cohort_table_path is not None:
            write_table(report.cohort_table, cohort_table_path)

        if report.skipped:
            logger.warning(
                f"Consolidated {len(report.processed)}/{report.n_specimens} specimens; "
                f"skipped: {', '.join(report.skipped)}"
            )
        else:
            logger.info(f"Consolidated all {len(report.processed)} specimens into: {output_dir}")
        return report
