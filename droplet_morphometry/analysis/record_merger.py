"""
Record Merger - joins one specimen's droplet coordinates with its shape descriptors

The segmentation tool numbers droplets from 0 in its coordinate export, while
the measurement tool numbers them from 1 and embeds the number in a free-text
identifier. Both are aligned onto one integer key, inner-joined, and reduced
to the fixed 17-column droplet projection.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Any, List, Optional

import numpy as np
import pandas as pd

from .droplet_schema import (
    COORDINATE_SOURCE_COLUMNS,
    DESCRIPTOR_COLUMN_MAP,
    DESCRIPTOR_IMAGE_COLUMN,
    LABEL_OFFSET,
    MERGED_COLUMNS,
    read_source_table,
    require_columns,
    require_unique
)
from .error_handling import EmptyJoinError, SchemaError, create_error_handler
from ..utils.helpers import find_specimen_folders, write_table

logger = logging.getLogger(__name__)

COMPONENT = "RecordMerger"
FULL_MERGE_FILE_NAME = "merged_csv_corrected.csv"

_MATCH_KEY = "_match_id"
_DESCRIPTOR_SUFFIX = "_descriptor"


@dataclass
class MergeResult:
    """Outcome of merging one specimen."""
    specimen_id: str
    table: pd.DataFrame
    full_table: pd.DataFrame
    n_coordinate_only: int = 0
    n_descriptor_only: int = 0
    output_paths: Dict[str, Path] = field(default_factory=dict)

    @property
    def n_droplets(self) -> int:
        return len(self.table)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'specimen_id': self.specimen_id,
            'n_droplets': self.n_droplets,
            'n_coordinate_only': self.n_coordinate_only,
            'n_descriptor_only': self.n_descriptor_only,
            'output_paths': {k: str(v) for k, v in self.output_paths.items()}
        }


def extract_droplet_index(identifiers: pd.Series) -> pd.Series:
    """Integer droplet index from identifiers by deleting every non-digit character.

    ``"droplet1"`` -> 1, ``"7"`` -> 7. Identifiers without digits give <NA>.
    All digits are concatenated, so ``"img2_droplet1"`` gives 21.
    """
    digits = identifiers.astype(str).str.replace(r'\D', '', regex=True)
    return pd.to_numeric(digits.replace('', np.nan), errors='coerce').astype('Int64')


def _coordinate_labels(coordinates: pd.DataFrame, specimen_id: str) -> pd.Series:
    labels = pd.to_numeric(coordinates['Label'], errors='coerce')
    bad = labels.isna() | (labels != np.floor(labels))
    if bad.any():
        raise SchemaError(
            f"Coordinate source for '{specimen_id}' has {int(bad.sum())} non-integer Label value(s)",
            component=COMPONENT,
            context={"specimen_id": specimen_id,
                     "examples": coordinates.loc[bad, 'Label'].head(5).tolist()}
        )
    return labels.astype('int64') + LABEL_OFFSET


def _pick(merged: pd.DataFrame, column: str) -> Optional[pd.Series]:
    """Descriptor-side value of a column, ignoring the join's disambiguation suffix."""
    suffixed = f"{column}{_DESCRIPTOR_SUFFIX}"
    if suffixed in merged.columns:
        return merged[suffixed]
    return merged.get(column)


def merge_specimen_records(
    coordinates: pd.DataFrame,
    descriptors: pd.DataFrame,
    specimen_id: str = "specimen"
) -> MergeResult:
    """Join coordinate records with shape-descriptor records for one specimen.

    Args:
        coordinates: Segmentation export with a zero-based integer ``Label``
            plus ``X``/``Y`` columns, one row per droplet
        descriptors: Measurement export whose first column embeds the
            one-based droplet index, one row per droplet
        specimen_id: Name used in logs and errors

    Returns:
        MergeResult holding the projected table (columns ``MERGED_COLUMNS``,
        ordered by label) and the unprojected join

    Raises:
        SchemaError: A required column is missing or labels are not unique
        EmptyJoinError: No droplet index is present in both sources
    """
    require_columns(coordinates, COORDINATE_SOURCE_COLUMNS,
                    f"Coordinate source for '{specimen_id}'", COMPONENT)
    require_columns(descriptors, list(DESCRIPTOR_COLUMN_MAP),
                    f"Descriptor source for '{specimen_id}'", COMPONENT)

    coords = coordinates.copy()
    coords['Label'] = _coordinate_labels(coords, specimen_id)

    desc = descriptors.copy()
    desc[_MATCH_KEY] = extract_droplet_index(desc.iloc[:, 0])
    desc = desc.rename(columns={DESCRIPTOR_IMAGE_COLUMN: 'image'})

    require_unique(coords['Label'], f"Coordinate source for '{specimen_id}'", COMPONENT)
    require_unique(desc[_MATCH_KEY], f"Descriptor source for '{specimen_id}'", COMPONENT)

    unkeyed = int(desc[_MATCH_KEY].isna().sum())
    desc = desc.dropna(subset=[_MATCH_KEY])
    desc[_MATCH_KEY] = desc[_MATCH_KEY].astype('int64')

    coord_keys = set(coords['Label'])
    desc_keys = set(desc[_MATCH_KEY])
    n_coordinate_only = len(coord_keys - desc_keys)
    n_descriptor_only = len(desc_keys - coord_keys) + unkeyed

    merged = coords.merge(
        desc,
        left_on='Label',
        right_on=_MATCH_KEY,
        how='inner',
        suffixes=('', _DESCRIPTOR_SUFFIX),
        validate='one_to_one'
    ).sort_values('Label', kind='mergesort').reset_index(drop=True)

    if merged.empty:
        raise EmptyJoinError(
            f"No droplet of '{specimen_id}' matched between sources "
            f"({len(coords)} coordinate rows, {len(descriptors)} descriptor rows)",
            component=COMPONENT,
            context={"specimen_id": specimen_id,
                     "n_coordinate_rows": len(coords),
                     "n_descriptor_rows": len(descriptors)},
            recovery_suggestion="Check that both files come from the same image"
        )

    if n_coordinate_only or n_descriptor_only:
        logger.warning(
            f"{specimen_id}: dropped {n_coordinate_only} coordinate-only and "
            f"{n_descriptor_only} descriptor-only droplet(s) during join"
        )

    full_table = merged.drop(columns=[_MATCH_KEY])

    image = _pick(merged, 'image')
    if image is None:
        logger.warning(f"{specimen_id}: descriptor source has no '{DESCRIPTOR_IMAGE_COLUMN}' (image) column")
        image = pd.Series(pd.NA, index=merged.index, dtype='object')

    projected = pd.DataFrame({
        'label': merged['Label'],
        'x': merged['X'],
        'y': merged['Y'],
        'image': image,
    })
    for tool_name, canonical in DESCRIPTOR_COLUMN_MAP.items():
        projected[canonical] = _pick(merged, tool_name)

    return MergeResult(
        specimen_id=specimen_id,
        table=projected[MERGED_COLUMNS],
        full_table=full_table,
        n_coordinate_only=n_coordinate_only,
        n_descriptor_only=n_descriptor_only
    )


class RecordMerger:
    """File-level driver for ``merge_specimen_records``."""

    def __init__(
        self,
        coordinate_file_name: str = "coords.csv",
        descriptor_file_name: str = "Results.csv",
        merged_file_name: str = "final_merged_csv.csv",
        write_full_merge: bool = True
    ):
        self.coordinate_file_name = coordinate_file_name
        self.descriptor_file_name = descriptor_file_name
        self.merged_file_name = merged_file_name
        self.write_full_merge = write_full_merge
        self.error_handler = create_error_handler(COMPONENT)

    @property
    def source_file_names(self) -> List[str]:
        return [self.coordinate_file_name, self.descriptor_file_name]

    def merge_folder(self, folder: Path, specimen_id: Optional[str] = None) -> MergeResult:
        """Merge the two source files in ``folder`` and write the merged table beside them."""
        folder = Path(folder)
        specimen_id = specimen_id or folder.name

        sources = {}
        for role, name in (('coordinate', self.coordinate_file_name),
                           ('descriptor', self.descriptor_file_name)):
            path = folder / name
            if not path.exists():
                raise SchemaError(
                    f"Specimen '{specimen_id}' has no {role} source '{name}'",
                    component=COMPONENT,
                    context={"specimen_id": specimen_id, "missing_file": str(path)}
                )
            sources[role] = read_source_table(path, COMPONENT)

        result = merge_specimen_records(sources['coordinate'], sources['descriptor'], specimen_id)

        if self.write_full_merge:
            result.output_paths['full'] = write_table(result.full_table, folder / FULL_MERGE_FILE_NAME)
        result.output_paths['merged'] = write_table(result.table, folder / self.merged_file_name)
        logger.info(f"Merged {result.n_droplets} droplets for: {specimen_id}")
        return result

    def merge_cohort(self, cohort_root: Path, exclude: Optional[List[Path]] = None) -> Dict[str, MergeResult]:
        """Merge every folder under ``cohort_root`` holding at least one source file.

        A specimen that fails with a schema or empty-join error is recorded in
        ``self.error_handler`` and skipped; the remaining specimens still merge.
        """
        results = {}
        for folder in find_specimen_folders(cohort_root, self.source_file_names, exclude=exclude):
            try:
                results[folder.name] = self.merge_folder(folder)
            except (SchemaError, EmptyJoinError) as e:
                self.error_handler.record_skip(folder.name, e)

        logger.info(
            f"Merged {len(results)} specimen(s) under {cohort_root}; "
            f"skipped {len(self.error_handler.skipped_specimens)}"
        )
        return results
