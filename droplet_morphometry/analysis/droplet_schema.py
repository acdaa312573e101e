"""
Versioned column schema for droplet tables.

Every stage boundary checks its input against these definitions and fails
with ``SchemaError`` instead of carrying on with NA-filled columns.
"""

from pathlib import Path
from typing import Dict, List, Sequence, Tuple

import pandas as pd

from .error_handling import SchemaError

SCHEMA_VERSION = "1.0"

# Zero-based segmentation labels vs one-based measurement-tool indices.
LABEL_OFFSET = 1

COORDINATE_SOURCE_COLUMNS: Tuple[str, ...] = ('Label', 'X', 'Y')

# Measurement-tool header -> canonical column name
DESCRIPTOR_COLUMN_MAP: Dict[str, str] = {
    'Area': 'area',
    'Perim.': 'perimeter',
    'Circ.': 'circularity',
    'Feret': 'feret_diameter',
    'FeretX': 'feret_x',
    'FeretY': 'feret_y',
    'FeretAngle': 'feret_angle',
    'MinFeret': 'min_feret',
    'AR': 'aspect_ratio',
    'Round': 'roundness',
    'Solidity': 'solidity',
    'MinThr': 'min_threshold',
    'MaxThr': 'max_threshold',
}

# The measurement tool's own 'Label' column holds the image name.
DESCRIPTOR_IMAGE_COLUMN = 'Label'

COORDINATE_COLUMNS: Tuple[str, str] = ('x', 'y')

MERGED_COLUMNS: List[str] = (
    ['label', 'x', 'y', 'image'] + list(DESCRIPTOR_COLUMN_MAP.values())
)

SPECIMEN_COLUMN = 'specimen_id'
SESSION_COLUMN = 'session_id'
TAG_COLUMNS: List[str] = [SPECIMEN_COLUMN, SESSION_COLUMN]

COHORT_COLUMNS: List[str] = MERGED_COLUMNS + TAG_COLUMNS

# 'coordinate' columns never reach aggregation; 'text' columns summarise to NA.
COLUMN_KINDS: Dict[str, str] = {
    'label': 'numeric',
    'x': 'coordinate',
    'y': 'coordinate',
    'image': 'text',
    SPECIMEN_COLUMN: 'text',
    SESSION_COLUMN: 'text',
    **{name: 'numeric' for name in DESCRIPTOR_COLUMN_MAP.values()},
}

FILE_NAME_COLUMN = 'file_name'
AREA_SUM_COLUMN = 'area_sum'
MEAN_SUFFIX = '_mean'


def mean_column(column: str) -> str:
    """Name of the per-specimen mean column for ``column``."""
    return f"{column}{MEAN_SUFFIX}"


def require_columns(
    table: pd.DataFrame,
    required: Sequence[str],
    source: str,
    component: str
) -> None:
    """Raise ``SchemaError`` naming every required column missing from ``table``."""
    missing = [c for c in required if c not in table.columns]
    if missing:
        raise SchemaError(
            f"{source} is missing required column(s) {missing} "
            f"(schema v{SCHEMA_VERSION})",
            component=component,
            context={"source": source, "missing": missing,
                     "present": [str(c) for c in table.columns]},
            recovery_suggestion="Check the export settings of the tool that produced this file"
        )


def require_unique(keys: pd.Series, source: str, component: str) -> None:
    """Raise ``SchemaError`` if ``keys`` holds duplicate (non-missing) values."""
    present = keys.dropna()
    duplicated = present[present.duplicated()].unique().tolist()
    if duplicated:
        raise SchemaError(
            f"{source} has duplicate droplet labels {duplicated[:10]}",
            component=component,
            context={"source": source, "duplicates": duplicated}
        )


def read_source_table(path: Path, component: str) -> pd.DataFrame:
    """Read a comma-separated table; an empty file is a schema violation."""
    try:
        return pd.read_csv(path)
    except pd.errors.EmptyDataError:
        raise SchemaError(
            f"{Path(path).name} is empty (no header row)",
            component=component,
            context={"source": str(path)}
        )
