"""
Pydantic Schema Validation for Droplet Morphometry Configuration

Validates:
- File naming used to find and write each stage's tables
- Modeling thresholds (the smoother needs at least five specimens)
- Logging level names
- Cross-field consistency of output file names
"""

import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

logger = logging.getLogger(__name__)


def _csv_name(v: str) -> str:
    if not v.lower().endswith('.csv'):
        raise ValueError(f"'{v}' must be a .csv file name")
    if '/' in v or '\\' in v:
        raise ValueError(f"'{v}' must be a bare file name, not a path")
    return v


class MergeConfig(BaseModel):
    """Per-specimen source and output file names."""

    coordinate_file_name: str = Field("coords.csv", description="Segmentation-tool coordinate export")
    descriptor_file_name: str = Field("Results.csv", description="Measurement-tool descriptor export")
    merged_file_name: str = Field("final_merged_csv.csv", description="Projected merge written per specimen")
    write_full_merge: bool = Field(True, description="Also write the unprojected join")

    @field_validator('coordinate_file_name', 'descriptor_file_name', 'merged_file_name')
    @classmethod
    def validate_csv_names(cls, v):
        return _csv_name(v)

    @model_validator(mode='after')
    def validate_distinct_names(self):
        """Merged output must never overwrite one of its own sources."""
        names = [self.coordinate_file_name, self.descriptor_file_name, self.merged_file_name]
        if len({n.lower() for n in names}) != len(names):
            raise ValueError(f"Merge file names must be distinct, got {names}")
        return self


class ConsolidationConfig(BaseModel):
    """Cohort consolidation settings."""

    output_dir_name: str = Field("modified_csv_files", min_length=1)
    session_id: Optional[str] = Field(None, description="Imaging-session label added to every row")
    session_dir_prefix: str = Field("imagingSessionCsvs_")

    @field_validator('session_id')
    @classmethod
    def validate_session_id(cls, v):
        if v is not None and not v.strip():
            raise ValueError("session_id must not be blank")
        return v


class SummaryConfig(BaseModel):
    """Coordinate stripping and summary output locations."""

    without_coords_dir_name: str = Field("withoutCoords", min_length=1)
    summary_dir_name: str = Field("summaryStats", min_length=1)
    summary_file_name: str = Field("summaryStats.csv")

    @field_validator('summary_file_name')
    @classmethod
    def validate_summary_name(cls, v):
        return _csv_name(v)


class ModelingConfig(BaseModel):
    """Baseline model settings."""

    min_specimens: int = Field(
        10,
        ge=5,
        description="Minimum usable control specimens for the smooth term"
    )
    response_column: str = Field("feret_diameter_mean")
    predictor_column: str = Field("area_sum")


class ComparisonConfig(BaseModel):
    """Modeling and comparison artefact names."""

    report_file_name: str = Field("comparison_report.csv")
    deviation_file_name: str = Field("deviations.csv")
    residual_file_name: str = Field("baseline_residuals.csv")

    @field_validator('report_file_name', 'deviation_file_name', 'residual_file_name')
    @classmethod
    def validate_names(cls, v):
        return _csv_name(v)


class LoggingConfig(BaseModel):
    """Runner logging setup."""

    level: str = Field("INFO")
    format: str = Field('%(asctime)s - %(levelname)s - %(message)s')

    @field_validator('level')
    @classmethod
    def validate_level(cls, v):
        level = v.upper()
        if level not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            raise ValueError(f"Unknown logging level '{v}'")
        return level


class DropletAnalysisConfig(BaseModel):
    """Root configuration; every section has defaults."""

    project_name: str = Field("droplet_morphometry")
    merge: MergeConfig = Field(default_factory=MergeConfig)
    consolidation: ConsolidationConfig = Field(default_factory=ConsolidationConfig)
    summary: SummaryConfig = Field(default_factory=SummaryConfig)
    modeling: ModelingConfig = Field(default_factory=ModelingConfig)
    comparison: ComparisonConfig = Field(default_factory=ComparisonConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = ConfigDict(extra='forbid')


def load_validated_config(config_path: str) -> DropletAnalysisConfig:
    """
    Load and validate config using Pydantic.

    Args:
        config_path: Path to config.json

    Returns:
        Validated DropletAnalysisConfig instance

    Raises:
        FileNotFoundError: If the file does not exist
        ValidationError: If config validation fails
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        config_dict = json.load(f)

    try:
        return DropletAnalysisConfig(**config_dict)
    except ValidationError as e:
        logger.error(f"Config validation failed: {config_path}")
        for error in e.errors():
            loc = " → ".join(str(x) for x in error['loc'])
            logger.error(f"  Location: {loc} | Error: {error['msg']}")
        raise


def validate_config_file(config_path: str) -> bool:
    """
    Validate config file without raising exceptions.

    Returns:
        True if valid, False otherwise
    """
    try:
        load_validated_config(config_path)
        logger.info(f"Config validation passed: {config_path}")
        return True
    except (ValidationError, FileNotFoundError, json.JSONDecodeError) as e:
        logger.error(f"Config validation failed: {config_path} ({type(e).__name__})")
        return False


if __name__ == "__main__":
    """CLI for validating config files."""
    import sys

    logging.basicConfig(level=logging.INFO, format='%(levelname)s - %(message)s')
    if len(sys.argv) < 2:
        print("Usage: python -m droplet_morphometry.config_schema <config_file>")
        sys.exit(1)

    sys.exit(0 if validate_config_file(sys.argv[1]) else 1)
