"""
Analysis stages for droplet morphometry.

Per-specimen record merging, cohort consolidation, coordinate stripping and
summary statistics, followed by the control baseline model, experimental
deviations and the two-test distribution comparison.
"""

# Error taxonomy
from .error_handling import (
    DropletAnalysisError,
    SchemaError,
    EmptyJoinError,
    NoDataFoundError,
    InsufficientDataError,
    ErrorHandler,
    create_error_handler
)

# Per-specimen preparation
from .record_merger import (
    RecordMerger,
    MergeResult,
    merge_specimen_records,
    extract_droplet_index
)
from .cohort_consolidation import (
    CohortConsolidator,
    ConsolidationReport,
    tag_specimen_table
)
from .coordinate_stripping import (
    CoordinateStripper,
    strip_coordinates
)
from .summary_statistics import (
    SummaryAggregator,
    summarize_specimen,
    summarize_tables
)

# Modeling and comparison
from .baseline_model import (
    BaselineModel,
    BaselineModelFitter
)
from .deviation_evaluation import (
    DeviationEvaluator,
    DeviationSet
)
from .distribution_comparison import (
    DistributionComparator,
    ComparisonResult,
    StatisticalTestResult
)

# Orchestration
from .main_pipeline import (
    DropletAnalysisPipeline,
    run_complete_analysis
)

__all__ = [
    'DropletAnalysisError', 'SchemaError', 'EmptyJoinError', 'NoDataFoundError',
    'InsufficientDataError', 'ErrorHandler', 'create_error_handler',
    'RecordMerger', 'MergeResult', 'merge_specimen_records', 'extract_droplet_index',
    'CohortConsolidator', 'ConsolidationReport', 'tag_specimen_table',
    'CoordinateStripper', 'strip_coordinates',
    'SummaryAggregator', 'summarize_specimen', 'summarize_tables',
    'BaselineModel', 'BaselineModelFitter',
    'DeviationEvaluator', 'DeviationSet',
    'DistributionComparator', 'ComparisonResult', 'StatisticalTestResult',
    'DropletAnalysisPipeline', 'run_complete_analysis'
]
