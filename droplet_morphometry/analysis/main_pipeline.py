"""
Main analysis pipeline for lipid-droplet morphometry.

Stage order per cohort:
    merge -> consolidate (tag) -> strip coordinates -> summarise
then, across cohorts:
    fit control baseline -> experimental deviations -> distribution comparison

Every stage reads and writes explicit paths under the chosen output root.
Per-specimen failures are skipped and reported; modeling and comparison
failures abort the run.
"""

import hashlib
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

import pandas as pd

from ..config import Config
from .baseline_model import BaselineModel, BaselineModelFitter
from .cohort_consolidation import CohortConsolidator, ConsolidationReport
from .coordinate_stripping import CoordinateStripper
from .deviation_evaluation import DeviationEvaluator, DeviationSet
from .distribution_comparison import ComparisonResult, DistributionComparator
from .droplet_schema import SCHEMA_VERSION
from .record_merger import RecordMerger
from .summary_statistics import SummaryAggregator
from ..utils.helpers import ensure_directory, write_table

logger = logging.getLogger(__name__)

COHORT_TABLE_FILE_NAME = "cohort_table.csv"


class DropletAnalysisPipeline:
    """Runs the consolidation and modeling stages with one configuration."""

    def __init__(self, config: Config):
        self.config = config
        self.results: Dict[str, Any] = {}
        self.provenance = {
            'timestamp': datetime.now().isoformat(),
            'schema_version': SCHEMA_VERSION,
            'config_hash': None
        }

    def _snapshot_config(self, output_dir: Path) -> str:
        """Save the exact configuration used, keyed by its SHA256 hash."""
        config_json = json.dumps(self.config.to_dict(), sort_keys=True, indent=2)
        config_hash = hashlib.sha256(config_json.encode()).hexdigest()[:8]

        snapshot_file = ensure_directory(output_dir) / f"config_snapshot_{config_hash}.json"
        with open(snapshot_file, 'w') as f:
            f.write(config_json)

        self.provenance['config_hash'] = config_hash
        return config_hash

    def session_dir(self, cohort_output: Path) -> Path:
        consolidation = self.config.consolidation
        if consolidation.session_id:
            return cohort_output / f"{consolidation.session_dir_prefix}{consolidation.session_id}"
        return cohort_output / consolidation.output_dir_name

    # --- per-cohort stages ---

    def merge_cohort(self, cohort_root: Path) -> Dict[str, Any]:
        merge = self.config.merge
        merger = RecordMerger(
            coordinate_file_name=merge.coordinate_file_name,
            descriptor_file_name=merge.descriptor_file_name,
            merged_file_name=merge.merged_file_name,
            write_full_merge=merge.write_full_merge
        )
        merged = merger.merge_cohort(cohort_root)
        return {
            'merged': {name: result.to_dict() for name, result in merged.items()},
            'errors': merger.error_handler.get_error_summary()
        }

    def consolidate_cohort(self, cohort_root: Path, cohort_output: Path) -> ConsolidationReport:
        consolidator = CohortConsolidator(
            merged_file_name=self.config.merge.merged_file_name,
            session_id=self.config.consolidation.session_id,
            source_file_names=(self.config.merge.coordinate_file_name,
                               self.config.merge.descriptor_file_name)
        )
        return consolidator.consolidate(
            cohort_root,
            self.session_dir(cohort_output),
            cohort_table_path=cohort_output / COHORT_TABLE_FILE_NAME
        )

    def prepare_cohort(
        self,
        cohort_root: Path,
        output_root: Path,
        cohort_name: str,
        run_merge: bool = True
    ) -> pd.DataFrame:
        """Run merge, consolidation, stripping and summary for one cohort.

        Returns:
            The cohort's summary-statistics table
        """
        cohort_root = Path(cohort_root)
        cohort_output = ensure_directory(Path(output_root) / cohort_name)
        logger.info(f"=== Preparing cohort '{cohort_name}' from {cohort_root} ===")

        cohort_results: Dict[str, Any] = {}
        if run_merge:
            cohort_results['merge'] = self.merge_cohort(cohort_root)

        report = self.consolidate_cohort(cohort_root, cohort_output)
        cohort_results['consolidation'] = report.to_dict()

        summary_cfg = self.config.summary
        stripped_dir = report.output_dir / summary_cfg.without_coords_dir_name
        CoordinateStripper(summary_cfg.without_coords_dir_name).strip_directory(
            report.output_dir, stripped_dir
        )

        aggregator = SummaryAggregator(summary_cfg.summary_dir_name, summary_cfg.summary_file_name)
        summary_path = aggregator.default_output_path(stripped_dir)
        summary = aggregator.summarize_directory(stripped_dir, summary_path)
        cohort_results['summary_path'] = str(summary_path)
        cohort_results['n_summarised'] = len(summary)

        self.results[cohort_name] = cohort_results
        return summary

    # --- cross-cohort stages ---

    def fit_baseline(self, control_summary: pd.DataFrame, cohort_name: str = "control") -> BaselineModel:
        modeling = self.config.modeling
        fitter = BaselineModelFitter(
            min_specimens=modeling.min_specimens,
            response_column=modeling.response_column,
            predictor_column=modeling.predictor_column
        )
        model = fitter.fit(control_summary, cohort=cohort_name)
        self.results['baseline_model'] = model.summary()
        return model

    def evaluate_deviations(self, model: BaselineModel, summary: pd.DataFrame,
                            cohort_name: str = "experimental") -> DeviationSet:
        deviations = DeviationEvaluator(model).evaluate(summary, cohort=cohort_name)
        self.results['deviations'] = {
            'cohort': cohort_name,
            'n_specimens': len(deviations),
            'n_extrapolated': deviations.n_extrapolated
        }
        return deviations

    def compare(self, model: BaselineModel, deviations: DeviationSet) -> ComparisonResult:
        result = DistributionComparator().compare(
            model.residuals, deviations.values,
            baseline_cohort=model.cohort,
            experimental_cohort=deviations.cohort
        )
        self.results['comparison'] = result.to_dict()
        return result

    def run(
        self,
        control_root: Path,
        experimental_root: Path,
        output_root: Path,
        run_merge: bool = True,
        control_name: str = "control",
        experimental_name: str = "experimental"
    ) -> Dict[str, Any]:
        """Run every stage for a control and an experimental cohort.

        Args:
            control_root: Specimen tree of the control cohort
            experimental_root: Specimen tree of the experimental cohort
            output_root: Everything is written below this directory
            run_merge: Merge raw sources first; False reuses existing merged files

        Returns:
            Run summary (also written to ``<output_root>/run_summary.json``)
        """
        output_root = ensure_directory(Path(output_root))
        self._snapshot_config(output_root)

        control_summary = self.prepare_cohort(control_root, output_root, control_name, run_merge)
        experimental_summary = self.prepare_cohort(experimental_root, output_root, experimental_name, run_merge)

        comparison_dir = ensure_directory(output_root / "comparison")
        names = self.config.comparison

        model = self.fit_baseline(control_summary, control_name)
        write_table(model.residual_table(), comparison_dir / names.residual_file_name)

        deviations = self.evaluate_deviations(model, experimental_summary, experimental_name)
        write_table(deviations.table, comparison_dir / names.deviation_file_name)

        result = self.compare(model, deviations)
        DistributionComparator.write_report(result, comparison_dir / names.report_file_name)

        summary = {**self.provenance, 'results': self.results}
        with open(output_root / "run_summary.json", 'w') as f:
            json.dump(summary, f, indent=2, default=str)
        logger.info(f"Run summary saved to: {output_root / 'run_summary.json'}")
        return summary


def run_complete_analysis(
    config_path: Optional[str],
    control_directory: str,
    experimental_directory: str,
    output_directory: str,
    run_merge: bool = True
) -> Dict[str, Any]:
    """
    Run the complete droplet morphometry analysis.

    Args:
        config_path: Path to configuration file (None for defaults)
        control_directory: Control cohort specimen tree
        experimental_directory: Experimental cohort specimen tree
        output_directory: Output directory for results
        run_merge: Whether to merge raw measurement sources first

    Returns:
        Analysis summary report
    """
    config = Config(config_path)
    pipeline = DropletAnalysisPipeline(config)
    return pipeline.run(
        Path(control_directory),
        Path(experimental_directory),
        Path(output_directory),
        run_merge=run_merge
    )
