"""
End-to-End Pipeline Integration Tests

Runs every stage on synthetic specimen trees written to disk: raw
coordinate and descriptor exports in, comparison report out.
"""

import json

import numpy as np
import pandas as pd
import pytest

from droplet_morphometry.analysis.error_handling import InsufficientDataError, NoDataFoundError
from droplet_morphometry.analysis.main_pipeline import DropletAnalysisPipeline, run_complete_analysis
from droplet_morphometry.config import Config

from conftest import write_specimen


pytestmark = pytest.mark.integration


@pytest.fixture
def pipeline():
    return DropletAnalysisPipeline(Config(None))


class TestCompletePipeline:

    def test_full_run_produces_all_artifacts(self, pipeline, control_cohort, experimental_cohort, tmp_path):
        output = tmp_path / "results"

        summary = pipeline.run(control_cohort, experimental_cohort, output)

        control_summary = output / "control" / "modified_csv_files" / "withoutCoords" / "summaryStats" / "summaryStats.csv"
        assert control_summary.exists()
        assert len(pd.read_csv(control_summary)) == 12
        assert (output / "control" / "cohort_table.csv").exists()
        assert (output / "experimental" / "cohort_table.csv").exists()
        for name in ["baseline_residuals.csv", "deviations.csv", "comparison_report.csv"]:
            assert (output / "comparison" / name).exists()

        assert (output / "run_summary.json").exists()
        assert summary['config_hash'] is not None
        assert (output / f"config_snapshot_{summary['config_hash']}.json").exists()

    def test_shifted_cohort_deviates(self, pipeline, control_cohort, experimental_cohort, tmp_path):
        pipeline.run(control_cohort, experimental_cohort, tmp_path / "results")

        deviations = pd.read_csv(tmp_path / "results" / "comparison" / "deviations.csv")
        residuals = pd.read_csv(tmp_path / "results" / "comparison" / "baseline_residuals.csv")

        assert len(deviations) == 8
        assert len(residuals) == 12
        np.testing.assert_allclose(deviations['deviation'], 1.0, atol=0.3)
        assert not deviations['extrapolated'].any()

        report = pd.read_csv(tmp_path / "results" / "comparison" / "comparison_report.csv")
        assert (report['p_value'] < 0.01).all()

    def test_merge_writes_into_specimen_folders(self, pipeline, control_cohort, experimental_cohort, tmp_path):
        pipeline.run(control_cohort, experimental_cohort, tmp_path / "results")

        merged = pd.read_csv(control_cohort / "groupA" / "ctrl00" / "final_merged_csv.csv")
        assert len(merged) == 5
        assert merged['label'].tolist() == [1, 2, 3, 4, 5]

    def test_skipped_specimen_reported(self, pipeline, control_cohort, experimental_cohort, tmp_path):
        (control_cohort / "groupA" / "ctrl00" / "Results.csv").unlink()

        summary = pipeline.run(control_cohort, experimental_cohort, tmp_path / "results")

        control = summary['results']['control']
        assert control['merge']['errors']['skipped_specimens'] == {"ctrl00": "SCHEMA"}
        assert "ctrl00" in control['consolidation']['skipped']
        assert control['n_summarised'] == 11

    def test_session_organisation(self, control_cohort, experimental_cohort, tmp_path):
        config = Config.from_dict({"consolidation": {"session_id": "2024A"}})

        DropletAnalysisPipeline(config).run(control_cohort, experimental_cohort, tmp_path / "results")

        session_dir = tmp_path / "results" / "control" / "imagingSessionCsvs_2024A"
        assert (session_dir / "2024A_ctrl00_final_merged_csv.csv").exists()
        cohort = pd.read_csv(tmp_path / "results" / "control" / "cohort_table.csv")
        assert (cohort['session_id'] == "2024A").all()

    def test_rerun_is_deterministic(self, pipeline, control_cohort, experimental_cohort, tmp_path):
        first = pipeline.run(control_cohort, experimental_cohort, tmp_path / "results")
        second = DropletAnalysisPipeline(Config(None)).run(control_cohort, experimental_cohort,
                                                           tmp_path / "results")

        for test in ['location_test', 'shape_test']:
            assert first['results']['comparison'][test]['statistic'] == \
                second['results']['comparison'][test]['statistic']
            assert first['results']['comparison'][test]['p_value'] == \
                second['results']['comparison'][test]['p_value']


class TestPipelineFailures:

    def test_small_control_cohort_fails_modeling(self, experimental_cohort, tmp_path):
        control = tmp_path / "small_control"
        for k in range(4):
            write_specimen(control / f"c{k}", n_droplets=4 + k, droplet_area=30.0 + 5 * k, seed=k)

        with pytest.raises(InsufficientDataError, match="control"):
            DropletAnalysisPipeline(Config(None)).run(control, experimental_cohort, tmp_path / "results")

    def test_empty_cohort_fails(self, control_cohort, tmp_path):
        empty = tmp_path / "empty"
        (empty / "s1").mkdir(parents=True)

        with pytest.raises(NoDataFoundError):
            DropletAnalysisPipeline(Config(None)).run(control_cohort, empty, tmp_path / "results")


def test_run_complete_analysis(control_cohort, experimental_cohort, tmp_path):
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"modeling": {"min_specimens": 8}}))

    summary = run_complete_analysis(str(config_path), str(control_cohort),
                                    str(experimental_cohort), str(tmp_path / "results"))

    assert summary['results']['baseline_model']['n_specimens'] == 12
    saved = json.loads((tmp_path / "results" / "run_summary.json").read_text())
    assert saved['config_hash'] == summary['config_hash']
