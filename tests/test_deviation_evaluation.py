"""Tests for experimental deviations from the control baseline."""

import numpy as np
import pandas as pd
import pytest

from droplet_morphometry.analysis.baseline_model import BaselineModelFitter
from droplet_morphometry.analysis.deviation_evaluation import DeviationEvaluator
from droplet_morphometry.analysis.error_handling import InsufficientDataError

from conftest import log_feret


@pytest.fixture
def noisy_control_summary():
    rng = np.random.default_rng(11)
    area_sum = np.linspace(300.0, 6000.0, 15)
    return pd.DataFrame({
        'file_name': [f"ctrl{i:02d}.csv" for i in range(15)],
        'area_sum': area_sum,
        'feret_diameter_mean': log_feret(area_sum) + rng.normal(0, 0.1, 15)
    })


@pytest.fixture
def model(noisy_control_summary):
    return BaselineModelFitter().fit(noisy_control_summary)


class TestDeviationEvaluator:

    def test_control_data_reproduces_residuals(self, model, noisy_control_summary):
        deviations = DeviationEvaluator(model).evaluate(noisy_control_summary, cohort="control")

        np.testing.assert_allclose(deviations.values, model.residuals, atol=1e-10)
        assert deviations.n_extrapolated == 0

    def test_shifted_cohort_deviates_by_shift(self, model):
        area_sum = np.array([400.0, 900.0, 2500.0, 5000.0])
        experimental = pd.DataFrame({
            'file_name': ["e1.csv", "e2.csv", "e3.csv", "e4.csv"],
            'area_sum': area_sum,
            'feret_diameter_mean': log_feret(area_sum) + 2.0
        })

        deviations = DeviationEvaluator(model).evaluate(experimental)

        assert len(deviations) == 4
        np.testing.assert_allclose(deviations.values, 2.0, atol=0.3)
        assert deviations.cohort == "experimental"

    def test_table_columns(self, model, noisy_control_summary):
        table = DeviationEvaluator(model).evaluate(noisy_control_summary.head(3)).table
        assert list(table.columns) == ['file_name', 'area_sum', 'observed', 'predicted',
                                       'deviation', 'extrapolated']
        np.testing.assert_allclose(table['deviation'], table['observed'] - table['predicted'])

    def test_out_of_range_specimens_evaluated_and_flagged(self, model, caplog):
        experimental = pd.DataFrame({
            'file_name': ["tiny.csv", "mid.csv", "huge.csv"],
            'area_sum': [50.0, 1000.0, 50000.0],
            'feret_diameter_mean': [8.0, 12.0, 18.0]
        })

        evaluator = DeviationEvaluator(model)
        deviations = evaluator.evaluate(experimental)

        assert deviations.table['extrapolated'].tolist() == [True, False, True]
        assert np.all(np.isfinite(deviations.values))
        assert "tiny.csv" in caplog.text and "huge.csv" in caplog.text
        assert evaluator.error_handler.get_error_summary()['warnings'] == ["EXTRAPOLATED"]
        assert evaluator.error_handler.error_history[0].context['file_names'] == ["tiny.csv", "huge.csv"]

    def test_unusable_specimens_excluded(self, model):
        experimental = pd.DataFrame({
            'file_name': ["ok.csv", "empty.csv"],
            'area_sum': [1000.0, np.nan],
            'feret_diameter_mean': [12.0, np.nan]
        })
        evaluator = DeviationEvaluator(model)

        assert evaluator.evaluate(experimental).table['file_name'].tolist() == ["ok.csv"]
        assert evaluator.error_handler.get_error_summary()['warnings'] == ["EXCLUDED"]
        assert evaluator.error_handler.skipped_specimens == []

    def test_no_usable_specimen_names_cohort(self, model):
        experimental = pd.DataFrame({
            'file_name': ["a.csv"], 'area_sum': [np.nan], 'feret_diameter_mean': [np.nan]
        })
        with pytest.raises(InsufficientDataError, match="treated"):
            DeviationEvaluator(model).evaluate(experimental, cohort="treated")
