"""Command-line runner tests."""

import json

import pytest

import run_analysis


pytestmark = pytest.mark.integration


def test_main_success(control_cohort, experimental_cohort, tmp_path):
    output = tmp_path / "results"

    code = run_analysis.main([
        '--config', str(tmp_path / "absent.json"),
        '--control', str(control_cohort),
        '--experimental', str(experimental_cohort),
        '--output', str(output)
    ])

    assert code == 0
    summary = json.loads((output / "run_summary.json").read_text())
    assert summary['results']['comparison']['n_baseline'] == 12


def test_main_reports_failure(experimental_cohort, tmp_path):
    empty = tmp_path / "empty"
    (empty / "s1").mkdir(parents=True)

    code = run_analysis.main([
        '--config', str(tmp_path / "absent.json"),
        '--control', str(empty),
        '--experimental', str(experimental_cohort),
        '--output', str(tmp_path / "results")
    ])

    assert code == 1
