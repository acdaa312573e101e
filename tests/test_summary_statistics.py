"""
Tests for per-specimen summary statistics.

Validates that:
1. area_sum is exact for equal-area droplets
2. Every numeric column gets a mean, text columns summarise to missing
3. Empty tables and tables without area give a missing area_sum, never zero
4. Row order follows case-insensitive file names
"""

import numpy as np
import pandas as pd
import pytest

from droplet_morphometry.analysis.error_handling import NoDataFoundError
from droplet_morphometry.analysis.summary_statistics import (
    SummaryAggregator,
    summarize_specimen,
    summarize_tables
)

from conftest import make_merged_table


def _droplets(area, feret, n):
    return pd.DataFrame({'label': np.arange(1, n + 1), 'area': [area] * n, 'feret_diameter': [feret] * n})


class TestSummarizeSpecimen:

    def test_area_sum_is_exact(self):
        row = summarize_specimen(_droplets(0.1, 1.0, 7), "s.csv")
        assert row['area_sum'] == pytest.approx(0.7, rel=1e-12)

        row = summarize_specimen(_droplets(12.5, 1.0, 40), "s.csv")
        assert row['area_sum'] == 500.0

    def test_two_specimen_scenario(self):
        summary = summarize_tables([
            ("first.csv", _droplets(10.0, 5.0, 3)),
            ("second.csv", _droplets(20.0, 8.0, 2)),
        ])

        assert summary['area_sum'].tolist() == [30.0, 40.0]
        assert summary['feret_diameter_mean'].tolist() == [5.0, 8.0]

    def test_means_ignore_missing_values(self):
        table = _droplets(10.0, 4.0, 3)
        table.loc[1, 'feret_diameter'] = np.nan
        table.loc[2, 'feret_diameter'] = 7.0

        row = summarize_specimen(table, "s.csv")

        assert row['feret_diameter_mean'] == pytest.approx(5.5)

    def test_text_columns_preserved_as_missing(self):
        table = _droplets(10.0, 4.0, 2).assign(image="a.tif", specimen_id="mouse01")

        row = summarize_specimen(table, "s.csv")

        assert np.isnan(row['image_mean'])
        assert np.isnan(row['specimen_id_mean'])

    def test_unknown_numeric_column_averaged(self):
        table = _droplets(10.0, 4.0, 2).assign(extra=[1.0, 3.0])
        assert summarize_specimen(table, "s.csv")['extra_mean'] == 2.0

    def test_empty_table_gives_missing_area_sum(self):
        empty = _droplets(10.0, 4.0, 0)

        row = summarize_specimen(empty, "empty.csv")

        assert np.isnan(row['area_sum'])
        assert np.isnan(row['feret_diameter_mean'])

    def test_no_area_column_gives_missing_area_sum(self):
        row = summarize_specimen(_droplets(10.0, 4.0, 3).drop(columns=['area']), "s.csv")
        assert np.isnan(row['area_sum'])

    def test_all_area_missing_is_not_zero(self):
        table = _droplets(np.nan, 4.0, 3)
        assert np.isnan(summarize_specimen(table, "s.csv")['area_sum'])

    def test_non_numeric_entries_coerced(self, caplog):
        table = _droplets(10.0, 4.0, 3)
        table['area'] = ["10", "n/a", "20"]

        row = summarize_specimen(table, "s.csv")

        assert row['area_sum'] == 30.0
        assert "non-numeric" in caplog.text

    def test_coercion_recorded_by_aggregator(self, tmp_path):
        table = make_merged_table(3)
        table['area'] = table['area'].astype(object)
        table.loc[1, 'area'] = "unreadable"
        table.to_csv(tmp_path / "s1.csv", index=False)

        aggregator = SummaryAggregator()
        aggregator.summarize_directory(tmp_path)

        warning = aggregator.error_handler.error_history[0]
        assert warning.error_code == "COERCED"
        assert warning.context == {"file_name": "s1.csv", "column": "area", "n_values": 1}


class TestSummaryAggregator:

    def test_case_insensitive_order(self, tmp_path):
        for name in ["b.csv", "A.csv", "c.csv", "B2.csv"]:
            make_merged_table(2).to_csv(tmp_path / name, index=False)

        summary = SummaryAggregator().summarize_directory(tmp_path)

        assert summary['file_name'].tolist() == ["A.csv", "b.csv", "B2.csv", "c.csv"]

    def test_summary_written_to_default_location(self, tmp_path):
        make_merged_table(3, area=5.0).to_csv(tmp_path / "s1.csv", index=False)

        aggregator = SummaryAggregator()
        aggregator.summarize_directory(tmp_path)

        written = pd.read_csv(tmp_path / "summaryStats" / "summaryStats.csv")
        assert written.loc[0, 'area_sum'] == 15.0
        assert list(written.columns[:2]) == ['file_name', 'area_sum']

    def test_one_row_per_file(self, tmp_path):
        for i in range(4):
            make_merged_table(i + 1, seed=i).to_csv(tmp_path / f"s{i}.csv", index=False)
        assert len(SummaryAggregator().summarize_directory(tmp_path)) == 4

    def test_empty_directory_raises(self, tmp_path):
        with pytest.raises(NoDataFoundError):
            SummaryAggregator().summarize_directory(tmp_path)
