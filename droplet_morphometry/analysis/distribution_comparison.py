"""
Distribution comparison between baseline residuals and cohort deviations.

Two two-sided tests on the raw vectors:
- location: Welch's two-sample t-test (unequal variances)
- shape: two-sample Kolmogorov-Smirnov test

When both vectors are constant Welch's statistic is undefined (zero
standard error). Equal constants are reported as t = 0, p = 1; different
constants keep whatever scipy returns. Either case is logged as a
DEGENERATE_TEST warning.

No accept/reject decision is made here; interpreting significance is left
to the caller.
"""

import logging
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, Dict

import numpy as np
import pandas as pd
from scipy import stats

from .error_handling import InsufficientDataError, create_error_handler
from ..utils.helpers import write_table

logger = logging.getLogger(__name__)

COMPONENT = "DistributionComparator"
LOCATION_TEST = "welch_t_test"
SHAPE_TEST = "kolmogorov_smirnov"


@dataclass(frozen=True)
class StatisticalTestResult:
    """Statistic and p-value of one two-sample test."""
    test_name: str
    statistic: float
    p_value: float
    alternative: str = "two-sided"
    df: float = float('nan')


@dataclass(frozen=True)
class ComparisonResult:
    """Both test results plus the sample descriptions they came from."""
    location_test: StatisticalTestResult
    shape_test: StatisticalTestResult
    baseline_cohort: str
    experimental_cohort: str
    n_baseline: int
    n_experimental: int
    mean_baseline: float
    mean_experimental: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_frame(self) -> pd.DataFrame:
        """Report table: one row per test."""
        rows = []
        for test in (self.location_test, self.shape_test):
            rows.append({
                'test': test.test_name,
                'statistic': test.statistic,
                'p_value': test.p_value,
                'alternative': test.alternative,
                'df': test.df,
                'baseline_cohort': self.baseline_cohort,
                'experimental_cohort': self.experimental_cohort,
                'n_baseline': self.n_baseline,
                'n_experimental': self.n_experimental,
                'mean_baseline': self.mean_baseline,
                'mean_experimental': self.mean_experimental
            })
        return pd.DataFrame(rows)


class DistributionComparator:
    """Compares a baseline residual vector with a cohort's deviation vector."""

    def __init__(self):
        self.error_handler = create_error_handler(COMPONENT)

    def _clean(self, values, cohort: str) -> np.ndarray:
        values = np.asarray(values, dtype=float).ravel()
        finite = values[np.isfinite(values)]
        if len(finite) < len(values):
            logger.warning(f"Dropping {len(values) - len(finite)} non-finite value(s) from '{cohort}'")
        if len(finite) < 2:
            self.error_handler.raise_error(InsufficientDataError(
                f"Cohort '{cohort}' has {len(finite)} finite value(s); both tests need at least 2",
                component=COMPONENT,
                context={"cohort": cohort, "n_values": len(finite)}
            ))
        return finite

    def compare(
        self,
        residuals,
        deviations,
        baseline_cohort: str = "control",
        experimental_cohort: str = "experimental"
    ) -> ComparisonResult:
        """Run both two-sided tests.

        Args:
            residuals: In-sample residuals of the baseline model
            deviations: Deviations of the experimental cohort from that model
            baseline_cohort: Name of the residuals' cohort
            experimental_cohort: Name of the deviations' cohort

        Raises:
            InsufficientDataError: Either vector has fewer than two finite values
        """
        a = self._clean(residuals, baseline_cohort)
        b = self._clean(deviations, experimental_cohort)

        t_result = stats.ttest_ind(a, b, equal_var=False)
        ks_result = stats.ks_2samp(a, b, alternative='two-sided')
        t_statistic, t_p_value = float(t_result.statistic), float(t_result.pvalue)

        if np.ptp(a) == 0 and np.ptp(b) == 0:
            if a[0] == b[0]:
                t_statistic, t_p_value = 0.0, 1.0
            self.error_handler.log_warning(
                f"{baseline_cohort} and {experimental_cohort} are both constant "
                f"({a[0]:.4g} and {b[0]:.4g}); location test reported as "
                f"t = {t_statistic}, p = {t_p_value}",
                "DEGENERATE_TEST",
                {"baseline_value": float(a[0]), "experimental_value": float(b[0])}
            )

        result = ComparisonResult(
            location_test=StatisticalTestResult(
                test_name=LOCATION_TEST,
                statistic=t_statistic,
                p_value=t_p_value,
                df=float(getattr(t_result, 'df', np.nan))
            ),
            shape_test=StatisticalTestResult(
                test_name=SHAPE_TEST,
                statistic=float(ks_result.statistic),
                p_value=float(ks_result.pvalue)
            ),
            baseline_cohort=baseline_cohort,
            experimental_cohort=experimental_cohort,
            n_baseline=len(a),
            n_experimental=len(b),
            mean_baseline=float(a.mean()),
            mean_experimental=float(b.mean())
        )
        logger.info(
            f"{baseline_cohort} vs {experimental_cohort}: "
            f"t = {result.location_test.statistic:.3f} (p = {result.location_test.p_value:.4g}), "
            f"D = {result.shape_test.statistic:.3f} (p = {result.shape_test.p_value:.4g})"
        )
        return result

    @staticmethod
    def write_report(result: ComparisonResult, path: Path) -> Path:
        return write_table(result.to_frame(), Path(path))
