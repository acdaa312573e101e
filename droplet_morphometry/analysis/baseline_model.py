"""
Baseline (Control) Scaling Model

Fits mean droplet diameter as a smooth function of natural-log total droplet
area on control specimens:

    feret_diameter_mean ~ s(ln(area_sum))

The smooth term is a penalised cubic smoothing spline whose smoothing
parameter is chosen by generalised cross-validation. Inside the fitted
log-area range predictions come straight from the spline; outside it they
continue linearly from the boundary value and slope, the natural-spline
convention. Extrapolated predictions carry no modelled uncertainty guarantee.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

import numpy as np
import pandas as pd
from scipy.interpolate import BSpline, make_smoothing_spline

from .droplet_schema import AREA_SUM_COLUMN, FILE_NAME_COLUMN, mean_column, require_columns
from .error_handling import InsufficientDataError, create_error_handler

logger = logging.getLogger(__name__)

COMPONENT = "BaselineModelFitter"
SMOOTHING_METHOD = "cubic smoothing spline on ln(area_sum), GCV-selected penalty"
DEFAULT_RESPONSE = mean_column('feret_diameter')

# make_smoothing_spline needs at least this many distinct abscissae
MIN_DISTINCT_AREAS = 5


@dataclass(frozen=True)
class BaselineModel:
    """Fitted control relationship; read-only once built."""
    spline: BSpline
    log_area_range: Tuple[float, float]
    boundary_values: Tuple[float, float]
    boundary_slopes: Tuple[float, float]
    residuals: np.ndarray
    fitted_values: np.ndarray
    area_sums: np.ndarray
    specimen_names: Tuple[str, ...]
    cohort: str = "control"
    response_column: str = DEFAULT_RESPONSE
    predictor_column: str = AREA_SUM_COLUMN
    r_squared: float = float('nan')
    excluded: Dict[str, str] = field(default_factory=dict)

    @property
    def n_specimens(self) -> int:
        return len(self.residuals)

    @property
    def area_range(self) -> Tuple[float, float]:
        return float(np.exp(self.log_area_range[0])), float(np.exp(self.log_area_range[1]))

    def _log_area(self, area_sum) -> np.ndarray:
        area = np.atleast_1d(np.asarray(area_sum, dtype=float))
        log_area = np.full(area.shape, np.nan)
        valid = np.isfinite(area) & (area > 0)
        log_area[valid] = np.log(area[valid])
        return log_area

    def predict(self, area_sum) -> np.ndarray:
        """Expected mean Feret diameter at each ``area_sum`` (NaN for non-positive area)."""
        log_area = self._log_area(area_sum)
        lo, hi = self.log_area_range
        prediction = np.full(log_area.shape, np.nan)

        finite = np.isfinite(log_area)
        inside = finite & (log_area >= lo) & (log_area <= hi)
        below = finite & (log_area < lo)
        above = finite & (log_area > hi)

        prediction[inside] = self.spline(log_area[inside])
        prediction[below] = self.boundary_values[0] + self.boundary_slopes[0] * (log_area[below] - lo)
        prediction[above] = self.boundary_values[1] + self.boundary_slopes[1] * (log_area[above] - hi)
        return prediction

    def is_extrapolated(self, area_sum) -> np.ndarray:
        log_area = self._log_area(area_sum)
        lo, hi = self.log_area_range
        return np.isfinite(log_area) & ((log_area < lo) | (log_area > hi))

    def residual_table(self) -> pd.DataFrame:
        return pd.DataFrame({
            FILE_NAME_COLUMN: list(self.specimen_names),
            self.predictor_column: self.area_sums,
            'observed': self.fitted_values + self.residuals,
            'fitted': self.fitted_values,
            'residual': self.residuals
        })

    def summary(self) -> Dict[str, Any]:
        return {
            'cohort': self.cohort,
            'formula': f"{self.response_column} ~ s(ln({self.predictor_column}))",
            'method': SMOOTHING_METHOD,
            'n_specimens': self.n_specimens,
            'n_excluded': len(self.excluded),
            'area_range': list(self.area_range),
            'r_squared': self.r_squared,
            'residual_std': float(np.std(self.residuals, ddof=1)) if self.n_specimens > 1 else float('nan')
        }


def _readonly(values: np.ndarray) -> np.ndarray:
    values = np.array(values, dtype=float)
    values.setflags(write=False)
    return values


def usable_rows(
    summary: pd.DataFrame,
    response_column: str,
    predictor_column: str
) -> Tuple[pd.DataFrame, Dict[str, str]]:
    """Rows that can enter the log-area model, and the reason each other row cannot."""
    area = pd.to_numeric(summary[predictor_column], errors='coerce')
    response = pd.to_numeric(summary[response_column], errors='coerce')
    names = (summary[FILE_NAME_COLUMN].astype(str) if FILE_NAME_COLUMN in summary.columns
             else pd.Series([str(i) for i in summary.index], index=summary.index))

    reasons = pd.Series('', index=summary.index)
    reasons[~(area > 0)] = f"missing or non-positive {predictor_column}"
    reasons[(reasons == '') & response.isna()] = f"missing {response_column}"

    keep = reasons == ''
    usable = pd.DataFrame({
        FILE_NAME_COLUMN: names[keep],
        predictor_column: area[keep].astype(float),
        response_column: response[keep].astype(float)
    })
    excluded = dict(zip(names[~keep], reasons[~keep]))
    return usable.reset_index(drop=True), excluded


class BaselineModelFitter:
    """Fits the control baseline model from a summary-statistics table."""

    def __init__(
        self,
        min_specimens: int = 10,
        response_column: str = DEFAULT_RESPONSE,
        predictor_column: str = AREA_SUM_COLUMN
    ):
        self.min_specimens = max(int(min_specimens), MIN_DISTINCT_AREAS)
        self.response_column = response_column
        self.predictor_column = predictor_column
        self.error_handler = create_error_handler(COMPONENT)

    def fit(self, summary: pd.DataFrame, cohort: str = "control",
            lam: Optional[float] = None) -> BaselineModel:
        """Fit the baseline model.

        Args:
            summary: Summary-statistics table of control specimens only
            cohort: Cohort name used in logs and errors
            lam: Fixed smoothing penalty; None selects it by GCV

        Returns:
            Immutable BaselineModel

        Raises:
            SchemaError: Predictor or response column missing
            InsufficientDataError: Fewer usable specimens than ``min_specimens``
                or fewer than five distinct area values
        """
        require_columns(summary, [self.predictor_column, self.response_column],
                        f"Summary table of cohort '{cohort}'", COMPONENT)

        data, excluded = usable_rows(summary, self.response_column, self.predictor_column)
        for name, reason in excluded.items():
            self.error_handler.log_warning(
                f"Excluding '{name}' from the {cohort} model: {reason}",
                "EXCLUDED",
                {"cohort": cohort, "file_name": name, "reason": reason}
            )

        n_distinct = data[self.predictor_column].nunique()
        if len(data) < self.min_specimens or n_distinct < MIN_DISTINCT_AREAS:
            self.error_handler.raise_error(InsufficientDataError(
                f"Cohort '{cohort}' has {len(data)} usable specimen(s) "
                f"({n_distinct} distinct areas); at least {self.min_specimens} specimens "
                f"and {MIN_DISTINCT_AREAS} distinct areas are needed for the smooth term",
                component=COMPONENT,
                context={"cohort": cohort, "n_usable": len(data),
                         "n_distinct": int(n_distinct), "excluded": excluded},
                recovery_suggestion="Add control specimens or lower modeling.min_specimens"
            ))

        log_area = np.log(data[self.predictor_column].to_numpy())
        observed = data[self.response_column].to_numpy()

        # Tied areas enter once, weighted by their multiplicity.
        unique_x, inverse, counts = np.unique(log_area, return_inverse=True, return_counts=True)
        mean_y = np.bincount(inverse, weights=observed) / counts
        spline = make_smoothing_spline(unique_x, mean_y, w=counts.astype(float), lam=lam)

        lo, hi = float(unique_x[0]), float(unique_x[-1])
        slope = spline.derivative()
        fitted = spline(log_area)
        residuals = observed - fitted

        ss_tot = float(np.sum((observed - observed.mean()) ** 2))
        r_squared = 1.0 - float(np.sum(residuals ** 2)) / ss_tot if ss_tot > 0 else float('nan')

        model = BaselineModel(
            spline=spline,
            log_area_range=(lo, hi),
            boundary_values=(float(spline(lo)), float(spline(hi))),
            boundary_slopes=(float(slope(lo)), float(slope(hi))),
            residuals=_readonly(residuals),
            fitted_values=_readonly(fitted),
            area_sums=_readonly(data[self.predictor_column].to_numpy()),
            specimen_names=tuple(data[FILE_NAME_COLUMN]),
            cohort=cohort,
            response_column=self.response_column,
            predictor_column=self.predictor_column,
            r_squared=r_squared,
            excluded=excluded
        )
        logger.info(
            f"Fitted {cohort} baseline on {model.n_specimens} specimens "
            f"(R² = {r_squared:.3f}, area range {model.area_range[0]:.4g}-{model.area_range[1]:.4g})"
        )
        return model
