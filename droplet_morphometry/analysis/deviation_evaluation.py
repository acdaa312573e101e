"""
Deviation of an experimental cohort from the control baseline.

deviation = observed mean Feret diameter - baseline prediction at the
specimen's total droplet area. Positive values mean larger droplets than a
control specimen of the same adipose area would have.
"""

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd

from .baseline_model import BaselineModel, usable_rows
from .droplet_schema import FILE_NAME_COLUMN, require_columns
from .error_handling import InsufficientDataError, create_error_handler

logger = logging.getLogger(__name__)

COMPONENT = "DeviationEvaluator"


@dataclass
class DeviationSet:
    """Per-specimen deviations for one cohort."""
    cohort: str
    table: pd.DataFrame

    @property
    def values(self) -> np.ndarray:
        return self.table['deviation'].to_numpy(dtype=float)

    @property
    def n_extrapolated(self) -> int:
        return int(self.table['extrapolated'].sum())

    def __len__(self) -> int:
        return len(self.table)


class DeviationEvaluator:
    """Applies a fitted baseline model to another cohort's summary table."""

    def __init__(self, model: BaselineModel):
        self.model = model
        self.error_handler = create_error_handler(COMPONENT)

    def evaluate(self, summary: pd.DataFrame, cohort: str = "experimental") -> DeviationSet:
        """Observed-minus-predicted deviation for every usable specimen.

        Specimens outside the control area range are still evaluated by
        extrapolation and flagged in the ``extrapolated`` column.

        Raises:
            SchemaError: Predictor or response column missing
            InsufficientDataError: No specimen has a usable area and response
        """
        response, predictor = self.model.response_column, self.model.predictor_column
        require_columns(summary, [predictor, response],
                        f"Summary table of cohort '{cohort}'", COMPONENT)

        data, excluded = usable_rows(summary, response, predictor)
        for name, reason in excluded.items():
            self.error_handler.log_warning(
                f"Excluding '{name}' from {cohort} deviations: {reason}",
                "EXCLUDED",
                {"cohort": cohort, "file_name": name, "reason": reason}
            )
        if data.empty:
            self.error_handler.raise_error(InsufficientDataError(
                f"Cohort '{cohort}' has no specimen with usable {predictor} and {response}",
                component=COMPONENT,
                context={"cohort": cohort, "excluded": excluded}
            ))

        predicted = self.model.predict(data[predictor].to_numpy())
        extrapolated = self.model.is_extrapolated(data[predictor].to_numpy())

        table = pd.DataFrame({
            FILE_NAME_COLUMN: data[FILE_NAME_COLUMN],
            predictor: data[predictor],
            'observed': data[response],
            'predicted': predicted,
            'deviation': data[response].to_numpy() - predicted,
            'extrapolated': extrapolated
        })

        if extrapolated.any():
            lo, hi = self.model.area_range
            names = table.loc[table['extrapolated'], FILE_NAME_COLUMN].tolist()
            self.error_handler.log_warning(
                f"{len(names)} {cohort} specimen(s) outside the {self.model.cohort} area range "
                f"[{lo:.4g}, {hi:.4g}], predictions extrapolated: {', '.join(names)}",
                "EXTRAPOLATED",
                {"cohort": cohort, "file_names": names, "area_range": (lo, hi)},
                recovery_suggestion="Treat deviations of flagged specimens with caution"
            )

        logger.info(f"Computed deviations for {len(table)} {cohort} specimen(s)")
        return DeviationSet(cohort=cohort, table=table)
