"""
Unified Error Handling for the Droplet Morphometry Pipeline

Provides the error taxonomy shared by every stage and a small ledger that
records per-specimen failures so a consolidation run can skip a specimen,
keep going, and still report exactly what was excluded and why.
"""

import logging
from typing import Dict, Any, Optional, List
from dataclasses import dataclass, field
from enum import Enum


class ErrorSeverity(Enum):
    """Error severity levels."""
    CRITICAL = "critical"       # Stage-stopping errors
    WARNING = "warning"         # Specimen skipped, run continues
    INFO = "info"


@dataclass
class PipelineError:
    """Structured error information."""
    message: str
    severity: ErrorSeverity
    component: str
    error_code: str
    context: Dict[str, Any] = field(default_factory=dict)
    recovery_suggestion: Optional[str] = None


class DropletAnalysisError(Exception):
    """Base exception for the droplet morphometry pipeline."""

    error_code = "DROPLET_ERROR"

    def __init__(
        self,
        message: str,
        component: str = "pipeline",
        context: Optional[Dict[str, Any]] = None,
        recovery_suggestion: Optional[str] = None,
        severity: ErrorSeverity = ErrorSeverity.CRITICAL
    ):
        self.pipeline_error = PipelineError(
            message=message,
            severity=severity,
            component=component,
            error_code=self.error_code,
            context=context or {},
            recovery_suggestion=recovery_suggestion
        )
        super().__init__(message)


class SchemaError(DropletAnalysisError):
    """A required column is missing or a key column breaks its invariant."""
    error_code = "SCHEMA"


class EmptyJoinError(DropletAnalysisError):
    """No droplet is present in both measurement sources."""
    error_code = "EMPTY_JOIN"


class NoDataFoundError(DropletAnalysisError):
    """An entire cohort yielded zero usable specimens."""
    error_code = "NO_DATA"


class InsufficientDataError(DropletAnalysisError):
    """Too few specimens to fit or compare."""
    error_code = "INSUFFICIENT_DATA"


class ErrorHandler:
    """Per-component record of failures and warnings."""

    def __init__(self, component_name: str):
        """Initialize error handler for a specific component."""
        self.component_name = component_name
        self.logger = logging.getLogger(f'ErrorHandler.{component_name}')
        self.error_history: List[PipelineError] = []

    def record_skip(self, specimen_id: str, error: DropletAnalysisError) -> None:
        """Record a specimen that was excluded because of ``error``."""
        record = PipelineError(
            message=str(error),
            severity=ErrorSeverity.WARNING,
            component=self.component_name,
            error_code=error.pipeline_error.error_code,
            context={**error.pipeline_error.context, "specimen_id": specimen_id},
            recovery_suggestion=error.pipeline_error.recovery_suggestion
        )
        self.error_history.append(record)
        self.logger.warning(
            f"[{record.error_code}] Skipping specimen '{specimen_id}': {record.message}"
        )
        if record.recovery_suggestion:
            self.logger.info(f"Recovery suggestion: {record.recovery_suggestion}")

    def raise_error(self, error: DropletAnalysisError) -> None:
        """Log a fatal error and raise it."""
        self.error_history.append(error.pipeline_error)
        self.logger.error(f"[{error.pipeline_error.error_code}] {error}")
        raise error

    def log_warning(
        self,
        message: str,
        error_code: str,
        context: Dict[str, Any],
        recovery_suggestion: Optional[str] = None
    ) -> None:
        """Log warning with structured information."""
        warning = PipelineError(
            message=message,
            severity=ErrorSeverity.WARNING,
            component=self.component_name,
            error_code=error_code,
            context=context,
            recovery_suggestion=recovery_suggestion
        )
        self.error_history.append(warning)
        self.logger.warning(f"[{error_code}] {message}")

    @property
    def skipped_specimens(self) -> List[str]:
        return [
            e.context["specimen_id"] for e in self.error_history
            if e.severity == ErrorSeverity.WARNING and "specimen_id" in e.context
        ]

    def get_error_summary(self) -> Dict[str, Any]:
        """Get summary of all errors and warnings."""
        critical_errors = [e for e in self.error_history if e.severity == ErrorSeverity.CRITICAL]
        warnings = [e for e in self.error_history if e.severity == ErrorSeverity.WARNING]

        return {
            "component": self.component_name,
            "total_errors": len(critical_errors),
            "total_warnings": len(warnings),
            "critical_errors": [e.error_code for e in critical_errors],
            "warnings": [e.error_code for e in warnings],
            "skipped_specimens": {
                e.context["specimen_id"]: e.error_code
                for e in warnings if "specimen_id" in e.context
            },
            "last_error": critical_errors[-1].message if critical_errors else None
        }


def create_error_handler(component_name: str) -> ErrorHandler:
    """Factory function to create error handlers."""
    return ErrorHandler(component_name)
