"""
Gradebook error taxonomy.

The three engine errors (weights, missing row, missing table) are terminal for a
compute run: they are never retried or defaulted.
"""

from typing import Any, Dict, Optional


class GradebookError(Exception):
    """Base class for every gradebook failure."""

    error_code = "GRADEBOOK_ERROR"
    status_code = 400

    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code
        self.details = details or {}


class WeightValidationError(GradebookError):
    """Raised under the strict policy when weights do not sum to 100."""

    error_code = "WEIGHT_VALIDATION"
    status_code = 422

    def __init__(self, total_weight: float, tolerance: float = 0.01):
        super().__init__(
            f"Component weights sum to {total_weight:g}% but must equal 100% (strict mode)",
            details={"total_weight": total_weight, "tolerance": tolerance},
        )
        self.total_weight = total_weight


class MissingTransmutationRowError(GradebookError):
    """Raised when the transmutation table has no row for the computed key."""

    error_code = "MISSING_TRANSMUTATION_ROW"
    status_code = 422

    def __init__(self, initial_grade_key: int, initial_grade: float):
        super().__init__(
            f"Transmutation row not found for initial_grade={initial_grade:.2f} "
            f"(key {initial_grade_key})",
            details={"initial_grade_key": initial_grade_key, "initial_grade": initial_grade},
        )
        self.initial_grade_key = initial_grade_key


class MissingTransmutationTableError(GradebookError):
    """Raised when a scheme needs a transmutation table and none is usable."""

    error_code = "MISSING_TRANSMUTATION_TABLE"
    status_code = 400


class GradebookValidationError(GradebookError):
    """Raised when an input payload is invalid."""

    error_code = "VALIDATION_ERROR"
    status_code = 400


class GradebookNotFoundError(GradebookError):
    error_code = "NOT_FOUND"
    status_code = 404


class ComputeRunStateError(GradebookError):
    """Raised when a compute run is not in the state an operation needs."""

    error_code = "INVALID_RUN_STATE"
    status_code = 409
