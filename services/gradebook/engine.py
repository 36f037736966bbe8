"""
services/gradebook/engine.py

Grade computation engine.

Pure functions over plain data: no database, no settings, no clock.
The pipeline has three stages, each usable on its own:

1) aggregate_component  - raw/max totals and percent for one component
2) blend_components     - weighted blend into the initial grade
3) transmute            - optional exact-key transmutation lookup

compute_student_grade() chains them for one student and returns a ComputedGrade
whose breakdown is stored verbatim for traceability.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from services.gradebook.errors import (
    GradebookValidationError,
    MissingTransmutationRowError,
    MissingTransmutationTableError,
    WeightValidationError,
)

DEFAULT_WEIGHT_TOLERANCE = 0.01


# =========================================================
# Enumerations
# =========================================================

class ScoreStatus(str, Enum):
    PRESENT = "present"
    MISSING = "missing"
    ABSENT = "absent"
    EXCUSED = "excused"


class WeightPolicy(str, Enum):
    STRICT = "strict"
    NORMALIZE = "normalize"


class RoundingMode(str, Enum):
    FLOOR = "floor"
    ROUND = "round"
    CEIL = "ceil"


class SchemeType(str, Enum):
    DEPED_K12 = "deped_k12"
    CHED_HEI = "ched_hei"
    CHED_SIMPLE = "ched_simple"

    @property
    def requires_transmutation(self) -> bool:
        return self in (SchemeType.DEPED_K12, SchemeType.CHED_HEI)

    @property
    def display_name(self) -> str:
        return {
            SchemeType.DEPED_K12: "DepEd K-12",
            SchemeType.CHED_HEI: "CHED",
            SchemeType.CHED_SIMPLE: "CHED (simple)",
        }[self]

    @property
    def default_rounding_mode(self) -> RoundingMode:
        return RoundingMode.FLOOR if self is SchemeType.DEPED_K12 else RoundingMode.ROUND


# =========================================================
# Inputs / outputs
# =========================================================

@dataclass(frozen=True)
class GradedScore:
    points: float
    max_points: float
    status: ScoreStatus = ScoreStatus.PRESENT
    graded_item_id: Optional[Any] = None


@dataclass(frozen=True)
class ComponentWeight:
    component_id: Any
    weight_percent: float
    code: Optional[str] = None
    label: Optional[str] = None


@dataclass(frozen=True)
class TransmutationRow:
    initial_grade: int
    transmuted_grade: float


@dataclass
class ComponentAggregate:
    component_id: Any
    raw_total: float = 0.0
    max_total: float = 0.0
    excluded_denominator_points: float = 0.0
    status_counts: Dict[str, int] = field(
        default_factory=lambda: {status.value: 0 for status in ScoreStatus}
    )

    @property
    def percent(self) -> float:
        return (self.raw_total / self.max_total) * 100 if self.max_total > 0 else 0.0


@dataclass
class BlendResult:
    initial_grade: float
    total_weight: float
    total_weighted_score: float
    components: List[Dict[str, Any]]


@dataclass
class ComputedGrade:
    student_id: Any
    initial_grade: float
    final_numeric_grade: float
    transmuted_grade: Optional[float]
    breakdown: Dict[str, Any]


# =========================================================
# Stage 1: per-component aggregation
# =========================================================

def aggregate_component(component_id: Any, scores: Iterable[GradedScore]) -> ComponentAggregate:
    """
    Sum one component's scores.

    - excused: left out of both totals (max_points kept only as
      excluded_denominator_points)
    - missing / absent: max_points counted, points forced to 0
    - present: points and max_points counted
    """
    agg = ComponentAggregate(component_id=component_id)
    for score in scores:
        status = ScoreStatus(score.status)
        agg.status_counts[status.value] += 1

        if status is ScoreStatus.EXCUSED:
            agg.excluded_denominator_points += score.max_points
            continue

        agg.max_total += score.max_points
        if status is ScoreStatus.PRESENT:
            agg.raw_total += score.points or 0
    return agg


# =========================================================
# Stage 2: weighted blend
# =========================================================

def validate_weights(
    weights: Sequence[ComponentWeight],
    weight_policy: WeightPolicy = WeightPolicy.STRICT,
    tolerance: float = DEFAULT_WEIGHT_TOLERANCE,
) -> float:
    """Return the total weight, raising under strict policy when it is not 100."""
    total_weight = sum(w.weight_percent for w in weights)
    if WeightPolicy(weight_policy) is WeightPolicy.STRICT and abs(total_weight - 100) > tolerance:
        raise WeightValidationError(total_weight, tolerance)
    return total_weight


def blend_components(
    aggregates: Mapping[Any, ComponentAggregate],
    weights: Sequence[ComponentWeight],
    weight_policy: WeightPolicy = WeightPolicy.STRICT,
    tolerance: float = DEFAULT_WEIGHT_TOLERANCE,
) -> BlendResult:
    validate_weights(weights, weight_policy, tolerance)

    components: List[Dict[str, Any]] = []
    total_weighted_score = 0.0
    total_weight = 0.0

    weighted_ids = set()
    for weight in weights:
        weighted_ids.add(weight.component_id)
        agg = aggregates.get(weight.component_id) or ComponentAggregate(component_id=weight.component_id)
        percent = agg.percent
        weighted_score = percent * weight.weight_percent / 100

        total_weighted_score += weighted_score
        total_weight += weight.weight_percent
        components.append(_component_entry(agg, weight.code, weight.label, weight.weight_percent, weighted_score))

    # scored but unweighted components are reported, never blended
    for component_id, agg in aggregates.items():
        if component_id not in weighted_ids:
            components.append(_component_entry(agg, None, None, 0.0, 0.0))

    initial_grade = (total_weighted_score / total_weight) * 100 if total_weight > 0 else 0.0
    return BlendResult(
        initial_grade=initial_grade,
        total_weight=total_weight,
        total_weighted_score=total_weighted_score,
        components=components,
    )


def _component_entry(
    agg: ComponentAggregate,
    code: Optional[str],
    label: Optional[str],
    weight_percent: float,
    weighted_score: float,
) -> Dict[str, Any]:
    return {
        "component_id": agg.component_id,
        "component_code": code,
        "component_label": label,
        "raw_total": agg.raw_total,
        "max_total": agg.max_total,
        "percent": agg.percent,
        "weight_percent": weight_percent,
        "weighted_score": weighted_score,
        "status_counts": dict(agg.status_counts),
        "excluded_denominator_points": agg.excluded_denominator_points,
    }


# =========================================================
# Stage 3: transmutation
# =========================================================

def initial_grade_key(initial_grade: float, rounding_mode: RoundingMode = RoundingMode.FLOOR) -> int:
    """
    Key used to look an initial grade up in a transmutation table.

    The grade is rounded to 9 decimals before floor, ceil or half-up is applied,
    so float noise such as 89.99999999999999 keys as 90 under floor while
    89.999999998 still keys as 89.
    """
    value = round(initial_grade, 9)
    mode = RoundingMode(rounding_mode)
    if mode is RoundingMode.FLOOR:
        return math.floor(value)
    if mode is RoundingMode.CEIL:
        return math.ceil(value)
    # half-up, 89.5 -> 90
    return math.floor(value + 0.5)


def build_transmutation_lookup(rows: Iterable[TransmutationRow]) -> Dict[int, float]:
    lookup: Dict[int, float] = {}
    duplicates = set()
    for row in rows:
        key = int(row.initial_grade)
        if key in lookup:
            duplicates.add(key)
        lookup[key] = row.transmuted_grade
    if duplicates:
        raise GradebookValidationError(
            f"Duplicate initial_grade values found: {', '.join(str(d) for d in sorted(duplicates))}. "
            "Each initial_grade must be unique per table.",
            details={"duplicates": sorted(duplicates)},
        )
    return lookup


def transmute(
    initial_grade: float,
    lookup: Mapping[int, float],
    rounding_mode: RoundingMode = RoundingMode.FLOOR,
) -> tuple[int, float]:
    """Exact-key lookup; a gap in the table is an error, never interpolated."""
    key = initial_grade_key(initial_grade, rounding_mode)
    if key not in lookup:
        raise MissingTransmutationRowError(key, initial_grade)
    return key, lookup[key]


# =========================================================
# Full pipeline
# =========================================================

def compute_student_grade(
    student_id: Any,
    scores_by_component: Mapping[Any, Iterable[GradedScore]],
    weights: Sequence[ComponentWeight],
    weight_policy: WeightPolicy = WeightPolicy.STRICT,
    rounding_mode: RoundingMode = RoundingMode.FLOOR,
    transmutation_rows: Optional[Iterable[TransmutationRow]] = None,
    context: Optional[Mapping[str, Any]] = None,
    tolerance: float = DEFAULT_WEIGHT_TOLERANCE,
    transmutation_lookup: Optional[Mapping[int, float]] = None,
) -> ComputedGrade:
    """
    Compute one student's grade.

    transmutation_rows (or a prebuilt transmutation_lookup) switches stage 3 on;
    without either, final_numeric_grade is the initial grade and transmuted_grade
    is None. context is copied into the breakdown untouched.
    """
    weight_policy = WeightPolicy(weight_policy)
    rounding_mode = RoundingMode(rounding_mode)

    aggregates = {
        component_id: aggregate_component(component_id, scores)
        for component_id, scores in scores_by_component.items()
    }
    blend = blend_components(aggregates, weights, weight_policy, tolerance)
    initial_grade = blend.initial_grade

    if transmutation_lookup is None and transmutation_rows is not None:
        transmutation_lookup = build_transmutation_lookup(transmutation_rows)
    if transmutation_lookup is not None and not transmutation_lookup:
        raise MissingTransmutationTableError("Transmutation table has no rows")

    key: Optional[int] = None
    transmuted_grade: Optional[float] = None
    final_numeric_grade = initial_grade
    if transmutation_lookup is not None:
        key, transmuted_grade = transmute(initial_grade, transmutation_lookup, rounding_mode)
        final_numeric_grade = transmuted_grade

    breakdown: Dict[str, Any] = dict(context or {})
    breakdown.update({
        "components": blend.components,
        "initial_grade_raw": initial_grade,
        "initial_grade": initial_grade,
        "initial_grade_key": key,
        "transmuted_grade": transmuted_grade,
        "rounding_mode": rounding_mode.value,
        "weight_policy": weight_policy.value,
        "total_weight": blend.total_weight,
        "total_weighted_score": blend.total_weighted_score,
    })

    return ComputedGrade(
        student_id=student_id,
        initial_grade=initial_grade,
        final_numeric_grade=final_numeric_grade,
        transmuted_grade=transmuted_grade,
        breakdown=breakdown,
    )
