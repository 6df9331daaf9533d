"""Person aggregation, base photo selection and eligibility decisions."""

from burstface.analysis.aggregate import aggregate_persons, analyze_person, overall_improvement
from burstface.analysis.base_photo import select_base_photo
from burstface.analysis.eligibility import EligibilityEvaluator

__all__ = [
    "EligibilityEvaluator",
    "aggregate_persons",
    "analyze_person",
    "overall_improvement",
    "select_base_photo",
]
