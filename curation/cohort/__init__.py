"""Cohort construction: index dates, age at index and eligibility."""

from .demographics import combine_demographics
from .eligibility import (
    EligibilityCriteria,
    EligibilityRule,
    ExclusionReport,
    apply_eligibility,
    build_cohort,
    eligibility_rules,
)
from .index_dates import resolve_index_dates, to_index_date

__all__ = [
    "EligibilityCriteria",
    "EligibilityRule",
    "ExclusionReport",
    "apply_eligibility",
    "build_cohort",
    "combine_demographics",
    "eligibility_rules",
    "resolve_index_dates",
    "to_index_date",
]
