"""Cohort eligibility: age at index and demographic completeness rules."""

from dataclasses import dataclass, field
from typing import Any, Callable

import polars as pl

from curation.cohort.index_dates import IndexDateSpec, resolve_index_dates
from curation.common.constants import Column
from curation.common.frames import require_columns
from curation.common.models import CohortTable, Demographics, as_demographics
from curation.errors import ConfigurationError
from tabular.engine.polars.functions.datetime import years_between
from tabular.engine.polars.functions.string import is_known
from tabular.logger.logger import log_info


@dataclass(frozen=True)
class EligibilityCriteria:
    """Inclusion criteria. Unset age bounds are not applied."""

    min_age: float | None = None
    max_age: float | None = None
    require_known_sex: bool = True
    require_known_ethnicity: bool = False
    require_known_lsoa: bool = False

    def __post_init__(self):
        for name in ("min_age", "max_age"):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise ConfigurationError(f"{name} must be non-negative, got {value}")
        if self.min_age is not None and self.max_age is not None and self.min_age > self.max_age:
            raise ConfigurationError(f"min_age {self.min_age} is greater than max_age {self.max_age}")


@dataclass
class EligibilityRule:
    """An eligibility rule with name and check expression. A failing check excludes the patient."""

    name: str
    check: Callable[[pl.LazyFrame], pl.Expr]
    description: str
    required_columns: tuple[str, ...] = ()


def _age_at_least(min_age: float) -> Callable[[pl.LazyFrame], pl.Expr]:
    return lambda _: (pl.col(Column.AGE_AT_INDEX) >= min_age).fill_null(False)


def _age_at_most(max_age: float) -> Callable[[pl.LazyFrame], pl.Expr]:
    return lambda _: (pl.col(Column.AGE_AT_INDEX) <= max_age).fill_null(False)


def eligibility_rules(criteria: EligibilityCriteria) -> list[EligibilityRule]:
    """Rules enabled by `criteria`. Rules are independent; their order does not matter."""
    rules = []
    if criteria.min_age is not None:
        rules.append(
            EligibilityRule(
                name="min_age",
                check=_age_at_least(criteria.min_age),
                description=f"Age at index must be at least {criteria.min_age}",
            )
        )
    if criteria.max_age is not None:
        rules.append(
            EligibilityRule(
                name="max_age",
                check=_age_at_most(criteria.max_age),
                description=f"Age at index must be at most {criteria.max_age}",
            )
        )
    if criteria.require_known_sex:
        rules.append(
            EligibilityRule(
                name="sex_known",
                check=lambda _: is_known(pl.col(Column.SEX_CODE)),
                description="Sex code must be present",
                required_columns=(Column.SEX_CODE,),
            )
        )
    if criteria.require_known_ethnicity:
        rules.append(
            EligibilityRule(
                name="ethnicity_known",
                check=lambda _: is_known(pl.col(Column.ETHNICITY_CODE)),
                description="Ethnicity code must be present",
                required_columns=(Column.ETHNICITY_CODE,),
            )
        )
    if criteria.require_known_lsoa:
        rules.append(
            EligibilityRule(
                name="lsoa_known",
                check=lambda _: is_known(pl.col(Column.LSOA_CODE)),
                description="LSOA code must be present",
                required_columns=(Column.LSOA_CODE,),
            )
        )
    return rules


def apply_eligibility(cohort_lf: pl.LazyFrame, rules: list[EligibilityRule]) -> pl.LazyFrame:
    """Populate exclusion_reasons with the names of the failed rules."""
    if not rules:
        return cohort_lf.with_columns(
            pl.concat_list([pl.lit(None, dtype=pl.String)])
            .list.drop_nulls()
            .alias(Column.EXCLUSION_REASONS)
        )

    reason_exprs = [
        pl.when(~rule.check(cohort_lf)).then(pl.lit(rule.name)).otherwise(pl.lit(None))
        for rule in rules
    ]
    return cohort_lf.with_columns(
        pl.concat_list(reason_exprs)
        .list.eval(pl.element().drop_nulls())
        .alias(Column.EXCLUSION_REASONS)
    )


@dataclass(frozen=True)
class ExclusionReport:
    """
    Audit of the eligibility step.

    `excluded_by_rule` counts, per rule, every patient failing it, so a patient
    failing two rules is counted under both while `excluded` counts it once.
    """

    total: int
    included: int
    excluded: int
    excluded_by_rule: dict[str, int]
    excluded_patients: pl.DataFrame = field(repr=False, compare=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_patients": self.total,
            "included_patients": self.included,
            "excluded_patients": self.excluded,
            "inclusion_rate": self.included / self.total if self.total > 0 else 0.0,
            "excluded_by_rule": dict(self.excluded_by_rule),
        }


def _exclusion_report(evaluated: pl.DataFrame, rules: list[EligibilityRule]) -> ExclusionReport:
    total = evaluated.height
    excluded_patients = evaluated.filter(pl.col(Column.EXCLUSION_REASONS).list.len() > 0).select(
        Column.PATIENT_ID, Column.EXCLUSION_REASONS
    )
    counts = (
        excluded_patients.select(pl.col(Column.EXCLUSION_REASONS).explode().alias("rule"))
        .group_by("rule")
        .agg(pl.len().alias("count"))
    )
    by_rule = dict(zip(counts["rule"].to_list(), counts["count"].to_list()))
    return ExclusionReport(
        total=total,
        included=total - excluded_patients.height,
        excluded=excluded_patients.height,
        excluded_by_rule={rule.name: int(by_rule.get(rule.name, 0)) for rule in rules},
        excluded_patients=excluded_patients,
    )


def build_cohort(
    demographics: Demographics | pl.LazyFrame | pl.DataFrame,
    index_date_spec: IndexDateSpec,
    criteria: EligibilityCriteria | None = None,
) -> tuple[CohortTable, ExclusionReport]:
    """
    Compute age at index and keep the patients passing every eligibility rule.

    `age_at_index` is `(index_date - date_of_birth) / 365.25` in years. A null
    date of birth or index date gives a null age, which fails any age rule.
    "Known" means present and not blank.

    Args:
        demographics: One row per patient with patient_id and date_of_birth, plus
            sex_code / ethnicity_code / lsoa_code for the rules that need them.
        index_date_spec: See `resolve_index_dates`.
        criteria: Eligibility criteria. Defaults to requiring a known sex only.

    Returns:
        The eligible cohort and the exclusion report.

    Raises:
        ConfigurationError: missing columns, inconsistent bounds or index date cardinality.
    """
    criteria = criteria or EligibilityCriteria()
    rules = eligibility_rules(criteria)
    demographics_lf = as_demographics(demographics)
    require_columns(
        demographics_lf,
        [column for rule in rules for column in rule.required_columns],
        "build_cohort",
    )

    index_dates = resolve_index_dates(demographics_lf, index_date_spec)
    if Column.INDEX_DATE in demographics_lf.collect_schema():
        demographics_lf = demographics_lf.drop(Column.INDEX_DATE)

    cohort_lf = demographics_lf.join(index_dates, on=Column.PATIENT_ID, how="left").with_columns(
        years_between(pl.col(Column.DATE_OF_BIRTH), pl.col(Column.INDEX_DATE)).alias(Column.AGE_AT_INDEX)
    )
    evaluated = apply_eligibility(cohort_lf, rules).collect()
    report = _exclusion_report(evaluated, rules)

    log_info(
        f"cohort: {report.included} of {report.total} patients eligible; "
        + ", ".join(f"{name}={count}" for name, count in report.excluded_by_rule.items())
    )

    cohort = (
        evaluated.filter(pl.col(Column.EXCLUSION_REASONS).list.len() == 0)
        .drop(Column.EXCLUSION_REASONS)
        .sort(Column.PATIENT_ID)
        .lazy()
    )
    return CohortTable.from_df(cohort), report
