"""ETL pipeline orchestration helpers."""

from .pipeline import PipelineResult, run_assets, run_cohort, run_features, run_pipeline

__all__ = ["PipelineResult", "run_assets", "run_cohort", "run_features", "run_pipeline"]
