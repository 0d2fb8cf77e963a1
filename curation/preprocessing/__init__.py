"""Code matching and preprocessing steps that prepare assets for feature generation."""

from .lookup import attach_names, codes_for_name, lookup_names, validate_lookup
from .steps import (
    CodeMatchStep,
    DataTransformationStep,
    EventFlagStep,
    JoinType,
    PreprocessingStep,
    TransformType,
    ValidationAction,
    ValueValidationStep,
    apply_preprocessing,
    apply_step,
)

__all__ = [
    "CodeMatchStep",
    "DataTransformationStep",
    "EventFlagStep",
    "JoinType",
    "PreprocessingStep",
    "TransformType",
    "ValidationAction",
    "ValueValidationStep",
    "apply_preprocessing",
    "apply_step",
    "attach_names",
    "codes_for_name",
    "lookup_names",
    "validate_lookup",
]
