"""Shared constants for the curation pipeline."""

from enum import StrEnum


class Schema(StrEnum):
    SOURCE = "source"
    CURATED = "curated"
    FEATURES = "features"
