"""Column names and enumerations shared by the curation engines."""

from enum import StrEnum


class Column:
    """Canonical column names of long format, event and cohort tables."""

    PATIENT_ID = "patient_id"
    SOURCE_ID = "source_id"
    PRIORITY = "priority"
    EVENT_DATE = "event_date"
    INDEX_DATE = "index_date"
    DAYS_FROM_INDEX = "days_from_index"

    CODE = "code"
    NAME = "name"
    DESCRIPTION = "description"
    TERMINOLOGY = "terminology"

    DATE_OF_BIRTH = "date_of_birth"
    SEX_CODE = "sex_code"
    ETHNICITY_CODE = "ethnicity_code"
    LSOA_CODE = "lsoa_code"
    AGE_AT_INDEX = "age_at_index"
    EXCLUSION_REASONS = "exclusion_reasons"


# Columns of a long format table that are not value fields.
LONG_FORMAT_METADATA_COLUMNS = (
    Column.PATIENT_ID,
    Column.SOURCE_ID,
    Column.PRIORITY,
    Column.EVENT_DATE,
)

LOOKUP_COLUMNS = (
    Column.CODE,
    Column.NAME,
    Column.DESCRIPTION,
    Column.TERMINOLOGY,
)


class Direction(StrEnum):
    """Side of the index date a window looks at."""

    BEFORE = "before"
    AFTER = "after"


class SelectionMethod(StrEnum):
    """Which event date represents a patient: the earliest or the latest."""

    MIN = "min"
    MAX = "max"


class DateColumns(StrEnum):
    """Which event dates to report next to a name flag."""

    NONE = "none"
    EARLIEST = "earliest"
    LATEST = "latest"
    BOTH = "both"
