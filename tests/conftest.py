import contextlib
import os
import time
from datetime import date

import polars as pl
import pytest


def set_env() -> None:
    os.environ["PYARROW_IGNORE_TIMEZONE"] = "1"
    os.environ["TZ"] = "UTC"
    os.environ.setdefault("LOG_LEVEL", "WARN")
    with contextlib.suppress(AttributeError):
        time.tzset()


@pytest.fixture(autouse=True, scope="session")
def test_env() -> None:
    set_env()


@pytest.fixture
def index_dates() -> pl.DataFrame:
    return pl.DataFrame(
        {
            "patient_id": ["p1", "p2", "p3"],
            "index_date": [date(2024, 1, 1)] * 3,
        }
    )


@pytest.fixture
def code_lookup() -> pl.DataFrame:
    return pl.DataFrame(
        {
            "code": ["E11", "E11.9", "I63", "I64"],
            "name": ["Diabetes", "Diabetes", "Stroke", "Stroke"],
            "description": [
                "Type 2 diabetes mellitus",
                "Type 2 diabetes mellitus without complications",
                "Cerebral infarction",
                "Stroke, not specified",
            ],
            "terminology": ["ICD10"] * 4,
        }
    )


@pytest.fixture
def coded_events() -> pl.DataFrame:
    return pl.DataFrame(
        {
            "patient_id": ["p1", "p1", "p2", "p2", "p3"],
            "event_date": [
                date(2022, 3, 15),
                date(2024, 6, 1),
                date(2023, 11, 10),
                date(2023, 12, 1),
                date(2024, 1, 1),
            ],
            "code": ["E11", "I63", "I64", "E11.9", "I63"],
            "source_id": ["gp", "hes", "gp", "gp", "hes"],
        }
    )
