"""Shared test fixtures for the adagent test suite.

Provides:

* ``sample_rows``     -- a small, precisely-counted video_ad_performance dataset
* ``sample_records``  -- the same rows parsed into Record models
* ``campaign_db``     -- DuckDB file holding ``sample_rows`` plus an out-of-period row
* ``pipeline``        -- ChatPipeline backed by ``campaign_db``
* ``client``          -- FastAPI TestClient serving ``pipeline``

LLM calls are never made: tests patch ``call_llm`` with ``scripted_llm``.

Per-platform totals for 2025-10-01 (used throughout the assertions):

    YouTube  spend 1500  revenue 11000  ROAS 7  CTR 1.67
    TikTok   spend  800  revenue  2400  ROAS 3  CTR 2.0
    Meta     spend  700  revenue  1400  ROAS 2  CTR 1.0   (one all-null row)
"""

from __future__ import annotations

import tempfile
from datetime import date
from pathlib import Path
from typing import Any, Callable

import duckdb
import pytest
from fastapi.testclient import TestClient

from adagent.api.server import create_app
from adagent.config import PipelineConfig
from adagent.contracts import Record
from adagent.io.record_source import DuckDBRecordSource
from adagent.orchestrator.runtime import ChatPipeline

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

REPORT_MONTH = "2025-10-01"

_COLUMNS = (
    "report_month", "platform", "region", "age_group", "gender",
    "spend", "revenue", "impressions", "video_starts", "views_3s",
    "views_25", "views_50", "views_100", "clicks", "conversions",
)

_SAMPLE_ROWS: list[tuple] = [
    (REPORT_MONTH, "YouTube", "West", "25-34", "Female",
     1000.0, 8000.0, 100000, 50000, 40000, 30000, 20000, 10000, 2000, 100),
    (REPORT_MONTH, "YouTube", "East", "18-24", "Male",
     500.0, 3000.0, 50000, 20000, 15000, 10000, 8000, 5000, 500, 50),
    (REPORT_MONTH, "TikTok", "West", "18-24", "Female",
     800.0, 2400.0, 200000, 100000, 60000, 40000, 20000, 10000, 4000, 40),
    (REPORT_MONTH, "Meta", "South", "35-44", "Male",
     700.0, 1400.0, 70000, 30000, 20000, 15000, 10000, 6000, 700, 35),
    (REPORT_MONTH, "Meta", "East", "25-34", "Female",
     None, None, None, None, None, None, None, None, None, None),
]

_OTHER_PERIOD_ROW = (
    "2025-09-01", "YouTube", "West", "25-34", "Female",
    9999.0, 1.0, 1, 1, 1, 1, 1, 1, 1, 1,
)


def _make_db_path() -> Path:
    """Create a temporary file for DuckDB and remove it so DuckDB can own it."""
    with tempfile.NamedTemporaryFile(suffix=".duckdb", delete=False) as f:
        db_path = Path(f.name)
    db_path.unlink()  # DuckDB needs to create the file itself
    return db_path


def scripted_llm(
    generator: str | Exception = "",
    renderer: str | Exception = "Rendered answer.",
) -> Callable[..., str]:
    """Build a call_llm stand-in answering per role.

    Pass an exception instance to make that role fail. The returned callable
    records every call in ``.calls`` as (role, messages) and the remaining
    keyword arguments of each call in ``.kwargs``.
    """
    calls: list[tuple[str, list[dict[str, str]]]] = []
    call_kwargs: list[dict[str, Any]] = []

    def _call(messages, *, role="generator", **kwargs: Any) -> str:
        calls.append((role, messages))
        call_kwargs.append(kwargs)
        response = generator if role == "generator" else renderer
        if isinstance(response, Exception):
            raise response
        return response

    _call.calls = calls  # type: ignore[attr-defined]
    _call.kwargs = call_kwargs  # type: ignore[attr-defined]
    return _call


# ---------------------------------------------------------------------------
# Data fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def sample_rows() -> list[dict[str, Any]]:
    return [dict(zip(_COLUMNS, row)) for row in _SAMPLE_ROWS]


@pytest.fixture()
def sample_records(sample_rows) -> list[Record]:
    return [Record.model_validate(row) for row in sample_rows]


@pytest.fixture()
def campaign_db():
    """DuckDB database with the sample rows and one row from another month."""
    db_path = _make_db_path()
    conn = duckdb.connect(str(db_path))
    conn.execute("""
        CREATE TABLE video_ad_performance (
            report_month DATE,
            platform VARCHAR,
            region VARCHAR,
            age_group VARCHAR,
            gender VARCHAR,
            spend DOUBLE,
            revenue DOUBLE,
            impressions BIGINT,
            video_starts BIGINT,
            views_3s BIGINT,
            views_25 BIGINT,
            views_50 BIGINT,
            views_100 BIGINT,
            clicks BIGINT,
            conversions BIGINT
        )
    """)
    placeholders = ", ".join("?" for _ in _COLUMNS)
    for row in _SAMPLE_ROWS + [_OTHER_PERIOD_ROW]:
        conn.execute(
            f"INSERT INTO video_ad_performance VALUES ({placeholders})",
            [date.fromisoformat(row[0]), *row[1:]],
        )
    conn.close()

    yield db_path

    db_path.unlink(missing_ok=True)


# ---------------------------------------------------------------------------
# Pipeline / API fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def pipeline(campaign_db) -> ChatPipeline:
    return ChatPipeline(
        DuckDBRecordSource(campaign_db),
        config=PipelineConfig(report_month=REPORT_MONTH),
    )


@pytest.fixture()
def client(pipeline):
    with TestClient(create_app(pipeline=pipeline)) as test_client:
        yield test_client
