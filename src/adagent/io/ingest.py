"""Load a campaign export (CSV or .xlsx) into a local DuckDB table.

The resulting database backs DuckDBRecordSource for local development and
demos without Supabase.
"""

import logging
import re
from pathlib import Path
from typing import Any

import duckdb
import pandas as pd

from adagent.contracts import (
    COUNT_FIELDS,
    DIMENSIONS,
    MONEY_FIELDS,
    PERIOD_COLUMN,
    TABLE_NAME,
)


logger = logging.getLogger(__name__)

REQUIRED_COLUMNS: tuple[str, ...] = (PERIOD_COLUMN,) + DIMENSIONS


def _read_file(file_path: Path, sheet=None) -> pd.DataFrame:
    """Read a data file into a DataFrame based on its extension."""
    suffix = file_path.suffix.lower()
    if suffix == ".xlsx":
        return pd.read_excel(file_path, sheet_name=sheet if sheet is not None else 0)
    elif suffix == ".csv":
        return pd.read_csv(file_path)
    else:
        raise ValueError(f"Unsupported file format: {suffix}")


def _normalize_column(name: str) -> str:
    """'Video Starts' -> 'video_starts', 'Age Group' -> 'age_group'."""
    cleaned = re.sub(r"[^0-9a-zA-Z]+", "_", str(name).strip().lower())
    return cleaned.strip("_")


def prepare_frame(df: pd.DataFrame) -> pd.DataFrame:
    """Normalize an export into the video_ad_performance layout.

    Missing counter columns are added as zeros; nulls in counters become 0.

    Raises:
        ValueError: If the period or a dimension column is missing
    """
    df = df.rename(columns={c: _normalize_column(c) for c in df.columns})

    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"Missing required column(s): {', '.join(missing)}")

    out = pd.DataFrame(index=df.index)
    out[PERIOD_COLUMN] = pd.to_datetime(df[PERIOD_COLUMN], errors="coerce").dt.normalize()
    for dim in DIMENSIONS:
        out[dim] = df[dim].fillna("").astype(str).str.strip()
    for name in MONEY_FIELDS + COUNT_FIELDS:
        values = df[name] if name in df.columns else pd.Series(0, index=df.index)
        values = pd.to_numeric(values, errors="coerce").fillna(0)
        out[name] = values.astype(float if name in MONEY_FIELDS else "int64")

    dropped = int(out[PERIOD_COLUMN].isna().sum())
    if dropped:
        logger.warning("Dropping %d row(s) with an unparseable %s", dropped, PERIOD_COLUMN)
        out = out[out[PERIOD_COLUMN].notna()]

    return out


def ingest_file(
    file_path: Path | str,
    db_path: Path | str,
    *,
    sheet: str | int | None = None,
    replace: bool = True,
) -> dict[str, Any]:
    """Ingest an export into DuckDB.

    Args:
        file_path: CSV or .xlsx file
        db_path: DuckDB database file (created if missing)
        sheet: Excel sheet name or index
        replace: Replace the table (True) or append to it (False)

    Returns:
        Summary dict with status, row count and periods loaded
    """
    file_path = Path(file_path)
    db_path = Path(db_path)

    if not file_path.exists():
        return {"status": "failed", "error": f"File not found: {file_path}", "rows": 0}

    try:
        frame = prepare_frame(_read_file(file_path, sheet))
    except ValueError as e:
        return {"status": "failed", "error": str(e), "rows": 0}

    # report_month is stored as DATE, other columns keep their frame types
    select = ", ".join(
        f"CAST({c} AS DATE) AS {c}" if c == PERIOD_COLUMN else c for c in frame.columns
    )

    db_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        conn = duckdb.connect(str(db_path))
        try:
            conn.register("incoming", frame)
            if replace:
                conn.execute(f"CREATE OR REPLACE TABLE {TABLE_NAME} AS SELECT {select} FROM incoming")
            else:
                conn.execute(f"CREATE TABLE IF NOT EXISTS {TABLE_NAME} AS SELECT {select} FROM incoming LIMIT 0")
                conn.execute(f"INSERT INTO {TABLE_NAME} SELECT {select} FROM incoming")
            conn.unregister("incoming")
        finally:
            conn.close()
    except duckdb.Error as e:
        logger.error("DuckDB write to %s failed: %s", db_path, e)
        return {"status": "failed", "error": f"DuckDB write failed: {e}", "rows": 0}

    periods = sorted(set(frame[PERIOD_COLUMN].dt.strftime("%Y-%m-%d")))
    logger.info("Ingested %d rows from %s into %s", len(frame), file_path, db_path)
    return {
        "status": "success",
        "rows": len(frame),
        "periods": periods,
        "table": TABLE_NAME,
        "db_path": str(db_path),
    }


def format_ingest_summary(result: dict[str, Any]) -> str:
    """Human-readable ingest summary for the CLI."""
    if result.get("status") != "success":
        return f"❌ Ingest failed: {result.get('error', 'unknown error')}"
    periods = ", ".join(result.get("periods", [])) or "none"
    return (
        f"✅ Loaded {result['rows']:,} rows into {result['table']} ({result['db_path']})\n"
        f"   Periods: {periods}"
    )
