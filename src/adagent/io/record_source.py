"""Record sources: fetch every video_ad_performance row for a period.

The pipeline always fetches the full period and filters in memory, so a
source only needs to support one equality filter on report_month.

Sources:
- SupabaseRecordSource: PostgREST over HTTP (requests)
- DuckDBRecordSource: local DuckDB file (see adagent.io.ingest)
"""

import logging
from pathlib import Path
from typing import Any

import duckdb
import requests
from pydantic import ValidationError as RowValidationError

from adagent.config import Settings
from adagent.contracts import PERIOD_COLUMN, TABLE_NAME, Record
from adagent.errors import ExecutionError


logger = logging.getLogger(__name__)


class RecordSource:
    """Interface for fetching period records."""

    name: str = "base"

    def fetch_rows(self, report_month: str) -> list[dict[str, Any]]:
        raise NotImplementedError

    def fetch_period(self, report_month: str) -> list[Record]:
        """Fetch and parse all rows for report_month.

        Raises:
            ExecutionError: If the store fails or returns malformed rows
        """
        rows = self.fetch_rows(report_month)
        try:
            records = [Record.model_validate(row) for row in rows]
        except RowValidationError as e:
            raise ExecutionError(
                f"Malformed row from {self.name}: {e.errors()[0].get('msg', 'invalid value')}",
                details={"source": self.name, "period": report_month},
            ) from e

        logger.info("Fetched %d rows from %s for %s", len(records), self.name, report_month)
        return records


class SupabaseRecordSource(RecordSource):
    """Fetch rows through Supabase's PostgREST API."""

    name = "supabase"

    def __init__(
        self,
        url: str,
        api_key: str,
        *,
        table: str = TABLE_NAME,
        page_size: int = 1000,
        timeout: int = 30,
        session: requests.Session | None = None,
    ):
        self.endpoint = f"{url.rstrip('/')}/rest/v1/{table}"
        self.api_key = api_key
        self.page_size = page_size
        self.timeout = timeout
        self.session = session or requests.Session()

    def _headers(self) -> dict[str, str]:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
        }

    def fetch_rows(self, report_month: str) -> list[dict[str, Any]]:
        rows: list[dict[str, Any]] = []
        offset = 0

        while True:
            params = {
                "select": "*",
                PERIOD_COLUMN: f"eq.{report_month}",
                "limit": str(self.page_size),
                "offset": str(offset),
            }
            try:
                response = self.session.get(
                    self.endpoint,
                    params=params,
                    headers=self._headers(),
                    timeout=self.timeout,
                )
                response.raise_for_status()
                page = response.json()
            except requests.exceptions.RequestException as e:
                raise ExecutionError(
                    f"Supabase fetch failed: {e}",
                    details={"source": self.name, "period": report_month},
                ) from e
            except ValueError as e:
                raise ExecutionError(
                    "Supabase returned a non-JSON response",
                    details={"source": self.name, "period": report_month},
                ) from e

            if not isinstance(page, list):
                raise ExecutionError(
                    "Supabase returned an unexpected payload",
                    details={"source": self.name, "payload_type": type(page).__name__},
                )

            rows.extend(page)
            if len(page) < self.page_size:
                break
            offset += self.page_size

        return rows


class DuckDBRecordSource(RecordSource):
    """Fetch rows from a local DuckDB database."""

    name = "duckdb"

    def __init__(self, db_path: Path | str, *, table: str = TABLE_NAME):
        self.db_path = Path(db_path)
        self.table = table

    def fetch_rows(self, report_month: str) -> list[dict[str, Any]]:
        if not self.db_path.exists():
            raise ExecutionError(
                f"Database not found at {self.db_path}",
                details={"source": self.name},
            )

        sql = (
            f"SELECT * FROM {self.table} "
            f"WHERE CAST({PERIOD_COLUMN} AS DATE) = CAST(? AS DATE)"
        )
        try:
            conn = duckdb.connect(str(self.db_path), read_only=True)
            try:
                result = conn.execute(sql, [report_month])
                columns = [desc[0] for desc in result.description]
                rows = [dict(zip(columns, row)) for row in result.fetchall()]
            finally:
                conn.close()
        except duckdb.Error as e:
            raise ExecutionError(
                f"DuckDB fetch failed: {e}",
                details={"source": self.name, "period": report_month},
            ) from e

        return rows


def record_source_from_settings(settings: Settings) -> RecordSource:
    """Build the configured record source (DuckDB wins when both are set).

    Raises:
        ValueError: If neither a DuckDB path nor Supabase credentials are set
    """
    if settings.duckdb_path:
        return DuckDBRecordSource(settings.duckdb_path)
    if settings.supabase_url and settings.supabase_key:
        return SupabaseRecordSource(
            settings.supabase_url,
            settings.supabase_key,
            timeout=settings.http_timeout,
        )
    raise ValueError(
        "No record source configured. Set AA_DUCKDB_PATH, or SUPABASE_URL and SUPABASE_ANON_KEY."
    )
