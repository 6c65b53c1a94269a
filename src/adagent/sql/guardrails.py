"""SQL guardrails for generated query text.

Generated SQL is never executed; it is only inspected so the in-memory
aggregation can mirror it. It must still be a single read-only statement
against the campaign table before anything is derived from it.

Rules (checked in order, first failure wins):
- SELECT-only prefix
- Blocked keywords (DROP, DELETE, UPDATE, INSERT, ALTER, CREATE, EXEC,
  TRUNCATE, GRANT, REVOKE), case-insensitive substring match
- Single statement (no stacked statements)
- Must reference the video_ad_performance table
"""

import re
from dataclasses import dataclass
from typing import NamedTuple

from adagent.contracts import TABLE_NAME
from adagent.errors import ValidationError


class ValidationResult(NamedTuple):
    """Result of SQL validation."""

    is_valid: bool
    error: str | None = None


@dataclass
class GuardrailConfig:
    """Configuration for SQL guardrails."""

    allowed_prefix: str = "SELECT"
    required_table: str = TABLE_NAME

    # Substring match, so EXEC also covers EXECUTE
    blocked_keywords: tuple[str, ...] = (
        "DROP",
        "DELETE",
        "UPDATE",
        "INSERT",
        "ALTER",
        "CREATE",
        "EXEC",
        "TRUNCATE",
        "GRANT",
        "REVOKE",
    )


DEFAULT_CONFIG = GuardrailConfig()


def validate_sql(sql: str, config: GuardrailConfig | None = None) -> ValidationResult:
    """Validate generated SQL against the safety rules.

    Args:
        sql: SQL query string to validate
        config: Optional guardrail configuration

    Returns:
        ValidationResult with is_valid flag and the first failing reason
    """
    if config is None:
        config = DEFAULT_CONFIG

    sql_clean = (sql or "").strip()
    sql_upper = sql_clean.upper()

    if not sql_upper.startswith(config.allowed_prefix):
        return ValidationResult(is_valid=False, error="Only read-only queries allowed")

    blocked = detect_dangerous_keywords(sql_clean, config)
    if blocked:
        return ValidationResult(
            is_valid=False,
            error=f"Blocked keyword detected: {blocked[0]}",
        )

    if has_multiple_statements(sql_clean):
        return ValidationResult(is_valid=False, error="Multiple statements are not allowed")

    if config.required_table.lower() not in sql_clean.lower():
        return ValidationResult(
            is_valid=False,
            error=f"Query must reference the {config.required_table} table",
        )

    return ValidationResult(is_valid=True)


def ensure_safe_sql(sql: str, config: GuardrailConfig | None = None) -> str:
    """Validate SQL and return it normalized, or raise ValidationError.

    The returned text is trimmed and has any trailing terminator removed.
    """
    result = validate_sql(sql, config)
    if not result.is_valid:
        raise ValidationError(result.error or "Invalid query", details={"sql": sql})
    return normalize_sql(sql)


def normalize_sql(sql: str) -> str:
    """Trim whitespace and a trailing statement terminator."""
    return sql.strip().rstrip(";").strip()


def detect_dangerous_keywords(sql: str, config: GuardrailConfig | None = None) -> list[str]:
    """Return blocked keywords contained anywhere in the SQL text."""
    if config is None:
        config = DEFAULT_CONFIG

    sql_upper = sql.upper()
    return [keyword for keyword in config.blocked_keywords if keyword in sql_upper]


def has_multiple_statements(sql: str) -> bool:
    """Check for stacked statements.

    More than one terminator, or a terminator followed by further text,
    means more than one statement. Terminators inside string literals are
    ignored.
    """
    sql_no_strings = strip_string_literals(sql)
    semicolons = [m.start() for m in re.finditer(r";", sql_no_strings)]

    if len(semicolons) > 1:
        return True

    if semicolons:
        remaining = sql_no_strings[semicolons[0] + 1:].strip()
        if remaining and not remaining.startswith("--"):
            return True

    return False


def strip_string_literals(sql: str) -> str:
    """Replace 'string' and "identifier" literals with empty ones."""
    sql = re.sub(r"'([^']|'')*'", "''", sql)
    sql = re.sub(r'"([^"]|"")*"', '""', sql)
    return sql
