"""Pattern-based introspection of generated SQL.

This is deliberately not a parser. It recognizes a small grammar:
- equality predicates:   platform = 'TikTok'
- inclusion predicates:  platform IN ('TikTok', 'YouTube')
- a single grouping dimension:  GROUP BY platform

Anything else (ranges, negation, OR chains, computed predicates, multi-column
grouping) is reported as "unrecognized" (None) rather than as an empty match.
A WHERE clause containing OR anywhere yields no filters at all, since its
predicates no longer compose by AND.
"""

import re

from adagent.contracts import DIMENSIONS, QueryIntent, Shape, ShapeKind
from adagent.sql.guardrails import normalize_sql, strip_string_literals, validate_sql


_VALUE = r"""(?:'([^']*)'|"([^"]*)")"""

_CLAUSE_END = r"(?=\bGROUP\s+BY\b|\bHAVING\b|\bORDER\s+BY\b|\bLIMIT\b|;|$)"

_GROUP_BY_PATTERN = re.compile(
    r"\bGROUP\s+BY\b(.*?)(?=\bHAVING\b|\bORDER\s+BY\b|\bLIMIT\b|;|$)",
    re.IGNORECASE | re.DOTALL,
)

_WHERE_PATTERN = re.compile(rf"\bWHERE\b(.*?){_CLAUSE_END}", re.IGNORECASE | re.DOTALL)


def _equality_pattern(column: str) -> re.Pattern:
    # Optional table/alias qualifier; "!=" and "<>" must not match
    return re.compile(
        rf"(?<![\w.])(?:\w+\.)?{re.escape(column)}\s*(?<![!<>])=\s*{_VALUE}",
        re.IGNORECASE,
    )


def _in_list_pattern(column: str) -> re.Pattern:
    return re.compile(
        rf"(?<![\w.])(?:\w+\.)?{re.escape(column)}\s+IN\s*\(([^)]*)\)",
        re.IGNORECASE,
    )


def _is_negated(sql: str, start: int) -> bool:
    """Return True if a predicate starting at start is preceded by NOT."""
    return bool(re.search(r"\bNOT\s*$", sql[:start], re.IGNORECASE))


def has_or_predicate(sql: str) -> bool:
    """Return True if the WHERE clause joins predicates with OR.

    Quoted values are blanked first, so region = 'OR' does not count.
    """
    match = _WHERE_PATTERN.search(strip_string_literals(sql or ""))
    return bool(match and re.search(r"\bOR\b", match.group(1), re.IGNORECASE))


def _first_plain_match(pattern: re.Pattern, sql: str) -> re.Match | None:
    """Return the first match not preceded by NOT."""
    for match in pattern.finditer(sql):
        if not _is_negated(sql, match.start()):
            return match
    return None


def extract_filter_values(sql: str, column: str) -> list[str] | None:
    """Return the literal values the query restricts column to.

    Args:
        sql: Generated query text
        column: Column name to look for

    Returns:
        List of values for an equality or IN-list predicate, or None when
        the column is not restricted by a recognized predicate or the WHERE
        clause contains OR.

    Example:
        >>> extract_filter_values("... WHERE platform IN ('TikTok','YouTube')", "platform")
        ['TikTok', 'YouTube']
    """
    if not sql or has_or_predicate(sql):
        return None

    in_match = _first_plain_match(_in_list_pattern(column), sql)
    if in_match:
        values = [_literal(m) for m in re.finditer(_VALUE, in_match.group(1))]
        if values:
            return values

    eq_match = _first_plain_match(_equality_pattern(column), sql)
    if eq_match:
        return [_literal(eq_match)]

    return None


def _literal(match: re.Match) -> str:
    """Return whichever quote style matched."""
    return match.group(1) if match.group(1) is not None else match.group(2)


def extract_filters(sql: str) -> dict[str, list[str]]:
    """Extract predicates for every known dimension.

    Only restricted dimensions appear in the result; a missing key means the
    dimension is unrestricted. Filters on different dimensions compose by AND.
    """
    filters: dict[str, list[str]] = {}
    for dimension in DIMENSIONS:
        values = extract_filter_values(sql, dimension)
        if values is not None:
            filters[dimension] = values
    return filters


def detect_shape(sql: str) -> Shape:
    """Classify a query as a single aggregate or a grouped comparison.

    The grouping dimension is the first known dimension appearing in the
    GROUP BY clause. A GROUP BY over unknown columns yields a comparison
    with dimension None.
    """
    match = _GROUP_BY_PATTERN.search(sql or "")
    if not match:
        return Shape(kind=ShapeKind.SINGLE, dimension=None)

    clause = match.group(1)
    first_dimension = None
    first_position = len(clause) + 1
    for dimension in DIMENSIONS:
        found = re.search(rf"(?<![\w]){re.escape(dimension)}(?![\w])", clause, re.IGNORECASE)
        if found and found.start() < first_position:
            first_dimension = dimension
            first_position = found.start()

    return Shape(kind=ShapeKind.COMPARISON, dimension=first_dimension)


def build_query_intent(sql: str) -> QueryIntent:
    """Validate and introspect generated SQL in one pass.

    A safe intent carries the normalized SQL (trimmed, no trailing
    terminator); an unsafe one keeps the text as generated.
    """
    validation = validate_sql(sql)
    if not validation.is_valid:
        return QueryIntent(sql=sql, is_safe=False, reason=validation.error)

    sql = normalize_sql(sql)
    return QueryIntent(
        sql=sql,
        is_safe=True,
        filters=extract_filters(sql),
        shape=detect_shape(sql),
    )
