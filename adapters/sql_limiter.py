from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

from sqlglot.errors import TokenError
from sqlglot.tokens import Token, Tokenizer, TokenType

from adapters.base import ConfigurationError

logger = logging.getLogger(__name__)

ALLOWED_STRATEGIES: Tuple[str, ...] = ("fetch",)

# Catalog views whose queries are never rewritten. The row cap still applies
# unless the caller reads the catalog uncapped (see adapters.tdv.get_schema).
CATALOG_EXEMPT_PATTERNS: Tuple[str, ...] = ("/services/databases/system/all_columns",)

_ROW_RETURNING = {"SELECT", "WITH"}
_Edit = Tuple[int, int, str]


def validate_strategies(limit_strategies: Optional[str]) -> List[str]:
    strategies = [s.strip().lower() for s in (limit_strategies or "").split(",")]
    strategies = [s for s in strategies if s]
    for strategy in strategies:
        if strategy not in ALLOWED_STRATEGIES:
            allowed = ", ".join(f'"{s}"' for s in ALLOWED_STRATEGIES)
            raise ConfigurationError(f'Limit strategy "{strategy}" not allowed. Must be one of {allowed}')
    return strategies


def is_catalog_query(query: str) -> bool:
    lowered = (query or "").lower()
    return any(pattern in lowered for pattern in CATALOG_EXEMPT_PATTERNS)


def _word(sql: str, token: Token) -> str:
    # Raw source text, so quoted identifiers and strings never read as keywords.
    return sql[token.start : token.end + 1].upper()


def _split_statements(tokens: List[Token]) -> List[Tuple[List[Token], Optional[Token]]]:
    statements = []
    current: List[Token] = []
    depth = 0
    for token in tokens:
        if token.token_type == TokenType.L_PAREN:
            depth += 1
        elif token.token_type == TokenType.R_PAREN:
            depth = max(0, depth - 1)
        elif token.token_type == TokenType.SEMICOLON and depth == 0:
            statements.append((current, token))
            current = []
            continue
        current.append(token)
    if current:
        statements.append((current, None))
    return statements


def _is_row_returning(sql: str, tokens: List[Token]) -> bool:
    for token in tokens:
        if token.token_type == TokenType.L_PAREN:
            continue
        return _word(sql, token) in _ROW_RETURNING
    return False


def _fetch_edit(sql: str, tokens: List[Token], cap: int) -> Optional[_Edit]:
    """Edit bounding one statement with a FETCH FIRST clause, if one is needed."""
    depth = 0
    for i, token in enumerate(tokens):
        if token.token_type == TokenType.L_PAREN:
            depth += 1
            continue
        if token.token_type == TokenType.R_PAREN:
            depth = max(0, depth - 1)
            continue
        if depth or _word(sql, token) != "FETCH":
            continue

        rest = tokens[i + 1 : i + 4]
        if not rest or _word(sql, rest[0]) not in {"FIRST", "NEXT"}:
            # A column or alias named fetch.
            continue

        # Existing top-level FETCH clause: only ever tighten it.
        if len(rest) < 3:
            return None
        count = rest[1]
        if count.token_type != TokenType.NUMBER or _word(sql, rest[2]) not in {"ROW", "ROWS"}:
            return None
        try:
            requested = int(count.text)
        except ValueError:
            return None
        if requested <= cap:
            return None
        return count.start, count.end + 1, str(cap)

    end = tokens[-1].end + 1
    return end, end, f" FETCH FIRST {cap} ROWS ONLY"


def rewrite(query: str, strategies: Sequence[str], cap: int) -> str:
    """Bound every row-returning statement of ``query`` to ``cap`` rows."""
    if not strategies:
        return query
    validate_strategies(",".join(strategies))

    try:
        tokens = Tokenizer().tokenize(query)
    except TokenError as exc:
        logger.warning("Could not tokenize query for row limiting, leaving it unchanged: %s", exc)
        return query

    edits: List[_Edit] = []
    for statement, _terminator in _split_statements(tokens):
        if not statement or not _is_row_returning(query, statement):
            continue
        if "fetch" in strategies:
            edit = _fetch_edit(query, statement, cap)
            if edit:
                edits.append(edit)

    rewritten = query
    for start, end, text in sorted(edits, reverse=True):
        rewritten = rewritten[:start] + text + rewritten[end:]
    return rewritten


def bound_query(query: str, strategies: Sequence[str], max_rows: Optional[int]) -> str:
    """Apply the catalog exemption and the ``max_rows + 1`` over-ask, then rewrite."""
    if max_rows is None or max_rows <= 0 or is_catalog_query(query):
        return query
    return rewrite(query, strategies, max_rows + 1)
