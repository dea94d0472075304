from __future__ import annotations

import json
import sys
from typing import Any, Sequence, TextIO

from .cli_shared import UsageError


class EmptyQueryError(UsageError):
    """Raised when no usable query text was supplied."""

    kind = "empty_query"


class InvalidVariablesJSONError(UsageError):
    """Raised when --vars is not a JSON object."""

    kind = "invalid_variables_json"


def _stdin_is_piped(stream: TextIO) -> bool:
    isatty = getattr(stream, "isatty", None)
    if isatty is None:
        return True
    try:
        return not isatty()
    except ValueError:
        # closed stream
        return False


def resolve_query(args: Sequence[str] | None, *, stdin: TextIO | None = None) -> str:
    """Return the query text from positional args, falling back to piped stdin.

    Stdin is only consulted when no positional text was given, and it is read
    at most once.
    """
    if args:
        query = " ".join(args).strip()
        if not query:
            raise EmptyQueryError("query is required")
        return query

    stream = sys.stdin if stdin is None else stdin
    if stream is not None and _stdin_is_piped(stream):
        try:
            raw = stream.read()
        except OSError as e:
            raise EmptyQueryError(f"failed to read query from stdin: {e}") from e
        query = (raw or "").strip()
        if not query:
            raise EmptyQueryError("query from stdin is empty")
        return query

    raise EmptyQueryError("query is required (argument or stdin)")


def resolve_variables(raw: str | None) -> dict[str, Any] | None:
    if raw is None or raw == "":
        return None
    try:
        val = json.loads(raw)
    except ValueError as e:
        raise InvalidVariablesJSONError(f"failed to parse variables JSON: {e}") from e
    if not isinstance(val, dict):
        raise InvalidVariablesJSONError(
            f"failed to parse variables JSON: expected object, got {type(val).__name__}"
        )
    return val
