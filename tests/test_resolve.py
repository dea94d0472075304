from __future__ import annotations

import io

import pytest

from linctl.resolve import (
    EmptyQueryError,
    InvalidVariablesJSONError,
    resolve_query,
    resolve_variables,
)


class _TtyStream(io.StringIO):
    def isatty(self) -> bool:
        return True


class _UnreadableStream(io.StringIO):
    def read(self, *args, **kwargs):  # pragma: no cover - must never be called
        raise AssertionError("stdin must not be read when arguments are present")


class _BrokenPipeStream(io.StringIO):
    def read(self, *args, **kwargs):
        raise OSError("input/output error")


@pytest.mark.parametrize(
    "args, expected",
    [
        (["{ viewer { id } }"], "{ viewer { id } }"),
        (["{", "viewer", "{", "id", "}", "}"], "{ viewer { id } }"),
        (["  query", "Q  "], "query Q"),
        (["\n{ a }\n"], "{ a }"),
    ],
)
def test_resolve_query_joins_and_trims_arguments(args: list[str], expected: str) -> None:
    assert resolve_query(args, stdin=_UnreadableStream()) == expected


def test_resolve_query_rejects_blank_arguments() -> None:
    with pytest.raises(EmptyQueryError, match="query is required"):
        resolve_query(["  ", ""], stdin=_UnreadableStream())


def test_resolve_query_reads_piped_stdin() -> None:
    assert resolve_query([], stdin=io.StringIO("  q  ")) == "q"


def test_resolve_query_reads_multiline_stdin() -> None:
    text = "query Issues {\n  issues { nodes { id } }\n}\n"
    assert resolve_query(None, stdin=io.StringIO(text)) == text.strip()


def test_resolve_query_rejects_whitespace_only_stdin() -> None:
    with pytest.raises(EmptyQueryError, match="query from stdin is empty"):
        resolve_query([], stdin=io.StringIO(" \n\t "))


def test_resolve_query_requires_argument_on_interactive_terminal() -> None:
    with pytest.raises(EmptyQueryError, match=r"argument or stdin"):
        resolve_query([], stdin=_TtyStream("{ ignored }"))


def test_resolve_query_wraps_stdin_read_failure() -> None:
    with pytest.raises(EmptyQueryError, match="failed to read query from stdin"):
        resolve_query([], stdin=_BrokenPipeStream())


@pytest.mark.parametrize("raw", [None, ""])
def test_resolve_variables_absent(raw) -> None:
    assert resolve_variables(raw) is None


def test_resolve_variables_rejects_whitespace_only() -> None:
    with pytest.raises(InvalidVariablesJSONError, match="failed to parse variables JSON"):
        resolve_variables("   ")


def test_resolve_variables_parses_object() -> None:
    assert resolve_variables('{"a":1}') == {"a": 1}


def test_resolve_variables_keeps_types() -> None:
    out = resolve_variables('{"teamKey":"ENG","limit":10,"ratio":0.5,"flag":true,"none":null}')
    assert out == {"teamKey": "ENG", "limit": 10, "ratio": 0.5, "flag": True, "none": None}


def test_resolve_variables_rejects_malformed_json() -> None:
    with pytest.raises(InvalidVariablesJSONError, match="failed to parse variables JSON") as exc_info:
        resolve_variables("{not json}")
    assert exc_info.value.__cause__ is not None


@pytest.mark.parametrize("raw", ["[1,2]", '"text"', "42", "null"])
def test_resolve_variables_rejects_non_object(raw: str) -> None:
    with pytest.raises(InvalidVariablesJSONError, match="expected object"):
        resolve_variables(raw)
