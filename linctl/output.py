"""Rendering for command results and errors.

Every function takes the resolved ``GlobalOpts`` explicitly; output mode is
never looked up from process-wide state.
"""

from __future__ import annotations

import sys
from typing import Any

from rich.console import Console
from rich.markup import escape

from .cli_shared import GlobalOpts, _eprint, _print_json

_ERROR_CONSOLE = Console(stderr=True)


def _rich_error(msg: str) -> None:
    _ERROR_CONSOLE.print(f"[bold red]error:[/bold red] {escape(msg)}")


def error_payload(message: str, *, kind: str = "error") -> dict[str, Any]:
    return {"error": {"kind": kind, "message": message}}


def render_error(g: GlobalOpts, message: str, *, kind: str = "error") -> None:
    if g.json_output:
        _print_json(error_payload(message, kind=kind), pretty=g.pretty)
    elif g.plaintext:
        _eprint(f"error: {message}")
    else:
        _rich_error(message)


def render_json(g: GlobalOpts, obj: Any) -> None:
    # payload key order is kept
    _print_json(obj, pretty=g.pretty, sort_keys=False)


def render_raw_json(g: GlobalOpts, text: str) -> None:
    """Write an already-encoded JSON document to stdout unchanged."""
    del g
    sys.stdout.write(text.rstrip("\r\n") + "\n")


def info(g: GlobalOpts, msg: str) -> None:
    if g.quiet:
        return
    if g.plaintext or g.json_output:
        _eprint(msg)
    else:
        _ERROR_CONSOLE.print(escape(msg))


def debug(g: GlobalOpts, msg: str) -> None:
    if not g.verbose:
        return
    if g.plaintext:
        _eprint(f"debug: {msg}")
    else:
        _ERROR_CONSOLE.print(f"[dim]debug: {escape(msg)}[/dim]")
