from __future__ import annotations

import json
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

from dotenv import load_dotenv


class LinctlError(Exception):
    kind = "error"


class UsageError(LinctlError):
    kind = "usage"


class OpError(LinctlError):
    kind = "op"


LINEAR_API_KEY = "LINEAR_API_KEY"
LINCTL_ENDPOINT = "LINCTL_ENDPOINT"
LINCTL_TIMEOUT_SECONDS = "LINCTL_TIMEOUT_SECONDS"
LINCTL_AUTH_FILE = "LINCTL_AUTH_FILE"

DEFAULT_ENDPOINT = "https://api.linear.app/graphql"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_AUTH_FILE = "~/.linctl-auth.json"


def _eprint(msg: str) -> None:
    print(msg, file=sys.stderr)


@dataclass(frozen=True)
class GlobalOpts:
    endpoint: str = DEFAULT_ENDPOINT
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    auth_file: str = DEFAULT_AUTH_FILE
    api_key: str = ""
    json_output: bool = False
    plaintext: bool = False
    quiet: bool = False
    verbose: bool = False
    pretty: bool = True


def _env_or_none(*names: str) -> str | None:
    for n in names:
        v = (os.environ.get(n) or "").strip()
        if v:
            return v
    return None


def _bootstrap_env() -> None:
    # python-dotenv defaults: discover and load .env without overriding
    # already-exported process environment values.
    load_dotenv()


def _parse_timeout(raw: str | float | None) -> float:
    if raw is None or raw == "":
        return DEFAULT_TIMEOUT_SECONDS
    try:
        val = float(raw)
    except (TypeError, ValueError) as e:
        raise UsageError(f"invalid timeout {raw!r}: expected a number of seconds") from e
    if val <= 0:
        raise UsageError(f"invalid timeout {raw!r}: must be greater than zero")
    return val


def _parse_endpoint(raw: str) -> str:
    parts = urlsplit(raw)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise UsageError(f"invalid endpoint {raw!r}: expected an http(s) URL")
    return raw


def _apply_global_env(
    *,
    endpoint: str | None = None,
    timeout_seconds: float | None = None,
    api_key: str | None = None,
    json_output: bool = False,
    plaintext: bool = False,
    quiet: bool = False,
    verbose: bool = False,
) -> GlobalOpts:
    """Merge command-line options over environment defaults."""
    resolved_endpoint = _parse_endpoint((endpoint or _env_or_none(LINCTL_ENDPOINT) or DEFAULT_ENDPOINT).strip())
    if timeout_seconds is not None:
        resolved_timeout = _parse_timeout(timeout_seconds)
    else:
        resolved_timeout = _parse_timeout(_env_or_none(LINCTL_TIMEOUT_SECONDS))
    return GlobalOpts(
        endpoint=resolved_endpoint,
        timeout_seconds=resolved_timeout,
        auth_file=_env_or_none(LINCTL_AUTH_FILE) or DEFAULT_AUTH_FILE,
        api_key=(api_key or "").strip(),
        json_output=json_output,
        plaintext=plaintext,
        quiet=quiet,
        verbose=verbose and not quiet,
    )


def _print_json(obj: Any, *, pretty: bool, sort_keys: bool = True) -> None:
    if pretty:
        sys.stdout.write(json.dumps(obj, indent=2, sort_keys=sort_keys) + "\n")
    else:
        sys.stdout.write(json.dumps(obj, separators=(",", ":"), sort_keys=sort_keys) + "\n")


def _write_secure_json(*, path: Path, obj: dict[str, Any]) -> None:
    _write_secure_text(path=path, text=json.dumps(obj, indent=2, sort_keys=True) + "\n")


def _write_secure_text(*, path: Path, text: str) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    except OSError as e:
        raise OpError(f"failed to write {path}: {e}") from e
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            # O_CREAT's mode only applies to new files
            os.fchmod(fd, 0o600)
            f.write(text)
    except OSError as e:
        raise OpError(f"failed to write {path} with 0600 permissions: {e}") from e
