from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Sequence

from .cli_shared import LINEAR_API_KEY, OpError, UsageError, _write_secure_json


class AuthInputError(UsageError):
    """Raised when no usable credential can be resolved."""

    kind = "auth_input"


NOT_AUTHENTICATED = "Not authenticated. Run 'linctl auth login' first."


@dataclass(frozen=True)
class AuthHeader:
    value: str
    source: str


def _require_non_empty(val: str | None, *, name: str, hint: str) -> str:
    out = (val or "").strip()
    if not out:
        raise AuthInputError(f"missing {name} ({hint})")
    return out


def auth_file_path(raw: str) -> Path:
    return Path(raw).expanduser()


def _header_from_stored(doc: dict[str, Any]) -> str:
    token = str(doc.get("access_token") or "").strip()
    if token:
        return f"Bearer {token}"
    return str(doc.get("api_key") or "").strip()


def read_auth_file(path: Path) -> dict[str, Any] | None:
    if not path.is_file():
        return None
    try:
        doc = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise AuthInputError(f"invalid auth file {path}: {e}") from e
    if not isinstance(doc, dict):
        raise AuthInputError(f"invalid auth file {path}: expected JSON object")
    return doc


def resolve_auth_header(
    *,
    api_key: str | None,
    env_or_none: Callable[..., str | None],
    auth_file: Path,
    api_key_env_names: Sequence[str] = (LINEAR_API_KEY,),
) -> AuthHeader:
    """Resolve the Authorization header value: flag, then env, then stored file.

    The value is opaque to the GraphQL client; personal API keys are sent
    as-is and OAuth access tokens as ``Bearer <token>``.
    """
    flag_value = (api_key or "").strip()
    if flag_value:
        return AuthHeader(value=flag_value, source="flag")

    env_value = (env_or_none(*api_key_env_names) or "").strip()
    if env_value:
        return AuthHeader(value=env_value, source=f"env:{api_key_env_names[0]}")

    stored = read_auth_file(auth_file)
    if stored is not None:
        value = _header_from_stored(stored)
        if value:
            return AuthHeader(value=value, source=f"file:{auth_file}")

    raise AuthInputError(NOT_AUTHENTICATED)


def store_api_key(*, auth_file: Path, api_key: str) -> Path:
    key = _require_non_empty(api_key, name="api key", hint="pass --api-key or enter it at the prompt")
    _write_secure_json(path=auth_file, obj={"api_key": key})
    return auth_file


def remove_auth_file(auth_file: Path) -> bool:
    if not auth_file.exists():
        return False
    try:
        auth_file.unlink()
    except OSError as e:
        raise OpError(f"failed to remove {auth_file}: {e}") from e
    return True


def mask_secret(value: str) -> str:
    v = (value or "").strip()
    if v.lower().startswith("bearer "):
        return "Bearer " + mask_secret(v[7:])
    if len(v) <= 8:
        return "*" * len(v)
    return f"{v[:4]}...{v[-4:]}"
