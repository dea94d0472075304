from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from http.client import HTTPException
from typing import Any, Callable, TypeVar
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from . import __version__
from .cli_shared import DEFAULT_ENDPOINT, DEFAULT_TIMEOUT_SECONDS, OpError
from .resolve import EmptyQueryError, InvalidVariablesJSONError

T = TypeVar("T")

Transport = Callable[..., tuple[int, dict[str, str], bytes]]

BODY_SNIPPET_LIMIT = 1024


class TransportError(OpError):
    """The HTTP round trip did not complete (DNS, refused, timeout, protocol)."""

    kind = "transport"


class HTTPStatusError(OpError):
    """The server answered with a non-2xx status.

    ``response`` holds the decoded envelope when the error body happens to be
    one; the status still takes precedence over whatever it reports.
    """

    kind = "http_status"

    def __init__(self, status: int, body_snippet: str, response: GraphQLResponse | None = None) -> None:
        super().__init__(f"API request failed with status {status}: {body_snippet}")
        self.status = status
        self.body_snippet = body_snippet
        self.response = response


class DecodeError(OpError):
    """A 2xx body was not a GraphQL response envelope."""

    kind = "decode"

    def __init__(self, message: str, *, body: str) -> None:
        super().__init__(f"{message}; body={body}")
        self.body = body


def _http_request(
    *,
    method: str,
    url: str,
    headers: dict[str, str],
    body: bytes | None = None,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
) -> tuple[int, dict[str, str], bytes]:
    try:
        req = Request(url, data=body, method=str(method).upper())
    except ValueError as e:
        raise TransportError(f"invalid endpoint URL {url!r}: {e}") from e
    for k, v in headers.items():
        req.add_header(k, v)
    try:
        with urlopen(req, timeout=timeout_seconds) as resp:
            status = getattr(resp, "status", 200)
            hdrs = {k.lower(): v for k, v in dict(resp.headers).items()}
            data = resp.read()
            return int(status), hdrs, data
    except HTTPError as e:
        hdrs = {k.lower(): v for k, v in dict(e.headers or {}).items()}
        try:
            data = e.read() if hasattr(e, "read") else b""
        except (OSError, HTTPException):
            data = b""
        finally:
            e.close()
        return int(getattr(e, "code", 0) or 0), hdrs, data
    except URLError as e:
        raise TransportError(f"http request failed: {e.reason}") from e
    except TimeoutError as e:
        raise TransportError(f"http request timed out after {timeout_seconds}s") from e
    except (OSError, HTTPException, ValueError) as e:
        raise TransportError(f"http request failed: {e}") from e


def _http_post_json(
    *,
    url: str,
    headers: dict[str, str],
    body: bytes = b"",
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
) -> tuple[int, dict[str, str], bytes]:
    return _http_request(
        method="POST",
        url=url,
        headers=headers,
        body=body,
        timeout_seconds=timeout_seconds,
    )


@dataclass(frozen=True)
class GraphQLRequest:
    query: str
    variables: dict[str, Any] | None = None

    def __post_init__(self) -> None:
        if not str(self.query or "").strip():
            raise EmptyQueryError("query is required")
        if self.variables is not None and not isinstance(self.variables, dict):
            raise InvalidVariablesJSONError("variables must be a JSON object")

    def to_dict(self) -> dict[str, Any]:
        # servers that reject an explicit null never see the key
        out: dict[str, Any] = {"query": self.query}
        if self.variables is not None:
            out["variables"] = self.variables
        return out

    def to_json_bytes(self) -> bytes:
        return json.dumps(self.to_dict(), separators=(",", ":")).encode("utf-8")


@dataclass(frozen=True)
class Location:
    line: int
    column: int


def _is_int(val: Any) -> bool:
    return isinstance(val, int) and not isinstance(val, bool)


@dataclass(frozen=True)
class GraphQLError:
    message: str
    locations: tuple[Location, ...] = ()
    path: tuple[str | int, ...] = ()
    extensions: dict[str, Any] = field(default_factory=dict)
    raw: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_dict(cls, obj: Any) -> GraphQLError:
        if not isinstance(obj, dict):
            raise ValueError("error entry must be a JSON object")
        message = obj.get("message")
        if not isinstance(message, str):
            raise ValueError("error entry is missing a string 'message'")

        locations: list[Location] = []
        raw_locations = obj.get("locations")
        if raw_locations is not None:
            if not isinstance(raw_locations, list):
                raise ValueError("error 'locations' must be a list")
            for loc in raw_locations:
                if not isinstance(loc, dict) or not _is_int(loc.get("line")) or not _is_int(loc.get("column")):
                    raise ValueError("error location must be an object with integer line and column")
                locations.append(Location(line=loc["line"], column=loc["column"]))

        raw_path = obj.get("path")
        if raw_path is None:
            raw_path = []
        if not isinstance(raw_path, list) or not all(isinstance(p, str) or _is_int(p) for p in raw_path):
            raise ValueError("error 'path' must be a list of strings and integers")

        extensions = obj.get("extensions")
        if extensions is None:
            extensions = {}
        if not isinstance(extensions, dict):
            raise ValueError("error 'extensions' must be a JSON object")

        return cls(
            message=message,
            locations=tuple(locations),
            path=tuple(raw_path),
            extensions=extensions,
            raw=obj,
        )

    def to_dict(self) -> dict[str, Any]:
        if self.raw:
            return self.raw
        out: dict[str, Any] = {"message": self.message}
        if self.locations:
            out["locations"] = [{"line": loc.line, "column": loc.column} for loc in self.locations]
        if self.path:
            out["path"] = list(self.path)
        if self.extensions:
            out["extensions"] = self.extensions
        return out


@dataclass(frozen=True)
class GraphQLResponse:
    """Decoded response envelope.

    ``data`` is left in the raw body until a caller decodes it, and
    ``errors`` is ``None`` when the server sent no ``errors`` key. Neither
    implies anything about the other: a response can carry partial data
    alongside errors.
    """

    body: str
    errors: tuple[GraphQLError, ...] | None = None
    extensions: dict[str, Any] | None = None
    status: int = 200

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    @property
    def data(self) -> Any:
        return self.decode_data()

    def decode_data(self, factory: Callable[[Any], T] | None = None, **json_kwargs: Any) -> Any:
        """Decode ``data`` from the raw body.

        ``json_kwargs`` go to :func:`json.loads` (e.g. ``parse_float=Decimal``)
        and ``factory`` converts the decoded value into the caller's shape.
        """
        doc = json.loads(self.body, **json_kwargs)
        val = doc.get("data") if isinstance(doc, dict) else None
        if factory is None:
            return val
        return factory(val)

    def to_dict(self) -> dict[str, Any]:
        # Numbers in data go through json.loads defaults; print ``body`` to
        # reproduce the envelope exactly.
        out: dict[str, Any] = {"data": self.data}
        if self.errors is not None:
            out["errors"] = [e.to_dict() for e in self.errors]
        if self.extensions is not None:
            out["extensions"] = self.extensions
        return out


def decode_response(raw: bytes, *, status: int = 200) -> GraphQLResponse:
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError(f"invalid UTF-8 in response: {e}", body=repr(raw)) from e
    try:
        doc = json.loads(text)
    except ValueError as e:
        raise DecodeError(f"invalid JSON response: {e}", body=text) from e
    if not isinstance(doc, dict):
        raise DecodeError("invalid response envelope: expected JSON object", body=text)

    errors: tuple[GraphQLError, ...] | None = None
    raw_errors = doc.get("errors")
    if raw_errors is not None:
        if not isinstance(raw_errors, list):
            raise DecodeError("invalid response envelope: 'errors' must be a list", body=text)
        try:
            errors = tuple(GraphQLError.from_dict(item) for item in raw_errors)
        except ValueError as e:
            raise DecodeError(f"invalid response envelope: {e}", body=text) from e

    extensions = doc.get("extensions")
    if extensions is not None and not isinstance(extensions, dict):
        raise DecodeError("invalid response envelope: 'extensions' must be a JSON object", body=text)

    return GraphQLResponse(body=text, errors=errors, extensions=extensions, status=status)


def _body_snippet(raw: bytes) -> str:
    text = raw.decode("utf-8", errors="replace").strip()
    if len(text) > BODY_SNIPPET_LIMIT:
        return text[:BODY_SNIPPET_LIMIT] + "..."
    return text


def _envelope_or_none(raw: bytes, *, status: int) -> GraphQLResponse | None:
    try:
        doc = json.loads(raw.decode("utf-8"))
    except ValueError:
        # UnicodeDecodeError included
        return None
    if not isinstance(doc, dict) or ("data" not in doc and "errors" not in doc):
        return None
    try:
        return decode_response(raw, status=status)
    except DecodeError:
        return None


@dataclass(frozen=True)
class GraphQLClient:
    """Sends GraphQL requests to one endpoint with one credential.

    Holds no per-call state, so a single instance can be shared across
    threads. Each ``execute`` call is exactly one HTTP round trip.
    """

    auth_header: str
    endpoint: str = DEFAULT_ENDPOINT
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    transport: Transport | None = None
    log: Callable[[str], None] | None = None

    def _log(self, msg: str) -> None:
        if self.log is not None:
            self.log(msg)

    def execute(
        self,
        query: str,
        variables: dict[str, Any] | None = None,
        *,
        timeout_seconds: float | None = None,
    ) -> GraphQLResponse:
        """Send one request and decode the response envelope.

        GraphQL-level ``errors`` are returned as data. Only transport
        failures, non-2xx statuses and undecodable bodies raise once the
        request is on the wire.

        A blank ``query`` or non-dict ``variables`` is rejected before any
        I/O with ``EmptyQueryError`` / ``InvalidVariablesJSONError``, the
        same usage errors the resolver raises.
        """
        request = GraphQLRequest(query=query, variables=variables)
        body = request.to_json_bytes()
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": f"linctl/{__version__}",
        }
        if self.auth_header:
            headers["Authorization"] = self.auth_header

        timeout = self.timeout_seconds if timeout_seconds is None else timeout_seconds
        send = self.transport or _http_post_json
        self._log(f"POST {self.endpoint} ({len(body)} bytes, timeout={timeout}s)")
        started = time.monotonic()
        status, _hdrs, raw = send(url=self.endpoint, headers=headers, body=body, timeout_seconds=timeout)
        self._log(f"status={status} bytes={len(raw)} elapsed={time.monotonic() - started:.3f}s")

        if status < 200 or status >= 300:
            raise HTTPStatusError(status, _body_snippet(raw), _envelope_or_none(raw, status=status))
        return decode_response(raw, status=status)
