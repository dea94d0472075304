from __future__ import annotations

import sys

import click
import typer

from . import __version__
from .api import GraphQLClient
from .auth_inputs import (
    AuthHeader,
    AuthInputError,
    auth_file_path,
    mask_secret,
    remove_auth_file,
    resolve_auth_header,
    store_api_key,
)
from .cli_shared import (
    LINCTL_ENDPOINT,
    LINCTL_TIMEOUT_SECONDS,
    LINEAR_API_KEY,
    GlobalOpts,
    LinctlError,
    OpError,
    UsageError,
    _apply_global_env,
    _bootstrap_env,
    _env_or_none,
)
from .output import _rich_error, debug, info, render_error, render_json, render_raw_json
from .resolve import resolve_query, resolve_variables

VIEWER_QUERY = "query Viewer { viewer { id name email } }"

GRAPHQL_HELP = """Run a GraphQL query against Linear's API.

The query is taken from the trailing arguments, or read from stdin when
nothing is given and input is piped. The full response envelope, including
any GraphQL errors, is printed as JSON.

Aliases: gql, gl.

Examples:

  linctl graphql '{ viewer { id name } }'

  cat query.graphql | linctl graphql --vars '{"teamKey":"ENG"}'
"""


app = typer.Typer(
    name="linctl",
    help="Run GraphQL operations against the Linear API.",
    no_args_is_help=True,
    add_completion=False,
)

auth_app = typer.Typer(
    help="Manage the stored Linear API credential.",
    no_args_is_help=True,
)
app.add_typer(auth_app, name="auth")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"linctl {__version__}")
        raise typer.Exit(code=0)


def _ctx_global(ctx: typer.Context) -> GlobalOpts:
    obj = ctx.find_root().obj
    if isinstance(obj, dict) and isinstance(obj.get("g"), GlobalOpts):
        return obj["g"]
    return _apply_global_env()


@app.callback()
def app_callback(
    ctx: typer.Context,
    json_output: bool = typer.Option(False, "--json", help="Emit errors and messages as JSON"),
    plaintext: bool = typer.Option(False, "--plaintext", help="Disable colour and markup on stderr"),
    quiet: bool = typer.Option(False, "--quiet", help="Reduce stderr logging"),
    verbose: bool = typer.Option(False, "--verbose", help="Log request diagnostics to stderr"),
    endpoint: str | None = typer.Option(
        None,
        "--endpoint",
        help=f"GraphQL endpoint URL (env override: {LINCTL_ENDPOINT})",
    ),
    timeout: float | None = typer.Option(
        None,
        "--timeout",
        help=f"Request deadline in seconds (env override: {LINCTL_TIMEOUT_SECONDS})",
    ),
    api_key: str | None = typer.Option(
        None,
        "--api-key",
        help=f"Linear API key (env override: {LINEAR_API_KEY})",
    ),
    version: bool = typer.Option(False, "--version", callback=_version_callback, is_eager=True),
) -> None:
    del version
    g = _apply_global_env(
        endpoint=endpoint,
        timeout_seconds=timeout,
        api_key=api_key,
        json_output=json_output,
        plaintext=plaintext,
        quiet=quiet,
        verbose=verbose,
    )
    ctx.obj = {"g": g}


def _fail(g: GlobalOpts, exc: LinctlError, *, prefix: str = "") -> typer.Exit:
    render_error(g, f"{prefix}{exc}", kind=exc.kind)
    return typer.Exit(code=2 if isinstance(exc, UsageError) else 1)


def _require_auth(g: GlobalOpts) -> AuthHeader:
    try:
        auth = resolve_auth_header(
            api_key=g.api_key,
            env_or_none=_env_or_none,
            auth_file=auth_file_path(g.auth_file),
        )
    except AuthInputError as e:
        render_error(g, str(e), kind=e.kind)
        raise typer.Exit(code=1) from e
    debug(g, f"using credential from {auth.source}")
    return auth


def _client(g: GlobalOpts, auth: AuthHeader) -> GraphQLClient:
    return GraphQLClient(
        auth_header=auth.value,
        endpoint=g.endpoint,
        timeout_seconds=g.timeout_seconds,
        log=lambda msg: debug(g, msg),
    )


@app.command("gl", help=GRAPHQL_HELP, hidden=True)
@app.command("gql", help=GRAPHQL_HELP, hidden=True)
@app.command("graphql", help=GRAPHQL_HELP)
def graphql(
    ctx: typer.Context,
    query: list[str] | None = typer.Argument(None, help="GraphQL query text (or pipe it on stdin)"),
    vars_json: str = typer.Option("", "--vars", help="JSON object of GraphQL variables"),
    fail_on_errors: bool = typer.Option(
        False,
        "--fail-on-errors",
        help="Exit 1 after printing when the response carries GraphQL errors",
    ),
) -> None:
    g = _ctx_global(ctx)
    auth = _require_auth(g)

    try:
        query_text = resolve_query(query)
        variables = resolve_variables(vars_json)
    except UsageError as e:
        raise _fail(g, e) from e

    try:
        resp = _client(g, auth).execute(query_text, variables)
    except OpError as e:
        raise _fail(g, e, prefix="GraphQL request failed: ") from e

    render_raw_json(g, resp.body)
    if fail_on_errors and resp.has_errors:
        count = len(resp.errors or ())
        info(g, f"response contains {count} GraphQL error(s)")
        raise typer.Exit(code=1)


@auth_app.command("login", help="Store a Linear API key in the auth file.")
def auth_login(
    ctx: typer.Context,
    api_key: str | None = typer.Option(None, "--api-key", help="API key to store (prompted when omitted)"),
) -> None:
    g = _ctx_global(ctx)
    key = (api_key or g.api_key or "").strip()
    if not key:
        key = typer.prompt("Linear API key", hide_input=True)
    try:
        path = store_api_key(auth_file=auth_file_path(g.auth_file), api_key=key)
    except LinctlError as e:
        raise _fail(g, e) from e
    info(g, f"Stored API key in {path}")
    render_json(
        g,
        {
            "kind": "linctl.auth.login.v1",
            "authFile": str(path),
            "key": mask_secret(key),
        },
    )


@auth_app.command("status", help="Show the active credential and verify it against the API.")
def auth_status(ctx: typer.Context) -> None:
    g = _ctx_global(ctx)
    auth = _require_auth(g)
    try:
        resp = _client(g, auth).execute(VIEWER_QUERY)
    except OpError as e:
        raise _fail(g, e, prefix="credential check failed: ") from e

    data = resp.data
    viewer = data.get("viewer") if isinstance(data, dict) else None
    payload: dict[str, object] = {
        "kind": "linctl.auth.status.v1",
        "authenticated": isinstance(viewer, dict) and not resp.has_errors,
        "source": auth.source,
        "key": mask_secret(auth.value),
        "endpoint": g.endpoint,
        "viewer": viewer,
    }
    if resp.errors is not None:
        payload["errors"] = [e.to_dict() for e in resp.errors]
    render_json(g, payload)
    if not payload["authenticated"]:
        raise typer.Exit(code=1)


@auth_app.command("logout", help="Remove the stored auth file.")
def auth_logout(ctx: typer.Context) -> None:
    g = _ctx_global(ctx)
    path = auth_file_path(g.auth_file)
    try:
        removed = remove_auth_file(path)
    except LinctlError as e:
        raise _fail(g, e) from e
    render_json(
        g,
        {
            "kind": "linctl.auth.logout.v1",
            "authFile": str(path),
            "removed": removed,
        },
    )


def main(argv: list[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    try:
        _bootstrap_env()
        result = app(args=argv, prog_name="linctl", standalone_mode=False)
        if result is None:
            return 0
        return int(result)
    except typer.Exit as e:
        return int(e.exit_code)
    except click.exceptions.Abort:
        _rich_error("aborted")
        return 130
    except click.ClickException as e:
        _rich_error(e.format_message())
        return int(e.exit_code)
    except KeyboardInterrupt:
        _rich_error("interrupted")
        return 130
    except UsageError as e:
        _rich_error(str(e))
        return 2
    except OpError as e:
        _rich_error(str(e))
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
