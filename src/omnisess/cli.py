"""CLI entry point for omnisess."""

import logging
from dataclasses import dataclass, field

import click

from .backends import SourceRegistry, default_registry
from .config import parse_since
from .core import ListOptions, SearchResult, Session, Tool
from .errors import OmnisessError
from .export import (
    render_search_table,
    render_session_detail,
    render_session_table,
    search_results_to_json,
    session_to_json,
    session_to_markdown,
    sessions_to_json,
)
from .provider import SessionSource

logger = logging.getLogger(__name__)

_EPOCH_KEY = 0.0


@dataclass
class CliState:
    registry: SourceRegistry
    opts: ListOptions = field(default_factory=ListOptions)
    as_json: bool = False
    tool: str = ""

    def sources(self) -> list[SessionSource]:
        if not self.tool:
            return self.registry.all()
        source = self.registry.by_name(self.tool)
        if source is None:
            raise click.ClickException(f"no {self.tool} data found on this machine")
        return [source]


def _parse_since_option(ctx, param, value):
    if value is None:
        return None
    try:
        return parse_since(value)
    except ValueError as e:
        raise click.BadParameter(str(e)) from e


def _sort_key(session: Session) -> float:
    return session.updated_at.timestamp() if session.updated_at else _EPOCH_KEY


def _warn(source: SessionSource, action: str, error: Exception) -> None:
    logger.debug("%s failed for %s", action, source.name.value, exc_info=error)
    click.echo(f"warning: {source.name.value}: {action}: {error}", err=True)


def collect_sessions(state: CliState, opts: ListOptions) -> list[Session]:
    """Merge sessions from every selected source, newest first."""
    sessions = []
    for source in state.sources():
        try:
            sessions.extend(source.list_sessions(opts))
        except (OmnisessError, OSError) as e:
            _warn(source, "list sessions", e)

    sessions.sort(key=_sort_key, reverse=True)
    if opts.limit > 0:
        sessions = sessions[: opts.limit]
    return sessions


def collect_search(state: CliState, query: str) -> list[SearchResult]:
    results = []
    for source in state.sources():
        try:
            results.extend(source.search(query, state.opts))
        except (OmnisessError, OSError) as e:
            _warn(source, "search", e)

    results.sort(key=lambda r: _sort_key(r.session), reverse=True)
    return results


def _print_sessions(state: CliState, sessions: list[Session], empty: str) -> None:
    if state.as_json:
        click.echo(sessions_to_json(sessions))
    elif not sessions:
        click.echo(empty)
    else:
        click.echo(render_session_table(sessions))


@click.group()
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of tables.")
@click.option(
    "--tool",
    type=click.Choice([t.value for t in Tool]),
    help="Only read sessions of this tool.",
)
@click.option(
    "--since",
    callback=_parse_since_option,
    help="Only sessions updated within this window, e.g. 90m, 24h, 7d, 2w.",
)
@click.option("--limit", default=0, type=click.IntRange(min=0), help="Maximum sessions (0 = all).")
@click.option("--project", default="", help="Only sessions whose project path contains this.")
@click.option("-v", "--verbose", is_flag=True, help="Log debug output to stderr.")
@click.pass_context
def main(ctx, as_json, tool, since, limit, project, verbose):
    """Browse AI coding sessions from Claude Code, Codex and Cursor."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG, format="%(asctime)s %(name)s %(levelname)s %(message)s"
        )

    registry = ctx.obj if isinstance(ctx.obj, SourceRegistry) else default_registry()
    ctx.obj = CliState(
        registry=registry,
        opts=ListOptions(since=since, limit=limit, project=project),
        as_json=as_json,
        tool=tool or "",
    )


@main.command("list")
@click.pass_obj
def list_cmd(state: CliState):
    """List sessions, most recently updated first."""
    sessions = collect_sessions(state, state.opts)
    _print_sessions(state, sessions, "No sessions found.")


@main.command()
@click.pass_obj
def active(state: CliState):
    """List sessions that are running right now."""
    opts = ListOptions(
        since=state.opts.since, limit=state.opts.limit, project=state.opts.project, active=True
    )
    sessions = collect_sessions(state, opts)
    _print_sessions(state, sessions, "No active sessions.")


@main.command()
@click.argument("query")
@click.pass_obj
def search(state: CliState, query: str):
    """Search message content of all sessions (case-insensitive)."""
    results = collect_search(state, query)
    if state.opts.limit > 0:
        results = results[: state.opts.limit]

    if state.as_json:
        click.echo(search_results_to_json(results))
    elif not results:
        click.echo(f"No sessions match {query!r}.")
    else:
        click.echo(render_search_table(results))


@main.command()
@click.argument("qualified_id", metavar="TOOL:ID")
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["text", "json", "md"]),
    default=None,
    help="Output format (default: text, or json with --json).",
)
@click.pass_obj
def show(state: CliState, qualified_id: str, fmt):
    """Show one session with all of its messages.

    ID may be a unique prefix of the session id.
    """
    tool_name, sep, session_id = qualified_id.partition(":")
    if not sep or not session_id:
        raise click.BadParameter(
            "expected TOOL:ID, e.g. claude:5c3f2742", param_hint="TOOL:ID"
        )

    source = state.registry.by_name(tool_name)
    if source is None:
        raise click.ClickException(f"unknown or unavailable tool {tool_name!r}")

    try:
        session = source.get_session(session_id)
    except OmnisessError as e:
        raise click.ClickException(str(e)) from e

    if session is None:
        raise click.ClickException(f"session {qualified_id} not found")

    fmt = fmt or ("json" if state.as_json else "text")
    if fmt == "json":
        click.echo(session_to_json(session))
    elif fmt == "md":
        click.echo(session_to_markdown(session))
    else:
        click.echo(render_session_detail(session))
