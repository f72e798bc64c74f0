"""CLI entry point for codeflow."""

import argparse
import asyncio
import json
import logging
import sys
import traceback
from datetime import datetime
from pathlib import Path

from .config import load_config
from .errors import CodeflowError
from .history import HistoryRecord, HistoryTier
from .identity import Guest
from .languages import Language, language_for_path
from .vcs import SyncResult, SyncStatus
from .workspace import Workspace


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = "".join(traceback.format_exception(*record.exc_info))

        # Safe JSON serialization
        try:
            return json.dumps(log_data)
        except (TypeError, ValueError):
            log_data["message"] = str(log_data["message"])
            if "exception" in log_data:
                log_data["exception"] = str(log_data["exception"])
            return json.dumps(log_data)


def setup_logging(verbose: bool = False, log_level: str | None = None, json_output: bool = False) -> None:
    """Configure logging.

    Args:
        verbose: Enable debug logging (ignored if log_level is set).
        log_level: Explicit log level (warning, info, debug).
        json_output: Output logs as JSON lines for machine parsing.
    """
    if log_level:
        level_map = {
            "warning": logging.WARNING,
            "info": logging.INFO,
            "debug": logging.DEBUG,
        }
        level = level_map.get(log_level, logging.WARNING)
    else:
        level = logging.DEBUG if verbose else logging.WARNING

    handler = logging.StreamHandler()
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(formatter)

    logging.basicConfig(
        level=level,
        handlers=[handler],
    )


def _read_source(path: Path, language: str | None) -> tuple[str, Language]:
    try:
        code = path.read_text()
    except OSError as e:
        raise CodeflowError(f"Cannot read {path}: {e}") from e

    if language:
        return code, Language.parse(language)

    guessed = language_for_path(path)
    if guessed is None:
        raise CodeflowError(f"Cannot guess the language of {path}, pass --language")
    return code, guessed


def _print_sync_result(action: str, result: SyncResult) -> int:
    if result.status == SyncStatus.SKIPPED:
        print(f"{action} skipped: {result.error}")
        return 0

    print(f"{action}: {result.status.value}")
    if action == "Push":
        print(f"  Written: {result.entries_pushed}")
        print(f"  Already on remote: {result.entries_confirmed}")
    else:
        print(f"  New from remote: {result.entries_pulled}")
        print(f"  Local commits: {len(result.commits)}")
    if result.error:
        print(f"  Error: {result.error}")

    return 0 if result.ok else 1


async def cmd_commit(args: argparse.Namespace, ws: Workspace) -> int:
    """Record the contents of a file as a new commit."""
    code, language = _read_source(args.file, args.language)
    log = ws.commits

    if not log.is_modified(code) and not args.allow_empty:
        print("Nothing to commit, working tree clean")
        return 1

    commit = log.commit(args.message, code, language, ws.identity.author)
    print(f"[{commit.id[:8]}] {commit.message}")
    return 0


async def cmd_log(args: argparse.Namespace, ws: Workspace) -> int:
    """List local commits."""
    commits = ws.commits.list()

    if args.json:
        print(json.dumps([c.to_dict() for c in commits], indent=2))
        return 0

    if not commits:
        print("No commits yet")
        return 0

    for commit in commits:
        marker = " " if commit.is_synced else "*"
        stamp = commit.timestamp.strftime("%Y-%m-%d %H:%M")
        print(
            f"{marker} {commit.id[:8]}  {stamp}  {commit.language.value:<10}  "
            f"{commit.author}: {commit.message}"
        )

    unsynced = sum(1 for c in commits if not c.is_synced)
    if unsynced:
        print(f"\n{unsynced} commit(s) not pushed (marked *)")
    return 0


def _resolve_commit_id(ws: Workspace, prefix: str) -> str:
    matches = [c.id for c in ws.commits.list() if c.id.startswith(prefix)]
    if len(matches) != 1:
        raise CodeflowError(
            f"{'Ambiguous' if matches else 'Unknown'} commit id: {prefix}"
        )
    return matches[0]


async def cmd_checkout(args: argparse.Namespace, ws: Workspace) -> int:
    """Write the code of a commit to a file or stdout."""
    code, language = ws.commits.checkout(_resolve_commit_id(ws, args.commit_id))

    if args.output:
        args.output.write_text(code)
        print(f"Checked out {language.value} snapshot to {args.output}")
    else:
        sys.stdout.write(code)
    return 0


async def cmd_rm(args: argparse.Namespace, ws: Workspace) -> int:
    """Delete a commit from this device."""
    commit_id = _resolve_commit_id(ws, args.commit_id)
    ws.commits.delete(commit_id)
    print(f"Deleted local commit {commit_id[:8]}")
    return 0


async def cmd_push(args: argparse.Namespace, ws: Workspace) -> int:
    return _print_sync_result("Push", await ws.sync.push(ws.identity))


async def cmd_pull(args: argparse.Namespace, ws: Workspace) -> int:
    return _print_sync_result("Pull", await ws.sync.pull(ws.identity))


async def cmd_status(args: argparse.Namespace, ws: Workspace) -> int:
    """Show identity, remote reachability and pending commits."""
    identity = ws.identity
    status_data = {
        "timestamp": datetime.now().isoformat(),
        "identity": {
            "guest": isinstance(identity, Guest),
            "storage_key": identity.storage_key,
            "author": identity.author,
        },
        "remote": {
            "url": ws.config.remote.url or None,
            "reachable": await ws.client.health_check() if ws.client else False,
        },
        "commits": ws.sync.get_sync_status(identity),
    }

    if args.json:
        print(json.dumps(status_data, indent=2))
        return 0

    print("Codeflow Status")
    print("===============")
    who = "guest" if status_data["identity"]["guest"] else identity.storage_key
    print(f"User: {identity.author} ({who})")
    print()

    remote = status_data["remote"]
    if remote["url"]:
        print(f"Remote ({remote['url']}):")
        print(f"  Status: {'Reachable' if remote['reachable'] else 'Not reachable'}")
    else:
        print("Remote: not configured (offline mode)")
    print()

    commits = status_data["commits"]
    print("Commits:")
    print(f"  Total: {commits['total_commits']}")
    print(f"  Not pushed: {commits['pending_commits']}")
    return 0


async def cmd_history_save(args: argparse.Namespace, ws: Workspace) -> int:
    code, language = _read_source(args.file, args.language)
    record = HistoryRecord.draft(code, language, title=args.title, comment=args.comment)

    result = await ws.history.save(ws.identity, record)
    if result.saved:
        print(f"Saved {result.record.id} ({result.outcome.value})")
        return 0

    if result.record is not None:
        print(f"Unchanged since {result.record.id}, not saved again")
        return 0

    print(f"Not saved: {result.error}", file=sys.stderr)
    return 1


async def cmd_history_list(args: argparse.Namespace, ws: Workspace) -> int:
    result = await ws.history.load(ws.identity)

    if args.json:
        print(json.dumps([r.to_dict() for r in result.records], indent=2))
    else:
        for record in result.records:
            stamp = record.timestamp.strftime("%Y-%m-%d %H:%M")
            label = record.title or record.comment or ""
            print(f"{record.id}  {stamp}  {record.language.value:<10}  {label}")
        if not result.records:
            print("No history")

    if result.error:
        print(f"Warning ({result.tier.value}): {result.error}", file=sys.stderr)
    return 1 if result.tier is HistoryTier.NONE else 0


async def cmd_history_delete(args: argparse.Namespace, ws: Workspace) -> int:
    result = await ws.history.delete(ws.identity, args.record_id)
    if result.error:
        print(f"Warning: {result.error}", file=sys.stderr)
    print("Deleted" if result.removed else "Nothing deleted")
    return 0 if result.removed else 1


async def cmd_history_clear(args: argparse.Namespace, ws: Workspace) -> int:
    count = ws.history.clear(ws.identity)
    print(f"Cleared {count} local record(s)")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Run the reference remote server."""
    config = load_config(args.config)

    try:
        import uvicorn

        from .server import RemoteDatabase, create_app
    except ImportError as e:
        print(f"Server dependencies not installed: {e}", file=sys.stderr)
        print("Install with: pip install codeflow[server]", file=sys.stderr)
        return 1

    host = args.host or config.server.host
    port = args.port or config.server.port

    database = RemoteDatabase(config.server.db_path)
    database.connect()

    print("Starting codeflow remote server")
    print(f"URL: http://{host}:{port}")

    try:
        uvicorn.run(create_app(config, database), host=host, port=port, log_level="info")
    finally:
        database.close()

    return 0


async def _run_with_workspace(args: argparse.Namespace) -> int:
    ws = Workspace(load_config(args.config))
    try:
        return await args.func(args, ws)
    except CodeflowError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        await ws.close()


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="codeflow",
        description="Offline-first version control and run history for code snippets",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to config file",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["warning", "info", "debug"],
        default=None,
        help="Set log level explicitly (overrides -v/--verbose)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Output logs as JSON for machine parsing",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # commit
    commit_parser = subparsers.add_parser("commit", help="Commit the contents of a file")
    commit_parser.add_argument("file", type=Path, help="Source file to snapshot")
    commit_parser.add_argument("-m", "--message", required=True, help="Commit message")
    commit_parser.add_argument("-l", "--language", help="Language (default: from extension)")
    commit_parser.add_argument(
        "--allow-empty",
        action="store_true",
        help="Commit even if the code matches the latest commit",
    )
    commit_parser.set_defaults(func=cmd_commit)

    # log
    log_parser = subparsers.add_parser("log", help="List local commits")
    log_parser.add_argument("--json", action="store_true", help="Output as JSON")
    log_parser.set_defaults(func=cmd_log)

    # checkout
    checkout_parser = subparsers.add_parser("checkout", help="Restore the code of a commit")
    checkout_parser.add_argument("commit_id", help="Commit id or unique prefix")
    checkout_parser.add_argument("-o", "--output", type=Path, help="File to write (default: stdout)")
    checkout_parser.set_defaults(func=cmd_checkout)

    # rm
    rm_parser = subparsers.add_parser("rm", help="Delete a commit from this device")
    rm_parser.add_argument("commit_id", help="Commit id or unique prefix")
    rm_parser.set_defaults(func=cmd_rm)

    # push / pull
    push_parser = subparsers.add_parser("push", help="Push local commits to the remote")
    push_parser.set_defaults(func=cmd_push)
    pull_parser = subparsers.add_parser("pull", help="Merge remote commits into the local log")
    pull_parser.set_defaults(func=cmd_pull)

    # status
    status_parser = subparsers.add_parser("status", help="Show sync status")
    status_parser.add_argument("--json", action="store_true", help="Output status as JSON")
    status_parser.set_defaults(func=cmd_status)

    # history commands
    history_parser = subparsers.add_parser("history", help="Manage run history")
    history_subparsers = history_parser.add_subparsers(dest="history_command", help="History commands")

    history_save = history_subparsers.add_parser("save", help="Save a run to the history")
    history_save.add_argument("file", type=Path, help="Source file that was run")
    history_save.add_argument("-l", "--language", help="Language (default: from extension)")
    history_save.add_argument("--title", help="Snippet title")
    history_save.add_argument("--comment", help="Note attached to the run")
    history_save.set_defaults(func=cmd_history_save)

    history_list = history_subparsers.add_parser("list", help="List the run history")
    history_list.add_argument("--json", action="store_true", help="Output as JSON")
    history_list.set_defaults(func=cmd_history_list)

    history_delete = history_subparsers.add_parser("delete", help="Delete a history record")
    history_delete.add_argument("record_id", help="Record id")
    history_delete.set_defaults(func=cmd_history_delete)

    history_clear = history_subparsers.add_parser("clear", help="Clear local history")
    history_clear.set_defaults(func=cmd_history_clear)

    # serve
    serve_parser = subparsers.add_parser("serve", help="Run the reference remote server")
    serve_parser.add_argument("-p", "--port", type=int, default=None, help="Port to listen on")
    serve_parser.add_argument("--host", type=str, default=None, help="Host to bind to")
    serve_parser.set_defaults(func=cmd_serve)

    args = parser.parse_args()

    setup_logging(args.verbose, args.log_level, args.json_logs)

    if not args.command:
        parser.print_help()
        return 1

    # Handle history subcommand requiring its own subcommand
    if args.command == "history" and not args.history_command:
        history_parser.print_help()
        return 1

    if args.command == "serve":
        return args.func(args)

    return asyncio.run(_run_with_workspace(args))


if __name__ == "__main__":
    sys.exit(main())
