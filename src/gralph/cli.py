"""CLI entry point for gralph.

Exit codes:
    0 - Success (a loop that hit max iterations also exits 0)
    1 - General error
    2 - Invalid arguments
    3 - Session not found
    4 - State lock unavailable
    5 - Loop failed (backend error)
    6 - Session already running
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import pathlib
import sys
import time
from collections import deque
from typing import Any, Callable, Sequence

from gralph import __version__
from gralph.backends import backend_names, get_backend
from gralph.common.config import env_str
from gralph.common.logging import log_error, log_info, log_success, log_warning
from gralph.common.time_utils import elapsed_seconds, format_duration
from gralph.config import load_config, set_global_value
from gralph.errors import (
    GralphError,
    LockTimeoutError,
    SessionAlreadyRunningError,
    SessionNotFoundError,
)
from gralph.exit_codes import GralphExitCode
from gralph.lifecycle import (
    StartSettings,
    collect_status,
    log_file_for,
    resume_sessions,
    run_session,
    start_session,
    stop_all_sessions,
    stop_session,
)
from gralph.models import SessionStatus
from gralph.server import DEFAULT_HOST, DEFAULT_PORT, StatusServer
from gralph.store import CleanupMode, StateStore

DIR_COLUMN_WIDTH = 40
FOLLOW_POLL_SECONDS = 0.5


def truncate_dir(path: str, width: int = DIR_COLUMN_WIDTH) -> str:
    """Keep the tail of *path*, prefixed with "...", if it exceeds *width*."""
    if width <= 0 or len(path) <= width:
        return path
    if width <= 3:
        return path[:width]
    return "..." + path[len(path) - (width - 3):]


def format_remaining(remaining: int) -> str:
    if remaining < 0:
        return "?"
    if remaining == 1:
        return "1 task"
    return f"{remaining} tasks"


def format_age(started_at: str) -> str:
    """Time since *started_at*, or "?" when it is missing or unparseable."""
    if not started_at:
        return "?"
    seconds = elapsed_seconds(started_at)
    if seconds < 0:
        return "?"
    return format_duration(max(seconds, 1))


def format_status_table(sessions: list[dict[str, Any]]) -> str:
    headers = ("NAME", "DIR", "ITERATION", "STATUS", "REMAINING", "AGE")
    rows = [
        (
            str(s.get("name", "")),
            truncate_dir(str(s.get("dir", ""))),
            f"{s.get('iteration', 0)}/{s.get('max_iterations', 0)}",
            str(s.get("status", "")),
            format_remaining(int(s.get("current_remaining", -1))),
            format_age(str(s.get("started_at", ""))),
        )
        for s in sessions
    ]
    widths = [max(len(h), *(len(r[i]) for r in rows)) for i, h in enumerate(headers)]

    def line(cells: Sequence[str]) -> str:
        return "  ".join(c.ljust(w) for c, w in zip(cells, widths)).rstrip()

    out = [line(headers), line(["-" * w for w in widths])]
    out.extend(line(r) for r in rows)
    return "\n".join(out)


# -- commands ---------------------------------------------------------------


def cmd_start(store: StateStore, args: argparse.Namespace) -> int:
    project_dir = pathlib.Path(args.dir)
    config = load_config(project_dir)
    settings = StartSettings(
        project_dir=project_dir,
        name=args.name or "",
        task_file=args.task_file or "",
        max_iterations=args.max_iterations,
        completion_marker=args.completion_marker or "",
        backend=args.backend or "",
        model=args.model or "",
        variant=args.variant or "",
        webhook=args.webhook or "",
        prompt_template_file=args.prompt_template or "",
    ).with_defaults(config)

    if args.worker or args.foreground:
        result = run_session(store, settings, worker=args.worker, config=config)
        if result.status is SessionStatus.FAILED:
            return GralphExitCode.BACKEND_FAILED
        return GralphExitCode.SUCCESS

    record = start_session(store, settings)
    log_success(f"Started session '{record.name}' (PID: {record.pid})")
    log_info(f"  Directory: {record.dir}")
    log_info(f"  Backend:   {record.backend}")
    if record.tmux_session:
        log_info(f"  Attach:    tmux -L gralph attach -t {record.tmux_session}")
    log_info(f"  Log:       {record.log_file}")
    print(f"Use 'gralph status' to monitor, 'gralph logs {record.name}' for output")
    return GralphExitCode.SUCCESS


def cmd_stop(store: StateStore, args: argparse.Namespace) -> int:
    if args.all:
        stopped = stop_all_sessions(store)
        if not stopped:
            print("No running sessions")
        else:
            print(f"Stopped {len(stopped)} session(s)")
        return GralphExitCode.SUCCESS
    if not args.name:
        log_error("Session name required (or use --all)")
        return GralphExitCode.INVALID_ARGS
    stop_session(store, args.name)
    print(f"Stopped session: {args.name}")
    return GralphExitCode.SUCCESS


def cmd_status(store: StateStore, args: argparse.Namespace) -> int:
    store.init()
    sessions = collect_status(store)
    if args.json:
        print(json.dumps({"sessions": sessions}, indent=2))
        return GralphExitCode.SUCCESS
    if not sessions:
        print("No sessions found")
        print("Start a new loop with: gralph start <directory>")
        return GralphExitCode.SUCCESS
    print(format_status_table(sessions))
    print()
    print("Commands: gralph logs <name>, gralph stop <name>, gralph resume")
    return GralphExitCode.SUCCESS


def cmd_resume(store: StateStore, args: argparse.Namespace) -> int:
    resumed = resume_sessions(store, args.name or "")
    if not resumed:
        print("No sessions to resume")
    else:
        print(f"Resumed {len(resumed)} session(s)")
    return GralphExitCode.SUCCESS


def follow_log(path: pathlib.Path, poll_interval: float = FOLLOW_POLL_SECONDS) -> None:
    """Print lines appended to *path* until interrupted."""
    pending = ""
    with open(path, encoding="utf-8", errors="replace") as f:
        f.seek(0, os.SEEK_END)
        while True:
            chunk = f.readline()
            if chunk.endswith("\n"):
                sys.stdout.write(pending + chunk)
                sys.stdout.flush()
                pending = ""
                continue
            # Partial line: hold it until the writer finishes it.
            pending += chunk
            time.sleep(poll_interval)


def cmd_logs(store: StateStore, args: argparse.Namespace) -> int:
    store.init()
    record = store.get(args.name)
    if record is None:
        raise SessionNotFoundError(args.name)
    if record.log_file:
        log_file = pathlib.Path(record.log_file)
    elif record.dir:
        log_file = log_file_for(pathlib.Path(record.dir), record.name)
    else:
        log_error(f"Cannot determine log file path for session '{args.name}'")
        return GralphExitCode.ERROR
    if not log_file.is_file():
        log_error(f"Log file does not exist: {log_file}")
        return GralphExitCode.ERROR

    print(f"Session: {record.name} (status: {record.status})")
    print(f"Log file: {log_file}\n")
    with open(log_file, encoding="utf-8", errors="replace") as f:
        tail = deque(f, maxlen=max(args.lines, 1))
    sys.stdout.write("".join(tail))
    sys.stdout.flush()
    if args.follow:
        try:
            follow_log(log_file)
        except KeyboardInterrupt:
            pass
    return GralphExitCode.SUCCESS


def cmd_cleanup(store: StateStore, args: argparse.Namespace) -> int:
    mode = CleanupMode.REMOVE if args.remove else CleanupMode.MARK
    cleaned = store.cleanup_stale(mode)
    if not cleaned:
        log_info("No stale sessions found")
        return GralphExitCode.SUCCESS
    verb = "Removed" if mode is CleanupMode.REMOVE else "Marked stale"
    for name in cleaned:
        log_success(f"{verb}: {name}")
    print(f"\nCleaned up {len(cleaned)} session(s)")
    return GralphExitCode.SUCCESS


def cmd_backends(store: StateStore, args: argparse.Namespace) -> int:
    print("Available backends:\n")
    for name in backend_names():
        backend = get_backend(name)
        if backend.is_installed():
            print(f"  {name} (installed)")
            print(f"    Models: {', '.join(backend.models)}")
        else:
            print(f"  {name} (not installed)")
            print(f"    Install: {backend.install_hint}")
    print("\nUse --backend <name> with 'gralph start' to select a backend")
    return GralphExitCode.SUCCESS


def cmd_server(store: StateStore, args: argparse.Namespace) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    token = args.token or env_str("GRALPH_SERVER_TOKEN")
    if args.host not in ("127.0.0.1", "localhost", "::1") and not token:
        log_warning(f"Serving on {args.host} without a token; anyone on the network can stop sessions")
    server = StatusServer(store, host=args.host, port=args.port, token=token, open_cors=args.open)
    try:
        asyncio.run(server.serve())
    except KeyboardInterrupt:
        pass
    return GralphExitCode.SUCCESS


def cmd_config(store: StateStore, args: argparse.Namespace) -> int:
    action = args.config_action or "list"
    if action == "set":
        key = args.key.strip()
        value = args.value.strip()
        if not key or not value:
            log_error("Config key and value are required")
            return GralphExitCode.INVALID_ARGS
        path = set_global_value(key, value)
        print(f"Updated config: {key}")
        log_info(f"Written to {path}")
        return GralphExitCode.SUCCESS

    config = load_config(pathlib.Path.cwd())
    if action == "get":
        key = args.key.strip()
        if not config.has(key):
            log_error(f"Config key not found: {key}")
            return GralphExitCode.ERROR
        print(config.get(key))
        return GralphExitCode.SUCCESS

    for key, value in config.items().items():
        print(f"{key}={value}")
    return GralphExitCode.SUCCESS


# -- parser -----------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gralph",
        description="Run autonomous coding-agent loops against a markdown task file",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""\
Environment Variables:
    GRALPH_STATE_DIR       State directory (default: ~/.config/gralph)
    GRALPH_STATE_FILE      State file (default: <state dir>/state.json)
    GRALPH_LOCK_FILE       Lock file (default: <state dir>/state.lock)
    GRALPH_LOCK_TIMEOUT    Seconds to wait for the state lock (default: 10)
    GRALPH_NO_TMUX         Run background loops without tmux
    GRALPH_GLOBAL_CONFIG   Global config file (default: ~/.config/gralph/config.yaml)

Examples:
    gralph start .                       # Loop over ./PRD.md in the background
    gralph start . --foreground          # Loop in this terminal
    gralph status                        # Show all sessions
    gralph stop myproject                # Stop one session
    gralph resume                        # Restart interrupted sessions
    gralph config set defaults.backend codex
""",
    )
    parser.add_argument("--version", action="version", version=f"gralph {__version__}")
    sub = parser.add_subparsers(dest="command", metavar="<command>")

    start = sub.add_parser("start", help="Start a loop")
    start.add_argument("dir", help="Project directory")
    start.add_argument("--name", "-n", help="Session name (default: directory name)")
    start.add_argument("--max-iterations", type=int, metavar="N", help="Iteration budget (default: 30)")
    start.add_argument("--task-file", "-f", help="Task file relative to dir (default: PRD.md)")
    start.add_argument("--completion-marker", help="Completion promise text (default: COMPLETE)")
    start.add_argument("--backend", "-b", help=f"Backend: {', '.join(backend_names())}")
    start.add_argument("--model", "-m", help="Model override")
    start.add_argument("--variant", help="Model variant (opencode)")
    start.add_argument("--webhook", help="Notification webhook URL")
    start.add_argument("--prompt-template", metavar="FILE", help="Custom prompt template file")
    start.add_argument(
        "--foreground", "--no-tmux",
        dest="foreground",
        action="store_true",
        help="Run in this terminal instead of the background",
    )
    start.add_argument("--worker", action="store_true", help=argparse.SUPPRESS)
    start.set_defaults(func=cmd_start)

    stop = sub.add_parser("stop", help="Stop a session")
    stop.add_argument("name", nargs="?", help="Session name")
    stop.add_argument("--all", "-a", action="store_true", help="Stop all running sessions")
    stop.set_defaults(func=cmd_stop)

    status = sub.add_parser("status", help="Show all sessions")
    status.add_argument("--json", action="store_true", help="Print JSON")
    status.set_defaults(func=cmd_status)

    resume = sub.add_parser("resume", help="Resume interrupted sessions")
    resume.add_argument("name", nargs="?", help="Only resume this session")
    resume.set_defaults(func=cmd_resume)

    logs = sub.add_parser("logs", help="Show a session's log")
    logs.add_argument("name", help="Session name")
    logs.add_argument("--lines", type=int, default=50, metavar="N", help="Lines to show (default: 50)")
    logs.add_argument("--follow", "-f", action="store_true", help="Keep printing new lines until interrupted")
    logs.set_defaults(func=cmd_logs)

    cleanup = sub.add_parser("cleanup", help="Reconcile sessions whose process died")
    cleanup.add_argument("--remove", action="store_true", help="Delete them instead of marking stale")
    cleanup.set_defaults(func=cmd_cleanup)

    backends = sub.add_parser("backends", help="List backends")
    backends.set_defaults(func=cmd_backends)

    config = sub.add_parser("config", help="Show or change configuration")
    config_sub = config.add_subparsers(dest="config_action", metavar="<action>")
    config_get = config_sub.add_parser("get", help="Print one value")
    config_get.add_argument("key", help="Dotted key, e.g. defaults.backend")
    config_set = config_sub.add_parser("set", help="Write a value to the global config file")
    config_set.add_argument("key", help="Dotted key, e.g. defaults.backend")
    config_set.add_argument("value", help="New value")
    config_sub.add_parser("list", help="Print every key=value (default)")
    config.set_defaults(func=cmd_config)

    server = sub.add_parser("server", help="Serve session status over HTTP")
    server.add_argument("--host", "-H", default=DEFAULT_HOST, help=f"Bind address (default: {DEFAULT_HOST})")
    server.add_argument("--port", "-p", type=int, default=DEFAULT_PORT, help=f"Port (default: {DEFAULT_PORT})")
    server.add_argument("--token", "-t", help="Require this bearer token")
    server.add_argument("--open", action="store_true", help="Allow any CORS origin")
    server.set_defaults(func=cmd_server)

    return parser


def _exit_code_for(exc: GralphError) -> GralphExitCode:
    if isinstance(exc, SessionNotFoundError):
        return GralphExitCode.NOT_FOUND
    if isinstance(exc, LockTimeoutError):
        return GralphExitCode.LOCK_UNAVAILABLE
    if isinstance(exc, SessionAlreadyRunningError):
        return GralphExitCode.ALREADY_RUNNING
    return GralphExitCode.ERROR


def main(argv: Sequence[str] | None = None, store: StateStore | None = None) -> int:
    """Main entry point for the gralph CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)
    func: Callable[[StateStore, argparse.Namespace], int] | None = getattr(args, "func", None)
    if func is None:
        parser.print_help()
        return GralphExitCode.INVALID_ARGS

    if getattr(args, "max_iterations", None) is not None and args.max_iterations <= 0:
        log_error("--max-iterations must be a positive integer")
        return GralphExitCode.INVALID_ARGS

    try:
        return int(func(store or StateStore(), args))
    except GralphError as exc:
        log_error(str(exc))
        return _exit_code_for(exc)
    except ValueError as exc:
        log_error(str(exc))
        return GralphExitCode.INVALID_ARGS


if __name__ == "__main__":
    sys.exit(main())
