#!/usr/bin/env python3
"""
Session Monitor CLI
===================
Live dashboard for a running Claude Code session.

Commands:
    start      - Watch the latest (or a given) session with a live dashboard
    stop       - Stop the monitor watching the latest session
    status     - One-shot heuristic check, no external assessor
    goal       - Show or update the session goal

Usage:
    session-monitor start
    session-monitor start -g "Fix the refresh token bug in AuthService"
    session-monitor status --json
    session-monitor goal "Add pagination to the orders API"
"""

import argparse
import dataclasses
import json
import logging
import os
import select
import signal
import sys
import termios
import threading
import tty
from pathlib import Path
from typing import Optional

from . import config
from .assessor import create_assessor
from .display import Colors, Dashboard, render_once
from .monitor import SessionMonitor
from .sessions import SessionInfo, find_session, latest_session
from .signals import detect_signals
from .store import GoalStore, is_pid_alive

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
KEY_POLL_SECONDS = 0.25


# =============================================================================
# Color Output Helpers
# =============================================================================

def colored(text: str, *colors: str) -> str:
    """Apply colors to text."""
    if not sys.stdout.isatty():
        return text
    return "".join(colors) + text + Colors.RESET


def success(text: str) -> str:
    return colored(text, Colors.GREEN)


def error(text: str) -> str:
    return colored(text, Colors.RED)


def warning(text: str) -> str:
    return colored(text, Colors.YELLOW)


def bold(text: str) -> str:
    return colored(text, Colors.BOLD)


def dim(text: str) -> str:
    return colored(text, Colors.DIM)


# =============================================================================
# Setup
# =============================================================================

def setup_logging(verbose: bool = False):
    """
    Log to ~/.session-monitor/logs/session_monitor.log.

    stderr only gets a copy with --verbose; otherwise log lines would tear
    the dashboard.
    """
    config.ensure_directories()
    handlers = [logging.FileHandler(config.LOG_DIR / "session_monitor.log")]
    if verbose:
        handlers.append(logging.StreamHandler())
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True  # Prevent duplicate handlers on repeated main() calls
    )


def resolve_session(args: argparse.Namespace) -> Optional[SessionInfo]:
    cwd = Path(getattr(args, "cwd", None) or os.getcwd())
    session_prefix = getattr(args, "session", None)
    if session_prefix:
        session = find_session(session_prefix, cwd)
        if session is None:
            print(error(f"No session matching '{session_prefix}'"))
        return session

    session = latest_session(cwd)
    if session is None:
        print(error(f"No Claude Code sessions found for {cwd}"))
        print(dim(f"  Looked in {config.CLAUDE_PROJECTS_DIR}"))
    return session


# =============================================================================
# Keyboard
# =============================================================================

def prompt_goal(monitor: SessionMonitor, dashboard: Dashboard, old_attrs) -> None:
    """Pause the dashboard and read a new goal in cooked mode."""
    fd = sys.stdin.fileno()
    dashboard.paused = True
    try:
        termios.tcsetattr(fd, termios.TCSADRAIN, old_attrs)
        sys.stdout.write("\n\033[2K" + Colors.BOLD + "New goal: " + Colors.RESET)
        sys.stdout.flush()
        text = sys.stdin.readline()
    finally:
        tty.setcbreak(fd)
        dashboard.paused = False

    # The prompt line shifted the frame; redraw from a clean screen
    dashboard.clear()
    if not monitor.set_goal(text):
        monitor.render()


def run_interactive(monitor: SessionMonitor, dashboard: Dashboard, stop_event: threading.Event):
    """Read single keys until stopped. 'g' prompts for a new goal."""
    fd = sys.stdin.fileno()
    old_attrs = termios.tcgetattr(fd)
    tty.setcbreak(fd)
    try:
        while not stop_event.is_set():
            ready, _, _ = select.select([sys.stdin], [], [], KEY_POLL_SECONDS)
            if not ready:
                continue
            key = sys.stdin.read(1)
            if key == "":
                # stdin closed; keep monitoring without keyboard input
                stop_event.wait()
            elif key.lower() == "g":
                prompt_goal(monitor, dashboard, old_attrs)
    finally:
        termios.tcsetattr(fd, termios.TCSADRAIN, old_attrs)


# =============================================================================
# Command Handlers
# =============================================================================

def cmd_start(args: argparse.Namespace) -> int:
    """Watch a session until Ctrl+C or SIGTERM."""
    session = resolve_session(args)
    if session is None:
        return 1

    store = GoalStore()
    existing = store.read_pid(session.session_id)
    if existing and existing != os.getpid() and is_pid_alive(existing):
        print(warning(f"A monitor (pid {existing}) is already watching session {session.session_id[:8]}"))
        print(dim("  Run 'session-monitor stop' first"))
        return 1

    settings = config.load_settings()
    dashboard = Dashboard()
    monitor = SessionMonitor(
        session,
        settings=settings,
        assessor=create_assessor(settings),
        renderer=dashboard.render,
        store=store,
        goal=args.goal,
    )

    stop_event = threading.Event()

    def handle_signal(signum, frame):
        logger.info(f"Received signal {signum}, stopping")
        stop_event.set()

    signal.signal(signal.SIGTERM, handle_signal)
    signal.signal(signal.SIGINT, handle_signal)

    store.write_pid(session.session_id)
    logger.info(f"Monitoring session {session.session_id} ({session.transcript_path})")

    dashboard.clear()
    try:
        monitor.start()
        if sys.stdin.isatty():
            run_interactive(monitor, dashboard, stop_event)
        else:
            stop_event.wait()
    finally:
        monitor.stop()
        store.clear_pid(session.session_id)

    print("\n" + dim(f"Monitor stopped. Session {session.session_id[:8]}"))
    return 0


def cmd_stop(args: argparse.Namespace) -> int:
    """SIGTERM the monitor for a session and clear its PID file."""
    session = resolve_session(args)
    if session is None:
        return 1

    store = GoalStore()
    pid = store.read_pid(session.session_id)
    if pid is None:
        print(dim("No monitor running for this session"))
        return 0

    if is_pid_alive(pid):
        try:
            os.kill(pid, signal.SIGTERM)
            print(success(f"Stopped monitor (pid {pid})"))
        except OSError as e:
            print(error(f"Could not signal pid {pid}: {e}"))
            return 1
    else:
        print(dim(f"Monitor pid {pid} was not running; cleaned up"))

    store.clear_pid(session.session_id)
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    """Load the transcript once and print a heuristic assessment."""
    session = resolve_session(args)
    if session is None:
        return 1

    monitor = SessionMonitor(
        session,
        settings=config.load_settings(),
        assessor=None,
        background=False,
    )
    monitor.load_history()
    snapshot = monitor.snapshot()
    if args.goal:
        # One-off override; not written to the goal store
        snapshot = dataclasses.replace(snapshot, goal=args.goal.strip())
    assessment = monitor.scheduler.run_assessment(snapshot.goal, snapshot.events)

    if args.json:
        signals = detect_signals(snapshot.events, snapshot.goal)
        print(json.dumps({
            "session_id": session.session_id,
            "project_slug": session.project_slug,
            "goal": snapshot.goal,
            "steps": len(snapshot.tool_calls),
            "errors": sum(1 for c in snapshot.tool_calls if c.failed),
            "assessment": assessment.to_dict(),
            "signals": signals.to_dict(),
        }, indent=2))
        return 0

    render_once(dataclasses.replace(snapshot, assessment=assessment))
    return 0


def cmd_goal(args: argparse.Namespace) -> int:
    """Show the stored goal, or replace it."""
    session = resolve_session(args)
    if session is None:
        return 1

    store = GoalStore()
    new_goal = " ".join(args.text).strip() if args.text else (args.goal or "").strip()
    if not new_goal:
        current = store.read(session.session_id)
        print(f"Current goal: {current}" if current else dim("(no goal set)"))
        return 0

    if not store.write(session.session_id, new_goal):
        print(error("Could not save goal"))
        return 1
    print(success(f"Goal updated: {new_goal}"))
    pid = store.read_pid(session.session_id)
    if pid and is_pid_alive(pid):
        print(dim("  The running monitor will reassess on its next refresh"))
    return 0


# =============================================================================
# Entry point
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="session-monitor",
        description="Live progress monitor for Claude Code sessions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    %(prog)s start                     Watch latest session, auto-detect goal
    %(prog)s start -g "text"           Override goal
    %(prog)s start -s abc123           Watch a specific session
    %(prog)s stop                      Stop the running monitor
    %(prog)s status --json             One-shot check as JSON
    %(prog)s goal                      Show current goal
    %(prog)s goal "new text"           Update goal mid-session
        """
    )
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Mirror log output to stderr")

    session_args = argparse.ArgumentParser(add_help=False)
    session_args.add_argument("-s", "--session", help="Session ID (prefix match)")
    session_args.add_argument("-c", "--cwd", help="Project directory (default: current)")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    start_parser = subparsers.add_parser("start", parents=[session_args],
                                         help="Watch a session live")
    start_parser.add_argument("-g", "--goal", help="Goal text")

    subparsers.add_parser("stop", parents=[session_args], help="Stop the running monitor")

    status_parser = subparsers.add_parser("status", parents=[session_args],
                                          help="One-shot heuristic check")
    status_parser.add_argument("-g", "--goal", help="Goal text")
    status_parser.add_argument("-j", "--json", action="store_true",
                               help="Output as JSON")

    goal_parser = subparsers.add_parser("goal", parents=[session_args],
                                        help="Show or update the goal")
    goal_parser.add_argument("text", nargs="*", help="New goal text")
    goal_parser.add_argument("-g", "--goal", help="New goal text")

    return parser


def main(argv=None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        setup_logging(args.verbose)
    except OSError as e:
        print(error(f"Could not set up logging: {e}"))
        return 1

    commands = {
        "start": cmd_start,
        "stop": cmd_stop,
        "status": cmd_status,
        "goal": cmd_goal,
    }

    handler = commands.get(args.command)
    if handler:
        return handler(args)
    print(error(f"Unknown command: {args.command}"))
    return 1


if __name__ == "__main__":
    sys.exit(main())
