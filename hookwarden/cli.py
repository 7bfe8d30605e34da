"""
Command line entry point.

Usage:
    hookwarden handle < event.json           # Evaluate one hook event
    hookwarden check-config                  # Validate the rule configuration

Ledger Management:
    hookwarden ledger list                   # List stored session ledgers
    hookwarden ledger show SESSION_ID        # Show one ledger
    hookwarden ledger delete SESSION_ID      # Delete one ledger
    hookwarden ledger gc                     # Remove idle ledgers

Todo Tracking:
    hookwarden todos list SESSION_ID
    hookwarden todos add SESSION_ID "write tests"
    hookwarden todos done SESSION_ID 1       # By 1-based position or exact text
    hookwarden todos cancel SESSION_ID "update docs"

Exit status of ``handle``: 0 for allow/warn, 2 for block, 1 when the rule
configuration cannot be loaded.
"""

import argparse
import json
import os
import sys
from typing import List, Optional, TextIO, Union

import yaml

from .config import Settings, load_rule_configs
from .errors import ConfigError, LedgerIOError
from .hooks import Decision, Dispatcher, RuleRegistry, Severity, event_from_hook_input, todos_from_hook_input
from .ledger import LedgerStore
from .logger import configure_logging, logger

EXIT_CONFIG_ERROR = 1


def load_registry(config_path: str) -> RuleRegistry:
    return RuleRegistry.load(load_rule_configs(config_path))


def build_dispatcher(settings: Settings) -> Dispatcher:
    """Load the registry and ledger store; raises ConfigError on a bad policy set."""
    registry = load_registry(settings.config_path)
    store = LedgerStore(settings.ledger_path, idle_timeout=settings.idle_timeout)
    logger.info(f"[cli] Loaded {len(registry)} rules from {settings.config_path}")
    return Dispatcher(registry, store, max_workers=settings.max_workers)


def emit_decision(decision: Decision, out: Optional[TextIO] = None, err: Optional[TextIO] = None) -> None:
    out = out or sys.stdout
    err = err or sys.stderr
    out.write(json.dumps(decision.to_dict()) + "\n")
    if decision.verdict is Severity.BLOCK:
        for message in decision.messages:
            err.write(message + "\n")


def handle_event_command(args, settings: Settings) -> int:
    """Read one event from stdin, evaluate it and print the decision."""
    dispatcher = build_dispatcher(settings)

    raw = sys.stdin.read()
    try:
        data = json.loads(raw) if raw.strip() else None
        event = event_from_hook_input(data, project_dir=args.project_dir or os.getenv("CLAUDE_PROJECT_DIR"))
        todos = todos_from_hook_input(data)
    except ValueError as e:
        logger.warning(f"[cli] Unusable hook input: {e}")
        emit_decision(Decision(verdict=Severity.WARN, messages=[f"[input] cannot parse hook input: {e}"]))
        return 0

    if todos is not None:
        session_id = data["session_id"]
        try:
            dispatcher.store.set_todos(session_id, todos)
        except LedgerIOError as e:
            logger.error(f"[cli] Cannot record todos for {session_id}: {e}")
            decision = Decision.blocked(f"[ledger] {e}; todo list not recorded", session_id=session_id)
            emit_decision(decision)
            return decision.exit_code
        logger.debug(f"[cli] Recorded {len(todos)} todo(s) for {session_id}")

    if event is None:
        emit_decision(Decision(session_id=data.get("session_id")))
        return 0

    decision = dispatcher.handle(event)
    emit_decision(decision)
    return decision.exit_code


def handle_check_config_command(args, settings: Settings) -> int:
    registry = load_registry(settings.config_path)
    print(f"{settings.config_path}: {len(registry)} rule(s)")
    for r in registry:
        kinds = ", ".join(sorted(kind.name for kind in r.applies_to))
        scope = f" scope={r.scope}" if r.scope else ""
        print(f"  {r.id:<30} {type(r).type_name:<18} [{kinds}]{scope}")
    return 0


def handle_ledger_command(args, settings: Settings) -> int:
    """Handle ledger management commands."""
    store = LedgerStore(settings.ledger_path, idle_timeout=settings.idle_timeout)

    if args.action == "list":
        sessions = store.list_sessions()
        if not sessions:
            print("No ledgers found.")
            return 0
        print(f"\n{'ID':<40} {'Status':<8} {'Todos':<6} {'Open':<6} {'Updated'}")
        print("-" * 80)
        for s in sessions:
            print(f"{s['id']:<40} {s['status']:<8} {s.get('todos', 0):<6} {s.get('outstanding', 0):<6} {s.get('updated', 'N/A')[:19]}")
        return 0

    if args.action == "gc":
        removed = store.collect_idle()
        print(f"Removed {len(removed)} idle ledger(s).")
        return 0

    if not args.session_id:
        print(f"Error: session_id required for '{args.action}' action", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    if args.action == "show":
        if not store.exists(args.session_id):
            print(f"Ledger '{args.session_id}' not found.")
            return 0
        with store.lock(args.session_id):
            ledger = store.load(args.session_id)
        print(yaml.safe_dump(ledger.to_dict(), default_flow_style=False, sort_keys=False), end="")
        return 0

    with store.lock(args.session_id):
        deleted = store.delete(args.session_id)
    print(f"Ledger '{args.session_id}' deleted." if deleted else f"Ledger '{args.session_id}' not found.")
    return 0


def _todo_ref(value: str) -> Union[int, str]:
    if value.isdigit():
        return int(value) - 1
    return value


def handle_todos_command(args, settings: Settings) -> int:
    """Handle todo tracking commands."""
    store = LedgerStore(settings.ledger_path, idle_timeout=settings.idle_timeout)

    try:
        if args.action == "list":
            with store.lock(args.session_id):
                ledger = store.load(args.session_id)
        else:
            if not args.item:
                print(f"Error: todo text or position required for '{args.action}'", file=sys.stderr)
                return EXIT_CONFIG_ERROR
            if args.action == "add":
                ledger = store.add_todo(args.session_id, args.item)
            elif args.action == "done":
                ledger = store.complete_todo(args.session_id, _todo_ref(args.item))
            else:
                ledger = store.cancel_todo(args.session_id, _todo_ref(args.item))
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    if not ledger.todos:
        print("No todos recorded.")
    for i, todo in enumerate(ledger.todos, start=1):
        print(f"{i:>3}. [{'x' if todo.done else ' '}] {todo.text}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hookwarden",
        description="Lifecycle hook dispatcher and policy-rule engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  hookwarden handle < event.json                 # Evaluate a hook event
  hookwarden --config rules.yaml check-config    # Validate rules
  hookwarden todos add SESSION "update docs"     # Track a todo
        """
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Rule configuration file (default: $HOOKWARDEN_CONFIG or hookwarden.yaml)"
    )
    parser.add_argument(
        "--ledger-path",
        type=str,
        default=None,
        help="Directory for session ledgers (default: $HOOKWARDEN_LEDGER_PATH or .hookwarden)"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        help="Log level for diagnostics on stderr (default: WARNING)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    handle_parser = subparsers.add_parser("handle", help="Evaluate one hook event read from stdin")
    handle_parser.add_argument(
        "--project-dir",
        type=str,
        default=None,
        help="Directory that file paths are made relative to (default: $CLAUDE_PROJECT_DIR or the event's cwd)"
    )

    subparsers.add_parser("check-config", help="Validate the rule configuration")

    ledger_parser = subparsers.add_parser("ledger", help="Manage session ledgers")
    ledger_parser.add_argument(
        "action",
        choices=["list", "show", "delete", "gc"],
        help="Ledger action"
    )
    ledger_parser.add_argument(
        "session_id",
        nargs="?",
        help="Session ID (for show/delete)"
    )

    todos_parser = subparsers.add_parser("todos", help="Track session todos")
    todos_parser.add_argument(
        "action",
        choices=["list", "add", "done", "cancel"],
        help="Todo action"
    )
    todos_parser.add_argument("session_id", help="Session ID")
    todos_parser.add_argument(
        "item",
        nargs="?",
        help="Todo text (add) or 1-based position / exact text (done, cancel)"
    )

    return parser


COMMANDS = {
    "handle": handle_event_command,
    "check-config": handle_check_config_command,
    "ledger": handle_ledger_command,
    "todos": handle_todos_command,
}


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    try:
        settings = Settings.from_env()
        if args.config:
            settings.config_path = args.config
        if args.ledger_path:
            settings.ledger_path = args.ledger_path
        if args.log_level:
            settings.log_level = args.log_level
        configure_logging(settings.log_level, settings.log_file)

        return COMMANDS[args.command](args, settings)
    except ConfigError as e:
        logger.error(f"[cli] Invalid configuration: {e}")
        print(f"hookwarden: configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    except LedgerIOError as e:
        logger.error(f"[cli] {e}")
        print(f"hookwarden: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR


if __name__ == "__main__":
    sys.exit(main())
