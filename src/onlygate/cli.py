"""Command-line interface for onlygate."""

import argparse
import json
import logging
import os
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from .common import (
    DEFAULT_STORE_DIR,
    ENV_BUILD_VERSION,
    ENV_DEBUGGABLE,
    ENV_STORE,
    VERSION,
    parse_flag,
)
from .engine import GateEngine
from .errors import (
    OnlyGateError,
    gate_not_found,
    invalid_argument,
    print_error,
    store_exists,
    store_invalid,
    store_not_found,
)
from .keys import KEY_DELIMITER
from .spec import GateSpec, InvalidGateSpecError
from .store import InvalidStoreError, PreferenceStore, StoreExistsError, init_store


class _CommandError(Exception):
    """Carries a structured error out of a command handler."""

    def __init__(self, error: OnlyGateError):
        self.error = error
        super().__init__(error.message)


@contextmanager
def _open_engine(args: argparse.Namespace) -> Iterator[GateEngine]:
    """Open the store named by --store and bind an engine to it."""
    store_root = Path(args.store)
    if not store_root.exists():
        raise _CommandError(store_not_found(str(store_root)))

    store = PreferenceStore(store_root)
    try:
        store.open()
    except InvalidStoreError as e:
        raise _CommandError(store_invalid(str(store_root), e.reason))

    try:
        yield GateEngine(store, build_version=args.build_version, debuggable=args.debuggable)
    finally:
        store.close()


def _check_name(name: str) -> None:
    if not name or KEY_DELIMITER in name:
        raise _CommandError(
            invalid_argument("name", name, "gate name must be non-empty and free of \\x1f")
        )


def _print_state(state: dict, json_mode: bool) -> None:
    if json_mode:
        print(json.dumps(state, indent=2))
        return
    print(f"Gate: {state['name']}")
    print(f"  Count: {state['count']}")
    print(f"  Version: {state['version'] or '(build version)'}")
    print(f"  Before-done fired: {'yes' if state['before_done_fired'] else 'no'}")
    if state["marking"] is not None:
        print(f"  Marking: {state['marking']}")


def cmd_init(args: argparse.Namespace) -> int:
    """Handle the init command."""
    store_root = Path(args.store)

    try:
        store_meta = init_store(store_root)
    except StoreExistsError:
        raise _CommandError(store_exists(str(store_root)))

    if args.json:
        print(json.dumps(store_meta, indent=2))
    else:
        print(f"Initialized store: {store_root}")
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    """Handle the list command."""
    with _open_engine(args) as engine:
        states = [engine.get_state(name).to_dict() for name in engine.list_gates()]

    if args.json:
        print(json.dumps({"gates": states}, indent=2))
    elif not states:
        print("No gates found.")
    else:
        for state in states:
            marking = f"  marking={state['marking']}" if state["marking"] is not None else ""
            print(f"{state['name']}  count={state['count']}{marking}")
    return 0


def cmd_show(args: argparse.Namespace) -> int:
    """Handle the show command."""
    _check_name(args.name)
    with _open_engine(args) as engine:
        if not engine.has_gate(args.name):
            raise _CommandError(gate_not_found(args.name, args.store))
        state = engine.get_state(args.name).to_dict()

    _print_state(state, args.json)
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    """Handle the run command: evaluate a gate once and report what fired."""
    fired: list[str] = []

    try:
        spec = GateSpec(
            name=args.name,
            limit=args.times,
            on_do=lambda: fired.append("do"),
            on_done=lambda: fired.append("done"),
            on_last_do=lambda: fired.append("last-do"),
            on_before_done=lambda: fired.append("before-done"),
            version=None if args.no_version_check else args.gate_version,
            marking=args.mark,
        )
    except InvalidGateSpecError as e:
        if e.argument == "limit":
            raise _CommandError(invalid_argument("times", str(args.times), str(e)))
        raise _CommandError(invalid_argument("name", args.name, str(e)))

    with _open_engine(args) as engine:
        engine.set_debug_bypass(args.bypass)
        engine.evaluate(spec)
        state = engine.get_state(args.name).to_dict()

    if args.json:
        print(json.dumps({"name": args.name, "fired": fired, "state": state}, indent=2))
    else:
        print(" ".join(fired))
    return 0


def cmd_set_count(args: argparse.Namespace) -> int:
    """Handle the set-count command."""
    _check_name(args.name)
    if args.value < 0:
        raise _CommandError(
            invalid_argument("value", str(args.value), "count must be non-negative")
        )

    with _open_engine(args) as engine:
        engine.set_count(args.name, args.value)
        state = engine.get_state(args.name).to_dict()

    if args.json:
        _print_state(state, True)
    else:
        print(f"Set count of {args.name} to {args.value}")
    return 0


def cmd_mark(args: argparse.Namespace) -> int:
    """Handle the mark command."""
    _check_name(args.name)
    with _open_engine(args) as engine:
        engine.mark(args.name, args.value)
        state = engine.get_state(args.name).to_dict()

    if args.json:
        _print_state(state, True)
    else:
        print(f"Marked {args.name}: {args.value}")
    return 0


def cmd_clear(args: argparse.Namespace) -> int:
    """Handle the clear command."""
    _check_name(args.name)
    with _open_engine(args) as engine:
        existed = engine.has_gate(args.name)
        engine.clear_gate(args.name)

    if args.json:
        print(json.dumps({"name": args.name, "cleared": existed}, indent=2))
    else:
        print(f"Cleared {args.name}" if existed else f"Nothing to clear for {args.name}")
    return 0


def cmd_clear_all(args: argparse.Namespace) -> int:
    """Handle the clear-all command."""
    with _open_engine(args) as engine:
        names = engine.list_gates()
        engine.clear_all_gates()

    if args.json:
        print(json.dumps({"cleared": names}, indent=2))
    else:
        print(f"Cleared {len(names)} gate(s)")
    return 0


def _build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--store",
        default=os.environ.get(ENV_STORE, DEFAULT_STORE_DIR),
        help=f"Store directory (default: ${ENV_STORE} or {DEFAULT_STORE_DIR})",
    )
    common.add_argument(
        "--build-version",
        default=os.environ.get(ENV_BUILD_VERSION, VERSION),
        help=f"Build version used for version-aware gates (default: ${ENV_BUILD_VERSION})",
    )
    common.add_argument(
        "--debuggable",
        action="store_true",
        default=parse_flag(os.environ.get(ENV_DEBUGGABLE, "")),
        help="Treat the host build as debuggable (enables --bypass)",
    )
    common.add_argument("--json", action="store_true", help="Output as JSON")
    common.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")

    parser = argparse.ArgumentParser(
        prog="onlygate",
        description="Persisted run-only-N-times gates",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    init_parser = subparsers.add_parser("init", parents=[common], help="Initialize a new store")
    init_parser.set_defaults(func=cmd_init)

    list_parser = subparsers.add_parser("list", parents=[common], help="List gates")
    list_parser.set_defaults(func=cmd_list)

    show_parser = subparsers.add_parser("show", parents=[common], help="Show gate state")
    show_parser.add_argument("name", help="Gate name")
    show_parser.set_defaults(func=cmd_show)

    run_parser = subparsers.add_parser("run", parents=[common], help="Evaluate a gate once")
    run_parser.add_argument("name", help="Gate name")
    run_parser.add_argument("--times", type=int, default=1, help="Repetition limit")
    run_parser.add_argument(
        "--gate-version", default="", help="Version tag (default: build version)"
    )
    run_parser.add_argument(
        "--no-version-check", action="store_true", help="Skip the version check"
    )
    run_parser.add_argument("--mark", default=None, help="Marking for first activation")
    run_parser.add_argument(
        "--bypass", action="store_true", help="Debug bypass (debuggable builds only)"
    )
    run_parser.set_defaults(func=cmd_run)

    set_count_parser = subparsers.add_parser(
        "set-count", parents=[common], help="Overwrite a gate's count"
    )
    set_count_parser.add_argument("name", help="Gate name")
    set_count_parser.add_argument("value", type=int, help="New count")
    set_count_parser.set_defaults(func=cmd_set_count)

    mark_parser = subparsers.add_parser("mark", parents=[common], help="Overwrite a gate's marking")
    mark_parser.add_argument("name", help="Gate name")
    mark_parser.add_argument("value", help="Marking")
    mark_parser.set_defaults(func=cmd_mark)

    clear_parser = subparsers.add_parser("clear", parents=[common], help="Clear one gate")
    clear_parser.add_argument("name", help="Gate name")
    clear_parser.set_defaults(func=cmd_clear)

    clear_all_parser = subparsers.add_parser("clear-all", parents=[common], help="Clear all gates")
    clear_all_parser.set_defaults(func=cmd_clear_all)

    return parser


def main(argv: list[str] = None) -> int:
    """Main entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        return args.func(args)
    except _CommandError as e:
        print_error(e.error, json_mode=args.json)
        return 1


if __name__ == "__main__":
    sys.exit(main())
