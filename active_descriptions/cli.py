from __future__ import annotations

import argparse
import json
import sys
import time
from pathlib import Path
from typing import Callable

from . import __version__
from ._exec import run_command
from .candidates import gather_candidates
from .config import Settings, load_settings
from .errors import WorkspaceError
from .jj import JjBackend
from .report import EXIT_BLOCK, EXIT_OK, Outcome, advisory, stop
from .retry import RetryCounter
from .staleness import check_batch
from .util import (
    debug_enabled,
    enable_debug_logging,
    generate_request_id,
    log_event,
    set_request_id,
    setup_json_logger,
)
from .workspace import discover_workspace_root

_LOG = setup_json_logger("active_descriptions.cli")

COMMANDS = ("check", "require-jj", "reset")
GLOBAL_FLAGS = ("--config", "--request-id")

BOOTSTRAP_PREFIX = "jj git init --colocate"
NOT_A_REPO_MESSAGE = (
    "Not in a jujutsu repository. Initialize with 'jj git init --colocate' first."
)


def _normalize_argv(argv: list[str]) -> list[str]:
    """Hoist global flags before the subcommand and default to ``check``.

    ``active-descriptions --stop`` is accepted as ``active-descriptions check --stop``.
    """
    out = list(argv)
    hoisted: list[str] = []
    for flag in GLOBAL_FLAGS:
        if flag in out:
            i = out.index(flag)
            if i + 1 < len(out):
                hoisted.extend(out[i : i + 2])
                del out[i : i + 2]
    if not any(tok in COMMANDS for tok in out) and not any(tok in ("-h", "--help", "--version") for tok in out):
        out.insert(0, "check")
    return [*hoisted, *out]


def _workspace_settings(cfg_path: Path | None, cwd: Path | None) -> tuple[Settings, Path | None]:
    """Load settings including the workspace config file, when in a workspace.

    ``jj root`` runs with the settings known before the workspace is found
    (explicit ``--config`` and environment).
    """
    base = load_settings(cfg_path)
    try:
        root = discover_workspace_root(base, cwd)
    except WorkspaceError as exc:
        log_event(_LOG, "workspace.unavailable", error=exc.detail)
        return base, None
    return load_settings(cfg_path, workspace_root=root), root


def cmd_check(cfg_path: Path | None, *, stop_mode: bool, cwd: Path | None = None) -> Outcome:
    settings, root = _workspace_settings(cfg_path, cwd)
    if root is None:
        return _finish([], settings, stop_mode=stop_mode)
    candidates = gather_candidates(settings, cwd)
    if not candidates:
        return _finish([], settings, stop_mode=stop_mode)

    backend = JjBackend(
        root,
        jj_binary=settings.jj_binary,
        evolog_limit=settings.max_evolog_entries,
        timeout=settings.command_timeout_s,
    )
    results = check_batch(
        backend,
        candidates,
        limit=settings.max_evolog_entries,
        id_length=settings.change_id_length,
    )
    return _finish(results, settings, stop_mode=stop_mode)


def _finish(results, settings: Settings, *, stop_mode: bool) -> Outcome:
    if stop_mode:
        counter = RetryCounter(settings.session_id, settings.retry_dir)
        return stop(results, counter, settings.max_stop_retries)
    return advisory(results)


def cmd_reset(cfg_path: Path | None, cwd: Path | None = None) -> Outcome:
    settings, _ = _workspace_settings(cfg_path, cwd)
    RetryCounter(settings.session_id, settings.retry_dir).reset()
    return Outcome(EXIT_OK)


def _hook_command(raw: str) -> str | None:
    try:
        payload = json.loads(raw)
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    tool_input = payload.get("tool_input")
    if not isinstance(tool_input, dict):
        return None
    command = tool_input.get("command")
    return command if isinstance(command, str) else None


def cmd_require_jj(cfg_path: Path | None, stdin_text: str, cwd: Path | None = None) -> Outcome:
    """PreToolUse gate: block tool calls outside a jj repository.

    ``jj git init --colocate`` is let through so the repository can be created.
    """
    command = _hook_command(stdin_text)
    if command is not None and command.startswith(BOOTSTRAP_PREFIX):
        return Outcome(EXIT_OK)
    settings = load_settings(cfg_path)
    res = run_command(
        "jj_root",
        [settings.jj_binary, "root", "--ignore-working-copy"],
        cwd,
        timeout=settings.command_timeout_s,
    )
    if res.ok:
        return Outcome(EXIT_OK)
    return Outcome(EXIT_BLOCK, stderr=NOT_A_REPO_MESSAGE)


def _run_with_observability(*, command_name: str, fn: Callable[[], Outcome]) -> Outcome:
    started = time.perf_counter()
    log_event(_LOG, "cli.command.start", command=command_name)
    outcome = fn()
    latency_ms = (time.perf_counter() - started) * 1000.0
    log_event(
        _LOG,
        "cli.command.finish",
        command=command_name,
        exit_code=outcome.exit_code,
        gate_outcome="block" if outcome.exit_code == EXIT_BLOCK else "pass",
        latency_ms=round(latency_ms, 3),
    )
    return outcome


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="active-descriptions",
        description="Detect stale jj change descriptions for Claude Code hooks.",
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument("--config", default=None, help="Path to an active-descriptions YAML file.")
    p.add_argument(
        "--request-id",
        default=None,
        help="Correlation identifier for structured debug logs.",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    chk = sub.add_parser("check", help="Report stale descriptions (PostToolUse / Stop hook).")
    chk.add_argument(
        "--stop",
        action="store_true",
        help="Blocking mode: exit 2 with the message on stderr, capped per session.",
    )
    sub.add_parser("require-jj", help="PreToolUse gate: block unless inside a jj repo.")
    sub.add_parser("reset", help="Clear this session's stop-hook retry counter.")
    return p


def run(argv: list[str]) -> int:
    args = build_parser().parse_args(_normalize_argv(argv))
    cfg_path = Path(args.config) if args.config else None
    set_request_id(args.request_id or generate_request_id())

    if args.cmd == "check":
        outcome = _run_with_observability(
            command_name=args.cmd,
            fn=lambda: cmd_check(cfg_path, stop_mode=args.stop),
        )
    elif args.cmd == "require-jj":
        outcome = _run_with_observability(
            command_name=args.cmd,
            fn=lambda: cmd_require_jj(cfg_path, sys.stdin.read()),
        )
    elif args.cmd == "reset":
        outcome = _run_with_observability(
            command_name=args.cmd,
            fn=lambda: cmd_reset(cfg_path),
        )
    else:
        raise RuntimeError("unreachable")

    return outcome.emit()


def main(argv: list[str] | None = None) -> None:
    """Entry point. Never crashes the host: any error means "no findings"."""
    if debug_enabled():
        enable_debug_logging()
    try:
        rc = run(sys.argv[1:] if argv is None else argv)
    except SystemExit:
        # argparse usage errors, --help and --version.
        rc = EXIT_OK
    except Exception as exc:
        if debug_enabled():
            print(f"active-descriptions: {type(exc).__name__}: {exc}", file=sys.stderr)
        rc = EXIT_OK
    raise SystemExit(rc)


if __name__ == "__main__":
    main()
