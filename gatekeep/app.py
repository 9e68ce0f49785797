"""
Command-line entry point for gatekeep.

With arguments, one command runs and its exit code is returned. Without
arguments an interactive prompt dispatches ``/command`` lines until
``quit``/``exit`` or EOF.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
import shlex
import sys
try:
    import readline
except ImportError:  # pragma: no cover
    readline = None
from typing import List, Optional, Sequence

from .commands import COMMANDS
from .configuration import (
    ConfigurationBundle,
    Diagnostic,
    load_runtime_configuration,
    resolve_workspace_root,
)
from .logging_utils import setup_logging
from .persistence import tool_dir
from .slash_commands import EXIT_FAILURE, EXIT_OK, CommandRouter

logger = logging.getLogger("gatekeep")
LOG_LEVEL_ENV = "GATEKEEP_LOG_LEVEL"
TRUE_STRINGS = {"1", "true", "yes", "on"}
FALSE_STRINGS = {"0", "false", "no", "off"}


def _parse_env_flag(value: str, *, default: bool = True) -> bool:
    normalized = value.strip().lower()
    if normalized in TRUE_STRINGS:
        return True
    if normalized in FALSE_STRINGS:
        return False
    return default


def _resolve_ui_verbose(config_bundle: ConfigurationBundle) -> bool:
    env_value = os.environ.get("GATEKEEP_UI_VERBOSE")
    if env_value is not None:
        return _parse_env_flag(env_value)
    ui_cfg = (config_bundle.merged or {}).get("ui") or {}
    verbose_setting = ui_cfg.get("verbose")
    if verbose_setting is None:
        return True
    return bool(verbose_setting)


def build_router(config: ConfigurationBundle) -> CommandRouter:
    router = CommandRouter(config, metadata={"root": str(config.root)})
    for command in COMMANDS:
        router.register(command)
    return router


def emit_configuration_report(config: ConfigurationBundle) -> None:
    """Print diagnostics so operators can correct issues quickly."""

    if not config.diagnostics:
        print(f"[config] Loaded {len(config.files_loaded)} file(s) for {config.root}.")
        return

    print("[config] Diagnostics:")
    for diag in config.diagnostics:
        prefix = diag.source or config.root
        print(f"  - ({diag.level.upper()}) {diag.message} [{prefix}]")


def configure_autocomplete(router: CommandRouter) -> None:
    """Enable readline tab completion for slash commands."""

    if readline is None:
        return

    commands = list(router.command_names)

    def completer(text: str, state: int):
        buffer = readline.get_line_buffer()
        if not buffer.startswith("/"):
            return None
        fragment = text[1:] if text.startswith("/") else text
        matches = [f"/{cmd}" for cmd in commands if cmd.startswith(fragment)]
        if state < len(matches):
            return matches[state]
        return None

    readline.set_completer(completer)
    readline.parse_and_bind("tab: complete")
    readline.set_completer_delims(" \t")


def execute_cli_command(command: str, args: Sequence[str], router: CommandRouter) -> int:
    """Run one command and print its output; returns the command's exit code."""

    name = command[1:] if command.startswith("/") else command
    result = router.handle(name, list(args))
    print(result)
    logger.info("Executed command: /%s %s (exit %s)", name, " ".join(args), router.exit_code)
    return router.exit_code


def bootstrap(root: Optional[Path] = None) -> ConfigurationBundle:
    """Load configuration and start logging for ``root``."""

    config_bundle = load_runtime_configuration(root or resolve_workspace_root())
    logging_cfg = (config_bundle.merged or {}).get("logging") or {}
    level_name = (os.environ.get(LOG_LEVEL_ENV) or logging_cfg.get("level") or "WARNING").upper()
    log_root = config_bundle.root if config_bundle.status == "ready" else Path.cwd()
    log_path = setup_logging(log_root, level_name, bool(logging_cfg.get("structured", True)))
    config_bundle.log_path = log_path
    try:
        log_path.relative_to(tool_dir(log_root))
    except ValueError:
        config_bundle.diagnostics.append(
            Diagnostic(
                level="warning",
                message=f"Workspace log directory is not writable; logging to '{log_path}'.",
                source=log_path,
            )
        )
    logger.info("Logging initialized at %s", log_path)
    return config_bundle


def repl(router: CommandRouter, *, verbose: bool = True) -> int:
    configure_autocomplete(router)
    if verbose:
        print("gatekeep setup shell. Type /help for commands, 'quit' to leave.")
    last_exit = EXIT_OK
    while True:
        try:
            raw_line = input("> ")
        except (EOFError, KeyboardInterrupt):
            print()
            break

        line = raw_line.strip()
        if not line:
            continue
        if line.lower() in {"quit", "exit", "/quit", "/exit"}:
            break
        try:
            parts = shlex.split(line)
        except ValueError as exc:
            print(f"[shell] {exc}")
            continue
        last_exit = execute_cli_command(parts[0], parts[1:], router)
    return last_exit


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Entry point for ``python -m gatekeep``."""

    args: List[str] = list(argv) if argv is not None else sys.argv[1:]
    config_bundle = bootstrap()
    router = build_router(config_bundle)

    if not args:
        verbose = _resolve_ui_verbose(config_bundle)
        if verbose:
            emit_configuration_report(config_bundle)
        return repl(router, verbose=verbose)

    command = "help" if args[0] in {"-h", "--help"} else args[0]
    exit_code = execute_cli_command(command, args[1:], router)
    return EXIT_FAILURE if exit_code else EXIT_OK


__all__ = ["bootstrap", "build_router", "execute_cli_command", "main"]
