"""Command line front-end driving a copilot session against a JSON document."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, TextIO, get_type_hints

from .document.loader import DocumentFormatError, load_document, save_document
from .document.memory import InMemoryHost
from .services.settings import Settings, SettingsStore, redact_secret
from .session.events import (
    ClarificationNeeded,
    ConnectionTestResult,
    Event,
    ExecutionFailed,
    ExecutionSucceeded,
    FocusChanged,
    GenericError,
    PlainReply,
    ProposalReady,
    SettingsSnapshot,
    ThinkingStarted,
)
from .session.messages import CancelProposal, ClearChat, ConfirmProposal, SubmitUtterance, TestConnection
from .session.orchestrator import CopilotSession
from .utils import logging as logging_utils

_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_FALSE_VALUES = {"0", "false", "no", "off", "disabled"}
_CONFIRM_VALUES = {"y", "yes"}
_EXIT_COMMANDS = {"exit", "quit", ":q"}
_LOGGER = logging.getLogger(__name__)


def configure_logging(debug: bool = False, *, log_dir: Path | None = None, force: bool = False) -> Path:
    """Configure file logging; echo to the console only when debugging."""

    level = logging_utils.level_for(debug)
    path = logging_utils.setup_logging(level, log_dir=log_dir, console=debug, force=force)
    _LOGGER.debug("Logging configured (level=%s, file=%s)", logging.getLevelName(level), path)
    return path


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        settings = active_store.load(overrides=overrides)
    except Exception as exc:  # pragma: no cover - defensive path
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        settings = Settings()
    return settings


class ConsolePrinter:
    """Renders session events as plain text."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream or sys.stdout
        self.executed = 0
        self.failed = 0

    def __call__(self, event: Event) -> None:
        write = self._write
        if isinstance(event, FocusChanged):
            if event.nodes:
                names = ", ".join(node["name"] or node["id"] for node in event.nodes)
                write(f"Page: {event.page_name} | Selected: {names}")
            else:
                write(f"Page: {event.page_name} | Nothing selected")
        elif isinstance(event, ThinkingStarted):
            write("Thinking...")
        elif isinstance(event, ProposalReady):
            write(f"Proposal: {event.summary}")
            for warning in event.warnings:
                write(f"  ! {warning}")
            write("--- code ---")
            write(event.code.rstrip())
            write("------------")
        elif isinstance(event, ClarificationNeeded):
            write(f"? {event.question}")
        elif isinstance(event, PlainReply):
            write(event.text)
        elif isinstance(event, ExecutionSucceeded):
            self.executed += 1
            write(f"Done: {event.summary}")
        elif isinstance(event, ExecutionFailed):
            self.failed += 1
            write(f"Failed: {event.error}")
        elif isinstance(event, GenericError):
            self.failed += 1
            write(f"Error: {event.message}")
        elif isinstance(event, ConnectionTestResult):
            if not event.success:
                self.failed += 1
            write("Connection OK" if event.success else f"Connection failed: {event.error}")
        elif isinstance(event, SettingsSnapshot):
            preview = event.key_preview or "(not set)"
            write(f"Model: {event.model} | API key: {preview}")

    def _write(self, text: str) -> None:
        self._stream.write(f"{text}\n")
        self._stream.flush()


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point invoked by the `designpilot` console script."""

    args = _parse_cli_args(argv)

    debug = args.debug or _env_flag("DESIGNPILOT_DEBUG", default=False)
    log_dir = Path(args.log_dir).expanduser() if args.log_dir else None
    configure_logging(debug, log_dir=log_dir)

    settings_path = args.settings_path or os.environ.get("DESIGNPILOT_SETTINGS_PATH")
    resolved_path = Path(settings_path).expanduser() if settings_path else None
    settings_store = SettingsStore(resolved_path)
    try:
        cli_overrides = _coerce_cli_overrides(args.overrides or [])
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        return 2

    settings = load_settings(resolved_path, store=settings_store, overrides=cli_overrides or None)

    if args.dump_settings:
        _dump_settings(settings, settings_store, overrides=cli_overrides)
        return 0

    if settings.debug_logging and not debug:
        configure_logging(True, log_dir=log_dir, force=True)

    if not args.document:
        print("A document path is required (see --help).", file=sys.stderr)
        return 2

    try:
        return asyncio.run(_run(args, settings, settings_store))
    except KeyboardInterrupt:  # pragma: no cover - manual shutdown path
        _LOGGER.info("Shutdown requested by user.")
        return 130


async def _run(args: argparse.Namespace, settings: Settings, store: SettingsStore) -> int:
    document_path = Path(args.document).expanduser()
    try:
        document = load_document(document_path)
    except (OSError, DocumentFormatError) as exc:
        print(f"Cannot open {document_path}: {exc}", file=sys.stderr)
        return 2

    host = InMemoryHost(document)
    if args.select:
        nodes = []
        for node_id in args.select:
            node = document.get_node(node_id)
            if node is None or node.type == "PAGE":
                print(f"Unknown layer id: {node_id}", file=sys.stderr)
                return 2
            nodes.append(node)
        host.select(nodes)

    printer = ConsolePrinter()
    async with CopilotSession(host, settings, settings_store=store) as session:
        session.bus.subscribe(Event, printer)
        if args.test_connection:
            await session.handle(TestConnection())
            return 0 if printer.failed == 0 else 1

        session.notify_focus_changed()
        if args.request:
            await _turn(session, " ".join(args.request), assume_yes=args.yes)
        else:
            await _repl(session, assume_yes=args.yes)

    if printer.executed:
        output = Path(args.output).expanduser() if args.output else document_path
        save_document(host.document, output)
        print(f"Saved {output}")
    return 1 if printer.failed and not printer.executed else 0


async def _turn(session: CopilotSession, text: str, *, assume_yes: bool) -> None:
    await session.handle(SubmitUtterance(text=text))
    if session.pending is None:
        return
    if assume_yes or (await _ask("Apply this change? [y/N] ")).lower() in _CONFIRM_VALUES:
        await session.handle(ConfirmProposal())
    else:
        await session.handle(CancelProposal())


async def _repl(session: CopilotSession, *, assume_yes: bool) -> None:
    while True:
        try:
            line = await _ask("designpilot> ")
        except EOFError:
            return
        if not line:
            continue
        if line in _EXIT_COMMANDS:
            return
        if line == "/clear":
            await session.handle(ClearChat())
            continue
        await _turn(session, line, assume_yes=assume_yes)


async def _ask(prompt: str) -> str:
    answer = await asyncio.to_thread(input, prompt)
    return answer.strip()


def _env_flag(name: str, *, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _parse_cli_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="designpilot",
        description="Ask the design copilot to change a JSON design document.",
    )
    parser.add_argument("document", nargs="?", help="Path to the design document (JSON).")
    parser.add_argument("request", nargs="*", help="Request text. Omit to start an interactive prompt.")
    parser.add_argument(
        "--select",
        metavar="ID",
        action="append",
        default=[],
        help="Select a layer by id before the request (repeatable).",
    )
    parser.add_argument("-y", "--yes", action="store_true", help="Apply proposals without asking.")
    parser.add_argument("-o", "--output", metavar="PATH", help="Write the changed document here instead.")
    parser.add_argument(
        "--test-connection",
        action="store_true",
        help="Verify the configured API key and endpoint, then exit.",
    )
    parser.add_argument(
        "--dump-settings",
        action="store_true",
        help="Print the effective settings payload (with secrets redacted) and exit.",
    )
    parser.add_argument(
        "--settings-path",
        metavar="PATH",
        help="Override the default ~/.designpilot/settings.json path.",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override persisted settings for this run (repeatable).",
    )
    parser.add_argument("--log-dir", metavar="PATH", help="Write logs here instead of ~/.designpilot/logs.")
    parser.add_argument("--debug", action="store_true", help="Log at DEBUG level and echo logs to stderr.")
    return parser.parse_args(argv)


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if not items:
        return overrides

    fields = Settings.__dataclass_fields__  # type: ignore[attr-defined]
    type_hints = get_type_hints(Settings)
    for entry in items:
        if "=" not in entry:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        key, raw_value = entry.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError("Override is missing a field name.")
        if key not in fields:
            raise ValueError(f"Unknown setting '{key}'.")
        overrides[key] = _coerce_value(type_hints.get(key, str), raw_value.strip())
    return overrides


def _coerce_value(annotation: Any, raw_value: str) -> Any:
    if annotation is bool:
        return _parse_bool(raw_value)
    if annotation is int:
        return int(raw_value, 10)
    if annotation is float:
        return float(raw_value)
    return raw_value


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Cannot coerce '{value}' to a boolean.")


def _dump_settings(
    settings: Settings,
    store: SettingsStore,
    *,
    overrides: Mapping[str, Any],
    stream: TextIO | None = None,
) -> None:
    destination = stream or sys.stdout
    payload = asdict(settings)
    payload["api_key"] = redact_secret(settings.api_key)
    metadata = {
        "path": str(store.path),
        "secret_backend": store.vault.strategy,
        "cli_overrides": sorted(overrides.keys()),
        "environment_variables": _active_env_overrides(),
    }
    json.dump({"settings": payload, "meta": metadata}, destination, indent=2)
    destination.write("\n")


def _active_env_overrides() -> list[str]:
    return sorted(name for name in os.environ if name.startswith("DESIGNPILOT_"))


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
