"""Runs approved proposal scripts against the live document."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from .runtime import build_namespace, compile_script, run_script

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_FONT_RETRIES = 3

# Matches both the JS-style host message
#   unloaded font "Inter Bold". Please call figma.loadFontAsync({ family: "Inter", style: "Bold" })
# and the Python-style one raised by TextNode setters.
MISSING_FONT_RE = re.compile(
    r'unloaded font "(?P<font>[^"]*)".*?family["\']?\s*[:=]\s*"(?P<family>[^"]+)"'
    r'.*?style["\']?\s*[:=]\s*"(?P<style>[^"]+)"',
    re.DOTALL,
)


@dataclass(slots=True)
class PendingScript:
    """A proposal awaiting the operator's decision."""

    summary: str
    code: str
    warnings: list[str] = field(default_factory=list)

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)


@dataclass(slots=True)
class ExecutionResult:
    success: bool
    error: str | None = None
    attempts: int = 0


class _MissingFontRetry(Exception):
    """Raised inside an attempt after the missing font was loaded."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


def describe_exception(exc: BaseException) -> str:
    message = str(exc)
    return message if message else type(exc).__name__


def match_missing_font(message: str) -> tuple[str, str] | None:
    """Return ``(family, style)`` when *message* reports an unloaded font."""

    match = MISSING_FONT_RE.search(message or "")
    if match is None:
        return None
    return match.group("family"), match.group("style")


class ScriptExecutor:
    """Execute scripts, reloading missing fonts and rerunning the whole script.

    Changes made by a failed attempt are discarded before the next attempt when
    the host offers ``discard_uncommitted``. A successful run closes exactly one
    undo batch via ``host.commit_undo()``.
    """

    def __init__(self, host: Any, *, max_font_retries: int = DEFAULT_MAX_FONT_RETRIES) -> None:
        self._host = host
        self._max_font_retries = max(0, int(max_font_retries))

    @property
    def max_font_retries(self) -> int:
        return self._max_font_retries

    async def execute(self, script_text: str) -> ExecutionResult:
        try:
            code = compile_script(script_text)
        except (SyntaxError, ValueError) as exc:
            LOGGER.warning("Proposal script does not compile: %s", exc)
            return ExecutionResult(success=False, error=describe_exception(exc))

        attempts = 0
        try:
            async for attempt in self._retrying():
                with attempt:
                    attempts += 1
                    try:
                        await run_script(code, build_namespace(self._host))
                    except (Exception, SystemExit) as exc:
                        message = describe_exception(exc)
                        self._discard_changes()
                        if attempts <= self._max_font_retries and await self._recover_font(message):
                            LOGGER.info("Rerunning script after loading missing font (attempt %s)", attempts + 1)
                            raise _MissingFontRetry(message) from exc
                        LOGGER.warning("Script failed on attempt %s: %s", attempts, message)
                        return ExecutionResult(success=False, error=message, attempts=attempts)
        except _MissingFontRetry as exc:
            return ExecutionResult(success=False, error=exc.message, attempts=attempts)

        self._host.commit_undo()
        LOGGER.info("Script executed successfully after %s attempt(s)", attempts)
        return ExecutionResult(success=True, attempts=attempts)

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(self._max_font_retries + 1),
            retry=retry_if_exception_type(_MissingFontRetry),
        )

    async def _recover_font(self, message: str) -> bool:
        font = match_missing_font(message)
        if font is None:
            return False
        family, style = font
        try:
            await self._host.load_font_async(family, style)
        except Exception:
            LOGGER.warning("Could not load font %s %s", family, style, exc_info=True)
            return False
        return True

    def _discard_changes(self) -> None:
        discard = getattr(self._host, "discard_uncommitted", None)
        if not callable(discard):
            return
        try:
            discard()
        except Exception:
            LOGGER.warning("Host could not discard partial script changes", exc_info=True)


__all__ = [
    "DEFAULT_MAX_FONT_RETRIES",
    "MISSING_FONT_RE",
    "PendingScript",
    "ExecutionResult",
    "ScriptExecutor",
    "describe_exception",
    "match_missing_font",
]
