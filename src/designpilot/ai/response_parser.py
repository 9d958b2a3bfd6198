"""Parsing of the JSON envelope the model answers with."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Mapping

from ..errors import MalformedResponseError

__all__ = ["ModelResponse", "parse_model_response", "strip_code_fence"]

_OPENING_FENCE_RE = re.compile(r"^```(?:json)?", re.IGNORECASE)


@dataclass(slots=True)
class ModelResponse:
    """One decoded model answer: a proposal, a clarification or a plain message."""

    summary: str | None = None
    code: str | None = None
    warnings: list[str] = field(default_factory=list)
    message: str | None = None
    clarification: str | None = None

    @property
    def is_proposal(self) -> bool:
        return bool(self.code and self.summary)

    @property
    def reply_text(self) -> str | None:
        return self.clarification or self.message


def strip_code_fence(text: str) -> str:
    """Remove one leading ```` ```json ```` / ```` ``` ```` fence and one trailing fence."""

    cleaned = text.strip()
    match = _OPENING_FENCE_RE.match(cleaned)
    if match:
        cleaned = cleaned[match.end() :]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def parse_model_response(text: str) -> ModelResponse:
    cleaned = strip_code_fence(text or "")
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise MalformedResponseError(
            message=f"Invalid JSON from the model: {exc.msg}",
            details={"line": exc.lineno, "column": exc.colno},
            raw_text=text,
        ) from exc
    if not isinstance(parsed, Mapping):
        raise MalformedResponseError(
            message="The model response was not a JSON object.",
            details={"type": type(parsed).__name__},
            raw_text=text,
        )
    return ModelResponse(
        summary=_text_or_none(parsed.get("summary")),
        code=_text_or_none(parsed.get("code")),
        warnings=_warnings(parsed.get("warnings")),
        message=_text_or_none(parsed.get("message")),
        clarification=_text_or_none(parsed.get("clarification")),
    )


def _text_or_none(value: Any) -> str | None:
    if value is None:
        return None
    text = value if isinstance(value, str) else str(value)
    return text or None


def _warnings(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item is not None and str(item).strip()]
