"""Token estimation utilities for model requests."""

from __future__ import annotations

import json
from typing import Any

# Average characters per token for English prose and compact JSON
CHARS_PER_TOKEN = 4.0


def compact_json(payload: Any) -> str:
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def estimate_budget_units(payload: Any) -> float:
    """Return the context budget cost of *payload*: compact JSON character count over four.

    The result is left unrounded so two payloads compare against the ceiling exactly.
    """

    return len(compact_json(payload)) / CHARS_PER_TOKEN


__all__ = ["CHARS_PER_TOKEN", "compact_json", "estimate_budget_units"]
