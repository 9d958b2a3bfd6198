"""Version snapshots taken before destructive proposals run.

A proposal that carries warnings (deletions, bulk rewrites) first asks the host
to save a labeled version. The snapshot is best-effort: hosts without version
history (drafts, offline files) simply skip it and execution continues.
"""

from __future__ import annotations

import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Deque

from .executor import ExecutionResult, PendingScript, ScriptExecutor

LOGGER = logging.getLogger(__name__)

DEFAULT_CHECKPOINT_LABEL = "Design copilot: auto-saved before destructive change"
MAX_CHECKPOINT_RECORDS = 50


@dataclass(slots=True, frozen=True)
class CheckpointRecord:
    """A version the host saved on our behalf.

    Attributes:
        checkpoint_id: Local identifier (``ckpt-<n>-<hex>``).
        label: Title passed to the host.
        version_id: Identifier returned by the host, if any.
        created_at: When the snapshot was taken.
    """

    checkpoint_id: str
    label: str
    version_id: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class SafetyCheckpoint:
    """Saves a host version before proposals flagged with warnings."""

    def __init__(
        self,
        host: Any,
        *,
        label: str = DEFAULT_CHECKPOINT_LABEL,
        max_records: int = MAX_CHECKPOINT_RECORDS,
    ) -> None:
        self._host = host
        self._label = label
        self._records: Deque[CheckpointRecord] = deque(maxlen=max(1, max_records))
        self._counter = 0

    @property
    def label(self) -> str:
        return self._label

    @property
    def records(self) -> list[CheckpointRecord]:
        """Successful checkpoints, newest last."""

        return list(self._records)

    async def maybe_checkpoint(self, has_warnings: bool) -> CheckpointRecord | None:
        if not has_warnings:
            return None
        try:
            version_id = await self._host.save_version_history_async(self._label)
        except Exception as exc:
            LOGGER.warning("Version snapshot skipped: %s", exc)
            return None

        self._counter += 1
        record = CheckpointRecord(
            checkpoint_id=f"ckpt-{self._counter}-{uuid.uuid4().hex[:8]}",
            label=self._label,
            version_id=str(version_id) if version_id is not None else None,
        )
        self._records.append(record)
        LOGGER.info("Saved version %s before destructive change", record.version_id)
        return record


async def execute_with_safety(
    executor: ScriptExecutor,
    checkpoint: SafetyCheckpoint,
    pending: PendingScript,
) -> ExecutionResult:
    """Checkpoint when *pending* carries warnings, then run its script."""

    await checkpoint.maybe_checkpoint(pending.has_warnings)
    return await executor.execute(pending.code)


__all__ = [
    "DEFAULT_CHECKPOINT_LABEL",
    "MAX_CHECKPOINT_RECORDS",
    "CheckpointRecord",
    "SafetyCheckpoint",
    "execute_with_safety",
]
