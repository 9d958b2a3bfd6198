"""Tests for :mod:`designpilot.execution.checkpoints`."""

from __future__ import annotations

import logging

import pytest

from designpilot.document.memory import InMemoryHost
from designpilot.document.nodes import DocumentRoot
from designpilot.execution.checkpoints import (
    DEFAULT_CHECKPOINT_LABEL,
    SafetyCheckpoint,
    execute_with_safety,
)
from designpilot.execution.executor import PendingScript, ScriptExecutor


class OrderedHost(InMemoryHost):
    """Logs version saves and undo commits in call order."""

    def __init__(self, document: DocumentRoot, **kwargs: object) -> None:
        super().__init__(document, **kwargs)  # type: ignore[arg-type]
        self.calls: list[str] = []

    async def save_version_history_async(self, title: str) -> str:
        self.calls.append("version")
        return await super().save_version_history_async(title)

    def commit_undo(self) -> None:
        self.calls.append("commit")
        super().commit_undo()


def _delete_card(warnings: list[str]) -> PendingScript:
    return PendingScript(
        summary="Delete the card",
        code='card = await get_node("1:5")\ncard.remove()\n',
        warnings=warnings,
    )


@pytest.mark.asyncio
async def test_warnings_trigger_a_checkpoint_before_execution(document: DocumentRoot) -> None:
    host = OrderedHost(document)
    checkpoint = SafetyCheckpoint(host)

    result = await execute_with_safety(ScriptExecutor(host), checkpoint, _delete_card(["Deletes 'Card' and 1 child"]))

    assert result.success is True
    assert host.calls == ["version", "commit"]
    assert [entry.title for entry in host.versions] == [DEFAULT_CHECKPOINT_LABEL]
    assert host.document.get_node("1:5") is None


@pytest.mark.asyncio
async def test_no_warnings_means_no_checkpoint(document: DocumentRoot) -> None:
    host = OrderedHost(document)
    checkpoint = SafetyCheckpoint(host)

    result = await execute_with_safety(ScriptExecutor(host), checkpoint, _delete_card([]))

    assert result.success is True
    assert host.calls == ["commit"]
    assert host.versions == []
    assert checkpoint.records == []


@pytest.mark.asyncio
async def test_checkpoint_failure_does_not_block_execution(
    document: DocumentRoot, caplog: pytest.LogCaptureFixture
) -> None:
    host = InMemoryHost(document, allow_version_history=False)
    checkpoint = SafetyCheckpoint(host)

    with caplog.at_level(logging.WARNING, logger="designpilot.execution.checkpoints"):
        result = await execute_with_safety(ScriptExecutor(host), checkpoint, _delete_card(["Deletes a frame"]))

    assert result.success is True
    assert checkpoint.records == []
    assert any("Version snapshot skipped" in record.getMessage() for record in caplog.records)


@pytest.mark.asyncio
async def test_records_are_bounded_and_track_host_versions(host: InMemoryHost) -> None:
    checkpoint = SafetyCheckpoint(host, label="Before cleanup", max_records=2)

    for _ in range(3):
        await checkpoint.maybe_checkpoint(True)

    records = checkpoint.records
    assert len(records) == 2
    assert len(host.versions) == 3
    assert records[-1].version_id == host.versions[-1].version_id
    assert records[-1].label == "Before cleanup"
    assert len({record.checkpoint_id for record in records}) == 2


@pytest.mark.asyncio
async def test_checkpoint_ids_carry_a_sequence_prefix(host: InMemoryHost) -> None:
    checkpoint = SafetyCheckpoint(host)

    first = await checkpoint.maybe_checkpoint(True)
    second = await checkpoint.maybe_checkpoint(True)

    assert first is not None and first.checkpoint_id.startswith("ckpt-1-")
    assert second is not None and second.checkpoint_id.startswith("ckpt-2-")
    assert checkpoint.records == [first, second]


@pytest.mark.asyncio
async def test_no_warnings_is_a_no_op(host: InMemoryHost) -> None:
    assert await SafetyCheckpoint(host).maybe_checkpoint(False) is None
    assert host.versions == []
