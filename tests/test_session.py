"""Tests for :mod:`designpilot.session.orchestrator`."""

from __future__ import annotations

import asyncio
import base64
import json
from pathlib import Path
from typing import Any

import pytest

from designpilot.ai.client import ClientSettings
from designpilot.ai.prompts import RETRY_JSON_INSTRUCTION
from designpilot.document.memory import InMemoryHost
from designpilot.document.nodes import DocumentRoot, SceneNode
from designpilot.errors import ErrorCode, InvalidCredentialError, ProviderUnreachableError
from designpilot.services.settings import Settings, SettingsStore
from designpilot.session.events import (
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
from designpilot.session.messages import (
    AbortInflight,
    CancelProposal,
    ClearChat,
    ConfirmProposal,
    RequestSettings,
    ResizePanel,
    SetCreativeMode,
    SetCredential,
    SetCustomRules,
    SetModel,
    SubmitUtterance,
    TestConnection as ConnectionCheck,
)
from designpilot.session.orchestrator import UNEXPECTED_RESPONSE_MESSAGE, CopilotSession
from tests.helpers import PNG_BYTES, BlockingModelClient, FakeModelClient


def _proposal(summary: str, code: str, warnings: list[str] | None = None) -> str:
    return json.dumps({"summary": summary, "code": code, "warnings": warnings or [], "message": None})


def _reply(text: str) -> str:
    return json.dumps({"summary": None, "code": None, "warnings": [], "message": text})


RENAME_HEADER = _proposal("Rename the header", 'header = await get_node("1:2")\nheader.name = "Top Bar"')


class Harness:
    """A session wired to a fake model client, collecting every published event."""

    def __init__(
        self,
        host: InMemoryHost,
        replies: list[Any] | None = None,
        *,
        client: FakeModelClient | None = None,
        settings: Settings | None = None,
        store: SettingsStore | None = None,
    ) -> None:
        self.host = host
        self.client = client or FakeModelClient(replies)
        self.factory_calls: list[ClientSettings] = []
        self.events: list[Event] = []
        self.session = CopilotSession(
            host,
            settings or Settings(api_key="sk-test"),
            settings_store=store,
            client_factory=self._factory,
        )
        self.session.bus.subscribe(Event, self.events.append)

    def _factory(self, settings: ClientSettings) -> FakeModelClient:
        self.factory_calls.append(settings)
        return self.client

    def of_type(self, event_type: type[Event]) -> list[Any]:
        return [event for event in self.events if isinstance(event, event_type)]


def _select(host: InMemoryHost, *node_ids: str) -> None:
    nodes: list[SceneNode] = []
    for node_id in node_ids:
        node = host.document.get_node(node_id)
        assert isinstance(node, SceneNode)
        nodes.append(node)
    host.select(nodes)


# ----------------------------------------------------------------------
# Submitting requests
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_proposal_is_stored_and_announced(host: InMemoryHost) -> None:
    harness = Harness(host, [RENAME_HEADER])

    await harness.session.handle(SubmitUtterance("Rename the header to Top Bar"))

    assert [type(event) for event in harness.events] == [ThinkingStarted, ProposalReady]
    ready = harness.events[-1]
    assert ready.summary == "Rename the header"
    assert harness.session.pending is not None
    assert harness.session.pending.code.startswith("header = ")
    assert len(harness.session.conversation) == 2

    call = harness.client.calls[0]
    assert call["context"].scope == "page"
    assert call["messages"] == [{"role": "user", "content": "Rename the header to Top Bar"}]
    assert "## Operator Rules" in call["system"]
    assert "## Creative Design Mode" not in call["system"]


@pytest.mark.asyncio
async def test_creative_mode_and_rules_reach_the_system_prompt(host: InMemoryHost) -> None:
    settings = Settings(api_key="sk-test", creative_design_mode=True, custom_rules="- Use 4px grid")
    harness = Harness(host, [_reply("ok")], settings=settings)

    await harness.session.handle(SubmitUtterance("hi"))

    system = harness.client.calls[0]["system"]
    assert "## Creative Design Mode" in system
    assert "- Use 4px grid" in system


@pytest.mark.asyncio
async def test_missing_credential_is_reported_with_settings(host: InMemoryHost) -> None:
    harness = Harness(host, [], settings=Settings())

    await harness.session.handle(SubmitUtterance("Make it blue"))

    errors = harness.of_type(GenericError)
    assert errors[0].message == "Please set your API key in settings first."
    assert errors[0].error_code == ErrorCode.MISSING_CREDENTIAL
    snapshots = harness.of_type(SettingsSnapshot)
    assert snapshots and snapshots[0].has_api_key is False
    assert harness.factory_calls == []
    assert harness.of_type(ThinkingStarted) == []


@pytest.mark.asyncio
async def test_new_request_is_rejected_while_proposal_pending(host: InMemoryHost) -> None:
    harness = Harness(host, [RENAME_HEADER, _reply("never used")])
    await harness.session.handle(SubmitUtterance("Rename the header"))

    await harness.session.handle(SubmitUtterance("Actually, make it red"))

    errors = harness.of_type(GenericError)
    assert errors[-1].error_code == ErrorCode.PROPOSAL_STATE
    assert len(harness.client.calls) == 1


@pytest.mark.asyncio
async def test_malformed_response_is_reasked_once(host: InMemoryHost) -> None:
    harness = Harness(host, ["Sure! I'll rename it.", RENAME_HEADER])

    await harness.session.handle(SubmitUtterance("Rename the header"))

    assert [type(event) for event in harness.events] == [ThinkingStarted, ThinkingStarted, ProposalReady]
    assert len(harness.client.calls) == 2
    assert harness.client.calls[1]["messages"][-1] == {"role": "user", "content": RETRY_JSON_INSTRUCTION}
    assert harness.session.pending is not None


@pytest.mark.asyncio
async def test_second_malformed_response_is_an_error(host: InMemoryHost) -> None:
    harness = Harness(host, ["not json", "still not json"])

    await harness.session.handle(SubmitUtterance("Rename the header"))

    errors = harness.of_type(GenericError)
    assert len(errors) == 1
    assert errors[0].error_code == ErrorCode.MALFORMED_RESPONSE
    assert harness.session.pending is None
    assert len(harness.client.calls) == 2


@pytest.mark.asyncio
async def test_clarification_and_plain_replies(host: InMemoryHost) -> None:
    clarification = json.dumps({"summary": None, "code": None, "warnings": [], "clarification": "Which Title?"})
    harness = Harness(host, [clarification, _reply("The page has 2 frames.")])

    await harness.session.handle(SubmitUtterance("Rename Title"))
    await harness.session.handle(SubmitUtterance("How many frames are there?"))

    assert harness.of_type(ClarificationNeeded)[0].question == "Which Title?"
    assert harness.of_type(PlainReply)[0].text == "The page has 2 frames."
    assert harness.session.pending is None


@pytest.mark.asyncio
async def test_response_without_proposal_or_message_is_unexpected(host: InMemoryHost) -> None:
    harness = Harness(host, ["{}"])

    await harness.session.handle(SubmitUtterance("hi"))

    assert harness.of_type(GenericError)[0].message == UNEXPECTED_RESPONSE_MESSAGE


@pytest.mark.asyncio
async def test_provider_errors_carry_remediation(host: InMemoryHost) -> None:
    harness = Harness(host, [InvalidCredentialError()])

    await harness.session.handle(SubmitUtterance("hi"))

    error = harness.of_type(GenericError)[0]
    assert error.message == "Invalid API key. Please update your key in settings."
    assert error.error_code == ErrorCode.INVALID_CREDENTIAL
    assert harness.session.is_busy is False


@pytest.mark.asyncio
async def test_focus_change_starts_a_fresh_conversation(host: InMemoryHost) -> None:
    harness = Harness(host, [_reply("one"), _reply("two"), _reply("three"), _reply("four")])
    conversation = harness.session.conversation

    _select(host, "1:2")
    await harness.session.handle(SubmitUtterance("first"))
    await harness.session.handle(SubmitUtterance("second"))
    assert len(conversation) == 4

    host.select([])
    await harness.session.handle(SubmitUtterance("about the page"))
    assert len(conversation) == 6

    _select(host, "1:5")
    await harness.session.handle(SubmitUtterance("about the card"))
    assert len(conversation) == 2
    assert conversation.get_turns()[0].text == "about the card"


@pytest.mark.asyncio
async def test_selected_image_is_attached_to_the_user_turn(host: InMemoryHost) -> None:
    harness = Harness(host, [_reply("A photo")])
    _select(host, "1:6")

    await harness.session.handle(SubmitUtterance("What is in this photo?"))

    content = harness.client.calls[0]["messages"][0]["content"]
    encoded = base64.b64encode(PNG_BYTES).decode("ascii")
    assert content[0] == {"type": "image_url", "image_url": {"url": f"data:image/png;base64,{encoded}"}}
    assert content[1] == {"type": "text", "text": "What is in this photo?"}


@pytest.mark.asyncio
async def test_large_images_are_exported_at_half_scale(document: DocumentRoot) -> None:
    scales: list[float] = []

    class RecordingHost(InMemoryHost):
        async def export_png_async(self, node: SceneNode, scale: float = 1.0) -> bytes:
            scales.append(scale)
            return await super().export_png_async(node, scale)

    host = RecordingHost(document)
    photo = host.document.get_node("1:6")
    assert isinstance(photo, SceneNode)
    photo.width = 4000
    harness = Harness(host, [_reply("big")])
    host.select([photo])

    await harness.session.handle(SubmitUtterance("describe"))

    assert scales == [0.5]


@pytest.mark.asyncio
async def test_abort_drops_the_inflight_request(host: InMemoryHost) -> None:
    client = BlockingModelClient()
    harness = Harness(host, client=client)

    task = asyncio.create_task(harness.session.handle(SubmitUtterance("slow request")))
    await client.started.wait()
    assert harness.session.is_busy is True

    await harness.session.handle(SubmitUtterance("impatient"))
    await harness.session.handle(AbortInflight())
    await task

    assert harness.session.is_busy is False
    assert harness.session.pending is None
    assert harness.of_type(ProposalReady) == []
    assert harness.of_type(GenericError)[0].error_code == ErrorCode.PROPOSAL_STATE


# ----------------------------------------------------------------------
# Proposal lifecycle
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_confirm_executes_and_records_outcome(host: InMemoryHost) -> None:
    harness = Harness(host, [RENAME_HEADER])
    await harness.session.handle(SubmitUtterance("Rename the header"))

    await harness.session.handle(ConfirmProposal())

    assert harness.of_type(ExecutionSucceeded)[0].summary == "Rename the header"
    assert harness.session.pending is None
    assert host.document.get_node("1:2").name == "Top Bar"
    assert host.undo_depth == 1
    assert harness.session.conversation.get_turns()[-1].text == "[Executed] Rename the header"


@pytest.mark.asyncio
async def test_confirm_with_warnings_saves_a_version_first(host: InMemoryHost) -> None:
    delete_card = _proposal(
        "Delete the card",
        'card = await get_node("1:5")\ncard.remove()',
        warnings=["This will delete 'Card' and its 1 child layer."],
    )
    harness = Harness(host, [delete_card])
    await harness.session.handle(SubmitUtterance("Delete the card"))

    await harness.session.handle(ConfirmProposal())

    assert len(host.versions) == 1
    assert host.document.get_node("1:5") is None
    assert harness.of_type(ProposalReady)[0].warnings == ["This will delete 'Card' and its 1 child layer."]


@pytest.mark.asyncio
async def test_failed_execution_is_reported(host: InMemoryHost) -> None:
    harness = Harness(host, [_proposal("Break things", 'raise ValueError("Node not found: Footer")')])
    await harness.session.handle(SubmitUtterance("Edit the footer"))

    await harness.session.handle(ConfirmProposal())

    failure = harness.of_type(ExecutionFailed)[0]
    assert failure.error == "The code hit an error: Node not found: Footer"
    assert harness.session.conversation.get_turns()[-1].text == "[Execution failed] Node not found: Footer"


@pytest.mark.asyncio
async def test_confirm_without_pending_proposal_does_nothing(host: InMemoryHost) -> None:
    harness = Harness(host)

    await harness.session.handle(ConfirmProposal())

    assert harness.events == []


@pytest.mark.asyncio
async def test_cancel_discards_pending_without_executing(host: InMemoryHost) -> None:
    harness = Harness(host, [RENAME_HEADER, _reply("ok")])
    await harness.session.handle(SubmitUtterance("Rename the header"))

    await harness.session.handle(CancelProposal())
    await harness.session.handle(ConfirmProposal())

    assert harness.session.pending is None
    assert host.document.get_node("1:2").name == "Header"
    assert harness.of_type(ExecutionSucceeded) == []

    await harness.session.handle(SubmitUtterance("Never mind"))
    assert harness.of_type(PlainReply)[0].text == "ok"


@pytest.mark.asyncio
async def test_clear_chat_drops_history_and_pending(host: InMemoryHost) -> None:
    harness = Harness(host, [RENAME_HEADER])
    await harness.session.handle(SubmitUtterance("Rename the header"))

    await harness.session.handle(ClearChat())

    assert len(harness.session.conversation) == 0
    assert harness.session.pending is None


# ----------------------------------------------------------------------
# Settings, panel and connection
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_set_credential_persists_and_publishes_snapshot(host: InMemoryHost, tmp_path: Path) -> None:
    store = SettingsStore(tmp_path / "settings.json")
    harness = Harness(host, settings=Settings(), store=store)

    await harness.session.handle(SetCredential("  sk-new-key-9876  "))

    snapshot = harness.of_type(SettingsSnapshot)[-1]
    assert snapshot.has_api_key is True
    assert snapshot.key_preview == "sk***********76"
    assert harness.session.settings.api_key == "sk-new-key-9876"
    assert store.load().api_key == "sk-new-key-9876"


@pytest.mark.asyncio
async def test_settings_changes_are_applied(host: InMemoryHost, tmp_path: Path) -> None:
    store = SettingsStore(tmp_path / "settings.json")
    harness = Harness(host, [_reply("a"), _reply("b")], store=store)
    await harness.session.handle(SubmitUtterance("first"))

    await harness.session.handle(SetModel("claude-other"))
    await harness.session.handle(SetCustomRules("- Always use Roboto"))
    await harness.session.handle(SetCreativeMode(True))
    await harness.session.handle(SubmitUtterance("second"))

    settings = harness.session.settings
    assert settings.model == "claude-other"
    assert settings.custom_rules == "- Always use Roboto"
    assert settings.creative_design_mode is True
    assert store.load().model == "claude-other"
    assert [call.model for call in harness.factory_calls] == ["claude-sonnet-4-6", "claude-other"]
    assert harness.client.closed is True


@pytest.mark.asyncio
async def test_unwritable_settings_still_apply_in_memory(host: InMemoryHost, tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    harness = Harness(host, store=SettingsStore(blocker / "settings.json"))

    await harness.session.handle(SetModel("claude-other"))

    assert harness.session.settings.model == "claude-other"


@pytest.mark.asyncio
async def test_request_settings_snapshot(host: InMemoryHost) -> None:
    harness = Harness(host, settings=Settings(api_key="sk-abcdef"))

    await harness.session.handle(RequestSettings())

    snapshot = harness.of_type(SettingsSnapshot)[0]
    assert snapshot.key_preview == "sk*****ef"
    assert snapshot.default_custom_rules == snapshot.custom_rules


@pytest.mark.asyncio
async def test_resize_panel(host: InMemoryHost) -> None:
    harness = Harness(host)

    await harness.session.handle(ResizePanel(420, 720))

    assert host.panel_size == (420, 720)
    assert (harness.session.settings.panel_width, harness.session.settings.panel_height) == (420, 720)


@pytest.mark.asyncio
async def test_connection_test_results(host: InMemoryHost) -> None:
    harness = Harness(host)

    await harness.session.handle(ConnectionCheck())
    harness.client.ping_error = ProviderUnreachableError()
    await harness.session.handle(ConnectionCheck())

    results = harness.of_type(ConnectionTestResult)
    assert results[0] == ConnectionTestResult(success=True)
    assert results[1] == ConnectionTestResult(
        success=False, error="Can't reach the model provider. Check your connection."
    )


@pytest.mark.asyncio
async def test_connection_test_without_key(host: InMemoryHost) -> None:
    harness = Harness(host, settings=Settings())

    await harness.session.handle(ConnectionCheck())

    assert harness.of_type(ConnectionTestResult)[0].success is False
    assert harness.factory_calls == []


@pytest.mark.asyncio
async def test_focus_changed_event(host: InMemoryHost) -> None:
    harness = Harness(host)
    _select(host, "1:3", "1:4")

    harness.session.notify_focus_changed()

    event = harness.of_type(FocusChanged)[0]
    assert event.page_name == "Home"
    assert event.nodes == [
        {"id": "1:3", "name": "Title", "type": "TEXT"},
        {"id": "1:4", "name": "Logo", "type": "ELLIPSE"},
    ]


@pytest.mark.asyncio
async def test_aclose_releases_the_client(host: InMemoryHost) -> None:
    harness = Harness(host, [_reply("hi")])
    await harness.session.handle(SubmitUtterance("hi"))

    await harness.session.aclose()

    assert harness.client.closed is True


@pytest.mark.asyncio
async def test_unknown_message_type_is_rejected(host: InMemoryHost) -> None:
    with pytest.raises(TypeError):
        await Harness(host).session.handle("not a message")  # type: ignore[arg-type]
