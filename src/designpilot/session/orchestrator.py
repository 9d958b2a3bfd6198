"""Copilot session: the single owner of per-operator state.

One :class:`CopilotSession` is created per host session and torn down with
:meth:`CopilotSession.aclose`. It owns the settings, the conversation, the
pending proposal and the in-flight model request, and reports every state
change through its :class:`~designpilot.session.events.EventBus`.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Any, Callable

from ..ai.client import ClientSettings, ModelClient
from ..ai.conversation import ConversationStore, FocusTracker, ImageBlock, TextBlock
from ..ai.prompts import DEFAULT_CUSTOM_RULES, RETRY_JSON_INSTRUCTION, build_system_prompt
from ..ai.response_parser import ModelResponse, parse_model_response
from ..document.nodes import ImagePaint
from ..errors import CopilotError, MalformedResponseError, MissingCredentialError, ProposalStateError
from ..execution.checkpoints import SafetyCheckpoint, execute_with_safety
from ..execution.executor import PendingScript, ScriptExecutor
from ..scene.context import ContextBudgetController
from ..services.settings import Settings, SettingsStore, redact_secret
from .events import (
    ClarificationNeeded,
    ConnectionTestResult,
    EventBus,
    ExecutionFailed,
    ExecutionSucceeded,
    FocusChanged,
    GenericError,
    PlainReply,
    ProposalReady,
    SettingsSnapshot,
    ThinkingStarted,
)
from .messages import (
    AbortInflight,
    CancelProposal,
    ClearChat,
    ConfirmProposal,
    InboundMessage,
    RequestSettings,
    ResizePanel,
    SetCreativeMode,
    SetCredential,
    SetCustomRules,
    SetModel,
    SubmitUtterance,
    TestConnection,
)

LOGGER = logging.getLogger(__name__)

ClientFactory = Callable[[ClientSettings], Any]

IMAGE_EXPORT_LIMIT = 2000
UNEXPECTED_RESPONSE_MESSAGE = "Unexpected response from the model. Please try again."


class CopilotSession:
    """Routes inbound host messages and drives request, proposal and execution.

    Events emitted:
        - FocusChanged: from :meth:`notify_focus_changed`
        - ThinkingStarted: before every model request (including the JSON re-ask)
        - ProposalReady / ClarificationNeeded / PlainReply: decoded model answers
        - ExecutionSucceeded / ExecutionFailed: after a confirmed proposal ran
        - SettingsSnapshot, ConnectionTestResult, GenericError
    """

    def __init__(
        self,
        host: Any,
        settings: Settings,
        *,
        settings_store: SettingsStore | None = None,
        client_factory: ClientFactory | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self._host = host
        self._settings = settings
        self._store = settings_store
        self._client_factory: ClientFactory = client_factory or ModelClient
        self._client: Any = None
        self.bus = event_bus or EventBus()
        self.conversation = ConversationStore(max_turns=settings.conversation_limit)
        self.focus = FocusTracker()
        self.budget = ContextBudgetController(host, token_ceiling=settings.token_ceiling)
        self.executor = ScriptExecutor(host)
        self.checkpoint = SafetyCheckpoint(host)
        self._pending: PendingScript | None = None
        self._inflight: asyncio.Task[None] | None = None
        self._abort_requested = False

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def pending(self) -> PendingScript | None:
        return self._pending

    @property
    def is_busy(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def handle(self, message: InboundMessage) -> None:
        LOGGER.debug("Handling inbound %s", type(message).__name__)
        if isinstance(message, SubmitUtterance):
            await self.submit(message.text)
        elif isinstance(message, ConfirmProposal):
            await self.confirm()
        elif isinstance(message, CancelProposal):
            self.cancel()
        elif isinstance(message, ClearChat):
            self.clear()
        elif isinstance(message, AbortInflight):
            self.abort()
        elif isinstance(message, RequestSettings):
            self.publish_settings()
        elif isinstance(message, SetCredential):
            await self._update_settings(api_key=message.value.strip())
            self.publish_settings()
        elif isinstance(message, SetModel):
            await self._update_settings(model=message.model.strip())
        elif isinstance(message, SetCustomRules):
            await self._update_settings(custom_rules=message.rules)
        elif isinstance(message, SetCreativeMode):
            await self._update_settings(creative_design_mode=bool(message.enabled))
        elif isinstance(message, ResizePanel):
            await self.resize_panel(message.width, message.height)
        elif isinstance(message, TestConnection):
            await self.test_connection()
        else:
            raise TypeError(f"Unsupported inbound message: {type(message).__name__}")

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def submit(self, text: str) -> None:
        if not self._settings.has_api_key:
            self._report(MissingCredentialError())
            self.publish_settings()
            return
        if self._pending is not None or self.is_busy:
            self._report(ProposalStateError())
            return
        if not text.strip():
            return

        self._abort_requested = False
        task = asyncio.ensure_future(self._run_turn(text))
        self._inflight = task
        try:
            await task
        except asyncio.CancelledError:
            if not self._abort_requested:
                raise
            LOGGER.info("Model request aborted by the operator")
        finally:
            self._inflight = None
            self._abort_requested = False

    def abort(self) -> None:
        task = self._inflight
        if task is None or task.done():
            return
        self._abort_requested = True
        task.cancel()

    async def _run_turn(self, text: str) -> None:
        self.bus.publish(ThinkingStarted())
        try:
            context = await self.budget.build()
            if self.focus.observe(context.focus_ids):
                LOGGER.info("Selection moved to different layers; starting a fresh conversation")
                self.conversation.clear()

            image = await self._export_selection_image()
            if image is not None:
                self.conversation.add_user_turn([ImageBlock.from_bytes(image), TextBlock(text)])
            else:
                self.conversation.add_user_turn(text)

            response = await self._request_response(context)
        except CopilotError as exc:
            self._report(exc)
            return
        except Exception as exc:
            LOGGER.exception("Copilot request failed")
            self.bus.publish(GenericError(message=str(exc) or type(exc).__name__))
            return
        self._dispatch_response(response)

    async def _request_response(self, context: Any) -> ModelResponse:
        client = self._get_client()
        system = build_system_prompt(
            custom_rules=self._settings.custom_rules,
            creative_design_mode=self._settings.creative_design_mode,
        )
        raw = await client.complete(self.conversation.as_messages(), system=system, context=context)
        self.conversation.add_assistant_turn(raw)
        try:
            return parse_model_response(raw)
        except MalformedResponseError as exc:
            LOGGER.warning("Model answered with invalid JSON (%s); asking once more", exc.message)

        self.bus.publish(ThinkingStarted())
        self.conversation.add_user_turn(RETRY_JSON_INSTRUCTION)
        raw = await client.complete(self.conversation.as_messages(), system=system, context=context)
        self.conversation.add_assistant_turn(raw)
        return parse_model_response(raw)

    def _dispatch_response(self, response: ModelResponse) -> None:
        if response.is_proposal:
            self._pending = PendingScript(
                summary=response.summary or "",
                code=response.code or "",
                warnings=list(response.warnings),
            )
            LOGGER.info("Proposal ready: %s (%d warning(s))", response.summary, len(response.warnings))
            self.bus.publish(
                ProposalReady(summary=self._pending.summary, code=self._pending.code, warnings=list(response.warnings))
            )
        elif response.clarification and not response.code:
            self.bus.publish(ClarificationNeeded(question=response.clarification))
        elif response.message and not response.code:
            self.bus.publish(PlainReply(text=response.message))
        else:
            LOGGER.warning("Model response had neither a proposal nor a message")
            self.bus.publish(GenericError(message=UNEXPECTED_RESPONSE_MESSAGE))

    async def _export_selection_image(self) -> bytes | None:
        exporter = getattr(self._host, "export_png_async", None)
        if not callable(exporter):
            return None
        for node in self._host.selection:
            fills = getattr(node, "fills", None)
            if not isinstance(fills, list):
                continue
            if not any(isinstance(fill, ImagePaint) and fill.visible is not False for fill in fills):
                continue
            width = node.width or 0
            height = node.height or 0
            scale = 0.5 if width > IMAGE_EXPORT_LIMIT or height > IMAGE_EXPORT_LIMIT else 1.0
            try:
                return await exporter(node, scale)
            except Exception:
                LOGGER.warning("Could not export image from %s", node.id, exc_info=True)
                return None
        return None

    # ------------------------------------------------------------------
    # Proposal lifecycle
    # ------------------------------------------------------------------

    async def confirm(self) -> None:
        pending = self._pending
        if pending is None:
            LOGGER.debug("Confirm received without a pending proposal")
            return
        self._pending = None

        result = await execute_with_safety(self.executor, self.checkpoint, pending)
        if result.success:
            self.conversation.add_assistant_turn(f"[Executed] {pending.summary}")
            self.bus.publish(ExecutionSucceeded(summary=pending.summary or "Changes applied"))
        else:
            self.conversation.add_assistant_turn(f"[Execution failed] {result.error}")
            self.bus.publish(ExecutionFailed(error=f"The code hit an error: {result.error}"))

    def cancel(self) -> None:
        if self._pending is not None:
            LOGGER.info("Proposal cancelled: %s", self._pending.summary)
        self._pending = None

    def clear(self) -> None:
        self.conversation.clear()
        self._pending = None

    # ------------------------------------------------------------------
    # Host notifications
    # ------------------------------------------------------------------

    def notify_focus_changed(self) -> None:
        nodes = [{"id": node.id, "name": node.name, "type": node.type} for node in self._host.selection]
        self.bus.publish(FocusChanged(nodes=nodes, page_name=self._host.current_page.name))

    async def resize_panel(self, width: int, height: int) -> None:
        resize = getattr(self._host, "resize_panel", None)
        if callable(resize):
            resize(int(width), int(height))
        await self._update_settings(panel_width=int(width), panel_height=int(height))

    # ------------------------------------------------------------------
    # Settings & connection
    # ------------------------------------------------------------------

    def publish_settings(self) -> None:
        settings = self._settings
        self.bus.publish(
            SettingsSnapshot(
                has_api_key=settings.has_api_key,
                key_preview=redact_secret(settings.api_key) or None,
                model=settings.model,
                custom_rules=settings.custom_rules,
                default_custom_rules=DEFAULT_CUSTOM_RULES,
                creative_design_mode=settings.creative_design_mode,
            )
        )

    async def test_connection(self) -> None:
        if not self._settings.has_api_key:
            self.bus.publish(ConnectionTestResult(success=False, error="No API key set"))
            return
        try:
            await self._get_client().ping()
        except CopilotError as exc:
            self.bus.publish(ConnectionTestResult(success=False, error=exc.user_message))
            return
        self.bus.publish(ConnectionTestResult(success=True))

    async def _update_settings(self, **changes: Any) -> None:
        if self._store is None:
            updated = replace(self._settings, **changes)
        else:
            try:
                updated = self._store.update(self._settings, **changes)
            except OSError as exc:
                LOGGER.warning("Could not persist settings: %s", exc)
                updated = replace(self._settings, **changes)
        self._settings = updated
        if {"api_key", "model", "base_url"} & changes.keys():
            await self._reset_client()

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = self._client_factory(self._settings.client_settings())
        return self._client

    async def _reset_client(self) -> None:
        client, self._client = self._client, None
        close = getattr(client, "aclose", None)
        if callable(close):
            await close()

    def _report(self, error: CopilotError) -> None:
        LOGGER.info("Reporting %s to host: %s", error.error_code, error.message)
        self.bus.publish(GenericError(message=error.user_message, error_code=error.error_code))

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def aclose(self) -> None:
        self.abort()
        self._pending = None
        await self._reset_client()

    async def __aenter__(self) -> "CopilotSession":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()


__all__ = ["CopilotSession", "ClientFactory", "IMAGE_EXPORT_LIMIT", "UNEXPECTED_RESPONSE_MESSAGE"]
