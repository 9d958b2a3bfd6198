"""Per-operator copilot session and its host-facing message types."""

from .events import (
    ClarificationNeeded,
    ConnectionTestResult,
    Event,
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
from .orchestrator import CopilotSession

__all__ = [
    "CopilotSession",
    "Event",
    "EventBus",
    "FocusChanged",
    "ThinkingStarted",
    "ProposalReady",
    "ClarificationNeeded",
    "PlainReply",
    "ExecutionSucceeded",
    "ExecutionFailed",
    "SettingsSnapshot",
    "GenericError",
    "ConnectionTestResult",
    "InboundMessage",
    "SubmitUtterance",
    "ConfirmProposal",
    "CancelProposal",
    "ClearChat",
    "AbortInflight",
    "RequestSettings",
    "SetCredential",
    "SetModel",
    "SetCustomRules",
    "SetCreativeMode",
    "ResizePanel",
    "TestConnection",
]
