"""Inbound messages a host sends to :class:`~designpilot.session.orchestrator.CopilotSession`."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union


@dataclass(slots=True, frozen=True)
class SubmitUtterance:
    text: str


@dataclass(slots=True, frozen=True)
class ConfirmProposal:
    pass


@dataclass(slots=True, frozen=True)
class CancelProposal:
    pass


@dataclass(slots=True, frozen=True)
class ClearChat:
    pass


@dataclass(slots=True, frozen=True)
class AbortInflight:
    """Cancel the model request currently in flight, if any."""


@dataclass(slots=True, frozen=True)
class RequestSettings:
    pass


@dataclass(slots=True, frozen=True)
class SetCredential:
    value: str


@dataclass(slots=True, frozen=True)
class SetModel:
    model: str


@dataclass(slots=True, frozen=True)
class SetCustomRules:
    rules: str


@dataclass(slots=True, frozen=True)
class SetCreativeMode:
    enabled: bool


@dataclass(slots=True, frozen=True)
class ResizePanel:
    width: int
    height: int


@dataclass(slots=True, frozen=True)
class TestConnection:
    __test__ = False  # keep pytest from collecting this as a test class


InboundMessage = Union[
    SubmitUtterance,
    ConfirmProposal,
    CancelProposal,
    ClearChat,
    AbortInflight,
    RequestSettings,
    SetCredential,
    SetModel,
    SetCustomRules,
    SetCreativeMode,
    ResizePanel,
    TestConnection,
]

__all__ = [
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
