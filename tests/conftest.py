"""Shared pytest fixtures."""

from __future__ import annotations

import os

import pytest

from designpilot.document.memory import InMemoryHost
from designpilot.document.nodes import DocumentRoot
from tests.helpers import build_document


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in list(os.environ):
        if name.startswith("DESIGNPILOT_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def document() -> DocumentRoot:
    return build_document()


@pytest.fixture
def host(document: DocumentRoot) -> InMemoryHost:
    return InMemoryHost(document)
