"""Tests for :mod:`designpilot.ai.conversation`."""

from __future__ import annotations

import base64

import pytest

from designpilot.ai.conversation import ConversationStore, FocusTracker, ImageBlock, TextBlock


class TestConversationStore:
    def test_window_keeps_newest_turns(self) -> None:
        store = ConversationStore(max_turns=4)
        for index in range(3):
            store.add_user_turn(f"u{index}")
            store.add_assistant_turn(f"a{index}")

        assert len(store) == 4
        assert [turn.text for turn in store.get_turns()] == ["u1", "a1", "u2", "a2"]

    def test_never_exceeds_limit(self) -> None:
        store = ConversationStore(max_turns=3)
        for index in range(10):
            store.add_user_turn(str(index))
            assert len(store) <= 3

    def test_get_turns_returns_a_copy(self) -> None:
        store = ConversationStore()
        store.add_user_turn("hello")

        turns = store.get_turns()
        turns.clear()

        assert len(store) == 1

    def test_clear(self) -> None:
        store = ConversationStore()
        store.add_user_turn("hello")
        store.add_assistant_turn("hi")

        store.clear()

        assert len(store) == 0
        assert store.as_messages() == []

    def test_messages_render_image_blocks_as_parts(self) -> None:
        store = ConversationStore()
        store.add_user_turn([ImageBlock.from_bytes(b"png-bytes"), TextBlock("Describe this photo")])
        store.add_assistant_turn('{"message": "A sunset"}')

        messages = store.as_messages()

        encoded = base64.b64encode(b"png-bytes").decode("ascii")
        assert messages[0] == {
            "role": "user",
            "content": [
                {"type": "image_url", "image_url": {"url": f"data:image/png;base64,{encoded}"}},
                {"type": "text", "text": "Describe this photo"},
            ],
        }
        assert messages[1] == {"role": "assistant", "content": '{"message": "A sunset"}'}
        assert store.get_turns()[0].text == "Describe this photo"

    def test_rejects_non_positive_limit(self) -> None:
        with pytest.raises(ValueError):
            ConversationStore(max_turns=0)

    def test_default_limit(self) -> None:
        assert ConversationStore().max_turns == 20


class TestFocusTracker:
    def test_first_focus_does_not_reset(self) -> None:
        tracker = FocusTracker()
        assert tracker.observe(["1:2"]) is False
        assert tracker.key == "1:2"

    def test_same_focus_does_not_reset(self) -> None:
        tracker = FocusTracker()
        tracker.observe(["1:2", "1:3"])
        assert tracker.observe(["1:3", "1:2"]) is False

    def test_different_focus_resets(self) -> None:
        tracker = FocusTracker()
        tracker.observe(["1:2"])
        assert tracker.observe(["1:5"]) is True
        assert tracker.key == "1:5"

    def test_empty_focus_never_resets_or_replaces(self) -> None:
        tracker = FocusTracker()
        assert tracker.observe([]) is False
        tracker.observe(["1:2"])

        assert tracker.observe([]) is False
        assert tracker.key == "1:2"
        assert tracker.observe(["1:2"]) is False

    def test_reset_sequence(self) -> None:
        tracker = FocusTracker()
        sequence = [[], ["a"], ["a"], [], ["b"], ["b", "c"], ["c", "b"], ["a"]]
        resets = [tracker.observe(ids) for ids in sequence]
        assert resets == [False, False, False, False, True, True, False, True]
