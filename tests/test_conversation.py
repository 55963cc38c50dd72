"""
Tests for the conversation engine.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from conftest import ALICE, BOB, STRUCTURED_REPLY
from health_companion.core.errors import AIError
from health_companion.services.conversation import (
    ANALYSIS_COMPLETE_NOTICE,
    BLANK_INPUT_NOTICE,
    NOT_SIGNED_IN_NOTICE,
    UNPARSED_REPLY_NOTICE,
    ConversationContext,
    next_timestamp,
)

BASE_TIME = datetime(2024, 5, 3, 10, 0, tzinfo=timezone.utc)


def seed_turns(store, owner_id, count):
    for index in range(count):
        store.collections["conversations"].append({
            "userId": owner_id,
            "text": f"turn {index}",
            "sender": "user" if index % 2 == 0 else "ai",
            "timestamp": BASE_TIME + timedelta(minutes=index),
        })


def seed_report(store, owner_id, name, day):
    store.collections["medicalReports"].append({
        "userId": owner_id,
        "fileName": name,
        "fileType": "application/pdf",
        "fileSize": 10,
        "downloadURL": f"https://example.com/{name}",
        "description": "",
        "uploadedAt": datetime(2024, 5, day, tzinfo=timezone.utc),
    })


class TestRejectedInput:
    """Blank input and missing sessions are no-ops."""

    @pytest.mark.parametrize("text", ["", "   ", "\n\t"])
    def test_blank_input(self, engine, store, model, speech, text):
        outcome = asyncio.run(engine.send(ALICE, text))

        assert outcome.accepted is False
        assert outcome.notice == BLANK_INPUT_NOTICE
        assert store.writes == 0
        assert model.prompts == []
        assert speech.calls == []

    def test_signed_out(self, engine, store, model):
        outcome = asyncio.run(engine.send(None, "सिर दर्द"))

        assert outcome.accepted is False
        assert outcome.notice == NOT_SIGNED_IN_NOTICE
        assert store.writes == 0
        assert model.prompts == []


class TestSend:
    """Test a full exchange."""

    def test_structured_exchange(self, engine, store, speech):
        outcome = asyncio.run(engine.send(ALICE, "  सिर दर्द  "))

        assert outcome.accepted is True
        assert outcome.notice == ANALYSIS_COMPLETE_NOTICE
        assert outcome.parsed is True
        assert outcome.reply.suggested_solutions == ["A", "B"]

        user_turn, ai_turn = store.collections["conversations"]
        assert user_turn["text"] == "सिर दर्द"
        assert user_turn["sender"] == "user"
        assert user_turn["userId"] == ALICE.id
        assert ai_turn["sender"] == "ai"
        assert ai_turn["userId"] == ALICE.id
        assert ai_turn["text"] == STRUCTURED_REPLY
        assert ai_turn["timestamp"] > user_turn["timestamp"]

        assert speech.calls == [("R. A. B. D", "hi-IN")]

    def test_unstructured_reply(self, engine, store, model, speech):
        model.replies.append("बस आराम करें")
        outcome = asyncio.run(engine.send(ALICE, "थकान"))

        assert outcome.accepted is True
        assert outcome.parsed is False
        assert outcome.notice == UNPARSED_REPLY_NOTICE
        assert outcome.reply.possible_reason == "बस आराम करें"
        assert store.collections["conversations"][1]["text"] == "बस आराम करें"
        assert speech.calls == [("बस आराम करें", "hi-IN")]

    def test_prompt_carries_context(self, engine, store, model):
        seed_report(store, ALICE.id, "alice.pdf", 1)
        seed_report(store, BOB.id, "bob.pdf", 2)
        seed_turns(store, ALICE.id, 2)

        asyncio.run(engine.send(ALICE, "नया सवाल"))

        prompt = model.prompts[0]
        assert "alice.pdf" in prompt
        assert "bob.pdf" not in prompt
        assert "turn 0" in prompt and "turn 1" in prompt
        # The new question appears only as the input line
        assert prompt.count("नया सवाल") == 1

    def test_context_windows(self, engine, store, model):
        for day in range(1, 8):
            seed_report(store, ALICE.id, f"r{day}.pdf", day)
        seed_turns(store, ALICE.id, 14)

        asyncio.run(engine.send(ALICE, "सवाल"))

        prompt = model.prompts[0]
        assert "r7.pdf" in prompt and "r3.pdf" in prompt
        assert "r2.pdf" not in prompt
        assert "turn 13" in prompt and "turn 4" in prompt
        assert "): turn 3\n" not in prompt
        assert prompt.index("turn 4") < prompt.index("turn 13")

    def test_explicit_context(self, engine, store, model):
        asyncio.run(engine.send(ALICE, "सवाल", context=ConversationContext()))

        assert store.queries == 0
        assert "Previous Conversation" not in model.prompts[0]

    def test_speech_failure_is_not_fatal(self, engine, speech):
        speech.fail = True
        outcome = asyncio.run(engine.send(ALICE, "सवाल"))

        assert outcome.accepted is True
        assert outcome.speech.spoken is False
        assert outcome.speech.notice


class TestFailures:
    """Failures surface as AIError and keep what was already written."""

    def test_model_failure_keeps_user_turn(self, engine, store, model, speech):
        model.error = AIError("AI Error: quota exceeded")

        with pytest.raises(AIError):
            asyncio.run(engine.send(ALICE, "सवाल"))

        turns = store.collections["conversations"]
        assert len(turns) == 1
        assert turns[0]["sender"] == "user"
        assert speech.calls == []

    def test_user_write_failure(self, engine, store, model):
        store.failing_collections.add("conversations")

        with pytest.raises(AIError):
            asyncio.run(engine.send(ALICE, "सवाल"))

        assert model.prompts == []

    def test_ai_write_failure(self, engine, store, speech):
        store.fail_after_writes = 1

        with pytest.raises(AIError):
            asyncio.run(engine.send(ALICE, "सवाल"))

        assert len(store.collections["conversations"]) == 1
        assert speech.calls == []


class TestHistory:
    """Test history reads and live snapshots."""

    def test_most_recent_oldest_first(self, engine, store):
        seed_turns(store, ALICE.id, 12)

        turns = engine.history(ALICE.id)

        assert [t.text for t in turns] == [f"turn {i}" for i in range(2, 12)]

    def test_owner_isolation(self, engine, store):
        seed_turns(store, ALICE.id, 2)
        seed_turns(store, BOB.id, 3)

        assert all(t.owner_id == BOB.id for t in engine.history(BOB.id))
        assert len(engine.history(BOB.id)) == 3

    def test_ai_turn_carries_parsed_reply(self, engine, store):
        asyncio.run(engine.send(ALICE, "सवाल"))

        user_turn, ai_turn = engine.history(ALICE.id)
        assert user_turn.parsed_reply is None
        assert ai_turn.parsed_reply.possible_reason == "R"

    def test_watch_replaces_snapshot(self, engine):
        snapshots = []
        unsubscribe = engine.watch_history(ALICE.id, snapshots.append)

        asyncio.run(engine.send(ALICE, "सवाल"))
        unsubscribe()
        asyncio.run(engine.send(ALICE, "दूसरा सवाल"))

        assert snapshots[0] == ()
        assert [t.text for t in snapshots[-1]] == ["सवाल", STRUCTURED_REPLY]
        assert len(snapshots) == 3


class TestNextTimestamp:
    """Turn timestamps are strictly increasing."""

    def test_later_than_future_value(self):
        future = datetime.now(timezone.utc) + timedelta(hours=1)
        assert next_timestamp(future) > future

    def test_without_reference(self):
        assert next_timestamp().tzinfo is not None
