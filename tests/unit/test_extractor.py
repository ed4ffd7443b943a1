"""
Unit tests for card recovery from completion replies.

Covers candidate extraction, JSON repair, per-card validation and the
completion client wrapper.
"""

import json
from types import SimpleNamespace

import pytest

from config import CompletionConfig
from extractor import (
    CardGenerator,
    CompletionError,
    ParseError,
    extract_candidate,
    recover,
    repair_json,
    validate_cards,
)
from schemas import StructuredCard


def card(summary="Login", **extra):
    data = {
        "summary": summary,
        "description": "As a user I want to log in.",
        "acceptanceCriteria": ["Given a registered user", "When they log in", "Then they see the dashboard"],
    }
    data.update(extra)
    return data


class TestExtractCandidate:
    """Tests for picking the JSON candidate out of a reply."""

    def test_json_fence(self):
        reply = 'Here you go:\n```json\n[{"a": 1}]\n```\nThanks!'
        assert extract_candidate(reply) == '[{"a": 1}]'

    def test_generic_fence(self):
        reply = "```\n[1, 2]\n```"
        assert extract_candidate(reply) == "[1, 2]"

    def test_json_fence_preferred(self):
        reply = "```text\nnotes\n```\n```json\n[]\n```"
        assert extract_candidate(reply) == "[]"

    def test_unfenced(self):
        assert extract_candidate("  [1]  \n") == "[1]"


class TestRepair:
    """Tests for repair_json on near-JSON."""

    def test_trailing_comma(self):
        assert json.loads(repair_json('[{"a": 1,}, ]')) == [{"a": 1}]

    def test_bare_keys_and_values(self):
        repaired = repair_json("[{summary: Test, points: 3, done: true}]")
        assert json.loads(repaired) == [{"summary": "Test", "points": 3, "done": True}]

    def test_strings_untouched(self):
        """Commas and colons inside string literals are preserved."""
        text = '[{"description": "a: b, c,]", note: x}]'
        assert json.loads(repair_json(text)) == [{"description": "a: b, c,]", "note": "x"}]

    def test_surrounding_prose_trimmed(self):
        assert json.loads(repair_json('Cards: [1, 2] done')) == [1, 2]


class TestRecover:
    """Tests for recover()."""

    def test_fenced_reply_with_repair(self):
        """Bare keys, a bare value and a trailing comma still yield one card."""
        reply = (
            "Here are the cards:\n```json\n"
            '[{summary: Test, description: "D", acceptanceCriteria: ["Given x"],}]\n'
            "```"
        )
        batch = recover(reply)

        assert len(batch.valid) == 1
        assert batch.valid[0].summary == "Test"
        assert batch.valid[0].acceptance_criteria == ["Given x"]
        assert batch.invalid == []

    def test_strict_json(self, reporter):
        batch = recover(json.dumps([card(), card("Logout")]), reporter)
        assert [c.summary for c in batch.valid] == ["Login", "Logout"]
        assert "attempting to fix" not in reporter.stream.getvalue()

    def test_partial_batch(self, reporter):
        """An over-long summary invalidates only its own card."""
        reply = json.dumps([card("First"), card("x" * 85), card("Third")])
        batch = recover(reply, reporter)

        assert [c.summary for c in batch.valid] == ["First", "Third"]
        assert len(batch.invalid) == 1
        assert batch.invalid[0].index == 1
        assert any(error.startswith("summary") for error in batch.invalid[0].errors)
        assert batch.is_partial
        assert "1 record invalid" in reporter.stream.getvalue()

    def test_missing_required_fields(self):
        batch = recover(json.dumps([{"summary": "Only a title"}]))
        assert batch.is_empty
        fields = " ".join(batch.invalid[0].errors)
        assert "description" in fields
        assert "acceptanceCriteria" in fields

    def test_empty_criteria_rejected(self):
        batch = recover(json.dumps([card(acceptanceCriteria=[])]))
        assert batch.is_empty
        assert len(batch.invalid) == 1

    def test_unknown_priority_rejected(self):
        batch = recover(json.dumps([card(priority="Urgent"), card(priority="Alta")]))
        assert len(batch.valid) == 1
        assert batch.valid[0].priority == "Alta"

    def test_non_object_items(self):
        batch = recover(json.dumps([1, card()]))
        assert len(batch.valid) == 1
        assert batch.invalid[0].errors == ["expected a JSON object"]
        assert batch.invalid[0].label == "record #1"

    def test_empty_array(self):
        batch = recover("[]")
        assert batch.total == 0
        assert batch.is_empty

    def test_prose_raises_parse_error(self):
        reply = "I could not produce any cards for this document."
        with pytest.raises(ParseError) as exc_info:
            recover(reply)

        error = exc_info.value
        assert error.raw == reply
        assert error.original == reply
        assert isinstance(error.repaired, str)

    def test_wrapped_in_object(self):
        """An array nested in an object is cut out and recovered."""
        batch = recover(json.dumps({"cards": [card()]}))
        assert [c.summary for c in batch.valid] == ["Login"]
        assert batch.invalid == []

    def test_braces_in_prose_before_array(self):
        reply = 'Cards {as requested}:\n[{"summary": "T", "description": "d", "acceptanceCriteria": ["a"]},]'
        batch = recover(reply)
        assert [c.summary for c in batch.valid] == ["T"]

    def test_object_without_array_raises_parse_error(self):
        with pytest.raises(ParseError):
            recover(json.dumps({"summary": "Login", "description": "No criteria"}))


class TestStructuredCard:
    """Tests for the card model itself."""

    def test_aliases_and_dump(self):
        parsed = StructuredCard.model_validate(card(storyPoints=3, epicLink="EPIC-1", labels=["a", "a", "b"]))

        assert parsed.story_points == 3
        assert parsed.labels == ["a", "b"]
        dumped = parsed.to_json_dict()
        assert dumped["acceptanceCriteria"][0] == "Given a registered user"
        assert dumped["epicLink"] == "EPIC-1"
        assert "component" not in dumped

    def test_whitespace_only_summary_rejected(self):
        assert validate_cards([card("   ")]).is_empty


class FakeCompletions:
    """Stands in for client.chat.completions."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        message = SimpleNamespace(content=outcome)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def fake_client(completions):
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


class TestCardGenerator:
    """Tests for CardGenerator with a fake completion client."""

    def test_request_cards(self, fast_policy, reporter):
        completions = FakeCompletions("[]")
        config = CompletionConfig(api_key="key", language="English")
        generator = CardGenerator(config, fast_policy, reporter, client=fake_client(completions))

        assert generator.request_cards("# Doc\n\nBody") == "[]"

        call = completions.calls[0]
        assert call["model"] == "gpt-5"
        assert call["max_completion_tokens"] == 4000
        assert call["messages"][0]["role"] == "system"
        assert "English" in call["messages"][0]["content"]
        assert "# Doc\n\nBody" in call["messages"][1]["content"]

    def test_transient_failure_retried(self, fast_policy, reporter, sleeps):
        completions = FakeCompletions(ConnectionResetError("reset"), "[]")
        generator = CardGenerator(CompletionConfig(api_key="key"), fast_policy, reporter,
                                  client=fake_client(completions))

        assert generator.request_cards("text") == "[]"
        assert len(completions.calls) == 2
        assert len(sleeps) == 1

    def test_empty_content(self, fast_policy, reporter):
        completions = FakeCompletions("")
        generator = CardGenerator(CompletionConfig(api_key="key"), fast_policy, reporter,
                                  client=fake_client(completions))
        with pytest.raises(CompletionError):
            generator.request_cards("text")

    def test_check_connection(self, fast_policy, reporter):
        completions = FakeCompletions("OK")
        generator = CardGenerator(CompletionConfig(api_key="key"), fast_policy, reporter,
                                  client=fake_client(completions))

        assert generator.check_connection() is True
        assert completions.calls[0]["max_completion_tokens"] == 10
        assert "Completion connection validated" in reporter.stream.getvalue()
