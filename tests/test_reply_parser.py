"""
Tests for structured reply parsing.
"""

import pytest

from health_companion.core.errors import ParseError
from health_companion.core.reply_parser import (
    decode_structured_reply,
    dump_structured_reply,
    extract_json_candidate,
    parse_model_reply,
    try_parse_stored_reply,
)


class TestExtractCandidate:
    """Test the first-brace to last-brace cut."""

    def test_bare_object(self):
        assert extract_json_candidate('{"a":1}') == '{"a":1}'

    def test_strips_code_fence(self):
        raw = '```json\n{"possibleReason":"R"}\n```'
        assert extract_json_candidate(raw) == '{"possibleReason":"R"}'

    def test_no_braces(self):
        assert extract_json_candidate("सिरदर्द आराम करें") is None

    def test_closing_before_opening(self):
        assert extract_json_candidate("} text {") is None


class TestDecode:
    """Test strict validation of a candidate."""

    def test_missing_field_raises(self):
        with pytest.raises(ParseError):
            decode_structured_reply('{"possibleReason":"R","disclaimer":"D"}')

    def test_invalid_json_raises(self):
        with pytest.raises(ParseError):
            decode_structured_reply('{"possibleReason": R}')

    def test_wrong_type_raises(self):
        with pytest.raises(ParseError):
            decode_structured_reply(
                '{"possibleReason":"R","suggestedSolutions":"A","disclaimer":"D"}'
            )


class TestParseModelReply:
    """Test parsing with raw-text fallback."""

    def test_structured_reply(self):
        raw = '{"possibleReason":"R","suggestedSolutions":["A","B"],"disclaimer":"D"}'
        result = parse_model_reply(raw)

        assert result.parsed is True
        assert result.reply.possible_reason == "R"
        assert result.reply.suggested_solutions == ["A", "B"]
        assert result.reply.disclaimer == "D"
        assert result.speech_text == "R. A. B. D"

    def test_reply_wrapped_in_prose(self):
        raw = 'Here you go:\n```json\n{"possibleReason":"थकान","suggestedSolutions":["आराम"],"disclaimer":"डॉक्टर से मिलें"}\n```'
        result = parse_model_reply(raw)

        assert result.parsed is True
        assert result.reply.possible_reason == "थकान"

    def test_stored_text_keeps_hindi_readable(self):
        raw = '{"possibleReason":"थकान","suggestedSolutions":[],"disclaimer":"D"}'
        result = parse_model_reply(raw)

        assert "थकान" in result.stored_text
        assert "\\u" not in result.stored_text

    def test_plain_text_falls_back(self):
        raw = "सिरदर्द हो सकता है, आराम करें"
        result = parse_model_reply(raw)

        assert result.parsed is False
        assert result.reply.possible_reason == raw
        assert result.reply.suggested_solutions == []
        assert result.reply.disclaimer == ""
        assert result.stored_text == raw
        assert result.speech_text == raw

    def test_malformed_json_falls_back(self):
        raw = '{"possibleReason": "R", "suggestedSolutions": ['
        result = parse_model_reply(raw)

        assert result.parsed is False
        assert result.stored_text == raw

    def test_stored_text_parses_back(self):
        """A stored structured turn yields the same reply on reload."""
        raw = 'x {"possibleReason":"R","suggestedSolutions":["A"],"disclaimer":"D"} y'
        result = parse_model_reply(raw)

        restored = try_parse_stored_reply(result.stored_text)
        assert restored == result.reply
        assert dump_structured_reply(restored) == result.stored_text


class TestStoredReply:
    """Test reading back stored ai turns."""

    def test_raw_text_turn(self):
        assert try_parse_stored_reply("कोई JSON नहीं") is None

    def test_broken_object(self):
        assert try_parse_stored_reply('{"possibleReason":"R"}') is None
