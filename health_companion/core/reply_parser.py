"""
Structured reply parsing.

The model is asked for a bare JSON object but often wraps it in prose or
code fences. Parsing runs in two stages:

1. ``extract_json_candidate`` cuts the text from the first ``{`` to the
   last ``}``.
2. ``decode_structured_reply`` decodes and validates that candidate
   against ``StructuredReply``.

``parse_model_reply`` combines both and turns a ``ParseError`` into the
raw-text fallback, so a malformed reply is still shown and spoken.
"""

import json
from dataclasses import dataclass
from typing import Optional

from pydantic import ValidationError

from health_companion.core.errors import ParseError
from health_companion.models.schemas import StructuredReply
from health_companion.utils.logger import get_logger

logger = get_logger("reply_parser")


@dataclass(frozen=True)
class ParsedReply:
    """A reply ready to display, store and speak."""

    reply: StructuredReply
    parsed: bool
    stored_text: str

    @property
    def speech_text(self) -> str:
        if self.parsed:
            return self.reply.speech_text
        return self.stored_text


def extract_json_candidate(raw: str) -> Optional[str]:
    """
    Return the substring from the first '{' to the last '}'.

    Returns:
        The candidate, or None when the text holds no such pair
    """
    start = raw.find("{")
    end = raw.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return None
    return raw[start:end + 1]


def decode_structured_reply(candidate: str) -> StructuredReply:
    """
    Strictly decode a candidate into a StructuredReply.

    Raises:
        ParseError: Invalid JSON or a missing/mistyped field
    """
    try:
        return StructuredReply.model_validate_json(candidate)
    except ValidationError as exc:
        raise ParseError(f"Reply does not match the structured shape: {exc}") from exc


def dump_structured_reply(reply: StructuredReply) -> str:
    """Compact JSON as stored in the conversation record."""
    return json.dumps(
        reply.model_dump(by_alias=True),
        ensure_ascii=False,
        separators=(",", ":"),
    )


def parse_model_reply(raw: str) -> ParsedReply:
    """
    Parse raw model output, falling back to the raw text.

    On the fallback branch the whole text becomes ``possibleReason``,
    with no solutions and an empty disclaimer.
    """
    try:
        candidate = extract_json_candidate(raw)
        if candidate is None:
            raise ParseError("Reply contains no JSON object")
        reply = decode_structured_reply(candidate)
    except ParseError as exc:
        logger.warning("Model reply not structured, using raw text", error=exc.message)
        return ParsedReply(
            reply=StructuredReply(
                possible_reason=raw,
                suggested_solutions=[],
                disclaimer="",
            ),
            parsed=False,
            stored_text=raw,
        )

    return ParsedReply(reply=reply, parsed=True, stored_text=dump_structured_reply(reply))


def try_parse_stored_reply(text: str) -> Optional[StructuredReply]:
    """Structured form of a stored ai turn, or None for raw-text turns."""
    candidate = extract_json_candidate(text)
    if candidate is None:
        return None
    try:
        return decode_structured_reply(candidate)
    except ParseError:
        return None
