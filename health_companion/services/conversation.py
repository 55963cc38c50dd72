"""
Conversation engine for Health Companion.

Runs one question/answer exchange with the language model:

1. Reject blank input or a missing session (nothing is written).
2. Persist the user turn.
3. Build a prompt from recent reports and recent turns.
4. Call the model.
5. Parse the structured reply, falling back to the raw text.
6. Persist the ai turn.
7. Synthesize speech of the reply.

A failure in steps 2-6 raises ``AIError``; turns already written stay.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional, Sequence, Tuple

from pydantic import ValidationError

from health_companion.config import settings
from health_companion.core.document_store import Document, DocumentStore
from health_companion.core.errors import AIError, ReadError, WriteError
from health_companion.core.gemini_client import LanguageModel
from health_companion.core.reply_parser import parse_model_reply, try_parse_stored_reply
from health_companion.core.signals import Unsubscribe
from health_companion.models.schemas import (
    ConversationTurn,
    MedicalReport,
    SendOutcome,
    Sender,
    UserSession,
    utc_now,
)
from health_companion.services.prompt_builder import build_prompt
from health_companion.services.report_registry import ReportRegistry
from health_companion.services.speech import SpeechSynthesizer
from health_companion.utils.logger import get_logger

logger = get_logger("conversation")

BLANK_INPUT_NOTICE = "Please type your question or symptom for analysis."
NOT_SIGNED_IN_NOTICE = "Error: Please sign in to use the AI medical analyzer."
ANALYSIS_COMPLETE_NOTICE = "Analysis complete!"
UNPARSED_REPLY_NOTICE = (
    "AI response received, but could not parse. Displaying raw text."
)

TurnSnapshot = Tuple[ConversationTurn, ...]


def next_timestamp(after: Optional[datetime] = None) -> datetime:
    """Current time, but strictly later than ``after``."""
    now = utc_now()
    if after is not None and now <= after:
        return after + timedelta(microseconds=1)
    return now


@dataclass
class ConversationContext:
    """Recent reports (newest first) and recent turns (oldest first)."""

    reports: Sequence[MedicalReport] = ()
    history: Sequence[ConversationTurn] = ()


def to_turns(documents: Iterable[Document], owner_id: str) -> TurnSnapshot:
    """Convert stored documents; ai turns get their parsed reply attached."""
    turns = []
    for document in documents:
        try:
            turn = ConversationTurn.model_validate(document)
        except ValidationError as exc:
            logger.warning("Skipping malformed conversation record", error=str(exc))
            continue
        if turn.owner_id != owner_id:
            logger.warning("Dropping turn of another owner", owner_id=owner_id)
            continue
        if turn.sender == Sender.AI:
            turn = turn.model_copy(update={"parsed_reply": try_parse_stored_reply(turn.text)})
        turns.append(turn)
    return tuple(turns)


class ConversationEngine:
    """Owner-scoped conversation with the language model."""

    def __init__(
        self,
        store: DocumentStore,
        model: LanguageModel,
        speech: SpeechSynthesizer,
        registry: ReportRegistry,
        collection: Optional[str] = None,
        speech_language: Optional[str] = None
    ):
        self.store = store
        self.model = model
        self.speech = speech
        self.registry = registry
        self.collection = collection or settings.conversations_collection
        self.speech_language = speech_language or settings.speech_language

    # =========================================================================
    # History
    # =========================================================================

    def history(self, owner_id: str, limit: Optional[int] = None) -> TurnSnapshot:
        """The most recent turns of an owner, oldest first."""
        documents = self.store.query(
            self.collection,
            owner_id,
            order_by="timestamp",
            descending=True,
            limit=limit or settings.history_context_limit,
        )
        return tuple(reversed(to_turns(documents, owner_id)))

    def watch_history(
        self,
        owner_id: str,
        callback: Callable[[TurnSnapshot], None],
        limit: Optional[int] = None,
    ) -> Unsubscribe:
        """Live variant of ``history``; each callback is a full snapshot."""
        return self.store.watch(
            self.collection,
            owner_id,
            order_by="timestamp",
            descending=True,
            limit=limit or settings.history_context_limit,
            callback=lambda documents: callback(
                tuple(reversed(to_turns(documents, owner_id)))
            ),
        )

    def load_context(self, owner_id: str) -> ConversationContext:
        """Current reports and history snapshot for a prompt."""
        return ConversationContext(
            reports=self.registry.recent_reports(owner_id, settings.report_context_limit),
            history=self.history(owner_id, settings.history_context_limit),
        )

    # =========================================================================
    # Send
    # =========================================================================

    def _persist(self, turn: ConversationTurn) -> None:
        try:
            self.store.add(self.collection, turn.to_document())
        except WriteError as exc:
            raise AIError(exc.message) from exc

    async def send(
        self,
        session: Optional[UserSession],
        text: str,
        context: Optional[ConversationContext] = None
    ) -> SendOutcome:
        """
        Run one exchange.

        Args:
            session: The signed-in user, or None
            text: The user's question or symptom description
            context: Prompt context; loaded from the database when omitted

        Returns:
            SendOutcome; ``accepted`` is False for rejected input

        Raises:
            AIError: A database or model step failed
        """
        message = (text or "").strip()
        if not message:
            return SendOutcome(accepted=False, notice=BLANK_INPUT_NOTICE)
        if session is None:
            return SendOutcome(accepted=False, notice=NOT_SIGNED_IN_NOTICE)

        owner_id = session.id

        # Read before writing so the new text is not repeated in the history
        if context is None:
            try:
                context = self.load_context(owner_id)
            except ReadError as exc:
                raise AIError(exc.message) from exc

        latest = context.history[-1].timestamp if context.history else None
        user_turn = ConversationTurn(
            owner_id=owner_id,
            text=message,
            sender=Sender.USER,
            timestamp=next_timestamp(latest),
        )
        self._persist(user_turn)

        prompt = build_prompt(
            message,
            reports=list(context.reports)[:settings.report_context_limit],
            history=list(context.history)[-settings.history_context_limit:],
        )
        logger.info(
            "Sending prompt",
            owner_id=owner_id,
            reports=len(context.reports),
            history=len(context.history),
        )
        raw_reply = await self.model.generate(prompt)

        parsed = parse_model_reply(raw_reply)

        # The ai turn must sort strictly after its user turn
        ai_timestamp = next_timestamp(user_turn.timestamp)
        self._persist(ConversationTurn(
            owner_id=owner_id,
            text=parsed.stored_text,
            sender=Sender.AI,
            timestamp=ai_timestamp,
        ))

        speech = await asyncio.to_thread(
            self.speech.synthesize,
            parsed.speech_text,
            self.speech_language,
        )

        logger.info(
            "Exchange complete",
            owner_id=owner_id,
            parsed=parsed.parsed,
            spoken=speech.spoken,
        )
        return SendOutcome(
            accepted=True,
            notice=ANALYSIS_COMPLETE_NOTICE if parsed.parsed else UNPARSED_REPLY_NOTICE,
            reply=parsed.reply,
            parsed=parsed.parsed,
            stored_text=parsed.stored_text,
            speech=speech,
        )
