"""
Dependency wiring for the API.

External collaborators are built lazily, once per process, on first use;
a missing secret therefore fails the first request that needs it.
Services are assembled per request from those collaborators. Tests
replace the collaborators through ``app.dependency_overrides``.
"""

from functools import lru_cache
from typing import Optional

from fastapi import Depends, Request

from health_companion.config import settings
from health_companion.core.document_store import DocumentStore, FirestoreDocumentStore
from health_companion.core.errors import AuthError
from health_companion.core.firebase import FirebaseTokenVerifier
from health_companion.core.gemini_client import GeminiClient, LanguageModel
from health_companion.core.object_store import CloudinaryObjectStore, ObjectStore
from health_companion.models.schemas import UserSession
from health_companion.services.conversation import ConversationEngine
from health_companion.services.identity import IdentityGate, TokenVerifier
from health_companion.services.report_registry import ReportRegistry
from health_companion.services.speech import (
    GTTSSpeechSynthesizer,
    NullSpeechSynthesizer,
    SpeechSynthesizer,
)
from health_companion.services.upload_relay import UploadRelay


# =============================================================================
# External collaborators
# =============================================================================

@lru_cache
def get_document_store() -> DocumentStore:
    return FirestoreDocumentStore()


@lru_cache
def get_object_store() -> ObjectStore:
    return CloudinaryObjectStore()


@lru_cache
def get_language_model() -> LanguageModel:
    return GeminiClient()


@lru_cache
def get_token_verifier() -> TokenVerifier:
    return FirebaseTokenVerifier()


@lru_cache
def get_speech_synthesizer() -> SpeechSynthesizer:
    if settings.speech_backend == "none":
        return NullSpeechSynthesizer()
    return GTTSSpeechSynthesizer(
        output_dir=settings.audio_path,
        default_language=settings.speech_default_language,
        clip_ttl_seconds=settings.speech_clip_ttl_seconds,
    )


# =============================================================================
# Identity
# =============================================================================

def bearer_token(request: Request) -> Optional[str]:
    """Extract the ID token from an ``Authorization: Bearer`` header."""
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_identity_gate(
    verifier: TokenVerifier = Depends(get_token_verifier)
) -> IdentityGate:
    """A fresh, unresolved gate for this request."""
    return IdentityGate(verifier)


def get_optional_user(
    request: Request,
    gate: IdentityGate = Depends(get_identity_gate)
) -> Optional[UserSession]:
    """Resolve the request's session; None for anonymous callers."""
    return gate.resolve(bearer_token(request))


def require_user(
    user: Optional[UserSession] = Depends(get_optional_user)
) -> UserSession:
    """Session of the caller, or 401."""
    if user is None:
        raise AuthError("Please sign in to continue.")
    return user


# =============================================================================
# Services
# =============================================================================

def get_upload_relay(
    store: ObjectStore = Depends(get_object_store)
) -> UploadRelay:
    return UploadRelay(store)


def get_report_registry(
    store: DocumentStore = Depends(get_document_store)
) -> ReportRegistry:
    return ReportRegistry(store)


def get_conversation_engine(
    store: DocumentStore = Depends(get_document_store),
    model: LanguageModel = Depends(get_language_model),
    speech: SpeechSynthesizer = Depends(get_speech_synthesizer),
    registry: ReportRegistry = Depends(get_report_registry)
) -> ConversationEngine:
    return ConversationEngine(
        store=store,
        model=model,
        speech=speech,
        registry=registry,
    )
