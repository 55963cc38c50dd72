"""
Pydantic schemas for Health Companion.

Defines the persisted record shapes (stored with the camelCase field
names of the Firestore collections) and the request/response models for
all API endpoints.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List

from pydantic import BaseModel, Field, ConfigDict


def utc_now() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


# =============================================================================
# Enums
# =============================================================================

class Sender(str, Enum):
    """Author of a conversation turn."""
    USER = "user"
    AI = "ai"


class SessionStatus(str, Enum):
    """Resolved state of the caller's session."""
    AUTHENTICATED = "authenticated"
    ANONYMOUS = "anonymous"


# =============================================================================
# Identity
# =============================================================================

class UserSession(BaseModel):
    """The signed-in user, as vouched for by the identity provider."""

    id: str = Field(description="Owner identifier (provider uid)")
    display_name: Optional[str] = Field(default=None, alias="displayName")
    email: Optional[str] = Field(default=None)

    model_config = ConfigDict(populate_by_name=True, frozen=True)


# =============================================================================
# Persisted Records
# =============================================================================

class ReportMetadata(BaseModel):
    """Everything about an uploaded report except its owner and timestamp."""

    file_name: str = Field(alias="fileName")
    file_type: str = Field(default="", alias="fileType")
    file_size: int = Field(ge=0, alias="fileSize")
    download_url: str = Field(min_length=1, alias="downloadURL")
    description: str = Field(default="")

    model_config = ConfigDict(populate_by_name=True)


class MedicalReport(ReportMetadata):
    """A report record in the ``medicalReports`` collection."""

    owner_id: str = Field(alias="userId")
    uploaded_at: datetime = Field(default_factory=utc_now, alias="uploadedAt")

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class StructuredReply(BaseModel):
    """The three-field reply the language model is asked to produce."""

    possible_reason: str = Field(alias="possibleReason")
    suggested_solutions: List[str] = Field(alias="suggestedSolutions")
    disclaimer: str

    model_config = ConfigDict(populate_by_name=True)

    @property
    def speech_text(self) -> str:
        """Text read aloud for this reply."""
        return (
            f"{self.possible_reason}. "
            f"{'. '.join(self.suggested_solutions)}. "
            f"{self.disclaimer}"
        )


class ConversationTurn(BaseModel):
    """A message in the ``conversations`` collection."""

    owner_id: str = Field(alias="userId")
    text: str
    sender: Sender
    timestamp: datetime = Field(default_factory=utc_now)
    parsed_reply: Optional[StructuredReply] = Field(
        default=None,
        alias="parsedReply",
        description="Structured form of an ai turn, when its text is one"
    )

    model_config = ConfigDict(
        populate_by_name=True,
        frozen=True,
        use_enum_values=True
    )

    def to_document(self) -> dict:
        """Firestore document body (derived fields excluded)."""
        return self.model_dump(by_alias=True, exclude={"parsed_reply"})


# =============================================================================
# Auth API
# =============================================================================

class SignInRequest(BaseModel):
    """ID token obtained from the provider's browser sign-in flow."""

    id_token: str = Field(min_length=1, alias="idToken")

    model_config = ConfigDict(populate_by_name=True)


class SessionResponse(BaseModel):
    """Session state plus where the client should navigate next."""

    status: SessionStatus
    user: Optional[UserSession] = None
    redirect: Optional[str] = None


# =============================================================================
# Upload & Reports API
# =============================================================================

class UploadResponse(BaseModel):
    """Response of the raw upload relay."""

    success: bool = True
    url: str


class ReportUploadResponse(BaseModel):
    """Response after a report was stored and recorded."""

    success: bool = True
    message: str
    report: MedicalReport


class ReportListResponse(BaseModel):
    """Most recent reports of the caller, newest first."""

    reports: List[MedicalReport]


# =============================================================================
# Conversation API
# =============================================================================

class SendMessageRequest(BaseModel):
    """A symptom description or health question."""

    text: str = Field(default="", description="User input, usually Hindi")


class SpeechResult(BaseModel):
    """Outcome of a best-effort speech synthesis."""

    spoken: bool = False
    clip_id: Optional[str] = Field(default=None, alias="clipId")
    audio_url: Optional[str] = Field(default=None, alias="audioUrl")
    voice: Optional[str] = None
    notice: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class SendOutcome(BaseModel):
    """What one ``send`` produced."""

    accepted: bool
    notice: str
    reply: Optional[StructuredReply] = None
    parsed: bool = False
    stored_text: Optional[str] = Field(default=None, alias="storedText")
    speech: Optional[SpeechResult] = None

    model_config = ConfigDict(populate_by_name=True)


class HistoryResponse(BaseModel):
    """Most recent conversation turns, oldest first."""

    turns: List[ConversationTurn]


# =============================================================================
# Health & Errors
# =============================================================================

class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(default="healthy")
    version: str = Field(description="Application version")
    timestamp: datetime = Field(default_factory=utc_now)


class ErrorResponse(BaseModel):
    """Standard error response."""

    success: bool = False
    message: str = Field(description="Human-readable error message")
    error_code: Optional[str] = Field(
        default=None,
        description="Machine-readable error code"
    )
