"""
API routes for Health Companion.

Defines all REST endpoints: session handling, the upload relay, report
records, the symptom conversation, live snapshot streams and speech clips.
"""

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from fastapi.responses import FileResponse, JSONResponse, StreamingResponse

from health_companion.api.dependencies import (
    get_conversation_engine,
    get_identity_gate,
    get_optional_user,
    get_report_registry,
    get_upload_relay,
    require_user,
)
from health_companion.api.middleware import limiter
from health_companion.api.streaming import snapshot_events
from health_companion.config import settings
from health_companion.models.schemas import (
    ErrorResponse,
    HealthResponse,
    HistoryResponse,
    ReportListResponse,
    ReportUploadResponse,
    SendMessageRequest,
    SendOutcome,
    SessionResponse,
    SessionStatus,
    SignInRequest,
    UploadResponse,
    UserSession,
)
from health_companion.services.conversation import (
    BLANK_INPUT_NOTICE,
    ConversationEngine,
)
from health_companion.services.identity import IdentityGate
from health_companion.services.report_registry import ReportRegistry
from health_companion.services.speech import resolve_clip
from health_companion.services.upload_relay import UploadRelay
from health_companion.utils.logger import get_logger

logger = get_logger("routes")

router = APIRouter()

NO_FILE_UPLOADED = "No file uploaded"


def _rejection(status_code: int, message: str) -> JSONResponse:
    """Error body for requests turned away before any provider call."""
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(message=message).model_dump(),
    )


def _history_limit(limit: Optional[int]) -> int:
    return limit or settings.history_context_limit


# =============================================================================
# Health Check
# =============================================================================

@router.get(
    "/health",
    response_model=HealthResponse,
    tags=["System"],
    summary="Health check endpoint"
)
async def health_check():
    """Check if the service is healthy and running."""
    return HealthResponse(
        status="healthy",
        version=settings.app_version
    )


# =============================================================================
# Identity
# =============================================================================

@router.post(
    "/auth/signin",
    response_model=SessionResponse,
    tags=["Auth"],
    summary="Start a session from a provider ID token",
    responses={401: {"model": ErrorResponse, "description": "Token rejected"}}
)
async def sign_in(
    body: SignInRequest,
    gate: IdentityGate = Depends(get_identity_gate)
):
    """
    Verify the ID token produced by the browser sign-in popup.

    On success the client navigates to ``redirect`` (the main view).
    """
    redirect = gate.sign_in(body.id_token)
    return SessionResponse(
        status=SessionStatus.AUTHENTICATED,
        user=gate.current_user,
        redirect=redirect
    )


@router.post(
    "/auth/signout",
    response_model=SessionResponse,
    tags=["Auth"],
    summary="Revoke the current session",
    responses={401: {"model": ErrorResponse, "description": "No session or provider refused"}}
)
async def sign_out(
    user: Optional[UserSession] = Depends(get_optional_user),  # resolves the gate
    gate: IdentityGate = Depends(get_identity_gate)
):
    """Revoke the caller's tokens; the client then shows the sign-in view."""
    redirect = gate.sign_out()
    return SessionResponse(status=SessionStatus.ANONYMOUS, redirect=redirect)


@router.get(
    "/auth/session",
    response_model=SessionResponse,
    tags=["Auth"],
    summary="Resolve the caller's session"
)
async def get_session(user: Optional[UserSession] = Depends(get_optional_user)):
    """
    Tell the client whether to show the main view or go to sign-in.

    Clients show a neutral loading state until this answers.
    """
    if user is None:
        return SessionResponse(
            status=SessionStatus.ANONYMOUS,
            redirect=IdentityGate.SIGN_IN_VIEW
        )
    return SessionResponse(status=SessionStatus.AUTHENTICATED, user=user)


# =============================================================================
# Upload Relay
# =============================================================================

@router.post(
    "/api/upload",
    response_model=UploadResponse,
    tags=["Upload"],
    summary="Store a file and return its public URL",
    responses={
        400: {"model": ErrorResponse, "description": "No file uploaded"},
        500: {"model": ErrorResponse, "description": "Storage provider error"}
    }
)
@limiter.limit(f"{settings.rate_limit_per_minute}/minute")
async def upload_file(
    request: Request,
    file: Optional[UploadFile] = File(None, description="Any report file"),
    user: UserSession = Depends(require_user),
    relay: UploadRelay = Depends(get_upload_relay)
):
    """Forward the raw bytes to object storage, unvalidated."""
    if file is None or not file.filename:
        return _rejection(400, NO_FILE_UPLOADED)

    content = await file.read()
    stored = await relay.upload(content, file.filename)
    return UploadResponse(success=True, url=stored.url)


# =============================================================================
# Reports
# =============================================================================

@router.post(
    "/reports",
    response_model=ReportUploadResponse,
    tags=["Reports"],
    summary="Upload a report and record its metadata",
    responses={
        400: {"model": ErrorResponse, "description": "No file selected"},
        401: {"model": ErrorResponse, "description": "Not signed in"},
        413: {"model": ErrorResponse, "description": "File too large"},
        500: {"model": ErrorResponse, "description": "Upload or record failed"}
    }
)
@limiter.limit(f"{settings.rate_limit_per_minute}/minute")
async def upload_report(
    request: Request,
    file: Optional[UploadFile] = File(None, description="PDF, image or other report"),
    description: str = Form(""),
    user: Optional[UserSession] = Depends(get_optional_user),
    registry: ReportRegistry = Depends(get_report_registry),
    relay: UploadRelay = Depends(get_upload_relay)
):
    """
    Store the file, then write its record for the signed-in user.

    A file stored without a record (record write failed) is reported as
    a failure and left in storage.
    """
    content = await file.read() if file is not None and file.filename else b""

    if len(content) > settings.max_file_size_bytes:
        return _rejection(
            413,
            f"File '{file.filename}' exceeds maximum size of {settings.max_file_size_mb}MB"
        )

    outcome = await registry.upload_report(
        session=user,
        relay=relay,
        data=content,
        file_name=file.filename if file is not None else "",
        file_type=(file.content_type or "") if file is not None else "",
        description=description,
    )
    if not outcome.accepted:
        return _rejection(401 if content else 400, outcome.message)

    return ReportUploadResponse(message=outcome.message, report=outcome.report)


@router.get(
    "/reports",
    response_model=ReportListResponse,
    tags=["Reports"],
    summary="Most recent reports of the caller"
)
async def list_reports(
    limit: Optional[int] = Query(default=None, ge=1, le=50),
    user: UserSession = Depends(require_user),
    registry: ReportRegistry = Depends(get_report_registry)
):
    reports = registry.recent_reports(user.id, limit or settings.report_context_limit)
    return ReportListResponse(reports=list(reports))


@router.get(
    "/reports/stream",
    tags=["Reports"],
    summary="Live feed of the caller's most recent reports (SSE)"
)
async def stream_reports(
    request: Request,
    limit: Optional[int] = Query(default=None, ge=1, le=50),
    user: UserSession = Depends(require_user),
    registry: ReportRegistry = Depends(get_report_registry)
):
    """Each ``snapshot`` event carries the complete list, newest first."""
    events = snapshot_events(
        request,
        subscribe=lambda callback: registry.watch_recent_reports(user.id, callback, limit),
        encode=lambda reports: [r.model_dump(mode="json", by_alias=True) for r in reports],
        keepalive_seconds=settings.stream_keepalive_seconds,
    )
    return StreamingResponse(events, media_type="text/event-stream")


# =============================================================================
# Conversation
# =============================================================================

@router.post(
    "/conversation",
    response_model=SendOutcome,
    tags=["Conversation"],
    summary="Ask the assistant about a symptom",
    responses={
        400: {"model": ErrorResponse, "description": "Blank input"},
        401: {"model": ErrorResponse, "description": "Not signed in"},
        502: {"model": ErrorResponse, "description": "AI or database failure"}
    }
)
@limiter.limit(f"{settings.rate_limit_per_minute}/minute")
async def send_message(
    request: Request,
    body: SendMessageRequest,
    user: Optional[UserSession] = Depends(get_optional_user),
    engine: ConversationEngine = Depends(get_conversation_engine)
):
    """
    Run one exchange with the language model.

    The reply comes back structured (``possibleReason``,
    ``suggestedSolutions``, ``disclaimer``). When the model ignored the
    format, ``parsed`` is false and ``possibleReason`` holds the raw text.
    """
    outcome = await engine.send(user, body.text)
    if not outcome.accepted:
        status_code = 400 if outcome.notice == BLANK_INPUT_NOTICE else 401
        return _rejection(status_code, outcome.notice)
    return outcome


@router.get(
    "/conversation/history",
    response_model=HistoryResponse,
    tags=["Conversation"],
    summary="Most recent turns of the caller, oldest first"
)
async def conversation_history(
    limit: Optional[int] = Query(default=None, ge=1, le=50),
    user: UserSession = Depends(require_user),
    engine: ConversationEngine = Depends(get_conversation_engine)
):
    return HistoryResponse(turns=list(engine.history(user.id, _history_limit(limit))))


@router.get(
    "/conversation/stream",
    tags=["Conversation"],
    summary="Live feed of the caller's recent turns (SSE)"
)
async def stream_conversation(
    request: Request,
    limit: Optional[int] = Query(default=None, ge=1, le=50),
    user: UserSession = Depends(require_user),
    engine: ConversationEngine = Depends(get_conversation_engine)
):
    """Each ``snapshot`` event carries the complete window, oldest first."""
    events = snapshot_events(
        request,
        subscribe=lambda callback: engine.watch_history(user.id, callback, _history_limit(limit)),
        encode=lambda turns: [t.model_dump(mode="json", by_alias=True) for t in turns],
        keepalive_seconds=settings.stream_keepalive_seconds,
    )
    return StreamingResponse(events, media_type="text/event-stream")


# =============================================================================
# Speech
# =============================================================================

@router.get(
    "/speech/{clip_id}",
    tags=["Speech"],
    summary="Download a synthesized reply clip"
)
async def get_speech_clip(clip_id: str):
    """Clip ids are random and only handed to the user who asked."""
    path = resolve_clip(settings.audio_path, clip_id)
    if path is None:
        return _rejection(404, f"Speech clip not found: {clip_id}")
    return FileResponse(path=str(path), media_type="audio/mpeg", filename=path.name)
