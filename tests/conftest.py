"""
Shared fixtures: in-memory stand-ins for Firebase, Cloudinary, Gemini and
the speech synthesizer, plus a wired-up test client.
"""

import os

# Settings are read at import time
os.environ.setdefault("SPEECH_BACKEND", "none")
os.environ.setdefault("RATE_LIMIT_PER_MINUTE", "1000")

from collections import defaultdict
from typing import Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from health_companion.api.dependencies import (
    get_document_store,
    get_language_model,
    get_object_store,
    get_speech_synthesizer,
    get_token_verifier,
)
from health_companion.core.document_store import OWNER_FIELD
from health_companion.core.errors import AuthError, WriteError
from health_companion.core.object_store import StoredObject
from health_companion.main import app
from health_companion.models.schemas import SpeechResult, UserSession
from health_companion.services.conversation import ConversationEngine
from health_companion.services.report_registry import ReportRegistry
from health_companion.services.upload_relay import UploadRelay

STRUCTURED_REPLY = (
    '{"possibleReason":"R","suggestedSolutions":["A","B"],"disclaimer":"D"}'
)

ALICE = UserSession(id="alice-uid", display_name="Alice", email="alice@example.com")
BOB = UserSession(id="bob-uid", display_name="Bob", email="bob@example.com")


class FakeDocumentStore:
    """Firestore stand-in with owner-filtered queries and live watches."""

    def __init__(self):
        self.collections: Dict[str, List[dict]] = defaultdict(list)
        self.watchers: List[tuple] = []
        self.failing_collections = set()
        self.fail_after_writes: Optional[int] = None
        self.writes = 0
        self.queries = 0

    def _select(self, collection, owner_id, order_by, descending, limit):
        matching = [
            dict(doc) for doc in self.collections[collection]
            if doc.get(OWNER_FIELD) == owner_id
        ]
        matching.sort(key=lambda doc: doc[order_by], reverse=descending)
        return matching[:limit]

    def add(self, collection, document):
        if collection in self.failing_collections:
            raise WriteError("Missing or insufficient permissions.")
        if self.fail_after_writes is not None and self.writes >= self.fail_after_writes:
            raise WriteError("Deadline exceeded")

        self.writes += 1
        self.collections[collection].append(dict(document))

        for watcher in list(self.watchers):
            watched, owner_id, order_by, descending, limit, callback = watcher
            if watched == collection:
                callback(self._select(collection, owner_id, order_by, descending, limit))
        return f"doc-{self.writes}"

    def query(self, collection, owner_id, order_by, descending, limit):
        self.queries += 1
        return self._select(collection, owner_id, order_by, descending, limit)

    def watch(self, collection, owner_id, order_by, descending, limit, callback):
        watcher = (collection, owner_id, order_by, descending, limit, callback)
        self.watchers.append(watcher)
        callback(self._select(collection, owner_id, order_by, descending, limit))

        def unsubscribe():
            if watcher in self.watchers:
                self.watchers.remove(watcher)

        return unsubscribe


class FakeObjectStore:
    """Cloudinary stand-in."""

    def __init__(self):
        self.calls: List[tuple] = []
        self.error: Optional[Exception] = None

    def put(self, data, file_name, folder):
        self.calls.append((data, file_name, folder))
        if self.error is not None:
            raise self.error
        public_id = f"{folder}/{file_name.rsplit('.', 1)[0]}"
        return StoredObject(
            url=f"https://res.cloudinary.com/demo/image/upload/{public_id}",
            public_id=public_id,
            resource_type="image",
        )


class FakeLanguageModel:
    """Gemini stand-in returning queued replies."""

    def __init__(self):
        self.replies: List[str] = []
        self.prompts: List[str] = []
        self.error: Optional[Exception] = None

    async def generate(self, prompt):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        if self.replies:
            return self.replies.pop(0)
        return STRUCTURED_REPLY


class FakeTokenVerifier:
    """Firebase Auth stand-in: each user has a fixed token."""

    def __init__(self):
        self.sessions = {"token-alice": ALICE, "token-bob": BOB}
        self.revoked: List[str] = []
        self.fail_revoke = False

    def verify(self, id_token):
        if id_token not in self.sessions:
            raise AuthError("Firebase ID token has invalid signature.")
        return self.sessions[id_token]

    def revoke(self, uid):
        if self.fail_revoke:
            raise AuthError("Network error while revoking tokens")
        self.revoked.append(uid)


class RecordingSpeech:
    """Speech stand-in remembering what it was asked to say."""

    def __init__(self):
        self.calls: List[tuple] = []
        self.fail = False

    def synthesize(self, text, locale):
        self.calls.append((text, locale))
        if self.fail:
            return SpeechResult(
                spoken=False,
                notice="Sorry, I couldn't speak the response. Text is displayed.",
            )
        return SpeechResult(spoken=True, voice="hi")


@pytest.fixture
def store():
    return FakeDocumentStore()


@pytest.fixture
def object_store():
    return FakeObjectStore()


@pytest.fixture
def model():
    return FakeLanguageModel()


@pytest.fixture
def verifier():
    return FakeTokenVerifier()


@pytest.fixture
def speech():
    return RecordingSpeech()


@pytest.fixture
def relay(object_store):
    return UploadRelay(object_store, folder="medical_reports")


@pytest.fixture
def registry(store):
    return ReportRegistry(store)


@pytest.fixture
def engine(store, model, speech, registry):
    return ConversationEngine(
        store=store,
        model=model,
        speech=speech,
        registry=registry,
        speech_language="hi-IN",
    )


@pytest.fixture
def client(store, object_store, model, verifier, speech):
    """Test client with every external collaborator replaced."""
    app.dependency_overrides[get_document_store] = lambda: store
    app.dependency_overrides[get_object_store] = lambda: object_store
    app.dependency_overrides[get_language_model] = lambda: model
    app.dependency_overrides[get_token_verifier] = lambda: verifier
    app.dependency_overrides[get_speech_synthesizer] = lambda: speech
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth_header(token: str = "token-alice") -> dict:
    return {"Authorization": f"Bearer {token}"}
