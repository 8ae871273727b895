"""Shared fixtures: in-memory store, scripted verifier, fixed clock, Flask client."""
from datetime import datetime, timezone

import pytest

from cinematch.config import TestConfig
from cinematch.services.quiz_service.submission import SubmissionGate
from cinematch.services.store import MemoryResultStore
from cinematch.services.verifier import Verification

FIXED_NOW = datetime(2026, 3, 7, 18, 30, tzinfo=timezone.utc)


class FakeVerifier:
    """Returns a scripted Verification (or raises) and records every call."""

    def __init__(self, success=True, score=0.9, action="quiz_submit", error=None):
        self.success = success
        self.score = score
        self.action = action
        self.error = error
        self.calls = []

    def verify(self, token, remote_ip=None):
        self.calls.append((token, remote_ip))
        if self.error is not None:
            raise self.error
        return Verification(success=self.success, score=self.score, action=self.action)


class Clock:
    def __init__(self, now=FIXED_NOW):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def store(clock):
    return MemoryResultStore(clock=clock)


@pytest.fixture
def verifier():
    return FakeVerifier()


@pytest.fixture
def gate(store, verifier, clock):
    return SubmissionGate(store, verifier, min_score=0.5, expected_action="quiz_submit", clock=clock)


@pytest.fixture
def payload():
    return {
        "token": "tok-123",
        "identityId": "user-1",
        "displayName": "Ada",
        "isGuest": False,
        "answers": ["action", "action", "adventure", "comedy"],
        "totalAnswers": 4,
    }


@pytest.fixture
def app(store, verifier):
    from app import create_app

    flask_app = create_app(TestConfig, store=store, verifier=verifier)
    flask_app.config.update(TESTING=True)
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()
