"""Shared fakes for the collaborators the core talks to."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from safenight.audit import AuditLog, SQLiteAuditLog
from safenight.collaborators import Position, Transcription
from safenight.profile import EmergencyContact, UserProfile, UserSettings


class FakeClock:
    def __init__(self, start=None):
        self.now = start or datetime(2026, 10, 17, 22, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)
        return self.now


class FakeLocation:
    def __init__(self, position=Position(40.7128, -74.006), geocoded=None, delay=0.0, fail=False, geocode_fail=False):
        self.position = position
        self.geocoded = geocoded if geocoded is not None else {"street": "1 Main St", "city": "Springfield", "region": "IL"}
        self.delay = delay
        self.fail = fail
        self.geocode_fail = geocode_fail
        self.calls = 0

    async def get_current_position(self, accuracy="high"):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("permission denied")
        return self.position

    async def reverse_geocode(self, latitude, longitude):
        if self.geocode_fail:
            raise RuntimeError("geocoder offline")
        return self.geocoded


class FakeNotifier:
    def __init__(self, ok=True, fail=False):
        self.ok = ok
        self.fail = fail
        self.sent = []

    async def compose_and_send(self, phone, message):
        if self.fail:
            raise OSError("sms unavailable")
        self.sent.append((phone, message))
        return self.ok


class FlakyAuditLog(AuditLog):
    """Fails the first ``failures`` appends, then delegates to a real log."""

    def __init__(self, inner, failures=1):
        self.inner = inner
        self.failures = failures
        self.appends = 0

    async def append(self, event):
        self.appends += 1
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionError("ledger unreachable")
        return await self.inner.append(event)

    async def verify(self, signature):
        return await self.inner.verify(signature)


class FakeRecorder:
    def __init__(self):
        self.started = 0
        self.stopped = 0
        self.discarded = []

    async def start(self):
        self.started += 1
        return f"rec-{self.started}"

    async def stop(self, handle):
        self.stopped += 1
        return f"{handle}.m4a"

    async def discard(self, handle):
        self.discarded.append(handle)


class ScriptedTranscriber:
    def __init__(self, texts):
        self.texts = list(texts)

    async def transcribe(self, audio):
        text = self.texts.pop(0) if self.texts else ""
        return Transcription(text, 0.9)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def audit_log(tmp_path):
    return SQLiteAuditLog(str(tmp_path / "audit.db"), b"test-key")


@pytest.fixture
def contacts():
    return (
        EmergencyContact("c1", "Sam", "+15550001", "friend"),
        EmergencyContact("c2", "Alex", "+15550002", "sibling"),
    )


@pytest.fixture
def profile(contacts):
    return UserProfile(
        id="user-1",
        weight_lb=140,
        gender="female",
        emergency_contacts=contacts,
        settings=UserSettings(auto_escalate=True),
        sos_code_word="pineapple",
    )
