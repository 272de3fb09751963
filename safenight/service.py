"""Per-user safety session: drink ledger, SOS machine and their background tasks.

Built at sign-in, torn down at sign-out, and handed to whatever needs it.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

from safenight import config
from safenight.audit import AuditLog, SQLiteAuditLog
from safenight.checkin import CheckInMonitor
from safenight.collaborators import (
    AudioRecorder,
    ContactNotifier,
    LocationProvider,
    LoggingNotifier,
    Transcriber,
)
from safenight.detector import Detection
from safenight.errors import AlreadyActive
from safenight.ledger import DrinkLedger, RecalculationTimer
from safenight.listener import CodeWordListener
from safenight.parsing import DrinkParser
from safenight.profile import UserProfile
from safenight.sos import SOSEvent, SOSStateMachine

logger = logging.getLogger(__name__)


def default_audit_log() -> SQLiteAuditLog:
    return SQLiteAuditLog(config.audit_db_path(), config.audit_key())


class SafetySession:
    def __init__(
        self,
        profile: UserProfile,
        audit_log: Optional[AuditLog] = None,
        notifier: Optional[ContactNotifier] = None,
        location_provider: Optional[LocationProvider] = None,
        parser: Optional[DrinkParser] = None,
        machine: Optional[SOSStateMachine] = None,
    ):
        self.profile = profile
        self.ledger = DrinkLedger(profile.weight_lb, profile.ratio, parser=parser)
        self.sos = machine or SOSStateMachine(
            audit_log or default_audit_log(),
            notifier or LoggingNotifier(),
            location_provider,
        )
        self.checkins = CheckInMonitor(self.sos, profile)
        self.timer: Optional[RecalculationTimer] = None
        self.listener: Optional[CodeWordListener] = None
        self.closed = False

    def update_profile(self, profile: UserProfile) -> None:
        self.profile = profile
        self.checkins.profile = profile
        self.ledger.set_body(profile.weight_lb, profile.ratio)
        if self.listener is not None:
            self.listener.code_word = profile.sos_code_word or ""

    async def start(self, interval_s: Optional[float] = None) -> None:
        """Start periodic BAC recalculation."""
        self.timer = RecalculationTimer(self.ledger, interval_s)
        self.timer.start()

    async def trigger_sos(self, trigger_kind: str = "button") -> SOSEvent:
        return await self.sos.trigger(
            trigger_kind,
            self.profile.id,
            self.profile.emergency_contacts,
            share_location=self.profile.settings.share_location,
        )

    def resolve_sos(self) -> Optional[SOSEvent]:
        current = self.sos.current(self.profile.id)
        return self.sos.resolve(current.id) if current else None

    def cancel_sos(self) -> Optional[SOSEvent]:
        return self.sos.cancel(self.profile.id)

    async def _on_code_word(self, detection: Detection) -> None:
        try:
            await self.trigger_sos("code_word")
        except AlreadyActive:
            logger.info("Code word heard while SOS already active")

    def start_listening(self, recorder: AudioRecorder, transcriber: Transcriber, **kwargs) -> CodeWordListener:
        if self.listener is None:
            self.listener = CodeWordListener(
                recorder,
                transcriber,
                self.profile.sos_code_word or "",
                self._on_code_word,
                **kwargs,
            )
        else:
            self.listener.code_word = self.profile.sos_code_word or ""
        self.listener.start()
        return self.listener

    async def stop_listening(self) -> None:
        if self.listener is not None:
            await self.listener.stop()

    async def shutdown(self) -> None:
        """Sign-out: stop background work and drop the drink log. SOS history stays."""
        if self.timer is not None:
            await self.timer.stop()
            self.timer = None
        await self.stop_listening()
        self.ledger.clear()
        self.closed = True


class SessionRegistry:
    """user id -> SafetySession for surfaces that serve several users.

    All sessions share one SOS machine and audit log so incident history
    survives sign-out.
    """

    def __init__(
        self,
        audit_log: Optional[AuditLog] = None,
        notifier: Optional[ContactNotifier] = None,
        location_provider: Optional[LocationProvider] = None,
        parser: Optional[DrinkParser] = None,
    ):
        self.audit_log = audit_log or default_audit_log()
        self.notifier = notifier or LoggingNotifier()
        self.parser = parser
        self.machine = SOSStateMachine(self.audit_log, self.notifier, location_provider)
        self._sessions: dict[str, SafetySession] = {}
        self._lock = threading.Lock()

    def get(self, user_id: str) -> Optional[SafetySession]:
        with self._lock:
            return self._sessions.get(user_id)

    def open(self, profile: UserProfile) -> SafetySession:
        with self._lock:
            session = self._sessions.get(profile.id)
            if session is not None:
                session.update_profile(profile)
                return session
            session = SafetySession(profile, parser=self.parser, machine=self.machine)
            self._sessions[profile.id] = session
        logger.info("Session opened for user %s", profile.id)
        return session

    async def close(self, user_id: str) -> None:
        with self._lock:
            session = self._sessions.pop(user_id, None)
        if session is not None:
            await session.shutdown()
            logger.info("Session closed for user %s", user_id)
