"""Escalate missed check-ins to an SOS, once per episode."""

from __future__ import annotations

import logging
import threading

from safenight.errors import AlreadyActive
from safenight.profile import UserProfile
from safenight.sos import SOSEvent, SOSStateMachine

logger = logging.getLogger(__name__)

MISSED_CHECKINS_TO_ESCALATE = 2


class CheckInMonitor:
    """Debounces missed check-in reports into a single ``missed_checkin`` trigger.

    An episode starts at the first report that escalates and ends when the
    user checks in again; reports in between are ignored.
    """

    def __init__(self, machine: SOSStateMachine, profile: UserProfile):
        self._machine = machine
        self.profile = profile
        self._lock = threading.Lock()
        self._escalated = False

    @property
    def escalated(self) -> bool:
        return self._escalated

    async def missed_checkin(self, missed_count: int) -> SOSEvent | None:
        settings = self.profile.settings
        if not (settings.allow_check_ins and settings.auto_escalate):
            return None
        if missed_count < MISSED_CHECKINS_TO_ESCALATE:
            return None

        with self._lock:
            if self._escalated:
                return None
            self._escalated = True

        logger.info("Auto-escalating after %d missed check-ins", missed_count)
        try:
            return await self._machine.trigger(
                "missed_checkin",
                self.profile.id,
                self.profile.emergency_contacts,
                share_location=settings.share_location,
            )
        except AlreadyActive:
            logger.info("SOS already active; missed check-in not escalated again")
            return None

    def checked_in(self) -> None:
        with self._lock:
            self._escalated = False
