"""SOS incident lifecycle: idle -> active -> resolved | false_alarm.

A user has at most one active incident. ``trigger`` reserves that slot before
any I/O, so a button press racing a code-word detection gives exactly one
active event and one ``AlreadyActive``. Location, audit and notification are
best-effort: each may fail without leaving the machine between states.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Iterable
from urllib.parse import quote

from safenight import config
from safenight.audit import AuditLog
from safenight.collaborators import ContactNotifier, LocationProvider, NullLocationProvider
from safenight.errors import AlreadyActive, AuditSubmissionFailed, NotificationFailed
from safenight.profile import EmergencyContact

logger = logging.getLogger(__name__)

TRIGGERS = ("button", "code_word", "missed_checkin", "auto_escalate")

ACTIVE = "active"
RESOLVED = "resolved"
FALSE_ALARM = "false_alarm"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float
    address: str | None = None

    def maps_url(self) -> str:
        return f"https://maps.google.com/?q={self.latitude},{self.longitude}"


@dataclass(frozen=True)
class SOSEvent:
    user_id: str
    trigger: str
    contacts_notified: tuple[str, ...] = ()
    location: Location | None = None
    status: str = ACTIVE
    created_at: datetime = field(default_factory=_utcnow)
    resolved_at: datetime | None = None
    audit_hash: str | None = None
    audit_signature: str | None = None
    audit_slot: int | None = None
    notification_sent: bool = False
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def is_active(self) -> bool:
        return self.status == ACTIVE

    @property
    def is_audited(self) -> bool:
        return self.audit_signature is not None

    def audit_payload(self) -> dict[str, Any]:
        """The fields fixed at trigger time; later transitions are not re-logged."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "trigger": self.trigger,
            "status": ACTIVE,
            "contacts_notified": list(self.contacts_notified),
            "created_at": self.created_at.isoformat(),
            "location": (
                {
                    "latitude": self.location.latitude,
                    "longitude": self.location.longitude,
                    "address": self.location.address,
                }
                if self.location
                else None
            ),
        }

    def to_dict(self) -> dict[str, Any]:
        data = self.audit_payload()
        data.update(
            {
                "status": self.status,
                "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
                "audit_hash": self.audit_hash,
                "audit_signature": self.audit_signature,
                "audit_slot": self.audit_slot,
                "notification_sent": self.notification_sent,
            }
        )
        return data


def format_address(geocoded: dict[str, Any]) -> str | None:
    street = (geocoded.get("street") or "").strip()
    city = (geocoded.get("city") or "").strip()
    region = (geocoded.get("region") or "").strip()
    head = " ".join(part for part in (street, city) if part)
    address = ", ".join(part for part in (head, region) if part)
    return address or None


def compose_alert_message(location: Location | None) -> str:
    lines = [
        "EMERGENCY ALERT from SafeNight!",
        "",
        "Your contact has triggered an SOS alert and may need help.",
    ]
    if location is not None:
        where = location.address or f"{location.latitude}, {location.longitude}"
        lines += ["", f"Location: {where}", "", f"Google Maps: {location.maps_url()}"]
    lines += ["", "Please try to reach them immediately."]
    return "\n".join(lines)


def sms_url(phone: str, message: str) -> str:
    """``sms:`` hand-off link for platforms that open the compose sheet."""
    return f"sms:{phone}?body={quote(message)}"


class SOSStateMachine:
    def __init__(
        self,
        audit_log: AuditLog,
        notifier: ContactNotifier,
        location_provider: LocationProvider | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._audit = audit_log
        self._notifier = notifier
        self._location = location_provider or NullLocationProvider()
        self._clock = clock
        self._lock = threading.Lock()
        self._events: dict[str, SOSEvent] = {}
        self._active: dict[str, str] = {}
        self._reserved: set[str] = set()
        self._auditing: set[str] = set()
        self._contacts: dict[str, tuple[EmergencyContact, ...]] = {}

    # ---------------------------------------------------------------
    # Queries
    # ---------------------------------------------------------------

    def get(self, event_id: str) -> SOSEvent | None:
        with self._lock:
            return self._events.get(event_id)

    def current(self, user_id: str | None = None) -> SOSEvent | None:
        with self._lock:
            if user_id is not None:
                event_id = self._active.get(user_id)
                return self._events[event_id] if event_id else None
            active = [self._events[i] for i in self._active.values()]
        return max(active, key=lambda e: e.created_at) if active else None

    def is_active(self, user_id: str | None = None) -> bool:
        return self.current(user_id) is not None

    def history(self, user_id: str | None = None) -> list[SOSEvent]:
        with self._lock:
            events = list(self._events.values())
        if user_id is not None:
            events = [e for e in events if e.user_id == user_id]
        return sorted(events, key=lambda e: e.created_at)

    # ---------------------------------------------------------------
    # Transitions
    # ---------------------------------------------------------------

    async def trigger(
        self,
        trigger_kind: str,
        user_id: str,
        contacts: Iterable[EmergencyContact],
        share_location: bool = True,
    ) -> SOSEvent:
        """Open a new incident. Raises AlreadyActive if one is open or opening."""
        if trigger_kind not in TRIGGERS:
            raise ValueError(f"unknown SOS trigger: {trigger_kind!r}")
        contacts = tuple(contacts)

        with self._lock:
            if user_id in self._active or user_id in self._reserved:
                raise AlreadyActive(user_id, self._active.get(user_id))
            self._reserved.add(user_id)

        try:
            location = await self._capture_location() if share_location else None
            event = SOSEvent(
                user_id=user_id,
                trigger=trigger_kind,
                contacts_notified=tuple(c.id for c in contacts),
                location=location,
                created_at=self._clock(),
            )
            with self._lock:
                self._events[event.id] = event
                self._active[user_id] = event.id
                self._contacts[event.id] = contacts
        finally:
            with self._lock:
                self._reserved.discard(user_id)

        logger.info("SOS %s active (trigger=%s, contacts=%d)", event.id, trigger_kind, len(contacts))

        try:
            await self._submit_audit(event.id)
        except AuditSubmissionFailed as exc:
            logger.warning("SOS %s active without audit entry: %s", event.id, exc)

        try:
            await self._notify(event.id)
        except NotificationFailed as exc:
            logger.warning("SOS %s notification failed: %s", event.id, exc)

        return self.get(event.id)

    def resolve(self, event_id: str) -> SOSEvent | None:
        """Mark an active incident resolved; ignored if it is not active."""
        return self._finish(event_id, RESOLVED)

    def cancel(self, user_id: str | None = None) -> SOSEvent | None:
        """Mark the user's active incident a false alarm; no-op when idle.

        ``user_id`` may be omitted only while at most one user is active.
        """
        if user_id is None:
            with self._lock:
                if len(self._active) > 1:
                    raise ValueError("several users have active incidents; pass user_id")
        current = self.current(user_id)
        if current is None:
            return None
        return self._finish(current.id, FALSE_ALARM)

    def _finish(self, event_id: str, status: str) -> SOSEvent | None:
        with self._lock:
            event = self._events.get(event_id)
            if event is None or not event.is_active:
                return None
            event = replace(event, status=status, resolved_at=self._clock())
            self._events[event_id] = event
            self._active.pop(event.user_id, None)
        logger.info("SOS %s -> %s", event_id, status)
        return event

    async def retry_audit(self, event_id: str) -> SOSEvent | None:
        """Resubmit an unaudited event. Raises AuditSubmissionFailed on failure."""
        event = self.get(event_id)
        if event is None or event.is_audited:
            return event
        await self._submit_audit(event_id)
        return self.get(event_id)

    async def notify_again(self, event_id: str) -> bool:
        if self.get(event_id) is None:
            return False
        try:
            await self._notify(event_id)
        except NotificationFailed as exc:
            logger.warning("SOS %s re-notification failed: %s", event_id, exc)
            return False
        return True

    # ---------------------------------------------------------------
    # Best-effort I/O
    # ---------------------------------------------------------------

    async def _capture_location(self) -> Location | None:
        timeout = config.location_timeout_s()
        try:
            position = await asyncio.wait_for(
                self._location.get_current_position("high"), timeout=timeout
            )
        except asyncio.TimeoutError:
            logger.warning("Location unavailable: no fix within %ss", timeout)
            return None
        except Exception as exc:
            logger.warning("Location unavailable: %s", exc)
            return None

        address = None
        try:
            geocoded = await asyncio.wait_for(
                self._location.reverse_geocode(position.latitude, position.longitude), timeout=timeout
            )
            address = format_address(geocoded or {})
        except Exception as exc:
            logger.info("Reverse geocoding failed: %s", exc)
        return Location(position.latitude, position.longitude, address)

    async def _submit_audit(self, event_id: str) -> None:
        with self._lock:
            if event_id in self._auditing:
                return
            self._auditing.add(event_id)
            event = self._events[event_id]
        try:
            try:
                receipt = await asyncio.wait_for(self._audit.append(event), timeout=config.audit_timeout_s())
            except asyncio.TimeoutError:
                raise AuditSubmissionFailed("audit log timed out") from None
            except AuditSubmissionFailed:
                raise
            except Exception as exc:
                raise AuditSubmissionFailed(str(exc)) from exc
            with self._lock:
                self._events[event_id] = replace(
                    self._events[event_id],
                    audit_hash=receipt.hash,
                    audit_signature=receipt.signature,
                    audit_slot=receipt.slot,
                )
        finally:
            with self._lock:
                self._auditing.discard(event_id)

    async def _notify(self, event_id: str) -> None:
        with self._lock:
            event = self._events[event_id]
            contacts = self._contacts.get(event_id, ())
        if not contacts:
            raise NotificationFailed("no emergency contacts")

        message = compose_alert_message(event.location)
        sent = 0
        for contact in contacts:
            try:
                ok = await asyncio.wait_for(
                    self._notifier.compose_and_send(contact.phone, message), timeout=config.notify_timeout_s()
                )
            except Exception as exc:
                logger.warning("Could not notify contact %s: %s", contact.id, exc)
                continue
            sent += 1 if ok else 0

        if sent:
            with self._lock:
                self._events[event_id] = replace(self._events[event_id], notification_sent=True)
            return
        raise NotificationFailed(f"0 of {len(contacts)} contacts reached")
