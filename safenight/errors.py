"""Error taxonomy for the drink and SOS core.

Only AlreadyActive and UnknownDrinkType reach callers; the rest are raised by
collaborator wrappers and recovered where they occur.
"""


class SafeNightError(Exception):
    """Base class for all core errors."""


class ParseFailure(SafeNightError):
    """The structured-parsing collaborator returned unusable data."""


class UnknownDrinkType(SafeNightError, ValueError):
    """A quick-log preset was requested for a type with no preset."""


class AlreadyActive(SafeNightError):
    """An SOS trigger arrived while another incident is active."""

    def __init__(self, user_id: str, active_id: str | None = None):
        self.user_id = user_id
        self.active_id = active_id
        super().__init__(f"SOS already active for user {user_id}")


class LocationUnavailable(SafeNightError):
    """Location capture failed or timed out."""


class AuditSubmissionFailed(SafeNightError):
    """The audit log could not record an event."""


class NotificationFailed(SafeNightError):
    """No emergency contact could be reached."""
