"""
SafeNight core: BAC estimation from a drink log, and SOS alerts with a
tamper-evident audit trail.
Use from project root: python -m safenight
"""

from safenight.drinks import (
    ALCOHOL_TYPES,
    STANDARD_DRINKS,
    DrinkEvent,
    grams_from_volume_abv,
    list_drink_types,
)
from safenight.calculations import (
    BACEstimate,
    bac_curve,
    estimate_bac,
    safety_level,
)
from safenight.detector import Detection, detect
from safenight.audit import AuditLog, SQLiteAuditLog
from safenight.ledger import DrinkLedger, RecalculationTimer
from safenight.sos import SOSEvent, SOSStateMachine
from safenight.service import SafetySession, SessionRegistry

__all__ = [
    "ALCOHOL_TYPES",
    "STANDARD_DRINKS",
    "DrinkEvent",
    "grams_from_volume_abv",
    "list_drink_types",
    "BACEstimate",
    "bac_curve",
    "estimate_bac",
    "safety_level",
    "Detection",
    "detect",
    "AuditLog",
    "SQLiteAuditLog",
    "DrinkLedger",
    "RecalculationTimer",
    "SOSEvent",
    "SOSStateMachine",
    "SafetySession",
    "SessionRegistry",
]
