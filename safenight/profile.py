"""User profile as seen by the core: body parameters, contacts, settings.

The profile store itself lives elsewhere; the core only reads these values.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

# Widmark distribution ratio (r)
R_MALE = 0.68
R_FEMALE = 0.55

MIN_WEIGHT_LB = 80.0
MAX_WEIGHT_LB = 400.0
DEFAULT_WEIGHT_LB = 140.0
GENDERS = ("male", "female", "other")


def distribution_ratio(gender: str) -> float:
    """Widmark r for a profile gender. Anything but male uses the female ratio."""
    return R_MALE if str(gender).strip().lower() == "male" else R_FEMALE


@dataclass(frozen=True)
class EmergencyContact:
    id: str
    name: str
    phone: str
    relationship: str = ""


@dataclass(frozen=True)
class UserSettings:
    share_location: bool = True
    allow_check_ins: bool = True
    auto_escalate: bool = False


def _parse_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "1", "yes", "y", "on"}:
            return True
        if lowered in {"false", "0", "no", "n", "off"}:
            return False
    if isinstance(value, (int, float)):
        return bool(value)
    return default


def _clamp_weight(value: Any) -> float:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        parsed = DEFAULT_WEIGHT_LB
    return max(MIN_WEIGHT_LB, min(MAX_WEIGHT_LB, parsed))


@dataclass(frozen=True)
class UserProfile:
    id: str
    weight_lb: float = DEFAULT_WEIGHT_LB
    gender: str = "female"
    emergency_contacts: tuple[EmergencyContact, ...] = ()
    settings: UserSettings = field(default_factory=UserSettings)
    sos_code_word: str | None = None

    @property
    def ratio(self) -> float:
        return distribution_ratio(self.gender)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "UserProfile":
        gender = str(raw.get("gender") or "female").strip().lower()
        if gender not in GENDERS:
            gender = "other"

        contacts = []
        for i, item in enumerate(raw.get("emergency_contacts") or []):
            if not isinstance(item, dict) or not item.get("phone"):
                continue
            contacts.append(
                EmergencyContact(
                    id=str(item.get("id") or f"contact-{i + 1}"),
                    name=str(item.get("name", "")).strip(),
                    phone=str(item["phone"]).strip(),
                    relationship=str(item.get("relationship", "")).strip(),
                )
            )

        settings_raw = raw.get("settings")
        if not isinstance(settings_raw, dict):
            settings_raw = {}
        defaults = UserSettings()
        settings = UserSettings(
            share_location=_parse_bool(settings_raw.get("share_location"), defaults.share_location),
            allow_check_ins=_parse_bool(settings_raw.get("allow_check_ins"), defaults.allow_check_ins),
            auto_escalate=_parse_bool(settings_raw.get("auto_escalate"), defaults.auto_escalate),
        )
        code_word = str(raw.get("sos_code_word") or "").strip() or None

        return cls(
            id=str(raw.get("id") or raw.get("user_id") or "").strip(),
            weight_lb=_clamp_weight(raw.get("weight_lb")),
            gender=gender,
            emergency_contacts=tuple(contacts),
            settings=settings,
            sos_code_word=code_word,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "weight_lb": self.weight_lb,
            "gender": self.gender,
            "emergency_contacts": [asdict(c) for c in self.emergency_contacts],
            "settings": asdict(self.settings),
            "sos_code_word": self.sos_code_word,
        }
