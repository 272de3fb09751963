"""Drink events, quick-log presets and alcohol content helpers.

US fluid ounce = 29.5735 mL, ethanol density = 0.789 g/mL.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

ML_PER_OZ = 29.5735

# Ethanol density (g/mL) for volume x ABV -> grams.
ETHANOL_DENSITY = 0.789

ALCOHOL_TYPES = ("beer", "wine", "liquor", "cocktail", "shot", "other")


@dataclass(frozen=True)
class DrinkPreset:
    """A quick-select drink with a standard serving."""

    key: str
    label: str
    volume_oz: float
    abv: float  # e.g. 0.05 for 5%


# Standard servings for one-tap logging.
STANDARD_DRINKS: Dict[str, DrinkPreset] = {
    "beer": DrinkPreset("beer", "Beer (12 oz, 5%)", 12.0, 0.05),
    "wine": DrinkPreset("wine", "Wine (5 oz, 12%)", 5.0, 0.12),
    "shot": DrinkPreset("shot", "Shot (1.5 oz, 40%)", 1.5, 0.40),
    "liquor": DrinkPreset("liquor", "Spirit (1.5 oz, 40%)", 1.5, 0.40),
    "cocktail": DrinkPreset("cocktail", "Cocktail (6 oz, 13%)", 6.0, 0.13),
}

# Logged when the parser cannot make sense of a description.
DEFAULT_DRINK = DrinkPreset("other", "Drink", 4.0, 0.10)


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class DrinkEvent:
    user_id: str
    name: str
    alcohol_type: str
    volume_oz: float
    abv: float
    logged_at: datetime = field(default_factory=_utcnow)
    plan_id: Optional[str] = None
    id: str = field(default_factory=_new_id)

    def __post_init__(self):
        if self.alcohol_type not in ALCOHOL_TYPES:
            raise ValueError(f"unknown alcohol type: {self.alcohol_type!r}")
        if not self.volume_oz > 0:
            raise ValueError("volume_oz must be > 0")
        if not 0 < self.abv <= 1:
            raise ValueError("abv must be in (0, 1]")
        if self.logged_at.tzinfo is None:
            raise ValueError("logged_at must be timezone-aware")

    @property
    def grams(self) -> float:
        return grams_from_volume_abv(self.volume_oz, self.abv)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "plan_id": self.plan_id,
            "name": self.name,
            "alcohol_type": self.alcohol_type,
            "volume_oz": self.volume_oz,
            "abv": self.abv,
            "logged_at": self.logged_at.isoformat(),
        }


def grams_from_volume_abv(volume_oz: float, abv: float) -> float:
    """Convert fluid ounces and ABV (0 to 1) to grams of ethanol."""
    ml = volume_oz * ML_PER_OZ
    return ml * abv * ETHANOL_DENSITY


def get_preset(drink_type: str) -> Optional[DrinkPreset]:
    return STANDARD_DRINKS.get(drink_type)


def list_drink_types() -> List[Tuple[str, str]]:
    """Return list of (key, label) for UI dropdowns."""
    return [(p.key, p.label) for p in STANDARD_DRINKS.values()]
