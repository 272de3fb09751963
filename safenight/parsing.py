"""Free-text drink parsing.

A generative-text service turns "two margaritas" into structured fields. It is
slow and sometimes returns junk, so payloads are validated here and the ledger
falls back to a default drink when validation fails.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

from safenight.drinks import ALCOHOL_TYPES
from safenight.errors import ParseFailure

logger = logging.getLogger(__name__)

MAX_VOLUME_OZ = 64.0


@runtime_checkable
class DrinkParser(Protocol):
    """Text-to-fields oracle. The ledger only calls ``parse_drink_text``;
    ``parse_plan_text`` is part of the service contract for the night-planning
    screen, which lives outside this package.
    """

    async def parse_drink_text(self, text: str) -> dict[str, Any]:
        """Return ``name``, ``alcoholType``, ``estimatedOz`` and ``estimatedABV``."""
        ...

    async def parse_plan_text(self, text: str) -> dict[str, Any]:
        """Return ``venues``, ``departureTime``, ``returnTime`` and ``transportation``."""
        ...


def _number(raw: dict[str, Any], key: str) -> float:
    value = raw.get(key)
    if isinstance(value, bool):
        raise ParseFailure(f"{key} is not numeric")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ParseFailure(f"{key} is not numeric: {value!r}") from None


def coerce_drink_fields(raw: Any, description: str = "") -> dict[str, Any]:
    """Validate a parser payload into ``name/alcohol_type/volume_oz/abv``.

    Raises ParseFailure when volume or ABV is unusable. An ABV above 1 is read
    as a percentage (13 -> 0.13).
    """
    if not isinstance(raw, dict):
        raise ParseFailure("parser returned a non-object payload")

    volume = _number(raw, "estimatedOz")
    abv = _number(raw, "estimatedABV")
    if 1.0 < abv <= 100.0:
        abv = abv / 100.0
    if not 0 < volume <= MAX_VOLUME_OZ:
        raise ParseFailure(f"volume out of range: {volume}")
    if not 0 < abv <= 1:
        raise ParseFailure(f"abv out of range: {abv}")

    alcohol_type = str(raw.get("alcoholType") or "other").strip().lower()
    if alcohol_type not in ALCOHOL_TYPES:
        alcohol_type = "other"

    name = str(raw.get("name") or "").strip() or description.strip() or "Drink"
    return {"name": name, "alcohol_type": alcohol_type, "volume_oz": volume, "abv": abv}


# (keyword, name, type, oz, abv); more specific phrases first.
_KEYWORDS = [
    ("long island", "Long Island Iced Tea", "cocktail", 8.0, 0.22),
    ("margarita", "Margarita", "cocktail", 6.0, 0.13),
    ("double ipa", "Double IPA", "beer", 12.0, 0.08),
    ("ipa", "IPA", "beer", 12.0, 0.065),
    ("seltzer", "Hard seltzer", "beer", 12.0, 0.05),
    ("beer", "Beer", "beer", 12.0, 0.05),
    ("champagne", "Champagne", "wine", 5.0, 0.12),
    ("wine", "Wine", "wine", 5.0, 0.12),
    ("shot", "Shot", "shot", 1.5, 0.40),
    ("tequila", "Tequila", "liquor", 1.5, 0.40),
    ("vodka", "Vodka", "liquor", 1.5, 0.40),
    ("whiskey", "Whiskey", "liquor", 1.5, 0.40),
    ("rum", "Rum", "liquor", 1.5, 0.40),
    ("cocktail", "Cocktail", "cocktail", 6.0, 0.13),
]


class KeywordDrinkParser:
    """Offline stand-in for the generative parser, matching common drink words."""

    async def parse_drink_text(self, text: str) -> dict[str, Any]:
        lowered = text.lower()
        for keyword, name, alcohol_type, oz, abv in _KEYWORDS:
            if keyword in lowered:
                return {"name": name, "alcoholType": alcohol_type, "estimatedOz": oz, "estimatedABV": abv}
        logger.debug("No drink keyword in %r", text)
        return {"name": text.strip(), "alcoholType": "other"}

    async def parse_plan_text(self, text: str) -> dict[str, Any]:
        return {"venues": [], "departureTime": None, "returnTime": None, "transportation": None}
