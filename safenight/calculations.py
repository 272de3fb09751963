"""BAC estimation using Widmark-style rise and linear elimination.

Model:
- Rise: BAC = [grams / (body_weight_g * r)] * 100
- r = 0.68 (male), 0.55 (female or other)
- Elimination: 0.015 BAC percentage points per hour, applied to each drink
  separately and floored at zero per drink

Everything here is pure: "now" is always passed in.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, List, Tuple

from safenight.drinks import DrinkEvent

GRAMS_PER_LB = 453.592

# Elimination rate (% BAC per hour)
ELIMINATION_PER_HOUR = 0.015

SAFETY_LEVELS = ("safe", "caution", "warning", "danger")

# Upper bounds (exclusive) for each level below danger.
LEVEL_THRESHOLDS = (
    (0.04, "safe"),
    (0.08, "caution"),
    (0.12, "warning"),
)

RECOMMENDATIONS = {
    "safe": "You're doing great! Stay hydrated and enjoy your evening.",
    "caution": (
        "You're approaching the legal limit. Consider slowing down, drinking water, "
        "and making sure you have a safe ride home."
    ),
    "warning": (
        "You're above the legal limit. Please stop drinking, drink water, eat food, "
        "and absolutely do not drive. Consider calling your emergency contact."
    ),
    "danger": (
        "Your BAC is dangerously high. Please stop drinking immediately, stay with "
        "trusted friends, and consider getting medical attention if you feel unwell."
    ),
}

LEVEL_COLORS = {
    "safe": "#22C55E",
    "caution": "#EAB308",
    "warning": "#F97316",
    "danger": "#EF4444",
}


@dataclass(frozen=True)
class BACEstimate:
    bac: float
    time_to_sober: int  # minutes
    safety_level: str
    recommendation: str

    def to_dict(self) -> dict:
        return {
            "bac": round(self.bac, 4),
            "time_to_sober": self.time_to_sober,
            "safety_level": self.safety_level,
            "recommendation": self.recommendation,
        }


def _body_weight_grams(weight_lb: float) -> float:
    return weight_lb * GRAMS_PER_LB


def safety_level(bac: float) -> str:
    for limit, level in LEVEL_THRESHOLDS:
        if bac < limit:
            return level
    return "danger"


def recommendation_for(level: str) -> str:
    return RECOMMENDATIONS[level]


def bac_rise_from_grams(grams_alcohol: float, weight_lb: float, ratio: float) -> float:
    """Immediate BAC rise (%) from a single dose of alcohol."""
    return (grams_alcohol / (_body_weight_grams(weight_lb) * ratio)) * 100.0


def bac_at(drinks: Iterable[DrinkEvent], weight_lb: float, ratio: float, now: datetime) -> float:
    """Total BAC (%) at ``now``. Drinks logged after ``now`` are ignored."""
    if weight_lb <= 0:
        raise ValueError("weight_lb must be > 0")
    bac = 0.0
    for drink in drinks:
        if drink.logged_at > now:
            continue
        rise = bac_rise_from_grams(drink.grams, weight_lb, ratio)
        elapsed_h = (now - drink.logged_at).total_seconds() / 3600.0
        bac += max(0.0, rise - ELIMINATION_PER_HOUR * elapsed_h)
    return max(0.0, bac)


def minutes_to_sober(bac: float) -> int:
    if bac <= 0:
        return 0
    return int(math.ceil((bac / ELIMINATION_PER_HOUR) * 60))


def estimate_bac(
    drinks: Iterable[DrinkEvent],
    weight_lb: float,
    ratio: float,
    now: datetime,
) -> BACEstimate:
    """Point-in-time estimate for a drink log and body parameters."""
    bac = bac_at(drinks, weight_lb, ratio, now)
    level = safety_level(bac)
    return BACEstimate(
        bac=bac,
        time_to_sober=minutes_to_sober(bac),
        safety_level=level,
        recommendation=recommendation_for(level),
    )


def bac_curve(
    drinks: Iterable[DrinkEvent],
    weight_lb: float,
    ratio: float,
    start: datetime,
    end: datetime,
    step_minutes: float = 15.0,
) -> List[Tuple[datetime, float]]:
    """Return (time, bac_percent) pairs for graphing."""
    if step_minutes <= 0:
        raise ValueError("step_minutes must be > 0")
    drinks = list(drinks)
    if not drinks:
        return []

    step = timedelta(minutes=step_minutes)
    points: List[Tuple[datetime, float]] = []
    t = start
    while t <= end:
        points.append((t, round(bac_at(drinks, weight_lb, ratio, t), 4)))
        t += step
    return points


def format_bac(bac: float) -> str:
    return f"{bac:.3f}%"


def format_time_to_sober(minutes: int) -> str:
    if minutes <= 0:
        return "Sober"
    hours, mins = divmod(int(minutes), 60)
    if hours == 0:
        return f"{mins}m"
    return f"{hours}h {mins}m"


def bac_color(bac: float) -> str:
    return LEVEL_COLORS[safety_level(bac)]
