"""Tests for the BAC estimator and drink helpers. Run from project root: pytest tests/ -v"""
from datetime import datetime, timedelta, timezone

import pytest

from safenight.calculations import (
    ELIMINATION_PER_HOUR,
    bac_at,
    bac_color,
    bac_curve,
    estimate_bac,
    format_bac,
    format_time_to_sober,
    minutes_to_sober,
    recommendation_for,
    safety_level,
)
from safenight.drinks import STANDARD_DRINKS, DrinkEvent, grams_from_volume_abv, list_drink_types
from safenight.profile import R_FEMALE, R_MALE, distribution_ratio

NOW = datetime(2026, 10, 17, 23, 0, tzinfo=timezone.utc)


def drink(oz=12.0, abv=0.05, hours_ago=0.0, kind="beer"):
    return DrinkEvent(
        user_id="u",
        name=kind,
        alcohol_type=kind,
        volume_oz=oz,
        abv=abv,
        logged_at=NOW - timedelta(hours=hours_ago),
    )


def test_grams_from_volume_abv():
    assert grams_from_volume_abv(12, 0.05) == pytest.approx(12 * 29.5735 * 0.05 * 0.789)


def test_distribution_ratio_defaults_to_female():
    assert distribution_ratio("male") == R_MALE
    assert distribution_ratio("female") == R_FEMALE
    assert distribution_ratio("other") == R_FEMALE


def test_single_drink_scenario():
    estimate = estimate_bac([drink(6, 0.13)], 140, R_FEMALE, NOW)
    expected = (6 * 29.5735 * 0.13 * 0.789) / (140 * 453.592 * 0.55) * 100
    assert abs(estimate.bac - expected) < 1e-4
    assert estimate.bac == pytest.approx(0.0521, abs=1e-4)
    assert estimate.safety_level == "caution"


def test_empty_log():
    estimate = estimate_bac([], 160, R_MALE, NOW)
    assert estimate.bac == 0
    assert estimate.time_to_sober == 0
    assert estimate.safety_level == "safe"
    assert estimate.recommendation == recommendation_for("safe")


def test_safety_level_boundaries():
    assert safety_level(0.0399) == "safe"
    assert safety_level(0.04) == "caution"
    assert safety_level(0.0799) == "caution"
    assert safety_level(0.08) == "warning"
    assert safety_level(0.12) == "danger"


def test_new_drink_never_lowers_bac():
    drinks = [drink(hours_ago=2), drink(hours_ago=1)]
    before = bac_at(drinks, 160, R_MALE, NOW)
    after = bac_at(drinks + [drink()], 160, R_MALE, NOW)
    assert after >= before


def test_bac_decays_as_time_passes():
    drinks = [drink(hours_ago=1), drink(6, 0.13, hours_ago=0.5)]
    values = [bac_at(drinks, 140, R_FEMALE, NOW + timedelta(minutes=15 * i)) for i in range(40)]
    assert all(b <= a for a, b in zip(values, values[1:]))
    assert values[-1] == 0


def test_per_drink_elimination_floors_each_drink():
    # The old drink is fully eliminated and must not eat into the new one.
    old = drink(hours_ago=10)
    new = drink()
    assert bac_at([old, new], 160, R_MALE, NOW) == pytest.approx(bac_at([new], 160, R_MALE, NOW))


def test_future_drinks_ignored():
    assert bac_at([drink(hours_ago=-1)], 160, R_MALE, NOW) == 0


def test_rejects_non_positive_weight():
    with pytest.raises(ValueError):
        estimate_bac([drink()], 0, R_MALE, NOW)


def test_minutes_to_sober():
    assert minutes_to_sober(0) == 0
    assert minutes_to_sober(ELIMINATION_PER_HOUR) == 60
    assert minutes_to_sober(0.0151) == 61


def test_curve_spans_window():
    points = bac_curve([drink()], 160, R_MALE, NOW, NOW + timedelta(hours=1), step_minutes=15)
    assert len(points) == 5
    assert points[0][1] > points[-1][1]
    assert bac_curve([], 160, R_MALE, NOW, NOW + timedelta(hours=1)) == []


def test_display_helpers():
    assert format_bac(0.0456) == "0.046%"
    assert format_time_to_sober(0) == "Sober"
    assert format_time_to_sober(45) == "45m"
    assert format_time_to_sober(135) == "2h 15m"
    assert bac_color(0.0) != bac_color(0.2)


def test_drink_event_validation():
    with pytest.raises(ValueError):
        drink(oz=0)
    with pytest.raises(ValueError):
        drink(abv=1.5)
    with pytest.raises(ValueError):
        drink(kind="mead")
    with pytest.raises(ValueError):
        DrinkEvent(user_id="u", name="x", alcohol_type="beer", volume_oz=12, abv=0.05, logged_at=datetime(2026, 1, 1))


def test_presets_listed():
    keys = [k for k, _ in list_drink_types()]
    assert keys == list(STANDARD_DRINKS)
    assert "shot" in keys
