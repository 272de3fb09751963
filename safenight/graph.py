"""
BAC projection graph. Produces an image file or returns data for any frontend.
"""

from datetime import timedelta
from pathlib import Path
from typing import List, Tuple

from safenight.calculations import LEVEL_THRESHOLDS
from safenight.ledger import DrinkLedger


def curve_data(
    ledger: DrinkLedger,
    step_minutes: float = 15.0,
    max_hours: float = 12.0,
) -> List[Tuple[float, float]]:
    """(hours_from_first_drink, bac_percent) pairs up to ``max_hours``."""
    events = ledger.events
    if not events:
        return []
    start = min(e.logged_at for e in events)
    end = start + timedelta(hours=max_hours)
    return [
        ((t - start).total_seconds() / 3600.0, bac)
        for t, bac in ledger.curve(start, end, step_minutes)
    ]


def save_bac_graph(
    ledger: DrinkLedger,
    output_path: str = "bac_graph.png",
    step_minutes: float = 15.0,
    max_hours: float = 12.0,
    title: str = "Estimated BAC",
) -> str:
    """
    Plot the BAC projection with matplotlib and save to file.
    Returns path to saved file. Requires: pip install matplotlib
    """
    try:
        import matplotlib
        matplotlib.use("Agg")
        import matplotlib.pyplot as plt
    except ImportError:
        raise ImportError("matplotlib is required for save_bac_graph. pip install matplotlib")

    points = curve_data(ledger, step_minutes=step_minutes, max_hours=max_hours)
    if not points:
        times, bacs = [0], [0.0]
    else:
        times, bacs = zip(*points)

    fig, ax = plt.subplots(figsize=(10, 5))
    ax.plot(times, bacs, color="#2563eb", linewidth=2, label="BAC")
    ax.fill_between(times, bacs, alpha=0.2, color="#2563eb")
    for limit, level in LEVEL_THRESHOLDS:
        ax.axhline(y=limit, linestyle="--", linewidth=1, alpha=0.6, label=f"{level} < {limit:.2f}%")
    ax.set_xlabel("Hours from first drink")
    ax.set_ylabel("BAC (%)")
    ax.set_title(title)
    ax.legend(loc="upper right")
    ax.set_ylim(bottom=0)
    ax.grid(True, alpha=0.3)
    fig.tight_layout()
    Path(output_path).parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(output_path, dpi=150)
    plt.close(fig)
    return output_path
