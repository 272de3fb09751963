"""
SafeNight CLI demo. Run from project root: python -m safenight
Logs a few demo drinks, prints the current estimate, and optionally saves a graph.
"""

import argparse
import logging
import sys
from datetime import datetime, timedelta, timezone

from safenight import config
from safenight.calculations import format_bac, format_time_to_sober
from safenight.graph import curve_data, save_bac_graph
from safenight.ledger import DrinkLedger
from safenight.profile import GENDERS, distribution_ratio


def main(argv=None):
    parser = argparse.ArgumentParser(description="SafeNight: log drinks and view estimated BAC")
    parser.add_argument("--weight", type=float, default=140.0, help="Body weight (lb)")
    parser.add_argument("--gender", choices=GENDERS, default="female", help="Gender (sets Widmark r)")
    parser.add_argument("--graph", type=str, metavar="FILE", help="Save BAC graph to FILE (e.g. bac_graph.png)")
    parser.add_argument("--hours", type=float, default=2.0, help="Hours since the first demo drink")
    args = parser.parse_args(argv)

    logging.basicConfig(level=config.log_level(), format="%(levelname)s %(name)s: %(message)s")

    if args.weight <= 0:
        parser.error("--weight must be positive")

    now = datetime.now(timezone.utc)
    first = now - timedelta(hours=max(0.0, args.hours))
    ledger = DrinkLedger(args.weight, distribution_ratio(args.gender), clock=lambda: now)
    ledger.log_quick("beer", "demo", now=first)
    ledger.log_quick("beer", "demo", now=first)
    ledger.log_quick("cocktail", "demo", now=first + (now - first) / 2)
    print(f"Demo session: 2 beers {args.hours:g}h ago, 1 cocktail {args.hours / 2:g}h ago")

    estimate = ledger.recalculate(now)
    print(f"Weight: {args.weight:g} lb ({args.gender}), BAC now: {format_bac(estimate.bac)} [{estimate.safety_level}]")
    print(f"Time to sober: {format_time_to_sober(estimate.time_to_sober)}")
    print(estimate.recommendation)

    curve = curve_data(ledger, max_hours=8.0)
    print(f"Curve points: {len(curve)} (time, bac) over 8h from first drink")

    if args.graph:
        try:
            path = save_bac_graph(ledger, output_path=args.graph, max_hours=8.0)
            print(f"Graph saved: {path}")
        except ImportError:
            print("matplotlib not installed. pip install matplotlib", file=sys.stderr)
            return 1

    return 0


if __name__ == "__main__":
    sys.exit(main() or 0)
