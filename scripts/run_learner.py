#!/usr/bin/env python3
"""
Run the learner once, or on a cadence through the heartbeat loop.
"""

import argparse
import sys
from pathlib import Path

# Add the repository root so the script runs without installing the package
sys.path.insert(0, str(Path(__file__).parent.parent))

from fleetfit.core import heartbeat
from fleetfit.core.config import get_learner_interval, is_heartbeat_enabled, validate_config
from fleetfit.core.db import init_db
from fleetfit.core.errors import FleetFitError
from fleetfit.core.learner import run, run_on_cadence


def print_vector(vector):
    if vector.is_empty():
        print("(empty weight vector)")
        return
    width = max(len(name) for name in vector.values)
    for weight in vector.as_list():
        print(f"  {weight.name:<{width}}  {weight.value:.4f}")


def main():
    parser = argparse.ArgumentParser(
        description="Recompute driver-load fit weights from the event log",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --once          # Single run, print the committed vector
  %(prog)s                 # Run every LEARNER_INTERVAL_SEC via the heartbeat

Environment variables:
- HEARTBEAT_ENABLED=true (required for cadence mode)
- LEARNER_INTERVAL_SEC (default 3600)
- LEARNER_WINDOW_DAYS (default 0 = full history)
"""
    )
    parser.add_argument("--once", action="store_true", help="Run a single learner pass and exit")
    args = parser.parse_args()

    issues = validate_config()
    if issues:
        print("❌ Configuration invalid:")
        for issue in issues:
            print(f"  - {issue}")
        sys.exit(1)

    init_db()

    if args.once:
        try:
            vector = run(trigger="cli")
        except FleetFitError as e:
            print(f"❌ Learner run failed ({e.code}): {e}")
            sys.exit(1)
        print(f"✓ Learner run {vector.run_id} committed {len(vector)} weights")
        print_vector(vector)
        return

    if not is_heartbeat_enabled():
        print("❌ Cadence mode requires HEARTBEAT_ENABLED=true (or use --once)")
        sys.exit(1)

    try:
        interval = get_learner_interval()
        heartbeat.register_task("learner", interval, run_on_cadence)
        print(f"🏃 Learner scheduled every {interval} seconds")
        heartbeat.start()
    except KeyboardInterrupt:
        print("\n👋 Shutting down gracefully...")
        heartbeat.stop()
    except Exception as e:
        print(f"💥 Critical error: {e}")
        heartbeat.stop()
        sys.exit(1)


if __name__ == "__main__":
    main()
