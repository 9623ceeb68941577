#!/usr/bin/env python3
"""
Seed a small demo fleet: two drivers, one load, and a handful of events
on the same lane so a learner run has something to learn from.
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from fleetfit.core import events as event_log
from fleetfit.core.db import init_db
from fleetfit.core.fleet import upsert_driver, upsert_load
from fleetfit.core.schema import LoadRecord

LANE = {"lane_origin": "Dallas, TX", "lane_dest": "Houston, TX"}


def main():
    init_db()

    upsert_driver("D1", "Alice Alvarez", active=True, equipment="dry van", home_region="TX", max_distance=600)
    upsert_driver("D2", "Bob Baker", status="available", equipment="reefer", home_region="OK", max_distance=300)
    upsert_driver("D3", "Cara Chen", status="suspended", equipment="dry van")
    upsert_load(LoadRecord(load_id="L1", region="TX", equipment="dry van", miles=240, pay_total_usd=900, **LANE))

    seeded = [
        {"event_type": "offer_shown", "driver_id": "D1", "load_id": "L1", **LANE},
        {"event_type": "offer_accepted", "driver_id": "D1", "load_id": "L1"},
        {"event_type": "delivered", "driver_id": "D1", "load_id": "L1"},
        {"event_type": "thumb_up", "driver_id": "D1", "load_id": "L1"},
        {"event_type": "offer_shown", "driver_id": "D2", "load_id": "L1", **LANE},
        {"event_type": "offer_declined", "driver_id": "D2", "load_id": "L1"},
    ]
    for data in seeded:
        event_log.record(data)

    print(f"✓ Seeded 3 drivers, 1 load and {len(seeded)} events")
    print("Next: python scripts/run_learner.py --once")


if __name__ == "__main__":
    main()
