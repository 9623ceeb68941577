"""
Aggregation of the event log into per-driver, per-lane and fleet-wide statistics.

Pure functions: given the same events and the same `now`, the output is
identical.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterable, Optional, Set, Tuple

from .schema import DriverStat, Event, EventType, LaneStat

LANE_POSITIVE = frozenset({
    EventType.OFFER_ACCEPTED, EventType.ASSIGNED, EventType.PICKUP_SCANNED,
    EventType.DELIVERED, EventType.THUMB_UP,
})
LANE_NEGATIVE = frozenset({
    EventType.OFFER_DECLINED, EventType.UNASSIGNED, EventType.DETENTION,
    EventType.LATE, EventType.THUMB_DOWN,
})

_COUNTERS = {
    EventType.OFFER_SHOWN: "offers_shown",
    EventType.OFFER_ACCEPTED: "accepted",
    EventType.OFFER_DECLINED: "declined",
    EventType.ASSIGNED: "assigned",
    EventType.UNASSIGNED: "unassigned",
    EventType.PICKUP_SCANNED: "pickups",
    EventType.DELIVERED: "delivered",
    EventType.DETENTION: "detention",
    EventType.LATE: "late",
    EventType.THUMB_UP: "thumbs_up",
    EventType.THUMB_DOWN: "thumbs_down",
}


@dataclass
class FleetRates:
    """Fleet-wide aggregate rates with the sample count behind each one."""
    acceptance: Optional[float] = None
    on_time: Optional[float] = None
    detention: Optional[float] = None
    sentiment: Optional[float] = None
    lane_coverage: Optional[float] = None
    equipment_coverage: Optional[float] = None
    region_coverage: Optional[float] = None
    distance_coverage: Optional[float] = None
    samples: Dict[str, int] = field(default_factory=dict)


@dataclass
class Aggregates:
    drivers: Dict[str, DriverStat] = field(default_factory=dict)
    lanes: Dict[Tuple[str, str], LaneStat] = field(default_factory=dict)
    fleet: FleetRates = field(default_factory=FleetRates)
    events_processed: int = 0


def _ratio(num: float, den: float) -> Optional[float]:
    return num / den if den else None


def _oldest_undecided(driver_id: str, shown_at: Dict[Tuple[str, str], datetime],
                      decided: Set[Tuple[str, str]]) -> Optional[Tuple[str, str]]:
    open_offers = [pair for pair in shown_at if pair[0] == driver_id and pair not in decided]
    if not open_offers:
        return None
    return min(open_offers, key=lambda pair: (shown_at[pair], pair[1]))


def aggregate(events: Iterable[Event], now: datetime, offer_timeout: timedelta) -> Aggregates:
    """Fold events into statistics.

    Acceptance counts an offer_shown as timed out when it has a load_id, no
    accept/decline for the same (driver, load), and is older than
    `offer_timeout` at `now`. Pending offers are not counted. An
    accept/decline without a load_id answers that driver's oldest
    undecided offer shown so far.
    """
    events = list(events)
    result = Aggregates(events_processed=len(events))

    # Lane context may only be present on some events of a load
    load_lanes: Dict[str, str] = {}
    for event in events:
        if event.load_id and event.lane_key and event.load_id not in load_lanes:
            load_lanes[event.load_id] = event.lane_key

    shown_at: Dict[Tuple[str, str], datetime] = {}
    decided: Set[Tuple[str, str]] = set()
    late_loads: Dict[str, Set[str]] = defaultdict(set)
    late_unmatched: Dict[str, int] = defaultdict(int)
    delivered_loads: Dict[str, list] = defaultdict(list)

    with_lane = with_equipment = with_region = with_miles = 0

    for event in events:
        stat = result.drivers.get(event.driver_id)
        if stat is None:
            stat = result.drivers[event.driver_id] = DriverStat(driver_id=event.driver_id)

        counter = _COUNTERS[event.event_type]
        setattr(stat, counter, getattr(stat, counter) + 1)
        stat.sample_count += 1
        stamp = event.occurred_at.isoformat()
        if stat.last_event_at is None or stamp > stat.last_event_at:
            stat.last_event_at = stamp

        pair = (event.driver_id, event.load_id) if event.load_id else None
        if event.event_type == EventType.OFFER_SHOWN and pair:
            if pair not in shown_at or event.occurred_at < shown_at[pair]:
                shown_at[pair] = event.occurred_at
        elif event.event_type in (EventType.OFFER_ACCEPTED, EventType.OFFER_DECLINED):
            if pair:
                decided.add(pair)
            else:
                oldest = _oldest_undecided(event.driver_id, shown_at, decided)
                if oldest:
                    decided.add(oldest)
        elif event.event_type == EventType.LATE:
            if event.load_id:
                late_loads[event.driver_id].add(event.load_id)
            else:
                late_unmatched[event.driver_id] += 1
        elif event.event_type == EventType.DELIVERED:
            delivered_loads[event.driver_id].append(event.load_id)

        lane = event.lane_key or (load_lanes.get(event.load_id) if event.load_id else None)
        if lane:
            with_lane += 1
            if event.event_type in LANE_POSITIVE or event.event_type in LANE_NEGATIVE:
                key = (event.driver_id, lane)
                lane_stat = result.lanes.get(key)
                if lane_stat is None:
                    lane_stat = result.lanes[key] = LaneStat(driver_id=event.driver_id, lane_key=lane)
                if event.event_type in LANE_POSITIVE:
                    lane_stat.positive += 1
                else:
                    lane_stat.negative += 1

        if event.equipment:
            with_equipment += 1
        if event.region:
            with_region += 1
        if event.miles is not None:
            with_miles += 1

    for (driver_id, _load_id), first_shown in shown_at.items():
        if (driver_id, _load_id) in decided:
            continue
        if now - first_shown >= offer_timeout:
            result.drivers[driver_id].timed_out += 1

    for driver_id, stat in result.drivers.items():
        loads = delivered_loads.get(driver_id, [])
        late_delivered = sum(1 for load_id in loads if load_id and load_id in late_loads[driver_id])
        stat.delivered_on_time = max(0, stat.delivered - late_delivered - late_unmatched[driver_id])

    result.fleet = _fleet_rates(result, with_lane, with_equipment, with_region, with_miles)
    return result


def _fleet_rates(result: Aggregates, with_lane: int, with_equipment: int,
                 with_region: int, with_miles: int) -> FleetRates:
    stats = result.drivers.values()
    accepted = sum(s.accepted for s in stats)
    decided = sum(s.accepted + s.declined + s.timed_out for s in stats)
    delivered = sum(s.delivered for s in stats)
    on_time = sum(s.delivered_on_time for s in stats)
    detention = sum(s.detention for s in stats)
    up = sum(s.thumbs_up for s in stats)
    down = sum(s.thumbs_down for s in stats)
    total = result.events_processed

    detention_rate = _ratio(detention, delivered)
    return FleetRates(
        acceptance=_ratio(accepted, decided),
        on_time=_ratio(on_time, delivered),
        detention=min(1.0, detention_rate) if detention_rate is not None else None,
        sentiment=(up - down) / max(1, up + down) if (up + down) else None,
        lane_coverage=_ratio(with_lane, total),
        equipment_coverage=_ratio(with_equipment, total),
        region_coverage=_ratio(with_region, total),
        distance_coverage=_ratio(with_miles, total),
        samples={
            "acceptance": decided,
            "on_time": delivered,
            "detention": delivered,
            "sentiment": up + down,
            "lane_affinity": total,
            "equipment_match": total,
            "region_match": total,
            "distance_fit": total,
        },
    )
