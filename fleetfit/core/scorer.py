"""
Scorer / ranker: orders candidate drivers for a load.

    score = sum(weight[name] * feature[name])

over the weight names that have a matching feature. Features are signed so
that higher is better and sit roughly in [-1, 1]. A feature with no data
behind it is absent and contributes nothing. With an empty weight vector
every eligible driver gets the neutral baseline score.
"""

from typing import Callable, Dict, Iterable, List, Optional, Tuple

from . import fleet
from . import weights as weight_store
from .config import DEFAULT_RANK_LIMIT, get_baseline_score
from .errors import NotFoundError, UpstreamError, ValidationError
from .schema import Candidate, DriverRecord, LoadRecord, StatsSnapshot, WeightVector
from ..util.logging import logger

DISTANCE_TOLERANCE_MILES = 200.0
BASELINE_REASON = "Baseline ranking: no learned weights yet"
NO_SIGNAL_REASON = "No learned signal for this driver"
DEGRADED_REASON = "Baseline ranking: feature enrichment unavailable"

FeatureProvider = Callable[[DriverRecord, LoadRecord], Dict[str, float]]


def coerce_limit(limit) -> int:
    """Limit as an int >= 1; unusable values fall back to the default."""
    if isinstance(limit, bool):
        return DEFAULT_RANK_LIMIT
    try:
        value = int(limit)
    except (TypeError, ValueError):
        return DEFAULT_RANK_LIMIT
    return max(1, value)


def _norm(text: Optional[str]) -> str:
    return (text or "").strip().lower()


def equipment_match(driver: DriverRecord, load: LoadRecord) -> Optional[float]:
    d, l = _norm(driver.equipment), _norm(load.equipment)
    if not d or not l:
        return None
    return 1.0 if d in l or l in d else -1.0


def region_match(driver: DriverRecord, load: LoadRecord) -> Optional[float]:
    region = _norm(load.region)
    regions = {_norm(r) for r in driver.preferred_regions}
    if driver.home_region:
        regions.add(_norm(driver.home_region))
    if not region or not regions:
        return None
    return 1.0 if region in regions else -1.0


def distance_fit(driver: DriverRecord, load: LoadRecord) -> Optional[float]:
    """1 within the driver's max distance, linear down to -1 across the tolerance band."""
    if load.miles is None or not driver.max_distance or driver.max_distance <= 0:
        return None
    over = load.miles - driver.max_distance
    if over <= 0:
        return 1.0
    if over >= DISTANCE_TOLERANCE_MILES:
        return -1.0
    return 1.0 - 2.0 * over / DISTANCE_TOLERANCE_MILES


def driver_features(driver: DriverRecord, load: LoadRecord, stats: StatsSnapshot) -> Dict[str, float]:
    """Features for one (driver, load) pair from the learner cache and the records."""
    features: Dict[str, float] = {}

    stat = stats.drivers.get(driver.driver_id)
    if stat is not None:
        if stat.smoothed_acceptance is not None:
            features["acceptance"] = 2.0 * stat.smoothed_acceptance - 1.0
        if stat.smoothed_on_time is not None:
            features["on_time"] = 2.0 * stat.smoothed_on_time - 1.0
        if stat.detention_rate is not None:
            features["detention"] = -stat.detention_rate
        if stat.thumbs_up + stat.thumbs_down:
            features["sentiment"] = stat.sentiment

    lane = load.lane_key
    if lane and (driver.driver_id, lane) in stats.lanes:
        features["lane_affinity"] = stats.lanes[(driver.driver_id, lane)]

    for name, fn in (("equipment_match", equipment_match),
                     ("region_match", region_match),
                     ("distance_fit", distance_fit)):
        value = fn(driver, load)
        if value is not None:
            features[name] = value

    return features


def _reason(contributions: Dict[str, float]) -> str:
    if not contributions:
        return NO_SIGNAL_REASON
    top = sorted(contributions.items(), key=lambda kv: (-abs(kv[1]), kv[0]))[:2]
    return ", ".join(f"{name} {value:+.2f}" for name, value in top)


def _sort_key(candidate: Candidate) -> Tuple[float, str, str]:
    return (-candidate.score, candidate.full_name.lower(), candidate.driver_id)


def _baseline(load: LoadRecord, eligible: List[DriverRecord], considered: int, limit: int,
              reason: str) -> List[Candidate]:
    score = get_baseline_score()
    candidates = sorted((Candidate(d.driver_id, d.full_name, score, reason) for d in eligible), key=_sort_key)
    logger.log_ranking(load.load_id, considered, min(limit, len(candidates)), baseline=True)
    return candidates[:limit]


def rank(load: LoadRecord, candidate_drivers: Iterable[DriverRecord], limit=DEFAULT_RANK_LIMIT,
         vector: Optional[WeightVector] = None, stats: Optional[StatsSnapshot] = None,
         providers: Iterable[FeatureProvider] = ()) -> List[Candidate]:
    """Score and order candidate drivers for a load.

    Reads the weight vector and statistics cache once, from one commit,
    unless both are passed in; passing only one is a ValueError. Inactive
    drivers are dropped. Extra `providers` may add features; if one raises
    UpstreamError the whole request falls back to the baseline.
    StorageError propagates.
    """
    limit = coerce_limit(limit)
    drivers = list(candidate_drivers)
    if not drivers:
        return []

    if (vector is None) != (stats is None):
        raise ValueError("vector and stats must be passed together")
    if vector is None:
        vector, stats = weight_store.read_with_stats()

    eligible = [d for d in drivers if d.eligible]

    if vector.is_empty():
        return _baseline(load, eligible, len(drivers), limit, BASELINE_REASON)

    providers = list(providers)
    candidates = []
    for driver in eligible:
        features = driver_features(driver, load, stats)
        for provider in providers:
            try:
                features.update(provider(driver, load))
            except UpstreamError as e:
                logger.warning(f"Feature enrichment failed for load {load.load_id}, using baseline: {e}")
                return _baseline(load, eligible, len(drivers), limit, DEGRADED_REASON)

        contributions = {
            name: vector.values[name] * value
            for name, value in features.items()
            if name in vector.values
        }
        score = round(sum(contributions[name] for name in sorted(contributions)), 6)
        candidates.append(Candidate(driver.driver_id, driver.full_name, score,
                                    _reason(contributions), contributions))

    candidates.sort(key=_sort_key)
    logger.log_ranking(load.load_id, len(drivers), min(limit, len(candidates)), baseline=False)
    return candidates[:limit]


def rank_for_load(load_id: str, limit=DEFAULT_RANK_LIMIT,
                  providers: Iterable[FeatureProvider] = ()) -> List[Candidate]:
    """Rank the fleet's drivers for a stored load."""
    if not load_id or not str(load_id).strip():
        raise ValidationError("load_id is required", {"field": "load_id"})

    load = fleet.get_load(load_id)
    if load is None:
        raise NotFoundError(f"Unknown load '{load_id}'", {"field": "load_id", "value": load_id})

    return rank(load, fleet.list_drivers(), limit, providers=providers)
