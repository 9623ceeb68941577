"""
Ranking tests: ordering, limits, eligibility, baseline and the full loop.
"""

import sqlite3
from unittest.mock import patch

import pytest

from fleetfit.core import events as event_log
from fleetfit.core import learner as learner_core
from fleetfit.core import scorer
from fleetfit.core.errors import NotFoundError, StorageError, UpstreamError, ValidationError
from fleetfit.core.schema import (
    BooleanActive,
    DriverRecord,
    DriverStat,
    LoadRecord,
    StatsSnapshot,
    StatusActive,
    UnknownActive,
    WeightVector,
)

LOAD = LoadRecord(load_id="L1", lane_origin="Dallas", lane_dest="Houston", region="TX",
                  equipment="dry van", miles=400)
LANE_KEY = "dallas → houston"
EMPTY = WeightVector()
NO_STATS = StatsSnapshot()


def driver(driver_id, name=None, **fields):
    return DriverRecord(driver_id=driver_id, full_name=name or driver_id, **fields)


def stat(driver_id, **counts):
    return DriverStat(driver_id=driver_id, **counts)


def vector(**values):
    return WeightVector(values=values, run_id="test")


class TestFeatures:
    """Per-pair feature values."""

    def test_equipment_match(self):
        assert scorer.equipment_match(driver("D", equipment="Dry Van"), LOAD) == 1.0
        assert scorer.equipment_match(driver("D", equipment="reefer"), LOAD) == -1.0
        assert scorer.equipment_match(driver("D"), LOAD) is None

    def test_region_match_uses_home_and_preferred(self):
        assert scorer.region_match(driver("D", home_region="tx"), LOAD) == 1.0
        assert scorer.region_match(driver("D", preferred_regions=("OK", "TX")), LOAD) == 1.0
        assert scorer.region_match(driver("D", home_region="CA"), LOAD) == -1.0
        assert scorer.region_match(driver("D"), LOAD) is None

    @pytest.mark.parametrize("max_distance,expected", [
        (500, 1.0),
        (400, 1.0),
        (300, 0.0),
        (150, -1.0),
        (None, None),
    ])
    def test_distance_fit(self, max_distance, expected):
        assert scorer.distance_fit(driver("D", max_distance=max_distance), LOAD) == expected

    def test_stat_features_are_signed(self):
        stats = StatsSnapshot(
            drivers={"D": stat("D", accepted=8, declined=0, delivered=4, delivered_on_time=0,
                               detention=2, thumbs_down=3)},
            lanes={("D", LANE_KEY): -0.5},
        )
        features = scorer.driver_features(driver("D"), LOAD, stats)

        assert features["acceptance"] > 0
        assert features["on_time"] < 0
        assert features["detention"] == -0.5
        assert features["sentiment"] == -1.0
        assert features["lane_affinity"] == -0.5

    def test_missing_data_means_absent_feature(self):
        assert scorer.driver_features(driver("D"), LoadRecord(load_id="L"), NO_STATS) == {}


class TestRank:
    """Ordering and filtering."""

    def test_empty_candidates(self):
        assert scorer.rank(LOAD, [], 5, vector=EMPTY, stats=NO_STATS) == []

    @pytest.mark.parametrize("limit,expected", [(3, 3), (0, 1), (-4, 1), ("abc", 5), (None, 5), (100, 7)])
    def test_limit(self, limit, expected):
        drivers = [driver(f"D{i}") for i in range(7)]
        assert len(scorer.rank(LOAD, drivers, limit, vector=EMPTY, stats=NO_STATS)) == expected

    def test_scores_non_increasing(self):
        drivers = [
            driver("D1", equipment="dry van", home_region="TX", max_distance=500),
            driver("D2", equipment="reefer", home_region="TX", max_distance=350),
            driver("D3", equipment="dry van", home_region="CA", max_distance=100),
            driver("D4"),
        ]
        weights = vector(equipment_match=0.5, region_match=0.3, distance_fit=0.4)

        ranked = scorer.rank(LOAD, drivers, 10, vector=weights, stats=NO_STATS)
        scores = [c.score for c in ranked]
        assert scores == sorted(scores, reverse=True)
        assert ranked[0].driver_id == "D1"

    def test_ties_broken_by_name_then_id_repeatably(self):
        drivers = [driver("D3", "carol"), driver("D1", "Bob"), driver("D2", "alice"), driver("D0", "Bob")]
        weights = vector(acceptance=0.6)

        first = [c.driver_id for c in scorer.rank(LOAD, drivers, 10, vector=weights, stats=NO_STATS)]
        second = [c.driver_id for c in scorer.rank(LOAD, list(reversed(drivers)), 10,
                                                   vector=weights, stats=NO_STATS)]
        assert first == second == ["D2", "D0", "D1", "D3"]

    def test_empty_vector_gives_equal_baseline_by_name(self):
        drivers = [driver("D1", "zed"), driver("D2", "Amy"), driver("D3", "bert")]

        ranked = scorer.rank(LOAD, drivers, 5, vector=EMPTY, stats=NO_STATS)
        assert [c.full_name for c in ranked] == ["Amy", "bert", "zed"]
        assert {c.score for c in ranked} == {0.5}
        assert all(c.reason == scorer.BASELINE_REASON for c in ranked)

    def test_baseline_score_configurable(self, monkeypatch):
        monkeypatch.setenv("BASELINE_SCORE", "0.25")
        ranked = scorer.rank(LOAD, [driver("D1")], 5, vector=EMPTY, stats=NO_STATS)
        assert ranked[0].score == 0.25

    def test_eligibility(self):
        drivers = [
            driver("A", activity=BooleanActive(True)),
            driver("B", activity=BooleanActive(False)),
            driver("C", activity=StatusActive("suspended", False)),
            driver("D", activity=StatusActive("ready", True)),
            driver("E", activity=UnknownActive()),
        ]
        ranked = scorer.rank(LOAD, drivers, 10, vector=EMPTY, stats=NO_STATS)
        assert sorted(c.driver_id for c in ranked) == ["A", "D", "E"]

    def test_unknown_weight_names_ignored(self):
        weights = vector(mystery=5.0, equipment_match=0.5)
        ranked = scorer.rank(LOAD, [driver("D1", equipment="dry van")], 5, vector=weights, stats=NO_STATS)

        assert ranked[0].score == 0.5
        assert ranked[0].breakdown == {"equipment_match": 0.5}

    def test_driver_without_signal_scores_zero(self):
        ranked = scorer.rank(LOAD, [driver("D1")], 5, vector=vector(acceptance=0.6), stats=NO_STATS)
        assert ranked[0].score == 0.0
        assert ranked[0].reason == scorer.NO_SIGNAL_REASON

    def test_reason_names_two_strongest_terms(self):
        stats = StatsSnapshot(drivers={"D1": stat("D1", accepted=9, declined=1)},
                              lanes={("D1", LANE_KEY): 1.0})
        weights = vector(acceptance=0.6, lane_affinity=0.8, equipment_match=0.1)

        ranked = scorer.rank(LOAD, [driver("D1", equipment="dry van")], 5, vector=weights, stats=stats)
        assert ranked[0].reason.startswith("lane_affinity +0.80, acceptance +")

    def test_upstream_failure_degrades_to_baseline(self):
        def broken(driver_record, load):
            raise UpstreamError("embedding service timed out")

        ranked = scorer.rank(LOAD, [driver("D2", "b"), driver("D1", "a")], 5,
                             vector=vector(acceptance=0.6), stats=NO_STATS, providers=[broken])
        assert [c.driver_id for c in ranked] == ["D1", "D2"]
        assert all(c.score == 0.5 and c.reason == scorer.DEGRADED_REASON for c in ranked)

    def test_provider_features_are_weighted(self):
        def pay(driver_record, load):
            return {"pay_fit": 1.0 if driver_record.driver_id == "D2" else 0.0}

        ranked = scorer.rank(LOAD, [driver("D1"), driver("D2")], 5,
                             vector=vector(pay_fit=0.9), stats=NO_STATS, providers=[pay])
        assert ranked[0].driver_id == "D2"

    @pytest.mark.parametrize("given", [{"vector": EMPTY}, {"stats": NO_STATS}])
    def test_vector_and_stats_must_come_together(self, given):
        with patch("fleetfit.core.scorer.weight_store.read_with_stats") as read:
            with pytest.raises(ValueError, match="together"):
                scorer.rank(LOAD, [driver("D1")], 5, **given)

        read.assert_not_called()


class TestRankForLoad:
    """Ranking against the stored fleet directory."""

    def test_unknown_load(self):
        with pytest.raises(NotFoundError):
            scorer.rank_for_load("missing")

    def test_blank_load_id(self):
        with pytest.raises(ValidationError):
            scorer.rank_for_load("  ")

    def test_storage_failure_propagates(self, demo_fleet):
        with patch("fleetfit.core.weights.get_db", side_effect=sqlite3.OperationalError("locked")):
            with pytest.raises(StorageError):
                scorer.rank_for_load("L1")

    def test_baseline_before_any_learning(self, demo_fleet):
        ranked = scorer.rank_for_load("L1")
        assert [c.driver_id for c in ranked] == ["D1", "D2"]
        assert {c.score for c in ranked} == {0.5}

    def test_learning_loop_end_to_end(self, demo_fleet, lane):
        event_log.record({"event_type": "offer_shown", "driver_id": "D1", "load_id": "L1", **lane})
        event_log.record({"event_type": "offer_accepted", "driver_id": "D1", "load_id": "L1"})
        event_log.record({"event_type": "delivered", "driver_id": "D1", "load_id": "L1"})
        event_log.record({"event_type": "offer_shown", "driver_id": "D2", "load_id": "L1", **lane})
        event_log.record({"event_type": "offer_declined", "driver_id": "D2", "load_id": "L1"})

        learner_core.run(trigger="test")
        ranked = scorer.rank_for_load("L1", 5)

        assert [c.driver_id for c in ranked] == ["D1", "D2"]
        assert ranked[0].score > ranked[1].score
        assert "lane_affinity" in ranked[0].reason
