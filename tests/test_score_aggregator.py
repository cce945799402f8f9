"""
Tests for the score aggregator.

Validates:
  - Composite score is the half-up rounded mean of the four factors
  - Reference scenarios (single restaurant, empty area, many transit stops)
  - Factor range and reproducibility over a grid of inputs
  - Diagnostics: hourly/weekly series, competitor breakdown, safety labels
  - Score label classification
  - Per-factor stages recorded on the run trace
"""

import math
import random

import pytest

from factor_scorers import coordinate_seed, round_half_up
from geo_index import EARTH_RADIUS_M, Coordinate
from score_aggregator import (
    DetailedAnalysis,
    Factors,
    competitor_analysis,
    competitor_density,
    generate_hourly_traffic,
    generate_score,
    generate_weekly_trends,
    get_score_label,
    hour_multiplier,
    lighting_label,
    surveillance_label,
)
from score_trace import TraceContext, clear_trace, set_trace
from scoring_config import SCORING_MODEL

ORIGIN = Coordinate(40.0, -73.0)
_METERS_PER_DEG_LAT = EARTH_RADIUS_M * math.pi / 180


def _make_place(name, types, meters_north=None):
    place = {"name": name, "vicinity": "Main St", "types": types}
    if meters_north is not None:
        place["geometry"] = {
            "location": {"lat": ORIGIN.lat + meters_north / _METERS_PER_DEG_LAT, "lng": ORIGIN.lng}
        }
    return place


def _competition_with_jitter(base, coords=ORIGIN):
    jitter = math.sin(coordinate_seed(coords) * 75) * 6
    return max(0, min(95, round_half_up(base + jitter)))


# =============================================================================
# Composite score
# =============================================================================

class TestFactors:
    def test_composite_is_mean(self):
        assert Factors(80, 60, 70, 90).composite() == 75

    def test_composite_rounds_half_up(self):
        assert Factors(50, 50, 51, 51).composite() == 51

    def test_composite_rounds_down_below_half(self):
        assert Factors(50, 50, 50, 51).composite() == 50

    def test_dict_round_trip(self):
        f = Factors(foot_traffic=88, safety=41, competition=90, accessibility=33)
        assert f.to_dict() == {"footTraffic": 88, "safety": 41, "competition": 90, "accessibility": 33}
        assert Factors.from_dict(f.to_dict()) == f


# =============================================================================
# Reference scenarios
# =============================================================================

class TestScenarios:
    def test_single_restaurant(self):
        places = [_make_place("Diner", ["restaurant"], 150)]
        result = generate_score(ORIGIN, places, [])
        f = result.factors

        assert 85 <= f.foot_traffic <= 95
        assert 30 <= f.safety <= 45
        assert 30 <= f.accessibility <= 40
        assert f.competition == _competition_with_jitter(90)
        assert result.score == f.composite()

    def test_empty_area(self):
        result = generate_score(ORIGIN, [], [])
        f = result.factors

        assert 25 <= f.foot_traffic <= 45
        assert 30 <= f.safety <= 45
        assert 30 <= f.accessibility <= 40
        assert f.competition == _competition_with_jitter(95)

    def test_sixteen_transit_stops(self):
        stops = [_make_place(f"Stop {i}", ["bus_station"], 3000 + 10 * i) for i in range(16)]
        result = generate_score(ORIGIN, [], stops)
        assert 85 <= result.factors.accessibility <= 95

    def test_business_type_changes_competition_only(self):
        places = [_make_place(f"Shop {i}", ["store"], 500 + i) for i in range(8)]
        generic = generate_score(ORIGIN, places, [])
        food = generate_score(ORIGIN, places, [], business_type="food_service")

        assert generic.factors.competition == _competition_with_jitter(60)
        assert food.factors.competition == _competition_with_jitter(95)
        assert generic.factors.foot_traffic == food.factors.foot_traffic
        assert generic.factors.safety == food.factors.safety

    def test_unknown_business_type_uses_generic(self):
        places = [_make_place("Shop", ["store"], 500)]
        unknown = generate_score(ORIGIN, places, [], business_type="spaceport")
        generic = generate_score(ORIGIN, places, [])
        assert unknown.factors == generic.factors


class TestInvariants:
    def _random_inputs(self, rng):
        kinds = [["restaurant"], ["bank"], ["hospital"], ["bar"], ["school"],
                 ["store"], ["gym"], ["park"], ["train_station", "transit_station"]]
        places = [
            _make_place(f"P{i}", rng.choice(kinds), rng.uniform(0, 1500) if rng.random() > 0.1 else None)
            for i in range(rng.randint(0, 30))
        ]
        stops = [_make_place(f"S{i}", ["bus_station"], 100) for i in range(rng.randint(0, 20))]
        coords = Coordinate(rng.uniform(-60, 60), rng.uniform(-170, 170))
        return coords, places, stops

    def test_factor_ranges_and_mean(self):
        rng = random.Random(1234)
        for _ in range(200):
            coords, places, stops = self._random_inputs(rng)
            result = generate_score(coords, places, stops)
            for value in result.factors.values():
                assert 0 <= value <= 100
            assert 0 <= result.score <= 100
            assert result.score == round_half_up(sum(result.factors.values()) / 4)

    def test_reproducible(self):
        rng = random.Random(99)
        for _ in range(20):
            coords, places, stops = self._random_inputs(rng)
            first = generate_score(coords, places, stops)
            second = generate_score(coords, places, stops)
            assert first.to_dict() == second.to_dict()

    def test_model_version_recorded(self):
        assert generate_score(ORIGIN, []).model_version == SCORING_MODEL.version


# =============================================================================
# Diagnostics
# =============================================================================

class TestHourlyTraffic:
    def test_shape(self):
        hourly = generate_hourly_traffic(80, random.Random(1))
        assert len(hourly) == 24
        assert hourly[0]["hour"] == "00:00"
        assert hourly[23]["hour"] == "23:00"
        assert set(hourly[12]) == {"hour", "pedestrians", "vehicles", "safety"}

    def test_night_safety_is_lower(self):
        hourly = generate_hourly_traffic(80, random.Random(7))
        night = [h["safety"] for i, h in enumerate(hourly) if i >= 22 or i <= 5]
        day = [h["safety"] for i, h in enumerate(hourly) if 6 <= i < 22]
        assert max(night) < min(day)

    def test_midday_busier_than_overnight(self):
        hourly = generate_hourly_traffic(90, random.Random(3))
        assert hourly[18]["pedestrians"] > hourly[3]["pedestrians"]

    @pytest.mark.parametrize("hour,mult", [(0, 0.3), (5, 0.3), (6, 0.7), (9, 0.7),
                                           (10, 0.9), (16, 0.9), (17, 1.0), (20, 1.0),
                                           (21, 0.6), (23, 0.6)])
    def test_hour_multiplier(self, hour, mult):
        assert hour_multiplier(hour, SCORING_MODEL.series) == mult


class TestWeeklyTrends:
    def test_days_in_order(self):
        weekly = generate_weekly_trends(80, random.Random(1))
        assert [d["day"] for d in weekly] == ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]

    def test_saturday_beats_sunday(self):
        weekly = generate_weekly_trends(80, random.Random(5))
        by_day = {d["day"]: d for d in weekly}
        # 96 +/- 3 vs 68 +/- 3
        assert by_day["Sat"]["traffic"] > by_day["Sun"]["traffic"]
        assert by_day["Fri"]["traffic"] > by_day["Mon"]["traffic"]


class TestCompetitorAnalysis:
    def test_histogram_by_primary_type(self):
        competitors = [
            {"types": ["restaurant", "food"]},
            {"types": ["restaurant"]},
            {"types": ["cafe", "restaurant"]},
            {"types": []},
        ]
        analysis = competitor_analysis(competitors)
        assert analysis["total"] == 4
        assert analysis["density"] == "Low"
        assert analysis["types"] == {"restaurant": 2, "cafe": 1, "other": 1}

    @pytest.mark.parametrize("count,label", [(0, "Low"), (10, "Low"), (11, "Medium"),
                                             (20, "Medium"), (21, "High")])
    def test_density(self, count, label):
        assert competitor_density(count) == label


class TestSafetyLabels:
    @pytest.mark.parametrize("safety,label", [(95, "Excellent"), (81, "Excellent"),
                                              (80, "Good"), (61, "Good"), (60, "Poor")])
    def test_lighting(self, safety, label):
        assert lighting_label(safety) == label

    @pytest.mark.parametrize("count,label", [(0, "Low"), (1, "Medium"), (2, "Medium"), (3, "High")])
    def test_surveillance(self, count, label):
        assert surveillance_label(count) == label


class TestDetailedAnalysis:
    def test_full_bundle(self):
        places = [
            _make_place("Diner", ["restaurant"], 150),
            _make_place("Cafe", ["cafe"], 300),
            _make_place("Clinic", ["doctor"], 900),
            _make_place("High School", ["school"], 600),
            _make_place("Dept Store", ["department_store", "store"], 400),
        ]
        stops = [_make_place("Stop", ["bus_station"], 200)]
        result = generate_score(ORIGIN, places, stops)
        analysis = result.detailed_analysis.to_dict()

        assert analysis["locationFactors"] == {
            "restaurants": 2,
            "hospitals": 1,
            "schools": 1,
            "shopping": 1,
            "transit": 1,
        }
        assert analysis["safetyMetrics"]["crimeRate"] == 100 - result.factors.safety
        assert analysis["safetyMetrics"]["surveillance"] == "Medium"
        assert analysis["competitorAnalysis"]["total"] == 2  # restaurant, store
        assert len(analysis["hourlyTraffic"]) == 24
        assert len(analysis["weeklyTrends"]) == 7

    def test_dict_round_trip(self):
        result = generate_score(ORIGIN, [_make_place("Diner", ["restaurant"], 150)])
        data = result.detailed_analysis.to_dict()
        assert DetailedAnalysis.from_dict(data).to_dict() == data


class TestScoreLabel:
    @pytest.mark.parametrize("score,label", [
        (100, "Excellent Location"),
        (72, "Excellent Location"),
        (71, "Good Location"),
        (60, "Good Location"),
        (59, "Risky for Credit"),
        (0, "Risky for Credit"),
    ])
    def test_thresholds(self, score, label):
        assert get_score_label(score)["label"] == label


class TestTracedStages:
    def test_one_stage_per_factor(self):
        ctx = TraceContext(trace_id="agg")
        set_trace(ctx)
        try:
            generate_score(ORIGIN, [_make_place("Diner", ["restaurant"], 100)], [])
        finally:
            clear_trace()

        assert [s.stage_name for s in ctx.stages] == [
            "footTraffic", "safety", "competition", "accessibility", "diagnostics",
        ]
        assert {z.factor: z.stage for z in ctx.zones} == {
            "footTraffic": "footTraffic",
            "safety": "safety",
            "competition": "competition",
            "accessibility": "accessibility",
        }
