"""
Unit tests for the energy integration strategies
"""
import numpy as np
import pandas as pd
import pytest

from energy_engine.bucket_planner import BucketPlanner
from energy_engine.errors import InvalidStrategy
from energy_engine.integrator import (CounterDeltaStrategy, TrapezoidalStrategy,
                                      annotate_readings, get_strategy)
from tests.fixtures.mock_data import generate_counter_readings, readings_frame


def delta_by_ordinal(deltas):
    return {d.bucket_ordinal: d.delta_wh for d in deltas}


class TestAnnotateReadings:
    """Unit tests for annotate_readings"""

    @pytest.mark.unit
    def test_intervals_and_validity(self, hour_buckets):
        readings = readings_frame(
            "aabb",
            [
                ("2024-01-01 00:00", 0, 0),
                ("2024-01-01 00:30", 0, 0),
                ("2024-01-01 02:00", 0, 0),
            ],
        )

        frame = annotate_readings(readings, hour_buckets, pd.Timedelta(minutes=60))

        assert np.isnan(frame["elapsed_seconds"].iloc[0])
        assert frame["elapsed_seconds"].tolist()[1:] == [1800.0, 5400.0]
        assert frame["valid"].tolist() == [False, True, False]
        assert frame["bucket_pos"].tolist() == [0, 0, 2]

    @pytest.mark.unit
    def test_boundary_and_out_of_window_positions(self, hour_buckets):
        readings = readings_frame(
            "aabb",
            [
                ("2023-12-31 23:59", 0, 0),
                ("2024-01-01 01:00", 0, 0),
                ("2024-01-02 00:00", 0, 0),
            ],
        )

        frame = annotate_readings(readings, hour_buckets)

        assert frame["bucket_pos"].tolist() == [-1, 1, -1]
        # 01:00 ends bucket 0, next midnight ends bucket 23
        assert frame["boundary_pos"].tolist() == [-1, 0, 23]

    @pytest.mark.unit
    def test_intervals_do_not_cross_meters(self, hour_buckets):
        readings = pd.concat(
            [
                readings_frame("aa", [("2024-01-01 00:00", 0, 0), ("2024-01-01 00:10", 0, 0)]),
                readings_frame("bb", [("2024-01-01 00:20", 0, 0)]),
            ],
            ignore_index=True,
        )

        frame = annotate_readings(readings, hour_buckets)

        assert frame["elapsed_seconds"].iloc[1] == 600.0
        assert np.isnan(frame["elapsed_seconds"].iloc[2])


class TestCounterDeltaStrategy:
    """Unit tests for CounterDeltaStrategy"""

    @pytest.mark.unit
    def test_boundary_reading_closes_bucket(self, hour_buckets):
        """100 Wh at 00:00 and 160 Wh at 01:00 -> 60 Wh in hour 0, 0 elsewhere"""
        readings = readings_frame(
            "AA:BB", [("2024-01-01 00:00", 100, 0), ("2024-01-01 01:00", 160, 0)]
        )

        deltas = CounterDeltaStrategy().integrate(readings, hour_buckets)

        assert len(deltas) == 24
        assert deltas[0].delta_wh == pytest.approx(60.0)
        assert all(d.delta_wh == 0.0 for d in deltas[1:])
        assert [d.bucket_ordinal for d in deltas] == list(range(24))

    @pytest.mark.unit
    def test_skipped_dst_hour_stays_empty(self):
        buckets = BucketPlanner(timezone="Europe/Berlin").plan("hour", "2024-03-31")
        # 01:00 and 03:00 local, then 04:00 local
        readings = readings_frame(
            "aabb",
            [
                ("2024-03-31 00:00", 0, 0),
                ("2024-03-31 01:00", 10, 0),
                ("2024-03-31 02:00", 25, 0),
            ],
        )

        deltas = delta_by_ordinal(CounterDeltaStrategy().integrate(readings, buckets))

        assert deltas[1] == pytest.approx(10.0)
        assert deltas[2] == 0.0
        assert deltas[3] == pytest.approx(15.0)
        assert sum(deltas.values()) == pytest.approx(25.0)

    @pytest.mark.unit
    def test_first_and_last_within_bucket(self, hour_buckets):
        readings = readings_frame(
            "aabb",
            [
                ("2024-01-01 05:05", 500, 0),
                ("2024-01-01 05:20", 510, 0),
                ("2024-01-01 05:50", 540, 0),
            ],
        )

        deltas = delta_by_ordinal(CounterDeltaStrategy().integrate(readings, hour_buckets))

        assert deltas[5] == pytest.approx(40.0)
        assert sum(deltas.values()) == pytest.approx(40.0)

    @pytest.mark.unit
    def test_bucket_without_readings_is_zero(self, hour_buckets):
        readings = readings_frame(
            "aabb", [("2024-01-01 03:10", 10, 0), ("2024-01-01 03:40", 25, 0)]
        )

        deltas = CounterDeltaStrategy().integrate(readings, hour_buckets)

        assert deltas[4].delta_wh == 0.0
        assert deltas[4].reading_count == 0
        assert deltas[3].reading_count == 2

    @pytest.mark.unit
    def test_counter_reset_is_clamped(self, hour_buckets):
        readings = readings_frame(
            "aabb",
            [
                ("2024-01-01 02:00", 900, 0),
                ("2024-01-01 02:30", 950, 0),
                ("2024-01-01 02:45", 20, 0),
            ],
        )

        deltas = CounterDeltaStrategy().integrate(readings, hour_buckets)

        assert deltas[2].delta_wh == 0.0
        assert deltas[2].clamped is True
        assert not any(d.clamped for i, d in enumerate(deltas) if i != 2)

    @pytest.mark.unit
    def test_steady_counter_over_day(self, hour_buckets):
        readings = generate_counter_readings("aabb", periods=24, step_wh=50.0)

        deltas = CounterDeltaStrategy().integrate(readings, hour_buckets)

        # The 23:00 reading has no successor inside the window
        assert [d.delta_wh for d in deltas[:23]] == [50.0] * 23
        assert deltas[23].delta_wh == 0.0

    @pytest.mark.unit
    def test_empty_readings(self, hour_buckets):
        deltas = CounterDeltaStrategy().integrate(
            readings_frame("aabb", []), hour_buckets, meter_id="aabb"
        )

        assert len(deltas) == 24
        assert all(d.delta_wh == 0.0 and d.meter_id == "aabb" for d in deltas)

    @pytest.mark.unit
    def test_meter_id_taken_from_frame(self, hour_buckets):
        readings = readings_frame("aabb", [("2024-01-01 00:00", 1, 0)])

        deltas = CounterDeltaStrategy().integrate(readings, hour_buckets)

        assert {d.meter_id for d in deltas} == {"aabb"}


class TestTrapezoidalStrategy:
    """Unit tests for TrapezoidalStrategy"""

    @pytest.mark.unit
    def test_trapezoid_area(self, hour_buckets):
        """100 W at 00:00 and 140 W at 00:30 -> 60 Wh in the bucket of 00:30"""
        readings = readings_frame(
            "aabb", [("2024-01-01 00:00", 0, 100), ("2024-01-01 00:30", 0, 140)]
        )

        deltas = TrapezoidalStrategy().integrate(readings, hour_buckets)

        assert deltas[0].delta_wh == pytest.approx(60.0)
        assert sum(d.delta_wh for d in deltas) == pytest.approx(60.0)

    @pytest.mark.unit
    def test_interval_attributed_to_later_reading(self, hour_buckets):
        readings = readings_frame(
            "aabb", [("2024-01-01 00:45", 0, 200), ("2024-01-01 01:15", 0, 200)]
        )

        deltas = delta_by_ordinal(TrapezoidalStrategy().integrate(readings, hour_buckets))

        assert deltas[0] == 0.0
        assert deltas[1] == pytest.approx(100.0)

    @pytest.mark.unit
    def test_gap_over_max_gap_contributes_nothing(self, hour_buckets):
        readings = readings_frame(
            "aabb",
            [
                ("2024-01-01 00:00", 0, 100),
                ("2024-01-01 00:30", 0, 100),
                ("2024-01-01 03:00", 0, 100),
                ("2024-01-01 03:30", 0, 100),
            ],
        )

        deltas = delta_by_ordinal(
            TrapezoidalStrategy(max_gap=pd.Timedelta(minutes=60)).integrate(readings, hour_buckets)
        )

        assert deltas[0] == pytest.approx(50.0)
        assert deltas[3] == pytest.approx(50.0)
        assert sum(deltas.values()) == pytest.approx(100.0)

    @pytest.mark.unit
    def test_gap_exactly_max_gap_is_valid(self, hour_buckets):
        readings = readings_frame(
            "aabb", [("2024-01-01 00:00", 0, 60), ("2024-01-01 01:00", 0, 60)]
        )

        deltas = TrapezoidalStrategy(max_gap=pd.Timedelta(minutes=60)).integrate(
            readings, hour_buckets
        )

        assert deltas[1].delta_wh == pytest.approx(60.0)
        assert deltas[1].valid_interval_count == 1

    @pytest.mark.unit
    def test_missing_power_contributes_nothing(self, hour_buckets):
        readings = readings_frame(
            "aabb",
            [
                ("2024-01-01 00:00", 0, 100),
                ("2024-01-01 00:30", 0, float("nan")),
                ("2024-01-01 00:45", 0, 100),
            ],
        )

        deltas = TrapezoidalStrategy().integrate(readings, hour_buckets)

        assert deltas[0].delta_wh == 0.0
        assert deltas[0].total_interval_count == 2
        assert deltas[0].valid_interval_count == 0

    @pytest.mark.unit
    def test_missing_power_does_not_matter_for_counter_delta(self, hour_buckets):
        readings = readings_frame(
            "aabb",
            [
                ("2024-01-01 00:00", 100, 100),
                ("2024-01-01 00:30", 130, float("nan")),
                ("2024-01-01 00:45", 160, 100),
            ],
        )

        deltas = CounterDeltaStrategy().integrate(readings, hour_buckets)

        assert deltas[0].delta_wh == pytest.approx(60.0)
        assert deltas[0].valid_interval_count == 2

    @pytest.mark.unit
    def test_resets_do_not_affect_power_integration(self, hour_buckets):
        readings = readings_frame(
            "aabb", [("2024-01-01 02:00", 900, 120), ("2024-01-01 02:30", 5, 120)]
        )

        deltas = TrapezoidalStrategy().integrate(readings, hour_buckets)

        assert deltas[2].delta_wh == pytest.approx(60.0)
        assert not deltas[2].clamped

    @pytest.mark.unit
    def test_negative_power_is_clamped(self, hour_buckets):
        readings = readings_frame(
            "aabb", [("2024-01-01 02:00", 0, -50), ("2024-01-01 02:30", 0, -50)]
        )

        deltas = TrapezoidalStrategy().integrate(readings, hour_buckets)

        assert deltas[2].delta_wh == 0.0
        assert deltas[2].clamped

    @pytest.mark.unit
    def test_strategies_agree_on_steady_load(self, hour_buckets):
        readings = generate_counter_readings(
            "aabb", start="2024-01-01 00:00", periods=96, freq="15min", step_wh=25.0
        )

        delta_total = sum(d.delta_wh for d in CounterDeltaStrategy().integrate(readings, hour_buckets))
        trapezoid_total = sum(
            d.delta_wh for d in TrapezoidalStrategy().integrate(readings, hour_buckets)
        )

        # 95 intervals of 25 Wh each
        assert delta_total == pytest.approx(95 * 25.0)
        assert trapezoid_total == pytest.approx(95 * 25.0)


class TestGetStrategy:
    """Unit tests for get_strategy"""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "name,expected",
        [
            ("delta", CounterDeltaStrategy),
            ("counter_delta", CounterDeltaStrategy),
            ("trapezoidal", TrapezoidalStrategy),
            ("Trapezoid", TrapezoidalStrategy),
        ],
    )
    def test_resolves_names(self, name, expected):
        assert isinstance(get_strategy(name), expected)

    @pytest.mark.unit
    def test_passes_max_gap(self):
        strategy = get_strategy("trapezoidal", pd.Timedelta(minutes=5))
        assert strategy.max_gap == pd.Timedelta(minutes=5)

    @pytest.mark.unit
    def test_unknown_strategy_raises(self):
        with pytest.raises(InvalidStrategy, match="simpson"):
            get_strategy("simpson")
