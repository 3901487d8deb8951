"""
Tests for post-session force analysis: crossings, cycles and RFD.

Times are in ms and forces in kg. Sine traces are shifted by 3 ms so no sample
lands exactly on the crossing line.
"""
import numpy as np
import pytest

from processing.force_cycles import (
    adjust_cycles_by_zero_crossing,
    calculate_rfd_in_range,
    detect_outlier_edges,
    estimate_crossing_line,
    find_baseline_crossings,
    find_baseline_segments,
)


def sine_trace(duration_ms=4000, step_ms=10, mean=0.0, amplitude=1.0):
    x = np.arange(0, duration_ms, step_ms, dtype=float)
    y = mean + amplitude * np.sin(2 * np.pi * (x + 3) / 1000.0)
    return x, y


def ramp_trace():
    """Rest at 0 kg, rise at 50 kg/s between 300 and 500 ms, hold at 10 kg."""
    x = np.arange(0, 1001, 10, dtype=float)
    y = np.clip((x - 300) * 0.05, 0.0, 10.0)
    return x, y


class TestCrossings:

    def test_crossings_interpolated(self):
        crossings = find_baseline_crossings([0, 10, 20, 30], [-1, 1, 1, -1])
        assert crossings.tolist() == pytest.approx([5.0, 25.0])

    def test_touching_baseline_counts_once(self):
        assert find_baseline_crossings([0, 10, 20], [-1, 0, 1]).tolist() == [10.0]

    def test_short_input(self):
        assert len(find_baseline_crossings([0], [1])) == 0

    def test_mismatched_lengths_rejected(self):
        with pytest.raises(ValueError):
            find_baseline_crossings([0, 1, 2], [0, 1])

    def test_sine_segments_alternate(self):
        x, y = sine_trace()
        segments = find_baseline_segments(x, y)

        assert [s.is_valley for s in segments] == [True, False] * 3
        assert [s.peak_x for s in segments if s.is_valley] == [750.0, 1750.0, 2750.0]
        assert segments[0].start_x == pytest.approx(497.0, abs=0.5)

    def test_small_excursions_dropped(self):
        x, y = sine_trace(amplitude=0.05)
        assert find_baseline_segments(x, y) == []


class TestAdjustCycles:

    def test_sine_split_valley_to_valley(self):
        x, y = sine_trace()
        segments, cycles = adjust_cycles_by_zero_crossing(x, y, baseline=0.0)

        assert len(segments) == 6
        assert len(cycles) == 4
        middle = cycles[1:3]
        assert [c.start_x for c in middle] == [750.0, 1750.0]
        assert middle[0].end_x == pytest.approx(1760.0)
        for c in middle:
            assert c.amplitude == pytest.approx(2.0, abs=0.01)
            assert c.peak_y == pytest.approx(1.0, abs=0.01)
        assert all(np.isfinite(c.relative_speed_ratio) for c in cycles)

    def test_work_load_scales_speed(self):
        x, y = sine_trace()
        _, plain = adjust_cycles_by_zero_crossing(x, y)
        _, loaded = adjust_cycles_by_zero_crossing(x, y, work_load=2.0)
        assert loaded[1].speed_ratio == pytest.approx(plain[1].speed_ratio / 2)
        assert loaded[1].work_load == 2.0

    def test_single_excursion_becomes_one_cycle(self):
        x = np.arange(0, 1000, 10, dtype=float)
        y = np.sin(np.pi * x / 1000.0) - 0.5
        segments, cycles = adjust_cycles_by_zero_crossing(x, y)

        assert len(segments) == 1 and not segments[0].is_valley
        assert len(cycles) == 1
        assert cycles[0].start_x == pytest.approx(166.7, abs=0.5)
        assert cycles[0].peak_y == pytest.approx(0.5, abs=0.01)

    def test_trim_limits_clip_last_cycle(self):
        x, y = sine_trace()
        _, cycles = adjust_cycles_by_zero_crossing(x, y, trim_limits=(1000.0, 3000.0))
        # The tail cycle collapses onto the last valley before 3000 ms and is dropped
        assert len(cycles) == 3
        assert cycles[-1].start_x == 1750.0

    def test_flat_signal_has_no_cycles(self):
        x = np.arange(0, 1000, 10, dtype=float)
        segments, cycles = adjust_cycles_by_zero_crossing(x, np.full_like(x, 2.0), baseline=1.0)
        assert segments == [] and cycles == []


class TestCrossingLine:

    def test_outlier_edges_at_rest_zones(self):
        y = np.concatenate([np.zeros(30), np.arange(1, 41, dtype=float), np.zeros(30)])
        assert detect_outlier_edges(y) == (20, 80)

    def test_no_flat_zone(self):
        assert detect_outlier_edges(np.arange(100, dtype=float)) == (None, None)
        assert detect_outlier_edges([0.0] * 5) == (None, None)

    def test_crossing_line_of_sine_is_its_mean(self):
        _, y = sine_trace(mean=10.0, amplitude=5.0)
        assert estimate_crossing_line(y) == pytest.approx(10.0, abs=1e-6)

    def test_empty_crossing_line(self):
        assert estimate_crossing_line([]) == 0.0


class TestRFD:

    def test_linear_rise(self):
        x, y = ramp_trace()
        result = calculate_rfd_in_range(x, y, 0, 1000)

        assert result.rfd == pytest.approx(50.0)
        assert result.start == pytest.approx(340.0)
        assert result.end == pytest.approx(460.0)
        assert not result.are_newtons

    def test_newtons(self):
        x, y = ramp_trace()
        result = calculate_rfd_in_range(x, y, 0, 1000, convert_to_newtons=True)
        assert result.rfd == pytest.approx(50.0 * 9.81)
        assert result.are_newtons

    def test_flat_range_has_no_rfd(self):
        x, y = ramp_trace()
        assert calculate_rfd_in_range(x, y, 600, 1000) is None

    def test_too_few_samples(self):
        x, y = ramp_trace()
        assert calculate_rfd_in_range(x, y, 300, 320) is None
