"""
Tests for live force cycle counting and the fatigue check.

Signals are sampled force traces in kg with millisecond timestamps.
"""
import math

import pytest

from processing.cycle_detector import BELOW, CycleDetector, ForceSettings


def sine_force(duration_ms=5000, step_ms=10, mean=10.0, amplitude=5.0, period_ms=1000.0):
    return [
        (t, mean + amplitude * math.sin(2 * math.pi * t / period_ms))
        for t in range(0, duration_ms, step_ms)
    ]


def square_force(high, low, half_period_samples, periods, start_ms=0, step_ms=100):
    samples = []
    t = start_ms
    for _ in range(periods):
        for value in [high] * half_period_samples + [low] * half_period_samples:
            samples.append((t, value))
            t += step_ms
    return samples


def feed(detector, samples):
    return [m for m in (detector.process_sample(t, f) for t, f in samples) if m is not None]


def test_sine_cycles_counted():
    detector = CycleDetector()
    metrics = feed(detector, sine_force())

    assert detector.cycle_count == 4
    assert len(metrics) == 4
    assert [m.timestamp for m in metrics] == [1010, 2010, 3010, 4010]
    for m in metrics:
        assert m.duration == pytest.approx(1000.0)
        assert m.amplitude == pytest.approx(10.0, abs=1e-6)
    assert detector.peak == pytest.approx(15.0)


def test_steady_cycles_are_not_fatigue():
    detector = CycleDetector()
    feed(detector, sine_force())
    status = detector.detect_fatigue()
    assert status == {"is_fatigued": False, "reasons": []}


def test_signals_emitted_per_cycle():
    detector = CycleDetector()
    cycles, statuses = [], []
    detector.cycle_detected_signal.connect(cycles.append)
    detector.fatigue_signal.connect(statuses.append)

    feed(detector, sine_force())
    assert len(cycles) == 4
    assert len(statuses) == 4


def test_small_wobble_inside_band_is_not_a_cycle():
    detector = CycleDetector(ForceSettings(hysteresis=0.5))
    feed(detector, sine_force(amplitude=0.3))
    assert detector.cycle_count == 0
    assert detector.aggregated_metrics() is None


def test_slower_weaker_reps_flag_fatigue():
    settings = ForceSettings(moving_average_window=1000)
    detector = CycleDetector(settings)
    fast = square_force(20.0, 0.0, half_period_samples=2, periods=6)
    slow = square_force(4.0, 0.0, half_period_samples=4, periods=10, start_ms=2400)
    feed(detector, fast + slow)

    assert detector.cycle_count == 14
    assert detector.cycle_duration == pytest.approx(800.0)
    assert detector.cycle_amplitude == pytest.approx(4.0)
    status = detector.detect_fatigue()
    assert status["is_fatigued"]
    assert status["reasons"] == ["peak_force", "velocity"]


def test_classify_uses_recent_range_midpoint():
    detector = CycleDetector()
    detector.process_sample(0, 0.0)
    detector.process_sample(100, 10.0)
    assert detector.recent_average == pytest.approx(5.0)
    assert detector.classify(4.0) == BELOW


def test_reset_clears_counts():
    detector = CycleDetector()
    feed(detector, sine_force())
    detector.reset()
    assert detector.cycle_count == 0
    assert detector.peak == 0.0
    assert detector.detect_fatigue()["reasons"] == []


@pytest.mark.parametrize("field, value", [
    ("moving_average_window", 0),
    ("cycles_to_average", 0),
    ("hysteresis", -0.1),
    ("peak_drop_threshold", 1.5),
])
def test_invalid_settings_rejected(field, value):
    with pytest.raises(ValueError, match=field):
        ForceSettings(**{field: value}).validate()
