"""
Tests for LTTB downsampling of chart series.
"""
import numpy as np
import pytest

from processing.angle_series import ChartPoint
from processing.downsampler import downsample_for_display, lttb_downsample


def triangle(n=101, peak=50):
    return [ChartPoint(x=float(i), y=float(i if i <= peak else 2 * peak - i)) for i in range(n)]


def noisy_series(n=500, seed=3):
    rng = np.random.default_rng(seed)
    ys = np.cumsum(rng.normal(size=n))
    return [ChartPoint(x=float(i), y=float(y)) for i, y in enumerate(ys)]


@pytest.mark.parametrize("threshold", [0, 101, 150])
def test_identity_when_no_reduction(threshold):
    points = triangle()
    assert lttb_downsample(points, threshold) is points


def test_output_length_matches_threshold():
    points = noisy_series()
    assert len(lttb_downsample(points, 40)) == 40


def test_boundary_points_kept():
    points = noisy_series()
    for threshold in (2, 3, 10, 77):
        sampled = lttb_downsample(points, threshold)
        assert sampled[0] == points[0]
        assert sampled[-1] == points[-1]


def test_threshold_one_or_two_gives_boundary_only():
    points = noisy_series(20)
    assert lttb_downsample(points, 1) == [points[0], points[-1]]
    assert lttb_downsample(points, 2) == [points[0], points[-1]]


def test_negative_threshold_rejected():
    with pytest.raises(ValueError):
        lttb_downsample(triangle(), -1)


def test_x_stays_sorted():
    sampled = lttb_downsample(noisy_series(), 25)
    xs = [p.x for p in sampled]
    assert xs == sorted(xs)
    assert len(set(xs)) == len(xs)


def test_peak_survives_reduction():
    sampled = lttb_downsample(triangle(), 10)
    assert any(abs(p.x - 50) <= 1 for p in sampled)


def test_earliest_point_wins_ties():
    # Two equal spikes in the same bucket; the first one must be chosen
    points = [ChartPoint(float(i), 0.0) for i in range(12)]
    points[4] = ChartPoint(4.0, 5.0)
    points[5] = ChartPoint(5.0, 5.0)
    sampled = lttb_downsample(points, 3)
    assert sampled[1].x == 4.0


def test_deterministic():
    points = noisy_series()
    assert lttb_downsample(points, 30) == lttb_downsample(points, 30)


def test_display_downsampling_only_past_threshold():
    short = triangle(60)
    assert downsample_for_display(short, sample=50, sample_threshold=60) is short
    long = triangle(61, peak=30)
    assert len(downsample_for_display(long, sample=50, sample_threshold=60)) == 50
