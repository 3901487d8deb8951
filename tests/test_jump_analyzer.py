"""
Tests for jump metrics derived from detected events.
"""
import pytest

from processing.angle_series import AnglePoint
from processing.jump_analyzer import JumpAnalyzer
from processing.jump_detector import JumpEvent, JumpPhaseDetector


def make_jump(impulse_t, takeoff_t, apex_t, landing_t, cushion_t):
    times = [impulse_t, takeoff_t, apex_t, landing_t, cushion_t]
    angles = [80.0, 30.0, 5.0, 26.0, 78.0]
    points = [
        AnglePoint(index=k, angle=a, y_value=None, video_time=t)
        for k, (a, t) in enumerate(zip(angles, times))
    ]
    return JumpEvent(
        impulse_point=points[0],
        takeoff_point=points[1],
        apex_point=points[2],
        landing_point=points[3],
        cushion_point=points[4],
    )


def test_flight_metrics():
    analyzer = JumpAnalyzer()
    results = analyzer.analyze_jump(make_jump(0.0, 0.2, 0.45, 0.7, 0.9), 1)

    assert results['Jump #1 Flight Time (s)'] == pytest.approx(0.5)
    # h = g t^2 / 8
    assert results['Jump #1 Jump Height (m)'] == pytest.approx(round(9.81 * 0.25 / 8, 3))
    assert results['Jump #1 Takeoff Velocity (m/s)'] == pytest.approx(2.452, abs=2e-3)
    assert results['Jump #1 Propulsion Time (s)'] == pytest.approx(0.2)
    assert results['Jump #1 Absorption Time (s)'] == pytest.approx(0.2)
    assert results['Jump #1 Flexion Before Jump (deg)'] == 80.0
    assert results['Jump #1 Flexion In Flight (deg)'] == 5.0
    assert results['Jump #1 Flexion After Landing (deg)'] == 78.0
    assert 'Jump #1 Analysis Note' not in results


def test_out_of_range_flight_time_adds_note():
    analyzer = JumpAnalyzer()
    messages = []
    analyzer.status_signal.connect(messages.append)

    results = analyzer.analyze_jump(make_jump(0.0, 0.1, 0.11, 0.12, 0.3), 2)

    assert 'Jump #2 Analysis Note' in results
    assert any("outside expected range" in m for m in messages)


def test_height_and_velocity_are_consistent():
    analyzer = JumpAnalyzer()
    t = 0.4
    h = analyzer.jump_height(t)
    # v = g t / 2 for symmetric flight
    assert analyzer.takeoff_velocity(h) == pytest.approx(9.81 * t / 2)


def test_analyze_jumps_emits_results_and_markers(squat_frames):
    jumps = JumpPhaseDetector().detect(squat_frames)
    analyzer = JumpAnalyzer()
    results, markers = [], []
    analyzer.analysis_complete_signal.connect(results.append)
    analyzer.jump_event_markers_signal.connect(markers.append)

    returned = analyzer.analyze_jumps(jumps)

    assert returned == results
    assert len(results) == 1
    assert results[0]['Jump #1 Flight Time (s)'] == pytest.approx(0.2)
    assert len(markers) == 1
    assert markers[0]['jump_number'] == 1
    assert markers[0]['takeoff_time'] < markers[0]['apex_time'] < markers[0]['landing_time']


def test_analyze_no_jumps():
    assert JumpAnalyzer().analyze_jumps([]) == []
