"""
Tests for the bounded frame and motion-sample buffers.
"""
import pytest

from conftest import frames_from_angles, motion_sample
from processing.angle_series import VideoFrame
from processing.buffer_manager import BufferManager


def test_frames_bounded_by_duration():
    buffers = BufferManager(frame_rate=10, motion_sample_rate=10, max_duration_seconds=2)
    for frame in frames_from_angles([10.0] * 50, fps=10):
        buffers.append_frame(frame)

    assert buffers.get_frame_count() == 20
    frames = buffers.get_frames()
    assert frames[0].video_time == pytest.approx(3.0)
    assert frames[-1].video_time == pytest.approx(4.9)


def test_recent_frames():
    buffers = BufferManager(frame_rate=10)
    for frame in frames_from_angles([10.0] * 30, fps=10):
        buffers.append_frame(frame)
    recent = buffers.get_recent_frames(0.95)
    assert [round(f.video_time, 1) for f in recent] == [2.0, 2.1, 2.2, 2.3, 2.4, 2.5,
                                                        2.6, 2.7, 2.8, 2.9]


def test_out_of_order_frame_rejected():
    buffers = BufferManager()
    buffers.append_frame(VideoFrame(video_time=1.0))
    with pytest.raises(ValueError):
        buffers.append_frame(VideoFrame(video_time=0.5))
    buffers.append_frame(VideoFrame(video_time=1.0))
    assert buffers.get_frame_count() == 2


def test_motion_samples_and_recent_window():
    buffers = BufferManager(motion_sample_rate=50, max_duration_seconds=1)
    for k in range(80):
        buffers.append_motion_sample(motion_sample(k * 20.0))

    assert buffers.get_motion_sample_count() == 50
    recent = buffers.get_recent_motion_samples(0.1)
    assert [s.timestamp for s in recent] == [1480.0, 1500.0, 1520.0, 1540.0, 1560.0, 1580.0]


def test_empty_buffers():
    buffers = BufferManager()
    assert buffers.get_frames() == []
    assert buffers.get_recent_frames(5) == []
    assert buffers.get_recent_motion_samples(5) == []


def test_reset():
    buffers = BufferManager()
    buffers.append_frame(VideoFrame(video_time=0.0))
    buffers.append_motion_sample(motion_sample(0.0))
    buffers.reset()
    assert buffers.get_frame_count() == 0
    assert buffers.get_motion_sample_count() == 0


def test_invalid_duration():
    with pytest.raises(ValueError):
        BufferManager(max_duration_seconds=0)


def test_force_samples():
    buffers = BufferManager(force_sample_rate=10, max_duration_seconds=1)
    for k in range(15):
        buffers.append_force_sample(k * 100.0, float(k))

    times, forces = buffers.get_force_samples()
    assert buffers.get_force_sample_count() == 10
    assert times[0] == 500.0
    assert forces.tolist() == [float(k) for k in range(5, 15)]

    with pytest.raises(ValueError):
        buffers.append_force_sample(0.0, 1.0)

    buffers.reset()
    assert buffers.get_force_sample_count() == 0
