"""
Manages memory-bounded buffers for pose frames, motion samples and force samples.
Provides circular buffers to prevent unbounded memory growth during long sessions.
"""
from collections import deque

import numpy as np

import config


class BufferManager:
    """
    Holds the frames of a pose session and the samples of a balance test.
    Uses circular buffers (deque) so the oldest entries are dropped once the
    configured duration is exceeded.
    """

    def __init__(self, frame_rate=config.FRAME_RATE,
                 motion_sample_rate=config.MOTION_SAMPLE_RATE,
                 max_duration_seconds=config.SESSION_BUFFER_SECONDS,
                 force_sample_rate=config.FORCE_SAMPLE_RATE):
        """
        Initialize the buffer manager.

        Args:
            frame_rate: Expected video frame rate in Hz
            motion_sample_rate: Expected motion event rate in Hz
            max_duration_seconds: Maximum buffer duration in seconds (default 5 minutes)
            force_sample_rate: Expected force sensor rate in Hz
        """
        if max_duration_seconds <= 0:
            raise ValueError("max_duration_seconds must be positive.")

        self.frame_rate = frame_rate
        self.motion_sample_rate = motion_sample_rate
        self.max_duration_seconds = max_duration_seconds

        self.max_frames = int(frame_rate * max_duration_seconds)
        self.max_motion_samples = int(motion_sample_rate * max_duration_seconds)
        self.max_force_samples = int(force_sample_rate * max_duration_seconds)

        self._frames = deque(maxlen=self.max_frames)
        self._motion_samples = deque(maxlen=self.max_motion_samples)
        self._force_times = deque(maxlen=self.max_force_samples)
        self._force_values = deque(maxlen=self.max_force_samples)

    def reset(self):
        """Clear all buffers."""
        self._frames.clear()
        self._motion_samples.clear()
        self._force_times.clear()
        self._force_values.clear()

    def append_frame(self, frame):
        """Append a VideoFrame; frames must arrive in video-time order."""
        if self._frames and frame.video_time < self._frames[-1].video_time:
            raise ValueError(
                f"Frame at {frame.video_time}s is older than the last buffered frame "
                f"({self._frames[-1].video_time}s)"
            )
        self._frames.append(frame)

    def append_motion_sample(self, sample):
        """Append a calibrated or raw motion sample (anything with a ms timestamp)."""
        self._motion_samples.append(sample)

    def append_force_sample(self, time_ms, force):
        """Append one force reading (kg) taken at `time_ms`."""
        if self._force_times and time_ms < self._force_times[-1]:
            raise ValueError(
                f"Force sample at {time_ms}ms is older than the last buffered sample "
                f"({self._force_times[-1]}ms)"
            )
        self._force_times.append(float(time_ms))
        self._force_values.append(float(force))

    def get_frames(self):
        """All buffered frames, oldest first."""
        return list(self._frames)

    def get_motion_samples(self):
        """All buffered motion samples, oldest first."""
        return list(self._motion_samples)

    def get_force_samples(self):
        """
        Buffered force readings as arrays.

        Returns:
            tuple: (times in ms, forces in kg) as numpy arrays
        """
        return np.array(self._force_times), np.array(self._force_values)

    def get_recent_frames(self, duration_seconds):
        """
        Frames within the last `duration_seconds` of video time.

        Returns:
            list: Frames, empty if nothing is buffered
        """
        if not self._frames:
            return []
        cutoff = self._frames[-1].video_time - duration_seconds
        return [f for f in self._frames if f.video_time >= cutoff]

    def get_recent_motion_samples(self, duration_seconds):
        """Motion samples within the last `duration_seconds` (timestamps in ms)."""
        if not self._motion_samples:
            return []
        cutoff = self._motion_samples[-1].timestamp - duration_seconds * 1000.0
        return [s for s in self._motion_samples if s.timestamp >= cutoff]

    def get_frame_count(self):
        return len(self._frames)

    def get_motion_sample_count(self):
        return len(self._motion_samples)

    def get_force_sample_count(self):
        return len(self._force_times)
