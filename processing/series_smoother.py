"""
Bounded-history moving averages for per-frame signals.

The same averaging primitive serves two window shapes:
- trailing (streaming): the last N raw samples of a tracked quantity, updated
  once per frame by the ingestion loop
- centered (batch): a window around every sample of a finalized series, used
  ahead of jump detection
"""
import math
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

import config


def smooth(history, new_sample, window_size):
    """
    Push a sample into a bounded history and return the window mean.

    The caller owns the history; it is not modified, a new one is returned.

    Args:
        history: Sequence of the most recent raw samples
        new_sample: Raw sample for the current frame
        window_size: Number of samples kept (0 bypasses smoothing)

    Returns:
        tuple: (smoothed_value, new_history)
    """
    if window_size < 0:
        raise ValueError(f"window_size must be >= 0, got {window_size}")
    if window_size == 0:
        return new_sample, []

    new_history = list(history)
    new_history.append(new_sample)
    if len(new_history) > window_size:
        new_history = new_history[-window_size:]

    smoothed_value = sum(new_history) / len(new_history)
    return smoothed_value, new_history


def centered_moving_average(values, window):
    """
    Centered sliding mean: sample i averages [i - floor(w/2), i + ceil(w/2)).

    Windows are truncated at both ends of the series.
    """
    if window <= 0:
        raise ValueError(f"window must be positive, got {window}")

    values = np.asarray(values, dtype=float)
    n = values.shape[0]
    half_before = window // 2
    half_after = math.ceil(window / 2)

    out = np.empty(n, dtype=float)
    for i in range(n):
        start = max(0, i - half_before)
        end = min(n, i + half_after)
        out[i] = np.mean(values[start:end])
    return out


@dataclass(frozen=True)
class KeypointVelocityState:
    """Tracking state of one keypoint's pixel-space speed."""
    position: Tuple[float, float]
    last_timestamp: float
    velocity_in_pixels: float
    velocity_in_pixels_history: Tuple[float, ...] = ()


def update_keypoint_velocity(
    keypoints: Sequence,
    selected_keypoint: Optional[str],
    state: Optional[KeypointVelocityState],
    velocity_history_size: int,
    timestamp: float,
    movement_threshold: float = config.MOVEMENT_THRESHOLD_PX,
) -> Optional[KeypointVelocityState]:
    """
    Update the smoothed speed of the selected keypoint for a new frame.

    Args:
        keypoints: Keypoints of the current frame (objects with name, x, y)
        selected_keypoint: Name of the tracked keypoint
        state: Previous state, or None on first sighting
        velocity_history_size: Trailing window size for the speed average
        timestamp: Frame timestamp in milliseconds
        movement_threshold: Displacements up to this many pixels count as zero

    Returns:
        KeypointVelocityState or the unchanged state if the keypoint is absent
    """
    keypoint = next((kp for kp in keypoints if kp.name == selected_keypoint), None)
    if keypoint is None:
        return state

    position = (keypoint.x, keypoint.y)

    if state is None:
        return KeypointVelocityState(
            position=position,
            last_timestamp=timestamp,
            velocity_in_pixels=0.0,
            velocity_in_pixels_history=(),
        )

    dx = position[0] - state.position[0]
    dy = position[1] - state.position[1]
    distance = math.hypot(dx, dy)
    delta_time = (timestamp - state.last_timestamp) / 1000.0

    velocity = 0.0
    if distance > movement_threshold and delta_time > 0:
        velocity = distance / delta_time

    smoothed_velocity, history = smooth(
        state.velocity_in_pixels_history, velocity, velocity_history_size
    )

    return KeypointVelocityState(
        position=position,
        last_timestamp=timestamp,
        velocity_in_pixels=smoothed_velocity,
        velocity_in_pixels_history=tuple(history),
    )
