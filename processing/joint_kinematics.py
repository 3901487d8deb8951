"""
Joint angles from pose keypoints and their streaming smoothing.
Each tracked joint keeps a JointAngleState that the ingestion loop passes back
in on the next frame.
"""
import math
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from .angle_series import (
    LEFT_SHOULDER, RIGHT_SHOULDER, LEFT_ELBOW, RIGHT_ELBOW,
    LEFT_WRIST, RIGHT_WRIST, LEFT_HIP, RIGHT_HIP,
    LEFT_KNEE, RIGHT_KNEE, LEFT_ANKLE, RIGHT_ANKLE,
)
from .series_smoother import smooth
import config


# (proximal, joint, distal) keypoints defining each measurable joint angle
JOINT_POINTS = {
    RIGHT_ELBOW: (RIGHT_SHOULDER, RIGHT_ELBOW, RIGHT_WRIST),
    RIGHT_KNEE: (RIGHT_HIP, RIGHT_KNEE, RIGHT_ANKLE),
    RIGHT_SHOULDER: (RIGHT_HIP, RIGHT_SHOULDER, RIGHT_ELBOW),
    RIGHT_HIP: (RIGHT_SHOULDER, RIGHT_HIP, RIGHT_KNEE),
    LEFT_ELBOW: (LEFT_SHOULDER, LEFT_ELBOW, LEFT_WRIST),
    LEFT_KNEE: (LEFT_HIP, LEFT_KNEE, LEFT_ANKLE),
    LEFT_SHOULDER: (LEFT_HIP, LEFT_SHOULDER, LEFT_ELBOW),
    LEFT_HIP: (LEFT_SHOULDER, LEFT_HIP, LEFT_KNEE),
}


@dataclass(frozen=True)
class JointAngleState:
    angle: float
    last_timestamp: float
    angular_velocity: float = 0.0
    angular_velocity_history: Tuple[float, ...] = ()
    angle_history: Tuple[float, ...] = ()
    smoothed_angle: Optional[float] = None


def calculate_joint_angle(a, b, c, invert=False):
    """
    Angle at keypoint b formed by the segments b-a and b-c, in degrees.

    Args:
        a, b, c: Objects with x and y attributes
        invert: Return 180 - angle (flexion convention, 0 = fully extended)

    Returns:
        float: Angle in degrees, 0 when a segment has zero length
    """
    ba = (a.x - b.x, a.y - b.y)
    bc = (c.x - b.x, c.y - b.y)

    mag_ba = math.hypot(*ba)
    mag_bc = math.hypot(*bc)
    if mag_ba == 0 or mag_bc == 0:
        return 0.0

    cos_val = (ba[0] * bc[0] + ba[1] * bc[1]) / (mag_ba * mag_bc)
    cos_val = max(-1.0, min(1.0, cos_val))
    angle = math.degrees(math.acos(cos_val))

    if invert:
        angle = 180.0 - angle
    return angle


def get_joint_points(joint_name: str):
    """Keypoint names (proximal, joint, distal) for a joint, or None if unsupported."""
    return JOINT_POINTS.get(joint_name)


def get_joint_keypoints(joint_name: str, keypoints: Sequence):
    joint_points = get_joint_points(joint_name)
    if joint_points is None:
        return None

    by_name = {kp.name: kp for kp in keypoints}
    found = [by_name.get(name) for name in joint_points]
    if any(kp is None for kp in found):
        return None
    return tuple(found)


def update_joint_angle(
    keypoints: Sequence,
    joint_name: str,
    state: Optional[JointAngleState],
    timestamp: float,
    invert: bool = False,
    velocity_history_size: int = config.ANGULAR_HISTORY_SIZE,
    angle_history_size: int = config.ANGULAR_HISTORY_SIZE,
    with_velocity: bool = False,
) -> JointAngleState:
    """
    Update the angle state of one joint for a new frame.

    Without with_velocity only the raw angle and timestamp are refreshed. With it,
    the angular velocity (deg/s) and the displayed angle are both smoothed over
    their trailing histories.

    Args:
        keypoints: Keypoints of the current frame
        joint_name: Joint to measure (e.g. "right_knee")
        state: Previous state or None
        timestamp: Frame timestamp in milliseconds
        invert: Use the flexion convention (180 - angle)
        velocity_history_size: Trailing window for angular velocity
        angle_history_size: Trailing window for the displayed angle
        with_velocity: Track angular velocity and the smoothed angle

    Returns:
        JointAngleState
    """
    joint_keypoints = get_joint_keypoints(joint_name, keypoints)
    if joint_keypoints is None:
        if state is not None:
            return state
        return JointAngleState(angle=0.0, last_timestamp=timestamp)

    angle_now = calculate_joint_angle(*joint_keypoints, invert=invert)

    if state is None:
        return JointAngleState(angle=angle_now, last_timestamp=timestamp,
                               smoothed_angle=angle_now)

    if not with_velocity:
        return JointAngleState(
            angle=angle_now,
            last_timestamp=timestamp,
            angular_velocity=state.angular_velocity,
            angular_velocity_history=state.angular_velocity_history,
            angle_history=state.angle_history,
            smoothed_angle=angle_now,
        )

    delta_time = (timestamp - state.last_timestamp) / 1000.0
    angular_velocity = 0.0
    if delta_time > 0:
        angular_velocity = (angle_now - state.angle) / delta_time

    smoothed_velocity, velocity_history = smooth(
        state.angular_velocity_history, angular_velocity, velocity_history_size
    )
    smoothed_angle, angle_history = smooth(
        state.angle_history, angle_now, angle_history_size
    )

    return JointAngleState(
        angle=angle_now,
        last_timestamp=timestamp,
        angular_velocity=smoothed_velocity,
        angular_velocity_history=tuple(velocity_history),
        angle_history=tuple(angle_history),
        smoothed_angle=smoothed_angle,
    )
