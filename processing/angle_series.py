"""
Shared point and series types for the kinematics core.
Builds the valid-angle series of one joint from recorded video frames.
"""
import math
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Sequence

from .series_smoother import centered_moving_average


# Keypoint names as produced by the pose model
LEFT_SHOULDER = "left_shoulder"
RIGHT_SHOULDER = "right_shoulder"
LEFT_ELBOW = "left_elbow"
RIGHT_ELBOW = "right_elbow"
LEFT_WRIST = "left_wrist"
RIGHT_WRIST = "right_wrist"
LEFT_HIP = "left_hip"
RIGHT_HIP = "right_hip"
LEFT_KNEE = "left_knee"
RIGHT_KNEE = "right_knee"
LEFT_ANKLE = "left_ankle"
RIGHT_ANKLE = "right_ankle"

KEYPOINT_NAMES = [
    LEFT_SHOULDER, RIGHT_SHOULDER,
    LEFT_ELBOW, RIGHT_ELBOW,
    LEFT_WRIST, RIGHT_WRIST,
    LEFT_HIP, RIGHT_HIP,
    LEFT_KNEE, RIGHT_KNEE,
    LEFT_ANKLE, RIGHT_ANKLE,
]


@dataclass(frozen=True)
class Keypoint:
    name: str
    x: float
    y: float
    score: Optional[float] = None


@dataclass(frozen=True)
class ChartPoint:
    x: float
    y: float


@dataclass(frozen=True)
class AnglePoint:
    """One sample of a joint-angle series.

    index is the frame position in the recording, video_time its timestamp.
    """
    index: int
    angle: float
    y_value: Optional[float]
    video_time: float


@dataclass
class VideoFrame:
    """Per-frame pose record handed over by the inference layer."""
    video_time: float
    keypoints: List[Keypoint] = field(default_factory=list)
    joint_data: Dict[str, dict] = field(default_factory=dict)

    def get_keypoint(self, name: str) -> Optional[Keypoint]:
        for kp in self.keypoints:
            if kp.name == name:
                return kp
        return None

    def get_angle(self, joint_name: str) -> Optional[float]:
        data = self.joint_data.get(joint_name)
        if not data:
            return None
        angle = data.get("angle")
        if angle is None or (isinstance(angle, float) and math.isnan(angle)):
            return None
        return float(angle)


def resolve_joint_name(side: str = "right", joint: str = "knee") -> str:
    """Map a (side, joint) selection to the keypoint name tracked by the detector."""
    if side not in ("left", "right"):
        raise ValueError(f"Unknown side: {side}")
    if joint not in ("knee", "hip"):
        raise ValueError(f"Unknown joint: {joint}")
    if joint == "hip":
        return RIGHT_HIP if side == "right" else LEFT_HIP
    return RIGHT_KNEE if side == "right" else LEFT_KNEE


def build_angle_series(frames: Sequence[VideoFrame], joint_name: str) -> List[AnglePoint]:
    """
    Extract the valid-angle series of one joint.

    Frames without an angle for the joint are dropped; the remaining points keep
    the position of their frame in the recording as index.

    Args:
        frames: Time-ordered video frames
        joint_name: Keypoint name of the joint (e.g. "right_knee")

    Returns:
        list: AnglePoint series, possibly empty
    """
    series = []
    for i, frame in enumerate(frames):
        angle = frame.get_angle(joint_name)
        if angle is None:
            continue
        kp = frame.get_keypoint(joint_name)
        series.append(AnglePoint(
            index=i,
            angle=angle,
            y_value=kp.y if kp is not None else None,
            video_time=frame.video_time,
        ))
    return series


def smooth_angle_series(points: Sequence[AnglePoint], window: int) -> List[AnglePoint]:
    """
    Centered sliding-average smoothing of an angle series.

    Index and video_time of every point are preserved; angle and y_value are
    replaced by the means over the window around the point.
    """
    if not points:
        return []

    angles = centered_moving_average([p.angle for p in points], window)

    n = len(points)
    half_before = window // 2
    half_after = math.ceil(window / 2)
    smoothed = []
    for i, p in enumerate(points):
        start = max(0, i - half_before)
        end = min(n, i + half_after)
        y_values = [q.y_value for q in points[start:end] if q.y_value is not None]
        y_avg = sum(y_values) / len(y_values) if y_values else None
        smoothed.append(replace(p, angle=float(angles[i]), y_value=y_avg))
    return smoothed
