"""
Shared helpers for building synthetic pose and motion recordings.
"""
import math

import pytest

from processing.angle_series import AnglePoint, Keypoint, VideoFrame
from processing.balance_stats import MotionSample, Vector3


FPS = 30.0


def squat_jump_angles():
    """
    Knee flexion of one countermovement jump, one value per frame.

    Standing at 10 deg, crouch to 90 deg, extension into flight down to 2 deg,
    landing and cushioning back to 86 deg, then standing again.
    """
    angles = [10.0] * 10
    angles += [20.0 + 10.0 * k for k in range(8)]     # 20 .. 90 (crouch)
    angles += [78.0 - 12.0 * k for k in range(7)]     # 78 .. 6 (push-off)
    angles += [2.0, 6.0]                              # flight
    angles += [16.0 + 10.0 * k for k in range(8)]     # 16 .. 86 (landing)
    angles += [74.0 - 12.0 * k for k in range(6)]     # 74 .. 14 (recovery)
    angles += [10.0] * 10
    return angles


def shallow_bend_angles():
    """A knee bend that never reaches a jump-deep crouch (peaks at 40 deg)."""
    angles = [10.0] * 10
    angles += [15.0, 20.0, 25.0, 30.0, 35.0, 40.0]
    angles += [32.0, 24.0, 16.0, 8.0, 4.0]
    angles += [8.0, 16.0, 24.0, 32.0, 40.0]
    angles += [30.0, 20.0]
    angles += [10.0] * 10
    return angles


def angle_points(angles, fps=FPS):
    return [
        AnglePoint(index=i, angle=float(a), y_value=None, video_time=i / fps)
        for i, a in enumerate(angles)
    ]


def frames_from_angles(angles, joint_name="right_knee", fps=FPS, missing=()):
    """VideoFrames carrying the given joint angle; indices in `missing` have no angle."""
    frames = []
    for i, a in enumerate(angles):
        joint_data = {} if i in missing else {joint_name: {"angle": float(a)}}
        frames.append(VideoFrame(video_time=i / fps, keypoints=[], joint_data=joint_data))
    return frames


def leg_keypoints(flexion, side="right", thigh=100.0, shin=100.0, origin=(200.0, 100.0)):
    """
    Hip, knee and ankle keypoints of a leg bent to `flexion` degrees at the knee.

    The thigh hangs straight down from the hip; the shin is rotated by the flexion.
    """
    hip_x, hip_y = origin
    knee = (hip_x, hip_y + thigh)
    theta = math.radians(flexion)
    ankle = (knee[0] - shin * math.sin(theta), knee[1] + shin * math.cos(theta))
    return [
        Keypoint(name=f"{side}_hip", x=hip_x, y=hip_y, score=0.9),
        Keypoint(name=f"{side}_knee", x=knee[0], y=knee[1], score=0.9),
        Keypoint(name=f"{side}_ankle", x=ankle[0], y=ankle[1], score=0.9),
    ]


def motion_sample(timestamp, ml=0.0, ap=0.0, gravity_x=9.81, interval=1000.0 / 60):
    """Landscape-held device sample with the given sway accelerations."""
    acceleration = Vector3(x=0.0, y=ml, z=ap)
    return MotionSample(
        timestamp=timestamp,
        interval=interval,
        acceleration=acceleration,
        acceleration_including_gravity=Vector3(x=gravity_x, y=ml, z=ap),
    )


@pytest.fixture
def squat_frames():
    return frames_from_angles(squat_jump_angles())
