"""
Jump phase segmentation of a joint flexion series.
Locates flight-apex candidates (local flexion minima) and grows each one outward
to the impulse, takeoff, landing and cushion points.
"""
import logging
from dataclasses import asdict, dataclass
from typing import List, Optional, Sequence

from .angle_series import AnglePoint, build_angle_series, resolve_joint_name, smooth_angle_series
import config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JumpDetectionSettings:
    """Tunable thresholds of the jump detector (flexion degrees unless noted)."""
    side: str = config.JUMP_SIDE
    joint: str = config.JUMP_JOINT
    min_jump_trending_flexion: float = config.MIN_JUMP_TRENDING_FLEXION
    min_flight_trending_flexion: float = config.MIN_FLIGHT_TRENDING_FLEXION
    min_flight_flexion: float = config.MIN_FLIGHT_FLEXION
    min_single_step_flexion: float = config.MIN_SINGLE_STEP_FLEXION
    max_landing_flexion: float = config.MAX_LANDING_FLEXION
    min_flexion_before_jump: float = config.MIN_FLEXION_BEFORE_JUMP
    min_flexion_after_landing: float = config.MIN_FLEXION_AFTER_LANDING
    sliding_avg_window: int = config.SLIDING_AVG_WINDOW
    search_window: int = config.SEARCH_WINDOW  # samples
    trend_window: int = config.TREND_WINDOW    # samples

    def validate(self):
        """Raise ValueError listing every invalid setting."""
        errors = []
        if self.side not in ("left", "right"):
            errors.append(f"side must be 'left' or 'right', got {self.side!r}")
        if self.joint not in ("knee", "hip"):
            errors.append(f"joint must be 'knee' or 'hip', got {self.joint!r}")
        if self.sliding_avg_window <= 0:
            errors.append("sliding_avg_window must be positive.")
        if self.search_window <= 0:
            errors.append("search_window must be positive.")
        if self.trend_window <= 0:
            errors.append("trend_window must be positive.")
        for name in ("min_jump_trending_flexion", "min_flight_trending_flexion",
                     "min_single_step_flexion", "max_landing_flexion"):
            if getattr(self, name) < 0:
                errors.append(f"{name} must not be negative.")
        if errors:
            raise ValueError("; ".join(errors))
        return self

    def to_dict(self):
        return asdict(self)


@dataclass(frozen=True)
class JumpEvent:
    """Characteristic points of one detected jump. Read-only once emitted."""
    impulse_point: AnglePoint
    takeoff_point: AnglePoint
    landing_point: AnglePoint
    cushion_point: AnglePoint
    apex_point: AnglePoint


def _is_decreasing(points: Sequence[AnglePoint]) -> bool:
    return len(points) >= 2 and all(
        points[k + 1].angle < points[k].angle for k in range(len(points) - 1)
    )


def _is_increasing(points: Sequence[AnglePoint]) -> bool:
    return len(points) >= 2 and all(
        points[k + 1].angle > points[k].angle for k in range(len(points) - 1)
    )


def find_impulse_point(pre_window: Sequence[AnglePoint], trend_window: int,
                       apex: Optional[AnglePoint] = None) -> Optional[AnglePoint]:
    """
    Backward trend search for the start of the decline into flight.

    Walks back from the sample next to the apex while the flexion keeps growing
    (going backward). The point where it stops is the crouch peak; it is only
    accepted if at least `trend_window` consecutive decreasing steps lead from it
    to the apex.

    Args:
        pre_window: Samples immediately before the apex, time-ordered
        trend_window: Minimum number of decreasing steps
        apex: Apex sample; its step from the last pre-window sample is counted

    Returns:
        AnglePoint or None if no sustained decline exists
    """
    if not pre_window:
        return None

    steps = 0
    if apex is not None:
        if apex.angle >= pre_window[-1].angle:
            return None
        steps = 1

    j = len(pre_window) - 1
    while j > 0 and pre_window[j - 1].angle > pre_window[j].angle:
        j -= 1
        steps += 1

    if steps < trend_window:
        return None
    return pre_window[j]


def find_cushion_point(post_window: Sequence[AnglePoint], trend_window: int,
                       apex: Optional[AnglePoint] = None) -> Optional[AnglePoint]:
    """
    Forward trend search for the recovery peak after landing.

    Walks forward from the sample after the apex while the flexion keeps growing
    and returns the point where it plateaus or reverses (or the last sample of
    the window), provided at least `trend_window` consecutive increasing steps
    lead to it.
    """
    if not post_window:
        return None

    steps = 0
    if apex is not None:
        if post_window[0].angle <= apex.angle:
            return None
        steps = 1

    j = 0
    while j < len(post_window) - 1 and post_window[j + 1].angle > post_window[j].angle:
        j += 1
        steps += 1

    if steps < trend_window:
        return None
    return post_window[j]


def find_takeoff_point(from_impulse_to_apex: Sequence[AnglePoint], trend_window: int,
                       min_flight_flexion: float, min_flight_trending_flexion: float,
                       reference_angle: float,
                       apex: Optional[AnglePoint] = None) -> Optional[AnglePoint]:
    """
    Last ground-contact sample before flight.

    Scans forward from the sample after the impulse and keeps the last sample that is still at or
    above `min_flight_flexion`, already `min_flight_trending_flexion` below the
    impulse angle, and followed by a decrease over the next `trend_window` steps
    (bounded by the apex).

    Args:
        from_impulse_to_apex: Samples from the impulse point up to, not including, the apex
        trend_window: Lookahead steps that must keep decreasing
        min_flight_flexion: Flexion below which the feet are considered airborne
        min_flight_trending_flexion: Required drop from the impulse angle
        reference_angle: Impulse angle
        apex: Apex sample, used as the end of the lookahead

    Returns:
        AnglePoint or None
    """
    series = list(from_impulse_to_apex)
    if apex is not None:
        series.append(apex)
    n_candidates = len(from_impulse_to_apex)

    takeoff = None
    # j = 0 is the impulse itself
    for j in range(1, n_candidates):
        p = series[j]
        if p.angle < min_flight_flexion:
            continue
        if reference_angle - p.angle < min_flight_trending_flexion:
            continue
        lookahead = series[j:min(j + trend_window, len(series) - 1) + 1]
        if _is_decreasing(lookahead):
            takeoff = p
    return takeoff


def find_landing_point(from_apex_to_cushion: Sequence[AnglePoint], trend_window: int,
                       min_flight_flexion: float, min_flight_trending_flexion: float,
                       reference_angle: float, min_single_step_flexion: float,
                       max_landing_flexion: float,
                       cushion: Optional[AnglePoint] = None) -> Optional[AnglePoint]:
    """
    First ground-contact sample after flight.

    Scans forward from the sample after the apex and returns the first sample
    that is back at or above `min_flight_flexion`, at least
    `min_single_step_flexion` above the apex angle, at most `max_landing_flexion`
    above `min_flight_flexion`, still `min_flight_trending_flexion` short of the
    cushion angle, and followed by an increase over the next `trend_window`
    steps (bounded by the cushion).

    Args:
        from_apex_to_cushion: Samples after the apex up to, not including, the cushion
        reference_angle: Apex angle
        cushion: Cushion sample, used as the end of the lookahead and for the
            remaining-absorption gate

    Returns:
        AnglePoint or None
    """
    series = list(from_apex_to_cushion)
    if cushion is not None:
        series.append(cushion)
    n_candidates = len(from_apex_to_cushion)

    for j in range(n_candidates):
        p = series[j]
        if p.angle < min_flight_flexion:
            continue
        if p.angle - reference_angle < min_single_step_flexion:
            continue
        if p.angle > min_flight_flexion + max_landing_flexion:
            continue
        if cushion is not None and cushion.angle - p.angle < min_flight_trending_flexion:
            continue
        lookahead = series[j:min(j + trend_window, len(series) - 1) + 1]
        if _is_increasing(lookahead):
            return p
    return None


def detect_jumps(smoothed: Sequence[AnglePoint],
                 settings: JumpDetectionSettings = JumpDetectionSettings(),
                 valid_angles: Optional[Sequence[AnglePoint]] = None) -> List[JumpEvent]:
    """
    Segment jumps in an already smoothed flexion series.

    Apex, impulse, cushion and takeoff come from the smoothed series. Landing is
    searched on the unsmoothed valid angles so the first frame of ground contact
    is not blurred into the flight phase.

    Args:
        smoothed: Time-ordered smoothed AnglePoint series of one joint
        settings: Detection thresholds (validated by the caller)
        valid_angles: Unsmoothed series the smoothed one was built from, same
            length and order (defaults to `smoothed`)

    Returns:
        list: JumpEvents ordered by apex, non-overlapping
    """
    if valid_angles is None:
        valid_angles = smoothed
    elif len(valid_angles) != len(smoothed):
        raise ValueError("valid_angles and smoothed must have the same length")

    results = []
    search_window = settings.search_window
    trend_window = settings.trend_window

    i = 1
    while i < len(smoothed) - 1:
        prev = smoothed[i - 1].angle
        curr = smoothed[i].angle
        nxt = smoothed[i + 1].angle

        if not (curr < settings.min_flight_flexion and curr < prev and curr < nxt):
            i += 1
            continue

        apex = smoothed[i]
        pre_window = smoothed[max(0, i - search_window):i]
        post_window = smoothed[i + 1:i + 1 + search_window]

        impulse_point = find_impulse_point(pre_window, trend_window, apex=apex)
        if impulse_point is None:
            i += 1
            continue

        cushion_point = find_cushion_point(post_window, trend_window, apex=apex)
        if cushion_point is None:
            i += 1
            continue

        impulse_pos = i - len(pre_window) + pre_window.index(impulse_point)
        cushion_pos = i + 1 + post_window.index(cushion_point)

        takeoff_point = find_takeoff_point(
            smoothed[impulse_pos:i],
            trend_window,
            settings.min_flight_flexion,
            settings.min_flight_trending_flexion,
            impulse_point.angle,
            apex=apex,
        )
        if takeoff_point is None:
            i += 1
            continue

        landing_point = find_landing_point(
            valid_angles[i + 1:cushion_pos],
            trend_window,
            settings.min_flight_flexion,
            settings.min_flight_trending_flexion,
            curr,
            settings.min_single_step_flexion,
            settings.max_landing_flexion,
            cushion=cushion_point,
        )
        if landing_point is None:
            i += 1
            continue

        angle_change = abs(impulse_point.angle - curr)
        if (impulse_point.angle >= settings.min_flexion_before_jump
                and cushion_point.angle >= settings.min_flexion_after_landing
                and angle_change >= settings.min_jump_trending_flexion):
            results.append(JumpEvent(
                impulse_point=impulse_point,
                takeoff_point=takeoff_point,
                landing_point=landing_point,
                cushion_point=cushion_point,
                apex_point=apex,
            ))
            logger.debug("Jump accepted at frame %d (apex %.1f deg)", apex.index, curr)
            i += search_window
        i += 1

    return results


class JumpPhaseDetector:
    """
    Batch jump detector for one joint and side.
    Runs over a whole recording; holds only its settings, so repeated runs on the
    same frames return equal results.
    """

    def __init__(self, settings: JumpDetectionSettings = None):
        """
        Initialize jump detector.

        Args:
            settings: JumpDetectionSettings (defaults from config)
        """
        self.settings = settings if settings is not None else JumpDetectionSettings()

    @property
    def joint_name(self):
        return resolve_joint_name(self.settings.side, self.settings.joint)

    def smoothed_series(self, frames):
        """Valid-angle series of the configured joint after centered smoothing."""
        valid_angles = build_angle_series(frames, self.joint_name)
        return smooth_angle_series(valid_angles, self.settings.sliding_avg_window)

    def detect(self, frames):
        """
        Detect jumps in a sequence of video frames.

        Returns:
            list: JumpEvents, empty when the joint has no valid angles
        """
        if not frames:
            return []
        valid_angles = build_angle_series(frames, self.joint_name)
        if len(valid_angles) < 3:
            return []
        smoothed = smooth_angle_series(valid_angles, self.settings.sliding_avg_window)
        jumps = detect_jumps(smoothed, self.settings, valid_angles)
        logger.info("Detected %d jump(s) on %s over %d frames",
                    len(jumps), self.joint_name, len(frames))
        return jumps

    def detect_series(self, points):
        """Detect jumps in a raw (unsmoothed) AnglePoint series."""
        smoothed = smooth_angle_series(points, self.settings.sliding_avg_window)
        return detect_jumps(smoothed, self.settings, points)
