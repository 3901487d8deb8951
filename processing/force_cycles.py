"""
Post-session analysis of a force recording.

Time is in ms and force in kg throughout. The recording is split at its
crossings of a reference line (the "crossing line"); the excursions between
crossings become peaks and valleys, and repetitions are measured valley to
valley. Also computes the rate of force development (RFD) over a range.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

import config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BaselineCrossSegment:
    """Excursion of the signal between two consecutive crossings."""
    start_x: float
    end_x: float
    peak_x: float
    peak_y: float
    is_valley: bool


@dataclass
class ForceCycle:
    start_x: float
    end_x: float
    peak_x: float
    peak_y: float
    min_x: float
    min_y: float
    duration: float   # ms
    amplitude: float  # kg
    speed_ratio: float  # kg/s per kg of work load
    work_load: Optional[float] = None
    relative_speed_ratio: Optional[float] = None


@dataclass(frozen=True)
class RFDResult:
    rfd: float        # kg/s, or N/s when are_newtons
    start: float      # ms
    end: float        # ms
    subrange_x: np.ndarray  # ms
    subrange_y: np.ndarray
    are_newtons: bool


def _as_arrays(x, y):
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    if x.shape != y.shape:
        raise ValueError("x and y must have the same length")
    return x, y


def find_baseline_crossings(x, y, baseline=0.0):
    """
    Times at which the signal crosses `baseline`, linearly interpolated.

    A touch of the baseline counts as a crossing only when arriving from the
    other side.
    """
    x, y = _as_arrays(x, y)
    if len(y) < 2:
        return np.array([])
    prev, curr = y[:-1], y[1:]
    mask = ((prev < baseline) & (curr >= baseline)) | ((prev > baseline) & (curr <= baseline))
    idx = np.nonzero(mask)[0]
    t = (baseline - prev[idx]) / (curr[idx] - prev[idx])
    return x[idx] + t * (x[idx + 1] - x[idx])


def _merge_same_kind(segments, baseline):
    """Join consecutive peaks (or valleys), keeping the larger excursion from the baseline."""
    merged = []
    for segment in segments:
        if merged and merged[-1].is_valley == segment.is_valley:
            current = merged[-1]
            keep = current if abs(current.peak_y - baseline) > abs(segment.peak_y - baseline) else segment
            merged[-1] = BaselineCrossSegment(
                start_x=min(current.start_x, segment.start_x),
                end_x=max(current.end_x, segment.end_x),
                peak_x=keep.peak_x,
                peak_y=keep.peak_y,
                is_valley=current.is_valley,
            )
        else:
            merged.append(segment)
    return merged


def find_baseline_segments(x, y, baseline=0.0,
                           min_duration=config.MIN_SEGMENT_DURATION_MS,
                           min_deviation=config.MIN_SEGMENT_DEVIATION) -> List[BaselineCrossSegment]:
    """
    Peaks and valleys between consecutive baseline crossings.

    Segments shorter than `min_duration` or whose extreme stays within
    `min_deviation` of the baseline are dropped; what remains is merged so
    peaks and valleys alternate.
    """
    x, y = _as_arrays(x, y)
    crossings = find_baseline_crossings(x, y, baseline)

    segments = []
    for start_x, end_x in zip(crossings[:-1], crossings[1:]):
        inside = np.nonzero((x >= start_x) & (x <= end_x))[0]
        if len(inside) == 0:
            continue
        k = inside[np.argmax(np.abs(y[inside] - baseline))]
        if end_x - start_x < min_duration:
            continue
        if abs(y[k] - baseline) < min_deviation:
            continue
        segments.append(BaselineCrossSegment(
            start_x=float(start_x),
            end_x=float(end_x),
            peak_x=float(x[k]),
            peak_y=float(y[k]),
            is_valley=bool(y[k] < baseline),
        ))
    return _merge_same_kind(segments, baseline)


def _stable_run_index(y, from_index, direction, threshold=0.01, window_size=5):
    """Index bounding the nearest run of `window_size` steps that each change less than `threshold`."""
    dy = np.abs(np.diff(y))

    def is_flat(index):
        if index < 1 or index + window_size - 1 > len(dy):
            return False
        return bool(np.all(dy[index - 1:index + window_size - 1] < threshold))

    if direction == "backward":
        for i in range(from_index, window_size - 1, -1):
            if is_flat(i - window_size):
                return i - window_size
    else:
        for i in range(from_index, len(y) - window_size):
            if is_flat(i):
                return i + window_size
    return None


def find_best_stable_region(y, from_index, direction, baseline, max_window_size=30, threshold=0.01):
    """
    Widest flat run found from `from_index` in `direction`.

    Backward searches only accept runs below the baseline (the rest before the
    first repetition).
    """
    best = None
    for window_size in range(5, max_window_size + 1, 5):
        index = _stable_run_index(y, from_index, direction, threshold, window_size)
        if index is not None and (direction == "forward" or y[index] < baseline):
            best = index
    return best


def _safe_extended_start(x, y, peak_index, previous_end_x, dy_threshold=0.01, max_lookback=100):
    """Earliest flat sample before a valley that stays after the previous cycle."""
    if peak_index <= 0:
        return float(x[peak_index])
    peak_x = x[peak_index]
    for j in range(peak_index, 0, -1):
        if abs(peak_x - x[j]) > max_lookback:
            break
        if previous_end_x is not None and x[j] < previous_end_x:
            continue
        if abs(y[j] - y[j - 1]) < dy_threshold:
            return float(x[j])
    return float(peak_x)


def _safe_extended_end(x, y, peak_index, next_start_x, dy_threshold=0.01, max_lookahead=100):
    """First flat sample after a valley that stays before the next cycle."""
    peak_x = x[peak_index]
    for j in range(peak_index, len(x) - 1):
        if abs(x[j + 1] - peak_x) > max_lookahead:
            break
        if next_start_x is not None and x[j + 1] > next_start_x:
            continue
        if abs(y[j + 1] - y[j]) < dy_threshold:
            return float(x[j + 1])
    return float(peak_x)


def _extremes(x, y, lo, hi):
    """(max_x, max_y, min_x, min_y) of the samples with lo <= x <= hi, or None."""
    inside = np.nonzero((x >= lo) & (x <= hi))[0]
    if len(inside) == 0:
        return None
    k_max = inside[np.argmax(y[inside])]
    k_min = inside[np.argmin(y[inside])]
    return float(x[k_max]), float(y[k_max]), float(x[k_min]), float(y[k_min])


def _speed_ratio(amplitude, duration, work_load):
    if duration <= 0:
        return float("nan")
    return (amplitude / (duration / 1000.0)) / (work_load or 1.0)


def _cycle(start_x, end_x, extremes, duration, work_load, min_override=None):
    peak_x, peak_y, min_x, min_y = extremes
    if min_override is not None:
        min_x, min_y = min_override
    amplitude = peak_y - min_y
    return ForceCycle(
        start_x=float(start_x),
        end_x=float(end_x),
        peak_x=peak_x,
        peak_y=peak_y,
        min_x=min_x,
        min_y=min_y,
        duration=float(duration),
        amplitude=amplitude,
        speed_ratio=_speed_ratio(amplitude, duration, work_load),
        work_load=work_load,
    )


def _remeasure(cycle, x, y):
    extremes = _extremes(x, y, cycle.start_x, cycle.end_x)
    if extremes is None:
        return cycle
    return _cycle(cycle.start_x, cycle.end_x, extremes, cycle.end_x - cycle.start_x, cycle.work_load)


def add_relative_speed(cycles, cycles_to_average=config.FORCE_CYCLES_TO_AVERAGE):
    """
    Set each cycle's speed relative to the reference speed.

    The reference is the mean speed of cycles 2..N+1; the first one is often a
    partial repetition.
    """
    reference = [c.speed_ratio for c in cycles[1:cycles_to_average + 1]
                 if np.isfinite(c.speed_ratio)]
    base_speed = float(np.mean(reference)) if reference else 1.0
    for c in cycles:
        c.relative_speed_ratio = c.speed_ratio / base_speed if base_speed > 0 else 1.0
    return cycles


def adjust_cycles_by_zero_crossing(x, y, baseline=0.0,
                                   cycles_to_average=config.FORCE_CYCLES_TO_AVERAGE,
                                   trim_limits: Optional[Tuple[float, float]] = None,
                                   min_cycle_amplitude=config.MIN_CYCLE_AMPLITUDE,
                                   min_cycle_duration=config.MIN_CYCLE_DURATION_MS,
                                   work_load=None):
    """
    Split a force recording into repetitions bounded by valleys.

    Besides the valley-to-valley cycles, the stretch before the first valley and
    the one after the last valley become cycles of their own, started (or
    ended) at the nearest flat region. A recording with a single excursion and
    no valley yields that excursion as its only cycle.

    Args:
        x: Sample times (ms), increasing
        y: Force (kg)
        baseline: Crossing line
        cycles_to_average: Cycles used as the relative speed reference
        trim_limits: Optional (start, end) times the first and last cycle are
            clipped to
        min_cycle_amplitude: Cycles at or below this amplitude (kg) are dropped
        min_cycle_duration: Cycles at or below this duration (ms) are dropped
        work_load: Load per repetition (kg) used to normalise speed

    Returns:
        tuple: (baseline cross segments, list of ForceCycle)
    """
    x, y = _as_arrays(x, y)
    segments = find_baseline_segments(x, y, baseline)
    valleys = [s for s in segments if s.is_valley]
    valley_indices = [int(np.searchsorted(x, v.peak_x)) for v in valleys]
    cycles = []

    if valleys:
        first, first_index = valleys[0], valley_indices[0]
        left = np.nonzero(x < first.peak_x)[0]
        if len(left):
            from_index = int(left[np.argmax(y[left])])
            stable = find_best_stable_region(y, from_index, "backward", baseline)
            fallback = segments[0].start_x if segments else x[left].min()
            start_x = x[stable] if stable is not None else fallback
            next_start = valleys[1].peak_x if len(valleys) > 1 else None
            end_x = _safe_extended_end(x, y, first_index, next_start)
            extremes = _extremes(x, y, start_x, first.peak_x)
            if extremes is not None:
                cycles.append(_cycle(start_x, end_x, extremes, first.peak_x - start_x, work_load))

    for i in range(len(valleys) - 1):
        start, end = valleys[i], valleys[i + 1]
        previous_end = cycles[-1].end_x if cycles else None
        start_x = _safe_extended_start(x, y, valley_indices[i], previous_end)
        next_start = valleys[i + 2].peak_x if i + 2 < len(valleys) else None
        end_x = _safe_extended_end(x, y, valley_indices[i + 1], next_start)
        extremes = _extremes(x, y, start_x, end_x)
        trough = start if start.peak_y <= end.peak_y else end
        cycles.append(_cycle(start_x, end_x, extremes, end_x - start_x, work_load,
                             min_override=(trough.peak_x, trough.peak_y)))

    if valleys:
        last, last_index = valleys[-1], valley_indices[-1]
        right = np.nonzero(x > last.peak_x)[0]
        if len(right):
            from_index = int(right[np.argmax(y[right])])
            stable = find_best_stable_region(y, from_index, "forward", baseline)
            fallback = segments[-1].end_x if segments else x[right].max()
            end_x = x[stable] if stable is not None and y[stable] < baseline else fallback
            previous_end = cycles[-1].end_x if cycles else None
            start_x = _safe_extended_start(x, y, last_index, previous_end)
            extremes = _extremes(x, y, last.peak_x, end_x)
            if extremes is not None:
                cycles.append(_cycle(start_x, end_x, extremes, end_x - last.peak_x, work_load))

    if not valleys and len(segments) == 1:
        only = segments[0]
        extremes = _extremes(x, y, only.start_x, only.end_x)
        if extremes is not None:
            cycles.append(_cycle(only.start_x, only.end_x, extremes,
                                 only.end_x - only.start_x, work_load))

    if trim_limits and cycles:
        trim_start, trim_end = trim_limits
        first_cycle = cycles[0]
        first_segment = next((s for s in segments if s.start_x >= trim_start), None)
        if first_segment is not None and first_cycle.end_x > trim_start:
            first_cycle.start_x = first_segment.peak_x if first_segment.is_valley else trim_start
            cycles[0] = _remeasure(first_cycle, x, y)

        last_cycle = cycles[-1]
        last_segment = next((s for s in reversed(segments) if s.end_x <= trim_end), None)
        if last_segment is not None and last_cycle.start_x < trim_end:
            last_cycle.end_x = last_segment.peak_x if last_segment.is_valley else trim_end
            cycles[-1] = _remeasure(last_cycle, x, y)

    cycles = [c for c in cycles
              if c.amplitude > min_cycle_amplitude and c.end_x - c.start_x > min_cycle_duration]
    logger.info("Force recording split into %d cycle(s) from %d segment(s)",
                len(cycles), len(segments))
    return segments, add_relative_speed(cycles, cycles_to_average)


def detect_outlier_edges(y, flat_threshold=0.01, min_flat_points=20):
    """
    First and last flat zones of a recording.

    Returns:
        tuple: (index just after the first flat zone, start index of the last
        flat zone); either is None when no flat zone exists
    """
    y = np.asarray(y, dtype=float)
    n = len(y)
    if n < min_flat_points:
        return None, None
    windows = np.lib.stride_tricks.sliding_window_view(y, min_flat_points)
    flat = np.nonzero(np.ptp(windows, axis=1) < flat_threshold)[0]
    if len(flat) == 0:
        return None, None

    # The leading search never considers the window that ends at the last sample
    leading = flat[flat < n - min_flat_points]
    start = int(leading[0]) + min_flat_points if len(leading) else None
    return start, int(flat[-1])


def estimate_crossing_line(y, outlier_sensitivity=config.FORCE_OUTLIER_SENSITIVITY):
    """
    Reference line the repetitions cross.

    Mean of the recording after dropping samples more than
    `outlier_sensitivity` standard deviations from the mean and the flat rest
    zones at either end.
    """
    y = np.asarray(y, dtype=float)
    if len(y) == 0:
        return 0.0
    kept = y[np.abs(y - y.mean()) < outlier_sensitivity * y.std()]
    if len(kept) == 0:
        return float(y.mean())

    start, end = detect_outlier_edges(kept)
    if start is not None or end is not None:
        trimmed = kept[(start or 0):(end + 1 if end is not None else None)]
        if len(trimmed):
            kept = trimmed
    return float(kept.mean())


def calculate_rfd_in_range(x, y, start_x, end_x, convert_to_newtons=False) -> Optional[RFDResult]:
    """
    Rate of force development over the steepest rise within [start_x, end_x].

    The rise is grown backward and forward from the steepest
    `RFD_SLOPE_WINDOW`-sample slope; the RFD is the slope between the samples
    at 20% and 80% of that rise.

    Args:
        x: Sample times (ms)
        y: Force (kg)
        start_x: Range start (ms)
        end_x: Range end (ms)
        convert_to_newtons: Report N/s instead of kg/s

    Returns:
        RFDResult, or None when the range holds no usable rise
    """
    x, y = _as_arrays(x, y)
    inside = (x >= start_x) & (x <= end_x)
    xs = x[inside] / 1000.0
    ys = y[inside]
    if len(xs) < 4:
        return None

    w = config.RFD_SLOPE_WINDOW
    dx = xs[w:] - xs[:-w]
    dy = ys[w:] - ys[:-w]
    if len(dx) == 0:
        return None
    slopes = np.divide(dy, dx, out=np.zeros_like(dy), where=dx != 0)
    peak = int(np.argmax(slopes))
    if slopes[peak] < 0.01:
        return None

    start = peak
    for i in range(peak - 1, 0, -1):
        step_dx = xs[i + 1] - xs[i]
        slope = (ys[i + 1] - ys[i]) / step_dx if step_dx != 0 else 0.0
        if slope < 0.005:
            break
        start = i

    end = peak + w
    for i in range(end + 1, len(ys)):
        if ys[i] < ys[i - 1]:
            break
        end = i

    rise_x = xs[start:end + 1]
    rise_y = ys[start:end + 1]
    if len(rise_y) < 3:
        return None
    min_f, max_f = rise_y[0], rise_y[-1]
    if max_f <= min_f:
        return None

    low = min_f + 0.2 * (max_f - min_f)
    high = min_f + 0.8 * (max_f - min_f)
    keep = (rise_y >= low) & (rise_y <= high)
    sub_x, sub_y = rise_x[keep], rise_y[keep]
    if len(sub_x) < 2 or sub_x[0] == sub_x[-1]:
        return None

    rfd = (sub_y[-1] - sub_y[0]) / (sub_x[-1] - sub_x[0])
    if convert_to_newtons:
        rfd *= config.GRAVITY

    return RFDResult(
        rfd=float(rfd),
        start=float(sub_x[0] * 1000.0),
        end=float(sub_x[-1] * 1000.0),
        subrange_x=sub_x * 1000.0,
        subrange_y=sub_y,
        are_newtons=convert_to_newtons,
    )
