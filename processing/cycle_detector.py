"""
Live repetition counting on a force signal.

A cycle is counted each time the force leaves a hysteresis band centred on the
midpoint of the recent range and comes back to the side it started on. The
last cycles also feed a fatigue check built on amplitude, duration trend,
speed, variability and peak drop.
"""
import logging
from collections import deque
from dataclasses import dataclass

import numpy as np
from PyQt6.QtCore import QObject, pyqtSignal

import config

logger = logging.getLogger(__name__)

ABOVE = "above"
BELOW = "below"
WITHIN = "within"


@dataclass(frozen=True)
class ForceSettings:
    moving_average_window: float = config.FORCE_MOVING_AVERAGE_WINDOW_MS  # ms
    min_avg_amplitude: float = config.FORCE_MIN_AVG_AMPLITUDE  # kg
    peak_drop_threshold: float = config.FORCE_PEAK_DROP_THRESHOLD
    cycles_to_average: int = config.FORCE_CYCLES_TO_AVERAGE
    hysteresis: float = config.FORCE_HYSTERESIS  # kg
    duration_change_threshold: float = config.FORCE_DURATION_CHANGE_THRESHOLD
    velocity_drop_threshold: float = config.FORCE_VELOCITY_DROP_THRESHOLD
    variability_threshold: float = config.FORCE_VARIABILITY_THRESHOLD
    outlier_sensitivity: float = config.FORCE_OUTLIER_SENSITIVITY

    def validate(self):
        errors = []
        if self.moving_average_window <= 0:
            errors.append("moving_average_window must be positive.")
        if self.cycles_to_average < 1:
            errors.append("cycles_to_average must be at least 1.")
        if self.hysteresis < 0:
            errors.append("hysteresis must not be negative.")
        if not 0 <= self.peak_drop_threshold <= 1:
            errors.append("peak_drop_threshold must be between 0 and 1.")
        if self.outlier_sensitivity <= 0:
            errors.append("outlier_sensitivity must be positive.")
        if errors:
            raise ValueError("; ".join(errors))
        return self


@dataclass(frozen=True)
class CycleMetric:
    amplitude: float  # kg
    duration: float   # ms
    timestamp: float  # ms, end of the cycle


class CycleDetector(QObject):
    """
    Counts force cycles sample by sample.
    Emits every completed cycle and the fatigue status that follows it.
    """

    cycle_detected_signal = pyqtSignal(object)  # CycleMetric
    fatigue_signal = pyqtSignal(dict)

    def __init__(self, settings: ForceSettings = None, work_load=None):
        """
        Initialize cycle detector.

        Args:
            settings: ForceSettings (defaults from config)
            work_load: Load moved per repetition (kg); normalises amplitudes
                and speeds when positive
        """
        super().__init__()
        self.settings = (settings if settings is not None else ForceSettings()).validate()
        self.work_load = work_load
        self.reset()

    def reset(self):
        """Forget all samples and cycles."""
        self._window = deque()  # (time_ms, force) within the moving window
        self.peak = 0.0
        self.recent_average = 0.0
        self.recent_peak = 0.0

        self.cycle_count = 0
        self.cycle_duration = None
        self.cycle_amplitude = None
        self.cycle_metrics = deque(maxlen=config.CYCLE_METRICS_KEPT)
        self._durations = deque(maxlen=self.settings.cycles_to_average)
        self._initial_velocity = None

        self._cycle_start = None
        self._last_extreme = None
        self._cycle_start_time = None
        self._extremes = None  # [min, max] while outside the band

    @property
    def _scale(self):
        return self.work_load if (self.work_load or 0) > 0 else 1.0

    def _update_window(self, time_ms, force):
        self._window.append((time_ms, force))
        window_start = time_ms - self.settings.moving_average_window
        while self._window[0][0] < window_start:
            self._window.popleft()
        values = [f for _, f in self._window]
        self.recent_peak = max(values)
        self.recent_average = (self.recent_peak + min(values)) / 2

    def classify(self, force):
        """Position of a reading relative to the hysteresis band."""
        if force >= self.recent_average + self.settings.hysteresis:
            return ABOVE
        if force <= self.recent_average - self.settings.hysteresis:
            return BELOW
        return WITHIN

    def process_sample(self, time_ms, force):
        """
        Feed one force reading.

        Returns:
            CycleMetric when the reading completes a cycle, otherwise None
        """
        self.peak = force if not self._window else max(self.peak, force)
        self._update_window(time_ms, force)

        extreme = self.classify(force)
        if extreme == WITHIN:
            return None

        if self._extremes is None:
            self._extremes = [force, force]
        else:
            self._extremes[0] = min(self._extremes[0], force)
            self._extremes[1] = max(self._extremes[1], force)

        if self._cycle_start is None:
            self._cycle_start = extreme
            self._last_extreme = extreme
            self._cycle_start_time = time_ms
            return None

        if extreme == self._last_extreme:
            return None
        self._last_extreme = extreme
        if extreme != self._cycle_start:
            return None

        metric = CycleMetric(
            amplitude=self._extremes[1] - self._extremes[0],
            duration=time_ms - self._cycle_start_time,
            timestamp=time_ms,
        )
        self._record_cycle(metric)
        self._cycle_start_time = time_ms
        self._extremes = None

        logger.debug("Cycle %d: %.2f kg over %.0f ms", self.cycle_count,
                     metric.amplitude, metric.duration)
        self.cycle_detected_signal.emit(metric)
        self.fatigue_signal.emit(self.detect_fatigue())
        return metric

    def _record_cycle(self, metric):
        self.cycle_count += 1
        self.cycle_amplitude = metric.amplitude
        self.cycle_duration = metric.duration
        self.cycle_metrics.append(metric)
        self._durations.append(metric.duration)

        n = self.settings.cycles_to_average
        if self._initial_velocity is None and len(self.cycle_metrics) >= n:
            velocities = self._velocities(list(self.cycle_metrics)[:n])
            self._initial_velocity = float(np.mean(velocities)) if velocities else 0.0

    def _velocities(self, metrics):
        """Cycle speeds in kg/ms (normalised by the work load), finite values only."""
        velocities = []
        for m in metrics:
            if m.duration > 0:
                velocities.append((m.amplitude / m.duration) / self._scale)
        return [v for v in velocities if np.isfinite(v)]

    def aggregated_metrics(self):
        """Average amplitude and duration of the last `cycles_to_average` cycles."""
        if not self.cycle_metrics:
            return None
        recent = list(self.cycle_metrics)[-self.settings.cycles_to_average:]
        return {
            "avg_amplitude": float(np.mean([m.amplitude for m in recent])),
            "avg_duration": float(np.mean([m.duration for m in recent])),
            "count": len(recent),
        }

    def detect_fatigue(self):
        """
        Fatigue status from the recent cycles.

        Returns:
            dict: is_fatigued (two or more reasons) and the list of reasons
        """
        aggregated = self.aggregated_metrics()
        if aggregated is None:
            return {"is_fatigued": False, "reasons": []}

        settings = self.settings
        recent = list(self.cycle_metrics)[-settings.cycles_to_average:]

        durations = list(self._durations)
        change_rate = 0.0
        if len(durations) >= 2:
            changes = [(durations[i] - durations[i - 1]) / durations[i - 1]
                       for i in range(1, len(durations)) if durations[i - 1] > 0]
            change_rate = float(np.mean(changes)) if changes else 0.0

        velocities = self._velocities(recent)
        avg_velocity = float(np.mean(velocities)) if velocities else 0.0
        amplitudes = np.array([m.amplitude / self._scale for m in recent])

        reasons = []
        if aggregated["avg_amplitude"] / self._scale < settings.min_avg_amplitude:
            reasons.append("amplitude")
        if change_rate > settings.duration_change_threshold:
            reasons.append("cycle_duration")
        if self.recent_peak / self._scale < self.peak * settings.peak_drop_threshold:
            reasons.append("peak_force")
        if (self._initial_velocity is not None
                and avg_velocity < self._initial_velocity * settings.velocity_drop_threshold):
            reasons.append("velocity")
        if float(np.var(amplitudes)) > settings.variability_threshold:
            reasons.append("variability")

        return {"is_fatigued": len(reasons) >= 2, "reasons": reasons}
