"""
Manages the balance-test calibration state machine.
Handles the orientation check, settling delay, stillness detection and the
sway baseline that is subtracted from every later sample.
"""
import logging
from dataclasses import dataclass

from PyQt6.QtCore import QObject, pyqtSignal

from .balance_stats import StreamingLowPass, calculate_std, get_frequency_features
import config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BalanceSettings:
    calibration_delay: float = config.CALIBRATION_DELAY_MS  # ms
    calibration_points: int = config.CALIBRATION_POINTS
    calibration_std_threshold: float = config.CALIBRATION_STD_THRESHOLD
    calibration_dom_freq_threshold: float = config.CALIBRATION_DOM_FREQ_THRESHOLD
    required_calibration_attempts: int = config.REQUIRED_CALIBRATION_ATTEMPTS
    gravity: float = config.GRAVITY
    gravity_factor: float = config.GRAVITY_FACTOR
    cutoff_frequency: float = config.BALANCE_CUTOFF_FREQUENCY
    test_duration: float = config.BALANCE_TEST_DURATION_S  # s

    def validate(self):
        errors = []
        if self.calibration_delay < 0:
            errors.append("calibration_delay must not be negative.")
        if self.calibration_points < 2:
            errors.append("calibration_points must be at least 2.")
        if self.required_calibration_attempts < 1:
            errors.append("required_calibration_attempts must be at least 1.")
        if self.cutoff_frequency <= 0:
            errors.append("cutoff_frequency must be positive.")
        if errors:
            raise ValueError("; ".join(errors))
        return self


@dataclass(frozen=True)
class CalibratedSample:
    """A motion sample after baseline removal and filtering."""
    timestamp: float
    interval: float
    ml: float           # baseline-corrected Y acceleration
    ap: float           # baseline-corrected Z acceleration
    ml_filtered: float
    ap_filtered: float


class CalibrationManager(QObject):
    """
    Runs the calibration phases of a balance test.
    Emits signals for UI updates; samples accepted after calibration are handed
    back to the caller for analysis.
    """

    # Signals for calibration status updates
    calibration_status_signal = pyqtSignal(str)
    calibration_complete_signal = pyqtSignal(dict)  # std/dominant frequency at rest
    status_signal = pyqtSignal(str)

    # Define test phases as constants for clarity
    PHASE_WAITING_ORIENTATION = 0  # Device not held in landscape
    PHASE_SETTLING = 1             # Waiting out the calibration delay
    PHASE_CALIBRATING = 2          # Collecting a stillness window
    PHASE_READY = 3                # Baseline defined, samples are measured

    def __init__(self, settings: BalanceSettings = None):
        """
        Initialize calibration manager.

        Args:
            settings: BalanceSettings (defaults from config)
        """
        super().__init__()
        self.settings = settings if settings is not None else BalanceSettings()

        self._filter_ml = StreamingLowPass(self.settings.cutoff_frequency)
        self._filter_ap = StreamingLowPass(self.settings.cutoff_frequency)
        self.reset()

    def reset(self):
        """Reset calibration state to initial values."""
        self.test_phase = self.PHASE_WAITING_ORIENTATION
        self.orientation_correct = False
        self.sampling_frequency = None
        self._settling_start_time = None
        self._calibration_buffer = []
        self._window_accepted = False
        self._calibration_attempts = 0
        self._baseline_ml = 0.0
        self._baseline_ap = 0.0
        self._baseline_filtered_ml = 0.0
        self._baseline_filtered_ap = 0.0
        self.calibrated_data = {
            'std_y': None, 'std_z': None,
            'dom_freq_y': None, 'dom_freq_z': None,
        }
        self._filter_ml.reset()
        self._filter_ap.reset()

    def is_device_in_correct_position(self, gravity_x):
        """Landscape check: gravity must point along +X with most of its magnitude."""
        gravity_threshold = self.settings.gravity * self.settings.gravity_factor
        return abs(gravity_x) > gravity_threshold and gravity_x > 0

    def is_ready(self):
        return self.test_phase == self.PHASE_READY

    def process_sample(self, sample):
        """
        Advance the state machine with one motion sample.

        Args:
            sample: MotionSample

        Returns:
            CalibratedSample once calibration is complete, otherwise None
        """
        self.orientation_correct = self.is_device_in_correct_position(sample.gravity.x)
        if not self.orientation_correct:
            if self.test_phase != self.PHASE_WAITING_ORIENTATION:
                logger.info("Device left landscape orientation")
            self.calibration_status_signal.emit("Position error")
            if self.test_phase != self.PHASE_READY:
                self.test_phase = self.PHASE_WAITING_ORIENTATION
            return None

        if self.test_phase == self.PHASE_WAITING_ORIENTATION:
            self.test_phase = self.PHASE_SETTLING

        # STATE: Waiting out the settling delay
        if self.test_phase == self.PHASE_SETTLING:
            if self._settling_start_time is None:
                self._settling_start_time = sample.timestamp
            if sample.timestamp - self._settling_start_time < self.settings.calibration_delay:
                self.calibration_status_signal.emit("Hold still...")
                return None
            self.test_phase = self.PHASE_CALIBRATING
            self.status_signal.emit("Settling complete. Calibrating.")

        if sample.sampling_frequency is not None:
            self.sampling_frequency = sample.sampling_frequency

        calibrated = self._calibrate_sample(sample)

        # STATE: Collecting calibration windows
        if self.test_phase == self.PHASE_CALIBRATING:
            self._calibration_buffer.append(calibrated)
            if self._check_calibration():
                self._define_baseline()
            return None

        return calibrated

    def _calibrate_sample(self, sample):
        ml_filtered = self._filter_ml.filter_sample(
            sample.acceleration.y - self._baseline_filtered_ml, self.sampling_frequency)
        ap_filtered = self._filter_ap.filter_sample(
            sample.acceleration.z - self._baseline_filtered_ap, self.sampling_frequency)
        return CalibratedSample(
            timestamp=sample.timestamp,
            interval=sample.interval,
            ml=sample.acceleration.y - self._baseline_ml,
            ap=sample.acceleration.z - self._baseline_ap,
            ml_filtered=ml_filtered,
            ap_filtered=ap_filtered,
        )

    def _check_calibration(self):
        """
        Evaluate the collected window.

        A window is accepted when the device is still (STD and dominant frequency
        below their thresholds). Every accepted window but the last restarts the
        settling phase, so calibration needs `required_calibration_attempts`
        consecutive still periods.

        Returns:
            bool: True when calibration is complete
        """
        n_points = self.settings.calibration_points

        if not self._window_accepted:
            if len(self._calibration_buffer) < n_points or not self.sampling_frequency:
                self.calibration_status_signal.emit("Calibrating...")
                return False

            window = self._calibration_buffer[-n_points:]
            std_y = calculate_std([s.ml for s in window])
            std_z = calculate_std([s.ap for s in window])
            threshold = self.settings.calibration_std_threshold
            if std_y > threshold or std_z > threshold:
                self.calibration_status_signal.emit("STD...")
                return False

            features = get_frequency_features(
                [s.ml for s in window], [s.ap for s in window],
                self.sampling_frequency,
                cutoff_frequency=self.settings.cutoff_frequency,
            )
            dom_freq_y = features.dominant_frequency_y or 0.0
            dom_freq_z = features.dominant_frequency_z or 0.0
            freq_threshold = self.settings.calibration_dom_freq_threshold
            if dom_freq_y > freq_threshold or dom_freq_z > freq_threshold:
                self.calibration_status_signal.emit("Frequency...")
                return False

            self._window_accepted = True
            self.calibrated_data = {
                'std_y': std_y, 'std_z': std_z,
                'dom_freq_y': dom_freq_y, 'dom_freq_z': dom_freq_z,
            }
            return False

        self._calibration_attempts += 1
        if self._calibration_attempts < self.settings.required_calibration_attempts:
            logger.debug("Calibration attempt %d accepted", self._calibration_attempts)
            self.test_phase = self.PHASE_SETTLING
            self._settling_start_time = None
            self._window_accepted = False
            self._calibration_buffer = []
            return False

        return True

    def _define_baseline(self):
        """Average the filtered calibration samples into the sway baseline."""
        n = len(self._calibration_buffer)
        if n == 0:
            return
        mean_ml = sum(s.ml_filtered for s in self._calibration_buffer) / n
        mean_ap = sum(s.ap_filtered for s in self._calibration_buffer) / n

        self._baseline_ml = mean_ml
        self._baseline_ap = mean_ap
        self._baseline_filtered_ml = mean_ml
        self._baseline_filtered_ap = mean_ap
        self._calibration_buffer = []

        self.test_phase = self.PHASE_READY
        self.status_signal.emit(
            f"Calibration complete: STD Y {self.calibrated_data['std_y']:.3f}, "
            f"STD Z {self.calibrated_data['std_z']:.3f} m/s^2"
        )
        self.calibration_status_signal.emit("Evaluating...")
        self.calibration_complete_signal.emit(dict(self.calibrated_data))
