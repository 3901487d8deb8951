"""
Handles processing of live motion data, including:
- Computing joint angles and keypoint speed for every pose frame
- Buffering frames and motion samples during a session
- Running the balance-test calibration on incoming motion samples
- Counting force repetitions live
- Performing post-session analysis (jump segmentation, COP and spectrum stats, force cycles).

The facades delegate specific responsibilities to specialized modules and
forward their notifications through Qt signals.
"""
import logging
from dataclasses import asdict

import numpy as np
from PyQt6.QtCore import QObject, pyqtSignal, pyqtSlot
import config

from .angle_series import (
    ChartPoint, KEYPOINT_NAMES, VideoFrame,
    LEFT_HIP, RIGHT_HIP, LEFT_KNEE, RIGHT_KNEE,
)
from .balance_stats import (
    InsufficientDataError, Vector3,
    butterworth_lowpass, calculate_cop_stats, calculate_static_balance_quality,
    classify_sway, detect_vibration_range, get_frequency_features,
)
from .buffer_manager import BufferManager
from .calibration_manager import BalanceSettings, CalibrationManager
from .cycle_detector import CycleDetector, ForceSettings
from .downsampler import downsample_for_display
from .force_cycles import adjust_cycles_by_zero_crossing, calculate_rfd_in_range, estimate_crossing_line
from .joint_kinematics import JOINT_POINTS, get_joint_keypoints, update_joint_angle
from .jump_analyzer import JumpAnalyzer
from .jump_detector import JumpDetectionSettings, JumpPhaseDetector
from .series_smoother import update_keypoint_velocity

logger = logging.getLogger(__name__)

# Joints reported as flexion (0 = fully extended)
FLEXION_JOINTS = (LEFT_HIP, RIGHT_HIP, LEFT_KNEE, RIGHT_KNEE)

CHART_VALUE_TYPES = ("angle", "smoothed_angle", "angular_velocity")


def validate_settings(settings):
    """
    Validate jump detection settings before they are handed to a detector.

    Returns:
        The settings themselves when valid

    Raises:
        ValueError: listing every invalid field
    """
    if not isinstance(settings, JumpDetectionSettings):
        raise ValueError(f"Expected JumpDetectionSettings, got {type(settings).__name__}")
    return settings.validate()


class PoseDataProcessor(QObject):
    """
    Processes pose frames, stores them, and performs jump analysis.
    Operates in the main application thread (receives frames from the inference layer).
    """
    processed_frame_signal = pyqtSignal(dict)
    jumps_detected_signal = pyqtSignal(object)  # list of JumpEvent
    analysis_complete_signal = pyqtSignal(dict)
    jump_event_markers_signal = pyqtSignal(dict)
    status_signal = pyqtSignal(str)

    def __init__(self, settings=None, selected_keypoint=RIGHT_KNEE,
                 frame_rate=config.FRAME_RATE, parent=None):
        super().__init__(parent)
        self.settings = validate_settings(settings if settings is not None else JumpDetectionSettings())
        if selected_keypoint not in KEYPOINT_NAMES:
            raise ValueError(f"Unknown keypoint: {selected_keypoint!r}")
        self.selected_keypoint = selected_keypoint

        # Initialize specialized modules
        self._buffer_manager = BufferManager(frame_rate=frame_rate)
        self._jump_detector = JumpPhaseDetector(self.settings)
        self._jump_analyzer = JumpAnalyzer()

        self._joint_states = {}
        self._velocity_state = None

        # Connect signals from modules to forward them
        self._connect_module_signals()

    def _connect_module_signals(self):
        """Connect signals from internal modules to forward them through this class."""
        self._jump_analyzer.analysis_complete_signal.connect(
            lambda results: self.analysis_complete_signal.emit(results)
        )
        self._jump_analyzer.jump_event_markers_signal.connect(
            lambda markers: self.jump_event_markers_signal.emit(markers)
        )
        self._jump_analyzer.status_signal.connect(
            lambda msg: self.status_signal.emit(msg)
        )

    @property
    def frames(self):
        return self._buffer_manager.get_frames()

    @property
    def velocity_in_pixels(self):
        return self._velocity_state.velocity_in_pixels if self._velocity_state else 0.0

    def update_settings(self, settings):
        """Swap in new detection settings; invalid settings leave the current ones in place."""
        self.settings = validate_settings(settings)
        self._jump_detector = JumpPhaseDetector(self.settings)
        self.status_signal.emit(f"Jump detection settings updated for {self._jump_detector.joint_name}")

    @pyqtSlot()
    def reset_data(self):
        """Clears buffered frames and tracking state before a new recording."""
        self._buffer_manager.reset()
        self._joint_states = {}
        self._velocity_state = None
        self.status_signal.emit("Frame buffer and joint state cleared.")

    def process_frame(self, keypoints, video_time, timestamp=None):
        """
        Compute joint angles and keypoint speed for one frame and buffer it.

        Args:
            keypoints: Keypoints detected in the frame
            video_time: Position of the frame in the video (s)
            timestamp: Wall-clock time of the frame in ms (defaults to video_time)

        Returns:
            VideoFrame, or None if the frame was rejected
        """
        if timestamp is None:
            timestamp = video_time * 1000.0
        keypoints = list(keypoints)

        joint_data = {}
        for joint_name in JOINT_POINTS:
            if get_joint_keypoints(joint_name, keypoints) is None:
                continue
            state = update_joint_angle(
                keypoints, joint_name, self._joint_states.get(joint_name), timestamp,
                invert=joint_name in FLEXION_JOINTS,
                with_velocity=True,
            )
            self._joint_states[joint_name] = state
            joint_data[joint_name] = {
                "angle": state.angle,
                "smoothed_angle": state.smoothed_angle,
                "angular_velocity": state.angular_velocity,
            }

        self._velocity_state = update_keypoint_velocity(
            keypoints, self.selected_keypoint, self._velocity_state,
            config.VELOCITY_HISTORY_SIZE, timestamp,
        )

        frame = VideoFrame(video_time=video_time, keypoints=keypoints, joint_data=joint_data)
        try:
            self._buffer_manager.append_frame(frame)
        except ValueError as e:
            logger.warning("Frame rejected: %s", e)
            self.status_signal.emit(f"Frame rejected: {e}")
            return None

        self.processed_frame_signal.emit({
            "video_time": video_time,
            "joint_data": joint_data,
            "velocity_in_pixels": self.velocity_in_pixels,
        })
        return frame

    def analyze_jumps(self):
        """
        Run jump segmentation over the buffered frames and analyze every jump.

        Returns:
            list: JumpEvents found in the recording
        """
        frames = self._buffer_manager.get_frames()
        jumps = self._jump_detector.detect(frames)
        self.status_signal.emit(
            f"{len(jumps)} jump(s) detected on {self._jump_detector.joint_name} "
            f"in {len(frames)} frames"
        )
        self.jumps_detected_signal.emit(jumps)
        self._jump_analyzer.analyze_jumps(jumps)
        return jumps

    def get_chart_series(self, joint_name, value_type="angle", time_window=None):
        """
        Chart points of one joint quantity, reduced for display.

        Args:
            joint_name: Joint key (e.g. "right_knee")
            value_type: "angle", "smoothed_angle" or "angular_velocity"
            time_window: Only the most recent seconds (None = whole recording)

        Returns:
            list: ChartPoints with x = video time
        """
        if value_type not in CHART_VALUE_TYPES:
            raise ValueError(f"Unknown value type: {value_type}")

        if time_window is None:
            frames = self._buffer_manager.get_frames()
        else:
            frames = self._buffer_manager.get_recent_frames(time_window)

        points = []
        for frame in frames:
            value = frame.joint_data.get(joint_name, {}).get(value_type)
            if value is None:
                continue
            points.append(ChartPoint(x=frame.video_time, y=value))
        return downsample_for_display(points)

    def get_live_chart_series(self, joint_name, value_type="angle"):
        """Chart points of the last POSE_TIME_WINDOW_S seconds, for live display."""
        return self.get_chart_series(joint_name, value_type, time_window=config.POSE_TIME_WINDOW_S)


class BalanceDataProcessor(QObject):
    """
    Runs a balance test: calibration, live sway samples and post-test statistics.
    """
    processed_sample_signal = pyqtSignal(dict)
    cop_data_signal = pyqtSignal(dict)
    frequency_data_signal = pyqtSignal(dict)
    balance_summary_signal = pyqtSignal(dict)
    status_signal = pyqtSignal(str)
    calibration_status_signal = pyqtSignal(str)
    calibration_complete_signal = pyqtSignal(dict)

    def __init__(self, settings: BalanceSettings = None, parent=None):
        super().__init__(parent)
        self.settings = (settings if settings is not None else BalanceSettings()).validate()

        self._buffer_manager = BufferManager()
        self._calibration_manager = CalibrationManager(self.settings)
        self._running = False
        self._test_start_time = None
        self.last_results = None

        self._connect_module_signals()

    def _connect_module_signals(self):
        """Connect signals from internal modules to forward them through this class."""
        self._calibration_manager.calibration_status_signal.connect(
            lambda msg: self.calibration_status_signal.emit(msg)
        )
        self._calibration_manager.calibration_complete_signal.connect(
            lambda data: self.calibration_complete_signal.emit(data)
        )
        self._calibration_manager.status_signal.connect(
            lambda msg: self.status_signal.emit(msg)
        )

    @property
    def is_running(self):
        return self._running

    @property
    def test_phase(self):
        """Get current test phase from calibration manager."""
        return self._calibration_manager.test_phase

    @property
    def samples(self):
        return self._buffer_manager.get_motion_samples()

    @pyqtSlot()
    def start(self):
        """Clear previous results and wait for a fresh calibration."""
        self._buffer_manager.reset()
        self._calibration_manager.reset()
        self._test_start_time = None
        self.last_results = None
        self._running = True
        self.status_signal.emit("Balance test started.")

    def process_sample(self, sample):
        """
        Feed one motion sample to the test.

        Samples are dropped until calibration completes; afterwards they are
        baseline-corrected, buffered and emitted. The test stops itself once
        `test_duration` seconds have been recorded.

        Returns:
            CalibratedSample or None
        """
        if not self._running:
            return None

        calibrated = self._calibration_manager.process_sample(sample)
        if calibrated is None:
            return None

        if self._test_start_time is None:
            self._test_start_time = calibrated.timestamp
        self._buffer_manager.append_motion_sample(calibrated)

        self.processed_sample_signal.emit({
            "timestamp": calibrated.timestamp,
            "ml": calibrated.ml_filtered,
            "ap": calibrated.ap_filtered,
        })

        if calibrated.timestamp - self._test_start_time >= self.settings.test_duration * 1000.0:
            self.stop()
        return calibrated

    def realtime_frequency(self, time_window=config.REALTIME_FREQUENCY_WINDOW_S):
        """Dominant sway frequencies over the most recent window, or None if too short."""
        samples = self._buffer_manager.get_recent_motion_samples(time_window)
        try:
            features = get_frequency_features(
                [s.ml_filtered for s in samples], [s.ap_filtered for s in samples],
                self._calibration_manager.sampling_frequency,
                cutoff_frequency=self.settings.cutoff_frequency,
            )
        except InsufficientDataError:
            return None
        return {
            "dominant_frequency_y": features.dominant_frequency_y,
            "dominant_frequency_z": features.dominant_frequency_z,
        }

    @pyqtSlot()
    def stop(self):
        """
        End the test and run the post-test analysis on the recorded samples.

        Returns:
            dict of results, or None when too little data was recorded
        """
        was_running = self._running
        self._running = False
        if not was_running:
            return None

        samples = self._buffer_manager.get_motion_samples()
        try:
            results = self.analyze(samples)
        except InsufficientDataError as e:
            logger.warning("Balance analysis skipped: %s", e)
            self.status_signal.emit("Insufficient data")
            return None

        self.last_results = results
        self.cop_data_signal.emit(results["cop"])
        self.frequency_data_signal.emit(results["frequency"])
        self.balance_summary_signal.emit(results["summary"])
        self.status_signal.emit(f"Balance test complete: {len(samples)} samples analysed.")
        return results

    def analyze(self, samples):
        """
        Post-test statistics of calibrated samples.

        The ML/AP traces are low-pass filtered with a zero-phase Butterworth
        filter before the COP statistics are computed; the spectrum uses the
        unfiltered traces up to the cutoff frequency.

        Raises:
            InsufficientDataError: fewer than two samples or unknown sampling rate
        """
        if len(samples) < 2:
            raise InsufficientDataError(f"{len(samples)} sample(s) recorded")

        intervals = [s.interval for s in samples if s.interval > 0]
        if not intervals:
            raise InsufficientDataError("Sampling interval unknown")
        sampling_frequency = 1000.0 / float(np.mean(intervals))

        ml = np.array([s.ml for s in samples], dtype=float)
        ap = np.array([s.ap for s in samples], dtype=float)
        ml_filtered = butterworth_lowpass(ml, self.settings.cutoff_frequency, sampling_frequency)
        ap_filtered = butterworth_lowpass(ap, self.settings.cutoff_frequency, sampling_frequency)

        cop = calculate_cop_stats(ml_filtered, ap_filtered, sampling_frequency)
        features = get_frequency_features(
            ml, ap, sampling_frequency, cutoff_frequency=self.settings.cutoff_frequency,
        )

        sway = [Vector3(x=float(m), y=float(a), z=0.0) for m, a in zip(ml, ap)]
        vibration_label, vibration_index = detect_vibration_range(sway, use_z=False)

        cop_data = asdict(cop)
        cop_data["ellipse_area"] = cop.ellipse.area
        return {
            "cop": cop_data,
            "frequency": {
                "frequencies_y": features.frequencies_y.tolist(),
                "amplitudes_y": features.amplitudes_y.tolist(),
                "frequencies_z": features.frequencies_z.tolist(),
                "amplitudes_z": features.amplitudes_z.tolist(),
                "dominant_frequency_y": features.dominant_frequency_y,
                "dominant_frequency_z": features.dominant_frequency_z,
            },
            "summary": {
                "samples": len(samples),
                "sampling_frequency": sampling_frequency,
                "balance_quality": calculate_static_balance_quality(sway, use_z=False),
                "sway": classify_sway(sway),
                "vibration": vibration_label,
                "vibration_index": vibration_index,
            },
        }


class ForceDataProcessor(QObject):
    """
    Counts repetitions live from a force sensor and splits the finished
    recording into cycles.
    """
    cycle_detected_signal = pyqtSignal(dict)
    fatigue_signal = pyqtSignal(dict)
    analysis_complete_signal = pyqtSignal(dict)
    status_signal = pyqtSignal(str)

    def __init__(self, settings: ForceSettings = None, work_load=None, parent=None):
        super().__init__(parent)
        self.settings = (settings if settings is not None else ForceSettings()).validate()
        self.work_load = work_load

        self._buffer_manager = BufferManager()
        self._cycle_detector = CycleDetector(self.settings, work_load)
        self.last_results = None

        self._connect_module_signals()

    def _connect_module_signals(self):
        """Connect signals from internal modules to forward them through this class."""
        self._cycle_detector.cycle_detected_signal.connect(
            lambda metric: self.cycle_detected_signal.emit(asdict(metric))
        )
        self._cycle_detector.fatigue_signal.connect(
            lambda status: self.fatigue_signal.emit(status)
        )

    @property
    def cycle_count(self):
        return self._cycle_detector.cycle_count

    @pyqtSlot()
    def reset_data(self):
        """Clears buffered force samples and the live cycle count."""
        self._buffer_manager.reset()
        self._cycle_detector.reset()
        self.last_results = None
        self.status_signal.emit("Force buffer and cycle count cleared.")

    def process_sample(self, time_ms, force):
        """
        Buffer one force reading and update the live cycle count.

        Returns:
            CycleMetric when the reading completes a cycle, otherwise None
        """
        try:
            self._buffer_manager.append_force_sample(time_ms, force)
        except ValueError as e:
            logger.warning("Force sample rejected: %s", e)
            self.status_signal.emit(f"Sample rejected: {e}")
            return None
        return self._cycle_detector.process_sample(time_ms, force)

    def analyze(self, trim_limits=None):
        """
        Split the buffered recording into cycles and measure its steepest rise.

        Args:
            trim_limits: Optional (start, end) times in ms the first and last
                cycle are clipped to

        Returns:
            dict with the crossing line, segments, cycles and RFD
        """
        times, forces = self._buffer_manager.get_force_samples()
        if len(times) < 2:
            self.status_signal.emit("Insufficient data")
            return None

        crossing_line = estimate_crossing_line(forces, self.settings.outlier_sensitivity)
        segments, cycles = adjust_cycles_by_zero_crossing(
            times, forces, crossing_line,
            cycles_to_average=self.settings.cycles_to_average,
            trim_limits=trim_limits,
            work_load=self.work_load,
        )
        rfd = calculate_rfd_in_range(times, forces, times[0], times[-1])

        results = {
            "crossing_line": crossing_line,
            "peak_force": float(forces.max()),
            "segments": [asdict(s) for s in segments],
            "cycles": [asdict(c) for c in cycles],
            "live_cycle_count": self._cycle_detector.cycle_count,
            "rfd": rfd.rfd if rfd is not None else None,
            "rfd_range": (rfd.start, rfd.end) if rfd is not None else None,
        }
        self.last_results = results
        self.analysis_complete_signal.emit(results)
        self.status_signal.emit(f"Force analysis complete: {len(cycles)} cycle(s).")
        return results
