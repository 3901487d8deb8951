"""
Balance statistics from device-motion (accelerometer) samples.

The phone is held in landscape against the body: the Y axis carries
medio-lateral (ML) sway and the Z axis antero-posterior (AP) sway. The sway
accelerations, after low-pass filtering, form the center-of-pressure (COP)
trace summarised here:
- time-domain stats: RMS, variance, jerk per axis
- 95% confidence ellipse and convex-hull area of the trace
- amplitude spectrum and dominant frequency per axis
- coarse balance/sway/vibration classifications
"""
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np
from scipy.signal import butter, filtfilt, lfilter, lfilter_zi
from scipy.spatial import ConvexHull, QhullError
from scipy.stats import chi2

import config


class InsufficientDataError(ValueError):
    """Raised when a statistic needs more samples than were recorded."""


@dataclass(frozen=True)
class Vector3:
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0


@dataclass(frozen=True)
class Orientation:
    alpha: float = 0.0
    beta: float = 0.0
    gamma: float = 0.0


@dataclass(frozen=True)
class MotionSample:
    """One device-motion event as delivered by the sensor layer."""
    timestamp: float  # ms
    interval: float   # ms between events
    acceleration: Vector3
    acceleration_including_gravity: Vector3
    orientation: Optional[Orientation] = None

    @property
    def gravity(self) -> Vector3:
        return Vector3(
            self.acceleration_including_gravity.x - self.acceleration.x,
            self.acceleration_including_gravity.y - self.acceleration.y,
            self.acceleration_including_gravity.z - self.acceleration.z,
        )

    @property
    def sampling_frequency(self) -> Optional[float]:
        return 1000.0 / self.interval if self.interval > 0 else None


@dataclass(frozen=True)
class FrequencyFeatures:
    frequencies_y: np.ndarray
    amplitudes_y: np.ndarray
    frequencies_z: np.ndarray
    amplitudes_z: np.ndarray
    dominant_frequency_y: Optional[float]
    dominant_frequency_z: Optional[float]


@dataclass(frozen=True)
class ConfidenceEllipse:
    semi_major: float
    semi_minor: float
    orientation: float  # radians, major axis from the ML axis
    center_x: float
    center_y: float

    @property
    def area(self) -> float:
        return float(np.pi * self.semi_major * self.semi_minor)


@dataclass(frozen=True)
class COPStats:
    cop_points: List[Tuple[float, float]]  # (ml, ap)
    rms_ml: float
    rms_ap: float
    variance_ml: float
    variance_ap: float
    global_variance: float
    jerk_ml: Optional[float]
    jerk_ap: Optional[float]
    ellipse: ConfidenceEllipse
    cop_area: Optional[float]
    cop_area_points: List[Tuple[float, float]] = field(default_factory=list)


def calculate_std(values) -> float:
    """Population standard deviation; 0 for an empty sequence."""
    values = np.asarray(values, dtype=float)
    if values.size == 0:
        return 0.0
    return float(np.std(values))


def design_lowpass(cutoff_frequency, sampling_frequency, order=config.BALANCE_FILTER_ORDER):
    """Butterworth low-pass coefficients with the cutoff clamped below Nyquist."""
    nyquist = sampling_frequency / 2.0
    fc = min(cutoff_frequency, nyquist * 0.99)
    return butter(order, fc, btype='low', analog=False, fs=sampling_frequency)


def butterworth_lowpass(values, cutoff_frequency, sampling_frequency,
                        order=config.BALANCE_FILTER_ORDER):
    """
    Zero-phase low-pass filter for post-processing a finished recording.

    Falls back to the unfiltered signal when the series is too short for
    filtfilt padding.
    """
    values = np.asarray(values, dtype=float)
    b, a = design_lowpass(cutoff_frequency, sampling_frequency, order)
    padlen = 3 * max(len(a), len(b))
    if values.size <= padlen:
        return values.copy()
    return filtfilt(b, a, values)


class StreamingLowPass:
    """
    Causal Butterworth low-pass applied one sample at a time.
    Keeps the filter delay state between calls; redesigns the filter when the
    sampling frequency reported by the device changes.
    """

    def __init__(self, cutoff_frequency=config.BALANCE_CUTOFF_FREQUENCY,
                 order=config.BALANCE_FILTER_ORDER):
        self.cutoff_frequency = cutoff_frequency
        self.order = order
        self._sampling_frequency = None
        self._b = None
        self._a = None
        self._zi = None

    def reset(self):
        self._sampling_frequency = None
        self._b = self._a = self._zi = None

    def filter_sample(self, x0, sampling_frequency):
        """Filter one sample and return the filtered value."""
        if sampling_frequency is None or sampling_frequency <= 0:
            return x0
        if sampling_frequency != self._sampling_frequency:
            self._b, self._a = design_lowpass(self.cutoff_frequency, sampling_frequency, self.order)
            if self._zi is None:
                # Start from rest, as a filter that has only seen zeros
                self._zi = lfilter_zi(self._b, self._a) * 0.0
            self._sampling_frequency = sampling_frequency
        y, self._zi = lfilter(self._b, self._a, [x0], zi=self._zi)
        return float(y[0])


def amplitude_spectrum(values, sampling_frequency, cutoff_frequency=None):
    """
    One-sided amplitude spectrum of a detrended signal.

    Returns:
        tuple: (frequencies, amplitudes), limited to cutoff_frequency if given
    """
    values = np.asarray(values, dtype=float)
    n = values.size
    if n < 2:
        return np.array([]), np.array([])

    detrended = values - np.mean(values)
    spectrum = np.fft.rfft(detrended)
    amplitudes = 2.0 * np.abs(spectrum) / n
    frequencies = np.fft.rfftfreq(n, d=1.0 / sampling_frequency)

    if cutoff_frequency is not None:
        keep = frequencies <= cutoff_frequency
        frequencies = frequencies[keep]
        amplitudes = amplitudes[keep]
    return frequencies, amplitudes


def dominant_frequency(frequencies, amplitudes):
    """Frequency with the largest non-DC amplitude, or None for a flat signal."""
    if len(frequencies) < 2:
        return None
    if not np.any(amplitudes[1:] > 0):
        return None
    k = int(np.argmax(amplitudes[1:])) + 1
    return float(frequencies[k])


def get_frequency_features(values_y, values_z, sampling_frequency,
                           cutoff_frequency=config.BALANCE_CUTOFF_FREQUENCY,
                           time_window=None) -> FrequencyFeatures:
    """
    Spectrum and dominant frequency of the ML (Y) and AP (Z) sway signals.

    Args:
        values_y: ML acceleration samples
        values_z: AP acceleration samples
        sampling_frequency: Sampling rate in Hz
        cutoff_frequency: Highest frequency reported
        time_window: Only analyse the most recent seconds (None = whole series)

    Returns:
        FrequencyFeatures
    """
    if sampling_frequency is None or sampling_frequency <= 0:
        raise InsufficientDataError("Sampling frequency unknown")

    values_y = np.asarray(values_y, dtype=float)
    values_z = np.asarray(values_z, dtype=float)
    if time_window is not None:
        n_recent = max(2, int(time_window * sampling_frequency))
        values_y = values_y[-n_recent:]
        values_z = values_z[-n_recent:]

    if values_y.size < 2 or values_z.size < 2:
        raise InsufficientDataError("At least two samples are needed for a spectrum")

    freqs_y, amps_y = amplitude_spectrum(values_y, sampling_frequency, cutoff_frequency)
    freqs_z, amps_z = amplitude_spectrum(values_z, sampling_frequency, cutoff_frequency)

    return FrequencyFeatures(
        frequencies_y=freqs_y,
        amplitudes_y=amps_y,
        frequencies_z=freqs_z,
        amplitudes_z=amps_z,
        dominant_frequency_y=dominant_frequency(freqs_y, amps_y),
        dominant_frequency_z=dominant_frequency(freqs_z, amps_z),
    )


def confidence_ellipse(ml, ap, confidence=config.COP_CONFIDENCE) -> ConfidenceEllipse:
    """Confidence ellipse of a 2-D point cloud from its covariance eigen-decomposition."""
    points = np.column_stack([ml, ap])
    center = points.mean(axis=0)
    if points.shape[0] < 2:
        return ConfidenceEllipse(0.0, 0.0, 0.0, float(center[0]), float(center[1]))

    cov = np.cov(points, rowvar=False)
    eigenvalues, eigenvectors = np.linalg.eigh(cov)
    order = eigenvalues.argsort()[::-1]
    eigenvalues = np.clip(eigenvalues[order], 0.0, None)
    eigenvectors = eigenvectors[:, order]

    scale = chi2.ppf(confidence, df=2)
    semi_major = float(np.sqrt(scale * eigenvalues[0]))
    semi_minor = float(np.sqrt(scale * eigenvalues[1]))
    orientation = float(np.arctan2(eigenvectors[1, 0], eigenvectors[0, 0]))

    return ConfidenceEllipse(semi_major, semi_minor, orientation,
                             float(center[0]), float(center[1]))


def cop_area(ml, ap):
    """
    Convex-hull area of the COP trace.

    Returns:
        tuple: (area, boundary_points) or (None, []) for degenerate traces
    """
    points = np.column_stack([ml, ap])
    if points.shape[0] < 3:
        return None, []
    try:
        hull = ConvexHull(points)
    except QhullError:
        return None, []
    boundary = [(float(points[k, 0]), float(points[k, 1])) for k in hull.vertices]
    # For 2-D hulls scipy reports the enclosed area as "volume"
    return float(hull.volume), boundary


def rms_jerk(values, sampling_frequency):
    """RMS of the time derivative of an acceleration signal, or None if too short."""
    values = np.asarray(values, dtype=float)
    if values.size < 3 or not sampling_frequency:
        return None
    jerk = np.diff(values) * sampling_frequency
    return float(np.sqrt(np.mean(jerk ** 2)))


def calculate_cop_stats(ml, ap, sampling_frequency,
                        confidence=config.COP_CONFIDENCE) -> COPStats:
    """
    Summary statistics of a COP trace.

    Args:
        ml: Medio-lateral (Y) filtered sway samples
        ap: Antero-posterior (Z) filtered sway samples
        sampling_frequency: Sampling rate in Hz (used for jerk)
        confidence: Confidence level of the sway ellipse

    Returns:
        COPStats
    """
    ml = np.asarray(ml, dtype=float)
    ap = np.asarray(ap, dtype=float)
    if ml.size != ap.size:
        raise ValueError(f"ML and AP series differ in length: {ml.size} != {ap.size}")
    if ml.size < 2:
        raise InsufficientDataError("At least two samples are needed for COP statistics")

    variance_ml = float(np.var(ml))
    variance_ap = float(np.var(ap))
    area, boundary = cop_area(ml, ap)

    return COPStats(
        cop_points=[(float(x), float(y)) for x, y in zip(ml, ap)],
        rms_ml=float(np.sqrt(np.mean(ml ** 2))),
        rms_ap=float(np.sqrt(np.mean(ap ** 2))),
        variance_ml=variance_ml,
        variance_ap=variance_ap,
        global_variance=variance_ml + variance_ap,
        jerk_ml=rms_jerk(ml, sampling_frequency),
        jerk_ap=rms_jerk(ap, sampling_frequency),
        ellipse=confidence_ellipse(ml, ap, confidence),
        cop_area=area,
        cop_area_points=boundary,
    )


def _combined_std_index(accel_data, use_x, use_y, use_z):
    std_x = calculate_std([a.x for a in accel_data]) if use_x else 0.0
    std_y = calculate_std([a.y for a in accel_data]) if use_y else 0.0
    std_z = calculate_std([a.z for a in accel_data]) if use_z else 0.0
    index = np.sqrt(std_x ** 2 + std_y ** 2 + std_z ** 2)
    active_axes = sum([use_x, use_y, use_z]) or 1
    return float(index / active_axes)


def calculate_static_balance_quality(accel_data, use_x=True, use_y=True, use_z=True):
    """Grade static balance from the spread of the selected acceleration axes."""
    if len(accel_data) == 0:
        return "No data"

    combined_index = _combined_std_index(accel_data, use_x, use_y, use_z)
    if combined_index < 0.5:
        return "Excellent"
    if combined_index < 1:
        return "Good"
    if combined_index < 1.5:
        return "Fair"
    return "Poor"


def classify_sway(accel_data):
    """Lateral (X) and anterior-posterior (Y) sway as Minimal / Moderate / Severe."""
    if len(accel_data) == 0:
        return {"lateral": "No data", "anterior_posterior": "No data"}

    def classify(index):
        if index < 0.2:
            return "Minimal"
        if index < 0.5:
            return "Moderate"
        return "Severe"

    lateral_index = calculate_std([a.x for a in accel_data]) / 2
    anterior_posterior_index = calculate_std([a.y for a in accel_data]) / 2
    return {
        "lateral": classify(lateral_index),
        "anterior_posterior": classify(anterior_posterior_index),
    }


def detect_vibration_range(accel_data, use_x=True, use_y=True, use_z=True,
                           vibration_threshold=1.0):
    """
    Label the vibration level of the selected axes.

    Returns:
        tuple: (label, vibration_index)
    """
    if len(accel_data) == 0:
        return "No data", 0.0

    index = _combined_std_index(accel_data, use_x, use_y, use_z)
    if index < vibration_threshold * 0.5:
        label = "Low"
    elif index < vibration_threshold:
        label = "Moderate"
    elif index < vibration_threshold * 1.5:
        label = "High"
    else:
        label = "Severe"
    return label, index
