"""
Tests for the balance-test calibration state machine.
"""
import numpy as np
import pytest

from conftest import motion_sample
from processing.calibration_manager import BalanceSettings, CalibrationManager

INTERVAL = 1000.0 / 60


def quick_settings(**overrides):
    params = dict(calibration_delay=100, calibration_points=120,
                  required_calibration_attempts=2, test_duration=2)
    params.update(overrides)
    return BalanceSettings(**params)


def feed_until_ready(manager, ml=0.0, ap=0.0, max_samples=2000, start=0):
    for k in range(start, start + max_samples):
        manager.process_sample(motion_sample(k * INTERVAL, ml=ml, ap=ap))
        if manager.is_ready():
            return k
    return None


def test_defaults_are_valid():
    settings = BalanceSettings()
    assert settings.validate() is settings


@pytest.mark.parametrize("field, value", [
    ("calibration_delay", -1),
    ("calibration_points", 1),
    ("required_calibration_attempts", 0),
    ("cutoff_frequency", 0),
])
def test_invalid_settings_rejected(field, value):
    with pytest.raises(ValueError, match=field):
        BalanceSettings(**{field: value}).validate()


def test_orientation_check():
    manager = CalibrationManager(quick_settings())
    assert manager.is_device_in_correct_position(9.81)
    assert not manager.is_device_in_correct_position(-9.81)
    assert not manager.is_device_in_correct_position(5.0)


def test_wrong_orientation_blocks_calibration():
    manager = CalibrationManager(quick_settings())
    statuses = []
    manager.calibration_status_signal.connect(statuses.append)

    for k in range(500):
        assert manager.process_sample(motion_sample(k * INTERVAL, gravity_x=0.0)) is None

    assert manager.test_phase == CalibrationManager.PHASE_WAITING_ORIENTATION
    assert set(statuses) == {"Position error"}


def test_settling_then_calibrating():
    manager = CalibrationManager(quick_settings())
    manager.process_sample(motion_sample(0.0))
    assert manager.test_phase == CalibrationManager.PHASE_SETTLING
    manager.process_sample(motion_sample(150.0))
    assert manager.test_phase == CalibrationManager.PHASE_CALIBRATING


def test_still_device_calibrates_after_required_attempts():
    settings = quick_settings()
    manager = CalibrationManager(settings)
    completed = []
    manager.calibration_complete_signal.connect(completed.append)

    k = feed_until_ready(manager)

    assert k is not None
    # Two accepted windows of calibration_points samples each
    assert k > 2 * settings.calibration_points
    assert len(completed) == 1
    assert completed[0]['std_y'] == pytest.approx(0.0)
    assert completed[0]['dom_freq_y'] == 0.0


def test_single_attempt_calibrates_sooner():
    two = CalibrationManager(quick_settings())
    one = CalibrationManager(quick_settings(required_calibration_attempts=1))
    assert feed_until_ready(one) < feed_until_ready(two)


def test_shaky_device_never_calibrates():
    manager = CalibrationManager(quick_settings())
    statuses = []
    manager.calibration_status_signal.connect(statuses.append)
    rng = np.random.default_rng(1)

    for k in range(1500):
        manager.process_sample(motion_sample(k * INTERVAL, ml=float(rng.normal(0, 3.0))))

    assert not manager.is_ready()
    assert "STD..." in statuses


def test_baseline_removed_after_calibration():
    manager = CalibrationManager(quick_settings())
    k = feed_until_ready(manager, ml=0.5, ap=-0.3)
    assert k is not None

    calibrated = None
    for j in range(k + 1, k + 300):
        calibrated = manager.process_sample(motion_sample(j * INTERVAL, ml=0.5, ap=-0.3))

    assert calibrated is not None
    assert calibrated.ml == pytest.approx(0.0, abs=1e-3)
    assert calibrated.ap == pytest.approx(0.0, abs=1e-3)
    assert calibrated.ml_filtered == pytest.approx(0.0, abs=1e-2)


def test_reset_returns_to_waiting():
    manager = CalibrationManager(quick_settings())
    feed_until_ready(manager)
    manager.reset()
    assert manager.test_phase == CalibrationManager.PHASE_WAITING_ORIENTATION
    assert not manager.is_ready()
