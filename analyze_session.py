"""
Command-line replay of a recorded session.
Feeds the frames, motion samples or force samples of a session JSON file through the
processing facades and prints the analysis results.
"""
import argparse
import json
import logging
import sys

import config
from processing.angle_series import Keypoint
from processing.balance_stats import MotionSample, Orientation, Vector3
from processing.calibration_manager import BalanceSettings
from processing.cycle_detector import ForceSettings
from processing.data_processor import BalanceDataProcessor, ForceDataProcessor, PoseDataProcessor
from processing.jump_detector import JumpDetectionSettings


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Analyze a recorded pose, balance or force session.")
    parser.add_argument("session", help="Session JSON file with 'frames', 'motion' or 'force' records")
    parser.add_argument("--side", choices=["left", "right"], default=config.JUMP_SIDE,
                        help="Body side used for jump detection")
    parser.add_argument("--joint", choices=["knee", "hip"], default=config.JUMP_JOINT,
                        help="Joint used for jump detection")
    parser.add_argument("--window", type=int, default=config.SLIDING_AVG_WINDOW,
                        help="Centered sliding-average window (samples)")
    parser.add_argument("--calibration-delay", type=float, default=config.CALIBRATION_DELAY_MS,
                        help="Settling delay before balance calibration (ms)")
    parser.add_argument("--work-load", type=float, default=None,
                        help="Load moved per repetition (kg) for force sessions")
    parser.add_argument("--log-file", default="motion_session.log")
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser.parse_args(argv)


def load_session(path):
    with open(path, "r", encoding="utf-8") as f:
        session = json.load(f)
    if not isinstance(session, dict) or not any(key in session for key in ("frames", "motion", "force")):
        raise ValueError(f"{path}: expected a 'frames', 'motion' or 'force' array")
    return session


def _vector(data):
    data = data or {}
    return Vector3(x=float(data.get("x", 0.0)), y=float(data.get("y", 0.0)),
                   z=float(data.get("z", 0.0)))


def motion_sample_from_dict(record):
    orientation = record.get("orientation")
    return MotionSample(
        timestamp=float(record["timestamp"]),
        interval=float(record["interval"]),
        acceleration=_vector(record.get("acceleration")),
        acceleration_including_gravity=_vector(record.get("acceleration_including_gravity")),
        orientation=Orientation(**orientation) if orientation else None,
    )


def keypoints_from_list(records):
    return [
        Keypoint(name=kp["name"], x=float(kp["x"]), y=float(kp["y"]), score=kp.get("score"))
        for kp in records
    ]


def replay_pose(frames, settings):
    processor = PoseDataProcessor(settings)
    processor.status_signal.connect(logging.info)

    results = []
    processor.analysis_complete_signal.connect(results.append)

    for record in frames:
        processor.process_frame(keypoints_from_list(record.get("keypoints", [])),
                                float(record["video_time"]))
    jumps = processor.analyze_jumps()
    return jumps, results


def replay_balance(motion, settings):
    processor = BalanceDataProcessor(settings)
    processor.status_signal.connect(logging.info)
    processor.calibration_complete_signal.connect(
        lambda data: logging.info("Calibration data: %s", data)
    )

    processor.start()
    for record in motion:
        processor.process_sample(motion_sample_from_dict(record))
        if not processor.is_running:
            break
    # Recording ended before the full test duration
    return processor.stop() if processor.is_running else processor.last_results


def replay_force(records, settings, work_load=None):
    processor = ForceDataProcessor(settings, work_load=work_load)
    processor.status_signal.connect(logging.info)
    processor.cycle_detected_signal.connect(
        lambda metric: logging.debug("Cycle: %s", metric)
    )

    for record in records:
        processor.process_sample(float(record["time"]), float(record["force"]))
    return processor.analyze()


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(
        filename=args.log_file,
        level=getattr(logging, args.log_level),
        format='%(asctime)s %(levelname)s: %(message)s'
    )

    try:
        session = load_session(args.session)
    except (OSError, ValueError) as e:
        logging.error("Could not load session: %s", e)
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if "frames" in session:
        try:
            settings = JumpDetectionSettings(
                side=args.side, joint=args.joint, sliding_avg_window=args.window,
            ).validate()
        except ValueError as e:
            logging.error("Configuration validation failed: %s", e)
            print(f"Error: {e}", file=sys.stderr)
            return 2

        jumps, results = replay_pose(session["frames"], settings)
        print(f"{len(jumps)} jump(s) detected")
        for jump_results in results:
            for key, value in jump_results.items():
                print(f"{key}: {value}")
        return 0

    if "force" in session:
        results = replay_force(session["force"], ForceSettings(), args.work_load)
        if results is None:
            print("Insufficient data")
            return 1
        print(f"{len(results['cycles'])} cycle(s) detected "
              f"({results['live_cycle_count']} counted live)")
        print(f"Peak force: {results['peak_force']:.2f} kg")
        print(f"Crossing line: {results['crossing_line']:.2f} kg")
        for n, cycle in enumerate(results["cycles"], start=1):
            print(f"Cycle #{n}: {cycle['amplitude']:.2f} kg over {cycle['duration']:.0f} ms")
        if results["rfd"] is not None:
            print(f"RFD: {results['rfd']:.1f} kg/s")
        return 0

    try:
        settings = BalanceSettings(calibration_delay=args.calibration_delay).validate()
    except ValueError as e:
        logging.error("Configuration validation failed: %s", e)
        print(f"Error: {e}", file=sys.stderr)
        return 2

    results = replay_balance(session["motion"], settings)
    if results is None:
        print("Insufficient data")
        return 1
    summary = results["summary"]
    cop = results["cop"]
    print(f"Samples: {summary['samples']} at {summary['sampling_frequency']:.1f} Hz")
    print(f"Balance quality: {summary['balance_quality']}")
    print(f"Sway: lateral {summary['sway']['lateral']}, "
          f"anterior-posterior {summary['sway']['anterior_posterior']}")
    print(f"Vibration: {summary['vibration']} ({summary['vibration_index']:.3f})")
    print(f"RMS ML/AP: {cop['rms_ml']:.4f} / {cop['rms_ap']:.4f} m/s^2")
    print(f"Ellipse area: {cop['ellipse_area']:.5f}")
    if cop['cop_area'] is not None:
        print(f"COP area: {cop['cop_area']:.5f}")
    print(f"Dominant frequency ML/AP: {results['frequency']['dominant_frequency_y']} / "
          f"{results['frequency']['dominant_frequency_z']} Hz")
    return 0


if __name__ == '__main__':
    sys.exit(main())
