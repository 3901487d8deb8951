"""
Data processing modules for the motion kinematics core.

This package contains the core data processing pipeline:
- data_processor.py: Pose, balance and force coordinators (facade pattern)
- buffer_manager.py: Memory-bounded frame and motion-sample buffers
- angle_series.py: Frame records and joint-angle series
- series_smoother.py: Trailing and centered moving averages, keypoint speed
- joint_kinematics.py: Joint angles and angular velocity from keypoints
- jump_detector.py: Jump phase segmentation of a flexion series
- jump_analyzer.py: Post-jump analysis and metrics calculation
- downsampler.py: LTTB reduction of chart series
- calibration_manager.py: Balance-test calibration state machine
- balance_stats.py: COP, spectrum and sway statistics
- cycle_detector.py: Live force cycle counting and fatigue check
- force_cycles.py: Crossing-line cycles and RFD of a recorded force trace
"""
