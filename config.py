# Configuration constants for the Motion Kinematics Core

# Pose / streaming smoothing
ANGULAR_HISTORY_SIZE = 5      # Samples kept for joint angle smoothing
VELOCITY_HISTORY_SIZE = 10    # Samples kept for keypoint velocity smoothing
MOVEMENT_THRESHOLD_PX = 2.0   # Keypoint displacement (px) ignored as jitter
POSE_TIME_WINDOW_S = 10       # Seconds of live data kept on the pose charts

# Chart downsampling (LTTB)
POSE_GRAPH_SAMPLE = 50             # Target points once a series is reduced
POSE_GRAPH_SAMPLE_THRESHOLD = 60   # Series longer than this get reduced

# Jump detection (flexion degrees unless noted)
JUMP_SIDE = "right"
JUMP_JOINT = "knee"
MIN_JUMP_TRENDING_FLEXION = 15    # Impulse-to-apex amplitude needed to not be noise
MIN_FLIGHT_TRENDING_FLEXION = 25  # Drop from impulse (or to cushion) around flight
MIN_FLIGHT_FLEXION = 20           # Below this the feet are most likely off the ground
MIN_SINGLE_STEP_FLEXION = 5       # Rise over the apex before ground contact is called
MAX_LANDING_FLEXION = 20          # Landing must sit within this above MIN_FLIGHT_FLEXION
MIN_FLEXION_BEFORE_JUMP = 45      # Crouch depth required before takeoff
MIN_FLEXION_AFTER_LANDING = 45    # Absorption depth required after landing
SLIDING_AVG_WINDOW = 3            # Centered smoothing width (samples)
SEARCH_WINDOW = 15                # Samples searched either side of the apex
TREND_WINDOW = 3                  # Consecutive samples that make a trend

# Jump metrics
GRAVITY = 9.81 # m/s^2
MIN_FLIGHT_TIME = 0.05 # Shortest plausible flight (s)
MAX_FLIGHT_TIME = 0.8  # Longest plausible flight for typical jumps (s)

# Balance test
CALIBRATION_DELAY_MS = 6000            # Settling time before calibration starts
CALIBRATION_POINTS = 200               # Samples in one calibration window
CALIBRATION_STD_THRESHOLD = 1.0        # m/s^2, max STD for a still device
CALIBRATION_DOM_FREQ_THRESHOLD = 2.0   # Hz, max dominant frequency while still
REQUIRED_CALIBRATION_ATTEMPTS = 2      # Consecutive successful calibration windows
GRAVITY_FACTOR = 0.8                   # Fraction of g expected on the landscape axis
BALANCE_CUTOFF_FREQUENCY = 5           # Hz - low-pass cutoff for sway signals
BALANCE_FILTER_ORDER = 4
BALANCE_TEST_DURATION_S = 15
REALTIME_FREQUENCY_WINDOW_S = 4        # Seconds used for live frequency estimates
COP_CONFIDENCE = 0.95                  # Confidence level of the sway ellipse

# Force cycles (force in kg, time in ms)
FORCE_MOVING_AVERAGE_WINDOW_MS = 3000  # Window whose range midpoint centres the hysteresis band
FORCE_MIN_AVG_AMPLITUDE = 0.5          # kg, average cycle amplitude below this counts as fatigue
FORCE_PEAK_DROP_THRESHOLD = 0.7        # Recent peak below this fraction of the session peak
FORCE_CYCLES_TO_AVERAGE = 3
FORCE_HYSTERESIS = 0.1                 # kg either side of the band centre
FORCE_DURATION_CHANGE_THRESHOLD = 0.05 # Mean relative growth of cycle duration
FORCE_VELOCITY_DROP_THRESHOLD = 0.75   # Fraction of the initial cycle speed
FORCE_VARIABILITY_THRESHOLD = 0.04     # kg^2, variance of recent amplitudes
FORCE_OUTLIER_SENSITIVITY = 2.5        # STDs kept when estimating the crossing line
CYCLE_METRICS_KEPT = 10                # Live cycles kept for fatigue analysis
MIN_SEGMENT_DURATION_MS = 100          # Shorter half-cycles between crossings are noise
MIN_SEGMENT_DEVIATION = 0.06           # kg, smaller excursions from the crossing line are noise
MIN_CYCLE_AMPLITUDE = 0.05             # kg
MIN_CYCLE_DURATION_MS = 100
RFD_SLOPE_WINDOW = 3                   # Samples spanned by the steepest-slope search

# Buffer Settings
SESSION_BUFFER_SECONDS = 300  # Longest session kept in memory (seconds)
FRAME_RATE = 30               # Nominal video frame rate for buffer sizing
MOTION_SAMPLE_RATE = 60       # Nominal device-motion rate for buffer sizing
FORCE_SAMPLE_RATE = 80        # Nominal force sensor rate for buffer sizing
