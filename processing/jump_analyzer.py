"""
Post-detection analysis of jump events.
Derives flight time, jump height and phase durations from the characteristic
points of each jump and publishes chart event markers.
"""
import logging
import math

from PyQt6.QtCore import QObject, pyqtSignal
import config

logger = logging.getLogger(__name__)


class JumpAnalyzer(QObject):
    """
    Calculates metrics for detected jumps.
    Results are dictionaries keyed 'Jump #N <metric>', one per jump.
    """

    # Signals
    analysis_complete_signal = pyqtSignal(dict)  # Dictionary of calculated metrics
    jump_event_markers_signal = pyqtSignal(dict)  # Dictionary with event times and angles
    status_signal = pyqtSignal(str)

    def __init__(self, gravity=config.GRAVITY):
        """
        Initialize jump analyzer.

        Args:
            gravity: Gravitational acceleration in m/s^2
        """
        super().__init__()
        self.gravity = gravity

    def flight_time(self, jump):
        """Time between takeoff and landing in seconds."""
        return jump.landing_point.video_time - jump.takeoff_point.video_time

    def jump_height(self, flight_time):
        """Jump height (m) from flight time, assuming symmetric ballistic flight."""
        return (self.gravity * flight_time ** 2) / 8.0

    def takeoff_velocity(self, jump_height):
        """Vertical takeoff velocity (m/s) needed to reach the given height."""
        return math.sqrt(2 * self.gravity * max(jump_height, 0.0))

    def analyze_jump(self, jump, jump_number):
        """
        Performs analysis on one detected jump.

        Args:
            jump: JumpEvent
            jump_number: Jump number for labeling

        Returns:
            dict: Analysis results with metrics
        """
        prefix = f'Jump #{jump_number}'
        note = ''

        flight_time = self.flight_time(jump)
        if flight_time < config.MIN_FLIGHT_TIME or flight_time > config.MAX_FLIGHT_TIME:
            self.status_signal.emit(f"NOTICE: Flight time {flight_time:.3f}s outside expected range")
            note += " Flight time outside typical range."

        height = self.jump_height(flight_time)
        velocity = self.takeoff_velocity(height)

        results = {
            f'{prefix} Flight Time (s)': round(flight_time, 3),
            f'{prefix} Jump Height (m)': round(height, 3),
            f'{prefix} Takeoff Velocity (m/s)': round(velocity, 3),
            f'{prefix} Propulsion Time (s)': round(
                jump.takeoff_point.video_time - jump.impulse_point.video_time, 3),
            f'{prefix} Absorption Time (s)': round(
                jump.cushion_point.video_time - jump.landing_point.video_time, 3),
            f'{prefix} Flexion Before Jump (deg)': round(jump.impulse_point.angle, 1),
            f'{prefix} Flexion In Flight (deg)': round(jump.apex_point.angle, 1),
            f'{prefix} Flexion After Landing (deg)': round(jump.cushion_point.angle, 1),
        }

        note = note.strip()
        if note:
            results[f'{prefix} Analysis Note'] = note
        return results

    def analyze_jumps(self, jumps):
        """
        Analyze every jump, emitting results and markers per jump.

        Returns:
            list: One results dictionary per jump
        """
        all_results = []
        for jump_number, jump in enumerate(jumps, start=1):
            try:
                results = self.analyze_jump(jump, jump_number)
            except (ArithmeticError, ValueError) as e:
                logger.exception("Analysis failed for jump %d", jump_number)
                self.status_signal.emit(f"Analysis failed for jump {jump_number}: {e}")
                results = {f'Jump #{jump_number} Error': str(e)}
            else:
                self._emit_event_markers(jump, jump_number)
            self.analysis_complete_signal.emit(results)
            all_results.append(results)
        return all_results

    def event_markers(self, jump, jump_number):
        """Event times and angles of one jump for chart annotation."""
        return {
            'jump_number': jump_number,
            'impulse_time': jump.impulse_point.video_time,
            'impulse_angle': jump.impulse_point.angle,
            'takeoff_time': jump.takeoff_point.video_time,
            'takeoff_angle': jump.takeoff_point.angle,
            'apex_time': jump.apex_point.video_time,
            'apex_angle': jump.apex_point.angle,
            'landing_time': jump.landing_point.video_time,
            'landing_angle': jump.landing_point.angle,
            'cushion_time': jump.cushion_point.video_time,
            'cushion_angle': jump.cushion_point.angle,
        }

    def _emit_event_markers(self, jump, jump_number):
        """Emit event markers for visualization."""
        self.jump_event_markers_signal.emit(self.event_markers(jump, jump_number))
