"""
Ballistic Kalman Filter for a Single High-Dynamics Object

Extends the constant-velocity filter with a binary flight mode so one
filter can follow both a thrown or bounced ball (parabolic arc) and a
held or rolling ball (plain constant velocity).

Frame coordinates are normalized with the origin at the top-left, so
"up" is negative y and gravity is a positive vertical acceleration.

Flight mode:
    enter (on predict)  vy < -launch_speed  or  |vy| > flight_speed
    exit  (on update)   observed |vy| < settle_speed
                        and |y - mid_frame_y| < settle_band
    bounce (on update)  vy > 0 before the update and |innovation_y| > bounce_innovation

The entry and exit speeds form a hysteresis band; exit is judged on the
observed vertical speed because the in-flight model keeps adding gravity
to a held ball.

Reference:
    - Bar-Shalom, Y. "Estimation with Applications to Tracking and Navigation", 2001, Ch. 6
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from .kalman import BALL_PROFILE, LinearKalmanFilter, NoiseProfile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BallisticParams:
    """
    Flight-mode tuning in normalized frame units.

    Attributes:
        gravity: Downward acceleration (frame heights / s^2)
        launch_speed: Upward speed that marks the object as airborne
        flight_speed: Vertical speed (either sign) that marks the object as airborne
        settle_speed: Observed vertical speed below which the object is controlled
        settle_band: Half-height of the mid-frame band where an object can settle
        mid_frame_y: Vertical centre of the settle band
        bounce_innovation: Vertical residual treated as a bounce while falling
        bounce_velocity_variance: vy variance assigned after a bounce
    """

    gravity: float = 2.0
    launch_speed: float = 0.5
    flight_speed: float = 1.0
    settle_speed: float = 0.3
    settle_band: float = 0.15
    mid_frame_y: float = 0.5
    bounce_innovation: float = 0.05
    bounce_velocity_variance: float = 1.0

    def to_dict(self) -> dict:
        return dict(self.__dict__)


class BallisticKalmanFilter(LinearKalmanFilter):
    """
    Constant-velocity filter with a gravity term while in flight.

    In flight:
        x_{k+1}  = x_k + vx * dt
        y_{k+1}  = y_k + vy * dt + 0.5 * g * dt^2
        vy_{k+1} = vy_k + g * dt

    Gravity is a known control input, so covariance propagation is the
    same as the CV model.

    Example:
        >>> kf = BallisticKalmanFilter((0.5, 0.9), velocity=(0.0, -2.0))
        >>> _ = kf.predict(1 / 30)
        >>> kf.in_flight
        True
    """

    def __init__(
        self,
        position: Tuple[float, float],
        velocity: Optional[Tuple[float, float]] = None,
        profile: Optional[NoiseProfile] = None,
        params: Optional[BallisticParams] = None,
    ) -> None:
        super().__init__(position, velocity, profile or BALL_PROFILE)
        self.params = params or BallisticParams()

        self.in_flight = False
        self.bounce_count = 0

        self._last_measurement: Optional[Tuple[float, float]] = (
            float(position[0]),
            float(position[1]),
        )
        self._time_since_measurement = 0.0

    def _is_airborne(self, vy: float) -> bool:
        return vy < -self.params.launch_speed or abs(vy) > self.params.flight_speed

    def predict(self, dt: Optional[float] = None) -> Tuple[float, float]:
        if dt is not None:
            self.dt = dt
        dt = self.dt

        vy = self.state.x[3]
        if not self.in_flight and self._is_airborne(vy):
            self.in_flight = True
            logger.debug("Flight mode entered (vy=%.3f)", vy)

        x = self.state.x
        x[0] += x[2] * dt
        if self.in_flight:
            g = self.params.gravity
            x[1] += x[3] * dt + 0.5 * g * dt * dt
            x[3] += g * dt
        else:
            x[1] += x[3] * dt

        self._propagate_covariance(dt)
        self._time_since_measurement += dt

        return self.position

    def update(self, measurement: Tuple[float, float]) -> Tuple[float, float]:
        innovation_y = float(self.innovation(measurement)[1])
        was_falling = self.state.x[3] > 0

        bounced = was_falling and abs(innovation_y) > self.params.bounce_innovation
        if bounced:
            # The previous vertical velocity no longer describes the object.
            self.state.P[3, 3] = max(self.state.P[3, 3], self.params.bounce_velocity_variance)
            self.in_flight = True
            self.bounce_count += 1
            logger.debug("Bounce detected (innovation_y=%.3f)", innovation_y)

        observed_vy = self._observed_vertical_speed(measurement)

        super().update(measurement)

        if self.in_flight and not bounced and observed_vy is not None:
            near_mid = abs(self.state.x[1] - self.params.mid_frame_y) < self.params.settle_band
            if abs(observed_vy) < self.params.settle_speed and near_mid:
                self.in_flight = False
                self.state.x[3] = observed_vy
                self.state.P[3, 3] = self.profile.initial_covariance[3]
                logger.debug("Flight mode exited at y=%.3f", self.state.x[1])

        self._last_measurement = (float(measurement[0]), float(measurement[1]))
        self._time_since_measurement = 0.0

        return self.position

    def _observed_vertical_speed(self, measurement: Tuple[float, float]) -> Optional[float]:
        if self._last_measurement is None or self._time_since_measurement <= 0:
            return None
        return (float(measurement[1]) - self._last_measurement[1]) / self._time_since_measurement

    @property
    def vertical_acceleration(self) -> float:
        """Acceleration applied on the next predict."""
        return self.params.gravity if self.in_flight else 0.0

    def expected_apex(self) -> Optional[Tuple[float, float]]:
        """
        Predicted (time_to_apex, apex_y) while rising in flight.

        Returns:
            None unless the object is in flight and moving upward
        """
        vy = self.state.x[3]
        g = self.params.gravity
        if not self.in_flight or vy >= 0 or g <= 0:
            return None
        t = -vy / g
        return (float(t), float(self.state.x[1] + vy * t + 0.5 * g * t * t))


def simulate_parabola(
    start: Tuple[float, float],
    velocity: Tuple[float, float],
    gravity: float,
    dt: float,
    n_steps: int,
) -> np.ndarray:
    """
    Ideal projectile positions under constant gravity.

    Returns:
        (n_steps, 2) array of [x, y] at t = 0, dt, ..., (n_steps - 1) * dt
    """
    t = np.arange(n_steps) * dt
    xs = start[0] + velocity[0] * t
    ys = start[1] + velocity[1] * t + 0.5 * gravity * t**2
    return np.column_stack([xs, ys])
