"""
Linear Kalman Filter for Image-Plane Object Tracking

Implements a Constant Velocity (CV) motion model over normalized frame
coordinates (0-1, origin top-left). One filter instance is owned by each
track and carries its own state.

State Vector: [x, y, vx, vy]^T
    - x, y: Box centre in normalized frame units
    - vx, vy: Velocity components (frame units per second)

Measurement: [x, y] (detector box centre)

Reference:
    - Bar-Shalom, Y. "Estimation with Applications to Tracking and Navigation", 2001
    - Bewley, A. et al. "Simple Online and Realtime Tracking", ICIP 2016
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from . import linalg

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NoiseProfile:
    """
    Filter tuning for one class of object.

    Attributes:
        initial_covariance: Diagonal of P0 [x, y, vx, vy]. Position is known
            from the first detection, velocity is not.
        process_noise: Diagonal of Q [x, y, vx, vy]. Higher velocity terms
            allow sharper direction changes.
        measurement_noise: Variance of each detected coordinate (detector jitter)
        covariance_limits: Upper bounds for the diagonal of P after every step
    """

    initial_covariance: Tuple[float, float, float, float] = (0.01, 0.01, 0.5, 0.5)
    process_noise: Tuple[float, float, float, float] = (0.0002, 0.0002, 0.02, 0.015)
    measurement_noise: float = 0.004
    covariance_limits: Tuple[float, float, float, float] = (0.5, 0.5, 2.0, 2.0)

    def to_dict(self) -> dict:
        """Convert profile to dictionary for serialization."""
        return {
            "initial_covariance": list(self.initial_covariance),
            "process_noise": list(self.process_noise),
            "measurement_noise": self.measurement_noise,
            "covariance_limits": list(self.covariance_limits),
        }


# Players accelerate gradually; vertical motion (jumping) is rarer than lateral.
PLAYER_PROFILE = NoiseProfile()

# A ball changes direction abruptly and is detected with less jitter.
BALL_PROFILE = NoiseProfile(
    initial_covariance=(0.01, 0.01, 1.0, 1.0),
    process_noise=(0.001, 0.001, 0.05, 0.05),
    measurement_noise=0.002,
)


@dataclass
class KalmanState:
    """
    State container for Kalman Filter.

    Attributes:
        x: State vector [x, y, vx, vy]
        P: State covariance matrix (4x4)
    """

    x: np.ndarray  # State vector
    P: np.ndarray  # Covariance matrix

    def copy(self) -> "KalmanState":
        return KalmanState(x=self.x.copy(), P=self.P.copy())


class LinearKalmanFilter:
    """
    Linear Kalman Filter for 2D box-centre tracking.

    Uses Constant Velocity (CV) motion model:
        x_{k+1} = x_k + vx * dt
        y_{k+1} = y_k + vy * dt
        vx_{k+1} = vx_k (constant)
        vy_{k+1} = vy_k (constant)

    Measurement model:
        z = [x, y] (position only from detector)

    Example:
        >>> kf = LinearKalmanFilter((0.5, 0.5))
        >>> kf.predict(1 / 30)
        (0.5, 0.5)
        >>> _ = kf.update((0.51, 0.5))
    """

    # Measurement matrix H: We only observe position [x, y]
    H = np.array([[1, 0, 0, 0], [0, 1, 0, 0]], dtype=np.float64)

    def __init__(
        self,
        position: Tuple[float, float],
        velocity: Optional[Tuple[float, float]] = None,
        profile: Optional[NoiseProfile] = None,
    ) -> None:
        """
        Initialize filter at a first observed position.

        Args:
            position: Initial position (x, y) in normalized frame units
            velocity: Initial velocity (vx, vy), defaults to (0, 0)
            profile: Noise tuning, defaults to PLAYER_PROFILE
        """
        self.profile = profile or PLAYER_PROFILE

        if velocity is None:
            velocity = (0.0, 0.0)

        self.Q = np.diag(np.asarray(self.profile.process_noise, dtype=np.float64))
        self.R = np.eye(2) * self.profile.measurement_noise
        self.limits = tuple(self.profile.covariance_limits)

        self.state = KalmanState(
            x=np.array([position[0], position[1], velocity[0], velocity[1]], dtype=np.float64),
            P=np.diag(np.asarray(self.profile.initial_covariance, dtype=np.float64)),
        )
        self.dt = 1.0 / 30.0

    def _get_transition_matrix(self, dt: float) -> np.ndarray:
        """
        Get state transition matrix F for time step dt.

        Constant velocity model:
        | 1  0  dt  0 |
        | 0  1  0  dt |
        | 0  0  1   0 |
        | 0  0  0   1 |
        """
        return np.array(
            [[1, 0, dt, 0], [0, 1, 0, dt], [0, 0, 1, 0], [0, 0, 0, 1]], dtype=np.float64
        )

    def _propagate_covariance(self, dt: float) -> None:
        """P = F * P * F^T + Q, then clamp the diagonal."""
        F = self._get_transition_matrix(dt)
        FP = linalg.mat_mul(F, self.state.P)
        P = linalg.mat_add(linalg.mat_mul(FP, linalg.transpose(F)), self.Q)
        self.state.P = linalg.clamp_diagonal(P, self.limits)

    def predict(self, dt: Optional[float] = None) -> Tuple[float, float]:
        """
        Predict state to next time step.

        Prediction equations:
            x_pred = F * x
            P_pred = F * P * F^T + Q

        Args:
            dt: Time step (seconds); reuses the previous step when None

        Returns:
            Predicted position (x, y)
        """
        if dt is not None:
            self.dt = dt

        F = self._get_transition_matrix(self.dt)
        self.state.x = linalg.mat_vec(F, self.state.x)
        self._propagate_covariance(self.dt)

        return self.position

    def innovation(self, measurement: Tuple[float, float]) -> np.ndarray:
        """Measurement residual z - H * x against the current state."""
        z = np.asarray(measurement, dtype=np.float64)
        return z - linalg.mat_vec(self.H, self.state.x)

    def update(self, measurement: Tuple[float, float]) -> Tuple[float, float]:
        """
        Update state with measurement.

        Update equations:
            y = z - H * x          (innovation)
            S = H * P * H^T + R    (innovation covariance)
            K = P * H^T * S^-1     (Kalman gain)
            x_new = x + K * y
            P_new = (I - K * H) * P

        If S is singular the measurement is adopted directly as the new
        position so the track still moves this frame.

        Args:
            measurement: Position measurement (x, y)

        Returns:
            Corrected position (x, y)
        """
        y = self.innovation(measurement)

        HT = linalg.transpose(self.H)
        S = linalg.mat_add(linalg.mat_mul(linalg.mat_mul(self.H, self.state.P), HT), self.R)
        S_inv = linalg.inverse_2x2(S)

        if S_inv is None:
            logger.debug("Singular innovation covariance, adopting measurement %s", measurement)
            self.state.x[0] = measurement[0]
            self.state.x[1] = measurement[1]
            return self.position

        K = linalg.mat_mul(linalg.mat_mul(self.state.P, HT), S_inv)

        self.state.x = self.state.x + linalg.mat_vec(K, y)

        I_KH = linalg.mat_sub(np.eye(4), linalg.mat_mul(K, self.H))
        P = linalg.mat_mul(I_KH, self.state.P)
        self.state.P = linalg.clamp_diagonal(P, self.limits)

        return self.position

    @property
    def position(self) -> Tuple[float, float]:
        """Current position estimate (x, y)."""
        return (float(self.state.x[0]), float(self.state.x[1]))

    @property
    def velocity(self) -> Tuple[float, float]:
        """Current velocity estimate (vx, vy) in frame units per second."""
        return (float(self.state.x[2]), float(self.state.x[3]))

    @property
    def speed(self) -> float:
        return float(np.hypot(self.state.x[2], self.state.x[3]))

    @property
    def position_uncertainty(self) -> float:
        """sqrt(P_xx + P_yy), used for reliability scoring."""
        return float(np.sqrt(self.state.P[0, 0] + self.state.P[1, 1]))
