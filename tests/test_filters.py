"""
courttrack Motion Filter Test Suite

Tests for the linear-algebra helpers, the constant-velocity Kalman filter
and the ballistic (gravity) variant.

Test ID | Description                       | Reference              | Tolerance
--------|-----------------------------------|------------------------|-----------
1       | 2x2 inverse / singular detection  | A * A^-1 = I           | 1e-12
2       | CV prediction                     | x = x0 + v*t           | 1e-12
3       | CV convergence on noisy track     | truth velocity         | 0.02
4       | Covariance clamp                  | diag(P) <= limits      | exact
5       | Singular S fallback               | position = measurement | exact
6       | Flight entry / exit hysteresis    | launch / settle speeds | state
7       | Ballistic prediction              | y = y0 + vy*t + g*t²/2 | 1e-9
8       | Bounce detection                  | falling + residual     | state

References:
    - Welch & Bishop (2006). "An Introduction to the Kalman Filter"
    - Bar-Shalom (2001). "Estimation with Applications to Tracking"
"""

import os
import sys

import numpy as np
import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from courttrack.tracking import linalg
from courttrack.tracking.ballistic import (
    BallisticKalmanFilter,
    BallisticParams,
    simulate_parabola,
)
from courttrack.tracking.kalman import (
    BALL_PROFILE,
    PLAYER_PROFILE,
    LinearKalmanFilter,
    NoiseProfile,
)

DT = 1.0 / 30.0

# =============================================================================
# TEST 1: Linear Algebra Kernel
# =============================================================================


class TestLinalg:
    """Small dense helpers used by the filters."""

    def test_inverse_2x2(self):
        A = np.array([[4.0, 1.0], [2.0, 3.0]])
        inv = linalg.inverse_2x2(A)

        assert inv is not None
        np.testing.assert_allclose(A @ inv, np.eye(2), atol=1e-12)

    def test_inverse_2x2_singular_returns_none(self):
        assert linalg.inverse_2x2(np.array([[1.0, 2.0], [2.0, 4.0]])) is None
        assert linalg.inverse_2x2(np.zeros((2, 2))) is None

    def test_inverse_2x2_non_finite_returns_none(self):
        assert linalg.inverse_2x2(np.array([[np.nan, 0.0], [0.0, 1.0]])) is None

    def test_clamp_diagonal(self):
        P = np.diag([1.0, 0.1, 5.0, np.inf])
        linalg.clamp_diagonal(P, (0.5, 0.5, 2.0, 2.0))

        np.testing.assert_array_equal(np.diag(P), [0.5, 0.1, 2.0, 2.0])

    def test_matrix_helpers(self):
        A = linalg.as_matrix([[1, 2], [3, 4]])
        x = linalg.as_matrix([1, 1])

        np.testing.assert_array_equal(linalg.mat_vec(A, x), [3.0, 7.0])
        np.testing.assert_array_equal(linalg.transpose(A), [[1.0, 3.0], [2.0, 4.0]])
        np.testing.assert_array_equal(linalg.mat_sub(linalg.mat_add(A, A), A), A)
        np.testing.assert_array_equal(linalg.mat_mul(A, np.eye(2)), A)


# =============================================================================
# TEST 2-5: Constant Velocity Kalman Filter
# =============================================================================


class TestLinearKalmanFilter:
    """
    Validate the CV filter.

    Reference: x_{k+1} = x_k + v * dt
    """

    def test_initial_state(self):
        kf = LinearKalmanFilter((0.4, 0.6))

        assert kf.position == (0.4, 0.6)
        assert kf.velocity == (0.0, 0.0)
        assert kf.state.P[0, 0] == pytest.approx(PLAYER_PROFILE.initial_covariance[0])

    def test_predict_constant_velocity(self):
        kf = LinearKalmanFilter((0.5, 0.5), velocity=(0.3, -0.15))
        x, y = kf.predict(0.1)

        assert x == pytest.approx(0.53)
        assert y == pytest.approx(0.485)

    def test_predict_reuses_last_dt(self):
        kf = LinearKalmanFilter((0.0, 0.0), velocity=(1.0, 0.0))
        kf.predict(0.1)
        kf.predict()

        assert kf.position[0] == pytest.approx(0.2)

    def test_update_moves_towards_measurement(self):
        kf = LinearKalmanFilter((0.5, 0.5))
        kf.predict(DT)
        x, y = kf.update((0.6, 0.5))

        assert 0.5 < x < 0.6
        assert y == pytest.approx(0.5)

    def test_converges_on_noisy_track(self):
        """Low-noise detections of a CV target recover its velocity"""
        profile = NoiseProfile(
            process_noise=(1e-6, 1e-6, 1e-5, 1e-5),
            measurement_noise=0.002**2,
        )
        rng = np.random.default_rng(42)
        start = np.array([0.3, 0.6])
        velocity = np.array([0.2, -0.1])

        kf = LinearKalmanFilter(tuple(start), profile=profile)
        for k in range(1, 91):
            truth = start + velocity * k * DT
            kf.predict(DT)
            kf.update(tuple(truth + rng.normal(0.0, 0.002, 2)))

        final = start + velocity * 90 * DT
        assert kf.velocity[0] == pytest.approx(0.2, abs=0.02)
        assert kf.velocity[1] == pytest.approx(-0.1, abs=0.02)
        assert kf.position[0] == pytest.approx(final[0], abs=0.01)
        assert kf.position[1] == pytest.approx(final[1], abs=0.01)

    def test_converges_without_noise(self):
        kf = LinearKalmanFilter((0.2, 0.5))
        for k in range(1, 61):
            kf.predict(DT)
            kf.update((0.2 + 0.25 * k * DT, 0.5))

        assert kf.velocity[0] == pytest.approx(0.25, abs=0.01)
        assert kf.speed == pytest.approx(0.25, abs=0.01)

    def test_covariance_clamped_without_updates(self):
        kf = LinearKalmanFilter((0.5, 0.5))
        for _ in range(1000):
            kf.predict(DT)

        diag = np.diag(kf.state.P)
        limits = np.array(PLAYER_PROFILE.covariance_limits)
        assert np.all(np.isfinite(kf.state.P))
        assert np.all(diag <= limits)

    def test_singular_innovation_adopts_measurement(self):
        profile = NoiseProfile(
            initial_covariance=(0.0, 0.0, 0.0, 0.0),
            process_noise=(0.0, 0.0, 0.0, 0.0),
            measurement_noise=0.0,
        )
        kf = LinearKalmanFilter((0.5, 0.5), profile=profile)
        kf.predict(DT)
        position = kf.update((0.7, 0.2))

        assert position == (0.7, 0.2)

    def test_position_uncertainty_shrinks_with_updates(self):
        kf = LinearKalmanFilter((0.5, 0.5))
        before = kf.position_uncertainty
        for _ in range(10):
            kf.predict(DT)
            kf.update((0.5, 0.5))

        assert kf.position_uncertainty < before

    def test_state_copy_is_independent(self):
        kf = LinearKalmanFilter((0.5, 0.5))
        saved = kf.state.copy()
        kf.predict(DT)
        kf.update((0.6, 0.6))

        assert saved.x[0] == 0.5


# =============================================================================
# TEST 6-8: Ballistic Filter
# =============================================================================


class TestFlightMode:
    """Entry and exit hysteresis of the gravity term."""

    def test_starts_grounded(self):
        kf = BallisticKalmanFilter((0.5, 0.5))

        assert kf.in_flight is False
        assert kf.vertical_acceleration == 0.0

    def test_uses_ball_profile_by_default(self):
        kf = BallisticKalmanFilter((0.5, 0.5))

        assert kf.profile is BALL_PROFILE

    def test_upward_launch_enters_flight(self):
        kf = BallisticKalmanFilter((0.5, 0.8), velocity=(0.0, -0.6))
        kf.predict(DT)

        assert kf.in_flight is True

    def test_slow_upward_motion_stays_grounded(self):
        kf = BallisticKalmanFilter((0.5, 0.8), velocity=(0.0, -0.4))
        kf.predict(DT)

        assert kf.in_flight is False

    def test_fast_fall_enters_flight(self):
        kf = BallisticKalmanFilter((0.5, 0.2), velocity=(0.0, 1.2))
        kf.predict(DT)

        assert kf.in_flight is True

    def test_slow_fall_stays_grounded(self):
        kf = BallisticKalmanFilter((0.5, 0.2), velocity=(0.0, 0.8))
        kf.predict(DT)

        assert kf.in_flight is False

    def test_settles_when_held_mid_frame(self):
        """A ball caught and held at mid-frame leaves flight mode"""
        kf = BallisticKalmanFilter((0.5, 0.5), velocity=(0.0, -2.0))
        kf.predict(DT)
        assert kf.in_flight is True

        for _ in range(30):
            kf.update((0.5, 0.5))
            kf.predict(DT)

        assert kf.in_flight is False
        assert abs(kf.velocity[1]) < BallisticParams().settle_speed

    def test_does_not_settle_far_from_mid_frame(self):
        kf = BallisticKalmanFilter((0.5, 0.1), velocity=(0.0, -2.0))
        kf.predict(DT)
        kf.update((0.5, 0.1))

        assert kf.in_flight is True


class TestBallisticPrediction:
    """
    Validate the gravity term.

    Reference: y = y0 + vy*t + 0.5*g*t²
    """

    def test_predict_only_follows_parabola(self):
        params = BallisticParams(gravity=6.0)
        kf = BallisticKalmanFilter((0.2, 0.9), velocity=(0.3, -3.0), params=params)
        expected = simulate_parabola((0.2, 0.9), (0.3, -3.0), 6.0, DT, 31)

        for k in range(1, 31):
            x, y = kf.predict(DT)
            assert x == pytest.approx(expected[k, 0], abs=1e-9)
            assert y == pytest.approx(expected[k, 1], abs=1e-9)

    def test_tracks_parabola_better_than_cv(self):
        """Gravity-aware prediction beats constant velocity on a thrown ball"""
        params = BallisticParams(gravity=6.0)
        path = simulate_parabola((0.2, 0.9), (0.3, -3.0), 6.0, DT, 31)

        ballistic = BallisticKalmanFilter(tuple(path[0]), params=params)
        cv = LinearKalmanFilter(tuple(path[0]), profile=BALL_PROFILE)

        ballistic_errors = []
        cv_errors = []
        for k in range(1, 31):
            by = ballistic.predict(DT)[1]
            cy = cv.predict(DT)[1]
            if k >= 10:
                ballistic_errors.append(abs(by - path[k, 1]))
                cv_errors.append(abs(cy - path[k, 1]))
            ballistic.update(tuple(path[k]))
            cv.update(tuple(path[k]))

        assert np.mean(ballistic_errors) < np.mean(cv_errors)

    def test_expected_apex(self):
        kf = BallisticKalmanFilter((0.5, 0.9), velocity=(0.0, -2.0))
        kf.in_flight = True
        t, apex_y = kf.expected_apex()

        assert t == pytest.approx(1.0)
        assert apex_y == pytest.approx(-0.1)

    def test_no_apex_when_falling(self):
        kf = BallisticKalmanFilter((0.5, 0.2), velocity=(0.0, 2.0))
        kf.predict(DT)

        assert kf.in_flight is True
        assert kf.expected_apex() is None


class TestBounce:
    """Large vertical residual while falling is treated as a bounce."""

    def test_bounce_detected(self):
        kf = BallisticKalmanFilter((0.5, 0.3), velocity=(0.0, 1.5))
        _, predicted_y = kf.predict(DT)
        kf.update((0.5, predicted_y - 0.1))

        assert kf.bounce_count == 1
        assert kf.in_flight is True

    def test_small_residual_is_not_a_bounce(self):
        kf = BallisticKalmanFilter((0.5, 0.3), velocity=(0.0, 1.5))
        _, predicted_y = kf.predict(DT)
        kf.update((0.5, predicted_y + 0.01))

        assert kf.bounce_count == 0

    def test_rising_ball_never_bounces(self):
        kf = BallisticKalmanFilter((0.5, 0.8), velocity=(0.0, -1.5))
        _, predicted_y = kf.predict(DT)
        kf.update((0.5, predicted_y + 0.1))

        assert kf.bounce_count == 0
