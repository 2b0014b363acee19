"""
courttrack Track Manager Test Suite

End-to-end tests of the per-frame predict / match / update / lifecycle
cycle.

Test ID | Description                         | Expected
--------|-------------------------------------|-------------------------------
1       | Confirmation timeline               | tentative f1-f3, confirmed f4
2       | Deletion after max misses           | gone on 15th empty frame
3       | Crossing players keep identity      | no id swap over 60 frames
4       | Track cap                           | never more than max_tracks
5       | Lost-track recovery (second pass)   | same id after re-detection
6       | Primary recovery mode and timeout   | cleared after 2 s
7       | Publication order and aggregates    | sorted by reliability
"""

import dataclasses
import os
import sys
import threading

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from courttrack.errors import ConfigError
from courttrack.tracking.ballistic import BallisticKalmanFilter
from courttrack.tracking.detection import BoundingBox, Classification, Detection
from courttrack.tracking.kalman import LinearKalmanFilter
from courttrack.tracking.track import TrackStatus
from courttrack.tracking.tracker import TrackerConfig, TrackManager

DT = 1.0 / 30.0


def det_at(cx, cy, w=0.1, h=0.2, cls=Classification.PLAYER):
    return Detection(BoundingBox.from_center(cx, cy, w, h), classification=cls)


def run_static(manager, center=(0.45, 0.5), frames=4, **kwargs):
    """Feed the same detection for a number of frames."""
    result = []
    for _ in range(frames):
        result = manager.update([det_at(*center, **kwargs)], dt=DT)
    return result


# =============================================================================
# TEST 1-2: Lifecycle Timeline
# =============================================================================


class TestLifecycleTimeline:
    def test_empty_frames(self):
        manager = TrackManager()

        assert manager.update([], dt=DT) == []
        assert manager.frame_count == 1

    def test_confirmation_timeline(self):
        """Spawned on frame 1, confirmed on the third match (frame 4)"""
        manager = TrackManager()
        statuses = []
        for _ in range(4):
            tracks = manager.update([det_at(0.45, 0.5)], dt=DT)
            assert len(tracks) == 1
            assert tracks[0].id == 1
            statuses.append(tracks[0].status)

        assert statuses == [
            TrackStatus.TENTATIVE,
            TrackStatus.TENTATIVE,
            TrackStatus.TENTATIVE,
            TrackStatus.CONFIRMED,
        ]

    def test_deleted_after_fifteen_empty_frames(self):
        manager = TrackManager()
        run_static(manager)

        for _ in range(14):
            manager.update([], dt=DT)
        assert manager.get_track_by_id(1) is not None

        manager.update([], dt=DT)
        assert manager.get_track_by_id(1) is None
        assert manager.tracks == []

    def test_handle_survives_reaping_of_other_track(self):
        manager = TrackManager()
        for _ in range(4):
            manager.update([det_at(0.2, 0.5), det_at(0.7, 0.5)], dt=DT)
        left = next(t for t in manager.tracks if t.position[0] < 0.5)
        right = next(t for t in manager.tracks if t.position[0] > 0.5)
        left_handle = manager.arena.handle(left.id)
        right_handle = manager.arena.handle(right.id)

        for _ in range(15):
            manager.update([det_at(0.7, 0.5)], dt=DT)

        assert manager.arena.ids() == [right.id]
        assert manager.arena.resolve(left_handle) is None
        assert manager.arena.resolve(right_handle) is right

    def test_lost_tracks_not_published(self):
        manager = TrackManager()
        run_static(manager)

        for _ in range(7):
            published = manager.update([], dt=DT)
        assert [t.id for t in published] == [1]

        published = manager.update([], dt=DT)
        assert published == []
        assert manager.get_track_by_id(1).status == TrackStatus.LOST

    def test_ids_never_reused(self):
        manager = TrackManager()
        run_static(manager)
        for _ in range(15):
            manager.update([], dt=DT)

        tracks = manager.update([det_at(0.45, 0.5)], dt=DT)
        assert tracks[0].id == 2
        assert manager.tracks_created == 2

    def test_short_dropout_keeps_identity(self):
        manager = TrackManager()
        run_static(manager)
        for _ in range(5):
            manager.update([], dt=DT)

        tracks = run_static(manager, frames=1)
        assert [t.id for t in tracks] == [1]
        assert tracks[0].status == TrackStatus.CONFIRMED

    def test_invalid_dt_uses_default(self):
        manager = TrackManager()
        manager.update([det_at(0.45, 0.5)], dt=float("nan"))
        manager.update([det_at(0.45, 0.5)], dt=-1.0)

        assert manager.clock == pytest.approx(2 * manager.config.default_dt)


# =============================================================================
# TEST 3: Identity Through Crossing
# =============================================================================


class TestCrossing:
    def test_crossing_players_keep_identity(self):
        manager = TrackManager()

        for k in range(1, 61):
            dets = [
                det_at(0.2 + 0.3 * k * DT, 0.48),
                det_at(0.8 - 0.3 * k * DT, 0.52),
            ]
            tracks = manager.update(dets, dt=DT)
            assert sorted(t.id for t in tracks) == [1, 2]

        assert manager.tracks_created == 2
        track_a = manager.get_track_by_id(1)
        track_b = manager.get_track_by_id(2)
        assert track_a.position[0] > 0.7
        assert track_b.position[0] < 0.3
        assert track_a.position[1] == pytest.approx(0.48, abs=0.01)
        assert track_b.position[1] == pytest.approx(0.52, abs=0.01)


# =============================================================================
# TEST 4: Capacity
# =============================================================================


class TestCapacity:
    @staticmethod
    def grid():
        return [
            det_at(0.1 + 0.2 * i, 0.1 + 0.2 * j, w=0.05, h=0.05)
            for j in range(4)
            for i in range(5)
        ]

    def test_cap_holds_under_overload(self):
        manager = TrackManager()
        assert len(manager.update(self.grid(), dt=DT)) == 20

        extra = [det_at(x, 0.9, w=0.05, h=0.05) for x in (0.2, 0.5, 0.8)]
        for _ in range(5):
            tracks = manager.update(self.grid() + extra, dt=DT)
            assert len(tracks) == 20
            assert len(manager.tracks) == 20

        assert manager.tracks_created == 20

    def test_custom_cap(self):
        manager = TrackManager(TrackerConfig(max_tracks=5))
        tracks = manager.update(self.grid(), dt=DT)

        assert len(tracks) == 5
        assert sorted(t.id for t in tracks) == [1, 2, 3, 4, 5]


# =============================================================================
# TEST 5: Lost-Track Recovery
# =============================================================================


class TestRecovery:
    def test_recovered_near_virtual_trajectory(self):
        """Re-detection with low IoU is matched by distance to the virtual point"""
        manager = TrackManager()
        for k in range(4):
            manager.update([det_at(0.30 + 0.01 * k, 0.5)], dt=DT)

        for _ in range(8):
            manager.update([], dt=DT)
        track = manager.get_track_by_id(1)
        assert track.status == TrackStatus.LOST

        # Frame 13: virtual point is 0.33 + 0.3 * 9 / 30 = 0.42
        big = Detection(BoundingBox.from_center(0.42, 0.5, 0.3, 0.3))
        assert track.observation_centric_box.iou(big.bbox) < manager.config.iou_threshold

        tracks = manager.update([big], dt=DT)

        assert [t.id for t in tracks] == [1]
        assert tracks[0].status == TrackStatus.CONFIRMED
        assert manager.tracks_created == 1

    def test_far_detection_spawns_new_track(self):
        manager = TrackManager()
        run_static(manager, center=(0.2, 0.5))
        for _ in range(8):
            manager.update([], dt=DT)

        tracks = manager.update([det_at(0.8, 0.5)], dt=DT)

        assert [t.id for t in tracks] == [2]
        assert manager.get_track_by_id(1).status == TrackStatus.LOST


# =============================================================================
# TEST 6: Primary Track Recovery Mode
# =============================================================================


class TestPrimaryRecovery:
    def test_unknown_primary_rejected(self):
        manager = TrackManager()

        with pytest.raises(KeyError):
            manager.primary_track_id = 42

    def test_recovery_mode_entered_and_exited(self):
        manager = TrackManager()
        run_static(manager)
        manager.primary_track_id = 1

        for _ in range(8):
            manager.update([], dt=DT)
        assert manager.in_recovery_mode is True

        run_static(manager, frames=1)

        assert manager.in_recovery_mode is False
        assert manager.primary_track_id == 1

    def test_recovery_timeout_clears_primary(self):
        manager = TrackManager()
        run_static(manager)
        manager.primary_track_id = 1

        for _ in range(8):
            manager.update([], dt=DT)
        assert manager.in_recovery_mode is True
        started = manager.clock

        # Primary is deleted (frame 15) but the recovery window stays open
        while manager.clock - started < 1.5:
            manager.update([], dt=DT)
        assert manager.get_track_by_id(1) is None
        assert manager.in_recovery_mode is True
        assert manager.primary_track_id == 1

        while manager.clock - started < 2.5:
            manager.update([], dt=DT)
        assert manager.in_recovery_mode is False
        assert manager.primary_track_id is None
        assert manager.recovery_elapsed is None

    def test_setting_primary_resets_recovery(self):
        manager = TrackManager()
        run_static(manager)
        manager.primary_track_id = 1
        for _ in range(8):
            manager.update([], dt=DT)

        manager.primary_track_id = None

        assert manager.in_recovery_mode is False


# =============================================================================
# TEST 7: Publication and Aggregates
# =============================================================================


class TestPublication:
    def test_sorted_by_reliability(self):
        manager = TrackManager()
        for _ in range(4):
            manager.update([det_at(0.2, 0.5), det_at(0.8, 0.5)], dt=DT)
        for _ in range(3):
            tracks = manager.update([det_at(0.8, 0.5)], dt=DT)

        assert [t.id for t in tracks] == [2, 1]
        scores = [t.reliability_score for t in tracks]
        assert scores == sorted(scores, reverse=True)

    def test_active_tracks_matches_last_publication(self):
        manager = TrackManager()
        published = run_static(manager)

        assert manager.active_tracks == published
        assert manager.confirmed_track_count == 1
        assert manager.average_reliability == pytest.approx(1.0)

    def test_ballistic_filter_for_ball(self):
        manager = TrackManager()
        manager.update([det_at(0.5, 0.5, 0.03, 0.03, cls=Classification.BALL)], dt=DT)
        manager.update([det_at(0.3, 0.5)], dt=DT)

        ball = manager.get_track_by_id(1)
        player = manager.get_track_by_id(2)
        assert isinstance(ball.kalman, BallisticKalmanFilter)
        assert type(player.kalman) is LinearKalmanFilter

    def test_count_by_classification(self):
        manager = TrackManager()
        manager.update(
            [
                det_at(0.2, 0.5),
                det_at(0.5, 0.5, cls=Classification.REFEREE),
                det_at(0.8, 0.5),
            ],
            dt=DT,
        )
        counts = manager.count_by_classification()

        assert counts[Classification.PLAYER] == 2
        assert counts[Classification.REFEREE] == 1

    def test_action_center_defaults_to_frame_center(self):
        assert TrackManager().action_center() == (0.5, 0.5)

    def test_action_center_weights_primary(self):
        manager = TrackManager()
        manager.update([det_at(0.3, 0.5), det_at(0.7, 0.5)], dt=DT)

        assert manager.action_center()[0] == pytest.approx(0.5)

        manager.primary_track_id = 1
        assert manager.action_center()[0] == pytest.approx((0.3 * 2 + 0.7) / 3)

    def test_action_center_filters_non_players(self):
        manager = TrackManager()
        manager.update([det_at(0.3, 0.5), det_at(0.7, 0.5, cls=Classification.REFEREE)], dt=DT)

        assert manager.action_center()[0] == pytest.approx(0.3)
        assert manager.action_center(filter_players=False)[0] == pytest.approx(
            (0.3 + 0.7 * 0.3) / 1.3
        )

    def test_group_bounding_box(self):
        manager = TrackManager()
        assert manager.group_bounding_box().to_tuple() == (0.25, 0.25, 0.5, 0.5)

        manager.update([det_at(0.3, 0.5), det_at(0.7, 0.5)], dt=DT)
        box = manager.group_bounding_box()

        assert box.to_tuple() == pytest.approx((0.2, 0.35, 0.6, 0.3))

    def test_reset(self):
        manager = TrackManager()
        run_static(manager)
        manager.primary_track_id = 1
        manager.reset()

        assert manager.tracks == []
        assert manager.active_tracks == []
        assert manager.primary_track_id is None
        assert manager.clock == 0.0
        assert manager.update([det_at(0.5, 0.5)], dt=DT)[0].id == 1

    def test_concurrent_readers(self):
        manager = TrackManager()
        errors = []
        done = threading.Event()

        def reader():
            while not done.is_set():
                try:
                    for snap in manager.active_tracks:
                        assert snap.id >= 1
                except Exception as e:  # surfaced in the main thread
                    errors.append(e)

        thread = threading.Thread(target=reader)
        thread.start()
        for k in range(100):
            manager.update([det_at(0.2 + 0.002 * k, 0.5)], dt=DT)
        done.set()
        thread.join()

        assert errors == []


class TestTrackerConfig:
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_tracks": 0},
            {"confirm_hits": 0},
            {"max_misses": 0},
            {"iou_threshold": 1.5},
            {"reliability_threshold": -0.1},
            {"recovery_timeout": -1.0},
            {"default_dt": 0.0},
        ],
    )
    def test_invalid_values_rejected(self, kwargs):
        with pytest.raises(ConfigError):
            TrackerConfig(**kwargs)

    def test_profile_lookup(self):
        config = TrackerConfig()

        assert config.profile_for(Classification.REFEREE) is config.default_profile
        assert config.profile_for(Classification.BALL) is not config.default_profile

    def test_shared_profiles_are_immutable(self):
        a = TrackerConfig()
        b = TrackerConfig()

        with pytest.raises(dataclasses.FrozenInstanceError):
            a.default_profile.measurement_noise = 1.0
        with pytest.raises(dataclasses.FrozenInstanceError):
            a.ballistic.gravity = 9.8

        assert b.default_profile.measurement_noise == pytest.approx(0.004)
        assert b.ballistic.gravity == pytest.approx(2.0)
