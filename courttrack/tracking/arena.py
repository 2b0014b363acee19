"""
Track Arena

Dense storage for live tracks. Tracks sit in a contiguous list; an
id -> slot map gives O(1) lookup and removal is an O(1) swap-remove.
Every insertion is stamped with a fresh generation, so a TrackHandle stays
valid while its track is stored (even after the track moves to another
slot) and never resolves once that track has been removed.
"""

from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional

from .track import Track


@dataclass(frozen=True)
class TrackHandle:
    """Stable reference to a track: identity plus the generation it was inserted at."""

    track_id: int
    generation: int


class TrackArena:
    """
    Dense array of tracks indexed by stable integer identity.

    Example:
        >>> arena = TrackArena()
        >>> handle = arena.insert(track)
        >>> arena.resolve(handle) is track
        True
    """

    def __init__(self) -> None:
        self._tracks: List[Track] = []
        self._slots: Dict[int, int] = {}
        self._generations: Dict[int, int] = {}
        self._next_generation = 0

    def __len__(self) -> int:
        return len(self._tracks)

    def __iter__(self) -> Iterator[Track]:
        return iter(self._tracks)

    def __contains__(self, track_id: int) -> bool:
        return track_id in self._slots

    def insert(self, track: Track) -> TrackHandle:
        """Append a track; its id must not already be present."""
        if track.id in self._slots:
            raise KeyError(f"Track {track.id} already in arena")

        self._slots[track.id] = len(self._tracks)
        self._tracks.append(track)
        self._generations[track.id] = self._next_generation
        self._next_generation += 1

        return TrackHandle(track.id, self._generations[track.id])

    def get(self, track_id: int) -> Optional[Track]:
        slot = self._slots.get(track_id)
        if slot is None:
            return None
        return self._tracks[slot]

    def handle(self, track_id: int) -> Optional[TrackHandle]:
        if track_id not in self._slots:
            return None
        return TrackHandle(track_id, self._generations[track_id])

    def resolve(self, handle: TrackHandle) -> Optional[Track]:
        """Track for a handle, or None if that insertion has been removed."""
        if self._generations.get(handle.track_id) != handle.generation:
            return None
        return self._tracks[self._slots[handle.track_id]]

    def remove(self, track_id: int) -> Optional[Track]:
        """
        Swap-remove a track by identity.

        The last track moves into the freed slot; its identity and handles
        are unaffected.

        Returns:
            Removed track, or None if not present
        """
        slot = self._slots.pop(track_id, None)
        if slot is None:
            return None
        del self._generations[track_id]

        removed = self._tracks[slot]
        moved = self._tracks.pop()
        if moved is not removed:
            self._tracks[slot] = moved
            self._slots[moved.id] = slot

        return removed

    def ids(self) -> List[int]:
        return [track.id for track in self._tracks]

    def clear(self) -> None:
        self._tracks.clear()
        self._slots.clear()
        self._generations.clear()
