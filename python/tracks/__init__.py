"""
Track policy entrypoints.
"""

from tracks.base import BaseTrackPolicy, TrackPolicy
from tracks.registry import available_tracks, load_track

__all__ = [
    "BaseTrackPolicy",
    "TrackPolicy",
    "available_tracks",
    "load_track",
]
