"""
Track policy registry.
"""

from __future__ import annotations

from mock_interview.models import SessionKind
from tracks.base import TrackPolicy
from tracks.coding import CodingTrackPolicy
from tracks.system_design import SystemDesignTrackPolicy


def _build_registry() -> dict[str, TrackPolicy]:
    policies: tuple[TrackPolicy, ...] = (
        CodingTrackPolicy(),
        SystemDesignTrackPolicy(),
    )
    return {policy.session_kind.value: policy for policy in policies}


_REGISTRY = _build_registry()


def available_tracks() -> tuple[str, ...]:
    """Return all supported session kinds."""
    return tuple(sorted(_REGISTRY.keys()))


def load_track(session_kind: SessionKind | str) -> TrackPolicy:
    """Load the policy for a session kind."""
    raw = session_kind.value if isinstance(session_kind, SessionKind) else session_kind
    normalized = (raw or "").strip().lower()
    if not normalized:
        raise ValueError("Session kind is empty.")

    policy = _REGISTRY.get(normalized)
    if policy is None:
        supported = ", ".join(available_tracks())
        raise ValueError(
            f"Unknown track '{session_kind}'. Supported tracks: {supported}."
        )
    return policy
