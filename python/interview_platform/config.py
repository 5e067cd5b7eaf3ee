"""
Client configuration.

Loads the backend URLs, credentials, state directory and session timings
from environment variables (optionally from a ``.env`` file next to the
``python/`` directory) with strict validation.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from mock_interview.controller import SessionTimings


_ENV_PATH = Path(__file__).parent.parent.parent / ".env"

DEFAULT_API_URL = "http://localhost:3001"
DEFAULT_STATE_DIR = "~/.mock_interview"
VOICE_WS_PATH = "/ws/interview"


@dataclass(frozen=True)
class ClientConfig:
    """Runtime config for one session client."""

    api_url: str
    ws_url: str
    auth_token: Optional[str]
    state_dir: Path
    http_timeout_seconds: float
    autosave_interval_seconds: float
    resume_threshold_seconds: int
    reconnect_delay_seconds: float
    intro_play_delay_seconds: float
    intro_timeout_seconds: float

    @property
    def voice_url(self) -> str:
        """Full realtime voice endpoint."""
        return self.ws_url.rstrip("/") + VOICE_WS_PATH

    def timings(self) -> SessionTimings:
        return SessionTimings(
            autosave_interval_seconds=self.autosave_interval_seconds,
            resume_threshold_seconds=self.resume_threshold_seconds,
            reconnect_delay_seconds=self.reconnect_delay_seconds,
            intro_play_delay_seconds=self.intro_play_delay_seconds,
            intro_timeout_seconds=self.intro_timeout_seconds,
        )


def derive_ws_url(api_url: str) -> str:
    """
    Map an HTTP base URL to its websocket counterpart.

    Example:
        >>> derive_ws_url("https://api.example.com/")
        'wss://api.example.com'
    """
    api_url = api_url.rstrip("/")
    if api_url.startswith("https://"):
        return "wss://" + api_url[len("https://") :]
    if api_url.startswith("http://"):
        return "ws://" + api_url[len("http://") :]
    raise RuntimeError(f"INTERVIEW_API_URL must start with http:// or https://. Got: {api_url}")


def _read(env: Mapping[str, str], name: str, default: str) -> str:
    value = (env.get(name, default) or "").strip()
    if not value:
        raise RuntimeError(f"{name} resolved to empty value.")
    return value


def _positive_float(env: Mapping[str, str], name: str, default: str) -> float:
    raw = _read(env, name, default)
    try:
        value = float(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be a number. Got: {raw}") from exc
    if value <= 0:
        raise RuntimeError(f"{name} must be positive. Got: {value}.")
    return value


def _positive_int(env: Mapping[str, str], name: str, default: str) -> int:
    raw = _read(env, name, default)
    try:
        value = int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer. Got: {raw}") from exc
    if value <= 0:
        raise RuntimeError(f"{name} must be positive. Got: {value}.")
    return value


def load_client_config(env: Optional[Mapping[str, str]] = None) -> ClientConfig:
    """
    Load client config with strict validation.

    Args:
        env: Variables to read. Defaults to ``os.environ`` after loading the
            ``.env`` file.

    Raises:
        RuntimeError: If any variable is empty or invalid.
    """
    if env is None:
        load_dotenv(_ENV_PATH)
        env = os.environ

    api_url = _read(env, "INTERVIEW_API_URL", DEFAULT_API_URL).rstrip("/")
    if not api_url.startswith(("http://", "https://")):
        raise RuntimeError(f"INTERVIEW_API_URL must start with http:// or https://. Got: {api_url}")

    ws_override = (env.get("INTERVIEW_WS_URL") or "").strip()
    if ws_override:
        if not ws_override.startswith(("ws://", "wss://")):
            raise RuntimeError(f"INTERVIEW_WS_URL must start with ws:// or wss://. Got: {ws_override}")
        ws_url = ws_override.rstrip("/")
    else:
        ws_url = derive_ws_url(api_url)

    auth_token = (env.get("INTERVIEW_AUTH_TOKEN") or "").strip() or None
    state_dir = Path(_read(env, "INTERVIEW_STATE_DIR", DEFAULT_STATE_DIR)).expanduser()

    return ClientConfig(
        api_url=api_url,
        ws_url=ws_url,
        auth_token=auth_token,
        state_dir=state_dir,
        http_timeout_seconds=_positive_float(env, "HTTP_TIMEOUT_SECONDS", "30"),
        autosave_interval_seconds=_positive_float(env, "AUTOSAVE_INTERVAL_SECONDS", "10"),
        resume_threshold_seconds=_positive_int(env, "RESUME_THRESHOLD_SECONDS", "5"),
        reconnect_delay_seconds=_positive_float(env, "RECONNECT_DELAY_SECONDS", "1"),
        intro_play_delay_seconds=_positive_float(env, "INTRO_PLAY_DELAY_SECONDS", "0.5"),
        intro_timeout_seconds=_positive_float(env, "INTRO_TIMEOUT_SECONDS", "30"),
    )
