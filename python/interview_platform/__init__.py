"""
Interview platform integration: configuration and backend adapters.
"""

from interview_platform.config import ClientConfig, load_client_config
from interview_platform.factory import ApiClients, build_api_clients
from interview_platform.realtime import WebSocketVoiceTransport

PLATFORM_NAME = "mock_interview"

__all__ = [
    "PLATFORM_NAME",
    "ApiClients",
    "ClientConfig",
    "WebSocketVoiceTransport",
    "build_api_clients",
    "load_client_config",
]
