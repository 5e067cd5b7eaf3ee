"""
HTTP adapters for the interview backend.
"""

from interview_platform.clients.evaluations import HttpEvaluationRequester
from interview_platform.clients.execution import HttpExecutionClient
from interview_platform.clients.http import ApiHttpClient
from interview_platform.clients.interviews import HttpInterviewsApi
from interview_platform.clients.voice import HttpIntroductionSource

__all__ = [
    "ApiHttpClient",
    "HttpEvaluationRequester",
    "HttpExecutionClient",
    "HttpInterviewsApi",
    "HttpIntroductionSource",
]
