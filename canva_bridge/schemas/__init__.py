"""Public schema exports."""

from .auth import OAuthCallbackParams
from .canva import LaunchRequest, LaunchResponse, ReturnRequest, ReturnResponse

__all__ = [
    "LaunchRequest",
    "LaunchResponse",
    "OAuthCallbackParams",
    "ReturnRequest",
    "ReturnResponse",
]
