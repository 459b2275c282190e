from .base import BaseConnector, ConnectorError
from .gemini import GeminiImageConnector, GeneratedImage
from .graph import MicrosoftGraphConnector
from .apify import (
    ApifyClient,
    ApifyError,
    ApifyAuthError,
    ApifyActorNotFound,
    ApifyRunTimeout,
    TERMINAL_RUN_STATES,
)

__all__ = [
    "BaseConnector",
    "ConnectorError",
    "GeminiImageConnector",
    "GeneratedImage",
    "MicrosoftGraphConnector",
    "ApifyClient",
    "ApifyError",
    "ApifyAuthError",
    "ApifyActorNotFound",
    "ApifyRunTimeout",
    "TERMINAL_RUN_STATES",
]
