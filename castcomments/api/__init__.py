"""
TwitCasting API v2 client.
"""

from castcomments.api.http import BASE_URL, TwitcastingClient, exchange_code
from castcomments.api.models import Comment, Credentials, Movie
from castcomments.api.exceptions import (
    CastCommentsError,
    ConfigurationError,
    OAuthError,
    ProtocolError,
    TransportError,
)

__all__ = [
    "BASE_URL",
    "TwitcastingClient",
    "exchange_code",
    "Comment",
    "Credentials",
    "Movie",
    "CastCommentsError",
    "ConfigurationError",
    "OAuthError",
    "ProtocolError",
    "TransportError",
]
