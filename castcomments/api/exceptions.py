"""
Custom exceptions for the TwitCasting comment client.
"""

from typing import Optional


class CastCommentsError(Exception):
    """Base exception for all castcomments errors."""
    pass


class TransportError(CastCommentsError):
    """Network failure, timeout, or a response body that is not JSON."""
    pass


class ProtocolError(CastCommentsError):
    """Unexpected API error code, or a payload matching no known schema."""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class OAuthError(CastCommentsError):
    """Failed to exchange an authorization code for an access token."""
    pass


class ConfigurationError(CastCommentsError):
    """Missing or unreadable local configuration."""
    pass
