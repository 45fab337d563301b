"""
Response models for the TwitCasting API v2.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class ApiModel(BaseModel):
    """Base for API payloads: ids may arrive as numbers, extra fields are ignored."""

    model_config = ConfigDict(coerce_numbers_to_str=True, extra="ignore")


class Credentials(BaseModel):
    """OAuth2 application credentials."""

    model_config = ConfigDict(frozen=True)

    client_id: str
    client_secret: str


class Movie(ApiModel):
    """A broadcast. Its id is only valid while the user is live."""

    id: str
    user_id: Optional[str] = None
    title: Optional[str] = None
    is_live: Optional[bool] = None


class CurrentLiveResponse(ApiModel):
    movie: Movie


class CommentAuthor(ApiModel):
    id: Optional[str] = None
    screen_id: Optional[str] = None
    name: Optional[str] = None


class Comment(ApiModel):
    """A single chat comment."""

    id: str
    message: str
    created: Optional[int] = None  # Unix timestamp
    from_user: Optional[CommentAuthor] = None


class CommentsResponse(ApiModel):
    """Comments page, newest first."""

    movie_id: Optional[str] = None
    all_count: Optional[int] = None
    comments: list[Comment]


class ApiErrorDetail(ApiModel):
    code: int
    message: str
    details: Optional[Any] = None


class ErrorResponse(ApiModel):
    """Domain error returned in the response body."""

    error: ApiErrorDetail


class TokenResponse(ApiModel):
    access_token: str
    token_type: Optional[str] = None
    expires_in: Optional[int] = None
