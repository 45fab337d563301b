"""Configuration model for castcomments."""

from typing import Optional

from pydantic import BaseModel, Field

from castcomments.api.http import BASE_URL


class Config(BaseModel):
    """Configuration model."""

    # Broadcaster to follow
    user: Optional[str] = None

    # Poller settings
    poll_interval_sec: float = Field(default=10.0, gt=0)
    fatal_protocol_errors: bool = False  # Abort instead of skipping the cycle

    # Credentials (newline-terminated plaintext files)
    client_id_file: str = "client_id.txt"
    client_secret_file: str = "client_secret.txt"
    token_file: Optional[str] = None  # Set to skip the OAuth flow

    # OAuth callback listener
    callback_host: str = "127.0.0.1"
    callback_port: int = 8000
    redirect_uri: str = "http://localhost:8000/"
    open_browser: bool = True

    # API settings
    base_url: str = BASE_URL
    request_timeout_sec: float = Field(default=30.0, gt=0)
