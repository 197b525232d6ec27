from __future__ import annotations

import os
from typing import Protocol

from .errors import ConfigurationError

API_TOKEN_ENV = "GEOSTREAM_API_TOKEN"


class Authenticator(Protocol):
    def current_token(self) -> str:
        ...


class StaticTokenAuthenticator:
    """Hand out a fixed bearer token, by default taken from ``GEOSTREAM_API_TOKEN``."""

    def __init__(self, token: str | None = None) -> None:
        self._token = token

    def current_token(self) -> str:
        token = (self._token or os.getenv(API_TOKEN_ENV, "")).strip()
        if not token:
            raise ConfigurationError(
                f"An access token is required. Pass one explicitly or set the {API_TOKEN_ENV} "
                "environment variable."
            )
        return token
