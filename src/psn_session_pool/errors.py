"""Error kinds raised by the session pool and request dispatcher.

Every error derives from ``PSNError`` so callers can catch the whole family
in one place.  None of them is fatal: a caller recovers by retrying
(``NetworkError``), re-authenticating with a fresh npsso
(``AuthenticationFailed``/``TokenRefreshFailed``), or retiring the affected
session from the pool.
"""

from __future__ import annotations


class PSNError(Exception):
    """Base class for every error raised by this package."""


class AuthenticationFailed(PSNError):
    """The npsso seed (or the seed refresh token) was rejected."""


class TokenRefreshFailed(PSNError):
    """The refresh token expired or was rejected; the session is now failed."""


class NetworkError(PSNError):
    """Transport-level failure.  Eligible for a caller-driven retry."""


class UpstreamError(PSNError):
    """PSN answered with a non-2xx status.

    ``code`` and ``message`` are filled from PSN's
    ``{"error": {"code": ..., "message": ...}}`` body when one is present.
    """

    def __init__(self, status: int, code: int | None = None, message: str = "") -> None:
        self.status = status
        self.code = code
        self.message = message
        detail = f"PSN responded with HTTP {status}"
        if code is not None:
            detail += f" (code {code})"
        if message:
            detail += f": {message}"
        super().__init__(detail)


class DecodeError(PSNError):
    """The response body did not match the expected shape."""


class PoolExhausted(PSNError):
    """The pool was closed before or while a caller was waiting for a session."""


class PoolTimeout(PSNError):
    """No session became free within the pool's acquire timeout."""


class ConfigError(PSNError):
    """Raised when the settings file is malformed."""
