"""Error taxonomy shared by the fetch and parse pipeline."""

from __future__ import annotations

from typing import Optional


class FeedError(Exception):
    """Base class for every failure raised while loading a feed."""


class InvalidURLError(FeedError):
    """The requested URL is not an absolute http(s) URL."""


class TransportError(FeedError):
    """The origin could not be reached (DNS, connection, TLS, timeout)."""


class OriginError(FeedError):
    """The origin answered with a non-2xx status."""

    def __init__(
        self, status_code: int, status_text: str = "", message: Optional[str] = None
    ) -> None:
        self.status_code = status_code
        self.status_text = status_text
        super().__init__(message or describe_status(status_code, status_text))


class NotAFeedError(FeedError):
    """The response body does not look like XML or HTML."""


class MalformedFeedError(FeedError):
    """The body is not parseable XML or has no channel/feed root."""


def describe_status(status_code: int, status_text: str = "") -> str:
    """Return user-facing guidance for an origin status code."""
    if status_code == 404:
        return (
            "The feed server responded with 404 (Not Found). The URL may be "
            "wrong, or the server is blocking automated requests."
        )
    if status_code == 403:
        return (
            "Access to this feed is forbidden (403 Forbidden). The server is "
            "blocking automated requests."
        )
    if status_code >= 500:
        return (
            f"The feed server is experiencing an internal error ({status_code}). "
            "Please try again later."
        )
    return f"The feed server responded with an error: {status_code} {status_text}".strip()
