"""Raw feed retrieval with browser-like requests and an optional relay."""

from __future__ import annotations

import logging
from typing import Dict, Optional
from urllib.parse import urlencode, urlparse

import requests

from .errors import InvalidURLError, NotAFeedError, OriginError, TransportError
from .models import RawFeed

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:109.0) Gecko/20100101 Firefox/115.0"
)
DEFAULT_CONTENT_TYPE = "application/xml"


def validate_url(url: Optional[str]) -> str:
    """Return ``url`` stripped, or raise :class:`InvalidURLError`."""
    candidate = (url or "").strip()
    parsed = urlparse(candidate)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise InvalidURLError(
            "A valid URL starting with http:// or https:// is required."
        )
    return candidate


def browser_headers(url: str, user_agent: str = DEFAULT_USER_AGENT) -> Dict[str, str]:
    """Headers that keep naive bot filters from rejecting the request."""
    parsed = urlparse(url)
    return {
        "User-Agent": user_agent,
        "Accept": "application/xml;q=0.9, application/rss+xml;q=0.8, */*;q=0.1",
        "Accept-Language": "en-US,en;q=0.5",
        "Referer": f"{parsed.scheme}://{parsed.netloc}/",
        "Connection": "keep-alive",
    }


def looks_like_feed(content_type: str, body: bytes) -> bool:
    """Cheap sniff: an XML/HTML content type or a body starting with ``<``."""
    lowered = (content_type or "").lower()
    if "xml" in lowered or "html" in lowered:
        return True
    return body.lstrip().startswith(b"<")


def _relay_message(response: requests.Response) -> Optional[str]:
    try:
        payload = response.json()
    except ValueError:
        return None
    if isinstance(payload, dict) and isinstance(payload.get("message"), str):
        return payload["message"]
    return None


class FeedFetcher:
    """Fetch raw feed bytes directly or through a forwarding relay.

    Errors are never retried here; retry policy belongs to the caller.
    """

    def __init__(
        self,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = 10.0,
        relay_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.user_agent = user_agent
        self.timeout = timeout
        self.relay_url = relay_url
        self.session = session or requests.Session()

    def _request_target(self, url: str) -> str:
        if not self.relay_url:
            return url
        separator = "&" if "?" in self.relay_url else "?"
        return f"{self.relay_url}{separator}{urlencode({'url': url})}"

    def fetch(self, url: str) -> RawFeed:
        """Retrieve ``url`` and return its body once it passes the feed sniff."""
        url = validate_url(url)
        target = self._request_target(url)
        logger.info("Fetching feed %s%s", url, " via relay" if self.relay_url else "")

        try:
            response = self.session.get(
                target,
                headers=browser_headers(url, self.user_agent),
                timeout=self.timeout,
                allow_redirects=True,
            )
        except (requests.exceptions.InvalidURL, requests.exceptions.MissingSchema) as exc:
            raise InvalidURLError(f"The provided URL is not valid: {url}") from exc
        except requests.RequestException as exc:
            logger.warning("Failed to reach feed server for %s: %s", url, exc)
            raise TransportError(
                "Could not connect to the feed server. This may be due to a network "
                "issue, an invalid domain name, or a strict firewall on the server."
            ) from exc

        if not 200 <= response.status_code < 300:
            logger.warning(
                "Feed server error for %s: %s %s",
                url,
                response.status_code,
                response.reason,
            )
            message = _relay_message(response) if self.relay_url else None
            raise OriginError(response.status_code, response.reason or "", message)

        content_type = response.headers.get("Content-Type") or DEFAULT_CONTENT_TYPE
        body = response.content
        if not looks_like_feed(content_type, body):
            raise NotAFeedError(
                f'The URL did not return a valid XML feed. The response Content-Type was "{content_type}".'
            )

        logger.debug("Fetched %d bytes (%s) from %s", len(body), content_type, url)
        return RawFeed(url=url, body=body, content_type=content_type)
