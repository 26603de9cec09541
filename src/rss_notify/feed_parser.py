"""Fetching RSS/Atom feeds with requests and parsing them with feedparser."""

from urllib.parse import urlparse

import feedparser
import requests

from rss_notify.models import FeedDocument, FeedItem

USER_AGENT = "rss-notify/0.1"
DEFAULT_TIMEOUT = 15


class FetchError(Exception):
    """Raised when a feed cannot be retrieved over the network."""


class FeedParseError(Exception):
    """Raised when a retrieved document is not a usable feed."""


def fetch_and_parse(url: str, timeout: float = DEFAULT_TIMEOUT) -> FeedDocument:
    """Fetch and parse an RSS or Atom feed from a URL.

    Items are returned in the order the feed lists them.

    Args:
        url: The feed URL to fetch and parse.
        timeout: Socket timeout for the HTTP request, in seconds.

    Returns:
        FeedDocument with the feed title and items.

    Raises:
        FetchError: If the URL is invalid or unreachable.
        FeedParseError: If the response is not a valid feed.
    """
    _validate_url(url)

    try:
        response = requests.get(
            url, timeout=timeout, headers={"User-Agent": USER_AGENT}
        )
    except requests.Timeout as e:
        raise FetchError("timeout") from e
    except requests.RequestException as e:
        raise FetchError(f"Could not reach URL: {e}") from e

    if response.status_code in (401, 403):
        raise FetchError(
            "Feed requires authentication. Ensure the URL is publicly accessible."
        )
    if response.status_code >= 400:
        raise FetchError(f"Could not reach URL: HTTP {response.status_code}")

    return parse_feed(response.content)


def parse_feed(content: bytes | str) -> FeedDocument:
    """Parse a feed document already in memory.

    Raises:
        FeedParseError: If the content is not a valid RSS or Atom feed.
    """
    parsed = feedparser.parse(content)

    if not parsed.feed.get("title") and not parsed.entries:
        raise FeedParseError("URL does not point to a valid RSS or Atom feed")

    warnings: list[str] = []
    if parsed.bozo:
        warnings.append(
            f"Feed has formatting issues: {parsed.bozo_exception}"
        )

    return FeedDocument(
        title=parsed.feed.get("title") or "Untitled Feed",
        items=_extract_items(parsed.entries, warnings),
        warnings=warnings,
    )


def _validate_url(url: str) -> None:
    """Validate that the URL has a valid format."""
    try:
        result = urlparse(url)
        if not result.scheme or not result.netloc:
            raise FetchError("Invalid URL format")
        if result.scheme not in ("http", "https"):
            raise FetchError("Invalid URL format: only http and https are supported")
    except ValueError:
        raise FetchError("Invalid URL format")


def _extract_items(entries: list, warnings: list[str]) -> list[FeedItem]:
    """Convert feedparser entries to FeedItems, keeping feed order."""
    items = []
    for entry in entries:
        try:
            items.append(
                FeedItem(
                    title=entry.get("title"),
                    link=entry.get("link"),
                    description=entry.get("summary") or entry.get("description"),
                    published_at=entry.get("published") or entry.get("updated"),
                )
            )
        except (AttributeError, TypeError) as e:
            warnings.append(f"Skipping malformed entry: {e}")
    return items
