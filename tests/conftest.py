"""Shared test fixtures for rss-notify tests."""

import os
import tempfile

import pytest

from rss_notify.database import Database
from rss_notify.models import FeedDocument, FeedItem
from rss_notify.notifier import PresentationError


SAMPLE_RSS_XML = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Test Feed</title>
    <link>https://example.com</link>
    <description>A test RSS feed</description>
    <item>
      <title>First Article</title>
      <link>https://example.com/article-1</link>
      <guid>article-1</guid>
      <description>Description of the &lt;b&gt;first&lt;/b&gt; article</description>
      <pubDate>Fri, 13 Feb 2026 10:00:00 +0000</pubDate>
    </item>
    <item>
      <title>Second Article</title>
      <link>https://example.com/article-2</link>
      <guid>article-2</guid>
      <description>Description of the second article</description>
      <pubDate>Fri, 13 Feb 2026 09:00:00 +0000</pubDate>
    </item>
    <item>
      <title>Undated Article</title>
      <link>https://example.com/article-3</link>
      <guid>article-3</guid>
    </item>
  </channel>
</rss>"""

SAMPLE_ATOM_XML = """<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Test Atom Feed</title>
  <link href="https://example.com"/>
  <subtitle>A test Atom feed</subtitle>
  <entry>
    <title>Atom Entry 1</title>
    <link href="https://example.com/entry-1"/>
    <id>urn:uuid:entry-1</id>
    <summary>Summary of entry 1</summary>
    <updated>2026-02-13T10:00:00Z</updated>
  </entry>
</feed>"""

SAMPLE_NOT_A_FEED_XML = """<?xml version="1.0" encoding="UTF-8"?>
<html>
  <body>This is not a feed</body>
</html>"""


def make_item(published_at: str | None, title: str = "Item", link: str | None = None) -> FeedItem:
    """Build a FeedItem with an optional RFC 2822 publish date."""
    return FeedItem(
        title=title,
        link=link or f"https://example.com/{title.lower().replace(' ', '-')}",
        description=f"About {title}",
        published_at=published_at,
    )


class FakeFetcher:
    """Stands in for fetch_and_parse: returns canned documents or raises."""

    def __init__(self, responses: dict):
        self.responses = responses
        self.calls: list[str] = []

    def __call__(self, url: str, timeout: float) -> FeedDocument:
        self.calls.append(url)
        response = self.responses[url]
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response()
        return response


class RecordingPresenter:
    """Presenter that remembers what it was asked to show."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.shown: list[tuple[str, str, str | None]] = []

    async def present(self, subject: str, body: str, link: str | None) -> None:
        if self.fail:
            raise PresentationError("notification daemon unavailable")
        self.shown.append((subject, body, link))


@pytest.fixture
def tmp_db_path():
    """Provide a temporary SQLite database path."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        path = f.name
    yield path
    for suffix in ("", "-wal", "-shm"):
        try:
            os.unlink(path + suffix)
        except OSError:
            pass


@pytest.fixture
def db(tmp_db_path):
    """A connected Database on a temporary file."""
    database = Database(tmp_db_path)
    database.connect()
    yield database
    database.close()


@pytest.fixture
def sample_rss_xml():
    """Sample valid RSS 2.0 XML."""
    return SAMPLE_RSS_XML


@pytest.fixture
def sample_atom_xml():
    """Sample valid Atom XML."""
    return SAMPLE_ATOM_XML


@pytest.fixture
def sample_not_a_feed_xml():
    """Sample XML that is not a feed."""
    return SAMPLE_NOT_A_FEED_XML
