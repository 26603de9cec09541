"""Data models for rss-notify."""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class FeedRecord:
    """Check history for one subscribed feed, keyed by its URL."""

    url: str
    schedule: str
    last_seen: datetime | None = None


@dataclass
class FeedItem:
    """A single entry from a fetched feed. Never persisted."""

    title: str | None = None
    link: str | None = None
    description: str | None = None
    published_at: str | None = None


@dataclass
class FeedDocument:
    """Result of fetching and parsing a feed."""

    title: str
    items: list[FeedItem]
    warnings: list[str] = field(default_factory=list)


@dataclass
class NotificationRequest:
    """One notification for a feed with unseen items."""

    feed_url: str
    feed_title: str
    unseen_count: int
    newest_item: FeedItem


# --- Cycle outcomes ---


@dataclass(frozen=True)
class Updated:
    unseen_count: int
    notified: bool = True


@dataclass(frozen=True)
class NoChange:
    pass


@dataclass(frozen=True)
class Skipped:
    """The feed was not due under its schedule."""


@dataclass(frozen=True)
class FetchFailed:
    reason: str


@dataclass(frozen=True)
class ParseFailed:
    reason: str


Outcome = Updated | NoChange | Skipped | FetchFailed | ParseFailed


@dataclass
class DispatchResult:
    """Whether a notification reached the user."""

    feed_url: str
    shown: bool
    error: str | None = None


@dataclass
class CycleReport:
    """Per-feed outcomes and dispatch results of one check cycle."""

    outcomes: list[tuple[str, Outcome]] = field(default_factory=list)
    dispatched: list[DispatchResult] = field(default_factory=list)

    def outcome_for(self, url: str) -> Outcome | None:
        for feed_url, outcome in self.outcomes:
            if feed_url == url:
                return outcome
        return None

    @property
    def updated_count(self) -> int:
        return sum(1 for _, o in self.outcomes if isinstance(o, Updated))

    @property
    def failed_count(self) -> int:
        return sum(
            1 for _, o in self.outcomes if isinstance(o, (FetchFailed, ParseFailed))
        )
