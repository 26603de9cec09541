"""Runtime settings and the user's feed configuration file."""

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field

from platformdirs import user_config_dir, user_data_dir

from rss_notify.feed_parser import DEFAULT_TIMEOUT as DEFAULT_FETCH_TIMEOUT
from rss_notify.poller import DEFAULT_CYCLE_BUDGET, DEFAULT_MAX_CONCURRENCY
from rss_notify.schedule import validate_schedule

logger = logging.getLogger(__name__)

APP_NAME = "rss-notify"
CONFIG_FILENAME = "feeds.json"
DATA_FILENAME = "data.db"

DEFAULT_POLL_INTERVAL = 60


@dataclass
class Settings:
    """Where files live and how a check cycle is bounded."""

    config_dir: str
    data_dir: str
    fetch_timeout: float = DEFAULT_FETCH_TIMEOUT
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    cycle_budget: float = DEFAULT_CYCLE_BUDGET
    poll_interval: int = DEFAULT_POLL_INTERVAL

    @property
    def config_path(self) -> str:
        return os.path.join(self.config_dir, CONFIG_FILENAME)

    @property
    def data_path(self) -> str:
        return os.path.join(self.data_dir, DATA_FILENAME)

    @classmethod
    def from_env(cls, environ: dict | None = None) -> "Settings":
        """Build settings from RSS_NOTIFY_* variables and platform directories."""
        env = os.environ if environ is None else environ
        return cls(
            config_dir=env.get("RSS_NOTIFY_CONFIG_DIR") or user_config_dir(APP_NAME),
            data_dir=env.get("RSS_NOTIFY_DATA_DIR") or user_data_dir(APP_NAME),
            fetch_timeout=float(env.get("RSS_NOTIFY_FETCH_TIMEOUT", DEFAULT_FETCH_TIMEOUT)),
            max_concurrency=int(env.get("RSS_NOTIFY_MAX_CONCURRENCY", DEFAULT_MAX_CONCURRENCY)),
            cycle_budget=float(env.get("RSS_NOTIFY_CYCLE_BUDGET", DEFAULT_CYCLE_BUDGET)),
            poll_interval=int(env.get("RSS_NOTIFY_POLL_INTERVAL", DEFAULT_POLL_INTERVAL)),
        )


@dataclass
class FeedEntry:
    link: str
    schedule: str


@dataclass
class FeedConfig:
    """The configured feeds. Decides which feeds exist, not their history."""

    feeds: list[FeedEntry] = field(default_factory=list)

    def add_feed(self, link: str, schedule: str) -> FeedEntry:
        """Add a feed.

        Raises:
            InvalidScheduleError: If the schedule is not a valid cron expression.
            ValueError: If the link is already configured.
        """
        validate_schedule(schedule)
        if any(f.link == link for f in self.feeds):
            raise ValueError(f"Already subscribed to {link}")
        entry = FeedEntry(link=link, schedule=schedule)
        self.feeds.append(entry)
        return entry

    def remove_feed(self, link: str) -> bool:
        """Remove a feed by link. Returns True if it was configured."""
        remaining = [f for f in self.feeds if f.link != link]
        removed = len(remaining) != len(self.feeds)
        self.feeds = remaining
        return removed

    def list_feeds(self) -> str:
        return "".join(
            f"{i}: {f.link} - {f.schedule}\n" for i, f in enumerate(self.feeds)
        )

    def clear(self) -> None:
        self.feeds.clear()

    def pairs(self) -> list[tuple[str, str]]:
        return [(f.link, f.schedule) for f in self.feeds]

    @classmethod
    def load(cls, path: str) -> "FeedConfig":
        """Read the configuration file. A missing file is an empty configuration."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except FileNotFoundError:
            logger.debug("No feed configuration at %s", path)
            return cls()

        if not isinstance(raw, dict) or not isinstance(raw.get("feeds", []), list):
            raise ValueError(f"{path}: expected an object with a \"feeds\" list")
        feeds = []
        for entry in raw.get("feeds", []):
            if not isinstance(entry, dict):
                raise ValueError(f"{path}: feed entry is not an object: {entry!r}")
            feeds.append(FeedEntry(link=entry["link"], schedule=entry["schedule"]))
        return cls(feeds=feeds)

    def save(self, path: str) -> None:
        """Write the configuration file, replacing the old one atomically."""
        directory = os.path.dirname(path) or "."
        os.makedirs(directory, exist_ok=True)
        payload = {
            "feeds": [{"link": f.link, "schedule": f.schedule} for f in self.feeds]
        }

        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".feeds-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
