"""Formatting and presenting new-item notifications."""

import asyncio
import html
import logging
import re
import webbrowser
from dataclasses import dataclass
from typing import Callable, Protocol

from desktop_notifier import DesktopNotifier

from rss_notify.models import DispatchResult, NotificationRequest

logger = logging.getLogger(__name__)

APP_NAME = "rss-notify"
DESCRIPTION_LIMIT = 120
CALL_TO_ACTION = "Click to read more!"
ACTION_BACKLOG = 32

_TAG_RE = re.compile(r"<[^>]+>")


class PresentationError(Exception):
    """Raised when a notification cannot be shown."""


class Presenter(Protocol):
    async def present(self, subject: str, body: str, link: str | None) -> None:
        ...


@dataclass
class ActionResult:
    """The user opened a notification's link."""

    link: str
    opened: bool
    error: str | None = None


def build_subject(request: NotificationRequest) -> str:
    return f"{request.feed_title}, {request.unseen_count} unread items!"


def build_body(request: NotificationRequest) -> str:
    item = request.newest_item
    lines = [f"Latest Item: {item.title or 'Untitled'}"]
    description = plain_text(item.description)
    if description:
        lines.append(truncate(description, DESCRIPTION_LIMIT))
    lines.append(CALL_TO_ACTION)
    return "\n".join(lines)


def plain_text(raw_html: str | None) -> str:
    """Strip tags and entities from an HTML fragment and collapse whitespace."""
    if not raw_html:
        return ""
    text = html.unescape(_TAG_RE.sub(" ", raw_html))
    return " ".join(text.split())


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3].rstrip() + "..."


class NotificationDispatcher:
    """Hands formatted notifications to a presenter and records the result."""

    def __init__(self, presenter: Presenter):
        self.presenter = presenter

    async def dispatch(self, request: NotificationRequest) -> DispatchResult:
        subject = build_subject(request)
        body = build_body(request)
        try:
            await self.presenter.present(subject, body, request.newest_item.link)
        except PresentationError as e:
            logger.warning("Notification for '%s' failed: %s", request.feed_title, e)
            return DispatchResult(feed_url=request.feed_url, shown=False, error=str(e))

        logger.info("Notified: %s", subject)
        return DispatchResult(feed_url=request.feed_url, shown=True)


class DesktopPresenter:
    """Shows notifications on the desktop via desktop-notifier.

    Sending does not wait for the user. Clicking a notification opens its
    link and puts an ActionResult on ``actions``; dismissing it does nothing.
    Only the latest ACTION_BACKLOG results are kept.
    """

    def __init__(
        self,
        notifier: DesktopNotifier | None = None,
        open_url: Callable[[str], bool] = webbrowser.open,
    ):
        self.notifier = notifier or DesktopNotifier(app_name=APP_NAME)
        self.open_url = open_url
        self.actions: asyncio.Queue[ActionResult] = asyncio.Queue(maxsize=ACTION_BACKLOG)

    async def present(self, subject: str, body: str, link: str | None) -> None:
        on_clicked = (lambda: self._open(link)) if link else None
        try:
            await self.notifier.send(title=subject, message=body, on_clicked=on_clicked)
        except Exception as e:
            raise PresentationError(str(e) or type(e).__name__) from e

    def _open(self, link: str) -> None:
        try:
            opened = bool(self.open_url(link))
        except webbrowser.Error as e:
            logger.warning("Failed to open link %s: %s", link, e)
            self._report(ActionResult(link=link, opened=False, error=str(e)))
            return
        logger.info("Opened %s", link)
        self._report(ActionResult(link=link, opened=opened))

    def _report(self, action: ActionResult) -> None:
        if self.actions.full():
            self.actions.get_nowait()
        self.actions.put_nowait(action)


class LogPresenter:
    """Writes notifications to the log instead of the desktop."""

    async def present(self, subject: str, body: str, link: str | None) -> None:
        logger.info("%s | %s | %s", subject, body.replace("\n", " / "), link or "-")
