import asyncio
import enum
import logging
from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import datetime, timezone

from .errors import PortalError
from .models import Announcement, Notification
from .session_store import SessionContext, SessionState


logger = logging.getLogger(__name__)

ANNOUNCEMENT = "announcement"
NOTIFICATION = "notification"


@dataclass(frozen=True)
class FeedItem:
    id: str
    title: str
    body: str
    type: str
    created_at: datetime
    is_read: bool
    source: str
    link: str | None = None
    link_label: str | None = None


class MutationStatus(str, enum.Enum):
    PENDING = "pending"
    COMMITTED = "committed"
    FAILED = "failed"


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def _from_announcement(announcement: Announcement) -> FeedItem:
    return FeedItem(
        id=announcement.id,
        title=announcement.title,
        body=announcement.content,
        type=announcement.type,
        created_at=_as_utc(announcement.created_at),
        is_read=True,
        source=ANNOUNCEMENT,
    )


def _from_notification(notification: Notification) -> FeedItem:
    return FeedItem(
        id=notification.id,
        title=notification.title,
        body=notification.message,
        type=notification.type,
        created_at=_as_utc(notification.created_at),
        is_read=notification.is_read,
        source=NOTIFICATION,
        link=notification.link_url,
        link_label=notification.link_label,
    )


def _sort_newest_first(items: list[FeedItem]) -> list[FeedItem]:
    # sorted() is stable with reverse=True, so ties keep input order.
    return sorted(items, key=lambda item: item.created_at, reverse=True)


def merge_feed(announcements: Iterable[Announcement], notifications: Iterable[Notification]) -> list[FeedItem]:
    """Combine both sources into one newest-first feed.

    Announcements have no per-user read state and always count as read. On
    equal timestamps announcements come before notifications.
    """
    items = [_from_announcement(a) for a in announcements]
    items.extend(_from_notification(n) for n in notifications)
    return _sort_newest_first(items)


def unread_count(items: Iterable[FeedItem]) -> int:
    return sum(1 for item in items if item.source == NOTIFICATION and not item.is_read)


class NotificationFeed:
    """Feed state for one mounted dashboard.

    ``mark_as_read`` updates the local copy first and then writes to the
    backend. A failed write is logged and left as ``failed`` in
    ``mutations``; the next ``refresh`` takes the server's read flags.
    The feed follows the session: when the signed-in user changes it is
    cleared at once, and results fetched for the previous user are dropped.
    After ``close`` no late result touches the feed.
    """

    def __init__(self, context: SessionContext):
        self.context = context
        self.items: list[FeedItem] = []
        self.mutations: dict[str, MutationStatus] = {}
        self._closed = False
        self._generation = 0
        self._epoch = 0
        self._user_id = context.user.id if context.user else None
        self._unsubscribe = context.subscribe(self._on_session_change)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def unread_count(self) -> int:
        return unread_count(self.items)

    def close(self) -> None:
        self._closed = True
        self._unsubscribe()

    def _on_session_change(self, state: SessionState) -> None:
        user_id = state.user.id if state.user else None
        if user_id == self._user_id:
            return
        self._user_id = user_id
        self._epoch += 1
        self._generation += 1
        self.items = []
        self.mutations = {}

    def _current(self, epoch: int) -> bool:
        return not self._closed and epoch == self._epoch

    def _previous(self, source: str) -> list[FeedItem]:
        return [item for item in self.items if item.source == source]

    async def refresh(self) -> list[FeedItem]:
        session = self.context.session
        if self._closed or session is None:
            return self.items

        self._generation += 1
        generation = self._generation
        settled = {key for key, status in self.mutations.items() if status != MutationStatus.PENDING}
        announcements, notifications = await asyncio.gather(
            self.context.api.list_announcements(session.access_token),
            self.context.api.list_notifications(session.access_token),
            return_exceptions=True,
        )
        if self._closed or generation != self._generation:
            return self.items

        if isinstance(announcements, PortalError):
            logger.warning("Could not load announcements: %s", announcements)
            announcement_items = self._previous(ANNOUNCEMENT)
        elif isinstance(announcements, BaseException):
            raise announcements
        else:
            announcement_items = [_from_announcement(a) for a in announcements]

        if isinstance(notifications, PortalError):
            logger.warning("Could not load notifications: %s", notifications)
            notification_items = self._previous(NOTIFICATION)
        elif isinstance(notifications, BaseException):
            raise notifications
        else:
            # Server state wins for writes that had settled before this refresh
            # started; writes still in flight then keep their local read flag.
            self.mutations = {key: status for key, status in self.mutations.items() if key not in settled}
            keep_read = {key for key, status in self.mutations.items() if status != MutationStatus.FAILED}
            notification_items = [
                replace(item, is_read=True) if item.id in keep_read else item
                for item in map(_from_notification, notifications)
            ]

        self.items = _sort_newest_first(announcement_items + notification_items)
        return self.items

    async def mark_as_read(self, notification_id: str) -> bool:
        """Mark a notification read. Returns False when there was nothing to do."""
        session = self.context.session
        if self._closed or session is None:
            return False
        epoch = self._epoch

        index = next(
            (i for i, item in enumerate(self.items) if item.id == notification_id and item.source == NOTIFICATION),
            None,
        )
        if index is None or self.items[index].is_read:
            return False

        self.items[index] = replace(self.items[index], is_read=True)
        self.mutations[notification_id] = MutationStatus.PENDING
        try:
            await self.context.api.mark_notification_read(session.access_token, notification_id)
        except PortalError as exc:
            logger.warning("Marking notification %s read failed: %s", notification_id, exc)
            if self._current(epoch):
                self.mutations[notification_id] = MutationStatus.FAILED
            return True

        if self._current(epoch):
            self.mutations[notification_id] = MutationStatus.COMMITTED
        return True
