import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from django.conf import settings

from core.auth_context import AuthContext, AuthIdentity
from core.polling import PeriodicRefresh
from core.roster_api import ChatMessage, MembershipAPIClient

logger = logging.getLogger(__name__)


class ChatFeed:
    """Near-real-time view of one class chat, built on polling.

    Each refresh fetches the full message list and hands only unseen messages
    to ``on_messages``, in server order.
    """

    def __init__(
        self,
        client: MembershipAPIClient,
        class_id: str,
        *,
        on_messages: Callable[[list[ChatMessage]], None],
    ) -> None:
        self.client = client
        self.class_id = class_id
        self._on_messages = on_messages
        self._seen_ids: set[str] = set()

    def refresh(self) -> list[ChatMessage]:
        messages = self.client.fetch_messages(self.class_id)
        fresh: list[ChatMessage] = []
        for message in messages:
            key = message.id or f"{message.sender_id}:{message.timestamp}:{message.text}"
            if key in self._seen_ids:
                continue
            self._seen_ids.add(key)
            fresh.append(message)
        if fresh:
            self._on_messages(fresh)
        return fresh

    def send(self, identity: AuthIdentity, text: str) -> ChatMessage | None:
        """Post ``text`` as ``identity``; blank text is not sent."""
        text = str(text or "").strip()
        if not text:
            return None
        return self.client.post_message(
            self.class_id,
            sender_id=identity.uid,
            sender_email=identity.email,
            sender_name=identity.name,
            user_type="staff" if identity.role == "staff" else "student",
            text=text,
        )

    @contextmanager
    def follow(self, auth_context: AuthContext, *, interval: float | None = None) -> Iterator[PeriodicRefresh]:
        """Poll while the context stays signed in; always stops on exit."""

        if not auth_context.is_authenticated:
            raise PermissionError("Sign in before following a class chat.")

        poller = PeriodicRefresh(
            self.refresh,
            interval=interval if interval is not None else settings.CHAT_POLL_INTERVAL_SECONDS,
            name=f"chat-feed:{self.class_id}",
            should_stop=lambda: not auth_context.is_authenticated,
        )

        def _on_auth_change(identity: AuthIdentity | None) -> None:
            if identity is None:
                logger.info("Chat feed for class %s stopping: signed out", self.class_id)
                poller.stop()

        with auth_context.subscription(_on_auth_change):
            poller.start()
            try:
                yield poller
            finally:
                poller.stop()


__all__ = ["ChatFeed"]
