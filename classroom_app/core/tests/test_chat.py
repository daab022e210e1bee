import threading
from unittest.mock import MagicMock

from django.test import SimpleTestCase

from core.auth_context import AuthContext, AuthIdentity
from core.chat import ChatFeed
from core.roster_api import ChatMessage, MembershipAPIClient


def _message(message_id: str, text: str) -> ChatMessage:
    return ChatMessage(
        id=message_id,
        sender_id="u1",
        sender_name="Jane",
        sender_email="jane@x.com",
        user_type="student",
        text=text,
        timestamp="2024-01-01T00:00:00Z",
    )


_JANE = AuthIdentity(uid="u1", email="jane@x.com", role="student")


class ChatFeedRefreshTests(SimpleTestCase):
    def test_only_unseen_messages_are_delivered(self) -> None:
        client = MagicMock(spec=MembershipAPIClient)
        client.fetch_messages.side_effect = [
            [_message("m1", "hi")],
            [_message("m1", "hi"), _message("m2", "there")],
            [_message("m1", "hi"), _message("m2", "there")],
        ]
        delivered: list[list[str]] = []
        feed = ChatFeed(client, "c1", on_messages=lambda batch: delivered.append([m.text for m in batch]))

        feed.refresh()
        feed.refresh()
        feed.refresh()

        self.assertEqual(delivered, [["hi"], ["there"]])
        client.fetch_messages.assert_called_with("c1")


class ChatFeedSendTests(SimpleTestCase):
    def test_send_posts_as_identity_with_derived_name(self) -> None:
        client = MagicMock(spec=MembershipAPIClient)
        client.post_message.return_value = _message("m3", "hello")
        feed = ChatFeed(client, "c1", on_messages=lambda batch: None)

        sent = feed.send(AuthIdentity(uid="s1", email="ms.t@x.com", role="staff"), "  hello ")

        self.assertEqual(sent.id, "m3")
        client.post_message.assert_called_once_with(
            "c1",
            sender_id="s1",
            sender_email="ms.t@x.com",
            sender_name="ms.t",
            user_type="staff",
            text="hello",
        )

    def test_blank_text_is_not_sent(self) -> None:
        client = MagicMock(spec=MembershipAPIClient)
        feed = ChatFeed(client, "c1", on_messages=lambda batch: None)

        self.assertIsNone(feed.send(_JANE, "   "))
        client.post_message.assert_not_called()


class ChatFeedFollowTests(SimpleTestCase):
    def test_following_requires_sign_in(self) -> None:
        feed = ChatFeed(MagicMock(spec=MembershipAPIClient), "c1", on_messages=lambda _batch: None)

        with self.assertRaises(PermissionError):
            with feed.follow(AuthContext(), interval=60):
                pass

    def test_sign_out_stops_polling_and_exit_unsubscribes(self) -> None:
        client = MagicMock(spec=MembershipAPIClient)
        client.fetch_messages.return_value = [_message("m1", "hi")]
        received = threading.Event()
        feed = ChatFeed(client, "c1", on_messages=lambda _batch: received.set())
        context = AuthContext(_JANE)

        with feed.follow(context, interval=60) as poller:
            self.assertEqual(context.listener_count(), 1)
            self.assertTrue(received.wait(5))

            context.sign_out()

            self.assertTrue(poller.wait(5))

        self.assertEqual(context.listener_count(), 0)
        self.assertFalse(poller.running)

    def test_leaving_the_block_stops_polling(self) -> None:
        client = MagicMock(spec=MembershipAPIClient)
        client.fetch_messages.return_value = []
        context = AuthContext(_JANE)

        with ChatFeed(client, "c1", on_messages=lambda _batch: None).follow(context, interval=60) as poller:
            pass

        self.assertTrue(poller.stopped)
        self.assertTrue(context.is_authenticated)
