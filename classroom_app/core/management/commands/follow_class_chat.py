import os
from typing import override

from django.core.management.base import BaseCommand, CommandError

from core.auth_context import AuthContext, SignInRejected, authenticate
from core.chat import ChatFeed
from core.identity_provider import IdentityProviderClient, IdentityProviderError
from core.roster_api import ChatMessage, MembershipAPIClient, MembershipAPIError


class Command(BaseCommand):
    help = "Sign in and print a class chat as new messages arrive (Ctrl-C to stop)."

    @override
    def add_arguments(self, parser) -> None:
        parser.add_argument("class_id", help="Class whose chat to follow.")
        parser.add_argument(
            "--email",
            default=os.getenv("CLASSROOM_CHAT_EMAIL", ""),
            help="Account email (default: $CLASSROOM_CHAT_EMAIL).",
        )
        parser.add_argument(
            "--password-env",
            default="CLASSROOM_CHAT_PASSWORD",
            help="Environment variable holding the account password.",
        )
        parser.add_argument(
            "--interval",
            type=float,
            default=None,
            help="Seconds between polls (default: CHAT_POLL_INTERVAL_SECONDS).",
        )
        parser.add_argument(
            "--once",
            action="store_true",
            help="Print the current messages and exit instead of following.",
        )
        parser.add_argument(
            "--say",
            default="",
            help="Post this message to the chat before printing it.",
        )

    def _print_messages(self, batch: list[ChatMessage]) -> None:
        for message in batch:
            stamp = f"[{message.timestamp}] " if message.timestamp else ""
            self.stdout.write(f"{stamp}{message.sender_name}: {message.text}")

    @override
    def handle(self, *args, **options) -> None:
        class_id: str = str(options["class_id"]).strip()
        email: str = str(options.get("email") or "").strip()
        password = os.getenv(str(options["password_env"]), "")
        if not email or not password:
            raise CommandError(f"Provide --email and set ${options['password_env']} to sign in.")

        api_client = MembershipAPIClient.from_settings()
        try:
            identity = authenticate(
                email,
                password,
                provider=IdentityProviderClient.from_settings(),
                api_client=api_client,
            )
        except (IdentityProviderError, SignInRejected, MembershipAPIError) as exc:
            raise CommandError(str(exc)) from exc

        auth_context = AuthContext()
        auth_context.sign_in(identity)
        feed = ChatFeed(api_client, class_id, on_messages=self._print_messages)

        if options.get("say"):
            try:
                feed.send(identity, options["say"])
            except MembershipAPIError as exc:
                raise CommandError(str(exc)) from exc

        if options.get("once"):
            try:
                feed.refresh()
            except MembershipAPIError as exc:
                raise CommandError(str(exc)) from exc
            return

        self.stderr.write(f"Following chat for class {class_id} as {identity.email}. Press Ctrl-C to stop.")
        try:
            with feed.follow(auth_context, interval=options.get("interval")) as poller:
                poller.wait()
        except KeyboardInterrupt:
            self.stderr.write("Stopped.")
        finally:
            auth_context.sign_out()
