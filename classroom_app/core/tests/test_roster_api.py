import json
from unittest.mock import MagicMock

import requests
from django.test import SimpleTestCase

from core.roster_api import (
    Identity,
    ImportOutcome,
    MembershipAPIClient,
    MembershipAPIError,
    StudentEmailsBatch,
    UserAccountsBatch,
    display_name_from_email,
    mask_email,
    parse_import_outcome,
    server_error_detail,
)
from core.roster_validation import MembershipRequest


def _response(status_code: int, payload: object = None, *, raw: bytes | None = None) -> requests.Response:
    response = requests.Response()
    response.status_code = status_code
    if raw is not None:
        response._content = raw
    elif payload is not None:
        response._content = json.dumps(payload).encode()
    else:
        response._content = b""
    return response


def _client(*responses: requests.Response) -> tuple[MembershipAPIClient, MagicMock]:
    session = MagicMock(spec=requests.Session)
    session.request.side_effect = list(responses)
    return MembershipAPIClient("http://lms.test/", session=session), session


class HelperTests(SimpleTestCase):
    def test_display_name_from_email(self) -> None:
        cases = [
            ("jane.doe42@x.com", "Jane Doe"),
            ("bob_smith@x.com", "Bob Smith"),
            ("1234@x.com", "Unknown User"),
            ("", "Unknown User"),
        ]
        for email, expected in cases:
            with self.subTest(email=email):
                self.assertEqual(display_name_from_email(email), expected)

    def test_mask_email_hides_local_part(self) -> None:
        self.assertEqual(mask_email("alice@example.com"), "al***@example.com")
        self.assertEqual(mask_email("nope"), "***")

    def test_server_error_detail_prefers_error_then_message(self) -> None:
        self.assertEqual(server_error_detail(_response(400, {"error": "Class not found", "message": "x"})), "Class not found")
        self.assertEqual(server_error_detail(_response(400, {"message": "Bad input"})), "Bad input")
        self.assertEqual(server_error_detail(_response(500, raw=b"<html>oops</html>")), "")
        self.assertEqual(server_error_detail(_response(500, ["not", "a", "dict"])), "")


class ParseImportOutcomeTests(SimpleTestCase):
    def test_added_and_skipped_are_parsed(self) -> None:
        outcome = parse_import_outcome(
            {"addedStudents": [{"studentId": "1", "email": "a@x.com"}], "skippedEmails": ["b@x.com"]},
            added_key="addedStudents",
            default_role="student",
        )

        self.assertEqual(outcome.added, (Identity(id="1", email="a@x.com", display_name="A", role="student"),))
        self.assertEqual(outcome.skipped_emails, ("b@x.com",))

    def test_added_and_skipped_are_disjoint(self) -> None:
        outcome = parse_import_outcome(
            {"addedUsers": [{"email": "a@x.com"}], "skippedEmails": ["A@x.com", "b@x.com"]},
            added_key="addedUsers",
            default_role="staff",
        )

        self.assertEqual([i.email for i in outcome.added], ["a@x.com"])
        self.assertEqual(outcome.added[0].id, "a@x.com")
        self.assertEqual(outcome.added[0].role, "staff")
        self.assertEqual(outcome.skipped_emails, ("b@x.com",))

    def test_missing_fields_mean_nothing_added(self) -> None:
        outcome = parse_import_outcome({}, added_key="addedStudents", default_role="student")

        self.assertEqual(outcome.added, ())
        self.assertEqual(outcome.skipped_emails, ())


class SubmitBulkImportTests(SimpleTestCase):
    def test_student_batch_posts_emails_to_class_endpoint(self) -> None:
        client, session = _client(
            _response(200, {"addedStudents": [{"studentId": "1", "email": "a@x.com"}], "skippedEmails": ["b@x.com"]})
        )

        outcome = client.submit_bulk_import(
            StudentEmailsBatch(class_id="c1", staff_id="s1", emails=("a@x.com", "b@x.com"))
        )

        session.request.assert_called_once_with(
            "POST",
            "http://lms.test/api/classes/c1/people/bulk/staff/s1",
            json={"studentEmails": ["a@x.com", "b@x.com"]},
        )
        self.assertEqual([i.id for i in outcome.added], ["1"])
        self.assertEqual(outcome.skipped_emails, ("b@x.com",))

    def test_account_batch_posts_users_with_type(self) -> None:
        client, session = _client(_response(200, {"addedUsers": [{"email": "t@x.com"}], "skippedEmails": []}))

        outcome = client.submit_bulk_import(
            UserAccountsBatch(kind="staff", users=(MembershipRequest(email="t@x.com", password="secret1"),))
        )

        session.request.assert_called_once_with(
            "POST",
            "http://lms.test/api/bulk-users",
            params={"type": "staff"},
            json={"users": [{"email": "t@x.com", "password": "secret1"}]},
        )
        self.assertEqual(outcome.added[0].role, "staff")

    def test_server_error_detail_is_surfaced(self) -> None:
        client, _session = _client(_response(404, {"error": "Class not found"}))

        with self.assertRaises(MembershipAPIError) as ctx:
            client.submit_bulk_import(StudentEmailsBatch(class_id="c1", staff_id="s1", emails=("a@x.com",)))

        self.assertEqual(str(ctx.exception), "Class not found")
        self.assertEqual(ctx.exception.status_code, 404)

    def test_generic_message_when_server_gives_no_detail(self) -> None:
        client, _session = _client(_response(502, raw=b"Bad Gateway"))

        with self.assertRaises(MembershipAPIError) as ctx:
            client.submit_bulk_import(StudentEmailsBatch(class_id="c1", staff_id="s1", emails=("a@x.com",)))

        self.assertEqual(str(ctx.exception), "Failed to add students. Please try again.")

    def test_transport_failure_becomes_api_error(self) -> None:
        session = MagicMock(spec=requests.Session)
        session.request.side_effect = requests.exceptions.ConnectionError("refused")
        client = MembershipAPIClient("http://lms.test", session=session)

        with self.assertRaises(MembershipAPIError) as ctx:
            client.submit_bulk_import(StudentEmailsBatch(class_id="c1", staff_id="s1", emails=("a@x.com",)))

        self.assertIsNone(ctx.exception.status_code)

    def test_unknown_payload_type_is_rejected(self) -> None:
        client, session = _client()

        with self.assertRaises(TypeError):
            client.submit_bulk_import({"studentEmails": ["a@x.com"]})  # type: ignore[arg-type]

        session.request.assert_not_called()


class PeopleAndAccountsTests(SimpleTestCase):
    def test_fetch_people_parses_listing(self) -> None:
        client, session = _client(
            _response(
                200,
                {
                    "className": "Algebra",
                    "people": [
                        {"_id": "t1", "email": "Teacher@x.com", "name": "Ms T", "role": "teacher"},
                        {"studentId": "1", "email": "a@x.com"},
                        "garbage",
                    ],
                },
            )
        )

        listing = client.fetch_people("c1", "s1")

        session.request.assert_called_once_with("GET", "http://lms.test/api/classes/c1/people/staff/s1")
        self.assertEqual(listing.class_name, "Algebra")
        self.assertEqual(
            listing.people,
            [
                Identity(id="t1", email="teacher@x.com", display_name="Ms T", role="teacher"),
                Identity(id="1", email="a@x.com", display_name="A", role="student"),
            ],
        )

    def test_add_student_merges_request_email_into_created_record(self) -> None:
        client, session = _client(_response(201, {"data": {"studentId": "9"}}))

        identity = client.add_student("c1", "s1", "new@gmail.com")

        session.request.assert_called_once_with(
            "POST",
            "http://lms.test/api/classes/c1/people/staff/s1",
            json={"studentEmail": "new@gmail.com"},
        )
        self.assertEqual(identity, Identity(id="9", email="new@gmail.com", display_name="New", role="student"))

    def test_list_accounts_uses_collection_per_kind(self) -> None:
        client, session = _client(
            _response(200, [{"_id": "x", "email": "s@x.com"}]),
            _response(200, [{"_id": "y", "email": "t@x.com"}, {"_id": "z"}]),
        )

        students = client.list_accounts("student")
        staff = client.list_accounts("staff")

        self.assertEqual(session.request.call_args_list[0].args, ("GET", "http://lms.test/api/students"))
        self.assertEqual(session.request.call_args_list[1].args, ("GET", "http://lms.test/api/staff"))
        self.assertEqual([a.email for a in students], ["s@x.com"])
        self.assertEqual([a.email for a in staff], ["t@x.com"])

    def test_delete_account_sends_email_and_type(self) -> None:
        client, session = _client(_response(200, {"message": "deleted"}))

        client.delete_account("student", "s@x.com")

        session.request.assert_called_once_with(
            "DELETE",
            "http://lms.test/api/users",
            json={"email": "s@x.com", "type": "student"},
        )


class ChatEndpointTests(SimpleTestCase):
    def test_fetch_messages_requires_success_flag(self) -> None:
        client, _session = _client(_response(200, {"success": False, "error": "Class closed"}))

        with self.assertRaises(MembershipAPIError) as ctx:
            client.fetch_messages("c1")

        self.assertEqual(str(ctx.exception), "Class closed")

    def test_fetch_messages_parses_messages(self) -> None:
        client, _session = _client(
            _response(
                200,
                {
                    "success": True,
                    "messages": [
                        {
                            "_id": "m1",
                            "senderId": "u1",
                            "senderEmail": "jane.doe@x.com",
                            "userType": "student",
                            "text": "hello",
                            "timestamp": "2024-01-01T00:00:00Z",
                        }
                    ],
                },
            )
        )

        [message] = client.fetch_messages("c1")

        self.assertEqual(message.id, "m1")
        self.assertEqual(message.sender_name, "Jane Doe")
        self.assertEqual(message.text, "hello")

    def test_post_message_returns_stored_message(self) -> None:
        client, session = _client(
            _response(201, {"success": True, "message": {"_id": "m9", "senderId": "u1", "text": "hi"}})
        )

        message = client.post_message(
            "c1",
            sender_id="u1",
            sender_email="jane@x.com",
            sender_name="Jane",
            user_type="student",
            text="hi",
        )

        self.assertEqual(session.request.call_args.args, ("POST", "http://lms.test/api/c1/messages"))
        self.assertEqual(session.request.call_args.kwargs["json"]["senderName"], "Jane")
        self.assertEqual(message.id, "m9")


class FetchClassTests(SimpleTestCase):
    def test_fetch_class_reads_class_object(self) -> None:
        client, session = _client(_response(200, {"class": {"name": "Algebra", "section": "B", "teacher": "Ms T"}}))

        summary = client.fetch_class("c1", "s1")

        session.request.assert_called_once_with("GET", "http://lms.test/api/classes/c1/staff/s1")
        self.assertEqual((summary.id, summary.name, summary.section), ("c1", "Algebra", "B"))

    def test_fetch_staff_classes_skips_entries_without_id(self) -> None:
        client, session = _client(_response(200, {"classes": [{"_id": "c1", "name": "Algebra"}, {"name": "Ghost"}]}))

        classes = client.fetch_staff_classes("s1")

        session.request.assert_called_once_with("GET", "http://lms.test/api/classes", params={"staffId": "s1"})
        self.assertEqual([c.id for c in classes], ["c1"])


class StudentEndpointTests(SimpleTestCase):
    def test_fetch_student_classes_passes_email(self) -> None:
        client, session = _client(_response(200, {"classes": [{"_id": "c1", "name": "Algebra", "section": "B"}]}))

        classes = client.fetch_student_classes("u1", "jane@x.com")

        session.request.assert_called_once_with(
            "GET", "http://lms.test/api/classes/student/u1", params={"email": "jane@x.com"}
        )
        self.assertEqual([(c.id, c.name, c.section) for c in classes], [("c1", "Algebra", "B")])

    def test_is_student_enrolled_reads_flag(self) -> None:
        client, session = _client(_response(200, {"isEnrolled": True}), _response(200, {"isEnrolled": False}))

        self.assertTrue(client.is_student_enrolled("c1", "u1", "jane@x.com"))
        self.assertFalse(client.is_student_enrolled("c2", "u1", "jane@x.com"))

        self.assertEqual(
            session.request.call_args_list[0].args, ("GET", "http://lms.test/api/classes/c1/students/u1")
        )
        self.assertEqual(session.request.call_args_list[0].kwargs, {"params": {"email": "jane@x.com"}})

    def test_fetch_student_people_parses_listing(self) -> None:
        client, session = _client(
            _response(200, {"success": True, "className": "Algebra", "people": [{"studentId": "1", "email": "a@x.com"}]})
        )

        listing = client.fetch_student_people("c1", "u1", "jane@x.com")

        session.request.assert_called_once_with(
            "GET", "http://lms.test/api/classes/c1/people/student/u1", params={"email": "jane@x.com"}
        )
        self.assertEqual(listing.class_name, "Algebra")
        self.assertEqual([p.email for p in listing.people], ["a@x.com"])

    def test_fetch_student_people_requires_success_flag(self) -> None:
        client, _session = _client(_response(200, {"success": False, "error": "Not enrolled"}))

        with self.assertRaises(MembershipAPIError) as ctx:
            client.fetch_student_people("c1", "u1", "jane@x.com")

        self.assertEqual(str(ctx.exception), "Not enrolled")


class ImportOutcomeRestrictionTests(SimpleTestCase):
    def test_restricted_to_keeps_only_submitted_emails(self) -> None:
        outcome = ImportOutcome(
            added=(
                Identity(id="1", email="a@x.com", display_name="A"),
                Identity(id="9", email="stranger@x.com", display_name="S"),
            ),
            skipped_emails=("b@x.com", "other@x.com"),
        )

        restricted = outcome.restricted_to(["A@x.com ", "b@x.com"])

        self.assertEqual([i.id for i in restricted.added], ["1"])
        self.assertEqual(restricted.skipped_emails, ("b@x.com",))
