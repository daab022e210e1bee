from dataclasses import asdict

from django.contrib.sessions.backends.cache import SessionStore
from django.http import HttpResponse
from django.test import RequestFactory, SimpleTestCase

from core.auth_context import SESSION_IDENTITY_KEY, AuthIdentity
from core.middleware import AuthContextMiddleware

_JANE = AuthIdentity(uid="u1", email="jane@x.com", role="staff", display_name="Jane")
_BOB = AuthIdentity(uid="u2", email="bob@x.com", role="student", display_name="Bob")


class AuthContextMiddlewareTests(SimpleTestCase):
    def _request_with_session(self, identity: AuthIdentity | None):
        stored = SessionStore()
        if identity is not None:
            stored[SESSION_IDENTITY_KEY] = asdict(identity)
        stored.save()
        request = RequestFactory().get("/")
        request.session = SessionStore(session_key=stored.session_key)
        return request

    def test_unchanged_identity_leaves_session_unmodified(self) -> None:
        request = self._request_with_session(_JANE)

        AuthContextMiddleware(lambda req: HttpResponse("ok"))(request)

        self.assertEqual(request.auth_context.identity, _JANE)
        self.assertFalse(request.session.modified)

    def test_sign_in_during_request_is_written_back(self) -> None:
        request = self._request_with_session(_JANE)

        def _view(req):
            req.auth_context.sign_in(_BOB)
            return HttpResponse("ok")

        AuthContextMiddleware(_view)(request)

        self.assertTrue(request.session.modified)
        self.assertEqual(request.session[SESSION_IDENTITY_KEY]["uid"], "u2")

    def test_sign_out_during_request_clears_session(self) -> None:
        request = self._request_with_session(_JANE)

        def _view(req):
            req.auth_context.sign_out()
            return HttpResponse("ok")

        AuthContextMiddleware(_view)(request)

        self.assertNotIn(SESSION_IDENTITY_KEY, request.session)
