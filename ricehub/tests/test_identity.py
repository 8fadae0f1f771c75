import unittest
import uuid
from datetime import timedelta

import jwt

from ricehub.errors import AuthError
from ricehub.identity import IdentityProvider, resolve_viewer
from ricehub.tests.fixtures import (
    TEST_ALGORITHM,
    TEST_SECRET,
    make_identity,
    make_token,
)


class IdentityProviderTests(unittest.TestCase):
    def setUp(self):
        self.identity = make_identity()
        self.user_id = uuid.uuid4()

    def test_valid_token(self):
        token = self.identity.validate(
            f"Bearer {make_token(self.user_id, is_admin=True)}"
        )
        self.assertEqual(token.subject_id, self.user_id)
        self.assertTrue(token.is_admin)
        self.assertIsNotNone(token.expires_at.tzinfo)

    def test_missing_header(self):
        for value in (None, "", "   "):
            with self.subTest(value=value):
                with self.assertRaises(AuthError) as ctx:
                    self.identity.validate(value)
                self.assertEqual(ctx.exception.status_code, 403)

    def test_wrong_scheme(self):
        with self.assertRaises(AuthError) as ctx:
            self.identity.validate(f"Token {make_token(self.user_id)}")
        self.assertIn("Bearer", ctx.exception.messages[0])

    def test_expired_token(self):
        token = make_token(self.user_id, expires_in=timedelta(minutes=-5))
        with self.assertRaises(AuthError) as ctx:
            self.identity.validate(f"Bearer {token}")
        self.assertIn("expired", ctx.exception.messages[0])

    def test_bad_signature(self):
        token = make_token(self.user_id, secret="another-secret-of-sufficient-size")
        with self.assertRaises(AuthError) as ctx:
            self.identity.validate(f"Bearer {token}")
        self.assertIn("signature", ctx.exception.messages[0])

    def test_subject_must_be_a_user_id(self):
        token = jwt.encode(
            {"sub": "admin", "exp": 4102444800},
            TEST_SECRET,
            algorithm=TEST_ALGORITHM,
        )
        with self.assertRaises(AuthError):
            self.identity.validate(f"Bearer {token}")

    def test_unconfigured_key_rejects_everything(self):
        identity = IdentityProvider(None, algorithm=TEST_ALGORITHM)
        with self.assertRaises(AuthError):
            identity.validate(f"Bearer {make_token(self.user_id)}")


class ResolveViewerTests(unittest.TestCase):
    def setUp(self):
        self.identity = make_identity()
        self.user_id = uuid.uuid4()

    def test_valid_credential_resolves_subject(self):
        header = f"Bearer {make_token(self.user_id)}"
        self.assertEqual(resolve_viewer(self.identity, header), self.user_id)

    def test_failures_are_anonymous(self):
        expired = make_token(self.user_id, expires_in=timedelta(seconds=-1))
        for header in (
            None,
            "",
            "Bearer",
            "Bearer garbage",
            f"Basic {make_token(self.user_id)}",
            f"Bearer {expired}",
        ):
            with self.subTest(header=header):
                self.assertIsNone(resolve_viewer(self.identity, header))


if __name__ == "__main__":
    unittest.main()
