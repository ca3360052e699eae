import json
import unittest
from datetime import datetime, timedelta, timezone

from crm_shared import (
    EXPIRED_TOKEN_MESSAGE,
    INVALID_TOKEN_MESSAGE,
    MALFORMED_PAYLOAD_MESSAGE,
    MISSING_HEADER_MESSAGE,
    _b64url_encode,
    _sign,
    authenticate_header,
    hash_password,
    issue_session_token,
    verify_password,
    verify_session_token,
)
from shared.errors import Unauthenticated

SECRET = "token-test-secret"
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _signed(payload: dict, secret: str = SECRET) -> str:
    raw = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return f"{_b64url_encode(raw)}.{_b64url_encode(_sign(secret, raw))}"


class SessionTokenTests(unittest.TestCase):
    def _token(self, **overrides):
        values = {"user_id": 7, "company_id": 3, "role": "admin", "secret": SECRET, "ttl_seconds": 3600, "now": NOW}
        values.update(overrides)
        return issue_session_token(**values)

    def test_round_trip_claim(self):
        claim = authenticate_header(f"Bearer {self._token()}", SECRET, now=NOW + timedelta(minutes=5))
        self.assertEqual(claim.user_id, 7)
        self.assertEqual(claim.company_id, 3)
        self.assertEqual(claim.role, "admin")
        self.assertEqual(claim.expires_at - claim.issued_at, 3600)

    def test_missing_or_malformed_header(self):
        for header in (None, "", "Bearer", "Token abc", "bearer abc", "Bearer a b"):
            with self.subTest(header=header):
                with self.assertRaises(Unauthenticated) as ctx:
                    authenticate_header(header, SECRET, now=NOW)
                self.assertEqual(ctx.exception.message, MISSING_HEADER_MESSAGE)

    def test_wrong_secret_is_invalid(self):
        with self.assertRaises(Unauthenticated) as ctx:
            verify_session_token(self._token(), "other-secret", now=NOW)
        self.assertEqual(ctx.exception.message, INVALID_TOKEN_MESSAGE)

    def test_tampered_payload_is_invalid(self):
        _, signature = self._token().split(".")
        forged = _b64url_encode(b'{"companyId":99,"exp":9999999999,"userId":7}')
        with self.assertRaises(Unauthenticated) as ctx:
            verify_session_token(f"{forged}.{signature}", SECRET, now=NOW)
        self.assertEqual(ctx.exception.message, INVALID_TOKEN_MESSAGE)

    def test_garbage_token_is_invalid(self):
        for token in ("not-a-token", "a.b.c", ".", "###.###"):
            with self.subTest(token=token):
                with self.assertRaises(Unauthenticated) as ctx:
                    verify_session_token(token, SECRET, now=NOW)
                self.assertEqual(ctx.exception.message, INVALID_TOKEN_MESSAGE)

    def test_expired_token_has_distinct_message(self):
        token = self._token(ttl_seconds=60)
        with self.assertRaises(Unauthenticated) as ctx:
            verify_session_token(token, SECRET, now=NOW + timedelta(minutes=2))
        self.assertEqual(ctx.exception.message, EXPIRED_TOKEN_MESSAGE)
        self.assertNotEqual(EXPIRED_TOKEN_MESSAGE, INVALID_TOKEN_MESSAGE)

    def test_signed_payload_without_tenant_is_malformed(self):
        exp = int(NOW.timestamp()) + 600
        for payload in ({"userId": 7, "exp": exp}, {"companyId": 3, "exp": exp}, {"userId": 0, "companyId": 3, "exp": exp}):
            with self.subTest(payload=payload):
                with self.assertRaises(Unauthenticated) as ctx:
                    verify_session_token(_signed(payload), SECRET, now=NOW)
                self.assertEqual(ctx.exception.message, MALFORMED_PAYLOAD_MESSAGE)

    def test_signed_payload_without_expiry_is_malformed(self):
        for payload in (
            {"userId": 7, "companyId": 3},
            {"userId": 7, "companyId": 3, "exp": 0},
            {"userId": 7, "companyId": 3, "exp": -60},
            {"userId": 7, "companyId": 3, "exp": "soon"},
        ):
            with self.subTest(payload=payload):
                with self.assertRaises(Unauthenticated) as ctx:
                    verify_session_token(_signed(payload), SECRET, now=NOW)
                self.assertEqual(ctx.exception.message, MALFORMED_PAYLOAD_MESSAGE)

    def test_unauthenticated_maps_to_401(self):
        self.assertEqual(Unauthenticated().status_code, 401)


class PasswordHashTests(unittest.TestCase):
    def test_hash_verifies_only_the_same_password(self):
        stored = hash_password("s3cret-pass")
        self.assertTrue(verify_password("s3cret-pass", stored))
        self.assertFalse(verify_password("s3cret-pasS", stored))

    def test_hashes_are_salted(self):
        self.assertNotEqual(hash_password("same"), hash_password("same"))

    def test_unknown_format_never_verifies(self):
        self.assertFalse(verify_password("x", None))
        self.assertFalse(verify_password("x", "salt$deadbeef"))


if __name__ == "__main__":
    unittest.main()
