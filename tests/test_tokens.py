"""Unit tests for auth/tokens.py -- password hashing, JWT kinds, cookie helpers.

Covers:
- bcrypt hash never equals the plaintext and verifies only the right password
- each token kind round-trips to its subject id
- decode_token() raises exactly one of TokenMalformed / TokenSignatureInvalid /
  TokenExpired for the matching failure
- a token of one kind is rejected as any other kind
- bearer header parsing and verification token shape
- refresh cookie attributes
"""

from __future__ import annotations

import pytest
from fastapi.responses import JSONResponse
from jose import jwt

from auth.tokens import (
    ACCESS,
    REFRESH,
    REFRESH_COOKIE,
    RESET,
    TokenExpired,
    TokenMalformed,
    TokenSignatureInvalid,
    clear_refresh_cookie,
    create_access_token,
    create_refresh_token,
    create_reset_token,
    decode_token,
    extract_bearer_token,
    generate_verification_token,
    hash_password,
    set_refresh_cookie,
    verify_password,
)


class TestPasswordHashing:
    def test_hash_is_not_plaintext(self) -> None:
        hashed = hash_password("s3cret-pass")
        assert hashed != "s3cret-pass"
        assert hashed.startswith("$2")

    def test_verify_accepts_right_password_only(self) -> None:
        hashed = hash_password("s3cret-pass")
        assert verify_password("s3cret-pass", hashed)
        assert not verify_password("s3cret-pasS", hashed)

    def test_same_password_hashes_differently(self) -> None:
        """Salted: two hashes of one password differ."""
        assert hash_password("same-password") != hash_password("same-password")

    def test_corrupt_hash_is_a_mismatch_not_an_error(self) -> None:
        assert verify_password("anything", "not-a-bcrypt-hash") is False

    def test_overlong_password_is_a_mismatch(self) -> None:
        hashed = hash_password("s3cret-pass")
        assert verify_password("a" * 100, hashed) is False


class TestJwtKinds:
    @pytest.mark.parametrize(
        "create, kind",
        [(create_access_token, ACCESS), (create_refresh_token, REFRESH), (create_reset_token, RESET)],
    )
    def test_round_trip_returns_subject(self, create, kind) -> None:
        assert decode_token(create(42), kind) == 42

    def test_claims_carry_type_and_string_subject(self) -> None:
        claims = jwt.get_unverified_claims(create_access_token(7))
        assert claims["sub"] == "7"
        assert claims["type"] == ACCESS
        assert "exp" in claims

    @pytest.mark.parametrize("create", [create_access_token, create_refresh_token, create_reset_token])
    def test_zero_lifetime_is_honoured(self, create) -> None:
        claims = jwt.get_unverified_claims(create(1, expire_seconds=0))
        assert claims["exp"] == claims["iat"]

    def test_refresh_tokens_for_same_user_differ(self) -> None:
        assert create_refresh_token(1) != create_refresh_token(1)

    @pytest.mark.parametrize(
        "create, wrong_kind",
        [
            (create_access_token, REFRESH),
            (create_access_token, RESET),
            (create_refresh_token, ACCESS),
            (create_reset_token, ACCESS),
        ],
    )
    def test_kind_confusion_is_rejected(self, create, wrong_kind) -> None:
        with pytest.raises(TokenSignatureInvalid):
            decode_token(create(1), wrong_kind)


class TestJwtFailures:
    def test_garbage_is_malformed(self) -> None:
        with pytest.raises(TokenMalformed):
            decode_token("not-a-jwt", ACCESS)

    def test_empty_is_malformed(self) -> None:
        with pytest.raises(TokenMalformed):
            decode_token("", ACCESS)

    def test_foreign_key_is_signature_invalid(self) -> None:
        forged = jwt.encode({"sub": "1", "type": ACCESS}, "x" * 64, algorithm="HS256")
        with pytest.raises(TokenSignatureInvalid):
            decode_token(forged, ACCESS)

    def test_tampered_payload_is_signature_invalid(self) -> None:
        header, _payload, signature = create_access_token(1).split(".")
        other_payload = create_access_token(2).split(".")[1]
        with pytest.raises(TokenSignatureInvalid):
            decode_token(f"{header}.{other_payload}.{signature}", ACCESS)

    def test_past_expiry_is_expired(self) -> None:
        token = create_reset_token(5, expire_seconds=-30)
        with pytest.raises(TokenExpired):
            decode_token(token, RESET)


class TestHelpers:
    @pytest.mark.parametrize(
        "header, expected",
        [
            ("Bearer abc.def.ghi", "abc.def.ghi"),
            ("Bearer ", None),
            ("Basic dXNlcjpwYXNz", None),
            ("", None),
            (None, None),
        ],
    )
    def test_extract_bearer_token(self, header, expected) -> None:
        assert extract_bearer_token(header) == expected

    def test_verification_token_is_256_bit_hex(self) -> None:
        token = generate_verification_token()
        assert len(token) == 64
        int(token, 16)
        assert token != generate_verification_token()

    def test_refresh_cookie_is_http_only_lax_in_development(self) -> None:
        resp = JSONResponse({})
        set_refresh_cookie(resp, "tok")
        cookie = resp.headers["set-cookie"]
        assert cookie.startswith(f"{REFRESH_COOKIE}=tok")
        assert "HttpOnly" in cookie
        assert "samesite=lax" in cookie.lower()
        assert "Max-Age=604800" in cookie

    def test_clear_refresh_cookie_expires_it(self) -> None:
        resp = JSONResponse({})
        clear_refresh_cookie(resp)
        cookie = resp.headers["set-cookie"]
        assert cookie.startswith(f"{REFRESH_COOKIE}=")
        assert "Max-Age=0" in cookie
