"""Password hashing, tokens and input sanitizers."""

import pytest

from civic.security import (create_access_token, decode_access_token, hash_password, is_revoked, revoke_token,
                            sanitize_coordinate, sanitize_email, sanitize_id, sanitize_text, sanitize_url,
                            verify_password)
from civic.tickets import DEFAULT_COORDINATES, parse_location


class TestPasswordsAndTokens:
    def test_hash_round_trip(self):
        hashed = hash_password("Secret@123")
        assert hashed != "Secret@123"
        assert verify_password("Secret@123", hashed)
        assert not verify_password("secret@123", hashed)

    def test_overlong_password_rejected(self):
        with pytest.raises(ValueError):
            hash_password("é" * 40)

    def test_token_claims(self):
        token = create_access_token({"sub": "user-1", "role": "analyst"})
        claims = decode_access_token(token)
        assert claims["sub"] == "user-1"
        assert claims["role"] == "analyst"
        assert "exp" in claims

    def test_tampered_token(self):
        token = create_access_token({"sub": "user-1"})
        assert decode_access_token(token[:-2] + "xx") is None
        assert decode_access_token("garbage") is None

    def test_revocation(self):
        token = create_access_token({"sub": "user-revoked"})
        assert not is_revoked(token)
        revoke_token(token)
        assert is_revoked(token)


class TestSanitizers:
    def test_text_is_escaped_and_truncated(self):
        assert sanitize_text('<a href="x">') == "&lt;a href=&quot;x&quot;&gt;"
        assert sanitize_text("abcdef", 3) == "abc"
        assert sanitize_text(None) == ""

    def test_truncation_keeps_entities_whole(self):
        assert sanitize_text("ab&cd", 3) == "ab&amp;"
        assert sanitize_text("<<<<", 2) == "&lt;&lt;"

    def test_id(self):
        assert sanitize_id("TKT-123_ab$;drop") == "TKT-123_abdrop"
        assert sanitize_id("x" * 200) == "x" * 100
        assert sanitize_id(42) == ""

    @pytest.mark.parametrize("raw,clean", [
        (" Ops@CivicIntel.Example ", "ops@civicintel.example"),
        ("not-an-email", None),
        ("a@b", None),
        (None, None),
    ])
    def test_email(self, raw, clean):
        assert sanitize_email(raw) == clean

    @pytest.mark.parametrize("raw,clean", [
        ("https://cdn.example/img.png", "https://cdn.example/img.png"),
        ("/uploads/1.png", "/uploads/1.png"),
        ("JavaScript:alert(1)", None),
        ("data:text/html;base64,xx", None),
        ("ftp://example/file", None),
    ])
    def test_url(self, raw, clean):
        assert sanitize_url(raw) == clean

    def test_coordinates(self):
        assert sanitize_coordinate("12.5", 77) == {"lat": 12.5, "lng": 77.0}
        assert sanitize_coordinate(91, 0) is None
        assert sanitize_coordinate(0, -181) is None
        assert sanitize_coordinate(float("nan"), 0) is None
        assert sanitize_coordinate(None, 1) is None

    def test_report_location_uses_valid_geolocation(self):
        assert parse_location("A, B, C", 12.97, 77.59)["lat"] == 12.97
        fallback = parse_location("A, B, C", 120, 77.59)
        assert (fallback["lat"], fallback["lng"]) == (DEFAULT_COORDINATES["lat"], DEFAULT_COORDINATES["lng"])
