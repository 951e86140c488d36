"""
Tests for security functions: password hashing, login tokens and relay tokens.
"""
import pytest
from datetime import timedelta
from jose import jwt

from tellus_crm.core.security import (
    RELAY_TOKEN_AUDIENCE,
    create_access_token,
    create_relay_token,
    decode_access_token,
    decode_relay_token,
    get_password_hash,
    verify_password,
)
from tellus_crm.config import settings


class TestPasswordHashing:
    """Tests for password hashing functions."""

    def test_hash_is_bcrypt(self):
        hashed = get_password_hash("senha_forte_123")

        assert hashed != "senha_forte_123"
        assert hashed.startswith("$2b$")

    def test_hash_is_salted(self):
        """Same password should produce different hashes."""
        assert get_password_hash("same_password") != get_password_hash("same_password")

    def test_verify_correct_password(self):
        hashed = get_password_hash("correct_password")

        assert verify_password("correct_password", hashed) is True

    def test_verify_wrong_password(self):
        hashed = get_password_hash("correct_password")

        assert verify_password("wrong_password", hashed) is False

    @pytest.mark.parametrize("password", ["p@$$w0rd!#$%^&*()", "senha_çãõ_密码"])
    def test_special_characters(self, password):
        assert verify_password(password, get_password_hash(password)) is True


class TestAccessTokens:
    """Tests for staff login tokens."""

    def test_token_is_jwt(self):
        token = create_access_token({"sub": "1"})

        assert token.count(".") == 2

    def test_round_trip_claims(self):
        token = create_access_token({"sub": "1", "role": "admin"}, timedelta(hours=1))

        payload = decode_access_token(token)

        assert payload["sub"] == "1"
        assert payload["role"] == "admin"
        assert "exp" in payload

    def test_expired_token(self):
        token = create_access_token({"sub": "1"}, timedelta(seconds=-10))

        assert decode_access_token(token) is None

    def test_invalid_token(self):
        assert decode_access_token("not.a.valid.jwt.token") is None
        assert decode_access_token("") is None

    def test_tampered_token(self):
        parts = create_access_token({"sub": "1"}).split(".")
        parts[1] = parts[1][:-5] + "XXXXX"

        assert decode_access_token(".".join(parts)) is None

    def test_token_signed_with_other_key(self):
        token = jwt.encode({"sub": "1"}, "another-secret-key-of-sufficient-length", algorithm=settings.ALGORITHM)

        assert decode_access_token(token) is None


class TestRelayTokens:
    """Tests for tokens embedded in relay URLs."""

    def test_round_trip_path(self):
        token = create_relay_token("12345678909/a.pdf", 600)

        assert decode_relay_token(token) == "12345678909/a.pdf"

    def test_expired_relay_token(self):
        token = create_relay_token("12345678909/a.pdf", -1)

        assert decode_relay_token(token) is None

    def test_relay_token_is_not_a_login_token(self):
        """A leaked document URL must not authenticate API calls."""
        token = create_relay_token("12345678909/a.pdf", 600)

        assert decode_access_token(token) is None

    def test_login_token_is_not_a_relay_token(self):
        token = create_access_token({"sub": "1", "path": "12345678909/a.pdf"})

        assert decode_relay_token(token) is None

    def test_relay_audience_claim(self):
        token = create_relay_token("12345678909/a.pdf", 600)

        claims = jwt.get_unverified_claims(token)

        assert claims["aud"] == RELAY_TOKEN_AUDIENCE
        assert claims["path"] == "12345678909/a.pdf"
