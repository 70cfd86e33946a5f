import pytest
from datetime import timedelta

import jwt

from core.auth import PasswordManager, TokenManager, TokenType, get_token_manager, init_token_manager
from core.exceptions import AuthenticationError, ValidationError


class TestTokenManager:
    """Test JWT issue and verification."""

    @pytest.fixture
    def tokens(self):
        return TokenManager("access-secret", "refresh-secret")

    def test_access_token_round_trip(self, tokens):
        token = tokens.create_access_token("u1", "jane", "jane@example.com")
        payload = tokens.verify_token(token, TokenType.ACCESS)

        assert payload["sub"] == "u1"
        assert payload["username"] == "jane"
        assert payload["email"] == "jane@example.com"
        assert payload["type"] == "access"

    def test_refresh_token_is_not_an_access_token(self, tokens):
        token = tokens.create_refresh_token("u1")

        assert tokens.verify_token(token, TokenType.REFRESH)["sub"] == "u1"
        with pytest.raises(AuthenticationError):
            tokens.verify_token(token, TokenType.ACCESS)

    def test_tokens_are_unique(self, tokens):
        assert tokens.create_refresh_token("u1") != tokens.create_refresh_token("u1")

    def test_expired_token(self, tokens):
        tokens.lifetimes[TokenType.ACCESS] = timedelta(seconds=-1)
        token = tokens.create_access_token("u1", "jane", "jane@example.com")

        with pytest.raises(AuthenticationError) as exc_info:
            tokens.verify_token(token)
        assert exc_info.value.message == "Token has expired"

    def test_tampered_token(self, tokens):
        forged = jwt.encode({"sub": "u1", "type": "access"}, "someone-else", algorithm="HS256")
        with pytest.raises(AuthenticationError):
            tokens.verify_token(forged)

    def test_secrets_from_environment(self):
        manager = TokenManager()
        assert manager.secrets[TokenType.ACCESS] == "test-access-secret"
        assert manager.secrets[TokenType.REFRESH] == "test-refresh-secret"

    def test_process_wide_instance(self):
        manager = init_token_manager(access_secret="a", refresh_secret="b")
        assert get_token_manager() is manager


class TestPasswordManager:
    """Test password hashing."""

    def test_hash_and_verify(self):
        hashed = PasswordManager.hash_password("correct-horse")

        assert hashed != "correct-horse"
        assert PasswordManager.verify_password("correct-horse", hashed) is True
        assert PasswordManager.verify_password("wrong-horse", hashed) is False

    def test_verify_against_garbage_hash(self):
        assert PasswordManager.verify_password("anything", "not-a-real-hash") is False
        assert PasswordManager.verify_password("", "") is False

    @pytest.mark.parametrize("password", [None, "short", "x" * 73])
    def test_password_policy(self, password):
        with pytest.raises(ValidationError):
            PasswordManager.hash_password(password)
