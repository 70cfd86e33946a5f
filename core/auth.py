"""
Session Tokens and Password Hashing.

The identity collaborator of the VideoTube API: it issues and verifies the JWTs
that identify a caller and hashes account passwords. Nothing here touches the
database; `services/user_service.py` decides who gets a token and
`api/dependencies.py` turns a verified token into a `Viewer`.

Key Components:
- `TokenManager`: Creates and verifies access and refresh tokens. The two token
  kinds use separate secrets and lifetimes, so a refresh token can never be
  replayed as an access token.
- `PasswordManager`: bcrypt hashing and verification plus the password policy.
- `init_token_manager` / `get_token_manager`: Process-wide instance.
"""

import os
import secrets
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional

import bcrypt
import jwt

from core.logging_config import get_logger
from core.exceptions import AuthenticationError, ValidationError

logger = get_logger(__name__)


class TokenType(Enum):
    """Token types"""

    ACCESS = "access"
    REFRESH = "refresh"


class TokenManager:
    """JWT token management"""

    def __init__(
        self,
        access_secret: Optional[str] = None,
        refresh_secret: Optional[str] = None,
        algorithm: str = "HS256",
    ):
        self.secrets = {
            TokenType.ACCESS: access_secret
            or os.getenv("ACCESS_TOKEN_SECRET")
            or self._generate_secret_key("ACCESS_TOKEN_SECRET"),
            TokenType.REFRESH: refresh_secret
            or os.getenv("REFRESH_TOKEN_SECRET")
            or self._generate_secret_key("REFRESH_TOKEN_SECRET"),
        }
        self.algorithm = algorithm
        self.lifetimes = {
            TokenType.ACCESS: timedelta(
                minutes=int(os.getenv("ACCESS_TOKEN_EXPIRY_MINUTES", "60"))
            ),
            TokenType.REFRESH: timedelta(
                days=int(os.getenv("REFRESH_TOKEN_EXPIRY_DAYS", "10"))
            ),
        }

    def _generate_secret_key(self, variable: str) -> str:
        logger.warning(
            f"Generated a random token secret. Set {variable} so tokens survive restarts."
        )
        return secrets.token_urlsafe(32)

    def _create_token(self, user_id: str, token_type: TokenType, claims: Dict[str, Any]) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": user_id,
            "type": token_type.value,
            "iat": now,
            "exp": now + self.lifetimes[token_type],
            "jti": secrets.token_urlsafe(16),
            **claims,
        }
        return jwt.encode(payload, self.secrets[token_type], algorithm=self.algorithm)

    def create_access_token(self, user_id: str, username: str, email: str) -> str:
        """Create JWT access token"""
        return self._create_token(
            user_id, TokenType.ACCESS, {"username": username, "email": email}
        )

    def create_refresh_token(self, user_id: str) -> str:
        """Create JWT refresh token"""
        return self._create_token(user_id, TokenType.REFRESH, {})

    def verify_token(
        self, token: str, token_type: TokenType = TokenType.ACCESS
    ) -> Dict[str, Any]:
        """Verify and decode JWT token"""
        try:
            payload = jwt.decode(
                token, self.secrets[token_type], algorithms=[self.algorithm]
            )
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Token has expired")
        except jwt.InvalidTokenError as e:
            raise AuthenticationError(f"Invalid token: {str(e)}")

        if payload.get("type") != token_type.value or not payload.get("sub"):
            raise AuthenticationError(
                f"Invalid token type. Expected {token_type.value}"
            )
        return payload


class PasswordManager:
    """Password hashing and verification"""

    @staticmethod
    def hash_password(password: str) -> str:
        """Hash password using bcrypt"""
        PasswordManager.validate_password_strength(password)

        hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt())
        return hashed.decode("utf-8")

    @staticmethod
    def verify_password(password: str, hashed: str) -> bool:
        """Verify password against hash"""
        if not password or not hashed:
            return False
        try:
            return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
        except ValueError as e:
            logger.error(f"Password verification error: {e}")
            return False

    @staticmethod
    def validate_password_strength(password: str) -> bool:
        if not isinstance(password, str) or len(password) < 8:
            raise ValidationError(
                "Password must be at least 8 characters long", "password"
            )
        # bcrypt only looks at the first 72 bytes
        if len(password.encode("utf-8")) > 72:
            raise ValidationError(
                "Password must be no more than 72 bytes long", "password"
            )
        return True


_token_manager: Optional[TokenManager] = None


def init_token_manager(**kwargs) -> TokenManager:
    global _token_manager
    _token_manager = TokenManager(**kwargs)
    return _token_manager


def get_token_manager() -> TokenManager:
    global _token_manager
    if _token_manager is None:
        _token_manager = TokenManager()
    return _token_manager
