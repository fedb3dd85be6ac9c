"""
Authentication Gate

Exchanges username/password for a signed HS256 JWT and validates bearer
tokens presented on guarded routes.
"""

from datetime import datetime, timezone, timedelta
from dataclasses import dataclass
from typing import Optional

import jwt

from .config import BankAdminConfig, get_config
from .errors import AuthenticationError
from .logging_config import get_logger, log_action
from .users import UserManager


logger = get_logger("bank_admin.auth")

TOKEN_TYPE = "Bearer"


@dataclass
class LoginResult:
    """Successful login"""
    token: str
    username: str
    role: str
    expires_at: datetime
    type: str = TOKEN_TYPE


class AuthenticationGate:
    """Issues and validates JWTs for back office users"""

    def __init__(self, user_manager: UserManager, config: Optional[BankAdminConfig] = None):
        self.user_manager = user_manager
        self.config = config or get_config()

    def login(self, username: str, password: str) -> LoginResult:
        """
        Authenticate a user and issue a token.

        Raises:
            AuthenticationError: unknown user, inactive user or wrong password
        """
        user = self.user_manager.get_user_by_username(username)
        if user is None or not user.is_active or not self.user_manager.verify_password(user, password):
            reason = "user_not_found" if user is None else (
                "user_inactive" if not user.is_active else "invalid_password"
            )
            log_action(
                logger, "warning", "Authentication failed",
                action="login_failed", resource="auth",
                extra={"username": username, "reason": reason}
            )
            raise AuthenticationError("Invalid username or password")

        now = datetime.now(timezone.utc)
        expires_at = now + timedelta(hours=self.config.jwt_expiry_hours)
        payload = {
            "sub": user.username,
            "role": user.role,
            "iat": now,
            "exp": expires_at,
        }
        token = jwt.encode(payload, self.config.jwt_secret, algorithm=self.config.jwt_algorithm)

        log_action(
            logger, "info", "User authenticated successfully",
            user_id=user.username, action="login", resource="auth"
        )

        return LoginResult(
            token=token,
            username=user.username,
            role=user.role,
            expires_at=expires_at
        )

    def validate_token(self, token: str) -> str:
        """Return the username a valid token was issued to"""
        if not token:
            raise AuthenticationError("Missing token")
        try:
            payload = jwt.decode(token, self.config.jwt_secret, algorithms=[self.config.jwt_algorithm])
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Token expired")
        except jwt.InvalidTokenError:
            raise AuthenticationError("Invalid token")

        username = payload.get("sub")
        if not username:
            raise AuthenticationError("Invalid token")
        return username
