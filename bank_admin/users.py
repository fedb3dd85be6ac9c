"""
Back Office User Module

Administrative users who may log in to the API. Passwords are stored as a
scrypt hash together with a random per-user salt.
"""

from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Optional
import hashlib
import hmac
import secrets

from .errors import ValidationError
from .logging_config import get_logger, log_action
from .storage import StorageInterface, StorageRecord, DuplicateKeyError


logger = get_logger("bank_admin.users")

DEFAULT_ROLE = "ADMIN"


@dataclass
class User(StorageRecord):
    """Back office user with authentication info"""
    username: str
    password_hash: str
    role: str = DEFAULT_ROLE
    is_active: bool = True
    user_id: Optional[int] = None
    created_date: Optional[datetime] = None


class UserManager:
    """Manages back office users and password verification"""

    def __init__(self, storage: StorageInterface, password_min_length: int = 8):
        self.storage = storage
        self.table_name = "users"
        self.password_min_length = password_min_length

    def create_user(self, username: str, password: str, role: str = DEFAULT_ROLE) -> User:
        """Create a new user; raises ValidationError if the username is taken"""
        if not username or not username.strip():
            raise ValidationError("Username is required")
        if not password or len(password) < self.password_min_length:
            raise ValidationError(
                f"Password must be at least {self.password_min_length} characters"
            )
        if self.exists(username):
            raise ValidationError(f"Username already exists: {username}")

        user = User(
            username=username,
            password_hash=self._hash_password(password, self._generate_salt()),
            role=role,
            created_date=datetime.now(timezone.utc)
        )
        data = user.to_dict()
        data.pop("user_id")
        try:
            user.user_id = self.storage.insert(self.table_name, data)
        except DuplicateKeyError:
            raise ValidationError(f"Username already exists: {username}")

        log_action(
            logger, "info", "User created",
            action="create_user", resource="user",
            extra={"username": username, "role": role}
        )
        return user

    def get_user_by_username(self, username: str) -> Optional[User]:
        """Get user by username"""
        rows = self.storage.find(self.table_name, {"username": username})
        if not rows:
            return None
        return User.from_dict(rows[0])

    def exists(self, username: str) -> bool:
        return self.storage.exists(self.table_name, [("username", "=", username)])

    def count(self) -> int:
        return self.storage.count(self.table_name)

    def verify_password(self, user: User, password: str) -> bool:
        """Verify password against the stored salt$hash"""
        if not user.password_hash or "$" not in user.password_hash:
            return False
        salt, _ = user.password_hash.split("$", 1)
        return hmac.compare_digest(user.password_hash, self._hash_password(password, salt))

    def _generate_salt(self) -> str:
        """Generate random salt for password hashing"""
        return secrets.token_hex(16)

    def _hash_password(self, password: str, salt: str) -> str:
        """Hash password with salt using scrypt"""
        digest = hashlib.scrypt(
            password.encode(),
            salt=salt.encode(),
            n=16384, r=8, p=1
        ).hex()
        return f"{salt}${digest}"
