"""
Shared API dependencies: the system container and the bearer-token guard
"""

from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..accounts import AccountManager
from ..auth import AuthenticationGate
from ..config import BankAdminConfig, get_config
from ..customers import CustomerManager
from ..errors import AuthenticationError
from ..seed import DataInitializer
from ..storage import StorageInterface, create_storage
from ..users import UserManager


security = HTTPBearer(auto_error=False)


class BankAdminSystem:
    """Back office system with all components initialized over one storage backend"""

    def __init__(self, storage: StorageInterface, config: Optional[BankAdminConfig] = None):
        self.config = config or get_config()
        self.storage = storage

        self.user_manager = UserManager(self.storage, self.config.password_min_length)
        self.customer_manager = CustomerManager(self.storage)
        self.account_manager = AccountManager(self.storage)
        self.auth_gate = AuthenticationGate(self.user_manager, self.config)
        self.initializer = DataInitializer(
            self.storage, self.user_manager, self.customer_manager, self.account_manager
        )

    @classmethod
    def from_config(cls, config: Optional[BankAdminConfig] = None) -> 'BankAdminSystem':
        """Open the configured database and run the data initializer"""
        config = config or get_config()
        system = cls(create_storage(config.database_url), config)
        system.initializer.run(config)
        return system

    def close(self) -> None:
        self.storage.close()


def get_system(request: Request) -> BankAdminSystem:
    """Dependency returning the application's system, built on first use"""
    system = getattr(request.app.state, "system", None)
    if system is None:
        system = BankAdminSystem.from_config()
        request.app.state.system = system
    return system


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    system: BankAdminSystem = Depends(get_system)
) -> str:
    """Dependency that validates the bearer JWT and returns the username"""
    if not system.config.auth_enabled:
        return "anonymous"

    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return system.auth_gate.validate_token(credentials.credentials)
    except AuthenticationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message,
            headers={"WWW-Authenticate": "Bearer"},
        )
