"""
Data Initializer

Creates the default back office users when absent and, only when both the
customer and account tables are empty, a small set of sample records.
Existing data is never modified.
"""

from decimal import Decimal
from typing import Dict

from .accounts import AccountManager, AccountType
from .config import BankAdminConfig
from .customers import CustomerManager
from .logging_config import get_logger, log_action
from .money import format_amount
from .storage import StorageInterface
from .users import UserManager


logger = get_logger("bank_admin.seed")

DEFAULT_USERS = [
    ("admin", "password", "ADMIN"),
    ("manager", "manager123", "ADMIN"),
]

SAMPLE_CUSTOMERS = [
    ("John Smith", "john.smith@email.com", "+1-555-0123",
     "123 Main Street, Springfield, IL 62701, USA"),
    ("Sarah Johnson", "sarah.johnson@email.com", "+1-555-0124",
     "456 Oak Avenue, Madison, WI 53703, USA"),
    ("Michael Brown", "michael.brown@email.com", "+1-555-0125",
     "789 Pine Road, Austin, TX 78701, USA"),
    ("Emily Davis", "emily.davis@email.com", "+1-555-0126",
     "321 Elm Street, Denver, CO 80202, USA"),
    ("David Wilson", "david.wilson@email.com", "+1-555-0127",
     "654 Maple Drive, Seattle, WA 98101, USA"),
    ("Lisa Anderson", "lisa.anderson@email.com", "+1-555-0128",
     "987 Cedar Lane, Miami, FL 33101, USA"),
]

# (index into SAMPLE_CUSTOMERS, holder name, opening balance, type)
SAMPLE_ACCOUNTS = [
    (0, "John Smith", Decimal("15000.00"), AccountType.SAVINGS),
    (1, "Sarah Johnson", Decimal("8500.00"), AccountType.CURRENT),
    (2, "Michael Brown", Decimal("25000.00"), AccountType.CURRENT),
    (3, "Emily Davis", Decimal("12750.50"), AccountType.SAVINGS),
    (4, "David Wilson", Decimal("5500.75"), AccountType.CURRENT),
    (0, "John Smith", Decimal("3200.00"), AccountType.SAVINGS),
    (5, "Lisa Anderson", Decimal("18000.25"), AccountType.SAVINGS),
    (5, "Lisa Anderson", Decimal("7500.00"), AccountType.CURRENT),
]


class DataInitializer:
    """Seeds an empty store with default users and sample records"""

    def __init__(self, storage: StorageInterface, user_manager: UserManager,
                 customer_manager: CustomerManager, account_manager: AccountManager):
        self.storage = storage
        self.user_manager = user_manager
        self.customer_manager = customer_manager
        self.account_manager = account_manager

    def seed_users(self) -> int:
        """Create each default user that does not exist yet; returns how many were created"""
        created = 0
        for username, password, role in DEFAULT_USERS:
            if not self.user_manager.exists(username):
                self.user_manager.create_user(username, password, role)
                created += 1
        return created

    def needs_samples(self) -> bool:
        return (self.customer_manager.count_customers() == 0
                and self.account_manager.count_accounts() == 0)

    def seed_sample_data(self) -> bool:
        """Create sample customers and accounts if both tables are empty"""
        if not self.needs_samples():
            logger.info("Existing data found, sample data not loaded")
            return False

        with self.storage.atomic():
            customers = [
                self.customer_manager.create_customer(name, email, mobile, address)
                for name, email, mobile, address in SAMPLE_CUSTOMERS
            ]
            for index, holder, balance, account_type in SAMPLE_ACCOUNTS:
                self.account_manager.create_account(
                    holder, balance, account_type, customers[index].customer_id
                )

        log_action(
            logger, "info", "Sample data created",
            action="seed_sample_data", resource="system",
            extra={
                "customers": len(SAMPLE_CUSTOMERS),
                "accounts": len(SAMPLE_ACCOUNTS),
                "total_balance": format_amount(self.account_manager.get_total_balance())
            }
        )
        return True

    def run(self, config: BankAdminConfig) -> Dict[str, int]:
        """Run the initializer according to configuration and report table sizes"""
        if config.seed_admin_users:
            self.seed_users()
        if config.seed_sample_data:
            self.seed_sample_data()

        status = {
            "users": self.user_manager.count(),
            "customers": self.customer_manager.count_customers(),
            "accounts": self.account_manager.count_accounts(),
        }
        log_action(
            logger, "info", "Data initialization completed",
            action="seed", resource="system", extra=status
        )
        return status
