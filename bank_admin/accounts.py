"""
Account Management Module

Manages bank accounts: creation against an existing customer with a
generated account number, deposits and withdrawals applied as atomic
conditional updates, and read-only aggregates over the account set.
"""

from decimal import Decimal
from datetime import datetime, timezone, timedelta
from dataclasses import dataclass
from typing import Dict, List, Optional, Union
from enum import Enum

from .allocator import AccountNumberAllocator
from .errors import ValidationError, NotFoundError
from .logging_config import get_logger, log_action
from .money import MAX_AMOUNT, ZERO, to_amount, within_limit
from .storage import StorageInterface, StorageRecord, ForeignKeyError


logger = get_logger("bank_admin.accounts")

HOLDER_NAME_MIN_LENGTH = 2
HOLDER_NAME_MAX_LENGTH = 100


class AccountType(Enum):
    """Account types with their display labels"""
    SAVINGS = "Savings Account"
    CURRENT = "Current Account"
    CHECKING = "Checking Account"
    BUSINESS = "Business Account"

    @property
    def display_name(self) -> str:
        return self.value


# Values accepted on input in addition to the canonical names
LEGACY_ACCOUNT_TYPES = {
    "SAVING": AccountType.SAVINGS,
}


def parse_account_type(value: Union[str, AccountType]) -> AccountType:
    """
    Normalize an account type literal to an AccountType.

    Accepts the canonical names and the legacy "SAVING" spelling; anything else
    raises ValidationError.
    """
    if isinstance(value, AccountType):
        return value
    if isinstance(value, str):
        if value in AccountType.__members__:
            return AccountType[value]
        if value in LEGACY_ACCOUNT_TYPES:
            return LEGACY_ACCOUNT_TYPES[value]
    raise ValidationError(f"Unknown account type: {value}")


@dataclass
class Account(StorageRecord):
    """
    Bank account owned by exactly one customer (by id)
    """
    account_no: str
    account_holder_name: str
    account_balance: Decimal
    account_type: AccountType
    customer_id: int
    created_date: Optional[datetime] = None
    updated_date: Optional[datetime] = None

    def to_dict(self) -> Dict:
        result = super().to_dict()
        result['account_type'] = self.account_type.name
        return result

    @classmethod
    def from_dict(cls, data: Dict) -> 'Account':
        data = dict(data)
        data['account_type'] = parse_account_type(data['account_type'])
        data['account_balance'] = to_amount(data['account_balance'])
        return super().from_dict(data)


class AccountManager:
    """
    Manages account lifecycle and balance mutations
    """

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.accounts_table = "accounts"
        self.customers_table = "customers"
        self.allocator = AccountNumberAllocator(storage, self.accounts_table)

    def _validate_holder_name(self, name: str) -> None:
        if not name or not name.strip():
            raise ValidationError("Account holder name is required")
        if not HOLDER_NAME_MIN_LENGTH <= len(name) <= HOLDER_NAME_MAX_LENGTH:
            raise ValidationError(
                f"Account holder name must be between {HOLDER_NAME_MIN_LENGTH} "
                f"and {HOLDER_NAME_MAX_LENGTH} characters"
            )

    def create_account(
        self,
        account_holder_name: str,
        account_balance: Union[Decimal, int, str],
        account_type: Union[AccountType, str],
        customer_id: int
    ) -> Account:
        """
        Create a new account

        Args:
            account_holder_name: Label for the holder (may differ from the customer's name)
            account_balance: Opening balance, must be non-negative
            account_type: AccountType or its name
            customer_id: Owning customer, must exist

        Returns:
            Created Account with its generated account number

        Raises:
            NotFoundError: if the customer does not exist
            ValidationError: if the balance is negative, above MAX_AMOUNT, or a
                field is invalid
        """
        if customer_id is None or not self.storage.exists(
            self.customers_table, [("customer_id", "=", customer_id)]
        ):
            raise NotFoundError(f"Customer not found with id: {customer_id}")

        balance = to_amount(account_balance)
        if balance < ZERO:
            raise ValidationError("Account balance must be non-negative")
        if not within_limit(balance):
            raise ValidationError(f"Account balance cannot exceed {MAX_AMOUNT}")

        self._validate_holder_name(account_holder_name)
        account_type = parse_account_type(account_type)

        now = datetime.now(timezone.utc)

        def insert(account_no: str) -> Account:
            account = Account(
                account_no=account_no,
                account_holder_name=account_holder_name,
                account_balance=balance,
                account_type=account_type,
                customer_id=customer_id,
                created_date=now
            )
            self.storage.insert(self.accounts_table, account.to_dict())
            return account

        try:
            account = self.allocator.allocate_and_insert(insert)
        except ForeignKeyError:
            # Customer removed between the existence check and the insert
            raise NotFoundError(f"Customer not found with id: {customer_id}")

        log_action(
            logger, "info", "Account created",
            action="create_account", resource="account",
            extra={
                "account_no": account.account_no,
                "customer_id": customer_id,
                "account_type": account_type.name,
                "balance": str(balance)
            }
        )

        return account

    def get_account(self, account_no: str) -> Account:
        """Get account by number, raising NotFoundError if absent"""
        data = self.storage.load(self.accounts_table, account_no)
        if not data:
            raise NotFoundError(f"Account not found with number: {account_no}")
        return Account.from_dict(data)

    def exists(self, account_no: str) -> bool:
        """Check if an account number is in use"""
        return self.storage.exists(self.accounts_table, [("account_no", "=", account_no)])

    def update_account(
        self,
        account_no: str,
        account_holder_name: str,
        account_type: Union[AccountType, str]
    ) -> Account:
        """
        Update the holder name and type of an account.

        The balance only changes through deposit/withdraw; the number and owner
        never change.
        """
        account = self.get_account(account_no)
        self._validate_holder_name(account_holder_name)

        account.account_holder_name = account_holder_name
        account.account_type = parse_account_type(account_type)
        account.updated_date = datetime.now(timezone.utc)

        if not self.storage.update(self.accounts_table, account_no, {
            "account_holder_name": account.account_holder_name,
            "account_type": account.account_type.name,
            "updated_date": account.updated_date,
        }):
            raise NotFoundError(f"Account not found with number: {account_no}")

        log_action(
            logger, "info", "Account updated",
            action="update_account", resource="account",
            extra={"account_no": account_no}
        )
        return account

    def delete_account(self, account_no: str) -> None:
        """Delete an account regardless of its balance"""
        if not self.storage.delete(self.accounts_table, account_no):
            raise NotFoundError(f"Account not found with number: {account_no}")

        log_action(
            logger, "info", "Account deleted",
            action="delete_account", resource="account",
            extra={"account_no": account_no}
        )

    def deposit(self, account_no: str, amount: Union[Decimal, int, str]) -> Account:
        """
        Add a positive amount to the balance.

        Non-positive amounts leave the account untouched (no timestamp change).
        A deposit that would take the balance above MAX_AMOUNT is rejected
        with ValidationError.
        """
        amount = to_amount(amount)
        if amount <= ZERO:
            return self.get_account(account_no)
        if not within_limit(amount):
            if not self.exists(account_no):
                raise NotFoundError(f"Account not found with number: {account_no}")
            raise ValidationError(f"Deposit amount cannot exceed {MAX_AMOUNT}")

        updated = self.storage.adjust(
            self.accounts_table, account_no, "account_balance", amount,
            changes={"updated_date": datetime.now(timezone.utc)},
            ceiling=MAX_AMOUNT
        )
        if not updated:
            if not self.exists(account_no):
                raise NotFoundError(f"Account not found with number: {account_no}")
            raise ValidationError(f"Resulting balance would exceed {MAX_AMOUNT}")

        log_action(
            logger, "info", "Deposit applied",
            action="deposit", resource="account",
            extra={"account_no": account_no, "amount": str(amount)}
        )
        return self.get_account(account_no)

    def withdraw(self, account_no: str, amount: Union[Decimal, int, str]) -> bool:
        """
        Subtract an amount from the balance if funds allow.

        Returns False without touching the account when the amount is not
        positive or exceeds the current balance. The balance check and the
        subtraction are one conditional update in the store.
        """
        amount = to_amount(amount)
        if amount <= ZERO:
            if not self.exists(account_no):
                raise NotFoundError(f"Account not found with number: {account_no}")
            return False
        if not within_limit(amount):
            # No stored balance is this large
            if not self.exists(account_no):
                raise NotFoundError(f"Account not found with number: {account_no}")
            log_action(
                logger, "warning", "Withdrawal rejected: insufficient funds",
                action="withdraw_rejected", resource="account",
                extra={"account_no": account_no, "amount": str(amount)}
            )
            return False

        updated = self.storage.adjust(
            self.accounts_table, account_no, "account_balance", -amount,
            floor=ZERO,
            changes={"updated_date": datetime.now(timezone.utc)}
        )
        if not updated:
            if not self.exists(account_no):
                raise NotFoundError(f"Account not found with number: {account_no}")
            log_action(
                logger, "warning", "Withdrawal rejected: insufficient funds",
                action="withdraw_rejected", resource="account",
                extra={"account_no": account_no, "amount": str(amount)}
            )
            return False

        log_action(
            logger, "info", "Withdrawal applied",
            action="withdraw", resource="account",
            extra={"account_no": account_no, "amount": str(amount)}
        )
        return True

    def list_accounts(self) -> List[Account]:
        """All accounts, newest first"""
        rows = self.storage.load_all(self.accounts_table, order_by="created_date", descending=True)
        return [Account.from_dict(row) for row in rows]

    def get_customer_accounts(self, customer_id: int) -> List[Account]:
        """Get all accounts for a customer"""
        rows = self.storage.select(self.accounts_table, [("customer_id", "=", customer_id)])
        return [Account.from_dict(row) for row in rows]

    def get_accounts_by_type(self, account_type: Union[AccountType, str]) -> List[Account]:
        """All accounts of one type"""
        account_type = parse_account_type(account_type)
        rows = self.storage.select(self.accounts_table, [("account_type", "=", account_type.name)])
        return [Account.from_dict(row) for row in rows]

    def get_total_balance(self) -> Decimal:
        """Sum of all balances"""
        return self.storage.total(self.accounts_table, "account_balance")

    def get_total_balance_by_type(self, account_type: Union[AccountType, str]) -> Decimal:
        """Sum of balances for one account type"""
        account_type = parse_account_type(account_type)
        return self.storage.total(
            self.accounts_table, "account_balance", [("account_type", "=", account_type.name)]
        )

    def count_accounts(self) -> int:
        """Total number of accounts"""
        return self.storage.count(self.accounts_table)

    def count_accounts_by_type(self, account_type: Union[AccountType, str]) -> int:
        """Number of accounts of one type"""
        account_type = parse_account_type(account_type)
        return self.storage.count(self.accounts_table, [("account_type", "=", account_type.name)])

    def get_accounts_with_balance_above(self, min_balance: Union[Decimal, int, str]) -> List[Account]:
        """Accounts whose balance is strictly greater than min_balance"""
        min_balance = to_amount(min_balance)
        if min_balance >= MAX_AMOUNT:
            return []
        rows = self.storage.select(
            self.accounts_table, [("account_balance", ">", max(min_balance, -MAX_AMOUNT))],
            order_by="account_balance", descending=True
        )
        return [Account.from_dict(row) for row in rows]

    def get_recent_accounts(self, days: int) -> List[Account]:
        """Accounts created within the last ``days`` days, newest first"""
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)
        rows = self.storage.select(
            self.accounts_table, [("created_date", ">", cutoff)],
            order_by="created_date", descending=True
        )
        return [Account.from_dict(row) for row in rows]

    def get_top_accounts_by_balance(self, limit: int) -> List[Account]:
        """The ``limit`` accounts with the highest balances"""
        rows = self.storage.load_all(
            self.accounts_table, order_by="account_balance", descending=True, limit=limit
        )
        return [Account.from_dict(row) for row in rows]

    def search_by_holder_name(self, name: str) -> List[Account]:
        """Accounts whose holder name contains the pattern, case-insensitive"""
        rows = self.storage.select(
            self.accounts_table, [("account_holder_name", "contains", name)],
            order_by="account_holder_name"
        )
        return [Account.from_dict(row) for row in rows]
