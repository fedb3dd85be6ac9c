"""
Customer Management Module

Manages customer records: field validation, email uniqueness, timestamps,
search and the rule that a customer owning accounts cannot be deleted.
"""

from datetime import datetime, timezone, timedelta
from dataclasses import dataclass
from typing import List, Optional
import re

from .errors import ValidationError, NotFoundError, ConflictError
from .logging_config import get_logger, log_action
from .storage import StorageInterface, StorageRecord, DuplicateKeyError, ForeignKeyError


logger = get_logger("bank_admin.customers")

EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 100
EMAIL_MAX_LENGTH = 150
MOBILE_MAX_LENGTH = 20
ADDRESS_MIN_LENGTH = 10
ADDRESS_MAX_LENGTH = 500


@dataclass
class Customer(StorageRecord):
    """
    Bank customer. Accounts reference the customer by id; the customer holds
    no back-pointer to them.
    """
    name: str
    email: str
    mobile_number: str
    address: str
    customer_id: Optional[int] = None
    created_date: Optional[datetime] = None
    updated_date: Optional[datetime] = None


def validate_customer_fields(name: str, email: str, mobile_number: str, address: str) -> None:
    """Raise ValidationError if any customer field violates its constraints"""
    errors = []

    if not name or not name.strip():
        errors.append("Customer name is required")
    elif not NAME_MIN_LENGTH <= len(name) <= NAME_MAX_LENGTH:
        errors.append(f"Name must be between {NAME_MIN_LENGTH} and {NAME_MAX_LENGTH} characters")

    if not email or not email.strip():
        errors.append("Email is required")
    elif len(email) > EMAIL_MAX_LENGTH or not EMAIL_PATTERN.match(email):
        errors.append("Please provide a valid email address")

    if not mobile_number or not mobile_number.strip():
        errors.append("Mobile number is required")
    elif len(mobile_number) > MOBILE_MAX_LENGTH:
        errors.append(f"Mobile number must be at most {MOBILE_MAX_LENGTH} characters")

    if not address or not address.strip():
        errors.append("Address is required")
    elif not ADDRESS_MIN_LENGTH <= len(address) <= ADDRESS_MAX_LENGTH:
        errors.append(
            f"Address must be between {ADDRESS_MIN_LENGTH} and {ADDRESS_MAX_LENGTH} characters"
        )

    if errors:
        raise ValidationError("; ".join(errors))


class CustomerManager:
    """
    Manages customer lifecycle: create, read, update, delete and search
    """

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.table_name = "customers"
        self.accounts_table = "accounts"

    def create_customer(
        self,
        name: str,
        email: str,
        mobile_number: str,
        address: str
    ) -> Customer:
        """
        Create a new customer

        Args:
            name: Customer's full name (2-100 characters)
            email: Unique email address
            mobile_number: Contact number
            address: Postal address (10-500 characters)

        Returns:
            Created Customer with its store-assigned id

        Raises:
            ValidationError: if a field is invalid or the email already exists
        """
        validate_customer_fields(name, email, mobile_number, address)

        if self.exists_by_email(email):
            raise ValidationError(f"Email already exists: {email}")

        customer = Customer(
            name=name,
            email=email,
            mobile_number=mobile_number,
            address=address,
            created_date=datetime.now(timezone.utc)
        )

        data = customer.to_dict()
        data.pop("customer_id")
        try:
            customer.customer_id = self.storage.insert(self.table_name, data)
        except DuplicateKeyError:
            raise ValidationError(f"Email already exists: {email}")

        log_action(
            logger, "info", "Customer created",
            action="create_customer", resource="customer",
            extra={"customer_id": customer.customer_id, "email": email}
        )

        return customer

    def get_customer(self, customer_id: int) -> Customer:
        """Get customer by ID, raising NotFoundError if absent"""
        data = self.storage.load(self.table_name, customer_id)
        if not data:
            raise NotFoundError(f"Customer not found with id: {customer_id}")
        return Customer.from_dict(data)

    def exists(self, customer_id: int) -> bool:
        """Check if a customer with this id exists"""
        return self.storage.exists(self.table_name, [("customer_id", "=", customer_id)])

    def get_customer_by_email(self, email: str) -> Customer:
        """Get customer by email address"""
        rows = self.storage.find(self.table_name, {"email": email})
        if not rows:
            raise NotFoundError(f"Customer not found with email: {email}")
        return Customer.from_dict(rows[0])

    def exists_by_email(self, email: str) -> bool:
        """Check if any customer uses this email"""
        return self.storage.exists(self.table_name, [("email", "=", email)])

    def update_customer(
        self,
        customer_id: int,
        name: str,
        email: str,
        mobile_number: str,
        address: str
    ) -> Customer:
        """
        Overwrite the mutable fields of a customer.

        The customer id is taken from the argument only; it is never changed.
        """
        customer = self.get_customer(customer_id)

        validate_customer_fields(name, email, mobile_number, address)

        if self.storage.exists(self.table_name, [
            ("email", "=", email), ("customer_id", "!=", customer_id)
        ]):
            raise ValidationError(f"Email already exists: {email}")

        customer.name = name
        customer.email = email
        customer.mobile_number = mobile_number
        customer.address = address
        customer.updated_date = datetime.now(timezone.utc)

        data = customer.to_dict()
        data.pop("customer_id")
        data.pop("created_date")
        try:
            updated = self.storage.update(self.table_name, customer_id, data)
        except DuplicateKeyError:
            raise ValidationError(f"Email already exists: {email}")
        if not updated:
            raise NotFoundError(f"Customer not found with id: {customer_id}")

        log_action(
            logger, "info", "Customer updated",
            action="update_customer", resource="customer",
            extra={"customer_id": customer_id}
        )

        return customer

    def delete_customer(self, customer_id: int) -> None:
        """Delete a customer that owns no accounts"""
        self.get_customer(customer_id)

        account_count = self.storage.count(self.accounts_table, [("customer_id", "=", customer_id)])
        if account_count > 0:
            raise ConflictError("Cannot delete customer with existing accounts")

        try:
            deleted = self.storage.delete(self.table_name, customer_id)
        except ForeignKeyError:
            raise ConflictError("Cannot delete customer with existing accounts")
        if not deleted:
            raise NotFoundError(f"Customer not found with id: {customer_id}")

        log_action(
            logger, "info", "Customer deleted",
            action="delete_customer", resource="customer",
            extra={"customer_id": customer_id}
        )

    def list_customers(self) -> List[Customer]:
        """All customers, newest first"""
        rows = self.storage.load_all(self.table_name, order_by="created_date", descending=True)
        return [Customer.from_dict(row) for row in rows]

    def search_customers(self, name: str) -> List[Customer]:
        """Customers whose name contains the pattern, case-insensitive"""
        rows = self.storage.select(self.table_name, [("name", "contains", name)], order_by="name")
        return [Customer.from_dict(row) for row in rows]

    def count_customers(self) -> int:
        """Total number of customers"""
        return self.storage.count(self.table_name)

    def _owner_ids(self) -> set:
        return {row["customer_id"] for row in self.storage.load_all(self.accounts_table)}

    def get_customers_with_accounts(self) -> List[Customer]:
        """Customers owning at least one account"""
        owners = self._owner_ids()
        return [c for c in self.list_customers() if c.customer_id in owners]

    def get_customers_without_accounts(self) -> List[Customer]:
        """Customers owning no accounts"""
        owners = self._owner_ids()
        return [c for c in self.list_customers() if c.customer_id not in owners]

    def get_recent_customers(self, days: int) -> List[Customer]:
        """Customers created within the last ``days`` days, newest first"""
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)
        rows = self.storage.select(
            self.table_name, [("created_date", ">", cutoff)],
            order_by="created_date", descending=True
        )
        return [Customer.from_dict(row) for row in rows]
