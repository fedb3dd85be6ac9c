"""
Pydantic schemas for API requests and responses

All bodies use camelCase field names on the wire.
"""

from decimal import Decimal
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..accounts import Account
from ..auth import LoginResult
from ..customers import Customer


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Auth schemas
class LoginRequest(CamelModel):
    username: str
    password: str


class LoginResponse(CamelModel):
    token: str
    username: str
    type: str
    role: str
    expires_at: datetime

    @classmethod
    def from_result(cls, result: LoginResult) -> 'LoginResponse':
        return cls(
            token=result.token,
            username=result.username,
            type=result.type,
            role=result.role,
            expires_at=result.expires_at
        )


class ValidateRequest(CamelModel):
    token: str


class ValidateResponse(CamelModel):
    username: str
    valid: bool = True


# Customer schemas
class CustomerRequest(CamelModel):
    """Create/update body; a customerId in the body is accepted and ignored"""
    customer_id: Optional[int] = None
    name: str
    email: str
    mobile_number: str
    address: str


class CustomerResponse(CamelModel):
    customer_id: int
    name: str
    email: str
    mobile_number: str
    address: str
    created_date: Optional[datetime] = None
    updated_date: Optional[datetime] = None

    @classmethod
    def from_customer(cls, customer: Customer) -> 'CustomerResponse':
        return cls(
            customer_id=customer.customer_id,
            name=customer.name,
            email=customer.email,
            mobile_number=customer.mobile_number,
            address=customer.address,
            created_date=customer.created_date,
            updated_date=customer.updated_date
        )


# Account schemas
class CreateAccountRequest(CamelModel):
    account_holder_name: str
    account_balance: Decimal = Decimal("0.00")
    account_type: str
    customer_id: int


class UpdateAccountRequest(CamelModel):
    account_holder_name: str
    account_type: str


class AmountRequest(CamelModel):
    amount: Decimal = Field(..., description="Decimal amount")


class AccountResponse(CamelModel):
    account_no: str
    account_holder_name: str
    account_balance: str = Field(..., description="Decimal amount as string")
    account_type: str
    customer_id: int
    created_date: Optional[datetime] = None
    updated_date: Optional[datetime] = None

    @classmethod
    def from_account(cls, account: Account) -> 'AccountResponse':
        return cls(
            account_no=account.account_no,
            account_holder_name=account.account_holder_name,
            account_balance=str(account.account_balance),
            account_type=account.account_type.name,
            customer_id=account.customer_id,
            created_date=account.created_date,
            updated_date=account.updated_date
        )


class MessageResponse(CamelModel):
    message: str
