"""
Account management endpoints
"""

from typing import List

from fastapi import APIRouter, HTTPException, Depends, Query, status

from .deps import BankAdminSystem, get_system
from .schemas import (
    AccountResponse,
    AmountRequest,
    CreateAccountRequest,
    MessageResponse,
    UpdateAccountRequest,
)


router = APIRouter()


def _accounts(accounts) -> List[AccountResponse]:
    return [AccountResponse.from_account(a) for a in accounts]


@router.get("", response_model=List[AccountResponse])
def list_accounts(system: BankAdminSystem = Depends(get_system)):
    """List all accounts, newest first"""
    return _accounts(system.account_manager.list_accounts())


@router.post("", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
def create_account(
    request: CreateAccountRequest,
    system: BankAdminSystem = Depends(get_system)
):
    """Create a new account; the account number is assigned by the server"""
    account = system.account_manager.create_account(
        account_holder_name=request.account_holder_name,
        account_balance=request.account_balance,
        account_type=request.account_type,
        customer_id=request.customer_id
    )
    return AccountResponse.from_account(account)


@router.get("/count", response_model=int)
def count_accounts(system: BankAdminSystem = Depends(get_system)):
    return system.account_manager.count_accounts()


@router.get("/total-balance", response_model=str)
def total_balance(system: BankAdminSystem = Depends(get_system)):
    return str(system.account_manager.get_total_balance())


@router.get("/customer/{customer_id}", response_model=List[AccountResponse])
def customer_accounts(customer_id: int, system: BankAdminSystem = Depends(get_system)):
    """Get all accounts for a customer"""
    return _accounts(system.account_manager.get_customer_accounts(customer_id))


@router.get("/type/{account_type}", response_model=List[AccountResponse])
def accounts_by_type(account_type: str, system: BankAdminSystem = Depends(get_system)):
    return _accounts(system.account_manager.get_accounts_by_type(account_type))


@router.get("/type/{account_type}/count", response_model=int)
def count_by_type(account_type: str, system: BankAdminSystem = Depends(get_system)):
    return system.account_manager.count_accounts_by_type(account_type)


@router.get("/type/{account_type}/total-balance", response_model=str)
def total_balance_by_type(account_type: str, system: BankAdminSystem = Depends(get_system)):
    return str(system.account_manager.get_total_balance_by_type(account_type))


@router.get("/recent", response_model=List[AccountResponse])
def recent_accounts(
    days: int = Query(30, ge=0),
    system: BankAdminSystem = Depends(get_system)
):
    """Accounts created within the last N days"""
    return _accounts(system.account_manager.get_recent_accounts(days))


@router.get("/high-balance", response_model=List[AccountResponse])
def high_balance_accounts(
    min_balance: str = Query(..., alias="min"),
    system: BankAdminSystem = Depends(get_system)
):
    """Accounts with a balance strictly above the given amount"""
    return _accounts(system.account_manager.get_accounts_with_balance_above(min_balance))


@router.get("/top", response_model=List[AccountResponse])
def top_accounts(
    limit: int = Query(10, ge=1),
    system: BankAdminSystem = Depends(get_system)
):
    return _accounts(system.account_manager.get_top_accounts_by_balance(limit))


@router.get("/search", response_model=List[AccountResponse])
def search_accounts(
    holder: str = Query(..., description="Substring of the holder name"),
    system: BankAdminSystem = Depends(get_system)
):
    """Search accounts by holder name, case-insensitive"""
    return _accounts(system.account_manager.search_by_holder_name(holder))


@router.get("/{account_no}", response_model=AccountResponse)
def get_account(account_no: str, system: BankAdminSystem = Depends(get_system)):
    """Get account by number"""
    return AccountResponse.from_account(system.account_manager.get_account(account_no))


@router.put("/{account_no}", response_model=AccountResponse)
def update_account(
    account_no: str,
    request: UpdateAccountRequest,
    system: BankAdminSystem = Depends(get_system)
):
    """Update holder name and account type"""
    account = system.account_manager.update_account(
        account_no, request.account_holder_name, request.account_type
    )
    return AccountResponse.from_account(account)


@router.delete("/{account_no}", response_model=MessageResponse)
def delete_account(account_no: str, system: BankAdminSystem = Depends(get_system)):
    system.account_manager.delete_account(account_no)
    return MessageResponse(message="Account deleted successfully")


@router.post("/{account_no}/deposit", response_model=AccountResponse)
def deposit(
    account_no: str,
    request: AmountRequest,
    system: BankAdminSystem = Depends(get_system)
):
    """Deposit into an account; non-positive amounts leave it unchanged"""
    return AccountResponse.from_account(system.account_manager.deposit(account_no, request.amount))


@router.post("/{account_no}/withdraw", response_model=AccountResponse)
def withdraw(
    account_no: str,
    request: AmountRequest,
    system: BankAdminSystem = Depends(get_system)
):
    """Withdraw from an account; rejected with 400 if funds are insufficient"""
    if not system.account_manager.withdraw(account_no, request.amount):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Withdrawal rejected")
    return AccountResponse.from_account(system.account_manager.get_account(account_no))
