"""
Customer management endpoints

Static paths are declared before ``/{customer_id}`` so they are not captured
by it.
"""

from typing import List

from fastapi import APIRouter, Depends, Query, status

from .deps import BankAdminSystem, get_system
from .schemas import CustomerRequest, CustomerResponse, MessageResponse


router = APIRouter()


@router.get("", response_model=List[CustomerResponse])
def list_customers(system: BankAdminSystem = Depends(get_system)):
    """List all customers, newest first"""
    return [CustomerResponse.from_customer(c) for c in system.customer_manager.list_customers()]


@router.post("", response_model=CustomerResponse, status_code=status.HTTP_201_CREATED)
def create_customer(
    request: CustomerRequest,
    system: BankAdminSystem = Depends(get_system)
):
    """Create a new customer"""
    customer = system.customer_manager.create_customer(
        name=request.name,
        email=request.email,
        mobile_number=request.mobile_number,
        address=request.address
    )
    return CustomerResponse.from_customer(customer)


@router.get("/count", response_model=int)
def count_customers(system: BankAdminSystem = Depends(get_system)):
    return system.customer_manager.count_customers()


@router.get("/search", response_model=List[CustomerResponse])
def search_customers(
    name: str = Query(..., description="Substring of the customer name"),
    system: BankAdminSystem = Depends(get_system)
):
    """Search customers by name, case-insensitive"""
    return [CustomerResponse.from_customer(c) for c in system.customer_manager.search_customers(name)]


@router.get("/exists/{customer_id}", response_model=bool)
def customer_exists(customer_id: int, system: BankAdminSystem = Depends(get_system)):
    return system.customer_manager.exists(customer_id)


@router.get("/with-accounts", response_model=List[CustomerResponse])
def customers_with_accounts(system: BankAdminSystem = Depends(get_system)):
    return [CustomerResponse.from_customer(c)
            for c in system.customer_manager.get_customers_with_accounts()]


@router.get("/without-accounts", response_model=List[CustomerResponse])
def customers_without_accounts(system: BankAdminSystem = Depends(get_system)):
    return [CustomerResponse.from_customer(c)
            for c in system.customer_manager.get_customers_without_accounts()]


@router.get("/recent", response_model=List[CustomerResponse])
def recent_customers(
    days: int = Query(30, ge=0),
    system: BankAdminSystem = Depends(get_system)
):
    """Customers created within the last N days"""
    return [CustomerResponse.from_customer(c)
            for c in system.customer_manager.get_recent_customers(days)]


@router.get("/{customer_id}", response_model=CustomerResponse)
def get_customer(customer_id: int, system: BankAdminSystem = Depends(get_system)):
    """Get customer by ID"""
    return CustomerResponse.from_customer(system.customer_manager.get_customer(customer_id))


@router.put("/{customer_id}", response_model=CustomerResponse)
def update_customer(
    customer_id: int,
    request: CustomerRequest,
    system: BankAdminSystem = Depends(get_system)
):
    """Update customer information; the path id wins over any id in the body"""
    customer = system.customer_manager.update_customer(
        customer_id=customer_id,
        name=request.name,
        email=request.email,
        mobile_number=request.mobile_number,
        address=request.address
    )
    return CustomerResponse.from_customer(customer)


@router.delete("/{customer_id}", response_model=MessageResponse)
def delete_customer(customer_id: int, system: BankAdminSystem = Depends(get_system)):
    """Delete a customer that owns no accounts"""
    system.customer_manager.delete_customer(customer_id)
    return MessageResponse(message="Customer deleted successfully")
