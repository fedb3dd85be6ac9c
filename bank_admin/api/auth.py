"""
Authentication endpoints
"""

from fastapi import APIRouter, HTTPException, Depends, status

from .deps import BankAdminSystem, get_system
from .schemas import LoginRequest, LoginResponse, ValidateRequest, ValidateResponse
from ..errors import AuthenticationError


router = APIRouter()


@router.post("/login", response_model=LoginResponse)
def login(
    request: LoginRequest,
    system: BankAdminSystem = Depends(get_system)
):
    """Authenticate user and return JWT token"""
    try:
        result = system.auth_gate.login(request.username, request.password)
    except AuthenticationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    return LoginResponse.from_result(result)


@router.post("/validate", response_model=ValidateResponse)
def validate(
    request: ValidateRequest,
    system: BankAdminSystem = Depends(get_system)
):
    """Check a token and return the username it was issued to"""
    try:
        username = system.auth_gate.validate_token(request.token)
    except AuthenticationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    return ValidateResponse(username=username)
