"""
Login and password endpoints
"""

from fastapi import APIRouter, Depends

from .dependencies import BankingSystem, create_access_token, get_banking_system, get_current_session
from .schemas import ChangePasswordRequest, LoginRequest, TokenResponse, UserModel
from ..session import Session


router = APIRouter()


@router.post("/login", response_model=TokenResponse)
def login(
    request: LoginRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Authenticate an operator and return a bearer token"""
    session = system.service.login(request.username, request.password)
    user = system.auth_store.require_user(session.username)
    return TokenResponse(
        access_token=create_access_token(system, session),
        username=session.username,
        role=session.role.value,
        must_change_password=user.must_change_password
    )


@router.post("/password", response_model=UserModel)
def change_password(
    request: ChangePasswordRequest,
    session: Session = Depends(get_current_session),
    system: BankingSystem = Depends(get_banking_system)
):
    """Rotate the caller's own password"""
    user = system.service.change_password(session, request.old_password, request.new_password)
    return UserModel.from_user(user)
