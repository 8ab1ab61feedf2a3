"""
Operator registry endpoints (admin only)
"""

from typing import List

from fastapi import APIRouter, Depends, status

from .dependencies import BankingSystem, get_banking_system, get_current_session
from .schemas import RegisterUserRequest, UserModel
from ..session import Session


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED, response_model=UserModel)
def register_user(
    request: RegisterUserRequest,
    session: Session = Depends(get_current_session),
    system: BankingSystem = Depends(get_banking_system)
):
    """Register a new operator"""
    user = system.service.register_user(session, request.username, request.password, request.role)
    return UserModel.from_user(user)


@router.get("", response_model=List[UserModel])
def list_users(
    session: Session = Depends(get_current_session),
    system: BankingSystem = Depends(get_banking_system)
):
    return [UserModel.from_user(u) for u in system.service.list_users(session)]
