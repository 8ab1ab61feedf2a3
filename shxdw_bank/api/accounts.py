"""
Account management and cash movement endpoints
"""

from typing import List

from fastapi import APIRouter, Depends, status

from .dependencies import BankingSystem, get_banking_system, get_current_session
from .schemas import (
    AccountModel, AmountRequest, BalanceCheckModel, CreateAccountRequest, TransactionModel
)
from ..session import Session


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED, response_model=AccountModel)
def create_account(
    request: CreateAccountRequest,
    session: Session = Depends(get_current_session),
    system: BankingSystem = Depends(get_banking_system)
):
    """Open a zero-balance account for an existing client"""
    account = system.service.create_account(session, request.client_id, request.currency)
    client = system.engine.get_client(account.client_id)
    return AccountModel.from_account(account, client.name)


@router.get("", response_model=List[AccountModel])
def list_accounts(
    session: Session = Depends(get_current_session),
    system: BankingSystem = Depends(get_banking_system)
):
    return [AccountModel.from_view(v) for v in system.service.list_accounts(session)]


@router.get("/{number}", response_model=AccountModel)
def get_account(
    number: str,
    session: Session = Depends(get_current_session),
    system: BankingSystem = Depends(get_banking_system)
):
    """Get account details"""
    return AccountModel.from_account(system.service.get_account(session, number))


@router.delete("/{number}", response_model=AccountModel)
def delete_account(
    number: str,
    session: Session = Depends(get_current_session),
    system: BankingSystem = Depends(get_banking_system)
):
    """Delete a zero-balance account (admin only); its history is kept"""
    return AccountModel.from_account(system.service.delete_account(session, number))


@router.post("/{number}/deposit", response_model=AccountModel)
def deposit(
    number: str,
    request: AmountRequest,
    session: Session = Depends(get_current_session),
    system: BankingSystem = Depends(get_banking_system)
):
    account = system.service.deposit(session, number, request.amount, note=request.note)
    return AccountModel.from_account(account)


@router.post("/{number}/withdraw", response_model=AccountModel)
def withdraw(
    number: str,
    request: AmountRequest,
    session: Session = Depends(get_current_session),
    system: BankingSystem = Depends(get_banking_system)
):
    account = system.service.withdraw(session, number, request.amount, note=request.note)
    return AccountModel.from_account(account)


@router.get("/{number}/history", response_model=List[TransactionModel])
def get_history(
    number: str,
    session: Session = Depends(get_current_session),
    system: BankingSystem = Depends(get_banking_system)
):
    """Transaction history, oldest first"""
    return [TransactionModel.from_transaction(t) for t in system.service.get_history(session, number)]


@router.get("/{number}/verify", response_model=BalanceCheckModel)
def verify_account(
    number: str,
    session: Session = Depends(get_current_session),
    system: BankingSystem = Depends(get_banking_system)
):
    """Recompute the balance from history and compare with the stored one"""
    return BalanceCheckModel.from_check(system.service.verify_account(session, number))
