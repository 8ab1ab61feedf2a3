"""
Client management endpoints
"""

from typing import List

from fastapi import APIRouter, Depends, status

from .dependencies import BankingSystem, get_banking_system, get_current_session
from .schemas import AccountModel, ClientModel, CreateClientRequest
from ..session import Session


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED, response_model=ClientModel)
def create_client(
    request: CreateClientRequest,
    session: Session = Depends(get_current_session),
    system: BankingSystem = Depends(get_banking_system)
):
    """Create a new client"""
    client = system.service.create_client(session, request.name)
    return ClientModel.from_client(client)


@router.get("", response_model=List[ClientModel])
def list_clients(
    session: Session = Depends(get_current_session),
    system: BankingSystem = Depends(get_banking_system)
):
    return [ClientModel.from_client(c) for c in system.service.list_clients(session)]


@router.get("/{client_id}", response_model=ClientModel)
def get_client(
    client_id: int,
    session: Session = Depends(get_current_session),
    system: BankingSystem = Depends(get_banking_system)
):
    return ClientModel.from_client(system.service.get_client(session, client_id))


@router.get("/{client_id}/accounts", response_model=List[AccountModel])
def list_client_accounts(
    client_id: int,
    session: Session = Depends(get_current_session),
    system: BankingSystem = Depends(get_banking_system)
):
    """Accounts owned by one client"""
    client = system.service.get_client(session, client_id)
    accounts = system.service.list_client_accounts(session, client_id)
    return [AccountModel.from_account(a, client.name) for a in accounts]
