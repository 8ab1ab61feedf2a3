"""
Transfer endpoint
"""

from fastapi import APIRouter, Depends

from .dependencies import BankingSystem, get_banking_system, get_current_session
from .schemas import AccountModel, TransferRequest, TransferResponse
from ..money import positive_amount
from ..session import Session


router = APIRouter()


@router.post("", response_model=TransferResponse)
def transfer(
    request: TransferRequest,
    session: Session = Depends(get_current_session),
    system: BankingSystem = Depends(get_banking_system)
):
    """Move money between two accounts of the same currency"""
    source, destination = system.service.transfer(
        session, request.from_account, request.to_account, request.amount
    )
    return TransferResponse(
        source=AccountModel.from_account(source),
        destination=AccountModel.from_account(destination),
        amount=str(positive_amount(request.amount))
    )
