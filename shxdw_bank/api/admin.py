"""
Oversight endpoints (audit journal, live dashboard snapshot)
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from .dependencies import BankingSystem, get_banking_system, get_current_session
from .schemas import AuditEntryModel, AuditListResponse
from ..session import Session


router = APIRouter()


@router.get("/audit", response_model=AuditListResponse)
def recent_audit(
    limit: int = Query(20, ge=1, le=1000),
    session: Session = Depends(get_current_session),
    system: BankingSystem = Depends(get_banking_system)
):
    """Most recent audit entries, newest first (admin only)"""
    entries = system.service.recent_audit(session, limit)
    return AuditListResponse(entries=[AuditEntryModel.from_entry(e) for e in entries])


@router.get("/audit/verify")
def verify_audit_chain(
    session: Session = Depends(get_current_session),
    system: BankingSystem = Depends(get_banking_system)
) -> Dict[str, Any]:
    """Check the audit hash chain for tampering (admin only)"""
    return system.service.verify_audit(session)


@router.get("/dashboard")
def dashboard(
    top: Optional[int] = Query(None, ge=1, le=100),
    session: Session = Depends(get_current_session),
    system: BankingSystem = Depends(get_banking_system)
) -> Dict[str, Any]:
    """Largest balances right now"""
    top_n = top or system.config.dashboard_top_n
    return system.service.top_accounts(session, top_n).to_dict()
