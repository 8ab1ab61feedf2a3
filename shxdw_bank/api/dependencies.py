"""
Authentication and authorization dependencies
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..errors import AuthenticationError
from ..service import BankingSystem
from ..session import Session


security = HTTPBearer(auto_error=False)

# Global banking system instance, created on first use
banking_system: Optional[BankingSystem] = None


def get_banking_system() -> BankingSystem:
    global banking_system
    if banking_system is None:
        banking_system = BankingSystem()
    return banking_system


def set_banking_system(system: Optional[BankingSystem]) -> None:
    """Swap the process-wide system (tests, embedding)"""
    global banking_system
    banking_system = system


def create_access_token(system: BankingSystem, session: Session) -> str:
    config = system.config
    now = datetime.now(timezone.utc)
    token_payload = {
        "sub": session.username,
        "role": session.role.value,
        "iat": now,
        "exp": now + timedelta(hours=config.jwt_expiry_hours),
    }
    return jwt.encode(token_payload, config.jwt_secret, algorithm=config.jwt_algorithm)


def get_current_session(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    system: BankingSystem = Depends(get_banking_system)
) -> Session:
    """Dependency that validates the bearer JWT and returns the caller's session"""
    if not credentials:
        raise HTTPException(status_code=401, detail="Not authenticated",
                            headers={"WWW-Authenticate": "Bearer"})
    try:
        payload = jwt.decode(
            credentials.credentials,
            system.config.jwt_secret,
            algorithms=[system.config.jwt_algorithm]
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

    username = payload.get("sub")
    if not username:
        raise HTTPException(status_code=401, detail="Invalid token")

    try:
        # Role is re-read from the registry, not trusted from the token
        return system.sessions.resume(username)
    except AuthenticationError as e:
        raise HTTPException(status_code=401, detail=e.message)
