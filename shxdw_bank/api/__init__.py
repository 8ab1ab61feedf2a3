"""
SHXDW Bank API Application Factory
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..errors import BankError, ErrorKind
from ..logging_config import get_logger
from ..service import BankingSystem
from .dependencies import get_banking_system, set_banking_system
from .auth import router as auth_router
from .users import router as users_router
from .clients import router as clients_router
from .accounts import router as accounts_router
from .transfers import router as transfers_router
from .admin import router as admin_router


STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.VALIDATION: 400,
    ErrorKind.INSUFFICIENT_FUNDS: 409,
    ErrorKind.AUTH_FAILURE: 401,
    ErrorKind.AUTHORIZATION: 403,
    ErrorKind.ACCOUNT_NUMBER_EXHAUSTED: 503,
}

logger = get_logger("shxdw.api")


def create_app(system: Optional[BankingSystem] = None) -> FastAPI:
    """Create and configure the FastAPI application"""
    if system is not None:
        set_banking_system(system)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Wire storage and provision the first-run admin before serving
        get_banking_system()
        yield

    app = FastAPI(
        title="SHXDW Bank Ledger API",
        description="Client accounts, cash movements and transfers with an audited operator trail",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(BankError)
    async def bank_error_handler(request: Request, exc: BankError):
        status_code = STATUS_BY_KIND.get(exc.kind, 400)
        headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
        logger.info(f"{request.method} {request.url.path} -> {status_code} ({exc.code})")
        return JSONResponse(
            status_code=status_code,
            content={"detail": exc.message, "error": exc.kind.value, "code": exc.code},
            headers=headers
        )

    # Include routers
    app.include_router(auth_router, prefix="/auth", tags=["Auth"])
    app.include_router(users_router, prefix="/users", tags=["Users"])
    app.include_router(clients_router, prefix="/clients", tags=["Clients"])
    app.include_router(accounts_router, prefix="/accounts", tags=["Accounts"])
    app.include_router(transfers_router, prefix="/transfers", tags=["Transfers"])
    app.include_router(admin_router, tags=["Admin"])

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "shxdw_bank_api",
            "version": __version__
        }

    return app


# Create the app instance for uvicorn
app = create_app()
