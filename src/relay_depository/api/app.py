"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from relay_depository import __version__
from relay_depository.config import get_settings
from relay_depository.depository import RelayDepository
from relay_depository.errors import DepositoryError, HostError, LockTimeoutError
from relay_depository.ledger.database import close_db, init_db

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    owns_depository = getattr(app.state, "depository", None) is None
    if owns_depository:
        await init_db()
        app.state.depository = RelayDepository.create()
        logger.info(f"Depository program {app.state.depository.program_id} attached")
    yield
    if owns_depository:
        app.state.depository = None
        await close_db()


async def depository_error_handler(request: Request, exc: DepositoryError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": exc.code.value, "message": str(exc)},
    )


async def host_error_handler(request: Request, exc: HostError) -> JSONResponse:
    if isinstance(exc, LockTimeoutError):
        return JSONResponse(status_code=503, content={"error": "LockTimeout", "message": str(exc)})
    return JSONResponse(status_code=400, content={"error": type(exc).__name__, "message": str(exc)})


def create_app(depository: Optional[RelayDepository] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        depository: Pre-built depository to serve. When omitted, one is
            created on the configured database at startup.
    """
    settings = get_settings()

    app = FastAPI(
        title="Relay Depository API",
        description="Deposit vault with allocator-signed transfers",
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
    )
    app.state.depository = depository

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(DepositoryError, depository_error_handler)
    app.add_exception_handler(HostError, host_error_handler)

    # Register routes
    from relay_depository.api.routers import admin
    from relay_depository.api.routes import deposits, health, sweeps, transfers, vault

    app.include_router(health.router, tags=["Health"])
    app.include_router(vault.router, prefix="/api/v1", tags=["Vault"])
    app.include_router(deposits.router, prefix="/api/v1", tags=["Deposits"])
    app.include_router(transfers.router, prefix="/api/v1", tags=["Transfers"])
    app.include_router(sweeps.router, prefix="/api/v1", tags=["Sweeps"])
    app.include_router(admin.router, tags=["Admin"])

    return app
