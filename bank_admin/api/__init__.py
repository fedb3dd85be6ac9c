"""
Bank Admin API Application Factory
"""

import time
from typing import Optional

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..config import BankAdminConfig, get_config
from ..errors import (
    AuthenticationError,
    BankAdminError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from ..logging_config import (
    bind_correlation_id,
    get_correlation_id,
    get_logger,
    log_action,
    setup_logging,
    unbind_correlation_id,
)
from .accounts import router as accounts_router
from .auth import router as auth_router
from .customers import router as customers_router
from .deps import BankAdminSystem, get_current_user


logger = get_logger("bank_admin.api")

REQUEST_ID_HEADER = "X-Request-ID"

ERROR_STATUS = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ConflictError: status.HTTP_409_CONFLICT,
    AuthenticationError: status.HTTP_401_UNAUTHORIZED,
}


def _status_for(error: BankAdminError) -> int:
    for error_type, code in ERROR_STATUS.items():
        if isinstance(error, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _register_exception_handlers(app: FastAPI) -> None:

    @app.exception_handler(BankAdminError)
    async def bank_admin_error_handler(request: Request, exc: BankAdminError):
        code = _status_for(exc)
        if code >= 500:
            logger.error("Unhandled domain error", exc_info=exc)
            return JSONResponse(status_code=code, content={"detail": "Internal server error"})
        return JSONResponse(status_code=code, content={"detail": exc.message})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        messages = []
        for error in exc.errors():
            location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
            messages.append(f"{location}: {error.get('msg')}" if location else error.get("msg"))
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": "; ".join(messages)}
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        log_action(
            logger, "error", f"Unhandled error: {type(exc).__name__}: {exc}",
            action="unhandled_exception", resource=request.url.path
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"}
        )


async def correlate_requests(request: Request, call_next):
    """Tag every log record written while serving a request with one id"""
    token = bind_correlation_id(request.headers.get(REQUEST_ID_HEADER))
    start_time = time.time()
    try:
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = get_correlation_id()
        log_action(
            logger, "info", f"{request.method} {request.url.path} {response.status_code}",
            action="http_request", resource=request.url.path,
            extra={
                "method": request.method,
                "status_code": response.status_code,
                "latency_seconds": round(time.time() - start_time, 3)
            }
        )
        return response
    finally:
        unbind_correlation_id(token)


def create_app(system: Optional[BankAdminSystem] = None,
               config: Optional[BankAdminConfig] = None) -> FastAPI:
    """
    Create and configure the FastAPI application

    Args:
        system: Pre-built system; when omitted it is built from configuration
            on the first request
        config: Configuration; defaults to the system's or the global one
    """
    config = config or (system.config if system else get_config())
    setup_logging(config.log_level, log_format=config.log_format)

    app = FastAPI(
        title="Bank Admin API",
        description="Back office customer and account administration",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )
    app.state.system = system

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.middleware("http")(correlate_requests)
    _register_exception_handlers(app)

    guarded = [Depends(get_current_user)]
    app.include_router(auth_router, prefix="/api/auth", tags=["Auth"])
    app.include_router(customers_router, prefix="/api/customers", tags=["Customers"],
                       dependencies=guarded)
    app.include_router(accounts_router, prefix="/api/accounts", tags=["Accounts"],
                       dependencies=guarded)

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "bank_admin_api",
            "version": __version__
        }

    return app


# Application instance for ``uvicorn bank_admin.api:app``
app = create_app()
