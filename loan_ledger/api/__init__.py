"""
Loan Ledger API Application Factory
"""

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..config import get_config
from ..logging_config import setup_logging
from .capital import router as capital_router
from .loans import router as loans_router


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    settings = get_config()
    setup_logging(level=settings.log_level, log_format=settings.log_format, log_file=settings.log_file)

    app = FastAPI(
        title="Loan Ledger API",
        description="Installment schedules, payment distribution and late fee assessment for micro-loans",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(loans_router, prefix="/loans", tags=["Loans"])
    app.include_router(capital_router, prefix="/capital", tags=["Capital"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "loan_ledger_api",
            "version": __version__
        }

    return app


app = create_app()


def run_server(host: str = None, port: int = None, debug: bool = False):
    """Run the FastAPI server"""
    settings = get_config()
    uvicorn.run(
        "loan_ledger.api:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=debug,
        log_level=settings.log_level.lower()
    )
