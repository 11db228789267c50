"""FastAPI application for the expense assistant."""

from typing import Optional

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from expense_assistant import __version__
from expense_assistant.api.routes import router as chat_router
from expense_assistant.config import Settings, get_settings, validate_all_settings
from expense_assistant.orchestrator import TurnOrchestrator, create_app_components


logger = structlog.get_logger(__name__)


def create_app(
    orchestrator: Optional[TurnOrchestrator] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """
    Build the API application.

    Args:
        orchestrator: Pre-built orchestrator (tests); built from settings otherwise
        settings: Application settings (defaults to environment)
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Expense Assistant API",
        description="Conversational assistant for bills, incomes and categories",
        version=__version__,
    )
    app.state.orchestrator = orchestrator or create_app_components(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.app.cors_origins_list,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "ok"}

    app.include_router(chat_router)

    @app.exception_handler(Exception)
    async def unhandled_exception(request: Request, exc: Exception):
        logger.error("unhandled_exception", path=request.url.path, error=str(exc))
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    return app


def main() -> None:
    """Run the API with uvicorn."""
    settings = get_settings()
    status = validate_all_settings()
    for name, ok in status.items():
        if ok is False:
            logger.warning("settings_invalid", section=name, error=status.get(f"{name}_error"))
    uvicorn.run(
        "expense_assistant.api.server:create_app",
        factory=True,
        host=settings.app.api_host,
        port=settings.app.api_port,
    )


if __name__ == "__main__":
    main()
