"""Main FastAPI application for the Sirichai Electric chatbot."""
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from sirichai_bot import __version__
from sirichai_bot.config import get_settings
from sirichai_bot.db.init import init_db
from sirichai_bot.dependencies import ServiceContainer, build_services
from sirichai_bot.middleware.cors import add_cors_middleware
from sirichai_bot.routers import chat_router, line_webhook_router
from sirichai_bot.utils.logger import setup_logging

SERVICE_NAME = "Sirichai Electric Chatbot API"


def create_app(services: Optional[ServiceContainer] = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        services: Pre-built services (tests); built from the environment
            at startup when omitted
    """
    app = FastAPI(
        title=SERVICE_NAME,
        description="Product assistant for Sirichai Electric over HTTP and LINE",
        version=__version__,
    )
    if services is not None:
        app.state.services = services

    # Add CORS middleware
    add_cors_middleware(app)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        json_invalid = any(error.get("type") == "json_invalid" for error in exc.errors())
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "error": "Invalid JSON" if json_invalid else "Invalid request"},
        )

    @app.on_event("startup")
    async def startup_event():
        """Build services and initialize database tables on startup."""
        if getattr(app.state, "services", None) is not None:
            return

        settings = get_settings()
        setup_logging(settings.log_level)
        settings.validate()

        app.state.services = build_services(settings)
        try:
            init_db(app.state.services.database)
            print("[SUCCESS] Database tables initialized successfully.")
        except Exception as e:
            print(f"[WARNING] Database initialization failed: {str(e)}")
            print("[WARNING] Server will continue but conversation history may not be saved.")
            print("[WARNING] Please check your DATABASE_URL and network connection.")

        print("[SUCCESS] Application startup complete.")

    @app.on_event("shutdown")
    async def shutdown_event():
        services = getattr(app.state, "services", None)
        if services is not None:
            services.database.dispose()

    @app.get("/health")
    @app.get("/")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "ok",
            "service": SERVICE_NAME,
            "version": __version__,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    app.include_router(chat_router)
    app.include_router(line_webhook_router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "sirichai_bot.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
