from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import structlog
import uvicorn

from travel_agent.application.api.route.chat import router as chat_router, get_assistant
from travel_agent.application.container import build_assistant
from travel_agent.domain.orchestration.core.travel_assistant import TravelAssistant
from travel_agent.infrastructure.config.settings import Settings, get_settings
from travel_agent.infrastructure.observability.logging import setup_logging

logger = structlog.get_logger(__name__)

API_VERSION = "1.0.0"


def create_app(assistant: Optional[TravelAssistant] = None, settings: Optional[Settings] = None) -> FastAPI:
    """Create the HTTP app. A prebuilt assistant skips wiring from settings."""

    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Build and probe the assistant on startup, close it on shutdown"""

        instance = assistant or build_assistant(settings)
        readiness = await instance.ensure_ready()
        app.state.assistant = instance
        logger.info("Travel agent API started",
                    port=settings.api_port,
                    memory_enabled=readiness.memory_enabled)
        try:
            yield
        finally:
            app.state.assistant = None
            await instance.close()
            logger.info("Travel agent API shutdown")

    app = FastAPI(title="Travel Agent API", version=API_VERSION, lifespan=lifespan)
    app.state.assistant = None

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    app.include_router(chat_router)

    @app.get("/")
    async def api_info(request: Request):
        return {
            "name": "Travel Agent API",
            "version": API_VERSION,
            "status": "running",
            "initialized": get_assistant(request) is not None,
            "endpoints": {
                "chat": "POST /api/chat",
                "history": "GET /api/history/{session_id}",
                "clearHistory": "DELETE /api/history/{session_id}",
                "summary": "GET /api/summary/{session_id}",
                "health": "GET /api/health",
            },
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error("Server error", path=request.url.path, error=str(exc))
        return JSONResponse(status_code=500, content={"success": False, "error": "Internal server error"})

    return app


def main() -> None:
    settings = get_settings()
    setup_logging(
        log_level=settings.log_level,
        log_format=settings.log_format,
        service_name=settings.service_name,
    )
    uvicorn.run(create_app(settings=settings), host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    main()
