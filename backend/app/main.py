from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.routers import events, rooms, ws
from app.core.config import Settings, settings
from app.core.errors import CoordinationError
from app.core.logging_config import get_logger, setup_logging
from app.services.coordinator import Coordinator
from app.services.scheduler import Scheduler

logger = get_logger(__name__)


async def coordination_error_handler(request: Request, exc: CoordinationError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"success": False, **exc.to_payload()})


def create_app(config: Settings | None = None, scheduler: Scheduler | None = None) -> FastAPI:
    config = config or settings
    app = FastAPI(title=config.app_name)
    app.state.coordinator = Coordinator(scheduler=scheduler, config=config)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(CoordinationError, coordination_error_handler)

    @app.get("/api/health")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(rooms.router)
    app.include_router(events.router)
    app.include_router(ws.router)
    logger.info(f"{config.app_name} application initialized")
    return app


setup_logging(log_level=settings.log_level, log_file=settings.log_file)
app = create_app()
