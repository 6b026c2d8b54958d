from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from garden.config import Settings, get_settings
from garden.logging_config import configure_logging
from garden.routers.giveaway import router as giveaway_router
from garden.routers.live import router as live_router
from garden.routers.registration import router as registration_router
from garden.routers.users import router as users_router
from garden.services.container import PortalServices


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        services = PortalServices(settings)
        await services.start()
        app.state.services = services
        try:
            yield
        finally:
            await services.stop()

    app = FastAPI(
        title="Garden Portal API",
        version="0.1.0",
        description="Registration, progress sync and live garden feed for the event portal.",
        docs_url="/swagger",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health():
        return {"status": "ok"}

    app.include_router(registration_router)
    app.include_router(users_router)
    app.include_router(live_router)
    app.include_router(giveaway_router)
    return app


app = create_app()


def run() -> None:
    settings = app.state.settings
    uvicorn.run("garden.main:app", host=settings.api_host, port=settings.api_port)
