import uvicorn
from fastapi import FastAPI

from streaks.api.routes.health import router as health_router
from streaks.api.routes.internal_streaks import router as internal_streaks_router
from streaks.core.config import get_settings
from streaks.core.logging import configure_logging


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level, json_logs=settings.app_env != "dev")

    app = FastAPI(
        title="Streaks API",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.include_router(health_router)
    app.include_router(internal_streaks_router)
    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run(
        "streaks.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_env == "dev",
    )


if __name__ == "__main__":
    run()
