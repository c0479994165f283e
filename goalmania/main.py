"""Main FastAPI application"""

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from goalmania.api.health import router as health_router
from goalmania.api.v1.router import api_router
from goalmania.core.config import settings
from goalmania.core.events import lifespan
from goalmania.core.exceptions import (
    GoalManiaException,
    goalmania_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from goalmania.core.middleware import setup_middleware


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        description="Pricing, checkout, payments and order management for the Goal Mania jersey store",
        version=settings.APP_VERSION,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=lifespan
    )

    setup_middleware(app)

    app.add_exception_handler(GoalManiaException, goalmania_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    app.include_router(api_router, prefix="/api/v1")
    app.include_router(health_router)

    @app.get("/")
    async def root():
        return {
            "message": f"Welcome to {settings.APP_NAME}",
            "docs": "/api/docs",
            "health": "/health"
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "goalmania.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        workers=settings.WORKERS
    )
