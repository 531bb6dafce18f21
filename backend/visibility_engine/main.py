"""
Visibility Assessment Engine
Main FastAPI Application
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from visibility_engine.config import get_settings
from visibility_engine.errors import VisibilityEngineError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler"""
    settings = get_settings()
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if not settings.PERPLEXITY_API_KEY:
        logger.warning("PERPLEXITY_API_KEY is not set; assessments will fail authentication")
    if not settings.OPENAI_API_KEY:
        logger.warning("OPENAI_API_KEY is not set; analyses will use heuristic fallback")
    yield


def create_app() -> FastAPI:
    """Factory function to create FastAPI app"""
    settings = get_settings()

    application = FastAPI(
        title="Visibility Assessment Engine API",
        description="""
        Measures how visible a company is inside answer-engine responses.

        ## Features
        - Quota-aware, retrying answer-engine client
        - Deterministic owned / operated / earned / competitor citation buckets
        - Semantic answer analysis with heuristic fallback
        - Tough-curve visibility scoring with full explainability
        """,
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc" if settings.is_development else None,
    )

    # CORS middleware
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @application.exception_handler(VisibilityEngineError)
    async def engine_exception_handler(request: Request, exc: VisibilityEngineError):
        """Expose engine errors with their code"""
        return JSONResponse(status_code=422, content={"detail": exc.to_dict()})

    # Global exception handler
    @application.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle unexpected errors"""
        settings = get_settings()
        logger.exception("Unhandled error on %s", request.url.path)
        if settings.DEBUG:
            return JSONResponse(
                status_code=500,
                content={
                    "detail": str(exc),
                    "type": type(exc).__name__,
                },
            )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    # Import and include API routes
    from visibility_engine.api.routes import api_router
    application.include_router(api_router, prefix="/api/v1")

    # Health check
    @application.get("/health")
    async def health_check():
        """Health check endpoint"""
        settings = get_settings()
        return {
            "status": "healthy",
            "version": "1.0.0",
            "environment": settings.APP_ENV,
        }

    return application


# Create the app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()

    uvicorn.run(
        "visibility_engine.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.is_development,
        workers=1 if settings.is_development else settings.WORKERS,
    )
