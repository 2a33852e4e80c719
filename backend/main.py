from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from typing import Optional
import logging
import os
import time

# Only load .env file if not running on Heroku
if not os.getenv("DYNO"):  # DYNO is a Heroku-specific environment variable
    from dotenv import load_dotenv
    load_dotenv()

from api import edit_image
from config.settings import settings
from core.logging_config import configure_logging
from core.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

async def request_logger_middleware(request: Request, call_next):
    start_time = time.time()
    logger.info(f"Request started: {request.method} {request.url.path}")

    response = await call_next(request)

    process_time = time.time() - start_time
    logger.info(
        f"Request completed: {request.method} {request.url.path} "
        f"- Status: {response.status_code} - Time: {process_time:.2f}s"
    )
    return response

def create_app(rate_limiter: Optional[RateLimiter] = None) -> FastAPI:
    """Build the API application with its own rate limiter store"""
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(title=settings.PROJECT_NAME, version=settings.VERSION, debug=settings.DEBUG)

    app.state.rate_limiter = rate_limiter or RateLimiter(
        limit=settings.RATE_LIMIT_PER_MINUTE,
        window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
        max_clients=settings.RATE_LIMIT_MAX_CLIENTS
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(request_logger_middleware)

    # Include API routers
    app.include_router(edit_image.router, prefix=settings.API_V1_STR)

    @app.get("/")
    async def root():
        return {"message": f"{settings.PROJECT_NAME} API is running"}

    @app.get("/health")
    async def health_check():
        missing = settings.missing_credentials()
        return {
            "status": "healthy",
            "version": settings.VERSION,
            "configured": not missing,
            "missing_credentials": missing
        }

    return app

app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.HOST, port=int(os.getenv("PORT", settings.PORT)))
