# scribo/main.py

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from scribo import __version__
from scribo.api.middleware import log_request
from scribo.api.resource import CTJSON, Err, render
from scribo.api.routes import build_router
from scribo.common.config import Config
from scribo.common.utils import get_logger, setup_logging
from scribo.context import AppContext

logger = get_logger(__name__)


def create_app(config: Optional[Config] = None) -> FastAPI:
    """
    Factory function to create the FastAPI application instance.
    """
    config = config or Config()
    setup_logging(config)

    # --- Lifespan: open the database, migrate, close on shutdown ---
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("Scribo is starting up...")
        context = AppContext.from_config(config)
        db_path = config.get("database.path", "scribo.db")
        await context.db.connect(db_path)
        try:
            applied = await context.db.migrate(apply_all=True)
            logger.info(f"Applied {applied} migrations to {db_path}")
            app.state.context = context
            app.state.healthy = True
            yield
        finally:
            logger.info("Scribo is shutting down...")
            app.state.healthy = False
            await context.db.close()

    app = FastAPI(
        title="Scribo",
        description="A RESTful microservice that records latency pings between network nodes.",
        version=__version__,
        lifespan=lifespan,
        redirect_slashes=False,
    )

    app.include_router(build_router())

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        # Router-level failures: unknown paths, and methods no route accepts.
        if exc.status_code == status.HTTP_405_METHOD_NOT_ALLOWED:
            outcome = Err(status.HTTP_501_NOT_IMPLEMENTED, f"HTTP {request.method} is not implemented")
        else:
            outcome = Err(exc.status_code, exc.detail)

        async def reject(request: Request):
            return render(outcome)

        return await log_request(request, reject)

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception for request {request.url}: {exc}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"code": "500", "error": "internal server error"},
            media_type=CTJSON,
        )

    @app.get("/health", include_in_schema=False)
    async def health_check(request: Request):
        context: AppContext = request.app.state.context
        if not await context.db.health_check():
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={"status": "unhealthy", "details": "Database connection failed"},
            )
        return {"status": "healthy", "version": __version__}

    return app


def run(host: Optional[str] = None, port: Optional[int] = None, config: Optional[Config] = None) -> None:
    """Serve the application with uvicorn."""
    config = config or Config()
    host = host or config.get("server.host", "0.0.0.0")
    port = port or config.get_int("server.port", 8080)
    logger.info(f"Starting server at http://{host}:{port} (use CTRL+C to quit)")

    server = uvicorn.Server(uvicorn.Config(create_app(config), host=host, port=port, log_config=None,
                                           access_log=False))
    try:
        server.run()
    except KeyboardInterrupt:
        logger.info("Server stopped by keyboard interrupt")


if __name__ == "__main__":
    run()
