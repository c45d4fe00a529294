"""
FastAPI application factory
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response

from app.config import APP_NAME, APP_VERSION, get_settings
from app.infrastructure.db.session import check_db_connection, init_db
from app.api.v1 import backup, instances, internal, public, settings, sinking_funds, templates

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

CORS_PREFIXES = ("/api/v1", "/internal")
CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET,POST,OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


class ErrorLoggingMiddleware(BaseHTTPMiddleware):
    """Catches every unhandled exception (sync routes included), logs it, answers 500"""

    async def dispatch(self, request, call_next):
        try:
            return await call_next(request)
        except Exception as exc:
            logger.exception("ERROR on %s %s", request.method, request.url.path)
            return JSONResponse(status_code=500, content={"ok": False, "error": f"Internal Server Error: {exc}"})


class ScopedCORSMiddleware(BaseHTTPMiddleware):
    """Permissive CORS for the public contract and the assistant endpoints only"""

    async def dispatch(self, request, call_next):
        if not request.url.path.startswith(CORS_PREFIXES):
            return await call_next(request)
        if request.method == "OPTIONS":
            return Response(status_code=204, headers=CORS_HEADERS)
        response = await call_next(request)
        response.headers.update(CORS_HEADERS)
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info("%s %s ready", APP_NAME, APP_VERSION)
    yield


def create_app() -> FastAPI:
    """
    Application factory

    Returns:
        Configured FastAPI app
    """
    app_settings = get_settings()

    app = FastAPI(
        title=APP_NAME,
        version=APP_VERSION,
        debug=app_settings.DEBUG,
        lifespan=lifespan,
    )

    # Order matters: the error logger must wrap CORS so 500s still get logged
    app.add_middleware(ScopedCORSMiddleware)
    app.add_middleware(ErrorLoggingMiddleware)

    app.include_router(templates.router)
    app.include_router(instances.router)
    app.include_router(settings.router)
    app.include_router(sinking_funds.router)
    app.include_router(backup.router)
    app.include_router(public.router)
    app.include_router(internal.router)

    @app.get("/api/health", tags=["system"])
    def health():
        return {"ok": True}

    @app.get("/ready", tags=["system"])
    def ready():
        """Readiness check (database reachable)"""
        check_db_connection()
        return {"ok": True}

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    cfg = get_settings()
    uvicorn.run("app.main:app", host=cfg.HOST, port=cfg.PORT, reload=cfg.DEBUG)
