import os
import time
import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv

# Module-level config in the imports below reads os.environ
load_dotenv()

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from . import metrics
from .auth_middleware import AdminAuthMiddleware
from .errors import HoloFrameError
from .pipeline import admin_router, api_router

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("HoloFrame API starting up...")
    metrics.set_gauge("start_time", time.time())
    yield
    logger.info("HoloFrame API shutting down...")


app = FastAPI(title="HoloFrame Studio API", lifespan=lifespan)
app.add_middleware(AdminAuthMiddleware)
app.include_router(api_router)
app.include_router(admin_router)


@app.middleware("http")
async def record_request_latency(request: Request, call_next):
    _req_start = time.time()
    try:
        return await call_next(request)
    finally:
        # Route template once matched, so /admin/files/{folder}/{name} is one key
        route = request.scope.get("route")
        path = getattr(route, "path", request.url.path)
        metrics.record_latency(f"request.{request.method} {path}", (time.time() - _req_start) * 1000)


@app.exception_handler(HoloFrameError)
async def holoframe_error_handler(request: Request, exc: HoloFrameError):
    metrics.record_error(request.url.path, type(exc).__name__, exc.message)
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message} ({exc.detail})")
    else:
        logger.info(f"{request.method} {request.url.path} rejected ({exc.status_code}): {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    metrics.record_error(request.url.path, type(exc).__name__, str(exc))
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "detail": str(exc)},
    )


@app.get("/health")
def health_check():
    """Verify the API is running and which integrations are configured."""
    return {
        "status": "ok",
        "supabase_url_set": bool(os.environ.get("SUPABASE_URL") or os.environ.get("NEXT_PUBLIC_SUPABASE_URL")),
        "replicate_token_set": bool(os.environ.get("REPLICATE_API_TOKEN")),
        "google_project_set": bool(os.environ.get("GOOGLE_PROJECT_ID")),
        "gemini_api_key_set": bool(os.environ.get("GEMINI_API_KEY")),
    }


@app.get("/metrics")
def metrics_endpoint():
    """Return a snapshot of all API metrics."""
    return metrics.get_snapshot()


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8080))
    uvicorn.run("holoframe.main:app", host="0.0.0.0", port=port, reload=True)
