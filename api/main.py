import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from bootstrap import coordinator
from core import db, settings
from core.errors import DatabaseError, InitError, UnauthorizedError
from cron import router as cron_router

load_dotenv()

logging.basicConfig(
    level=settings.log_level(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

UNAVAILABLE_MESSAGE = "Service temporarily unavailable. Please retry shortly."
INTERNAL_ERROR_MESSAGE = "Internal server error."

# These answer without waiting on the bootstrap; cron routes run it themselves
# after their secret check.
BOOTSTRAP_EXEMPT_PATHS = ("/health",)
BOOTSTRAP_EXEMPT_PREFIXES = ("/cron/",)


@asynccontextmanager
async def lifespan(_: FastAPI):
    # The pool is created lazily on the first request; only shutdown is handled here.
    try:
        yield
    finally:
        await db.close_pool()


app = FastAPI(lifespan=lifespan)

if settings.cors_allow_origins():
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def _error_body(message: str, exc: Exception) -> dict:
    body = {"error": message}
    if not settings.is_production():
        cause = exc.__cause__ or exc
        body["detail"] = f"{type(cause).__name__}: {cause}"
    return body


def _unavailable(exc: InitError) -> JSONResponse:
    return JSONResponse(status_code=503, content=_error_body(UNAVAILABLE_MESSAGE, exc))


def _is_exempt(path: str) -> bool:
    return path in BOOTSTRAP_EXEMPT_PATHS or path.startswith(BOOTSTRAP_EXEMPT_PREFIXES)


@app.middleware("http")
async def bootstrap_middleware(request: Request, call_next):
    if not _is_exempt(request.url.path):
        try:
            await coordinator.ensure_ready()
        except InitError as exc:
            return _unavailable(exc)
    return await call_next(request)


@app.exception_handler(InitError)
async def init_error_handler(_: Request, exc: InitError) -> JSONResponse:
    return _unavailable(exc)


@app.exception_handler(UnauthorizedError)
async def unauthorized_handler(_: Request, exc: UnauthorizedError) -> JSONResponse:
    logger.warning("unauthorized error=%s", exc)
    return JSONResponse(status_code=401, content={"error": "Unauthorized"})


@app.exception_handler(DatabaseError)
async def database_error_handler(request: Request, exc: DatabaseError) -> JSONResponse:
    logger.error("request_failed path=%s error=%s", request.url.path, exc)
    return JSONResponse(status_code=500, content=_error_body(INTERNAL_ERROR_MESSAGE, exc))


app.include_router(cron_router.router, tags=["cron"])


@app.get("/health")
def health() -> dict:
    return {"status": "ok", "dbInitialized": coordinator.is_initialized()}


@app.get("/")
def root() -> dict:
    return {"message": "news-cms api", "environment": settings.app_env()}
