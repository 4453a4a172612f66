import logging
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import clear_settings_cache, get_settings
from .errors import ApiError
from .models.subscription import utcnow

# Load .env before anything reads settings
backend_dir = Path(__file__).parent.parent
env_path = backend_dir / ".env"
loaded = load_dotenv(dotenv_path=env_path)
clear_settings_cache()

app_settings = get_settings()

logging.basicConfig(level=app_settings.log_level)
logger = logging.getLogger(__name__)

if loaded:
    logger.info(f"Environment loaded from: {env_path}")

from .adapters import close_adapters  # noqa: E402
from .database import create_tables  # noqa: E402
from .routers import feeds, health, newsletter, pages, release, stats, subscriptions  # noqa: E402

# --- Startup / shutdown ---

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Do not block startup if the database is down; /api/health reports it
    try:
        if app_settings.database_backend == "sql":
            create_tables()
    except Exception as e:
        logger.error(f"❌ Error creating tables at startup: {e}", exc_info=True)
        logger.warning("⚠️ Server keeps starting, newsletter features may be unavailable")
    yield
    close_adapters()


app = FastAPI(
    title=app_settings.app_name,
    version=app_settings.app_version,
    redirect_slashes=False,
    lifespan=lifespan,
)

# CORS: local frontends plus whatever CORS_ORIGIN lists (comma separated)
allowed_origins = [
    "http://localhost:3000",
    "http://localhost:8000",
]
cors_origin_env = app_settings.cors_origin
for origin in (o.strip() for o in cors_origin_env.split(",")):
    if origin and origin not in allowed_origins:
        allowed_origins.append(origin)
if app_settings.site_url not in allowed_origins:
    allowed_origins.append(app_settings.site_url)

logger.info(f"🌐 Allowed CORS origins: {allowed_origins}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
    expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset", "Retry-After"],
)


# --- Error handlers ---

def error_response(status_code: int, payload: dict, headers: dict = None) -> JSONResponse:
    payload = {**payload, "timestamp": utcnow().isoformat()}
    headers = {**(headers or {}), "X-Error-Code": payload["code"]}
    return JSONResponse(status_code=status_code, content=payload, headers=headers)


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    if exc.status_code >= 500:
        logger.error(f"❌ {request.method} {request.url.path}: {exc.code} {exc.details or ''}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}")
    headers = dict(exc.headers)
    if exc.retry_after is not None and exc.status_code == 429:
        headers.setdefault("Retry-After", str(exc.retry_after))
    return error_response(exc.status_code, exc.to_dict(), headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    message = first.get("msg", "Invalid request data")
    if message.startswith("Value error, "):
        message = message[len("Value error, "):]
    details = {
        "fields": [
            {"loc": [str(part) for part in err.get("loc", ())], "message": err.get("msg")}
            for err in errors
        ]
    }
    return error_response(400, {"success": False, "error": message, "code": "validation_schema", "details": details})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if request.url.path.startswith("/api/"):
        return error_response(
            exc.status_code,
            {"success": False, "error": str(exc.detail), "code": f"http_{exc.status_code}"},
            getattr(exc, "headers", None),
        )
    if exc.status_code == 404:
        return HTMLResponse(content=pages.render_not_found(), status_code=404)
    return Response(content=str(exc.detail), status_code=exc.status_code, headers=getattr(exc, "headers", None))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"❌ Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return error_response(500, ApiError().to_dict())


# Include routers
app.include_router(subscriptions.router, prefix="/api")
app.include_router(newsletter.router, prefix="/api")
app.include_router(stats.router, prefix="/api")
app.include_router(release.router, prefix="/api")
app.include_router(health.router, prefix="/api")
app.include_router(feeds.router)
app.include_router(pages.router)


@app.get("/favicon.ico", include_in_schema=False)
async def favicon():
    return Response(status_code=204)
