from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import logging
import os


# Load environment variables from a .env file at repo root (without extra dependencies)
def _load_env_file():
    env_path = os.path.join(os.getcwd(), '.env')
    if not os.path.exists(env_path):
        return
    with open(env_path, 'r', encoding='utf-8') as f:
        for line in f:
            s = line.strip()
            if not s or s.startswith('#') or '=' not in s:
                continue
            key, val = s.split('=', 1)
            key = key.strip()
            val = val.strip().strip('"').strip("'")
            if key and (key not in os.environ):
                os.environ[key] = val


_load_env_file()

# Rate limiting (slowapi)
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from utils.settings import get_settings
from utils.logger import setup_logging, RequestContextLogMiddleware
from utils.limiter import limiter

settings = get_settings()
setup_logging(settings)
os.makedirs(settings.forms_data_dir, exist_ok=True)

from routers.forms import router as forms_router
from routers.conditional_logic import router as conditional_logic_router
from routers.answer_recall import router as answer_recall_router
from routers.health import router as health_router

app = FastAPI(title="Form Logic API")


# Production-safe error responses
def _safe_message(status_code: int) -> str:
    mapping = {
        400: "Invalid request.",
        401: "Unauthorized.",
        403: "Action not allowed.",
        404: "Not found.",
        405: "Method not allowed.",
        409: "Conflict.",
        413: "Request too large.",
        415: "Unsupported request.",
        422: "Invalid request.",
        429: "Too many requests.",
        500: "Something went wrong. Please try again.",
        502: "Temporary service issue. Please try again.",
        503: "Service unavailable. Please try again.",
        504: "Timeout. Please try again.",
    }
    return mapping.get(int(status_code or 500), "Something went wrong. Please try again.")


@app.exception_handler(HTTPException)
async def http_exception_sanitizer(request: Request, exc: HTTPException):
    if get_settings().is_production:
        # Preserve status code; sanitize message
        return JSONResponse(status_code=exc.status_code, content={"detail": _safe_message(exc.status_code)})
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail if exc.detail else _safe_message(exc.status_code)})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # Always sanitize validation errors
    status = 422
    return JSONResponse(status_code=status, content={"detail": _safe_message(status)})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logging.getLogger("backend").exception("Unhandled error")
    return JSONResponse(status_code=500, content={"detail": _safe_message(500)})


app.state.limiter = limiter


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(
        status_code=429,
        content={"detail": "Rate limit exceeded"}
    )

app.add_middleware(SlowAPIMiddleware)

# CORS: forms are embedded on customer sites, so origins default to "*"
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Request/response logging middleware
app.add_middleware(RequestContextLogMiddleware)

# Include routers
app.include_router(forms_router)
app.include_router(conditional_logic_router)
app.include_router(answer_recall_router)
app.include_router(health_router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
