# server.py
import os
import sys
import logging

from fastapi import FastAPI, Request, Depends, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.exceptions import HTTPException as StarletteHTTPException

# --- Logging Configuration ---
logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
log = logging.getLogger(__name__)

# Sibling modules are imported by top-level name.
current_dir = os.path.dirname(os.path.abspath(__file__))
if current_dir not in sys.path:
    sys.path.append(current_dir)

from settings import settings
from db import create_tables, get_db
from errors import TryOnError

from admin import router as admin_router
from auth import router as auth_router
from catalog import router as catalog_router
from payments import router as payments_router
from prompts import router as prompts_router
from stores import router as stores_router
from tryon import router as tryon_router
from users import router as users_router

# --- App Initialization ---
app = FastAPI(
    title=settings.PROJECT_NAME,
    description="API server for EstiloPlus: virtual try-on, catalog and credits.",
    version="1.0.0",
)

# --- CORS Middleware ---
origins = [origin.strip() for origin in settings.CORS_ORIGINS.split(",") if origin.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Startup ---

def _warn_missing_config():
    required = {
        "SUPABASE_JWT_SECRET": "Bearer tokens cannot be verified.",
        "GEMINI_API_KEY": "Try-on generation will fail.",
        "CLOUDINARY_CLOUD_NAME": "Generated images cannot be stored.",
        "CLOUDINARY_API_KEY": "Generated images cannot be stored.",
        "CLOUDINARY_API_SECRET": "Generated images cannot be stored.",
        "STRIPE_SECRET_KEY": "Checkout is disabled.",
        "STRIPE_WEBHOOK_SECRET": "Payment webhooks will be rejected.",
    }
    for key, consequence in required.items():
        if not getattr(settings, key):
            log.warning(f"{key} not set. {consequence}")


@app.on_event("startup")
async def on_startup():
    """Create database tables on startup."""
    _warn_missing_config()
    await create_tables()
    log.info("Database tables verified/created.")


# --- Error Rendering ---
# Every error body is {"error": <message>}.

@app.exception_handler(TryOnError)
async def tryon_error_handler(request: Request, exc: TryOnError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=exc.headers)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "Invalid input."
    if errors:
        first = errors[0]
        message = str(first.get("msg", message)).removeprefix("Value error, ")
        field = ".".join(str(part) for part in first.get("loc", ())[1:])
        if field:
            message = f"{field}: {message}"
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": message, "code": "invalid_input"},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    log.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error.", "code": "error"},
    )


# =======================================
# ROUTER INCLUSION
# =======================================

for router in (
    auth_router,
    users_router,
    stores_router,
    catalog_router,
    prompts_router,
    tryon_router,
    payments_router,
    admin_router,
):
    app.include_router(router, prefix=settings.API_PREFIX)


# =======================================
# OPERATIONAL ENDPOINTS
# =======================================

@app.get("/")
async def root():
    return {"message": settings.PROJECT_NAME, "status": "running"}


@app.get("/health")
async def health(db: AsyncSession = Depends(get_db)):
    """Liveness plus a trivial database round-trip."""
    await db.execute(text("SELECT 1"))
    return {"status": "ok", "database": "ok"}


@app.get(f"{settings.API_PREFIX}/config")
async def client_config():
    """Public identity-provider settings for the browser client."""
    return {
        "supabaseUrl": settings.SUPABASE_URL,
        "supabaseAnonKey": settings.SUPABASE_ANON_KEY,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("server:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
