"""
Paid-access backend: free trial, manual payment submission, admin review and Pro entitlement
"""

from pathlib import Path
import logging
import traceback

from fastapi import FastAPI, Depends
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from config import settings
from database import Store, get_store
from backend.utils.errors import EntitlementError, TransientStoreError
from backend.utils.responses import error_from_exception, error_response, success_response
from routers.auth_router import auth_router
from routers.subscription_router import subscription_router
from routers.admin_router import admin_router
from services.plan_service import PlanService

# ============================================================================
# LOGGING
# ============================================================================

# Logging setup - write ALL events to LOG_DIR/app.log
LOGS_DIR = Path(settings.log_dir)
LOGS_DIR.mkdir(parents=True, exist_ok=True)
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(LOGS_DIR / "app.log"),
        logging.StreamHandler()
    ]
)
logger = logging.getLogger(__name__)

# ============================================================================
# FASTAPI APP SETUP
# ============================================================================

app = FastAPI(title="Subscription & Payment Review API")


# Uncaught exception middleware - logs all unhandled exceptions and returns 500
class UncaughtExceptionMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error(f"Uncaught exception on {request.method} {request.url.path}: {e}\n{traceback.format_exc()}")
            message = f"Internal Server Error: {e}" if settings.debug else "Internal Server Error"
            return error_response("INTERNAL_ERROR", status=500, message=message)


@app.exception_handler(EntitlementError)
async def entitlement_error_handler(request, exc: EntitlementError):
    if isinstance(exc, TransientStoreError):
        logger.error(f"{request.method} {request.url.path} failed: store unavailable ({exc.__cause__!r})")
    return error_from_exception(exc)


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{field}: {first.get('msg')}" if field else first.get("msg", "Invalid request")
    return error_response("VALIDATION_ERROR", status=400, message=message)


app.add_middleware(UncaughtExceptionMiddleware)

# CORS MUST be near the bottom
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ============================================================================
# STORE LIFECYCLE
# ============================================================================

@app.on_event("startup")
async def open_store():
    """Open the relational store, create tables and seed the default plan."""
    try:
        store = await Store.from_settings(settings).open()
    except Exception as e:
        logger.error(f"Store initialization failed: {e}")
        raise
    app.state.store = store

    if settings.seed_default_plan:
        await PlanService(store).ensure_default_plan()
    logger.info("Store initialized successfully")


@app.on_event("shutdown")
async def close_store():
    store = getattr(app.state, "store", None)
    if store is not None:
        await store.close()


@app.get("/api/health")
async def health(store: Store = Depends(get_store)):
    await store.ping()
    return success_response(data={"status": "healthy", "database": "connected"}, message="OK")

# ============================================================================
# INCLUDE ROUTERS
# ============================================================================
app.include_router(auth_router)
app.include_router(subscription_router)
app.include_router(admin_router)

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
