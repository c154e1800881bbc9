from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
import uuid
from contextlib import asynccontextmanager
from database import database
from routes import features, admin_features
from middleware.capability_gating import access_denied_detail
from services.capability_admin import CapabilityAdminService
from services.capability_registry import CapabilityRegistry
from services.entitlement_errors import AccessDenied
from services.feature_access import FeatureAccessService
from services.grant_store import GrantStore
from services.principal_loader import PrincipalLoader
from services.resolution_engine import ResolutionEngine

import os
import logging
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# Configure logging
logging.basicConfig(
    level=os.environ.get('LOG_LEVEL', 'INFO').upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def wire_entitlements(app: FastAPI, db, registry: CapabilityRegistry) -> None:
    """Build the entitlement services over one db handle and one registry."""
    grant_store = GrantStore(db, registry)
    loader = PrincipalLoader(db, grant_store)
    engine = ResolutionEngine(registry, loader)

    app.state.capability_registry = registry
    app.state.grant_store = grant_store
    app.state.resolution_engine = engine
    app.state.feature_access = FeatureAccessService(engine)
    app.state.capability_admin = CapabilityAdminService(db, grant_store, registry)


# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting Feature Entitlement API")
    await database.connect()
    db = database.get_db()

    registry = CapabilityRegistry()
    try:
        await registry.hydrate(db)
    except Exception as e:
        # Static catalog still works; stored overrides are picked up on next start
        logger.error(f"Capability registry hydration failed, using static catalog: {e}")

    wire_entitlements(app, db, registry)
    logger.info("Entitlement services ready")

    yield

    # Shutdown
    await database.close()

# Create FastAPI app
app = FastAPI(
    title="Feature Entitlement API",
    description="Plan-based capability access resolution",
    version="1.0.0",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=os.environ.get('CORS_ORIGINS', '*').split(','),
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(features.router)
app.include_router(admin_features.router)

# Health check
@app.get("/api/health")
async def health_check():
    return {
        "status": "healthy",
        "environment": os.getenv("ENVIRONMENT", "development")
    }

# require() called directly inside a route surfaces as the same 403 body as @require_capability
@app.exception_handler(AccessDenied)
async def access_denied_handler(request: Request, exc: AccessDenied):
    return JSONResponse(status_code=403, content={"detail": access_denied_detail(exc)})

# Validation error handler: log request_id + errors
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    request_id = str(uuid.uuid4())
    errors = exc.errors()
    logger.warning(
        "Validation failed request_id=%s path=%s errors=%s",
        request_id,
        request.url.path,
        [(e.get("loc"), e.get("msg"), e.get("type")) for e in errors],
    )
    return JSONResponse(
        status_code=422,
        content={"detail": jsonable_errors(errors), "request_id": request_id},
    )


def jsonable_errors(errors):
    return [{"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")} for e in errors]


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "server:app",
        host="0.0.0.0",
        port=8001,
        reload=os.getenv("ENVIRONMENT") == "development"
    )
