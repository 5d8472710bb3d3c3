from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from timing_asgi import TimingMiddleware, TimingClient  # type: ignore
from timing_asgi.integrations import StarletteScopeToName  # type: ignore

from organic_groups.core import config
from organic_groups.core.context import create_og_context
from organic_groups.core.database.engine import AsyncSessionLocal, init_db
from organic_groups.core.exceptions import (
    ConfigurationError,
    InvalidGroupReference,
    InvalidMembership,
    OgException,
    RoleLocked,
    UnknownPermission,
)
from organic_groups.features.access.routes import router as access_router
from organic_groups.features.entities.routes import router as entity_router
from organic_groups.features.groups.routes import router as group_router
from organic_groups.features.groups.service import load_registry
from organic_groups.features.memberships.routes import router as membership_router
from organic_groups.features.permissions.routes import router as permission_router
from organic_groups.features.users.routes import router as user_router
from organic_groups.features.users.dependencies import get_authorization_header
from organic_groups.utils import get_logger


log = get_logger(__name__)
log.info("Initializing server")
app = FastAPI(
    title="Organic Groups",
    description="Group membership and access decisions for groups and group content",
    version="0.1.0",
    docs_url="/docs" if config.ENABLE_DOCS else None,
    redoc_url="/redoc" if config.ENABLE_DOCS else None,
    openapi_url="/openapi.json" if config.ENABLE_DOCS else None
)
limiter = Limiter(key_func=get_authorization_header)
app.state.limiter = limiter
app.state.og = create_og_context()


class PrintTimings(TimingClient):
    def timing(self, metric_name, timing, tags):
        log.debug(dict(route=metric_name.removeprefix("main.organic_groups.features."), timing=timing, tags=tags))


app.add_middleware(TimingMiddleware, client=PrintTimings(), metric_namer=StarletteScopeToName("main", app))

if config.ENABLE_DOCS:
    log.warning("Docs enabled")
if config.ALLOW_ORIGIN:
    log.warning("Setting allow origin to %s", config.ALLOW_ORIGIN)
    origins = [config.ALLOW_ORIGIN]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_request: Request, exc: RequestValidationError):
    errors = dict()
    for error in exc.errors():
        if "loc" not in error or "msg" not in error:
            continue
        key = error["loc"][-1]
        if key == "__root__":
            key = "root"
        errors[key] = error["msg"]
    log.info("Request validation error %s", errors)
    return JSONResponse(status_code=400, content=jsonable_encoder(errors))


@app.exception_handler(RateLimitExceeded)
def rate_limit_exceeded_handler(_request: Request, _exc: RateLimitExceeded) -> Response:
    return JSONResponse({"error": "You are going too fast"}, status_code=429)


# Status code per exception class; subclasses not listed fall back to 400
OG_EXCEPTION_STATUS = {
    InvalidMembership: 400,
    InvalidGroupReference: 400,
    UnknownPermission: 400,
    ConfigurationError: 400,
    RoleLocked: 409,
}


@app.exception_handler(OgException)
async def og_exception_handler(_request: Request, exc: OgException):
    status_code = OG_EXCEPTION_STATUS.get(type(exc), 400)
    log.info("Request rejected with %s: %s", type(exc).__name__, exc.message)
    return JSONResponse(status_code=status_code, content=jsonable_encoder(exc.to_dict()))


@app.on_event("startup")
async def startup():
    """Initialize database and load the group registry on application startup."""
    log.info("Initializing database...")
    await init_db()
    async with AsyncSessionLocal() as db:
        await load_registry(db, app.state.og.registry)
    log.info("Database initialized successfully")


@app.get("/")
async def root():
    """Root endpoint - API health check."""
    return {
        "message": "Organic Groups API",
        "version": "0.1.0",
        "status": "online",
        "docs": "/docs" if config.ENABLE_DOCS else None,
        "authentication": {
            "info": "Bearer token optional; requests without one act as the anonymous user",
            "admin_endpoints": [
                "POST /users", "DELETE /users/{id}",
                "POST /groups", "DELETE /groups/*", "POST /groups/fields",
                "POST /permissions/{group_type}/{group_bundle}/roles", "/permissions/roles/*"
            ],
        },
        "features": {
            "groups": "Declare entity bundles as groups and attach audience fields to group content",
            "entities": "Groups and group content, guarded by the access engine",
            "memberships": "Users in groups with state, channel and roles",
            "permissions": "Per group bundle roles and the permission catalog",
            "access": "Allowed / forbidden / neutral verdicts for operations on entities",
        }
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "access_cache": app.state.og.cache.stats()}


# Include routers
app.include_router(user_router, prefix="/users", tags=["users"])

# Group registry routes
app.include_router(group_router, prefix="/groups", tags=["groups"])

# Entity routes
app.include_router(entity_router, prefix="/entities", tags=["entities"])

# Role and catalog routes
app.include_router(permission_router, prefix="/permissions", tags=["permissions"])

# Membership routes
app.include_router(membership_router, prefix="/memberships", tags=["memberships"])

# Access check routes
app.include_router(access_router, prefix="/access", tags=["access"])
