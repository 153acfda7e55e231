import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from slowapi.middleware import SlowAPIMiddleware

from carelink_identity.admin.router import router as admin_router
from carelink_identity.auth.router import router as auth_router
from carelink_identity.config import Settings
from carelink_identity.database import close_db, init_db
from carelink_identity.error_handlers import register_exception_handlers
from carelink_identity.notifications import NotificationSink, ProviderNotifier
from carelink_identity.rate_limit import limiter
from carelink_shared.middleware import error_envelope_middleware, request_id_middleware


# ── OpenAPI metadata ──────────────────────────────────────────────────────────

_DESCRIPTION = """
## CareLink Identity Service

Account and session authority for the CareLink platform:

* **Registration**: role-based sign-up (patient, doctor, staff, ...); the account
  stays inactive until the 6-digit code emailed to the user is verified.
* **Sessions**: signed bearer tokens, returned in the body and set as an
  HTTP-only cookie. The cookie takes precedence when both are sent.
* **Two-factor authentication**: optional TOTP (authenticator app), enabled in
  two steps. With 2FA on, login returns a 5-minute pre-2FA token that only
  `/auth/verify-2fa` accepts.
* **Password reset** via emailed code.
* **Administration**: list accounts, suspend / reinstate, change role.

### Error shape
```json
{ "error": { "code": "invalid_code", "message": "..." }, "request_id": "..." }
```
Validation errors return `400 invalid_input` with a `fields` list.
"""

_TAGS_METADATA = [
    {
        "name": "auth",
        "description": (
            "Registration and email verification, login, TOTP second factor, "
            "current account, logout and password reset."
        ),
    },
    {
        "name": "admin-accounts",
        "description": "**Admin only.** Browse accounts, change status and role.",
    },
]


class HealthResponse(BaseModel):
    status: str
    service: str


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    await init_db(
        app,
        settings.identity_database_url,
        create_schema=settings.auto_create_schema,
    )
    yield
    await close_db(app)


def create_app(
    settings: Settings | None = None,
    notifier: NotificationSink | None = None,
) -> FastAPI:
    """
    Build the identity app.  Everything the routes need (settings, session
    factory, notifier) hangs off ``app.state``; run with
    ``uvicorn --factory carelink_identity.main:create_app``.

    The slowapi limiter is process-wide because the route decorators bind to
    it at import, so ``settings.rate_limit_enabled`` of the most recently
    built app applies to every app in the process.
    """
    settings = settings or Settings()
    _configure_logging(settings.log_level)

    app = FastAPI(
        title="CareLink Identity Service",
        version="1.0.0",
        description=_DESCRIPTION,
        openapi_tags=_TAGS_METADATA,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.notifier = notifier or ProviderNotifier(settings)

    limiter.enabled = settings.rate_limit_enabled
    app.state.limiter = limiter
    register_exception_handlers(app)

    # Middleware is applied in reverse-registration order (last added = outermost).
    # CORS must be outermost so ALL responses (including 429s) carry CORS headers.
    app.add_middleware(SlowAPIMiddleware)
    app.middleware("http")(request_id_middleware)
    app.middleware("http")(error_envelope_middleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=600,
    )

    app.include_router(auth_router, prefix="/api/v1")
    app.include_router(admin_router, prefix="/api/v1")

    @app.get("/health", response_model=HealthResponse, tags=["health"])
    async def health() -> HealthResponse:
        return HealthResponse(status="ok", service="identity")

    return app
