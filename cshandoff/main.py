import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

from cshandoff.config import get_settings, reload_settings

reload_settings()
from cshandoff.database import Database
from cshandoff.deps import ScreenRedirect
from cshandoff.errors import HandoffError
from cshandoff.modules.auth.client import AuthClient
from cshandoff.modules.realtime.changes import ChangeFeed
from cshandoff.relay.api import router as relay_router
from cshandoff.screens.auth import router as auth_router
from cshandoff.screens.create import router as create_router
from cshandoff.screens.detail import router as detail_router
from cshandoff.screens.feed import router as feed_router
from cshandoff.screens.onboarding import router as onboarding_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    app.state.db = Database(
        settings.database_url,
        min_size=settings.database_pool_min_size,
        max_size=settings.database_pool_max_size,
    )
    app.state.changes = ChangeFeed(settings.database_url)
    app.state.http = httpx.AsyncClient(timeout=10.0)
    app.state.auth = AuthClient(settings.supabase_url, settings.supabase_anon_key, app.state.http)

    await app.state.db.connect()
    await app.state.changes.start()
    yield
    await app.state.changes.stop()
    await app.state.db.close()
    await app.state.http.aclose()


async def screen_redirect_handler(request: Request, exc: ScreenRedirect):
    return RedirectResponse(exc.location, status_code=303)


async def handoff_error_handler(request: Request, exc: HandoffError):
    return JSONResponse({"error": exc.message}, status_code=exc.status_code)


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse({"error": str(exc) or "Server error"}, status_code=500)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(
        title="CS Handoff",
        description="Shift handoff tracking for care teams",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_exception_handler(ScreenRedirect, screen_redirect_handler)
    app.add_exception_handler(HandoffError, handoff_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(auth_router, prefix="/auth", tags=["auth"])
    app.include_router(onboarding_router, prefix="/onboarding", tags=["onboarding"])
    app.include_router(create_router, prefix="/create", tags=["create"])
    app.include_router(detail_router, prefix="/handoffs", tags=["detail"])
    app.include_router(feed_router, tags=["feed"])
    app.include_router(relay_router, prefix="/api", tags=["relay"])

    @app.get("/health")
    async def health():
        return {"status": "ok", "environment": settings.environment}

    return app


app = create_app()
