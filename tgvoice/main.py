from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles
from pathlib import Path
import logging

from tgvoice.api.v1.router import router as v1_router
from tgvoice.core import settings
from tgvoice.core.db import dispose_engine
from tgvoice.core.security import AuthMode

logging.basicConfig(level=settings.LOG_LEVEL.upper(), format="[%(levelname)s] %(name)s: %(message)s")
logger = logging.getLogger("tgvoice")

app = FastAPI(title="tgvoice API", version="0.1.0")
app.include_router(v1_router, prefix="/v1")


@app.get("/healthz", tags=["health"])
async def healthz() -> dict:
    return {"status": "ok"}


@app.on_event("startup")
async def startup_event():
    """Announce the authentication posture so an unauthenticated deployment is never silent."""
    if settings.AUTH_MODE is AuthMode.DISABLED:
        level = logging.ERROR if settings.ENV == "production" else logging.WARNING
        logger.log(level, "AUTH_MODE=disabled: initData signatures are NOT verified (ENV=%s)", settings.ENV)
    elif not settings.BOT_TOKEN:
        logger.warning("AUTH_MODE=enforced but BOT_TOKEN is empty: every signed request will be rejected")


@app.on_event("shutdown")
async def shutdown_event():
    await dispose_engine()


# Mounted last so API routes take precedence
if Path(settings.FRONTEND_DIR).is_dir():
    app.mount("/", StaticFiles(directory=settings.FRONTEND_DIR, html=True), name="frontend")
