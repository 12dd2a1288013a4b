from fastapi import APIRouter
from tgvoice.api.v1 import channels, profile, servers, ws_voice

router = APIRouter()
router.include_router(profile.router, tags=["profile"])
router.include_router(servers.router, prefix="/servers", tags=["servers"])
router.include_router(channels.router, prefix="/channels", tags=["channels"])
router.include_router(ws_voice.router)
