from __future__ import annotations

import json
import logging
from functools import partial

import anyio
from fastapi import HTTPException, Request

from tgvoice.core import settings
from tgvoice.services.identity_service import AuthenticationError, Identity, resolve_identity


logger = logging.getLogger(__name__)

INIT_DATA_HEADER = "X-Telegram-Init-Data"


async def _init_data_from_body(request: Request) -> str | None:
    body = await request.body()
    if not body:
        return None
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    if not isinstance(data, dict):
        return None
    value = data.get("initData") or data.get("init_data")
    return value if isinstance(value, str) else None


async def get_identity(request: Request) -> Identity:
    """
    Resolve the caller from Telegram initData, taken from the
    X-Telegram-Init-Data header or the `initData` field of a JSON body.
    """
    init_data = request.headers.get(INIT_DATA_HEADER)
    if init_data is None and request.method not in ("GET", "HEAD"):
        init_data = await _init_data_from_body(request)

    resolve = partial(resolve_identity, mode=settings.AUTH_MODE, bot_token=settings.BOT_TOKEN)
    try:
        return await anyio.to_thread.run_sync(resolve, init_data)
    except AuthenticationError:
        raise HTTPException(status_code=401, detail="invalid initData signature")
