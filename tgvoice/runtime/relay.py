from __future__ import annotations

import logging
from typing import Any

from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel

from tgvoice.runtime.presence import Connection, PresenceRegistry
from tgvoice.schemas.ws import SignalKind, SignalOut


logger = logging.getLogger(__name__)


class SignalingRelay:
    """
    Best-effort message router on top of the presence registry.

    Nothing is acknowledged, retried or queued: a message for a user with no
    live connection is dropped and the sender is never told.
    """

    def __init__(self, registry: PresenceRegistry):
        self.registry = registry

    async def _deliver(self, connection: Connection, payload: dict[str, Any]) -> bool:
        try:
            await connection.send(payload)
        except Exception as e:
            # The receiving socket's own handler performs cleanup when it closes.
            logger.debug("Send to connection %s failed: %s", connection.connection_id, e)
            return False
        return True

    async def send(self, connection: Connection, model: BaseModel) -> bool:
        return await self._deliver(connection, jsonable_encoder(model))

    async def relay(
        self,
        kind: SignalKind,
        target_user_id: int,
        payload: Any,
        from_user_id: int | None,
        *,
        from_connection: str = "",
    ) -> bool:
        target = self.registry.lookup(target_user_id)
        if target is None:
            logger.debug("Dropping %s from %s: user %s not connected", kind, from_user_id, target_user_id)
            return False

        msg = SignalOut(
            type=kind,
            payload=payload,
            from_user_id=from_user_id,
            from_connection=from_connection,
        )
        return await self.send(target, msg)

    async def broadcast_to_room(
        self,
        room_id: str,
        model: BaseModel,
        exclude_user_id: int | None = None,
    ) -> int:
        """
        Deliver a message to every live member of a room except one user.
        Returns the number of successful deliveries.
        """
        payload = jsonable_encoder(model)
        delivered = 0
        for m in self.registry.members(room_id):
            if exclude_user_id is not None and m.user_id == exclude_user_id:
                continue
            if await self._deliver(m.connection, payload):
                delivered += 1
        return delivered
