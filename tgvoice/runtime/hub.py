from __future__ import annotations

import json
import logging
from typing import Any, Callable

import anyio
from pydantic import BaseModel, ValidationError

from tgvoice.core.config import settings
from tgvoice.runtime.presence import Connection, PresenceRegistry, presence
from tgvoice.runtime.relay import SignalingRelay
from tgvoice.schemas.ws import (
    AuthenticateIn,
    ErrorOut,
    JoinRoomIn,
    LeaveRoomIn,
    MuteStateChangedOut,
    PeerJoinedOut,
    PeerLeftOut,
    RoommateOut,
    RoommatesOut,
    SetMutedIn,
    SignalIn,
)
from tgvoice.services.identity_service import Identity, resolve_identity


logger = logging.getLogger(__name__)


def _default_resolver(init_data: str) -> Identity:
    return resolve_identity(init_data, mode=settings.AUTH_MODE, bot_token=settings.BOT_TOKEN)


class SignalingHub:
    """
    Connection-scoped event handlers for voice rooms.

    The transport calls `connect`, then `dispatch` for every inbound frame in
    arrival order, then `disconnect` exactly once when the socket goes away.
    """

    def __init__(
        self,
        registry: PresenceRegistry,
        *,
        resolver: Callable[[str], Identity] = _default_resolver,
    ):
        self.registry = registry
        self.relay = SignalingRelay(registry)
        self.resolver = resolver

    async def connect(self, conn: Connection) -> None:
        self.registry.register(conn)
        logger.info("Connection %s opened", conn.connection_id)

    async def dispatch(self, conn: Connection, raw: str) -> None:
        """
        Handle one text frame. Bad frames are answered with an error message;
        only AuthenticationError escapes to the transport.
        """
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            await self._error(conn, "message must be valid JSON")
            return
        if not isinstance(data, dict):
            await self._error(conn, "message must be a JSON object")
            return

        msg_type = data.get("type")
        handler = self._handlers.get(msg_type) if isinstance(msg_type, str) else None
        if handler is None:
            await self._error(conn, f"unknown message type: {msg_type!r}")
            return

        model_cls, method = handler
        try:
            msg = model_cls(**data)
        except ValidationError as e:
            await self._error(conn, f"invalid {msg_type}: {e.error_count()} validation error(s)")
            return

        await method(self, conn, msg)

    async def disconnect(self, conn: Connection) -> None:
        removed = self.registry.on_disconnect(conn)
        for m in removed:
            await self.relay.broadcast_to_room(
                m.room_id,
                PeerLeftOut(room_id=m.room_id, user_id=m.user_id, connection_id=conn.connection_id),
                exclude_user_id=m.user_id,
            )
        logger.info("Connection %s closed (left %d room(s))", conn.connection_id, len(removed))

    # ---- handlers ----

    async def authenticate(self, conn: Connection, msg: AuthenticateIn) -> None:
        user_id, display_name = msg.user_id, msg.display_name
        verified = False
        if msg.init_data:
            identity = await anyio.to_thread.run_sync(self.resolver, msg.init_data)
            user_id, display_name = identity.id, identity.display_name
            verified = identity.is_verified

        if user_id is None:
            await self._error(conn, "authenticate requires user_id or init_data")
            return

        # A signed identity may take over its own user id from another socket
        if not verified and not self.registry.can_claim(conn, user_id):
            logger.warning("Refused unsigned authenticate as %s on %s", user_id, conn.connection_id)
            await self._error(conn, f"user {user_id} is held by a verified connection")
            return

        self.registry.authenticate(conn, user_id, display_name, verified=verified)
        logger.info("User %s (%s) authenticated on %s", display_name, user_id, conn.connection_id)

    async def join_room(self, conn: Connection, msg: JoinRoomIn) -> None:
        if not self.registry.can_claim(conn, msg.user_id):
            logger.warning("Refused join of room %s as %s on %s", msg.room_id, msg.user_id, conn.connection_id)
            await self._error(conn, f"cannot join as user {msg.user_id}")
            return

        user_id, display_name = self._effective_user(conn, msg.user_id, msg.display_name)
        previous = self.registry.membership(msg.room_id, user_id)
        roommates = self.registry.join(msg.room_id, user_id, conn, display_name)
        logger.info("User %s joined room %s (%d other(s))", user_id, msg.room_id, len(roommates))

        if previous is not None and previous.connection is not conn:
            # Same user from a new socket: peers must drop the old connection
            await self.relay.broadcast_to_room(
                msg.room_id,
                PeerLeftOut(
                    room_id=msg.room_id,
                    user_id=user_id,
                    connection_id=previous.connection.connection_id,
                ),
                exclude_user_id=user_id,
            )

        await self.relay.broadcast_to_room(
            msg.room_id,
            PeerJoinedOut(
                room_id=msg.room_id,
                user_id=user_id,
                display_name=display_name,
                connection_id=conn.connection_id,
            ),
            exclude_user_id=user_id,
        )
        await self.relay.send(
            conn,
            RoommatesOut(
                room_id=msg.room_id,
                users=[
                    RoommateOut(
                        user_id=m.user_id,
                        display_name=m.display_name,
                        connection_id=m.connection.connection_id,
                    )
                    for m in roommates
                ],
            ),
        )

    async def leave_room(self, conn: Connection, msg: LeaveRoomIn) -> None:
        # Only the owning connection can end a membership
        removed = self.registry.leave(msg.room_id, msg.user_id, conn)
        if removed is None:
            return
        logger.info("User %s left room %s", msg.user_id, msg.room_id)
        await self.relay.broadcast_to_room(
            msg.room_id,
            PeerLeftOut(
                room_id=msg.room_id,
                user_id=msg.user_id,
                connection_id=removed.connection.connection_id,
            ),
            exclude_user_id=msg.user_id,
        )

    async def send_signal(self, conn: Connection, msg: SignalIn) -> None:
        sender = self.registry.user_of(conn)
        await self.relay.relay(
            msg.type,
            msg.target,
            msg.payload,
            sender[0] if sender else None,
            from_connection=conn.connection_id,
        )

    async def set_muted(self, conn: Connection, msg: SetMutedIn) -> None:
        sender = self.registry.user_of(conn)
        membership = self.registry.membership(msg.room_id, sender[0]) if sender else None
        if membership is None or membership.connection is not conn:
            logger.debug("Ignoring set_muted for room %s from non-member %s", msg.room_id, conn.connection_id)
            return
        await self.relay.broadcast_to_room(
            msg.room_id,
            MuteStateChangedOut(room_id=msg.room_id, user_id=membership.user_id, is_muted=msg.is_muted),
            exclude_user_id=membership.user_id,
        )

    async def reject(self, conn: Connection, detail: str) -> None:
        """Answer a frame the transport could not hand to `dispatch`."""
        await self._error(conn, detail)

    # ---- helpers ----

    def _effective_user(self, conn: Connection, user_id: int, display_name: str) -> tuple[int, str]:
        # Keep the authenticated display name when join doesn't carry one
        bound = self.registry.user_of(conn)
        if not display_name and bound is not None and bound[0] == user_id:
            display_name = bound[1]
        return user_id, display_name or f"user-{user_id}"

    async def _error(self, conn: Connection, detail: str) -> None:
        await self.relay.send(conn, ErrorOut(detail=detail))

    _handlers: dict[Any, tuple[type[BaseModel], Callable[..., Any]]] = {
        "authenticate": (AuthenticateIn, authenticate),
        "join_room": (JoinRoomIn, join_room),
        "leave_room": (LeaveRoomIn, leave_room),
        "session_offer": (SignalIn, send_signal),
        "session_answer": (SignalIn, send_signal),
        "ice_candidate": (SignalIn, send_signal),
        "mute_state_changed": (SignalIn, send_signal),
        "set_muted": (SetMutedIn, set_muted),
    }


hub = SignalingHub(presence)
