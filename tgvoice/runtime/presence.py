from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol


logger = logging.getLogger(__name__)


class Connection(Protocol):
    """One live transport session (a WebSocket in production)."""

    connection_id: str

    async def send(self, message: dict[str, Any]) -> None: ...


@dataclass(frozen=True)
class RoomMembership:
    room_id: str
    user_id: int
    display_name: str
    connection: Connection


class PresenceRegistry:
    """
    Live mapping of connections, users and voice rooms.

    Every mutator is synchronous and never awaits, so on the asyncio event
    loop each call runs to completion before another connection's handler can
    observe the maps. Callers must go through these methods; the maps are
    private.
    """

    def __init__(self) -> None:
        # connection_id -> connection
        self._connections: dict[str, Connection] = {}
        # user_id -> connection_id (last authenticate/join wins)
        self._user_conn: dict[int, str] = {}
        # connection_id -> (user_id, display_name)
        self._conn_user: dict[str, tuple[int, str]] = {}
        # room_id -> user_id -> membership
        self._rooms: dict[str, dict[int, RoomMembership]] = {}
        # connection_ids bound through a verified initData signature
        self._verified: set[str] = set()

    # ---- connection lifecycle ----

    def register(self, connection: Connection) -> None:
        self._connections[connection.connection_id] = connection

    def is_live(self, connection: Connection) -> bool:
        return self._connections.get(connection.connection_id) is connection

    def authenticate(
        self,
        connection: Connection,
        user_id: int,
        display_name: str,
        *,
        verified: bool = False,
    ) -> None:
        """
        Bind a user to a connection. Registers the connection if needed.
        `verified` marks a binding backed by a checked initData signature.
        """
        self.register(connection)
        self._bind(connection, user_id, display_name)
        if verified:
            self._verified.add(connection.connection_id)
        else:
            self._verified.discard(connection.connection_id)

    def is_verified(self, connection: Connection) -> bool:
        return connection.connection_id in self._verified

    def can_claim(self, connection: Connection, user_id: int) -> bool:
        """
        False when `user_id` is held by another live connection through a
        verified binding, or when this connection is verified as someone else.
        """
        bound = self.user_of(connection)
        if self.is_verified(connection) and bound is not None and bound[0] != user_id:
            return False

        holder = self._user_conn.get(user_id)
        if holder is None or holder == connection.connection_id:
            return True
        return holder not in self._verified or holder not in self._connections

    def _bind(self, connection: Connection, user_id: int, display_name: str) -> None:
        self._user_conn[user_id] = connection.connection_id
        self._conn_user[connection.connection_id] = (user_id, display_name)

    def user_of(self, connection: Connection) -> tuple[int, str] | None:
        return self._conn_user.get(connection.connection_id)

    def lookup(self, user_id: int) -> Connection | None:
        """Live connection for a user, or None."""
        conn_id = self._user_conn.get(user_id)
        if conn_id is None:
            return None
        conn = self._connections.get(conn_id)
        if conn is None:
            logger.warning("User %s bound to dead connection %s, purging", user_id, conn_id)
            self._user_conn.pop(user_id, None)
        return conn

    # ---- rooms ----

    def join(
        self,
        room_id: str,
        user_id: int,
        connection: Connection,
        display_name: str = "",
    ) -> list[RoomMembership]:
        """
        Register (or replace) the user's membership in a room.
        Returns the other members of the room.
        """
        self.register(connection)
        self._bind(connection, user_id, display_name)

        members = self._rooms.setdefault(room_id, {})
        members[user_id] = RoomMembership(
            room_id=room_id,
            user_id=user_id,
            display_name=display_name,
            connection=connection,
        )
        return [m for m in self.members(room_id) if m.user_id != user_id]

    def membership(self, room_id: str, user_id: int) -> RoomMembership | None:
        return self._rooms.get(room_id, {}).get(user_id)

    def leave(
        self,
        room_id: str,
        user_id: int,
        connection: Connection | None = None,
    ) -> RoomMembership | None:
        """
        Remove a membership; no-op if absent. When `connection` is given,
        only a membership owned by that connection is removed.
        """
        members = self._rooms.get(room_id)
        if not members:
            return None
        current = members.get(user_id)
        if current is None or (connection is not None and current.connection is not connection):
            return None
        removed = members.pop(user_id)
        if not members:
            self._rooms.pop(room_id, None)
        return removed

    def on_disconnect(self, connection: Connection) -> list[RoomMembership]:
        """
        Drop a connection and every membership it owns, across all rooms.
        Returns the removed memberships.
        """
        conn_id = connection.connection_id
        if self._connections.get(conn_id) is connection:
            del self._connections[conn_id]

        self._verified.discard(conn_id)
        bound = self._conn_user.pop(conn_id, None)
        if bound is not None and self._user_conn.get(bound[0]) == conn_id:
            del self._user_conn[bound[0]]

        removed: list[RoomMembership] = []
        for room_id in list(self._rooms):
            members = self._rooms[room_id]
            for user_id, m in list(members.items()):
                if m.connection is connection:
                    removed.append(members.pop(user_id))
            if not members:
                del self._rooms[room_id]
        return removed

    def members(self, room_id: str) -> list[RoomMembership]:
        """Current members of a room. Memberships on dead connections are purged."""
        members = self._rooms.get(room_id)
        if not members:
            return []

        live: list[RoomMembership] = []
        for user_id, m in list(members.items()):
            if self.is_live(m.connection):
                live.append(m)
            else:
                logger.warning("Purging stale membership of user %s in room %s", user_id, room_id)
                del members[user_id]
        if not members:
            self._rooms.pop(room_id, None)
        return live

    def rooms_of(self, connection: Connection) -> list[str]:
        return [
            room_id
            for room_id, members in self._rooms.items()
            if any(m.connection is connection for m in members.values())
        ]

    def participant_count(self, room_id: str) -> int:
        return len(self.members(room_id))

    def snapshot(self) -> dict[str, list[int]]:
        """room_id -> user ids, for diagnostics."""
        return {room_id: [m.user_id for m in self.members(room_id)] for room_id in list(self._rooms)}


presence = PresenceRegistry()
