from __future__ import annotations

import logging
import secrets

from sqlalchemy.ext.asyncio import AsyncSession

from tgvoice.core.config import settings
from tgvoice.models import Channel, Server
from tgvoice.repos.channel_repo import ChannelRepo
from tgvoice.repos.server_repo import ServerRepo


logger = logging.getLogger(__name__)

MANAGER_ROLES = ("owner", "admin")


def new_invite_code() -> str:
    return secrets.token_hex(8)


class ServerService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.servers = ServerRepo(db)
        self.channels = ChannelRepo(db)

    async def create_server(self, *, owner_id: int, name: str, description: str = "") -> Server:
        """
        Create a server owned by `owner_id`.

        Steps:
        1. Insert the server with a fresh invite code
        2. Add the owner as a member with role `owner`
        3. Create the default voice channel
        """
        async with self.db.begin():
            server = await self.servers.create_server(
                name=name,
                description=description,
                owner_id=owner_id,
                invite_code=new_invite_code(),
            )
            await self.servers.add_member(server.id, owner_id, role="owner")
            await self.channels.create_channel(
                server_id=server.id,
                name=settings.DEFAULT_CHANNEL_NAME,
                type="voice",
                owner_id=owner_id,
            )

        logger.info("Server %s (%s) created by user %s", server.id, name, owner_id)
        return server

    async def list_servers(self, user_id: int) -> list[tuple[Server, str]]:
        """Servers the user belongs to, newest first, with the user's role."""
        async with self.db.begin():
            return await self.servers.list_servers_for_user(user_id)

    async def join_by_invite(self, user_id: int, *, invite_code: str) -> tuple[Server, str]:
        """Raises KeyError when the invite code is unknown. Joining twice is a no-op."""
        async with self.db.begin():
            server = await self.servers.get_by_invite_code(invite_code)
            if server is None:
                raise KeyError(invite_code)
            member = await self.servers.add_member(server.id, user_id, role="member")
            return server, member.role

    async def list_channels(self, server_id: int, *, user_id: int) -> list[Channel]:
        """Raises PermissionError unless the user is a member of the server."""
        async with self.db.begin():
            if await self.servers.get_membership(server_id, user_id) is None:
                raise PermissionError("not a member of this server")
            return await self.channels.list_channels(server_id)

    async def create_channel(self, server_id: int, *, user_id: int, name: str, type: str = "voice") -> Channel:
        """Raises PermissionError unless the user is an owner or admin of the server."""
        async with self.db.begin():
            membership = await self.servers.get_membership(server_id, user_id)
            if membership is None or membership.role not in MANAGER_ROLES:
                raise PermissionError("insufficient permissions")
            return await self.channels.create_channel(
                server_id=server_id,
                name=name,
                type=type,
                owner_id=user_id,
            )
