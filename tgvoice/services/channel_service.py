from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from tgvoice.models import Channel, ChannelMember, User
from tgvoice.repos.channel_repo import ChannelRepo
from tgvoice.repos.server_repo import ServerRepo


class ChannelService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.channels = ChannelRepo(db)
        self.servers = ServerRepo(db)

    async def _accessible_channel(self, channel_id: int, user_id: int) -> Channel:
        channel = await self.channels.get_channel(channel_id)
        if channel is None:
            raise KeyError(channel_id)
        if await self.servers.get_membership(channel.server_id, user_id) is None:
            raise PermissionError("access denied")
        return channel

    async def join_channel(self, channel_id: int, *, user_id: int) -> Channel:
        """
        Record the user as a member of the channel.
        Raises KeyError for unknown channels, PermissionError for non-members of its server.
        """
        async with self.db.begin():
            channel = await self._accessible_channel(channel_id, user_id)
            await self.channels.add_member(channel_id, user_id)
            return channel

    async def list_members(self, channel_id: int, *, user_id: int) -> list[tuple[User, ChannelMember]]:
        async with self.db.begin():
            await self._accessible_channel(channel_id, user_id)
            return await self.channels.list_members(channel_id)
