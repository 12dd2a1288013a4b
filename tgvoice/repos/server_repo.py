from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tgvoice.models import Server, ServerMember


class ServerRepo:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_server(self, server_id: int) -> Server | None:
        return await self.db.get(Server, server_id)

    async def get_by_invite_code(self, invite_code: str) -> Server | None:
        res = await self.db.execute(select(Server).where(Server.invite_code == invite_code))
        return res.scalar_one_or_none()

    async def create_server(
        self,
        *,
        name: str,
        description: str,
        owner_id: int,
        invite_code: str,
    ) -> Server:
        server = Server(
            name=name,
            description=description,
            owner_id=owner_id,
            invite_code=invite_code,
        )
        self.db.add(server)
        await self.db.flush()  # assign server.id
        return server

    async def get_membership(self, server_id: int, user_id: int) -> ServerMember | None:
        return await self.db.get(ServerMember, (server_id, user_id))

    async def add_member(self, server_id: int, user_id: int, *, role: str = "member") -> ServerMember:
        """Insert a membership unless one exists already; returns the stored row."""
        existing = await self.get_membership(server_id, user_id)
        if existing is not None:
            return existing
        member = ServerMember(server_id=server_id, user_id=user_id, role=role)
        self.db.add(member)
        await self.db.flush()
        return member

    async def list_servers_for_user(self, user_id: int) -> list[tuple[Server, str]]:
        stmt = (
            select(Server, ServerMember.role)
            .join(ServerMember, ServerMember.server_id == Server.id)
            .where(ServerMember.user_id == user_id)
            .order_by(Server.created_at.desc(), Server.id.desc())
        )
        res = await self.db.execute(stmt)
        return [(server, role) for server, role in res.all()]
