from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from tgvoice.api.deps import get_identity
from tgvoice.core import get_db
from tgvoice.schemas.channel import ChannelCreateIn, ChannelListOut, ChannelOut
from tgvoice.schemas.server import ServerCreateIn, ServerJoinIn, ServerListOut, ServerOut
from tgvoice.services.identity_service import Identity
from tgvoice.services.server_service import ServerService
from tgvoice.services.user_service import UserService

router = APIRouter()


def _build_server_out(server, role: str) -> ServerOut:
    return ServerOut(
        id=server.id,
        name=server.name,
        description=server.description,
        owner_id=server.owner_id,
        invite_code=server.invite_code,
        created_at=server.created_at,
        role=role,
    )


def _build_channel_out(channel) -> ChannelOut:
    return ChannelOut(
        id=channel.id,
        server_id=channel.server_id,
        name=channel.name,
        type=channel.type,
        owner_id=channel.owner_id,
        created_at=channel.created_at,
    )


@router.get("", response_model=ServerListOut)
async def list_servers(
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
) -> ServerListOut:
    svc = ServerService(db)
    rows = await svc.list_servers(identity.id)
    return ServerListOut(servers=[_build_server_out(server, role) for server, role in rows])


@router.post("", response_model=ServerOut)
async def create_server(
    body: ServerCreateIn,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
) -> ServerOut:
    await UserService(db).ensure_user(identity)
    svc = ServerService(db)
    server = await svc.create_server(owner_id=identity.id, name=body.name, description=body.description)
    return _build_server_out(server, "owner")


@router.post("/join", response_model=ServerOut)
async def join_server(
    body: ServerJoinIn,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
) -> ServerOut:
    await UserService(db).ensure_user(identity)
    svc = ServerService(db)
    try:
        server, role = await svc.join_by_invite(identity.id, invite_code=body.invite_code)
    except KeyError:
        raise HTTPException(status_code=404, detail="server not found")
    return _build_server_out(server, role)


@router.get("/{server_id}/channels", response_model=ChannelListOut)
async def list_channels(
    server_id: int,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
) -> ChannelListOut:
    svc = ServerService(db)
    try:
        channels = await svc.list_channels(server_id, user_id=identity.id)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    return ChannelListOut(channels=[_build_channel_out(c) for c in channels])


@router.post("/{server_id}/channels", response_model=ChannelOut)
async def create_channel(
    server_id: int,
    body: ChannelCreateIn,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
) -> ChannelOut:
    svc = ServerService(db)
    try:
        channel = await svc.create_channel(server_id, user_id=identity.id, name=body.name, type=body.type)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    return _build_channel_out(channel)
