from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from tgvoice.api.deps import get_identity
from tgvoice.api.v1.servers import _build_channel_out
from tgvoice.core import get_db
from tgvoice.runtime.presence import presence
from tgvoice.schemas.channel import ChannelMemberOut, ChannelMembersOut, ChannelOut
from tgvoice.services.channel_service import ChannelService
from tgvoice.services.identity_service import Identity

router = APIRouter()


@router.post("/{channel_id}/join", response_model=ChannelOut)
async def join_channel(
    channel_id: int,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
) -> ChannelOut:
    svc = ChannelService(db)
    try:
        channel = await svc.join_channel(channel_id, user_id=identity.id)
    except KeyError:
        raise HTTPException(status_code=404, detail="channel not found")
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    return _build_channel_out(channel)


@router.get("/{channel_id}/members", response_model=ChannelMembersOut)
async def list_channel_members(
    channel_id: int,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
) -> ChannelMembersOut:
    """Persisted channel members, flagged with whether they are live in the voice room."""
    svc = ChannelService(db)
    try:
        rows = await svc.list_members(channel_id, user_id=identity.id)
    except KeyError:
        raise HTTPException(status_code=404, detail="channel not found")
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))

    in_voice = {m.user_id for m in presence.members(str(channel_id))}
    return ChannelMembersOut(
        channel_id=channel_id,
        members=[
            ChannelMemberOut(
                id=user.id,
                username=user.username,
                first_name=user.first_name,
                last_name=user.last_name,
                avatar=user.avatar,
                status=user.status,
                joined_at=member.joined_at,
                in_voice=user.id in in_voice,
            )
            for user, member in rows
        ],
    )
