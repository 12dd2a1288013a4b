from __future__ import annotations

from datetime import datetime
from pydantic import BaseModel, Field
from typing import List, Literal


class ChannelCreateIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: Literal["voice", "text"] = "voice"


class ChannelOut(BaseModel):
    id: int
    server_id: int
    name: str
    type: str
    owner_id: int
    created_at: datetime


class ChannelListOut(BaseModel):
    channels: List[ChannelOut]


class ChannelMemberOut(BaseModel):
    id: int
    username: str
    first_name: str
    last_name: str
    avatar: str
    status: str
    joined_at: datetime
    in_voice: bool = False


class ChannelMembersOut(BaseModel):
    channel_id: int
    members: List[ChannelMemberOut]
